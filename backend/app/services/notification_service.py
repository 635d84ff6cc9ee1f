# backend/app/services/notification_service.py
"""
Notification fan-out.

A notification is stored first and then pushed to the recipient's socket
room. The stored row is the source of truth; clients that miss the push pick
it up on their next poll.
"""

import logging
from typing import List

from sqlalchemy import select, func, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import NotFoundError
from app.models import Notification
from app import websocket

logger = logging.getLogger(__name__)


async def push_notification(notification: Notification):
    """Emit a stored notification. Failures are logged, never raised."""
    try:
        await websocket.notify_user(notification.user_id, notification.to_payload())
    except Exception as e:
        logger.error(
            f"Push failed for notification {notification.id} (user {notification.user_id}): {e}",
            exc_info=True
        )


async def create_notification(
    db: AsyncSession,
    user_id: str,
    type: str,
    title: str,
    message: str,
) -> Notification:
    """Persist a notification and push it to the user."""
    notification = Notification(user_id=user_id, type=type, title=title, message=message, read=False)
    db.add(notification)
    await db.commit()
    await db.refresh(notification)

    logger.info(f"Notification created for {user_id}: {type}")
    await push_notification(notification)
    return notification


async def list_notifications(db: AsyncSession, user_id: str, limit: int = 50) -> List[Notification]:
    result = await db.execute(
        select(Notification)
        .where(Notification.user_id == user_id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def unread_count(db: AsyncSession, user_id: str) -> int:
    result = await db.execute(
        select(func.count(Notification.id)).where(
            Notification.user_id == user_id,
            Notification.read == False,  # noqa: E712
        )
    )
    return result.scalar() or 0


async def mark_read(db: AsyncSession, notification_id: int, user_id: str) -> Notification:
    """Mark one notification read. Someone else's notification counts as missing."""
    result = await db.execute(
        select(Notification).where(
            Notification.id == notification_id,
            Notification.user_id == user_id,
        )
    )
    notification = result.scalar_one_or_none()
    if notification is None:
        raise NotFoundError("Notification not found")

    notification.read = True
    await db.commit()
    await db.refresh(notification)
    return notification


async def mark_all_read(db: AsyncSession, user_id: str) -> int:
    result = await db.execute(
        update(Notification)
        .where(Notification.user_id == user_id, Notification.read == False)  # noqa: E712
        .values(read=True)
    )
    await db.commit()
    return result.rowcount or 0
