"""Notification routes."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List
import logging

from app.database import get_db
from app.auth import get_current_user
from app.errors import CRMError
from app.models import User
from app.schemas import NotificationResponse, UnreadCountResponse, MessageResponse
from app.services import notification_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/notifications", tags=["Notifications"])


@router.get("", response_model=List[NotificationResponse])
async def list_notifications(
    limit: int = Query(50, ge=1, le=200),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """The caller's notifications, newest first."""
    notifications = await notification_service.list_notifications(db, current_user.id, limit)
    return [NotificationResponse.model_validate(n) for n in notifications]


@router.get("/unread-count", response_model=UnreadCountResponse)
async def get_unread_count(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return UnreadCountResponse(count=await notification_service.unread_count(db, current_user.id))


@router.patch("/{notification_id}/read", response_model=NotificationResponse)
async def mark_notification_read(
    notification_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Mark one of the caller's notifications read. Anyone else's is reported as not found."""
    try:
        notification = await notification_service.mark_read(db, notification_id, current_user.id)
    except CRMError as e:
        raise e.to_http()
    return NotificationResponse.model_validate(notification)


@router.patch("/read-all", response_model=MessageResponse)
async def mark_all_notifications_read(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    updated = await notification_service.mark_all_read(db, current_user.id)
    logger.info(f"{updated} notifications marked read for {current_user.email}")
    return MessageResponse(message=f"{updated} notifications marked as read")
