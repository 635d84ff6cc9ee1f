"""Sales target routes."""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from typing import List, Optional
from datetime import datetime
import logging

from app.database import get_db
from app.models import Target, User
from app.rbac import (
    Permission, require_permission, require_super_admin,
    accessible_user_ids, can_access_user,
)
from app.schemas import (
    TargetCreate, TargetUpdate, TargetResponse, TargetProgress, MessageResponse,
)
from app.services import analytics
from app.services.notification_service import create_notification

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/targets", tags=["Targets"])


async def _get_target_or_404(db: AsyncSession, target_id: int) -> Target:
    target = await db.get(Target, target_id)
    if not target:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Target not found")
    return target


async def _with_progress(db: AsyncSession, target: Target) -> TargetProgress:
    data = TargetResponse.model_validate(target).model_dump()
    data.update(await analytics.target_progress(db, target))
    return TargetProgress(**data)


@router.get("", response_model=List[TargetResponse])
async def list_targets(
    user_id: Optional[str] = None,
    current_user: User = Depends(require_permission(Permission.TARGET_VIEW)),
    db: AsyncSession = Depends(get_db)
):
    """
    Targets of the caller's scope, newest first.

    **Required Permission:** target:view
    """
    query = select(Target)
    if user_id:
        if not await can_access_user(db, current_user, user_id):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
        query = query.where(Target.user_id == user_id)
    else:
        scope = await accessible_user_ids(db, current_user)
        if scope is not None:
            query = query.where(Target.user_id.in_(scope))

    result = await db.execute(query.order_by(Target.created_at.desc(), Target.id.desc()))
    return [TargetResponse.model_validate(t) for t in result.scalars().all()]


@router.get("/progress", response_model=List[TargetProgress])
async def list_target_progress(
    user_id: Optional[str] = None,
    current_user: User = Depends(require_permission(Permission.TARGET_TRACK)),
    db: AsyncSession = Depends(get_db)
):
    """
    Achievement for each of a user's targets (the caller by default).

    **Required Permission:** target:track
    """
    user_id = user_id or current_user.id
    if not await can_access_user(db, current_user, user_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")

    result = await db.execute(
        select(Target).where(Target.user_id == user_id).order_by(Target.created_at.desc(), Target.id.desc())
    )
    return [await _with_progress(db, t) for t in result.scalars().all()]


@router.get("/{target_id}/progress", response_model=TargetProgress)
async def get_target_progress(
    target_id: int,
    current_user: User = Depends(require_permission(Permission.TARGET_TRACK)),
    db: AsyncSession = Depends(get_db)
):
    target = await _get_target_or_404(db, target_id)
    if target.user_id and not await can_access_user(db, current_user, target.user_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    return await _with_progress(db, target)


@router.post("", response_model=TargetResponse, status_code=status.HTTP_201_CREATED)
async def create_target(
    data: TargetCreate,
    current_user: User = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Assign a target. The assignee is notified unless they created it themselves.

    **Required Permission:** super admin
    """
    assignee_id = data.user_id or current_user.id
    if not await db.get(User, assignee_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    values = data.model_dump(exclude={"user_id"}, exclude_none=True)
    values.setdefault("start_date", datetime.utcnow())
    target = Target(**values, user_id=assignee_id, created_by=current_user.id)
    db.add(target)
    await db.commit()
    await db.refresh(target)

    logger.info(
        f"Target {target.id} ({target.period} {target.target_type} {target.target_value}) "
        f"assigned to {assignee_id} by {current_user.email}"
    )

    if assignee_id != current_user.id:
        await create_notification(
            db,
            user_id=assignee_id,
            type="target_assigned",
            title="New Target Assigned",
            message=f"You have been assigned a new {target.period} target of ৳{target.target_value:,}",
        )
    return TargetResponse.model_validate(target)


@router.patch("/{target_id}", response_model=TargetResponse)
async def update_target(
    target_id: int,
    update: TargetUpdate,
    current_user: User = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    **Required Permission:** super admin
    """
    target = await _get_target_or_404(db, target_id)
    changes = update.model_dump(exclude_unset=True)

    start = changes.get("start_date", target.start_date)
    end = changes.get("end_date", target.end_date)
    if start and end and end < start:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="end_date must not be before start_date")

    for field, value in changes.items():
        if value is None and field in ("target_type", "target_value", "period"):
            continue
        setattr(target, field, value)

    await db.commit()
    await db.refresh(target)
    logger.info(f"Target {target_id} updated by {current_user.email}")
    return TargetResponse.model_validate(target)


@router.delete("/{target_id}", response_model=MessageResponse)
async def delete_target(
    target_id: int,
    current_user: User = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    **Required Permission:** super admin
    """
    target = await _get_target_or_404(db, target_id)
    await db.delete(target)
    await db.commit()
    logger.info(f"Target {target_id} deleted by {current_user.email}")
    return MessageResponse(message="Target deleted successfully")
