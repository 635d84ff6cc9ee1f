"""Daily revenue routes."""

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from typing import List, Optional
from datetime import datetime
import logging

from app.database import get_db
from app.auth import get_current_user
from app.models import DailyRevenue, User
from app.rbac import UserRole, accessible_user_ids, can_access_user
from app.schemas import DailyRevenueCreate, DailyRevenueUpdate, DailyRevenueResponse, MessageResponse
from app.services.csv_import import notify_revenue_added

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/daily-revenue", tags=["Revenue"])


async def _get_editable_entry(db: AsyncSession, user: User, entry_id: int) -> DailyRevenue:
    entry = await db.get(DailyRevenue, entry_id)
    if not entry:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Revenue entry not found")
    if not await can_access_user(db, user, entry.assigned_user):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    return entry


@router.get("", response_model=List[DailyRevenueResponse])
async def list_revenue(
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    user_id: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Revenue entries in the caller's scope, optionally for one user and a date range.

    Agents always see only their own entries.
    """
    query = select(DailyRevenue)
    if current_user.role == UserRole.SALES_AGENT.value:
        query = query.where(DailyRevenue.assigned_user == current_user.id)
    elif user_id:
        if not await can_access_user(db, current_user, user_id):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
        query = query.where(DailyRevenue.assigned_user == user_id)
    else:
        scope = await accessible_user_ids(db, current_user)
        if scope is not None:
            query = query.where(DailyRevenue.assigned_user.in_(scope))

    if start_date:
        query = query.where(DailyRevenue.date >= start_date)
    if end_date:
        query = query.where(DailyRevenue.date <= end_date)

    result = await db.execute(query.order_by(DailyRevenue.date.desc(), DailyRevenue.id.desc()))
    return [DailyRevenueResponse.model_validate(r) for r in result.scalars().all()]


@router.post("", response_model=DailyRevenueResponse, status_code=status.HTTP_201_CREATED)
async def create_revenue(
    data: DailyRevenueCreate,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Record revenue for yourself, or for a user in scope. The earner is notified
    and emailed a summary of their month so far.
    """
    assignee_id = data.assigned_user or current_user.id
    if assignee_id != current_user.id:
        if not await can_access_user(db, current_user, assignee_id):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
        if not await db.get(User, assignee_id):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    values = data.model_dump(exclude={"assigned_user"}, exclude_none=True)
    entry = DailyRevenue(**values, assigned_user=assignee_id, created_by=current_user.id)
    db.add(entry)
    await db.commit()
    await db.refresh(entry)

    logger.info(f"Revenue ৳{entry.revenue} ({entry.orders} orders) recorded for {assignee_id} by {current_user.email}")
    await notify_revenue_added(db, entry, current_user, background_tasks)
    return DailyRevenueResponse.model_validate(entry)


@router.patch("/{entry_id}", response_model=DailyRevenueResponse)
async def update_revenue(
    entry_id: int,
    update: DailyRevenueUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    entry = await _get_editable_entry(db, current_user, entry_id)
    for field, value in update.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(entry, field, value)
    await db.commit()
    await db.refresh(entry)
    return DailyRevenueResponse.model_validate(entry)


@router.delete("/{entry_id}", response_model=MessageResponse)
async def delete_revenue(
    entry_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    entry = await _get_editable_entry(db, current_user, entry_id)
    await db.delete(entry)
    await db.commit()
    logger.info(f"Revenue entry {entry_id} deleted by {current_user.email}")
    return MessageResponse(message="Daily revenue entry deleted successfully")
