"""Analytics API endpoints for dashboard metrics with RBAC."""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from typing import List, Optional, Dict, Any
from pydantic import BaseModel
import logging

from app.database import get_db
from app.auth import get_current_user
from app.models import Lead, User, LEAD_STAGES
from app.rbac import (
    Permission, require_permission, has_permission, can_view_analytics,
    is_super_admin, accessible_user_ids, can_access_user, lead_scope_filter,
)
from app.services import analytics

logger = logging.getLogger(__name__)
router = APIRouter()


class SalesMetrics(BaseModel):
    total_revenue: int
    active_leads: int
    closed_won_leads: int
    total_leads: int
    conversion_rate: float


class TeamPerformanceEntry(BaseModel):
    user: Dict[str, Any]
    deals_count: int
    revenue: int
    target_progress: float


class PipelineStage(BaseModel):
    stage: str
    count: int
    value: int


@router.get("/sales-metrics", response_model=SalesMetrics)
async def get_sales_metrics(
    user_id: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Total revenue, active leads, closed-won count and conversion rate.

    Without `user_id` a super admin gets company-wide figures and everyone
    else gets their own.

    **Required Permission:** any analytics permission
    """
    if not can_view_analytics(current_user):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")

    if user_id:
        if not await can_access_user(db, current_user, user_id):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    elif not has_permission(current_user, Permission.ANALYTICS_GLOBAL):
        user_id = current_user.id

    return await analytics.sales_metrics(db, user_id)


@router.get("/team-performance", response_model=List[TeamPerformanceEntry])
async def get_team_performance(
    current_user: User = Depends(require_permission(Permission.ANALYTICS_TEAM)),
    db: AsyncSession = Depends(get_db)
):
    """
    Deals closed, won value and monthly target progress per user.

    **Required Permission:** analytics:team
    """
    scope = await accessible_user_ids(db, current_user)
    return await analytics.team_performance(db, scope)


@router.get("/pipeline", response_model=List[PipelineStage])
async def get_pipeline_summary(
    current_user: User = Depends(require_permission(Permission.PIPELINE_VIEW)),
    db: AsyncSession = Depends(get_db)
):
    """
    Lead count and total value per stage for the leads the caller can see.

    **Required Permission:** pipeline:view
    """
    query = select(Lead.stage, func.count(Lead.id), func.coalesce(func.sum(Lead.value), 0)).group_by(Lead.stage)
    if not is_super_admin(current_user):
        scope = await accessible_user_ids(db, current_user)
        query = query.where(lead_scope_filter(current_user, scope))

    result = await db.execute(query)
    totals = {stage: (count, value) for stage, count, value in result.all()}
    return [
        PipelineStage(stage=stage, count=totals.get(stage, (0, 0))[0], value=int(totals.get(stage, (0, 0))[1]))
        for stage in LEAD_STAGES
    ]
