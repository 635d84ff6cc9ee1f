"""Activity (interaction) routes."""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from typing import List, Optional
from datetime import datetime
import logging

from app.database import get_db
from app.models import Interaction, User
from app.rbac import (
    Permission, require_permission, require_manager_or_admin,
    accessible_user_ids, can_access_user,
)
from app.routers.lead_routes import get_accessible_lead
from app.schemas import (
    InteractionCreate, InteractionUpdate, InteractionResponse,
    ActivityStats, TeamActivityReportEntry,
)
from app.services import analytics

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/interactions", tags=["Activities"])


@router.get("", response_model=List[InteractionResponse])
async def list_interactions(
    lead_id: Optional[int] = None,
    current_user: User = Depends(require_permission(Permission.ACTIVITY_VIEW)),
    db: AsyncSession = Depends(get_db)
):
    """
    Activities for one lead, or every activity logged by users in the caller's scope.

    **Required Permission:** activity:view
    """
    query = select(Interaction)
    if lead_id is not None:
        await get_accessible_lead(db, current_user, lead_id)
        query = query.where(Interaction.lead_id == lead_id)
    else:
        scope = await accessible_user_ids(db, current_user)
        if scope is not None:
            query = query.where(Interaction.user_id.in_(scope))

    result = await db.execute(query.order_by(Interaction.created_at.desc(), Interaction.id.desc()))
    return [InteractionResponse.model_validate(i) for i in result.scalars().all()]


@router.get("/team-report", response_model=List[TeamActivityReportEntry])
async def team_activity_report(
    current_user: User = Depends(require_manager_or_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Per-user activity counts, recent activities and lead totals.

    **Required Permission:** super admin or sales manager
    """
    scope = await accessible_user_ids(db, current_user)
    return await analytics.team_activity_report(db, scope)


@router.get("/user/{user_id}", response_model=List[InteractionResponse])
async def list_user_interactions(
    user_id: str,
    current_user: User = Depends(require_permission(Permission.ACTIVITY_VIEW)),
    db: AsyncSession = Depends(get_db)
):
    if not await can_access_user(db, current_user, user_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")

    result = await db.execute(
        select(Interaction)
        .where(Interaction.user_id == user_id)
        .order_by(Interaction.created_at.desc(), Interaction.id.desc())
    )
    return [InteractionResponse.model_validate(i) for i in result.scalars().all()]


@router.get("/user/{user_id}/stats", response_model=ActivityStats)
async def user_activity_stats(
    user_id: str,
    current_user: User = Depends(require_permission(Permission.ACTIVITY_VIEW)),
    db: AsyncSession = Depends(get_db)
):
    if not await can_access_user(db, current_user, user_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    return await analytics.user_activity_stats(db, user_id)


@router.post("", response_model=InteractionResponse, status_code=status.HTTP_201_CREATED)
async def create_interaction(
    data: InteractionCreate,
    current_user: User = Depends(require_permission(Permission.ACTIVITY_CREATE)),
    db: AsyncSession = Depends(get_db)
):
    """
    Log a completed activity, optionally against a lead the caller can see.

    **Required Permission:** activity:create
    """
    if data.lead_id is not None:
        await get_accessible_lead(db, current_user, data.lead_id)

    interaction = Interaction(
        **data.model_dump(exclude={"completed_at"}),
        completed_at=data.completed_at or datetime.utcnow(),
        user_id=current_user.id,
    )
    db.add(interaction)
    await db.commit()
    await db.refresh(interaction)

    logger.info(f"{interaction.type} logged by {current_user.email} on lead {interaction.lead_id}")
    return InteractionResponse.model_validate(interaction)


@router.patch("/{interaction_id}", response_model=InteractionResponse)
async def update_interaction(
    interaction_id: int,
    update: InteractionUpdate,
    current_user: User = Depends(require_permission(Permission.ACTIVITY_EDIT)),
    db: AsyncSession = Depends(get_db)
):
    """
    **Required Permission:** activity:edit (own activity, or one logged by someone in scope)
    """
    interaction = await db.get(Interaction, interaction_id)
    if not interaction:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Activity not found")

    if interaction.user_id != current_user.id and not await can_access_user(db, current_user, interaction.user_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")

    for field, value in update.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(interaction, field, value)

    await db.commit()
    await db.refresh(interaction)
    return InteractionResponse.model_validate(interaction)
