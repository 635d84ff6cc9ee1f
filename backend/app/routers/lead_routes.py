"""
Lead routes: scoped listing, CRUD, stage changes and CSV export.

Visibility follows the caller's role: super admins see every lead, sales
managers see leads assigned to or created by their team, agents see the
leads assigned to them.
"""
from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, or_
from typing import Optional, List
from datetime import datetime
import csv
import io
import logging

from app.database import get_db
from app.models import Lead, User
from app.auth import get_current_user
from app.errors import CRMError
from app.rbac import (
    Permission, require_permission, accessible_user_ids,
    can_access_lead, lead_scope_filter,
)
from app.schemas import LeadCreate, LeadUpdate, LeadResponse, MessageResponse
from app.schemas.lead import LeadStage
from app.services import lead_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/leads", tags=["Leads"])

EXPORT_FIELDS = [
    "id", "contact_name", "email", "phone", "company", "value", "stage",
    "lead_source", "package_size", "website", "facebook_page_url",
    "order_volume", "assigned_to", "created_by", "notes", "created_at", "updated_at",
]


async def scoped_leads_query(db: AsyncSession, user: User):
    scope = await accessible_user_ids(db, user)
    query = select(Lead)
    condition = lead_scope_filter(user, scope)
    if condition is not None:
        query = query.where(condition)
    return query


async def get_accessible_lead(db: AsyncSession, user: User, lead_id: int) -> Lead:
    """Load a lead the caller may see, 404 if missing and 403 if out of scope."""
    lead = await db.get(Lead, lead_id)
    if not lead:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Lead not found")
    if not await can_access_lead(db, user, lead):
        logger.warning(f"Lead {lead_id} access denied for {user.email}")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    return lead


# ============================================================================
# LIST & EXPORT
# ============================================================================

@router.get("", response_model=List[LeadResponse])
async def list_leads(
    stage: Optional[LeadStage] = None,
    search: Optional[str] = None,
    assigned_to: Optional[str] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(500, ge=1, le=1000),
    current_user: User = Depends(require_permission(Permission.LEAD_VIEW)),
    db: AsyncSession = Depends(get_db)
):
    """
    Leads visible to the caller, newest first.

    **Required Permission:** lead:view
    """
    query = await scoped_leads_query(db, current_user)

    if stage:
        query = query.where(Lead.stage == stage)
    if assigned_to:
        query = query.where(Lead.assigned_to == assigned_to)
    if search:
        term = f"%{search}%"
        query = query.where(or_(
            Lead.contact_name.ilike(term),
            Lead.company.ilike(term),
            Lead.email.ilike(term),
            Lead.phone.ilike(term),
        ))

    query = query.order_by(Lead.created_at.desc(), Lead.id.desc()).offset(skip).limit(limit)
    result = await db.execute(query)
    return [LeadResponse.model_validate(lead) for lead in result.scalars().all()]


@router.get("/export")
async def export_leads(
    stage: Optional[LeadStage] = None,
    current_user: User = Depends(require_permission(Permission.LEAD_EXPORT)),
    db: AsyncSession = Depends(get_db)
):
    """
    Download visible leads as CSV.

    **Required Permission:** lead:export
    """
    query = await scoped_leads_query(db, current_user)
    if stage:
        query = query.where(Lead.stage == stage)
    result = await db.execute(query.order_by(Lead.id))
    leads = result.scalars().all()

    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(EXPORT_FIELDS)
    for lead in leads:
        row = []
        for field in EXPORT_FIELDS:
            value = getattr(lead, field)
            row.append(value.isoformat() if isinstance(value, datetime) else ("" if value is None else value))
        writer.writerow(row)

    logger.info(f"Exported {len(leads)} leads for {current_user.email}")
    filename = f"leads_{datetime.utcnow().strftime('%Y%m%d_%H%M%S')}.csv"
    return StreamingResponse(
        iter([buffer.getvalue()]),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"}
    )


# ============================================================================
# CRUD
# ============================================================================

@router.get("/{lead_id}", response_model=LeadResponse)
async def get_lead(
    lead_id: int,
    current_user: User = Depends(require_permission(Permission.LEAD_VIEW)),
    db: AsyncSession = Depends(get_db)
):
    """
    **Required Permission:** lead:view (and the lead must be in scope)
    """
    return LeadResponse.model_validate(await get_accessible_lead(db, current_user, lead_id))


@router.post("", response_model=LeadResponse, status_code=status.HTTP_201_CREATED)
async def create_lead(
    lead_data: LeadCreate,
    current_user: User = Depends(require_permission(Permission.LEAD_CREATE)),
    db: AsyncSession = Depends(get_db)
):
    """
    Create a lead. Leaving the assignee empty (or "myself") assigns it to the caller.

    **Required Permission:** lead:create, plus lead:assign to assign to someone else
    """
    try:
        lead = await lead_service.create_lead(db, current_user, lead_data)
    except CRMError as e:
        raise e.to_http()
    return LeadResponse.model_validate(lead)


@router.patch("/{lead_id}", response_model=LeadResponse)
async def update_lead(
    lead_id: int,
    update: LeadUpdate,
    current_user: User = Depends(require_permission(Permission.LEAD_EDIT)),
    db: AsyncSession = Depends(get_db)
):
    """
    Edit fields or move the lead to another stage.

    **Required Permission:** lead:edit (and the lead must be in scope)
    """
    lead = await get_accessible_lead(db, current_user, lead_id)
    try:
        lead = await lead_service.update_lead(db, current_user, lead, update)
    except CRMError as e:
        raise e.to_http()
    return LeadResponse.model_validate(lead)


@router.delete("/{lead_id}", response_model=MessageResponse)
async def delete_lead(
    lead_id: int,
    current_user: User = Depends(require_permission(Permission.LEAD_DELETE)),
    db: AsyncSession = Depends(get_db)
):
    """
    Delete a lead together with its activities and calendar events.

    **Required Permission:** lead:delete
    """
    lead = await get_accessible_lead(db, current_user, lead_id)
    await lead_service.delete_lead(db, lead)
    logger.info(f"Lead {lead_id} deleted by {current_user.email}")
    return MessageResponse(message="Lead deleted successfully")
