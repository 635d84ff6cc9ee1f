"""Calendar event routes."""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_, or_
from typing import List, Optional
from datetime import datetime, date
import logging

from app.database import get_db
from app.models import CalendarEvent, Lead, User
from app.rbac import Permission, require_permission, has_permission, is_super_admin, can_access_user
from app.routers.lead_routes import get_accessible_lead
from app.schemas import (
    CalendarEventCreate, CalendarEventUpdate, CalendarEventResponse,
    CalendarMonth, MessageResponse,
)
from app.services.calendar_view import month_grid, month_bounds

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/calendar-events", tags=["Calendar"])


def _decorated_query():
    return (
        select(CalendarEvent, User.employee_name, User.email, Lead.contact_name)
        .outerjoin(User, User.id == CalendarEvent.user_id)
        .outerjoin(Lead, Lead.id == CalendarEvent.lead_id)
    )


def _to_response(row) -> CalendarEventResponse:
    event, user_name, user_email, lead_contact_name = row
    return CalendarEventResponse.model_validate(event).model_copy(update={
        "user_name": user_name,
        "user_email": user_email,
        "lead_contact_name": lead_contact_name,
    })


async def _resolve_calendar_owner(
    db: AsyncSession,
    current_user: User,
    user_id: Optional[str],
    include_all: bool,
) -> Optional[str]:
    """Whose events to show: None means everyone (super admin only)."""
    if include_all:
        if not is_super_admin(current_user):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
        return None
    if user_id and user_id != current_user.id:
        if not await can_access_user(db, current_user, user_id):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
        return user_id
    return current_user.id


async def _load_events(db, owner_id, start=None, end=None) -> List[CalendarEventResponse]:
    query = _decorated_query()
    if owner_id is not None:
        query = query.where(CalendarEvent.user_id == owner_id)
    if start is not None:
        query = query.where(or_(
            CalendarEvent.end_date > start,
            and_(CalendarEvent.end_date == CalendarEvent.start_date, CalendarEvent.start_date >= start),
        ))
    if end is not None:
        query = query.where(CalendarEvent.start_date < end)
    result = await db.execute(query.order_by(CalendarEvent.start_date))
    return [_to_response(row) for row in result.all()]


async def _get_owned_event(db: AsyncSession, current_user: User, event_id: int) -> CalendarEvent:
    event = await db.get(CalendarEvent, event_id)
    if not event:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Event not found")
    if event.user_id != current_user.id and not is_super_admin(current_user):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    return event


@router.get("", response_model=List[CalendarEventResponse])
async def list_events(
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    user_id: Optional[str] = None,
    include_all: bool = Query(False, alias="all"),
    current_user: User = Depends(require_permission(Permission.CALENDAR_VIEW)),
    db: AsyncSession = Depends(get_db)
):
    """
    The caller's events, optionally within [start, end).

    Super admins may pass `all=true`; managers may pass a team member's `user_id`.

    **Required Permission:** calendar:view
    """
    owner_id = await _resolve_calendar_owner(db, current_user, user_id, include_all)
    return await _load_events(db, owner_id, start, end)


@router.get("/month", response_model=CalendarMonth)
async def get_month(
    year: int = Query(..., ge=1970, le=9999),
    month: int = Query(..., ge=1, le=12),
    user_id: Optional[str] = None,
    include_all: bool = Query(False, alias="all"),
    current_user: User = Depends(require_permission(Permission.CALENDAR_VIEW)),
    db: AsyncSession = Depends(get_db)
):
    """
    Month view: Sunday-first weeks of seven cells, each day with its events.

    **Required Permission:** calendar:view
    """
    owner_id = await _resolve_calendar_owner(db, current_user, user_id, include_all)
    start, end = month_bounds(year, month)
    events = await _load_events(db, owner_id, start, end)
    return CalendarMonth(**month_grid(year, month, events, today=date.today()))


@router.post("", response_model=CalendarEventResponse, status_code=status.HTTP_201_CREATED)
async def create_event(
    data: CalendarEventCreate,
    current_user: User = Depends(require_permission(Permission.CALENDAR_CREATE)),
    db: AsyncSession = Depends(get_db)
):
    """
    Schedule an event for yourself, or for a user in scope.

    **Required Permission:** calendar:create, plus calendar:assign for someone else
    """
    owner_id = data.user_id or current_user.id
    if owner_id != current_user.id:
        if not has_permission(current_user, Permission.CALENDAR_ASSIGN) or not await can_access_user(db, current_user, owner_id):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You can't schedule events for this user"
            )
        if not await db.get(User, owner_id):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    if data.lead_id is not None:
        await get_accessible_lead(db, current_user, data.lead_id)

    event = CalendarEvent(**data.model_dump(exclude={"user_id"}), user_id=owner_id)
    db.add(event)
    await db.commit()

    logger.info(f"Event {event.id} '{event.title}' scheduled for {owner_id} by {current_user.email}")
    result = await db.execute(_decorated_query().where(CalendarEvent.id == event.id))
    return _to_response(result.one())


@router.patch("/{event_id}", response_model=CalendarEventResponse)
async def update_event(
    event_id: int,
    update: CalendarEventUpdate,
    current_user: User = Depends(require_permission(Permission.CALENDAR_EDIT)),
    db: AsyncSession = Depends(get_db)
):
    """
    **Required Permission:** calendar:edit (own events; super admins any)
    """
    event = await _get_owned_event(db, current_user, event_id)
    changes = update.model_dump(exclude_unset=True)

    start = changes.get("start_date") or event.start_date
    end = changes.get("end_date") or event.end_date
    if end < start:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="end_date must not be before start_date"
        )
    if changes.get("lead_id") is not None:
        await get_accessible_lead(db, current_user, changes["lead_id"])

    for field, value in changes.items():
        if value is None and field in ("title", "start_date", "end_date", "type", "status"):
            continue
        setattr(event, field, value)

    await db.commit()
    result = await db.execute(_decorated_query().where(CalendarEvent.id == event_id))
    return _to_response(result.one())


@router.delete("/{event_id}", response_model=MessageResponse)
async def delete_event(
    event_id: int,
    current_user: User = Depends(require_permission(Permission.CALENDAR_EDIT)),
    db: AsyncSession = Depends(get_db)
):
    """
    **Required Permission:** calendar:edit (own events; super admins any)
    """
    event = await _get_owned_event(db, current_user, event_id)
    await db.delete(event)
    await db.commit()
    logger.info(f"Event {event_id} deleted by {current_user.email}")
    return MessageResponse(message="Event deleted successfully")
