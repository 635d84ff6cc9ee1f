# backend/app/services/lead_service.py
"""
Lead lifecycle: creation with assignment rules, edits, deletion and
conversion of won leads into customers.

Functions raise CRMError subclasses; routers translate them to HTTP errors.
The CSV importer goes through the same create path so a row is held to the
same rules as a form submission.
"""

import logging
from typing import List, Optional

from sqlalchemy import select, delete, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import BusinessRuleError, ConflictError, ScopeError
from app.models import Lead, User, Interaction, CalendarEvent, Customer
from app.rbac import Permission, UserRole, has_permission
from app.schemas.lead import LeadCreate, LeadUpdate
from app.schemas.customer import LeadConversionRequest
from app.services.notification_service import create_notification

logger = logging.getLogger(__name__)

SELF_ASSIGNMENT = {"", "myself", "me", "self"}


# ============================================================================
# ASSIGNMENT
# ============================================================================

async def assignment_candidates(db: AsyncSession, user: User) -> List[User]:
    """
    Users the caller may assign a lead to, caller first.

    Super admins pick from all active users, managers from their active team,
    agents only themselves.
    """
    if user.role == UserRole.SUPER_ADMIN.value:
        query = select(User).where(User.is_active == True)  # noqa: E712
    elif user.role == UserRole.SALES_MANAGER.value:
        query = select(User).where(User.is_active == True, User.manager_id == user.id)  # noqa: E712
    else:
        return [user]

    result = await db.execute(query.order_by(User.employee_name))
    others = [u for u in result.scalars().all() if u.id != user.id]
    return [user, *others]


async def resolve_assignee(db: AsyncSession, user: User, requested: Optional[str]) -> str:
    """Turn an assignee choice into a user id, enforcing lead:assign and scope."""
    if requested is None or requested.strip().lower() in SELF_ASSIGNMENT or requested == user.id:
        return user.id

    if not has_permission(user, Permission.LEAD_ASSIGN):
        raise ScopeError("You don't have permission to assign leads to other users")

    assignee = await db.get(User, requested)
    if assignee is None or not assignee.is_active:
        raise BusinessRuleError("Assigned user must be an active user")

    candidates = await assignment_candidates(db, user)
    if requested not in {c.id for c in candidates}:
        raise ScopeError("Cannot assign lead to this user")
    return requested


async def ensure_phone_available(db: AsyncSession, phone: Optional[str], exclude_lead_id: Optional[int] = None):
    if not phone:
        return
    query = select(Lead.id).where(Lead.phone == phone)
    if exclude_lead_id is not None:
        query = query.where(Lead.id != exclude_lead_id)
    result = await db.execute(query)
    if result.first() is not None:
        raise ConflictError(f"A lead with phone number {phone} already exists")


async def _notify_assignment(db: AsyncSession, lead: Lead, assignee_id: str, actor: User):
    if not assignee_id or assignee_id == actor.id:
        return
    await create_notification(
        db,
        user_id=assignee_id,
        type="lead_update",
        title="New Lead Assigned",
        message=f"{actor.employee_name} assigned you the lead {lead.contact_name} ({lead.company})",
    )


# ============================================================================
# CRUD
# ============================================================================

async def create_lead(db: AsyncSession, user: User, data: LeadCreate) -> Lead:
    assignee_id = await resolve_assignee(db, user, data.assigned_to)
    await ensure_phone_available(db, data.phone)

    values = data.model_dump(exclude={"assigned_to"})
    lead = Lead(**values, assigned_to=assignee_id, created_by=user.id)
    db.add(lead)
    await db.commit()
    await db.refresh(lead)

    logger.info(f"Lead {lead.id} created by {user.email} (assigned to {assignee_id})")
    await _notify_assignment(db, lead, assignee_id, user)
    return lead


async def update_lead(db: AsyncSession, user: User, lead: Lead, data: LeadUpdate) -> Lead:
    """Apply the fields present in the payload."""
    changes = data.model_dump(exclude_unset=True)
    reassigned_to = None

    # A null assignee leaves the lead with its current owner
    requested = changes.pop("assigned_to", None)
    if requested is not None:
        new_assignee = await resolve_assignee(db, user, requested)
        if new_assignee != lead.assigned_to:
            reassigned_to = new_assignee
            lead.assigned_to = new_assignee

    if changes.get("phone"):
        await ensure_phone_available(db, changes["phone"], exclude_lead_id=lead.id)

    for field, value in changes.items():
        if field in ("contact_name", "email", "company", "value", "stage", "lead_source") and value is None:
            continue
        setattr(lead, field, value)

    await db.commit()
    await db.refresh(lead)

    logger.info(f"Lead {lead.id} updated by {user.email}: {sorted(changes)}")
    if reassigned_to:
        await _notify_assignment(db, lead, reassigned_to, user)
    return lead


async def delete_lead(db: AsyncSession, lead: Lead):
    """Delete a lead with its interactions and events; customers keep their row."""
    lead_id = lead.id
    await db.execute(delete(Interaction).where(Interaction.lead_id == lead_id))
    await db.execute(delete(CalendarEvent).where(CalendarEvent.lead_id == lead_id))
    await db.execute(update(Customer).where(Customer.lead_id == lead_id).values(lead_id=None))
    await db.delete(lead)
    await db.commit()
    logger.info(f"Lead {lead_id} deleted")


# ============================================================================
# CONVERSION
# ============================================================================

def merchant_code_for(lead_id: int) -> str:
    return f"MC{lead_id:04d}"


async def convert_lead(
    db: AsyncSession,
    user: User,
    lead: Lead,
    overrides: Optional[LeadConversionRequest] = None,
) -> Customer:
    """Create a customer from a won lead and congratulate the owner."""
    if lead.stage != "closed_won":
        raise BusinessRuleError("Only won leads can be converted to customers")

    merchant_code = merchant_code_for(lead.id)
    existing = await db.execute(select(Customer.id).where(Customer.merchant_code == merchant_code))
    if existing.first() is not None:
        raise ConflictError(f"Lead has already been converted (merchant code {merchant_code})")

    extra = overrides.model_dump(exclude_none=True) if overrides else {}
    phone_number = extra.get("phone_number") or lead.phone
    if not phone_number:
        raise BusinessRuleError("A phone number is required to convert this lead")

    customer = Customer(
        merchant_code=merchant_code,
        merchant_name=extra.get("merchant_name") or lead.company,
        rate_chart=extra.get("rate_chart") or "ISD",
        contact_person=extra.get("contact_person") or lead.contact_name,
        phone_number=phone_number,
        assigned_agent=lead.assigned_to or user.id,
        lead_id=lead.id,
        product_type=extra.get("product_type") or lead.package_size or "Service",
        tags=extra.get("tags"),
        notes=extra.get("notes") if "notes" in extra else lead.notes,
        created_by=user.id,
    )
    db.add(customer)
    await db.commit()
    await db.refresh(customer)

    logger.info(f"Lead {lead.id} converted to customer {merchant_code} by {user.email}")

    await create_notification(
        db,
        user_id=customer.assigned_agent,
        type="lead_converted",
        title="Congratulations! Lead Converted",
        message=f"{lead.contact_name} from {lead.company} is now customer {merchant_code}",
    )
    return customer
