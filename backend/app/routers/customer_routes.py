"""Customer routes, including conversion of won leads."""

from fastapi import APIRouter, Body, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, or_
from typing import List, Optional
import logging

from app.database import get_db
from app.auth import get_current_user
from app.errors import CRMError
from app.models import Customer, Lead, User
from app.rbac import require_super_admin, accessible_user_ids, can_access_user
from app.routers.lead_routes import get_accessible_lead
from app.schemas import (
    CustomerCreate, CustomerUpdate, CustomerResponse,
    LeadConversionRequest, MessageResponse,
)
from app.services import lead_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/customers", tags=["Customers"])


async def _get_accessible_customer(db: AsyncSession, user: User, customer_id: int) -> Customer:
    customer = await db.get(Customer, customer_id)
    if not customer:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Customer not found")
    if not await can_access_user(db, user, customer.assigned_agent):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    return customer


async def _check_agent(db: AsyncSession, user: User, agent_id: str):
    agent = await db.get(User, agent_id)
    if not agent or not agent.is_active:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Assigned agent must be an active user")
    if not await can_access_user(db, user, agent_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You can't assign customers to this user")


@router.get("", response_model=List[CustomerResponse])
async def list_customers(
    search: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Customers whose assigned agent is in the caller's scope."""
    query = select(Customer)
    scope = await accessible_user_ids(db, current_user)
    if scope is not None:
        query = query.where(Customer.assigned_agent.in_(scope))
    if search:
        term = f"%{search}%"
        query = query.where(or_(
            Customer.merchant_code.ilike(term),
            Customer.merchant_name.ilike(term),
            Customer.contact_person.ilike(term),
        ))

    result = await db.execute(query.order_by(Customer.created_at.desc(), Customer.id.desc()))
    return [CustomerResponse.model_validate(c) for c in result.scalars().all()]


@router.get("/{customer_id}", response_model=CustomerResponse)
async def get_customer(
    customer_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return CustomerResponse.model_validate(await _get_accessible_customer(db, current_user, customer_id))


@router.post("", response_model=CustomerResponse, status_code=status.HTTP_201_CREATED)
async def create_customer(
    data: CustomerCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Create a customer directly. The agent defaults to the caller."""
    agent_id = data.assigned_agent or current_user.id
    if agent_id != current_user.id:
        await _check_agent(db, current_user, agent_id)

    existing = await db.execute(select(Customer.id).where(Customer.merchant_code == data.merchant_code))
    if existing.first():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Merchant code {data.merchant_code} already exists"
        )

    if data.lead_id is not None and not await db.get(Lead, data.lead_id):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Lead not found")

    customer = Customer(
        **data.model_dump(exclude={"assigned_agent"}),
        assigned_agent=agent_id,
        created_by=current_user.id,
    )
    db.add(customer)
    await db.commit()
    await db.refresh(customer)

    logger.info(f"Customer {customer.merchant_code} created by {current_user.email}")
    return CustomerResponse.model_validate(customer)


@router.post("/convert/{lead_id}", response_model=CustomerResponse, status_code=status.HTTP_201_CREATED)
async def convert_lead(
    lead_id: int,
    overrides: Optional[LeadConversionRequest] = Body(None),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Turn a closed-won lead into a customer with merchant code MC + zero-padded lead id.

    The caller must be able to see the lead.
    """
    lead = await get_accessible_lead(db, current_user, lead_id)
    try:
        customer = await lead_service.convert_lead(db, current_user, lead, overrides)
    except CRMError as e:
        logger.warning(f"Conversion of lead {lead_id} rejected: {e.message}")
        raise e.to_http()
    return CustomerResponse.model_validate(customer)


@router.patch("/{customer_id}", response_model=CustomerResponse)
async def update_customer(
    customer_id: int,
    update: CustomerUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    customer = await _get_accessible_customer(db, current_user, customer_id)
    changes = update.model_dump(exclude_unset=True)

    if changes.get("assigned_agent") and changes["assigned_agent"] != customer.assigned_agent:
        await _check_agent(db, current_user, changes["assigned_agent"])

    for field, value in changes.items():
        if value is None and field in ("merchant_name", "rate_chart", "contact_person", "phone_number", "assigned_agent"):
            continue
        setattr(customer, field, value)

    await db.commit()
    await db.refresh(customer)
    logger.info(f"Customer {customer.merchant_code} updated by {current_user.email}")
    return CustomerResponse.model_validate(customer)


@router.delete("/{customer_id}", response_model=MessageResponse)
async def delete_customer(
    customer_id: int,
    current_user: User = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    **Required Permission:** super admin
    """
    customer = await db.get(Customer, customer_id)
    if not customer:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Customer not found")
    merchant_code = customer.merchant_code
    await db.delete(customer)
    await db.commit()
    logger.info(f"Customer {merchant_code} deleted by {current_user.email}")
    return MessageResponse(message="Customer deleted successfully")
