# backend/app/services/csv_import.py
"""
CSV bulk import for leads, customers and daily revenue.

Each row is mapped onto the fields of the matching create schema (header
aliases are folded to canonical names), validated with that schema, and
persisted on its own. A bad row never stops the import; it is counted as
failed with a "Row N: ..." message, where N counts the header as row 1.
"""

import csv
import io
import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Type

from fastapi import BackgroundTasks
from pydantic import BaseModel, ValidationError
from sqlalchemy import select, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.errors import BusinessRuleError, CRMError
from app.models import Customer, DailyRevenue, Lead, User
from app.rbac import can_access_user
from app.schemas.customer import CustomerCreate, DailyRevenueCreate
from app.schemas.lead import LeadCreate
from app.services import analytics, email_service, lead_service
from app.services.notification_service import create_notification

logger = logging.getLogger(__name__)


# ============================================================================
# FIELD MAPPING
# ============================================================================

LEAD_ALIASES = {
    "contact_name": ["contact_name", "contactName", "name", "contact"],
    "email": ["email", "email_address"],
    "phone": ["phone", "phone_number", "mobile"],
    "company": ["company", "company_name"],
    "value": ["value", "deal_value", "amount"],
    "stage": ["stage"],
    "assigned_to": ["assigned_to", "assignedTo"],
    "lead_source": ["lead_source", "leadSource", "source"],
    "package_size": ["package_size", "packageSize"],
    "website": ["website", "url"],
    "facebook_page_url": ["facebook_page_url", "facebookPageUrl", "facebook"],
    "order_volume": ["order_volume", "orderVolume"],
    "notes": ["notes", "note"],
}

CUSTOMER_ALIASES = {
    "merchant_code": ["merchant_code", "merchantCode", "code"],
    "merchant_name": ["merchant_name", "merchantName", "company"],
    "rate_chart": ["rate_chart", "rateChart"],
    "contact_person": ["contact_person", "contactPerson", "contact_name", "contactName"],
    "phone_number": ["phone_number", "phoneNumber", "phone"],
    "assigned_agent": ["assigned_agent", "assignedAgent", "agent"],
    "lead_id": ["lead_id", "leadId"],
    "product_type": ["product_type", "productType"],
    "tags": ["tags"],
    "notes": ["notes", "note"],
}

REVENUE_ALIASES = {
    "assigned_user": ["assigned_user", "assignedUser", "user", "user_email", "employee_code"],
    "merchant_code": ["merchant_code", "merchantCode"],
    "date": ["date"],
    "revenue": ["revenue", "amount"],
    "orders": ["orders", "order_count"],
    "description": ["description", "notes"],
}

TEMPLATES = {
    "leads": (
        ["contact_name", "email", "phone", "company", "value", "stage", "lead_source",
         "package_size", "website", "facebook_page_url", "order_volume", "notes"],
        ["Rahim Uddin", "rahim@example.com", "01712345678", "Rahim Traders", "50000",
         "prospecting", "Referral", "Medium", "https://rahimtraders.example.com",
         "https://facebook.com/rahimtraders", "120", "Met at trade fair"],
    ),
    "customers": (
        ["merchant_code", "merchant_name", "rate_chart", "contact_person", "phone_number",
         "assigned_agent", "product_type", "tags", "notes"],
        ["MC1001", "Rahim Traders", "ISD", "Rahim Uddin", "01712345678",
         "", "Service", "retail,priority", ""],
    ),
    "revenue": (
        ["assigned_user", "merchant_code", "date", "revenue", "orders", "description"],
        ["agent@example.com", "MC1001", "2024-01-31", "15000", "12", "January settlement"],
    ),
}


def _fold(header: str) -> str:
    return re.sub(r"[^a-z0-9]", "", header.lower())


def build_header_map(headers: List[str], aliases: Dict[str, List[str]]) -> Dict[str, str]:
    """Map each recognised CSV header to its canonical field name."""
    lookup = {}
    for canonical, names in aliases.items():
        for name in names:
            lookup.setdefault(_fold(name), canonical)

    header_map = {}
    for header in headers:
        if header is None:
            continue
        canonical = lookup.get(_fold(header))
        if canonical and canonical not in header_map.values():
            header_map[header] = canonical
    return header_map


def parse_csv_file(file_content: bytes) -> Tuple[List[str], List[Dict[str, str]]]:
    """Parse CSV file and return headers and rows."""
    try:
        text_content = file_content.decode('utf-8-sig')
    except UnicodeDecodeError:
        text_content = file_content.decode('latin-1')

    csv_reader = csv.DictReader(io.StringIO(text_content))
    headers = [h.strip() for h in (csv_reader.fieldnames or []) if h is not None]
    rows = [
        {(k or "").strip(): v for k, v in row.items()}
        for row in csv_reader
    ]
    return headers, rows


def map_row(row: Dict[str, str], header_map: Dict[str, str]) -> Dict[str, str]:
    """Candidate record with blank cells dropped so schema defaults apply."""
    candidate = {}
    for header, canonical in header_map.items():
        value = row.get(header)
        if isinstance(value, str):
            value = value.strip()
        if value in (None, ""):
            continue
        candidate[canonical] = value
    return candidate


def format_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        field_name = ".".join(str(p) for p in err.get("loc", ())) or "row"
        message = err.get("msg", "invalid value")
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        parts.append(f"{field_name}: {message}")
    return "; ".join(parts)


def validate_row(schema: Type[BaseModel], candidate: Dict[str, str]) -> Tuple[Optional[BaseModel], Optional[str]]:
    try:
        return schema.model_validate(candidate), None
    except ValidationError as e:
        return None, format_validation_error(e)


def template_csv(entity: str) -> str:
    """Header row plus one example row for an import entity."""
    if entity not in TEMPLATES:
        raise BusinessRuleError(f"Unknown template: {entity}")
    headers, sample = TEMPLATES[entity]
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(headers)
    writer.writerow(sample)
    return buffer.getvalue()


# ============================================================================
# REPORTING
# ============================================================================

@dataclass
class ImportReport:
    """Row outcomes of one import. Error messages are capped; counts are not."""
    processed: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)
    max_errors: int = field(default_factory=lambda: settings.IMPORT_MAX_ERRORS)

    def ok(self):
        self.processed += 1

    def fail(self, row_number: int, message: str):
        self.failed += 1
        if len(self.errors) < self.max_errors:
            self.errors.append(f"Row {row_number}: {message}")

    def to_dict(self) -> dict:
        errors = list(self.errors)
        hidden = self.failed - len(errors)
        if hidden > 0:
            errors.append(f"... and {hidden} more errors")
        return {
            "success": True,
            "processed": self.processed,
            "failed": self.failed,
            "errors": errors,
        }


def _rows_with_numbers(rows):
    # Header is row 1
    return enumerate(rows, start=2)


async def _recover(db: AsyncSession, user: User):
    await db.rollback()
    await db.refresh(user)


# ============================================================================
# IMPORTERS
# ============================================================================

async def import_leads(db: AsyncSession, user: User, headers: List[str], rows: List[Dict[str, str]]) -> ImportReport:
    """Create one lead per row through the regular lead creation path."""
    report = ImportReport()
    header_map = build_header_map(headers, LEAD_ALIASES)

    for row_number, row in _rows_with_numbers(rows):
        data, error = validate_row(LeadCreate, map_row(row, header_map))
        if error:
            report.fail(row_number, error)
            continue

        try:
            await lead_service.create_lead(db, user, data)
            report.ok()
        except CRMError as e:
            report.fail(row_number, e.message)
        except IntegrityError as e:
            logger.warning(f"Lead import row {row_number} rejected by database: {e.orig}")
            await _recover(db, user)
            report.fail(row_number, "Lead conflicts with an existing record")

    logger.info(f"Lead import by {user.email}: {report.processed} processed, {report.failed} failed")
    return report


async def _find_user(db: AsyncSession, reference: str) -> Optional[User]:
    """Look a user up by id, email or employee code."""
    result = await db.execute(
        select(User).where(or_(
            User.id == reference,
            User.email == reference.lower(),
            User.email == reference,
            User.employee_code == reference,
        ))
    )
    return result.scalars().first()


async def import_customers(db: AsyncSession, user: User, headers: List[str], rows: List[Dict[str, str]]) -> ImportReport:
    report = ImportReport()
    header_map = build_header_map(headers, CUSTOMER_ALIASES)

    for row_number, row in _rows_with_numbers(rows):
        data, error = validate_row(CustomerCreate, map_row(row, header_map))
        if error:
            report.fail(row_number, error)
            continue

        existing = await db.execute(
            select(Customer.id).where(Customer.merchant_code == data.merchant_code)
        )
        if existing.first() is not None:
            report.fail(row_number, f"Merchant code {data.merchant_code} already exists")
            continue

        agent_id = user.id
        if data.assigned_agent:
            agent = await _find_user(db, data.assigned_agent)
            if agent is None or not agent.is_active:
                report.fail(row_number, f"User {data.assigned_agent} not found")
                continue
            if agent.id != user.id and not await can_access_user(db, user, agent.id):
                report.fail(row_number, f"You can't assign customers to {data.assigned_agent}")
                continue
            agent_id = agent.id

        if data.lead_id is not None:
            lead = await db.get(Lead, data.lead_id)
            if lead is None:
                report.fail(row_number, f"Lead {data.lead_id} not found")
                continue

        customer = Customer(
            **data.model_dump(exclude={"assigned_agent"}),
            assigned_agent=agent_id,
            created_by=user.id,
        )
        db.add(customer)
        try:
            await db.commit()
            report.ok()
        except IntegrityError as e:
            logger.warning(f"Customer import row {row_number} rejected by database: {e.orig}")
            await _recover(db, user)
            report.fail(row_number, f"Merchant code {data.merchant_code} already exists")

    logger.info(f"Customer import by {user.email}: {report.processed} processed, {report.failed} failed")
    return report


async def import_revenue(
    db: AsyncSession,
    user: User,
    headers: List[str],
    rows: List[Dict[str, str]],
    background_tasks: Optional[BackgroundTasks] = None,
) -> Tuple[ImportReport, dict]:
    """
    Record revenue rows against existing users and notify each of them.

    With background tasks, each earner gets a summary email and the uploader
    gets one for the whole file. Returns the report plus a summary of what
    was recorded.
    """
    report = ImportReport()
    header_map = build_header_map(headers, REVENUE_ALIASES)
    total_revenue = 0
    total_orders = 0
    affected_users = set()

    for row_number, row in _rows_with_numbers(rows):
        data, error = validate_row(DailyRevenueCreate, map_row(row, header_map))
        if error:
            report.fail(row_number, error)
            continue
        if not data.assigned_user:
            report.fail(row_number, "Missing required fields (assigned_user, merchant_code, revenue)")
            continue
        if data.revenue <= 0:
            report.fail(row_number, "revenue must be greater than 0")
            continue

        assignee = await _find_user(db, data.assigned_user)
        if assignee is None:
            report.fail(row_number, f"User {data.assigned_user} not found")
            continue

        values = data.model_dump(exclude={"assigned_user"}, exclude_none=True)
        entry = DailyRevenue(**values, assigned_user=assignee.id, created_by=user.id)
        db.add(entry)
        try:
            await db.commit()
        except IntegrityError as e:
            logger.warning(f"Revenue import row {row_number} rejected by database: {e.orig}")
            await _recover(db, user)
            report.fail(row_number, "Revenue entry could not be saved")
            continue

        report.ok()
        total_revenue += entry.revenue
        total_orders += entry.orders
        affected_users.add(assignee.id)

        await notify_revenue_added(db, entry, user, background_tasks)

    summary = {
        "total_revenue": total_revenue,
        "total_orders": total_orders,
        "affected_users": len(affected_users),
    }
    logger.info(
        f"Revenue import by {user.email}: {report.processed} processed, "
        f"{report.failed} failed, ৳{total_revenue} across {len(affected_users)} users"
    )
    if background_tasks is not None and report.processed > 0:
        background_tasks.add_task(
            email_service.send_bulk_upload_summary_email,
            user.email,
            user.employee_name,
            {**summary, "total_entries": len(rows), **report.to_dict()},
        )
    return report, summary


async def notify_revenue_added(
    db: AsyncSession,
    entry: DailyRevenue,
    recorded_by: User,
    background_tasks: Optional[BackgroundTasks] = None,
):
    """Notify the earner in-app and queue their revenue summary email."""
    await create_notification(
        db,
        user_id=entry.assigned_user,
        type="revenue_added",
        title="Daily Revenue Added",
        message=(
            f"Your daily revenue of ৳{entry.revenue:,} for {entry.orders} orders from merchant "
            f"{entry.merchant_code} has been recorded by {recorded_by.employee_name}."
        ),
    )
    if background_tasks is None:
        return

    earner = await db.get(User, entry.assigned_user)
    if earner is None:
        return
    month = await analytics.monthly_revenue_summary(db, earner.id)
    details = {
        "merchant_code": entry.merchant_code,
        "revenue": entry.revenue,
        "orders": entry.orders,
        "date": entry.date,
        "description": entry.description,
    }
    background_tasks.add_task(
        email_service.send_revenue_summary_email,
        earner.email, earner.employee_name, recorded_by.employee_name, details, month,
    )
