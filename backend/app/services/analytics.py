# backend/app/services/analytics.py
"""
Sales analytics: headline metrics, team performance, target progress and
activity reports.

The arithmetic lives in small pure functions so it can be tested without a
database; the async functions only gather rows and feed them through.
"""

import logging
from collections import Counter
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Set, Tuple

from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import (
    User, Lead, Interaction, Target, DailyRevenue,
    CLOSED_STAGES, INTERACTION_TYPES,
)

logger = logging.getLogger(__name__)

RECENT_ACTIVITY_LIMIT = 5


# ============================================================================
# PURE CALCULATIONS
# ============================================================================

def conversion_rate(total_leads: int, won_leads: int) -> float:
    """Won share of all leads as a percentage, rounded to 2 decimals."""
    if total_leads <= 0:
        return 0.0
    return round(won_leads / total_leads * 100, 2)


def summarize_leads(leads: Iterable[Lead], revenue_rows: Iterable[DailyRevenue]) -> Dict:
    leads = list(leads)
    won = sum(1 for lead in leads if lead.stage == "closed_won")
    active = sum(1 for lead in leads if lead.stage not in CLOSED_STAGES)
    return {
        "total_revenue": sum(r.revenue or 0 for r in revenue_rows),
        "active_leads": active,
        "closed_won_leads": won,
        "total_leads": len(leads),
        "conversion_rate": conversion_rate(len(leads), won),
    }


def progress(target_value: int, achieved: int) -> Tuple[float, int]:
    """(percentage capped at 100, remaining floored at 0)."""
    if target_value <= 0:
        return 0.0, 0
    percentage = min(achieved / target_value * 100, 100.0)
    remaining = max(target_value - achieved, 0)
    return round(percentage, 2), remaining


def revenue_target_lines(
    total_revenue: int,
    total_orders: int,
    revenue_target: Optional[int] = None,
    order_target: Optional[int] = None,
) -> List[str]:
    """Month-to-date progress lines for the revenue summary email. Percentages are not capped."""
    lines = []
    if revenue_target:
        percent = round(total_revenue / revenue_target * 100)
        lines.append(f"Revenue: ৳{total_revenue:,} / ৳{revenue_target:,} ({percent}%)")
    if order_target:
        percent = round(total_orders / order_target * 100)
        lines.append(f"Orders: {total_orders} / {order_target} ({percent}%)")
    return lines


def won_value_in_window(leads: Iterable[Lead], start: Optional[datetime], end: Optional[datetime]) -> int:
    """Sum of closed-won lead value whose last change falls inside [start, end]."""
    total = 0
    for lead in leads:
        if lead.stage != "closed_won":
            continue
        closed_at = lead.updated_at or lead.created_at
        if closed_at is None:
            continue
        if start and closed_at < start:
            continue
        if end and closed_at > end:
            continue
        total += lead.value or 0
    return total


def activity_stats(
    interactions: List[Interaction],
    assigned_leads: List[Lead],
    lead_names: Dict[int, str],
) -> Dict:
    """Counts by type, the most recent activities and lead totals for one user."""
    by_type = Counter(i.type for i in interactions)
    ordered = sorted(
        interactions,
        key=lambda i: i.completed_at or i.created_at or datetime.min,
        reverse=True,
    )
    recent = []
    for interaction in ordered[:RECENT_ACTIVITY_LIMIT]:
        recent.append({
            "id": interaction.id,
            "lead_id": interaction.lead_id,
            "user_id": interaction.user_id,
            "type": interaction.type,
            "description": interaction.description,
            "completed_at": interaction.completed_at,
            "created_at": interaction.created_at,
            "lead_name": lead_names.get(interaction.lead_id) or "Unknown Lead",
        })

    return {
        "total_activities": len(interactions),
        "activities_by_type": {t: by_type.get(t, 0) for t in INTERACTION_TYPES},
        "recent_activities": recent,
        "assigned_leads": len(assigned_leads),
        "active_leads": sum(1 for lead in assigned_leads if lead.stage not in CLOSED_STAGES),
    }


# ============================================================================
# QUERIES
# ============================================================================

async def _leads_for_user(db: AsyncSession, user_id: str) -> List[Lead]:
    result = await db.execute(
        select(Lead).where(or_(Lead.assigned_to == user_id, Lead.created_by == user_id))
    )
    return list(result.scalars().all())


async def sales_metrics(db: AsyncSession, user_id: Optional[str] = None) -> Dict:
    """Metrics for one user (leads assigned to or created by them) or, with no user, everyone."""
    if user_id:
        leads = await _leads_for_user(db, user_id)
        revenue_query = select(DailyRevenue).where(DailyRevenue.assigned_user == user_id)
    else:
        leads = list((await db.execute(select(Lead))).scalars().all())
        revenue_query = select(DailyRevenue)

    revenue_rows = (await db.execute(revenue_query)).scalars().all()
    return summarize_leads(leads, revenue_rows)


async def latest_target(db: AsyncSession, user_id: str, period: str = "monthly") -> Optional[Target]:
    result = await db.execute(
        select(Target)
        .where(Target.user_id == user_id, Target.period == period)
        .order_by(Target.created_at.desc(), Target.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def _latest_target_of_type(db: AsyncSession, user_id: str, target_type: str) -> Optional[Target]:
    result = await db.execute(
        select(Target)
        .where(Target.user_id == user_id, Target.target_type == target_type)
        .order_by(Target.created_at.desc(), Target.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def monthly_revenue_summary(db: AsyncSession, user_id: str, today: Optional[date] = None) -> Dict:
    """Calendar-month revenue, orders, revenue per order and target progress for one user."""
    today = today or datetime.utcnow().date()
    month_start = datetime(today.year, today.month, 1)
    if today.month == 12:
        month_end = datetime(today.year + 1, 1, 1)
    else:
        month_end = datetime(today.year, today.month + 1, 1)

    rows = (await db.execute(
        select(DailyRevenue).where(
            DailyRevenue.assigned_user == user_id,
            DailyRevenue.date >= month_start,
            DailyRevenue.date < month_end,
        )
    )).scalars().all()
    total_revenue = sum(r.revenue for r in rows)
    total_orders = sum(r.orders for r in rows)

    revenue_target = await _latest_target_of_type(db, user_id, "revenue")
    orders_target = await _latest_target_of_type(db, user_id, "orders")
    if orders_target:
        order_goal = orders_target.target_value
    else:
        order_goal = revenue_target.order_target if revenue_target else None

    return {
        "total_revenue": total_revenue,
        "total_orders": total_orders,
        "average_per_order": round(total_revenue / total_orders) if total_orders else 0,
        "target_lines": revenue_target_lines(
            total_revenue,
            total_orders,
            revenue_target.target_value if revenue_target else None,
            order_goal,
        ),
    }


async def team_performance(db: AsyncSession, user_ids: Optional[Set[str]] = None) -> List[Dict]:
    """Deals, won value and monthly target progress for every non-admin user in scope."""
    query = select(User).where(User.role != "super_admin").order_by(User.employee_name)
    if user_ids is not None:
        query = query.where(User.id.in_(user_ids))
    users = (await db.execute(query)).scalars().all()

    performance = []
    for user in users:
        won = (await db.execute(
            select(Lead).where(Lead.assigned_to == user.id, Lead.stage == "closed_won")
        )).scalars().all()
        revenue = sum(lead.value or 0 for lead in won)

        target = await latest_target(db, user.id)
        target_progress = round(revenue / target.target_value * 100, 2) if target else 0.0

        performance.append({
            "user": {
                "id": user.id,
                "employee_name": user.employee_name,
                "email": user.email,
                "role": user.role,
                "team_name": user.team_name,
            },
            "deals_count": len(won),
            "revenue": revenue,
            "target_progress": target_progress,
        })
    return performance


async def target_progress(db: AsyncSession, target: Target) -> Dict:
    """Achievement against a target from the user's closed-won leads in its window."""
    leads = []
    if target.user_id:
        leads = (await db.execute(
            select(Lead).where(Lead.assigned_to == target.user_id, Lead.stage == "closed_won")
        )).scalars().all()

    achieved = won_value_in_window(leads, target.start_date, target.end_date)
    percentage, remaining = progress(target.target_value, achieved)
    return {"achieved": achieved, "percentage": percentage, "remaining": remaining}


async def user_activity_stats(db: AsyncSession, user_id: str) -> Dict:
    interactions = (await db.execute(
        select(Interaction).where(Interaction.user_id == user_id)
    )).scalars().all()
    assigned = (await db.execute(
        select(Lead).where(Lead.assigned_to == user_id)
    )).scalars().all()

    lead_ids = {i.lead_id for i in interactions if i.lead_id is not None}
    lead_names = {}
    if lead_ids:
        rows = await db.execute(select(Lead.id, Lead.contact_name).where(Lead.id.in_(lead_ids)))
        lead_names = {lead_id: name for lead_id, name in rows.all()}

    return activity_stats(list(interactions), list(assigned), lead_names)


async def team_activity_report(db: AsyncSession, user_ids: Optional[Set[str]] = None) -> List[Dict]:
    """Per-user activity stats for every active user in scope."""
    query = select(User).where(User.is_active == True).order_by(User.employee_name)  # noqa: E712
    if user_ids is not None:
        query = query.where(User.id.in_(user_ids))
    users = (await db.execute(query)).scalars().all()

    report = []
    for user in users:
        stats = await user_activity_stats(db, user.id)
        report.append({
            "user": {
                "id": user.id,
                "employee_name": user.employee_name,
                "email": user.email,
                "role": user.role,
            },
            "stats": stats,
        })
    logger.info(f"Team activity report built for {len(report)} users")
    return report
