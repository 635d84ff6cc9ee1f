# backend/app/models.py
"""
SQLAlchemy ORM models for the sales CRM.

Relationships are kept one-way and minimal; cross-entity reads use explicit
joins in the routers and services. Foreign keys and check constraints carry
the data invariants (stage values, roles, orders >= 1).
"""

from sqlalchemy import (
    Column, String, Boolean, Integer, Text, DateTime, ForeignKey,
    CheckConstraint, Index
)
from datetime import datetime
import uuid

from app.database import Base


ROLES = ("super_admin", "sales_manager", "sales_agent")
TEAMS = ("Sales Titans", "Revenue Rangers")
LEAD_STAGES = (
    "prospecting",
    "qualification",
    "proposal",
    "negotiation",
    "closed_won",
    "closed_lost",
)
CLOSED_STAGES = ("closed_won", "closed_lost")
LEAD_SOURCES = ("Social Media", "Referral", "Ads", "Others")
INTERACTION_TYPES = ("call", "email", "meeting", "note")
EVENT_TYPES = ("meeting", "call", "task", "reminder")
EVENT_STATUSES = ("scheduled", "completed", "cancelled")
TARGET_TYPES = ("revenue", "leads", "deals", "orders", "arpo", "merchants")
TARGET_PERIODS = ("monthly", "quarterly", "annual")
RATE_CHARTS = ("ISD", "Pheripheri", "OSD")
NOTIFICATION_TYPES = (
    "target_assigned",
    "target_reminder",
    "lead_update",
    "lead_converted",
    "revenue_added",
)


def _in(column: str, values) -> str:
    quoted = ", ".join(f"'{v}'" for v in values)
    return f"{column} IN ({quoted})"


def _new_user_id() -> str:
    return str(uuid.uuid4())


# ============================================================================
# USER MODEL
# ============================================================================

class User(Base):
    """Employee account (super admin, sales manager or sales agent)."""
    __tablename__ = "users"

    id = Column(String(64), primary_key=True, default=_new_user_id)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    employee_name = Column(String(255), nullable=False)
    employee_code = Column(String(64), nullable=False, unique=True)
    role = Column(String(50), nullable=False, default="sales_agent")
    manager_id = Column(String(64), ForeignKey("users.id"), nullable=True, index=True)
    team_name = Column(String(100))
    is_active = Column(Boolean, nullable=False, default=True)

    # Email verification
    email_verified = Column(Boolean, nullable=False, default=False)
    verification_code = Column(String(6))
    code_expires_at = Column(DateTime)

    # Password reset
    password_reset_code = Column(String(6))
    password_reset_expires_at = Column(DateTime)

    last_login = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        CheckConstraint(_in("role", ROLES), name="chk_user_role"),
        CheckConstraint(_in("team_name", TEAMS), name="chk_user_team"),
    )

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', role='{self.role}')>"


# ============================================================================
# LEAD & ACTIVITY MODELS
# ============================================================================

class Lead(Base):
    """Prospect moving through the sales pipeline."""
    __tablename__ = "leads"

    id = Column(Integer, primary_key=True, autoincrement=True)
    contact_name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False)
    phone = Column(String(50), unique=True)
    company = Column(String(255), nullable=False)
    value = Column(Integer, nullable=False, default=0)
    stage = Column(String(50), nullable=False, default="prospecting", index=True)
    assigned_to = Column(String(64), ForeignKey("users.id"), index=True)
    created_by = Column(String(64), ForeignKey("users.id"), index=True)

    lead_source = Column(String(50), nullable=False, default="Others")
    package_size = Column(String(100))
    website = Column(String(500))
    facebook_page_url = Column(String(500))
    order_volume = Column(Integer)
    notes = Column(Text)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        CheckConstraint(_in("stage", LEAD_STAGES), name="chk_lead_stage"),
        CheckConstraint("value >= 0", name="chk_lead_value"),
    )

    @property
    def is_closed(self) -> bool:
        return self.stage in CLOSED_STAGES

    def __repr__(self):
        return f"<Lead(id={self.id}, contact='{self.contact_name}', stage='{self.stage}')>"


class Interaction(Base):
    """Completed activity (call, email, meeting, note) against a lead."""
    __tablename__ = "interactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    lead_id = Column(Integer, ForeignKey("leads.id"), index=True)
    user_id = Column(String(64), ForeignKey("users.id"), index=True)
    type = Column(String(20), nullable=False)
    description = Column(Text)
    completed_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        CheckConstraint(_in("type", INTERACTION_TYPES), name="chk_interaction_type"),
    )


class CalendarEvent(Base):
    """Scheduled (upcoming) plan for a user, optionally tied to a lead."""
    __tablename__ = "calendar_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(255), nullable=False)
    description = Column(Text)
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False)
    type = Column(String(20), nullable=False, default="meeting")
    lead_id = Column(Integer, ForeignKey("leads.id"), nullable=True)
    user_id = Column(String(64), ForeignKey("users.id"), nullable=False, index=True)
    location = Column(String(255))
    is_all_day = Column(Boolean, default=False)
    reminder_minutes = Column(Integer, default=15)
    status = Column(String(20), nullable=False, default="scheduled")
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        CheckConstraint(_in("type", EVENT_TYPES), name="chk_event_type"),
        CheckConstraint(_in("status", EVENT_STATUSES), name="chk_event_status"),
        CheckConstraint("end_date >= start_date", name="chk_event_range"),
        Index("ix_calendar_events_user_start", "user_id", "start_date"),
    )


# ============================================================================
# TARGET MODEL
# ============================================================================

class Target(Base):
    """Quota assigned to a user for a period."""
    __tablename__ = "targets"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), ForeignKey("users.id"), index=True)
    target_type = Column(String(20), nullable=False)
    target_value = Column(Integer, nullable=False)
    period = Column(String(20), nullable=False)
    description = Column(Text)
    order_target = Column(Integer)
    arpo_target = Column(Integer)
    merchants_acquisition = Column(Integer)
    start_date = Column(DateTime, default=datetime.utcnow)
    end_date = Column(DateTime)
    created_by = Column(String(64), ForeignKey("users.id"))
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        CheckConstraint(_in("target_type", TARGET_TYPES), name="chk_target_type"),
        CheckConstraint(_in("period", TARGET_PERIODS), name="chk_target_period"),
        CheckConstraint("target_value > 0", name="chk_target_value"),
    )


# ============================================================================
# CUSTOMER & REVENUE MODELS
# ============================================================================

class Customer(Base):
    """Merchant record, usually converted from a won lead."""
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    merchant_code = Column(String(64), nullable=False, unique=True)
    merchant_name = Column(String(255), nullable=False)
    rate_chart = Column(String(50), nullable=False)
    contact_person = Column(String(255), nullable=False)
    phone_number = Column(String(50), nullable=False)
    assigned_agent = Column(String(64), ForeignKey("users.id"), nullable=False, index=True)
    lead_id = Column(Integer, ForeignKey("leads.id"), nullable=True)
    product_type = Column(String(100))
    tags = Column(Text)
    notes = Column(Text)
    created_by = Column(String(64), ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        CheckConstraint(_in("rate_chart", RATE_CHARTS), name="chk_customer_rate_chart"),
    )

    @property
    def tag_list(self):
        if not self.tags:
            return []
        return [t.strip() for t in self.tags.split(",") if t.strip()]


class DailyRevenue(Base):
    """Revenue and order count earned by a user from a merchant on a day."""
    __tablename__ = "daily_revenue"

    id = Column(Integer, primary_key=True, autoincrement=True)
    assigned_user = Column(String(64), ForeignKey("users.id"), nullable=False, index=True)
    merchant_code = Column(String(64), nullable=False)
    date = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    revenue = Column(Integer, nullable=False)
    orders = Column(Integer, nullable=False, default=1)
    description = Column(Text)
    created_by = Column(String(64), ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("orders >= 1", name="chk_revenue_orders"),
        CheckConstraint("revenue >= 0", name="chk_revenue_amount"),
    )


# ============================================================================
# NOTIFICATION MODEL
# ============================================================================

class Notification(Base):
    """Message for a single user, created by server-side triggers."""
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), ForeignKey("users.id"), index=True)
    type = Column(String(50), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    __table_args__ = (
        CheckConstraint(_in("type", NOTIFICATION_TYPES), name="chk_notification_type"),
    )

    def to_payload(self) -> dict:
        """Serializable form pushed over the socket channel."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "read": self.read,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
