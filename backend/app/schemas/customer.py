"""Customer and daily revenue schemas."""

from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import Optional, List, Literal
from datetime import datetime


RateChart = Literal["ISD", "Pheripheri", "OSD"]


def _blank_to_none(value):
    if isinstance(value, str) and not value.strip():
        return None
    return value


# ============================================================================
# CUSTOMERS
# ============================================================================

class CustomerCreate(BaseModel):
    """Create customer request. Also the per-row rule set for CSV customer imports."""
    merchant_code: str = Field(..., min_length=2, max_length=64)
    merchant_name: str = Field(..., min_length=2, max_length=255)
    rate_chart: RateChart
    contact_person: str = Field(..., min_length=2, max_length=255)
    phone_number: str = Field(..., min_length=10, max_length=50)
    assigned_agent: Optional[str] = None
    lead_id: Optional[int] = None
    product_type: Optional[str] = None
    tags: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("merchant_code", "merchant_name", "contact_person", "phone_number", mode="before")
    @classmethod
    def strip_text(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("assigned_agent", "lead_id", "product_type", "tags", "notes", mode="before")
    @classmethod
    def empty_strings_are_missing(cls, v):
        return _blank_to_none(v)


class CustomerUpdate(BaseModel):
    merchant_name: Optional[str] = Field(None, min_length=2, max_length=255)
    rate_chart: Optional[RateChart] = None
    contact_person: Optional[str] = Field(None, min_length=2, max_length=255)
    phone_number: Optional[str] = Field(None, min_length=10, max_length=50)
    assigned_agent: Optional[str] = None
    product_type: Optional[str] = None
    tags: Optional[str] = None
    notes: Optional[str] = None


class CustomerResponse(BaseModel):
    id: int
    merchant_code: str
    merchant_name: str
    rate_chart: str
    contact_person: str
    phone_number: str
    assigned_agent: str
    lead_id: Optional[int]
    product_type: Optional[str]
    tags: Optional[str]
    notes: Optional[str]
    created_by: str
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)


# ============================================================================
# DAILY REVENUE
# ============================================================================

class DailyRevenueCreate(BaseModel):
    """Revenue entry request. Also the per-row rule set for CSV revenue imports."""
    assigned_user: Optional[str] = None
    merchant_code: str = Field(..., min_length=1, max_length=64)
    date: Optional[datetime] = None
    revenue: int = Field(..., ge=0)
    orders: int = Field(1, ge=1)
    description: Optional[str] = None

    @field_validator("assigned_user", "date", "description", mode="before")
    @classmethod
    def empty_strings_are_missing(cls, v):
        return _blank_to_none(v)

    @field_validator("merchant_code", mode="before")
    @classmethod
    def strip_code(cls, v):
        return v.strip() if isinstance(v, str) else v


class DailyRevenueUpdate(BaseModel):
    merchant_code: Optional[str] = Field(None, min_length=1, max_length=64)
    date: Optional[datetime] = None
    revenue: Optional[int] = Field(None, ge=0)
    orders: Optional[int] = Field(None, ge=1)
    description: Optional[str] = None


class DailyRevenueResponse(BaseModel):
    id: int
    assigned_user: str
    merchant_code: str
    date: datetime
    revenue: int
    orders: int
    description: Optional[str]
    created_by: str
    created_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)


# ============================================================================
# BULK IMPORT
# ============================================================================

class ImportResult(BaseModel):
    """Outcome of a CSV bulk upload."""
    success: bool = True
    processed: int
    failed: int
    errors: List[str] = []


class RevenueImportSummary(BaseModel):
    total_revenue: int
    total_orders: int
    affected_users: int


class RevenueImportResult(ImportResult):
    summary: RevenueImportSummary


class LeadConversionRequest(BaseModel):
    """Optional overrides when converting a won lead; lead fields fill the rest."""
    merchant_name: Optional[str] = Field(None, min_length=2, max_length=255)
    rate_chart: Optional[RateChart] = None
    contact_person: Optional[str] = Field(None, min_length=2, max_length=255)
    phone_number: Optional[str] = Field(None, min_length=10, max_length=50)
    product_type: Optional[str] = None
    tags: Optional[str] = None
    notes: Optional[str] = None
