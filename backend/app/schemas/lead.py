"""Lead and interaction schemas."""

from pydantic import BaseModel, EmailStr, Field, ConfigDict, TypeAdapter, HttpUrl, field_validator
from typing import Optional, List, Literal
from datetime import datetime

LeadStage = Literal[
    "prospecting",
    "qualification",
    "proposal",
    "negotiation",
    "closed_won",
    "closed_lost",
]
LeadSource = Literal["Social Media", "Referral", "Ads", "Others"]
InteractionType = Literal["call", "email", "meeting", "note"]

_http_url = TypeAdapter(HttpUrl)


def _blank_to_none(value):
    if isinstance(value, str) and not value.strip():
        return None
    return value


def _check_url(value: Optional[str], message: str) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    try:
        _http_url.validate_python(value)
    except ValueError:
        raise ValueError(message)
    return value


# ============================================================================
# LEADS
# ============================================================================

class LeadCreate(BaseModel):
    """Create lead request. Also the per-row rule set for CSV lead imports."""
    contact_name: str = Field(..., min_length=2, max_length=255)
    email: EmailStr
    phone: Optional[str] = Field(None, min_length=10, max_length=50)
    company: str = Field(..., min_length=2, max_length=255)
    value: int = Field(..., ge=0)
    stage: LeadStage = "prospecting"
    assigned_to: Optional[str] = None
    lead_source: LeadSource = "Others"
    package_size: Optional[str] = None
    website: Optional[str] = None
    facebook_page_url: Optional[str] = None
    order_volume: Optional[int] = Field(None, ge=0)
    notes: Optional[str] = None

    @field_validator("phone", "assigned_to", "website", "facebook_page_url", "package_size", mode="before")
    @classmethod
    def empty_strings_are_missing(cls, v):
        return _blank_to_none(v)

    @field_validator("contact_name", "company", mode="before")
    @classmethod
    def strip_names(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("website")
    @classmethod
    def validate_website(cls, v):
        return _check_url(v, "Please enter a valid URL")

    @field_validator("facebook_page_url")
    @classmethod
    def validate_facebook_url(cls, v):
        return _check_url(v, "Please enter a valid Facebook URL")


class LeadUpdate(BaseModel):
    """Partial lead update; only fields present in the payload are applied."""
    contact_name: Optional[str] = Field(None, min_length=2, max_length=255)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, min_length=10, max_length=50)
    company: Optional[str] = Field(None, min_length=2, max_length=255)
    value: Optional[int] = Field(None, ge=0)
    stage: Optional[LeadStage] = None
    assigned_to: Optional[str] = None
    lead_source: Optional[LeadSource] = None
    package_size: Optional[str] = None
    website: Optional[str] = None
    facebook_page_url: Optional[str] = None
    order_volume: Optional[int] = Field(None, ge=0)
    notes: Optional[str] = None

    @field_validator("phone", "website", "facebook_page_url", mode="before")
    @classmethod
    def empty_strings_are_missing(cls, v):
        return _blank_to_none(v)

    @field_validator("website")
    @classmethod
    def validate_website(cls, v):
        return _check_url(v, "Please enter a valid URL")

    @field_validator("facebook_page_url")
    @classmethod
    def validate_facebook_url(cls, v):
        return _check_url(v, "Please enter a valid Facebook URL")


class LeadResponse(BaseModel):
    """Lead information response."""
    id: int
    contact_name: str
    email: str
    phone: Optional[str]
    company: str
    value: int
    stage: str
    assigned_to: Optional[str]
    created_by: Optional[str]
    lead_source: str
    package_size: Optional[str]
    website: Optional[str]
    facebook_page_url: Optional[str]
    order_volume: Optional[int]
    notes: Optional[str]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)


# ============================================================================
# INTERACTIONS
# ============================================================================

class InteractionCreate(BaseModel):
    """Log a completed activity."""
    lead_id: Optional[int] = None
    type: InteractionType
    description: Optional[str] = None
    completed_at: Optional[datetime] = None

    @field_validator("completed_at", mode="before")
    @classmethod
    def empty_date_is_missing(cls, v):
        return _blank_to_none(v)


class InteractionUpdate(BaseModel):
    type: Optional[InteractionType] = None
    description: Optional[str] = None
    completed_at: Optional[datetime] = None


class InteractionResponse(BaseModel):
    id: int
    lead_id: Optional[int]
    user_id: Optional[str]
    type: str
    description: Optional[str]
    completed_at: Optional[datetime]
    created_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)


class RecentActivity(InteractionResponse):
    lead_name: str = "Unknown Lead"


class ActivityStats(BaseModel):
    total_activities: int
    activities_by_type: dict
    recent_activities: List[RecentActivity]
    assigned_leads: int
    active_leads: int


class TeamActivityReportEntry(BaseModel):
    """One user's row in the team activity report."""
    user: dict
    stats: ActivityStats
