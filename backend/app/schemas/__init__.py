"""Pydantic schemas for request/response validation."""

from pydantic import BaseModel, EmailStr, Field, ConfigDict
from typing import Optional, List, Dict, Any, Literal
from datetime import datetime

Role = Literal["super_admin", "sales_manager", "sales_agent"]
TeamName = Literal["Sales Titans", "Revenue Rangers"]


# Authentication Schemas
class LoginRequest(BaseModel):
    """Login request with email and password."""
    email: EmailStr
    password: str = Field(..., min_length=6)


class TokenResponse(BaseModel):
    """JWT token response."""
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: "UserResponse"


class VerificationRequest(BaseModel):
    email: EmailStr


class VerifyCodeRequest(BaseModel):
    email: EmailStr
    code: str = Field(..., pattern=r"^\d{6}$")


class PasswordResetRequest(BaseModel):
    email: EmailStr


class PasswordResetConfirm(BaseModel):
    email: EmailStr
    code: str = Field(..., pattern=r"^\d{6}$")
    new_password: str = Field(..., min_length=6)


class AdminPasswordReset(BaseModel):
    new_password: str = Field(..., min_length=6)


# User Schemas
class UserCreate(BaseModel):
    """Create new user request."""
    email: EmailStr
    password: str = Field(..., min_length=6)
    employee_name: str = Field(..., min_length=2, max_length=255)
    employee_code: str = Field(..., min_length=2, max_length=64)
    role: Role = "sales_agent"
    manager_id: Optional[str] = None
    team_name: Optional[TeamName] = None


class UserResponse(BaseModel):
    """User information response."""
    id: str
    email: str
    employee_name: str
    employee_code: str
    role: str
    manager_id: Optional[str]
    team_name: Optional[str]
    is_active: bool
    email_verified: bool
    last_login: Optional[datetime]
    created_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)


class UserRoleUpdate(BaseModel):
    role: Role
    manager_id: Optional[str] = None


class UserStatusUpdate(BaseModel):
    is_active: bool


class UserDetailsUpdate(BaseModel):
    employee_name: Optional[str] = Field(None, min_length=2, max_length=255)
    email: Optional[EmailStr] = None
    team_name: Optional[TeamName] = None


class AssignmentUser(BaseModel):
    """Entry in the lead assignee picker."""
    id: str
    employee_name: str
    email: str
    role: str
    is_self: bool = False


class PermissionsResponse(BaseModel):
    role: str
    permissions: List[str]


class MessageResponse(BaseModel):
    message: str


# Error Response
class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str
    message: str
    details: Optional[Dict[str, Any]] = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)


TokenResponse.model_rebuild()

from app.schemas.lead import (
    LeadCreate,
    LeadUpdate,
    LeadResponse,
    InteractionCreate,
    InteractionUpdate,
    InteractionResponse,
    RecentActivity,
    ActivityStats,
    TeamActivityReportEntry,
)

from app.schemas.customer import (
    CustomerCreate,
    CustomerUpdate,
    CustomerResponse,
    DailyRevenueCreate,
    DailyRevenueUpdate,
    DailyRevenueResponse,
    ImportResult,
    RevenueImportSummary,
    RevenueImportResult,
    LeadConversionRequest,
)

from app.schemas.target import (
    TargetCreate,
    TargetUpdate,
    TargetResponse,
    TargetProgress,
)

from app.schemas.calendar import (
    CalendarEventCreate,
    CalendarEventUpdate,
    CalendarEventResponse,
    CalendarDay,
    CalendarMonth,
)

from app.schemas.notification import (
    NotificationResponse,
    UnreadCountResponse,
)
