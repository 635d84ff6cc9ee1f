"""Target schemas."""

from pydantic import BaseModel, Field, ConfigDict, model_validator
from typing import Optional, Literal
from datetime import datetime

TargetType = Literal["revenue", "leads", "deals", "orders", "arpo", "merchants"]
TargetPeriod = Literal["monthly", "quarterly", "annual"]


class TargetCreate(BaseModel):
    """Assign a quota to a user."""
    user_id: Optional[str] = None
    target_type: TargetType
    target_value: int = Field(..., gt=0)
    period: TargetPeriod
    description: Optional[str] = None
    order_target: Optional[int] = Field(None, ge=0)
    arpo_target: Optional[int] = Field(None, ge=0)
    merchants_acquisition: Optional[int] = Field(None, ge=0)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    @model_validator(mode="after")
    def check_range(self):
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class TargetUpdate(BaseModel):
    user_id: Optional[str] = None
    target_type: Optional[TargetType] = None
    target_value: Optional[int] = Field(None, gt=0)
    period: Optional[TargetPeriod] = None
    description: Optional[str] = None
    order_target: Optional[int] = Field(None, ge=0)
    arpo_target: Optional[int] = Field(None, ge=0)
    merchants_acquisition: Optional[int] = Field(None, ge=0)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class TargetResponse(BaseModel):
    id: int
    user_id: Optional[str]
    target_type: str
    target_value: int
    period: str
    description: Optional[str]
    order_target: Optional[int]
    arpo_target: Optional[int]
    merchants_acquisition: Optional[int]
    start_date: Optional[datetime]
    end_date: Optional[datetime]
    created_by: Optional[str]
    created_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)


class TargetProgress(TargetResponse):
    """Target with achievement against closed-won lead value."""
    achieved: int
    percentage: float
    remaining: int
