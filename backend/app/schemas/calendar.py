"""Calendar event schemas."""

from pydantic import BaseModel, Field, ConfigDict, model_validator
from typing import Optional, List, Literal
from datetime import datetime, date

EventType = Literal["meeting", "call", "task", "reminder"]
EventStatus = Literal["scheduled", "completed", "cancelled"]


class CalendarEventCreate(BaseModel):
    """Schedule an event. user_id defaults to the caller."""
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    start_date: datetime
    end_date: datetime
    type: EventType = "meeting"
    lead_id: Optional[int] = None
    user_id: Optional[str] = None
    location: Optional[str] = None
    is_all_day: bool = False
    reminder_minutes: int = Field(15, ge=0)
    status: EventStatus = "scheduled"

    @model_validator(mode="after")
    def check_range(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class CalendarEventUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    type: Optional[EventType] = None
    lead_id: Optional[int] = None
    location: Optional[str] = None
    is_all_day: Optional[bool] = None
    reminder_minutes: Optional[int] = Field(None, ge=0)
    status: Optional[EventStatus] = None


class CalendarEventResponse(BaseModel):
    id: int
    title: str
    description: Optional[str]
    start_date: datetime
    end_date: datetime
    type: str
    lead_id: Optional[int]
    user_id: str
    location: Optional[str]
    is_all_day: Optional[bool]
    reminder_minutes: Optional[int]
    status: str
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    # Decorations from joined rows
    user_name: Optional[str] = None
    user_email: Optional[str] = None
    lead_contact_name: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class CalendarDay(BaseModel):
    date: date
    is_today: bool
    events: List[CalendarEventResponse]


class CalendarMonth(BaseModel):
    """Month grid, Sunday-first. Blank cells are None."""
    year: int
    month: int
    days_in_month: int
    first_weekday: int
    weeks: List[List[Optional[CalendarDay]]]
