"""Notification schemas."""

from pydantic import BaseModel, ConfigDict
from typing import Optional
from datetime import datetime


class NotificationResponse(BaseModel):
    id: int
    user_id: Optional[str]
    type: str
    title: str
    message: str
    read: bool
    created_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)


class UnreadCountResponse(BaseModel):
    count: int
