"""Reminder job schemas."""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from finwrk.app.models.reminder import ReminderCategory, ReminderPriority, ReminderStatus


class ReminderCreate(BaseModel):
    """Schema for a user-created reminder not derived from an invoice due date."""

    title: str = Field(min_length=1, max_length=255)
    fire_at: datetime
    description: Optional[str] = None
    category: ReminderCategory = ReminderCategory.PERSONAL
    priority: ReminderPriority = ReminderPriority.MEDIUM
    invoice_id: Optional[int] = None


class ReminderRead(BaseModel):
    """Schema for reading a reminder."""

    id: int
    owner_id: int
    invoice_id: Optional[int] = None
    title: str
    description: Optional[str] = None
    category: ReminderCategory
    priority: ReminderPriority
    status: ReminderStatus
    fire_at: datetime
    attempts: int
    last_error: Optional[str] = None
    sent_at: Optional[datetime] = None
    dismissed_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    created_at: datetime

    @field_validator("fire_at", "sent_at", "dismissed_at", "failed_at", "created_at", mode="before")
    @classmethod
    def ensure_timezone(cls, v):
        if isinstance(v, datetime) and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    model_config = ConfigDict(from_attributes=True)
