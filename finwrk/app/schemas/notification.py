"""Notification schemas."""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator

from finwrk.app.models.notification import NotificationPriority, NotificationType


class NotificationRead(BaseModel):
    id: int
    type: NotificationType
    title: str
    message: str
    priority: NotificationPriority
    event_type: Optional[str] = None
    link: Optional[str] = None
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: datetime

    @field_validator("read_at", "created_at", mode="before")
    @classmethod
    def ensure_timezone(cls, v):
        if isinstance(v, datetime) and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    model_config = ConfigDict(from_attributes=True)


class PendingToastRead(BaseModel):
    id: int
    type: NotificationType
    title: str
    message: str
    priority: NotificationPriority
    created_at: datetime

    @field_validator("created_at", mode="before")
    @classmethod
    def ensure_timezone(cls, v):
        if isinstance(v, datetime) and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    model_config = ConfigDict(from_attributes=True)


class UnreadCount(BaseModel):
    count: int
