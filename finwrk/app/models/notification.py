"""Durable notifications and their short-lived toast staging entries."""

import enum
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from finwrk.app.db.base_class import Base
from finwrk.app.models.invoice import _enum_values


class NotificationType(str, enum.Enum):
    SUCCESS = "success"
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class NotificationPriority(str, enum.Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    type = Column(
        Enum(NotificationType, native_enum=False, length=20, values_callable=_enum_values),
        nullable=False,
        default=NotificationType.INFO,
    )
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    priority = Column(
        Enum(NotificationPriority, native_enum=False, length=20, values_callable=_enum_values),
        nullable=False,
        default=NotificationPriority.NORMAL,
    )
    event_type = Column(String(64), nullable=True)
    link = Column(String(512), nullable=True)
    is_read = Column(Boolean, nullable=False, default=False, index=True)
    read_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    user = relationship("User", back_populates="notifications")


class NotificationToast(Base):
    __tablename__ = "notification_toasts"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    notification_id = Column(Integer, ForeignKey("notifications.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    expires_at = Column(DateTime(timezone=True), nullable=False)

    notification = relationship("Notification")
