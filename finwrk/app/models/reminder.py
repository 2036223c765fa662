"""Reminder job model: a scheduled, fire-once unit of work."""

import enum
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.orm import relationship

from finwrk.app.db.base_class import Base
from finwrk.app.models.invoice import _enum_values


class ReminderStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SENT = "sent"
    DISMISSED = "dismissed"
    FAILED = "failed"


class ReminderCategory(str, enum.Enum):
    PAYMENT = "payment"
    MEETING = "meeting"
    DEADLINE = "deadline"
    PERSONAL = "personal"


class ReminderPriority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


REMINDER_TRANSITIONS: dict[ReminderStatus, frozenset[ReminderStatus]] = {
    ReminderStatus.PENDING: frozenset({ReminderStatus.PROCESSING, ReminderStatus.DISMISSED}),
    ReminderStatus.PROCESSING: frozenset(
        {ReminderStatus.SENT, ReminderStatus.PENDING, ReminderStatus.FAILED, ReminderStatus.DISMISSED}
    ),
    ReminderStatus.SENT: frozenset(),
    ReminderStatus.DISMISSED: frozenset(),
    ReminderStatus.FAILED: frozenset(),
}

ACTIVE_REMINDER_STATUSES = frozenset({ReminderStatus.PENDING, ReminderStatus.PROCESSING})

_ACTIVE_PREDICATE = text("status IN ('pending', 'processing') AND invoice_id IS NOT NULL")


class Reminder(Base):
    __tablename__ = "reminders"
    __table_args__ = (
        Index(
            "uq_reminders_active_invoice",
            "invoice_id",
            unique=True,
            sqlite_where=_ACTIVE_PREDICATE,
            postgresql_where=_ACTIVE_PREDICATE,
        ),
        Index("ix_reminders_status_available_at", "status", "available_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    invoice_id = Column(Integer, ForeignKey("invoices.id"), nullable=True)

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(
        Enum(ReminderCategory, native_enum=False, length=20, values_callable=_enum_values),
        nullable=False,
        default=ReminderCategory.PAYMENT,
    )
    priority = Column(
        Enum(ReminderPriority, native_enum=False, length=20, values_callable=_enum_values),
        nullable=False,
        default=ReminderPriority.MEDIUM,
    )
    status = Column(
        Enum(ReminderStatus, native_enum=False, length=20, values_callable=_enum_values),
        nullable=False,
        default=ReminderStatus.PENDING,
    )
    fire_at = Column(DateTime(timezone=True), nullable=False)
    # fire_at moves only with the due date; retries push available_at
    available_at = Column(DateTime(timezone=True), nullable=False)

    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    claim_token = Column(String(64), nullable=True)
    claimed_at = Column(DateTime(timezone=True), nullable=True)
    sent_at = Column(DateTime(timezone=True), nullable=True)
    dismissed_at = Column(DateTime(timezone=True), nullable=True)
    failed_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    owner = relationship("User", back_populates="reminders", foreign_keys=[owner_id])
    invoice = relationship("Invoice", back_populates="reminders")
