"""Invoice model for billing."""

import enum
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship

from finwrk.app.db.base_class import Base


class InvoiceStatus(str, enum.Enum):
    DRAFT = "draft"
    SENT = "sent"
    PAYMENT_SENT = "payment_sent"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"
    ARCHIVED = "archived"


INVOICE_TRANSITIONS: dict[InvoiceStatus, frozenset[InvoiceStatus]] = {
    InvoiceStatus.DRAFT: frozenset({InvoiceStatus.SENT, InvoiceStatus.CANCELLED, InvoiceStatus.ARCHIVED}),
    InvoiceStatus.SENT: frozenset(
        {
            InvoiceStatus.PAYMENT_SENT,
            InvoiceStatus.PAID,
            InvoiceStatus.OVERDUE,
            InvoiceStatus.CANCELLED,
            InvoiceStatus.ARCHIVED,
        }
    ),
    InvoiceStatus.PAYMENT_SENT: frozenset(
        {
            InvoiceStatus.SENT,
            InvoiceStatus.PAID,
            InvoiceStatus.OVERDUE,
            InvoiceStatus.CANCELLED,
            InvoiceStatus.ARCHIVED,
        }
    ),
    InvoiceStatus.OVERDUE: frozenset(
        {
            InvoiceStatus.SENT,
            InvoiceStatus.PAYMENT_SENT,
            InvoiceStatus.PAID,
            InvoiceStatus.CANCELLED,
            InvoiceStatus.ARCHIVED,
        }
    ),
    InvoiceStatus.PAID: frozenset({InvoiceStatus.ARCHIVED}),
    InvoiceStatus.CANCELLED: frozenset({InvoiceStatus.ARCHIVED}),
    InvoiceStatus.ARCHIVED: frozenset(),
}

# Statuses that accept payments and keep reminders alive
OPEN_INVOICE_STATUSES = frozenset({InvoiceStatus.SENT, InvoiceStatus.PAYMENT_SENT, InvoiceStatus.OVERDUE})
CLOSED_INVOICE_STATUSES = frozenset({InvoiceStatus.PAID, InvoiceStatus.CANCELLED, InvoiceStatus.ARCHIVED})


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class Invoice(Base):
    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False, index=True)
    recurring_template_id = Column(Integer, ForeignKey("recurring_templates.id"), nullable=True, index=True)

    invoice_number = Column(String(100), nullable=False, unique=True)
    status = Column(
        Enum(InvoiceStatus, native_enum=False, length=20, values_callable=_enum_values),
        default=InvoiceStatus.DRAFT,
        nullable=False,
        index=True,
    )
    currency = Column(String(10), nullable=False, default="USD")
    total_amount = Column(Numeric(10, 2), default=0.00, nullable=False)
    amount_paid = Column(Numeric(10, 2), default=0.00, nullable=False)
    balance_due = Column(Numeric(10, 2), default=0.00, nullable=False)
    notes = Column(Text, nullable=True)
    payment_token = Column(String(64), nullable=True, unique=True)

    issue_date = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    due_date = Column(DateTime(timezone=True), nullable=False)

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc), nullable=False)

    client = relationship("Client", back_populates="invoices")
    owner = relationship("User", back_populates="invoices")
    recurring_template = relationship("RecurringTemplate", back_populates="invoices")
    payments = relationship("Payment", back_populates="invoice", cascade="all, delete-orphan", order_by="Payment.id")
    reminders = relationship("Reminder", back_populates="invoice")
