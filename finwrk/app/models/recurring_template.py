"""Recurring invoice template: a client billing plan that spawns invoices on a cycle."""

import enum
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Enum, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship

from finwrk.app.db.base_class import Base
from finwrk.app.models.invoice import InvoiceStatus, _enum_values


class BillingCycle(str, enum.Enum):
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"
    CUSTOM = "custom"


class RecurringTemplate(Base):
    __tablename__ = "recurring_templates"

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False, index=True)

    description = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)
    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(10), nullable=False, default="USD")

    billing_cycle = Column(
        Enum(BillingCycle, native_enum=False, length=20, values_callable=_enum_values),
        nullable=False,
    )
    custom_cycle_days = Column(Integer, nullable=True)
    # next_run_date is always anchor_date advanced by cycles_generated cycles
    anchor_date = Column(DateTime(timezone=True), nullable=False)
    next_run_date = Column(DateTime(timezone=True), nullable=False, index=True)
    cycles_generated = Column(Integer, nullable=False, default=0)
    end_date = Column(DateTime(timezone=True), nullable=True)

    generated_status = Column(
        Enum(InvoiceStatus, native_enum=False, length=20, values_callable=_enum_values),
        nullable=False,
        default=InvoiceStatus.DRAFT,
    )
    due_days = Column(Integer, nullable=False, default=30)

    active = Column(Boolean, nullable=False, default=True, index=True)
    last_generated_at = Column(DateTime(timezone=True), nullable=True)
    last_error = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc), nullable=False)

    owner = relationship("User", back_populates="recurring_templates")
    client = relationship("Client", back_populates="recurring_templates")
    invoices = relationship("Invoice", back_populates="recurring_template")
