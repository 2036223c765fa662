"""Recurring invoice template schemas."""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from finwrk.app.models.invoice import InvoiceStatus
from finwrk.app.models.recurring_template import BillingCycle


class RecurringTemplateCreate(BaseModel):
    client_id: int
    amount: Decimal = Field(gt=0)
    billing_cycle: BillingCycle
    custom_cycle_days: Optional[int] = Field(default=None, gt=0)
    start_date: datetime
    end_date: Optional[datetime] = None
    description: Optional[str] = None
    notes: Optional[str] = None
    currency: str = Field(default="USD", min_length=3, max_length=10)
    generated_status: InvoiceStatus = InvoiceStatus.DRAFT
    due_days: Optional[int] = Field(default=None, ge=0)


class RecurringTemplateUpdate(BaseModel):
    amount: Optional[Decimal] = Field(default=None, gt=0)
    billing_cycle: Optional[BillingCycle] = None
    custom_cycle_days: Optional[int] = Field(default=None, gt=0)
    end_date: Optional[datetime] = None
    description: Optional[str] = None
    notes: Optional[str] = None
    currency: Optional[str] = Field(default=None, min_length=3, max_length=10)
    generated_status: Optional[InvoiceStatus] = None
    due_days: Optional[int] = Field(default=None, ge=0)


class RecurringTemplateRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    owner_id: int
    client_id: int
    description: Optional[str] = None
    notes: Optional[str] = None
    amount: Decimal
    currency: str
    billing_cycle: BillingCycle
    custom_cycle_days: Optional[int] = None
    anchor_date: datetime
    next_run_date: datetime
    cycles_generated: int
    end_date: Optional[datetime] = None
    generated_status: InvoiceStatus
    due_days: int
    active: bool
    last_generated_at: Optional[datetime] = None
    last_error: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @field_validator(
        "anchor_date", "next_run_date", "end_date", "last_generated_at", "created_at", "updated_at", mode="before"
    )
    @classmethod
    def ensure_timezone(cls, v):
        if isinstance(v, datetime) and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v
