"""Invoice schemas."""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from finwrk.app.models.invoice import InvoiceStatus


class InvoiceCreate(BaseModel):
    client_id: int
    invoice_number: str = Field(min_length=1, max_length=100)
    total_amount: Decimal = Field(ge=0)
    due_date: datetime
    issue_date: Optional[datetime] = None
    status: InvoiceStatus = InvoiceStatus.DRAFT
    currency: str = Field(default="USD", min_length=3, max_length=10)
    notes: Optional[str] = None


class InvoiceUpdate(BaseModel):
    status: Optional[InvoiceStatus] = None
    due_date: Optional[datetime] = None
    notes: Optional[str] = None


class InvoiceRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    owner_id: int
    client_id: int
    recurring_template_id: Optional[int] = None

    invoice_number: str
    status: InvoiceStatus
    currency: str
    total_amount: Decimal
    amount_paid: Decimal
    balance_due: Decimal
    notes: Optional[str] = None

    issue_date: datetime
    due_date: datetime

    created_at: datetime
    updated_at: datetime

    @field_validator("issue_date", "due_date", "created_at", "updated_at", mode="before")
    @classmethod
    def ensure_timezone(cls, v):
        if isinstance(v, datetime) and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v


class PaymentLinkRead(BaseModel):
    invoice_id: int
    payment_token: str
    url: str
