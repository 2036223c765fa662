"""Payment schemas."""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class PaymentBase(BaseModel):
    amount: Decimal = Field(gt=0)
    method: Optional[str] = None
    notes: Optional[str] = None
    received_at: Optional[datetime] = None


class PaymentCreate(PaymentBase):
    allow_overpayment: bool = False


class PaymentRead(PaymentBase):
    id: int
    owner_id: int
    invoice_id: int
    received_at: datetime
    created_at: datetime

    @field_validator("received_at", "created_at", mode="before")
    @classmethod
    def ensure_timezone(cls, v):
        if isinstance(v, datetime) and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    model_config = ConfigDict(from_attributes=True)
