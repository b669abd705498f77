"""Billing schemas."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.core.enums import PaymentMethodEnum


class PaymentCreate(BaseModel):
    """Create payment request."""

    series_id: UUID | None = None
    amount: Decimal = Field(gt=0)
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    payment_date: date
    lessons_count: int = Field(default=0, ge=0, le=366)
    method: PaymentMethodEnum
    description: str | None = Field(default=None, max_length=512)
    notes: str | None = None

    @field_validator("currency")
    @classmethod
    def normalize_currency(cls, value: str | None) -> str | None:
        return value.upper() if value is not None else None


class PaymentRead(BaseModel):
    """Payment response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    series_id: UUID | None
    amount: Decimal
    currency: str
    payment_date: date
    lessons_count: int
    method: PaymentMethodEnum
    description: str | None
    notes: str | None
    created_at: datetime
    updated_at: datetime


class PaymentAllocationRead(BaseModel):
    """Created payment with the lesson dates it now covers."""

    payment: PaymentRead
    attributed_dates: list[date]
    warnings: list[str]
