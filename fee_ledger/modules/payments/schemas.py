"""Pydantic schemas for installment payments and payment methods."""

from datetime import date, datetime
from decimal import Decimal

from pydantic import Field, field_validator

from fee_ledger.shared.schemas.base import BaseSchema


# --- Payment Method Schemas ---


class PaymentMethodCreate(BaseSchema):
    name: str = Field(..., min_length=1, max_length=50)
    display_name: str | None = Field(None, max_length=100)

    @field_validator("name")
    @classmethod
    def normalize_name(cls, v: str) -> str:
        return v.strip().lower()


class PaymentMethodResponse(BaseSchema):
    id: int
    name: str
    display_name: str
    is_active: bool


# --- Payment Schemas ---


class FeePaymentCreate(BaseSchema):
    """Schema for recording a payment against an installment."""

    fee_installment_id: int
    amount: Decimal = Field(gt=0, description="Payment amount (must be positive)")
    payment_date: date
    payment_method_id: int | None = None
    notes: str | None = None


class FeePaymentUpdate(BaseSchema):
    """Editable fields of a payment. The owning installment cannot change."""

    amount: Decimal | None = Field(None, gt=0)
    payment_date: date | None = None
    payment_method_id: int | None = None
    notes: str | None = None


class FeePaymentResponse(BaseSchema):
    id: int
    fee_installment_id: int
    amount: Decimal
    payment_date: date
    payment_method_id: int | None
    notes: str | None
    created_by_id: int | None
    created_at: datetime
    updated_at: datetime
