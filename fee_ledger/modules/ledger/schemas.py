"""Pydantic schemas for the student ledger."""

from datetime import date, datetime
from decimal import Decimal

from pydantic import Field, field_validator

from fee_ledger.modules.ledger.models import TransactionType
from fee_ledger.shared.schemas.base import BaseSchema


class LedgerEntryCreate(BaseSchema):
    transaction_type: TransactionType
    amount: Decimal = Field(gt=0, description="Positive magnitude; the type decides the sign")
    transaction_date: date
    description: str | None = None
    reference_number: str | None = Field(None, max_length=100)
    payment_method: str | None = Field(None, max_length=50)

    @field_validator("payment_method")
    @classmethod
    def normalize_payment_method(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip().lower()
        return v or None


class LedgerEntryDelete(BaseSchema):
    reason: str = Field(..., description="Why the entry is removed; must not be blank")


class LedgerEntryResponse(BaseSchema):
    id: int
    enrollment_id: int
    transaction_type: TransactionType
    description: str | None
    amount: Decimal
    transaction_date: date
    balance_after: Decimal
    reference_number: str | None
    payment_method: str | None
    created_by_id: int | None
    created_at: datetime


class LedgerTotals(BaseSchema):
    """Per-type totals (positive magnitudes) over a set of entries."""

    total_fees: Decimal = Decimal("0.00")
    total_payments: Decimal = Decimal("0.00")
    total_discounts: Decimal = Decimal("0.00")
    total_refunds: Decimal = Decimal("0.00")
    total_adjustments: Decimal = Decimal("0.00")
    total_entries: int = 0


class LedgerSummary(LedgerTotals):
    current_balance: Decimal = Decimal("0.00")


class EnrollmentLedger(BaseSchema):
    enrollment_id: int
    start_date: date | None = None
    end_date: date | None = None
    entries: list[LedgerEntryResponse]
    summary: LedgerSummary


class EnrollmentLedgerSummary(LedgerSummary):
    enrollment_id: int


class LedgerSummaryRequest(BaseSchema):
    enrollment_ids: list[int] = Field(..., min_length=1, max_length=500)
    start_date: date | None = None
    end_date: date | None = None


class PaymentMethodLedger(BaseSchema):
    payment_method: str
    start_date: date | None = None
    end_date: date | None = None
    entries: list[LedgerEntryResponse]
    total_amount: Decimal
    total_entries: int


class LedgerDeletionResponse(BaseSchema):
    id: int
    ledger_entry_id: int
    enrollment_id: int
    transaction_type: TransactionType
    description: str | None
    amount: Decimal
    transaction_date: date
    reference_number: str | None
    payment_method: str | None
    balance_before: Decimal
    balance_after: Decimal
    deletion_reason: str
    deleted_by_id: int | None
    created_at: datetime


class LedgerDeletionFilters(BaseSchema):
    enrollment_id: int | None = None
    student_id: int | None = None
    deleted_by_id: int | None = None
    date_from: date | None = None
    date_to: date | None = None
    page: int = Field(1, ge=1)
    limit: int = Field(50, ge=1, le=100)


class ChainVerification(BaseSchema):
    """Result of re-walking an enrollment's chain against stored balances."""

    enrollment_id: int
    entries_checked: int
    mismatched_entry_ids: list[int]
    expected_balance: Decimal
    stored_balance: Decimal
    is_consistent: bool
