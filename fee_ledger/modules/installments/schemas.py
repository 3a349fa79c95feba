"""Pydantic schemas for fee installments."""

from datetime import date, datetime
from decimal import Decimal

from pydantic import Field, ValidationInfo, model_validator

from fee_ledger.modules.enrollments.schemas import EnrollmentContext
from fee_ledger.modules.installments.status import InstallmentStatus, derive_status
from fee_ledger.modules.payments.schemas import FeePaymentResponse
from fee_ledger.shared.schemas.base import BaseSchema


class GenerateInstallmentsRequest(BaseSchema):
    """
    Schedule generation input.

    Range checks (count, amount, period) are enforced by the service so that
    HTTP and programmatic callers get the same ValidationError.
    """

    total_amount: Decimal
    number_of_installments: int
    period_start: date | None = Field(
        None, description="Defaults to the academic year's start date"
    )
    period_end: date | None = Field(
        None, description="Defaults to the academic year's end date"
    )
    title_prefix: str = Field("Installment", max_length=150)
    replace_existing: bool = Field(
        False, description="Drop an existing schedule first (only if it has no payments)"
    )


class FeeInstallmentCreate(BaseSchema):
    enrollment_id: int
    title: str = Field(..., min_length=1, max_length=200)
    amount_due: Decimal = Field(gt=0)
    due_date: date
    notes: str | None = None


class FeeInstallmentUpdate(BaseSchema):
    """amount_paid and status are not editable; they follow the payments."""

    title: str | None = Field(None, min_length=1, max_length=200)
    amount_due: Decimal | None = Field(None, gt=0)
    due_date: date | None = None
    notes: str | None = None


class FeeInstallmentFilters(BaseSchema):
    enrollment_id: int | None = None
    student_id: int | None = None
    status: InstallmentStatus | None = None


class FeeInstallmentResponse(BaseSchema):
    """
    Installment as returned to callers.

    status and remaining_amount are re-derived on every validation; pass
    context={"today": date} to evaluate as of another day.
    """

    id: int
    enrollment_id: int
    title: str
    amount_due: Decimal
    amount_paid: Decimal
    remaining_amount: Decimal = Decimal("0.00")
    due_date: date
    status: InstallmentStatus
    notes: str | None
    created_at: datetime
    updated_at: datetime

    @model_validator(mode="after")
    def derive_current_status(self, info: ValidationInfo):
        today = (info.context or {}).get("today") or date.today()
        self.status = derive_status(self.amount_due, self.amount_paid, self.due_date, today)
        self.remaining_amount = max(self.amount_due - self.amount_paid, Decimal("0.00"))
        return self


class FeeInstallmentDetail(FeeInstallmentResponse):
    payments: list[FeePaymentResponse] = []


class FeeStatementTotals(BaseSchema):
    total_due: Decimal
    total_paid: Decimal
    total_remaining: Decimal
    overdue_amount: Decimal


class FeeStatement(BaseSchema):
    """Everything an external renderer needs for a fee statement document."""

    enrollment: EnrollmentContext
    as_of: date
    installments: list[FeeInstallmentDetail]
    totals: FeeStatementTotals
    ledger_balance: Decimal
