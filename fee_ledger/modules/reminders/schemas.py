"""Pydantic schemas for due-soon queries and reminder dispatch."""

from datetime import date
from decimal import Decimal

from pydantic import Field

from fee_ledger.modules.enrollments.schemas import EnrollmentContext
from fee_ledger.modules.installments.status import InstallmentStatus
from fee_ledger.shared.schemas.base import BaseSchema


class DueInstallment(BaseSchema):
    """An unpaid installment falling due soon, with who it belongs to."""

    installment_id: int
    enrollment_id: int
    title: str
    amount_due: Decimal
    amount_paid: Decimal
    remaining_amount: Decimal
    due_date: date
    days_until_due: int
    status: InstallmentStatus
    enrollment: EnrollmentContext


class ReminderDispatchRequest(BaseSchema):
    installment_ids: list[int] = Field(..., min_length=1, max_length=500)


class ReminderResult(BaseSchema):
    installment_id: int
    sent: bool
    error: str | None = None


class ReminderDispatchSummary(BaseSchema):
    requested: int
    sent: int
    failed: int
    results: list[ReminderResult]
