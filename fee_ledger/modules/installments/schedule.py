"""Pure planning of an installment schedule: amounts, due dates, titles."""

from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal

from fee_ledger.core.exceptions import ValidationError
from fee_ledger.shared.utils.money import round_money


@dataclass(frozen=True)
class PlannedInstallment:
    sequence: int
    title: str
    amount_due: Decimal
    due_date: date


def split_amount(total_amount: Decimal, count: int) -> list[Decimal]:
    """
    Split a total into `count` parts that sum to it exactly.

    Every part gets round_money(total / count); the rounding remainder goes to
    the last part.

    Examples:
        >>> split_amount(Decimal("1000.00"), 3)
        [Decimal('333.33'), Decimal('333.33'), Decimal('333.34')]
    """
    total = round_money(total_amount)
    base = round_money(total / count)
    last = total - base * (count - 1)
    parts = [base] * (count - 1) + [last]
    if any(part <= 0 for part in parts):
        raise ValidationError(
            f"Total amount {total} is too small to split into {count} installments",
            field="total_amount",
        )
    return parts


def spread_due_dates(period_start: date, period_end: date, count: int) -> list[date]:
    """
    Due dates at the start of `count` equal slices of [period_start, period_end].

    due_date[i] = period_start + floor(i * span / count) days.
    """
    span_days = (period_end - period_start).days
    return [period_start + timedelta(days=(span_days * i) // count) for i in range(count)]


def plan_schedule(
    total_amount: Decimal,
    count: int,
    period_start: date,
    period_end: date,
    max_installments: int,
    title_prefix: str = "Installment",
) -> list[PlannedInstallment]:
    """Validate generation input and lay out the schedule."""
    if count < 1 or count > max_installments:
        raise ValidationError(
            f"Number of installments must be between 1 and {max_installments}",
            field="number_of_installments",
        )
    if total_amount is None or total_amount <= 0:
        raise ValidationError("Total amount must be positive", field="total_amount")
    if period_end <= period_start:
        raise ValidationError("Period end must be after period start", field="period_end")
    if (period_end - period_start).days < count:
        # Fewer days than installments would produce duplicate due dates
        raise ValidationError(
            f"Period of {(period_end - period_start).days} days is too short "
            f"for {count} installments",
            field="period_end",
        )

    prefix = (title_prefix or "Installment").strip() or "Installment"
    amounts = split_amount(total_amount, count)
    due_dates = spread_due_dates(period_start, period_end, count)

    return [
        PlannedInstallment(
            sequence=i + 1,
            title=f"{prefix} {i + 1}",
            amount_due=amount,
            due_date=due_date,
        )
        for i, (amount, due_date) in enumerate(zip(amounts, due_dates))
    ]
