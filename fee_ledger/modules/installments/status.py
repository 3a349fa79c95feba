"""Installment status derivation.

Status is never stored authoritatively: it is a function of the amounts, the
due date and the day the question is asked.
"""

from datetime import date
from decimal import Decimal
from enum import StrEnum


class InstallmentStatus(StrEnum):
    """Accrual state of a fee installment."""

    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"
    OVERDUE = "overdue"


def derive_status(
    amount_due: Decimal,
    amount_paid: Decimal,
    due_date: date,
    today: date,
) -> InstallmentStatus:
    """
    Compute the status of an installment.

    - paid: amount_paid >= amount_due
    - overdue: not fully paid and due_date < today
    - partial: something paid, not late yet
    - pending: nothing paid, not late yet

    Examples:
        >>> derive_status(Decimal("500"), Decimal("200"), date(2025, 1, 10), date(2025, 1, 1))
        <InstallmentStatus.PARTIAL: 'partial'>
        >>> derive_status(Decimal("500"), Decimal("0"), date(2025, 1, 10), date(2025, 1, 11))
        <InstallmentStatus.OVERDUE: 'overdue'>
    """
    if amount_paid >= amount_due:
        return InstallmentStatus.PAID
    if due_date < today:
        return InstallmentStatus.OVERDUE
    if amount_paid > 0:
        return InstallmentStatus.PARTIAL
    return InstallmentStatus.PENDING
