from collections.abc import Iterable
from decimal import ROUND_HALF_DOWN, ROUND_HALF_UP, Decimal
from typing import Union

from fee_ledger.core.exceptions import ValidationError

# Type alias for money values
Money = Decimal

ZERO = Decimal("0.00")


def round_money(value: Union[Decimal, float, int, str]) -> Decimal:
    """
    Round monetary value to 2 decimal places using ROUND_HALF_UP.

    Examples:
        >>> round_money(10.125)
        Decimal('10.13')
        >>> round_money(10.124)
        Decimal('10.12')
        >>> round_money("10.115")
        Decimal('10.12')
    """
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    if value < 0:
        return value.quantize(Decimal("0.01"), rounding=ROUND_HALF_DOWN)
    return value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def to_money(value: Union[Decimal, float, int, str, None]) -> Decimal:
    """Coerce a DB aggregate (None, float from SQLite, Decimal) into rounded money."""
    if value is None:
        return ZERO
    return round_money(value)


def sum_money(values: Iterable[Decimal]) -> Decimal:
    """Exact sum of money values, rounded once at the end."""
    return round_money(sum(values, ZERO))


def positive_money(value: Union[Decimal, float, int, str], field: str) -> Decimal:
    """
    Round to cents and require a result above zero.

    Amounts like 0.004 pass a `gt=0` schema check but round to 0.00.
    """
    amount = round_money(value)
    if amount <= 0:
        raise ValidationError(f"{field} must be at least 0.01", field=field)
    return amount
