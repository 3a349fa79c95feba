"""Pure running-balance arithmetic for ledger chains."""

from collections.abc import Iterable
from decimal import Decimal
from typing import Protocol

from fee_ledger.modules.ledger.models import TransactionType
from fee_ledger.shared.utils.money import ZERO, round_money

# Positive = the family owes more. Fixed for the deployment.
SIGNS: dict[TransactionType, int] = {
    TransactionType.FEE: 1,
    TransactionType.ADJUSTMENT: 1,
    TransactionType.PAYMENT: -1,
    TransactionType.DISCOUNT: -1,
    TransactionType.REFUND: -1,
}


class ChainLink(Protocol):
    id: int
    transaction_type: str
    amount: Decimal


def signed_amount(transaction_type: str | TransactionType, amount: Decimal) -> Decimal:
    """
    Amount with the direction of its transaction type.

    Examples:
        >>> signed_amount("fee", Decimal("1000"))
        Decimal('1000.00')
        >>> signed_amount("discount", Decimal("100"))
        Decimal('-100.00')
    """
    return round_money(SIGNS[TransactionType(transaction_type)] * amount)


def walk_balances(entries: Iterable[ChainLink], opening: Decimal = ZERO) -> list[Decimal]:
    """Running balance after each entry, in the order given."""
    balances = []
    balance = opening
    for entry in entries:
        balance = round_money(balance + signed_amount(entry.transaction_type, entry.amount))
        balances.append(balance)
    return balances
