"""LedgerEntry and LedgerDeletion models."""

from datetime import date, datetime
from decimal import Decimal
from enum import StrEnum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fee_ledger.core.database.base import Base, BigIntPK


class TransactionType(StrEnum):
    """Kinds of ledger transactions."""

    FEE = "fee"
    PAYMENT = "payment"
    DISCOUNT = "discount"
    REFUND = "refund"
    ADJUSTMENT = "adjustment"


class LedgerEntry(Base):
    """
    One transaction in an enrollment's running-balance chain.

    amount is always a positive magnitude; the direction comes from the
    transaction type. balance_after is stored and must equal the previous
    non-deleted entry's balance_after (ordered by transaction_date, id) plus
    this entry's signed amount. Entries are never physically removed: deletion
    sets `deleted` with a reason and re-walks the chain.
    """

    __tablename__ = "ledger_entries"
    __table_args__ = (
        CheckConstraint("amount > 0", name="amount_positive"),
        Index("ix_ledger_entries_chain", "enrollment_id", "deleted", "transaction_date", "id"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)

    enrollment_id: Mapped[int] = mapped_column(
        BigIntPK, ForeignKey("enrollments.id"), nullable=False, index=True
    )

    transaction_type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)
    balance_after: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)

    reference_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    payment_method: Mapped[str | None] = mapped_column(String(50), nullable=True, index=True)

    created_by_id: Mapped[int | None] = mapped_column(
        BigIntPK, ForeignKey("users.id"), nullable=True
    )

    # Logical deletion (audit trail is never physically removed)
    deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    deletion_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    deleted_by_id: Mapped[int | None] = mapped_column(
        BigIntPK, ForeignKey("users.id"), nullable=True
    )
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    # Relationships
    created_by: Mapped["User | None"] = relationship("User", foreign_keys=[created_by_id])


class LedgerDeletion(Base):
    """
    Snapshot written when a ledger entry is logically deleted.

    balance_before/balance_after are the enrollment's current balance around
    the deletion, so the effect of every deletion stays reviewable after later
    appends move the chain on.
    """

    __tablename__ = "ledger_deletions"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)

    ledger_entry_id: Mapped[int] = mapped_column(
        BigIntPK, ForeignKey("ledger_entries.id"), nullable=False, unique=True
    )
    enrollment_id: Mapped[int] = mapped_column(
        BigIntPK, ForeignKey("enrollments.id"), nullable=False, index=True
    )

    transaction_type: Mapped[str] = mapped_column(String(20), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)
    reference_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    payment_method: Mapped[str | None] = mapped_column(String(50), nullable=True)

    balance_before: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    balance_after: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)

    deletion_reason: Mapped[str] = mapped_column(Text, nullable=False)
    original_created_by_id: Mapped[int | None] = mapped_column(BigIntPK, nullable=True)
    original_created_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    deleted_by_id: Mapped[int | None] = mapped_column(
        BigIntPK, ForeignKey("users.id"), nullable=True, index=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, index=True
    )


# Import for type hints
from fee_ledger.core.auth.models import User  # noqa: E402
from fee_ledger.modules.enrollments.models import Enrollment  # noqa: E402,F401
