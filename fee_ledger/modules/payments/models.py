"""StudentFeePayment and PaymentMethod models."""

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fee_ledger.core.database.base import Base, BaseModel, BigIntPK


class PaymentMethod(BaseModel):
    """Payment channel lookup (cash, bank transfer, mobile wallets)."""

    __tablename__ = "payment_methods"

    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    display_name: Mapped[str] = mapped_column(String(100), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class StudentFeePayment(Base):
    """
    Money received against one fee installment.

    Owned exclusively by its installment: deleting the installment deletes its
    payments, and every insert/update/delete re-aggregates the installment's
    amount_paid in the same transaction.
    """

    __tablename__ = "student_fee_payments"
    __table_args__ = (CheckConstraint("amount > 0", name="amount_positive"),)

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)

    fee_installment_id: Mapped[int] = mapped_column(
        BigIntPK,
        ForeignKey("fee_installments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    payment_method_id: Mapped[int | None] = mapped_column(
        BigIntPK, ForeignKey("payment_methods.id"), nullable=True
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_by_id: Mapped[int | None] = mapped_column(
        BigIntPK, ForeignKey("users.id"), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    # Relationships
    installment: Mapped["FeeInstallment"] = relationship(
        "FeeInstallment", back_populates="payments"
    )
    payment_method: Mapped["PaymentMethod | None"] = relationship("PaymentMethod")


# Import for relationship resolution
from fee_ledger.core.auth.models import User  # noqa: E402,F401
from fee_ledger.modules.installments.models import FeeInstallment  # noqa: E402
