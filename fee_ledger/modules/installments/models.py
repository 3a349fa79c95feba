"""FeeInstallment model."""

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fee_ledger.core.database.base import Base, BigIntPK
from fee_ledger.modules.installments.status import InstallmentStatus, derive_status


class FeeInstallment(Base):
    """
    One scheduled part of an enrollment's fee obligation.

    amount_paid is a persisted aggregate of the installment's payments and is
    only written by the payment service while it holds this row's lock.
    version_id is bumped on every UPDATE so a writer working from a stale copy
    fails instead of overwriting the aggregate.
    """

    __tablename__ = "fee_installments"
    __table_args__ = (
        CheckConstraint("amount_due > 0", name="amount_due_positive"),
        CheckConstraint("amount_paid >= 0", name="amount_paid_non_negative"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)

    enrollment_id: Mapped[int] = mapped_column(
        BigIntPK, ForeignKey("enrollments.id"), nullable=False, index=True
    )

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    amount_due: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    amount_paid: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), nullable=False, default=Decimal("0.00")
    )
    due_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)

    # Snapshot of derive_status() at the last write; reads always re-derive
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=InstallmentStatus.PENDING.value
    )

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __mapper_args__ = {"version_id_col": version_id}

    # Relationships
    enrollment: Mapped["Enrollment"] = relationship("Enrollment")
    payments: Mapped[list["StudentFeePayment"]] = relationship(
        "StudentFeePayment",
        back_populates="installment",
        cascade="all, delete-orphan",
        order_by="StudentFeePayment.id",
    )

    @property
    def remaining_amount(self) -> Decimal:
        return max(self.amount_due - self.amount_paid, Decimal("0.00"))

    def current_status(self, today: date) -> InstallmentStatus:
        return derive_status(self.amount_due, self.amount_paid, self.due_date, today)

    def refresh_status(self, today: date) -> InstallmentStatus:
        """Re-derive and store the status snapshot after a mutation."""
        status = self.current_status(today)
        if self.status != status.value:
            self.status = status.value
        return status


# Import for relationship resolution
from fee_ledger.modules.enrollments.models import Enrollment  # noqa: E402
from fee_ledger.modules.payments.models import StudentFeePayment  # noqa: E402
