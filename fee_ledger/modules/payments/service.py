"""Service for installment payments (record, edit, delete) and payment methods."""

import logging
from datetime import date
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from fee_ledger.core.audit.service import AuditAction, AuditService
from fee_ledger.core.config import settings
from fee_ledger.core.database.transaction import atomic
from fee_ledger.core.exceptions import (
    ConflictError,
    DuplicateError,
    NotFoundError,
    ValidationError,
)
from fee_ledger.modules.installments.models import FeeInstallment
from fee_ledger.modules.installments.service import InstallmentService
from fee_ledger.modules.payments.models import PaymentMethod, StudentFeePayment
from fee_ledger.modules.payments.schemas import (
    FeePaymentCreate,
    FeePaymentUpdate,
    PaymentMethodCreate,
)
from fee_ledger.shared.utils.money import to_money, round_money

logger = logging.getLogger(__name__)


class FeePaymentService:
    """
    Records money against installments and keeps amount_paid equal to the sum
    of the installment's payments.

    Every mutation locks the owning installment row first, so two cashiers
    posting to the same installment are serialized; the installment's version
    counter catches writers that bypass the lock.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.audit = AuditService(db)
        self.installments = InstallmentService(db)

    # --- Payments ---

    async def record_payment(
        self,
        data: FeePaymentCreate,
        user_id: int | None = None,
        today: date | None = None,
    ) -> StudentFeePayment:
        """Insert a payment and re-aggregate its installment atomically."""
        today = today or date.today()
        amount = round_money(data.amount)

        async with atomic(self.db):
            installment = await self.installments.lock_installment(data.fee_installment_id)
            if data.payment_method_id is not None:
                await self._get_active_payment_method(data.payment_method_id)

            self._check_within_remaining(installment, amount, installment.remaining_amount)

            payment = StudentFeePayment(
                fee_installment_id=installment.id,
                amount=amount,
                payment_date=data.payment_date,
                payment_method_id=data.payment_method_id,
                notes=data.notes,
                created_by_id=user_id,
            )
            self.db.add(payment)
            await self.db.flush()

            await self._sync_installment(installment, today)

            await self.audit.log(
                action=AuditAction.RECORD_PAYMENT,
                entity_type="StudentFeePayment",
                entity_id=payment.id,
                entity_identifier=installment.title,
                enrollment_id=installment.enrollment_id,
                user_id=user_id,
                new_values={
                    "fee_installment_id": installment.id,
                    "amount": str(amount),
                    "payment_date": str(data.payment_date),
                    "amount_paid": str(installment.amount_paid),
                },
            )

        logger.info(
            "Recorded payment %s of %s on installment %s (paid %s/%s)",
            payment.id,
            amount,
            installment.id,
            installment.amount_paid,
            installment.amount_due,
        )
        return await self.get_payment(payment.id)

    async def update_payment(
        self,
        payment_id: int,
        data: FeePaymentUpdate,
        user_id: int | None = None,
        today: date | None = None,
    ) -> StudentFeePayment:
        """
        Edit a payment. The new amount is validated against the installment's
        remaining amount with this payment's old amount added back.
        """
        today = today or date.today()

        async with atomic(self.db):
            payment = await self.get_payment(payment_id)
            installment = await self.installments.lock_installment(payment.fee_installment_id)
            # Re-read under the lock; a concurrent edit may have landed meanwhile
            payment = await self.get_payment(payment_id)

            old_values: dict = {}
            new_values: dict = {}

            if data.amount is not None:
                amount = round_money(data.amount)
                available = installment.amount_due - (installment.amount_paid - payment.amount)
                self._check_within_remaining(installment, amount, available)
                old_values["amount"] = str(payment.amount)
                payment.amount = amount
                new_values["amount"] = str(amount)

            if data.payment_date is not None:
                old_values["payment_date"] = str(payment.payment_date)
                payment.payment_date = data.payment_date
                new_values["payment_date"] = str(data.payment_date)

            if data.payment_method_id is not None:
                await self._get_active_payment_method(data.payment_method_id)
                old_values["payment_method_id"] = payment.payment_method_id
                payment.payment_method_id = data.payment_method_id
                new_values["payment_method_id"] = data.payment_method_id

            if data.notes is not None:
                payment.notes = data.notes

            await self.db.flush()
            await self._sync_installment(installment, today)

            await self.audit.log(
                action=AuditAction.UPDATE_PAYMENT,
                entity_type="StudentFeePayment",
                entity_id=payment.id,
                entity_identifier=installment.title,
                enrollment_id=installment.enrollment_id,
                user_id=user_id,
                old_values=old_values,
                new_values={**new_values, "amount_paid": str(installment.amount_paid)},
            )

        return await self.get_payment(payment_id)

    async def delete_payment(
        self,
        payment_id: int,
        user_id: int | None = None,
        today: date | None = None,
    ) -> FeeInstallment:
        """Remove a payment and give its amount back to the installment."""
        today = today or date.today()

        async with atomic(self.db):
            payment = await self.get_payment(payment_id)
            installment = await self.installments.lock_installment(payment.fee_installment_id)

            await self.audit.log(
                action=AuditAction.DELETE_PAYMENT,
                entity_type="StudentFeePayment",
                entity_id=payment.id,
                entity_identifier=installment.title,
                enrollment_id=installment.enrollment_id,
                user_id=user_id,
                old_values={
                    "fee_installment_id": installment.id,
                    "amount": str(payment.amount),
                    "payment_date": str(payment.payment_date),
                },
            )

            await self.db.delete(payment)
            await self.db.flush()
            await self._sync_installment(installment, today)

        logger.info("Deleted payment %s from installment %s", payment_id, installment.id)
        return await self.installments.get_installment(installment.id)

    async def get_payment(self, payment_id: int) -> StudentFeePayment:
        """Get payment by ID."""
        result = await self.db.execute(
            select(StudentFeePayment)
            .where(StudentFeePayment.id == payment_id)
            .execution_options(populate_existing=True)
        )
        payment = result.scalar_one_or_none()
        if not payment:
            raise NotFoundError("Payment", payment_id)
        return payment

    async def list_payments(self, fee_installment_id: int) -> list[StudentFeePayment]:
        """Payments of one installment, oldest first."""
        # 404 for unknown installments instead of an empty list
        await self.installments.get_installment(fee_installment_id)
        result = await self.db.execute(
            select(StudentFeePayment)
            .where(StudentFeePayment.fee_installment_id == fee_installment_id)
            .order_by(StudentFeePayment.payment_date, StudentFeePayment.id)
        )
        return list(result.scalars().all())

    # --- Payment Methods ---

    async def list_payment_methods(self, include_inactive: bool = False) -> list[PaymentMethod]:
        query = select(PaymentMethod).order_by(PaymentMethod.name)
        if not include_inactive:
            query = query.where(PaymentMethod.is_active.is_(True))
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def create_payment_method(
        self, data: PaymentMethodCreate, user_id: int | None = None
    ) -> PaymentMethod:
        async with atomic(self.db):
            existing = await self.db.execute(
                select(PaymentMethod).where(PaymentMethod.name == data.name)
            )
            if existing.scalar_one_or_none():
                raise DuplicateError("Payment method", "name", data.name)

            method = PaymentMethod(
                name=data.name,
                display_name=data.display_name or data.name.replace("_", " ").title(),
                is_active=True,
            )
            self.db.add(method)
            await self.db.flush()

            await self.audit.log(
                action=AuditAction.CREATE,
                entity_type="PaymentMethod",
                entity_id=method.id,
                entity_identifier=method.name,
                user_id=user_id,
            )

        result = await self.db.execute(select(PaymentMethod).where(PaymentMethod.id == method.id))
        return result.scalar_one()

    # --- Helper Methods ---

    def _check_within_remaining(
        self, installment: FeeInstallment, amount: Decimal, available: Decimal
    ) -> None:
        if amount <= 0:
            raise ValidationError("Payment amount must be positive", field="amount")
        if amount > available and not settings.allow_overpayment:
            raise ConflictError(
                f"Payment of {amount} exceeds the remaining amount {round_money(available)} "
                f"of installment '{installment.title}'",
                field="amount",
                remaining=str(round_money(available)),
            )

    async def _get_active_payment_method(self, payment_method_id: int) -> PaymentMethod:
        result = await self.db.execute(
            select(PaymentMethod).where(PaymentMethod.id == payment_method_id)
        )
        method = result.scalar_one_or_none()
        if not method:
            raise NotFoundError("Payment method", payment_method_id)
        if not method.is_active:
            raise ValidationError(
                f"Payment method '{method.name}' is inactive", field="payment_method_id"
            )
        return method

    async def _sync_installment(self, installment: FeeInstallment, today: date) -> None:
        """Set amount_paid to the sum of the installment's payments and refresh status."""
        result = await self.db.execute(
            select(func.coalesce(func.sum(StudentFeePayment.amount), 0)).where(
                StudentFeePayment.fee_installment_id == installment.id
            )
        )
        installment.amount_paid = to_money(result.scalar())
        installment.refresh_status(today)
        await self.db.flush()
