"""Due-soon lookups and reminder hand-off."""

import logging
from datetime import date, timedelta

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from fee_ledger.core.audit.service import AuditAction, AuditService
from fee_ledger.core.database.transaction import atomic
from fee_ledger.core.exceptions import AppException, ConflictError, NotFoundError, ValidationError
from fee_ledger.modules.enrollments.schemas import EnrollmentContext
from fee_ledger.modules.enrollments.service import enrollment_context_options
from fee_ledger.modules.installments.models import FeeInstallment
from fee_ledger.modules.reminders.dispatcher import ReminderDeliveryError, ReminderDispatcher
from fee_ledger.modules.reminders.schemas import (
    DueInstallment,
    ReminderDispatchSummary,
    ReminderResult,
)

logger = logging.getLogger(__name__)

MAX_DAYS_AHEAD = 365


def to_due_installment(installment: FeeInstallment, today: date) -> DueInstallment:
    """Flatten an installment (enrollment context loaded) for reminders."""
    return DueInstallment(
        installment_id=installment.id,
        enrollment_id=installment.enrollment_id,
        title=installment.title,
        amount_due=installment.amount_due,
        amount_paid=installment.amount_paid,
        remaining_amount=installment.remaining_amount,
        due_date=installment.due_date,
        days_until_due=(installment.due_date - today).days,
        status=installment.current_status(today),
        enrollment=EnrollmentContext.from_enrollment(installment.enrollment),
    )


class ReminderService:
    """Read-only selection of installments to remind about, plus dispatch."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.audit = AuditService(db)

    async def find_due_within(self, days: int, today: date | None = None) -> list[DueInstallment]:
        """Unpaid installments with today <= due_date <= today + days."""
        if days < 0 or days > MAX_DAYS_AHEAD:
            raise ValidationError(f"days must be between 0 and {MAX_DAYS_AHEAD}", field="days")

        today = today or date.today()
        horizon = today + timedelta(days=days)

        result = await self.db.execute(
            self._with_context(select(FeeInstallment))
            .where(
                FeeInstallment.amount_paid < FeeInstallment.amount_due,
                FeeInstallment.due_date >= today,
                FeeInstallment.due_date <= horizon,
            )
            .order_by(FeeInstallment.due_date, FeeInstallment.id)
        )
        return [to_due_installment(i, today) for i in result.scalars().all()]

    async def dispatch_reminders(
        self,
        installment_ids: list[int],
        dispatcher: ReminderDispatcher,
        today: date | None = None,
        user_id: int | None = None,
    ) -> ReminderDispatchSummary:
        """
        Send one reminder per installment, one after another.

        Any failure (unknown id, already paid, delivery or storage error) is
        recorded in the summary and the remaining installments are still processed.
        """
        today = today or date.today()
        ids = list(dict.fromkeys(installment_ids))
        results: list[ReminderResult] = []

        for installment_id in ids:
            try:
                reminder = await self._load_candidate(installment_id, today)
                await dispatcher.send(reminder)
            except (AppException, ReminderDeliveryError) as exc:
                message = exc.message if isinstance(exc, AppException) else str(exc)
                logger.warning("Reminder for installment %s failed: %s", installment_id, message)
                results.append(ReminderResult(installment_id=installment_id, sent=False, error=message))
            except Exception as exc:
                logger.exception("Reminder for installment %s crashed", installment_id)
                if isinstance(exc, SQLAlchemyError):
                    # Only lookups have run in this transaction
                    await self.db.rollback()
                results.append(
                    ReminderResult(
                        installment_id=installment_id,
                        sent=False,
                        error=f"{type(exc).__name__}: {exc}",
                    )
                )
            else:
                results.append(ReminderResult(installment_id=installment_id, sent=True))

        sent_ids = [r.installment_id for r in results if r.sent]
        if sent_ids:
            async with atomic(self.db):
                for installment_id in sent_ids:
                    await self.audit.log(
                        action=AuditAction.DISPATCH_REMINDERS,
                        entity_type="FeeInstallment",
                        entity_id=installment_id,
                        user_id=user_id,
                        new_values={"as_of": str(today)},
                    )

        summary = ReminderDispatchSummary(
            requested=len(ids),
            sent=len(sent_ids),
            failed=len(ids) - len(sent_ids),
            results=results,
        )
        logger.info(
            "Dispatched reminders: %d requested, %d sent, %d failed",
            summary.requested,
            summary.sent,
            summary.failed,
        )
        return summary

    async def _load_candidate(self, installment_id: int, today: date) -> DueInstallment:
        result = await self.db.execute(
            self._with_context(select(FeeInstallment)).where(FeeInstallment.id == installment_id)
        )
        installment = result.scalar_one_or_none()
        if not installment:
            raise NotFoundError("Fee installment", installment_id)
        if installment.amount_paid >= installment.amount_due:
            raise ConflictError(f"Installment {installment_id} is already paid")
        return to_due_installment(installment, today)

    @staticmethod
    def _with_context(query):
        return query.options(
            selectinload(FeeInstallment.enrollment).options(*enrollment_context_options())
        ).execution_options(populate_existing=True)
