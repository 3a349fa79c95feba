"""Service for fee installments: schedule generation, CRUD and statements."""

import logging
from datetime import date
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from fee_ledger.core.audit.service import AuditAction, AuditService
from fee_ledger.core.config import settings
from fee_ledger.core.database.transaction import atomic
from fee_ledger.core.exceptions import ConflictError, NotFoundError, ValidationError
from fee_ledger.modules.enrollments.models import AcademicYear, Enrollment
from fee_ledger.modules.enrollments.service import EnrollmentService
from fee_ledger.modules.installments.models import FeeInstallment
from fee_ledger.modules.installments.schedule import plan_schedule
from fee_ledger.modules.installments.schemas import (
    FeeInstallmentCreate,
    FeeInstallmentDetail,
    FeeInstallmentFilters,
    FeeInstallmentUpdate,
    FeeStatement,
    FeeStatementTotals,
    GenerateInstallmentsRequest,
)
from fee_ledger.modules.installments.status import InstallmentStatus
from fee_ledger.modules.ledger.service import LedgerService
from fee_ledger.shared.utils.money import ZERO, positive_money, round_money, sum_money

logger = logging.getLogger(__name__)


class InstallmentService:
    """Service for managing an enrollment's installment schedule."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.audit = AuditService(db)
        self.enrollments = EnrollmentService(db)

    # --- Schedule Generation ---

    async def generate_schedule(
        self,
        enrollment_id: int,
        data: GenerateInstallmentsRequest,
        user_id: int | None = None,
        today: date | None = None,
    ) -> list[FeeInstallment]:
        """
        Split the enrollment's total fee into dated installments.

        Refuses while a schedule exists. With replace_existing the old schedule
        is dropped first, but only if none of its installments carry payments.
        Everything happens in one transaction.
        """
        today = today or date.today()

        async with atomic(self.db):
            enrollment = await self.enrollments.lock_enrollment(enrollment_id)
            period_start, period_end = await self._resolve_period(enrollment, data)

            planned = plan_schedule(
                total_amount=data.total_amount,
                count=data.number_of_installments,
                period_start=period_start,
                period_end=period_end,
                max_installments=settings.max_installments,
                title_prefix=data.title_prefix,
            )

            existing = await self._load_schedule(enrollment_id)
            if existing:
                if not data.replace_existing:
                    raise ConflictError(
                        f"Enrollment {enrollment_id} already has {len(existing)} installments",
                        field="enrollment_id",
                    )
                if any(inst.payments for inst in existing):
                    raise ConflictError(
                        "Cannot replace a schedule that already has payments",
                        field="replace_existing",
                    )
                for inst in existing:
                    await self.db.delete(inst)
                await self.db.flush()

            installments = []
            for plan in planned:
                installment = FeeInstallment(
                    enrollment_id=enrollment_id,
                    title=plan.title,
                    amount_due=plan.amount_due,
                    amount_paid=ZERO,
                    due_date=plan.due_date,
                )
                installment.refresh_status(today)
                self.db.add(installment)
                installments.append(installment)
            await self.db.flush()

            await self.audit.log(
                action=AuditAction.GENERATE_INSTALLMENTS,
                entity_type="Enrollment",
                entity_id=enrollment_id,
                enrollment_id=enrollment_id,
                user_id=user_id,
                old_values={"replaced_installments": len(existing)} if existing else None,
                new_values={
                    "total_amount": str(round_money(data.total_amount)),
                    "number_of_installments": data.number_of_installments,
                    "period_start": str(period_start),
                    "period_end": str(period_end),
                },
            )

        logger.info(
            "Generated %d installments for enrollment %s (total %s)",
            len(installments),
            enrollment_id,
            data.total_amount,
        )
        return await self._load_schedule(enrollment_id)

    async def _resolve_period(
        self, enrollment: Enrollment, data: GenerateInstallmentsRequest
    ) -> tuple[date, date]:
        """Explicit period wins; missing bounds come from the academic year."""
        if data.period_start and data.period_end:
            return data.period_start, data.period_end

        result = await self.db.execute(
            select(AcademicYear).where(AcademicYear.id == enrollment.academic_year_id)
        )
        year = result.scalar_one_or_none()
        if not year:
            raise ValidationError(
                "Period is required: enrollment has no academic year dates",
                field="period_start",
            )
        return data.period_start or year.start_date, data.period_end or year.end_date

    async def _load_schedule(self, enrollment_id: int) -> list[FeeInstallment]:
        result = await self.db.execute(
            select(FeeInstallment)
            .where(FeeInstallment.enrollment_id == enrollment_id)
            .options(selectinload(FeeInstallment.payments))
            .order_by(FeeInstallment.due_date, FeeInstallment.id)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    # --- CRUD ---

    async def create_installment(
        self,
        data: FeeInstallmentCreate,
        user_id: int | None = None,
        today: date | None = None,
    ) -> FeeInstallment:
        """Add a single installment outside of generation (e.g. an extra fee)."""
        today = today or date.today()
        amount_due = positive_money(data.amount_due, "amount_due")

        async with atomic(self.db):
            await self.enrollments.lock_enrollment(data.enrollment_id)
            installment = FeeInstallment(
                enrollment_id=data.enrollment_id,
                title=data.title.strip(),
                amount_due=amount_due,
                amount_paid=ZERO,
                due_date=data.due_date,
                notes=data.notes,
            )
            installment.refresh_status(today)
            self.db.add(installment)
            await self.db.flush()

            await self.audit.log(
                action=AuditAction.CREATE,
                entity_type="FeeInstallment",
                entity_id=installment.id,
                entity_identifier=installment.title,
                enrollment_id=data.enrollment_id,
                user_id=user_id,
                new_values={
                    "amount_due": str(installment.amount_due),
                    "due_date": str(installment.due_date),
                },
            )

        return await self.get_installment(installment.id)

    async def get_installment(self, installment_id: int) -> FeeInstallment:
        """Get installment by ID with payments loaded."""
        result = await self.db.execute(
            select(FeeInstallment)
            .where(FeeInstallment.id == installment_id)
            .options(selectinload(FeeInstallment.payments))
            .execution_options(populate_existing=True)
        )
        installment = result.scalar_one_or_none()
        if not installment:
            raise NotFoundError("Fee installment", installment_id)
        return installment

    async def list_installments(
        self, filters: FeeInstallmentFilters, today: date | None = None
    ) -> list[FeeInstallment]:
        """List installments of an enrollment or of all a student's enrollments."""
        if filters.enrollment_id is None and filters.student_id is None:
            raise ValidationError(
                "Either enrollment_id or student_id is required", field="enrollment_id"
            )

        query = select(FeeInstallment)
        if filters.enrollment_id is not None:
            query = query.where(FeeInstallment.enrollment_id == filters.enrollment_id)
        if filters.student_id is not None:
            query = query.join(Enrollment, Enrollment.id == FeeInstallment.enrollment_id).where(
                Enrollment.student_id == filters.student_id
            )

        query = query.order_by(FeeInstallment.due_date, FeeInstallment.id)
        result = await self.db.execute(query.execution_options(populate_existing=True))
        installments = list(result.scalars().all())

        if filters.status is not None:
            # Stored status may be stale (overdue is a function of time)
            today = today or date.today()
            installments = [i for i in installments if i.current_status(today) == filters.status]
        return installments

    async def update_installment(
        self,
        installment_id: int,
        data: FeeInstallmentUpdate,
        user_id: int | None = None,
        today: date | None = None,
    ) -> FeeInstallment:
        """Edit title/amount_due/due_date/notes; amount_due may not drop below paid."""
        today = today or date.today()
        amount_due = (
            positive_money(data.amount_due, "amount_due") if data.amount_due is not None else None
        )

        async with atomic(self.db):
            installment = await self.lock_installment(installment_id)
            old_values: dict = {}
            new_values: dict = {}

            if amount_due is not None:
                if amount_due < installment.amount_paid:
                    raise ConflictError(
                        f"Amount due {amount_due} is below the amount already paid "
                        f"{installment.amount_paid}",
                        field="amount_due",
                    )
                old_values["amount_due"] = str(installment.amount_due)
                installment.amount_due = amount_due
                new_values["amount_due"] = str(amount_due)

            if data.due_date is not None:
                old_values["due_date"] = str(installment.due_date)
                installment.due_date = data.due_date
                new_values["due_date"] = str(data.due_date)

            if data.title is not None:
                old_values["title"] = installment.title
                installment.title = data.title.strip()
                new_values["title"] = installment.title

            if data.notes is not None:
                installment.notes = data.notes

            installment.refresh_status(today)

            await self.audit.log(
                action=AuditAction.UPDATE,
                entity_type="FeeInstallment",
                entity_id=installment.id,
                entity_identifier=installment.title,
                enrollment_id=installment.enrollment_id,
                user_id=user_id,
                old_values=old_values,
                new_values=new_values,
            )

        return await self.get_installment(installment_id)

    async def delete_installment(self, installment_id: int, user_id: int | None = None) -> None:
        """Hard-delete an installment together with its payments."""
        async with atomic(self.db):
            installment = await self.lock_installment(installment_id, with_payments=True)

            await self.audit.log(
                action=AuditAction.DELETE,
                entity_type="FeeInstallment",
                entity_id=installment.id,
                entity_identifier=installment.title,
                enrollment_id=installment.enrollment_id,
                user_id=user_id,
                old_values={
                    "amount_due": str(installment.amount_due),
                    "amount_paid": str(installment.amount_paid),
                    "due_date": str(installment.due_date),
                    "payments": len(installment.payments),
                },
            )
            await self.db.delete(installment)

        logger.info("Deleted installment %s", installment_id)

    async def lock_installment(
        self, installment_id: int, with_payments: bool = False
    ) -> FeeInstallment:
        """
        SELECT ... FOR UPDATE on one installment, refreshing any cached copy.

        Holders of this lock are the only writers of amount_paid.
        """
        query = (
            select(FeeInstallment)
            .where(FeeInstallment.id == installment_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        if with_payments:
            query = query.options(selectinload(FeeInstallment.payments))
        result = await self.db.execute(query)
        installment = result.scalar_one_or_none()
        if not installment:
            raise NotFoundError("Fee installment", installment_id)
        return installment

    # --- Statement ---

    async def get_fee_statement(
        self, enrollment_id: int, today: date | None = None
    ) -> FeeStatement:
        """Data for an externally rendered fee statement (no document is built here)."""
        today = today or date.today()
        context = await self.enrollments.get_context(enrollment_id)
        installments = await self._load_schedule(enrollment_id)

        details = [
            FeeInstallmentDetail.model_validate(inst, context={"today": today})
            for inst in installments
        ]
        total_due = sum_money(d.amount_due for d in details)
        total_paid = sum_money(d.amount_paid for d in details)
        overdue = sum_money(
            d.remaining_amount for d in details if d.status == InstallmentStatus.OVERDUE
        )

        ledger_balance = await LedgerService(self.db).current_balance(enrollment_id)

        return FeeStatement(
            enrollment=context,
            as_of=today,
            installments=details,
            totals=FeeStatementTotals(
                total_due=total_due,
                total_paid=total_paid,
                total_remaining=round_money(max(total_due - total_paid, Decimal("0.00"))),
                overdue_amount=overdue,
            ),
            ledger_balance=ledger_balance,
        )
