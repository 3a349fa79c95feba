"""Service for the per-enrollment running-balance ledger."""

import logging
from collections.abc import Iterable
from datetime import UTC, date, datetime, time, timedelta
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from fee_ledger.core.audit.service import AuditAction, AuditService
from fee_ledger.core.database.transaction import atomic
from fee_ledger.core.exceptions import ConflictError, NotFoundError, ValidationError
from fee_ledger.modules.enrollments.models import Enrollment, Student
from fee_ledger.modules.enrollments.service import EnrollmentService
from fee_ledger.modules.ledger.chain import signed_amount, walk_balances
from fee_ledger.modules.ledger.models import LedgerDeletion, LedgerEntry, TransactionType
from fee_ledger.modules.ledger.schemas import (
    ChainVerification,
    EnrollmentLedger,
    EnrollmentLedgerSummary,
    LedgerDeletionFilters,
    LedgerEntryCreate,
    LedgerEntryResponse,
    LedgerSummary,
    LedgerTotals,
    PaymentMethodLedger,
)
from fee_ledger.shared.schemas.base import page_offset
from fee_ledger.shared.utils.money import ZERO, positive_money, round_money, sum_money

logger = logging.getLogger(__name__)

_TOTAL_FIELDS = {
    TransactionType.FEE: "total_fees",
    TransactionType.PAYMENT: "total_payments",
    TransactionType.DISCOUNT: "total_discounts",
    TransactionType.REFUND: "total_refunds",
    TransactionType.ADJUSTMENT: "total_adjustments",
}


def ledger_totals(entries: Iterable[LedgerEntry]) -> LedgerTotals:
    """Sum entry magnitudes per transaction type."""
    buckets: dict[str, list[Decimal]] = {name: [] for name in _TOTAL_FIELDS.values()}
    count = 0
    for entry in entries:
        buckets[_TOTAL_FIELDS[TransactionType(entry.transaction_type)]].append(entry.amount)
        count += 1
    return LedgerTotals(
        **{name: sum_money(amounts) for name, amounts in buckets.items()},
        total_entries=count,
    )


class LedgerService:
    """
    Append-mostly ledger per enrollment.

    Writers lock the enrollment row for the whole transaction, so each chain
    has a single writer at a time. Deletion is logical and re-walks the chain
    from zero; the walk and the deletion snapshot commit together or not at all.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.audit = AuditService(db)
        self.enrollments = EnrollmentService(db)

    # --- Mutations ---

    async def append_entry(
        self,
        enrollment_id: int,
        data: LedgerEntryCreate,
        user_id: int | None = None,
    ) -> LedgerEntry:
        """Append an entry; a back-dated one triggers a re-walk of the chain."""
        amount = positive_money(data.amount, "amount")

        async with atomic(self.db):
            await self.enrollments.lock_enrollment(enrollment_id)
            tail = await self._chain_tail(enrollment_id)
            previous = tail.balance_after if tail else ZERO

            entry = LedgerEntry(
                enrollment_id=enrollment_id,
                transaction_type=data.transaction_type.value,
                description=data.description,
                amount=amount,
                transaction_date=data.transaction_date,
                balance_after=round_money(previous + signed_amount(data.transaction_type, amount)),
                reference_number=data.reference_number,
                payment_method=data.payment_method,
                created_by_id=user_id,
                deleted=False,
            )
            self.db.add(entry)
            await self.db.flush()

            # Same-date entries sort after the tail by id, so only earlier dates re-walk
            if tail is not None and data.transaction_date < tail.transaction_date:
                changed = await self._recompute_chain(enrollment_id)
                logger.info(
                    "Back-dated ledger entry %s re-walked %d entries of enrollment %s",
                    entry.id,
                    changed,
                    enrollment_id,
                )

            await self.audit.log(
                action=AuditAction.APPEND_LEDGER_ENTRY,
                entity_type="LedgerEntry",
                entity_id=entry.id,
                entity_identifier=entry.reference_number,
                enrollment_id=enrollment_id,
                user_id=user_id,
                new_values={
                    "transaction_type": entry.transaction_type,
                    "amount": str(amount),
                    "transaction_date": str(entry.transaction_date),
                    "balance_after": str(entry.balance_after),
                },
            )

        logger.info(
            "Appended %s of %s to ledger of enrollment %s",
            data.transaction_type.value,
            amount,
            enrollment_id,
        )
        return await self.get_entry(entry.id)

    async def delete_entry(
        self, entry_id: int, reason: str | None, user_id: int | None = None
    ) -> LedgerDeletion:
        """
        Logically delete an entry and recompute every remaining balance.

        Raises:
            ValidationError: reason missing or blank.
            NotFoundError: unknown entry.
            ConflictError: entry already deleted.
        """
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("Deletion reason is required", field="reason")

        async with atomic(self.db):
            entry = await self.get_entry(entry_id)
            await self.enrollments.lock_enrollment(entry.enrollment_id)
            # Re-read under the lock; another deletion may have won the race
            entry = await self.get_entry(entry_id)
            if entry.deleted:
                raise ConflictError(f"Ledger entry {entry_id} is already deleted", field="entry_id")

            enrollment_id = entry.enrollment_id
            balance_before = await self.current_balance(enrollment_id)

            entry.deleted = True
            entry.deletion_reason = reason
            entry.deleted_by_id = user_id
            entry.deleted_at = datetime.now(UTC)
            await self.db.flush()

            changed = await self._recompute_chain(enrollment_id)
            balance_after = await self.current_balance(enrollment_id)

            deletion = LedgerDeletion(
                ledger_entry_id=entry.id,
                enrollment_id=enrollment_id,
                transaction_type=entry.transaction_type,
                description=entry.description,
                amount=entry.amount,
                transaction_date=entry.transaction_date,
                reference_number=entry.reference_number,
                payment_method=entry.payment_method,
                balance_before=balance_before,
                balance_after=balance_after,
                deletion_reason=reason,
                original_created_by_id=entry.created_by_id,
                original_created_at=entry.created_at,
                deleted_by_id=user_id,
            )
            self.db.add(deletion)
            await self.db.flush()

            await self.audit.log(
                action=AuditAction.DELETE_LEDGER_ENTRY,
                entity_type="LedgerEntry",
                entity_id=entry.id,
                entity_identifier=entry.reference_number,
                enrollment_id=enrollment_id,
                user_id=user_id,
                old_values={
                    "transaction_type": entry.transaction_type,
                    "amount": str(entry.amount),
                    "balance": str(balance_before),
                },
                new_values={"balance": str(balance_after), "recomputed_entries": changed},
                comment=reason,
            )

        logger.info(
            "Deleted ledger entry %s of enrollment %s (balance %s -> %s)",
            entry_id,
            enrollment_id,
            balance_before,
            balance_after,
        )
        result = await self.db.execute(
            select(LedgerDeletion)
            .where(LedgerDeletion.id == deletion.id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()

    # --- Reads ---

    async def get_entry(self, entry_id: int) -> LedgerEntry:
        """Get ledger entry by ID (deleted entries included)."""
        result = await self.db.execute(
            select(LedgerEntry)
            .where(LedgerEntry.id == entry_id)
            .execution_options(populate_existing=True)
        )
        entry = result.scalar_one_or_none()
        if not entry:
            raise NotFoundError("Ledger entry", entry_id)
        return entry

    async def current_balance(self, enrollment_id: int) -> Decimal:
        """balance_after of the last non-deleted entry, 0 for an empty chain."""
        tail = await self._chain_tail(enrollment_id)
        return tail.balance_after if tail else ZERO

    async def list_for_enrollment(
        self,
        enrollment_id: int,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> EnrollmentLedger:
        """Entries in chain order with per-type totals over the returned range."""
        await self.enrollments.get_enrollment(enrollment_id)

        query = self._live_entries().where(LedgerEntry.enrollment_id == enrollment_id)
        query = self._date_range(query, start_date, end_date)
        result = await self.db.execute(query)
        entries = list(result.scalars().all())

        summary = LedgerSummary(
            **ledger_totals(entries).model_dump(),
            current_balance=await self.current_balance(enrollment_id),
        )
        return EnrollmentLedger(
            enrollment_id=enrollment_id,
            start_date=start_date,
            end_date=end_date,
            entries=[LedgerEntryResponse.model_validate(e) for e in entries],
            summary=summary,
        )

    async def list_for_student(
        self, student_id: int, page: int = 1, limit: int = 50
    ) -> tuple[list[LedgerEntry], int]:
        """A student's entries across all of their enrollments, paginated."""
        student = await self.db.execute(select(Student.id).where(Student.id == student_id))
        if student.scalar_one_or_none() is None:
            raise NotFoundError("Student", student_id)

        query = (
            select(LedgerEntry)
            .join(Enrollment, Enrollment.id == LedgerEntry.enrollment_id)
            .where(Enrollment.student_id == student_id, LedgerEntry.deleted.is_(False))
        )

        count_query = select(func.count()).select_from(query.subquery())
        total = (await self.db.execute(count_query)).scalar() or 0

        query = query.order_by(
            LedgerEntry.enrollment_id, LedgerEntry.transaction_date, LedgerEntry.id
        )
        query = query.offset(page_offset(page, limit)).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all()), total

    async def entries_by_payment_method(
        self,
        payment_method: str,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> PaymentMethodLedger:
        method = payment_method.strip().lower()
        if not method:
            raise ValidationError("Payment method is required", field="payment_method")

        query = (
            select(LedgerEntry)
            .where(LedgerEntry.deleted.is_(False), LedgerEntry.payment_method == method)
            .order_by(LedgerEntry.transaction_date, LedgerEntry.id)
        )
        query = self._date_range(query, start_date, end_date)
        result = await self.db.execute(query)
        entries = list(result.scalars().all())

        return PaymentMethodLedger(
            payment_method=method,
            start_date=start_date,
            end_date=end_date,
            entries=[LedgerEntryResponse.model_validate(e) for e in entries],
            total_amount=sum_money(e.amount for e in entries),
            total_entries=len(entries),
        )

    async def summarize(
        self,
        enrollment_ids: list[int],
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[EnrollmentLedgerSummary]:
        """Totals and current balance for several enrollments in one pass."""
        ids = list(dict.fromkeys(enrollment_ids))

        query = self._live_entries().where(LedgerEntry.enrollment_id.in_(ids))
        result = await self.db.execute(query)
        all_entries = list(result.scalars().all())

        by_enrollment: dict[int, list[LedgerEntry]] = {eid: [] for eid in ids}
        for entry in all_entries:
            by_enrollment[entry.enrollment_id].append(entry)

        summaries = []
        for eid in ids:
            chain = by_enrollment[eid]
            in_range = [
                e
                for e in chain
                if (start_date is None or e.transaction_date >= start_date)
                and (end_date is None or e.transaction_date <= end_date)
            ]
            summaries.append(
                EnrollmentLedgerSummary(
                    enrollment_id=eid,
                    **ledger_totals(in_range).model_dump(),
                    current_balance=chain[-1].balance_after if chain else ZERO,
                )
            )
        return summaries

    async def list_deletions(
        self, filters: LedgerDeletionFilters
    ) -> tuple[list[LedgerDeletion], int]:
        """Deletion snapshots, newest first."""
        query = select(LedgerDeletion)

        if filters.enrollment_id is not None:
            query = query.where(LedgerDeletion.enrollment_id == filters.enrollment_id)
        if filters.student_id is not None:
            query = query.join(Enrollment, Enrollment.id == LedgerDeletion.enrollment_id).where(
                Enrollment.student_id == filters.student_id
            )
        if filters.deleted_by_id is not None:
            query = query.where(LedgerDeletion.deleted_by_id == filters.deleted_by_id)
        if filters.date_from:
            query = query.where(
                LedgerDeletion.created_at >= datetime.combine(filters.date_from, time.min, UTC)
            )
        if filters.date_to:
            query = query.where(
                LedgerDeletion.created_at
                < datetime.combine(filters.date_to + timedelta(days=1), time.min, UTC)
            )

        count_query = select(func.count()).select_from(query.subquery())
        total = (await self.db.execute(count_query)).scalar() or 0

        query = query.order_by(LedgerDeletion.created_at.desc(), LedgerDeletion.id.desc())
        query = query.offset(page_offset(filters.page, filters.limit)).limit(filters.limit)
        result = await self.db.execute(query)
        return list(result.scalars().all()), total

    async def verify_chain(self, enrollment_id: int) -> ChainVerification:
        """Compare stored balances with a fresh walk. Read-only."""
        await self.enrollments.get_enrollment(enrollment_id)

        result = await self.db.execute(
            self._live_entries().where(LedgerEntry.enrollment_id == enrollment_id)
        )
        entries = list(result.scalars().all())
        expected = walk_balances(entries)

        mismatched = [
            entry.id
            for entry, balance in zip(entries, expected)
            if entry.balance_after != balance
        ]
        if mismatched:
            logger.warning(
                "Ledger chain of enrollment %s has %d inconsistent entries",
                enrollment_id,
                len(mismatched),
            )

        return ChainVerification(
            enrollment_id=enrollment_id,
            entries_checked=len(entries),
            mismatched_entry_ids=mismatched,
            expected_balance=expected[-1] if expected else ZERO,
            stored_balance=entries[-1].balance_after if entries else ZERO,
            is_consistent=not mismatched,
        )

    # --- Helper Methods ---

    def _live_entries(self):
        return (
            select(LedgerEntry)
            .where(LedgerEntry.deleted.is_(False))
            .order_by(LedgerEntry.transaction_date, LedgerEntry.id)
            .execution_options(populate_existing=True)
        )

    @staticmethod
    def _date_range(query, start_date: date | None, end_date: date | None):
        if start_date:
            query = query.where(LedgerEntry.transaction_date >= start_date)
        if end_date:
            query = query.where(LedgerEntry.transaction_date <= end_date)
        return query

    async def _chain_tail(self, enrollment_id: int) -> LedgerEntry | None:
        result = await self.db.execute(
            select(LedgerEntry)
            .where(LedgerEntry.enrollment_id == enrollment_id, LedgerEntry.deleted.is_(False))
            .order_by(LedgerEntry.transaction_date.desc(), LedgerEntry.id.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _recompute_chain(self, enrollment_id: int) -> int:
        """
        Re-walk the enrollment's live entries from zero and rewrite balance_after.

        Must run inside the caller's transaction with the enrollment locked.
        Returns the number of entries whose balance changed.
        """
        result = await self.db.execute(
            self._live_entries().where(LedgerEntry.enrollment_id == enrollment_id)
        )
        entries = list(result.scalars().all())

        changed = 0
        for entry, balance in zip(entries, walk_balances(entries)):
            if entry.balance_after != balance:
                entry.balance_after = balance
                changed += 1
        await self.db.flush()
        return changed
