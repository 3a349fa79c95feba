from enum import StrEnum
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from fee_ledger.core.audit.models import AuditLog


class AuditAction(StrEnum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    LOGIN = "LOGIN"

    GENERATE_INSTALLMENTS = "GENERATE_INSTALLMENTS"
    RECORD_PAYMENT = "RECORD_PAYMENT"
    UPDATE_PAYMENT = "UPDATE_PAYMENT"
    DELETE_PAYMENT = "DELETE_PAYMENT"
    APPEND_LEDGER_ENTRY = "APPEND_LEDGER_ENTRY"
    DELETE_LEDGER_ENTRY = "DELETE_LEDGER_ENTRY"
    DISPATCH_REMINDERS = "DISPATCH_REMINDERS"


class AuditService:
    """
    Writes AuditLog rows inside the caller's transaction.

    Rows are flushed, never committed here: a rolled-back mutation leaves no
    audit trace, and a committed one always has one.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def log(
        self,
        action: AuditAction,
        entity_type: str,
        entity_id: int,
        user_id: int | None = None,
        entity_identifier: str | None = None,
        enrollment_id: int | None = None,
        old_values: dict[str, Any] | None = None,
        new_values: dict[str, Any] | None = None,
        comment: str | None = None,
        ip_address: str | None = None,
    ) -> AuditLog:
        """
        Record one action on one entity.

        Args:
            action: What happened (RECORD_PAYMENT, DELETE_LEDGER_ENTRY, ...)
            entity_type: Model name, e.g. "FeeInstallment"
            entity_identifier: Human-readable handle (installment title, receipt number)
            enrollment_id: Enrollment the record belongs to, for per-student trails
            comment: Free text; ledger deletions store their reason here
        """
        entry = AuditLog(
            user_id=user_id,
            action=action.value,
            entity_type=entity_type,
            entity_id=entity_id,
            entity_identifier=entity_identifier,
            enrollment_id=enrollment_id,
            old_values=old_values,
            new_values=new_values,
            comment=comment,
            ip_address=ip_address,
        )
        self.db.add(entry)
        await self.db.flush()
        return entry
