"""API endpoints for due-soon installments and reminders."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from fee_ledger.core.auth.dependencies import ReaderUser, WriterUser
from fee_ledger.core.config import settings
from fee_ledger.core.database.session import get_db
from fee_ledger.modules.reminders.dispatcher import ReminderDispatcher, get_reminder_dispatcher
from fee_ledger.modules.reminders.schemas import (
    DueInstallment,
    ReminderDispatchRequest,
    ReminderDispatchSummary,
)
from fee_ledger.modules.reminders.service import MAX_DAYS_AHEAD, ReminderService
from fee_ledger.shared.schemas.base import ApiResponse

# Mounted before the installments router so these paths win over /{installment_id}
router = APIRouter(prefix="/fee-installments", tags=["Reminders"])


@router.get("/due-soon", response_model=ApiResponse[list[DueInstallment]])
async def list_due_soon(
    current_user: ReaderUser,
    days: int | None = Query(None, ge=0, le=MAX_DAYS_AHEAD),
    db: AsyncSession = Depends(get_db),
):
    """Unpaid installments due between today and today + days."""
    if days is None:
        days = settings.due_soon_default_days
    items = await ReminderService(db).find_due_within(days)
    return ApiResponse(data=items)


@router.post("/reminders", response_model=ApiResponse[ReminderDispatchSummary])
async def send_reminders(
    data: ReminderDispatchRequest,
    current_user: WriterUser,
    db: AsyncSession = Depends(get_db),
    dispatcher: ReminderDispatcher = Depends(get_reminder_dispatcher),
):
    """Hand reminders for the given installments to the notification webhook."""
    summary = await ReminderService(db).dispatch_reminders(
        data.installment_ids, dispatcher, user_id=current_user.id
    )
    return ApiResponse(
        data=summary,
        message=f"{summary.sent} of {summary.requested} reminders sent",
    )
