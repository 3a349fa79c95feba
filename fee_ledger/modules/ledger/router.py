"""API endpoints for the student ledger."""

from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from fee_ledger.core.auth.dependencies import AdminUser, ReaderUser, WriterUser
from fee_ledger.core.database.session import get_db
from fee_ledger.modules.ledger.schemas import (
    ChainVerification,
    EnrollmentLedger,
    EnrollmentLedgerSummary,
    LedgerDeletionFilters,
    LedgerDeletionResponse,
    LedgerEntryCreate,
    LedgerEntryDelete,
    LedgerEntryResponse,
    LedgerSummaryRequest,
    PaymentMethodLedger,
)
from fee_ledger.modules.ledger.service import LedgerService
from fee_ledger.shared.schemas.base import ApiResponse, PaginatedResponse

router = APIRouter(tags=["Student Ledger"])


@router.get(
    "/student-ledgers/enrollment/{enrollment_id}",
    response_model=ApiResponse[EnrollmentLedger],
)
async def get_enrollment_ledger(
    enrollment_id: int,
    current_user: ReaderUser,
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """Entries of one enrollment in chain order, with totals and current balance."""
    ledger = await LedgerService(db).list_for_enrollment(enrollment_id, start_date, end_date)
    return ApiResponse(data=ledger)


@router.post(
    "/student-ledgers/enrollment/{enrollment_id}",
    response_model=ApiResponse[LedgerEntryResponse],
    status_code=status.HTTP_201_CREATED,
)
async def append_ledger_entry(
    enrollment_id: int,
    data: LedgerEntryCreate,
    current_user: WriterUser,
    db: AsyncSession = Depends(get_db),
):
    """Append a transaction to an enrollment's ledger."""
    entry = await LedgerService(db).append_entry(enrollment_id, data, current_user.id)
    return ApiResponse(
        data=LedgerEntryResponse.model_validate(entry),
        message="Ledger entry created successfully",
    )


@router.delete(
    "/ledger-entries/{entry_id}",
    response_model=ApiResponse[LedgerDeletionResponse],
)
async def delete_ledger_entry(
    entry_id: int,
    data: LedgerEntryDelete,
    current_user: AdminUser,
    db: AsyncSession = Depends(get_db),
):
    """Logically delete an entry (reason required) and recompute balances."""
    deletion = await LedgerService(db).delete_entry(entry_id, data.reason, current_user.id)
    return ApiResponse(
        data=LedgerDeletionResponse.model_validate(deletion),
        message="Ledger entry deleted successfully",
    )


@router.get(
    "/student-ledgers/student/{student_id}",
    response_model=ApiResponse[PaginatedResponse[LedgerEntryResponse]],
)
async def get_student_ledger(
    student_id: int,
    current_user: ReaderUser,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """All of a student's entries across enrollments."""
    entries, total = await LedgerService(db).list_for_student(student_id, page, limit)
    return ApiResponse(
        data=PaginatedResponse.create(
            items=[LedgerEntryResponse.model_validate(e) for e in entries],
            total=total,
            page=page,
            limit=limit,
        ),
    )


@router.get(
    "/student-ledgers/by-payment-method",
    response_model=ApiResponse[PaymentMethodLedger],
)
async def get_entries_by_payment_method(
    current_user: ReaderUser,
    payment_method: str = Query(..., min_length=1),
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    db: AsyncSession = Depends(get_db),
):
    report = await LedgerService(db).entries_by_payment_method(
        payment_method, start_date, end_date
    )
    return ApiResponse(data=report)


@router.post(
    "/student-ledgers/summary",
    response_model=ApiResponse[list[EnrollmentLedgerSummary]],
)
async def summarize_ledgers(
    data: LedgerSummaryRequest,
    current_user: ReaderUser,
    db: AsyncSession = Depends(get_db),
):
    """Totals and balances for several enrollments at once."""
    summaries = await LedgerService(db).summarize(
        data.enrollment_ids, data.start_date, data.end_date
    )
    return ApiResponse(data=summaries)


@router.get(
    "/student-ledgers/enrollment/{enrollment_id}/verify",
    response_model=ApiResponse[ChainVerification],
)
async def verify_enrollment_ledger(
    enrollment_id: int,
    current_user: ReaderUser,
    db: AsyncSession = Depends(get_db),
):
    """Check stored balances against a fresh walk of the chain."""
    return ApiResponse(data=await LedgerService(db).verify_chain(enrollment_id))


@router.get(
    "/student-ledger-deletions",
    response_model=ApiResponse[PaginatedResponse[LedgerDeletionResponse]],
)
async def list_ledger_deletions(
    current_user: ReaderUser,
    enrollment_id: int | None = Query(None),
    student_id: int | None = Query(None),
    deleted_by_id: int | None = Query(None),
    date_from: date | None = Query(None),
    date_to: date | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """Deletion snapshots, newest first."""
    filters = LedgerDeletionFilters(
        enrollment_id=enrollment_id,
        student_id=student_id,
        deleted_by_id=deleted_by_id,
        date_from=date_from,
        date_to=date_to,
        page=page,
        limit=limit,
    )
    deletions, total = await LedgerService(db).list_deletions(filters)
    return ApiResponse(
        data=PaginatedResponse.create(
            items=[LedgerDeletionResponse.model_validate(d) for d in deletions],
            total=total,
            page=page,
            limit=limit,
        ),
    )
