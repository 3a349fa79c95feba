"""API endpoints for fee installments."""

from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from fee_ledger.core.auth.dependencies import ReaderUser, WriterUser
from fee_ledger.core.database.session import get_db
from fee_ledger.core.exceptions import ValidationError
from fee_ledger.modules.installments.schemas import (
    FeeInstallmentCreate,
    FeeInstallmentDetail,
    FeeInstallmentFilters,
    FeeInstallmentResponse,
    FeeInstallmentUpdate,
    FeeStatement,
    GenerateInstallmentsRequest,
)
from fee_ledger.modules.installments.service import InstallmentService
from fee_ledger.modules.installments.status import InstallmentStatus
from fee_ledger.shared.schemas.base import ApiResponse

router = APIRouter(prefix="/fee-installments", tags=["Fee Installments"])
enrollments_router = APIRouter(prefix="/enrollments", tags=["Fee Installments"])


# --- Enrollment-scoped Endpoints ---


@enrollments_router.post(
    "/{enrollment_id}/generate-installments",
    response_model=ApiResponse[list[FeeInstallmentResponse]],
    status_code=status.HTTP_201_CREATED,
)
async def generate_installments(
    enrollment_id: int,
    data: GenerateInstallmentsRequest,
    current_user: WriterUser,
    db: AsyncSession = Depends(get_db),
):
    """Split the enrollment's annual fee into dated installments."""
    today = date.today()
    installments = await InstallmentService(db).generate_schedule(
        enrollment_id, data, current_user.id, today=today
    )
    return ApiResponse(
        data=[
            FeeInstallmentResponse.model_validate(i, context={"today": today})
            for i in installments
        ],
        message=f"{len(installments)} installments generated",
    )


@enrollments_router.get(
    "/{enrollment_id}/fee-statement",
    response_model=ApiResponse[FeeStatement],
)
async def get_fee_statement(
    enrollment_id: int,
    current_user: ReaderUser,
    db: AsyncSession = Depends(get_db),
):
    """Statement data (installments, payments, totals, ledger balance)."""
    statement = await InstallmentService(db).get_fee_statement(enrollment_id)
    return ApiResponse(data=statement)


# --- Installment Endpoints ---


@router.get("", response_model=ApiResponse[list[FeeInstallmentResponse]])
async def list_installments(
    current_user: ReaderUser,
    enrollment_id: int | None = Query(None),
    student_academic_year_id: int | None = Query(
        None, description="Alias of enrollment_id"
    ),
    student_id: int | None = Query(None),
    status: InstallmentStatus | None = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """List installments of an enrollment or a student, ordered by due date."""
    if (
        enrollment_id is not None
        and student_academic_year_id is not None
        and enrollment_id != student_academic_year_id
    ):
        raise ValidationError(
            "enrollment_id and student_academic_year_id disagree", field="enrollment_id"
        )

    today = date.today()
    filters = FeeInstallmentFilters(
        enrollment_id=enrollment_id if enrollment_id is not None else student_academic_year_id,
        student_id=student_id,
        status=status,
    )
    installments = await InstallmentService(db).list_installments(filters, today=today)
    return ApiResponse(
        data=[
            FeeInstallmentResponse.model_validate(i, context={"today": today})
            for i in installments
        ],
    )


@router.post(
    "",
    response_model=ApiResponse[FeeInstallmentDetail],
    status_code=status.HTTP_201_CREATED,
)
async def create_installment(
    data: FeeInstallmentCreate,
    current_user: WriterUser,
    db: AsyncSession = Depends(get_db),
):
    """Add a single installment to an enrollment."""
    installment = await InstallmentService(db).create_installment(data, current_user.id)
    return ApiResponse(
        data=FeeInstallmentDetail.model_validate(installment),
        message="Installment created successfully",
    )


@router.get("/{installment_id}", response_model=ApiResponse[FeeInstallmentDetail])
async def get_installment(
    installment_id: int,
    current_user: ReaderUser,
    db: AsyncSession = Depends(get_db),
):
    """Get installment by ID with its payments."""
    installment = await InstallmentService(db).get_installment(installment_id)
    return ApiResponse(data=FeeInstallmentDetail.model_validate(installment))


@router.put("/{installment_id}", response_model=ApiResponse[FeeInstallmentDetail])
async def update_installment(
    installment_id: int,
    data: FeeInstallmentUpdate,
    current_user: WriterUser,
    db: AsyncSession = Depends(get_db),
):
    installment = await InstallmentService(db).update_installment(
        installment_id, data, current_user.id
    )
    return ApiResponse(
        data=FeeInstallmentDetail.model_validate(installment),
        message="Installment updated successfully",
    )


@router.delete("/{installment_id}", response_model=ApiResponse[None])
async def delete_installment(
    installment_id: int,
    current_user: WriterUser,
    db: AsyncSession = Depends(get_db),
):
    """Delete an installment and all of its payments."""
    await InstallmentService(db).delete_installment(installment_id, current_user.id)
    return ApiResponse(data=None, message="Installment deleted successfully")
