"""API endpoints for installment payments and payment methods."""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from fee_ledger.core.auth.dependencies import ReaderUser, WriterUser
from fee_ledger.core.database.session import get_db
from fee_ledger.modules.installments.schemas import FeeInstallmentDetail
from fee_ledger.modules.payments.schemas import (
    FeePaymentCreate,
    FeePaymentResponse,
    FeePaymentUpdate,
    PaymentMethodCreate,
    PaymentMethodResponse,
)
from fee_ledger.modules.payments.service import FeePaymentService
from fee_ledger.shared.schemas.base import ApiResponse

router = APIRouter(prefix="/student-fee-payments", tags=["Fee Payments"])
methods_router = APIRouter(prefix="/payment-methods", tags=["Fee Payments"])


# --- Payment Endpoints ---


@router.get("", response_model=ApiResponse[list[FeePaymentResponse]])
async def list_payments(
    current_user: ReaderUser,
    fee_installment_id: int = Query(...),
    db: AsyncSession = Depends(get_db),
):
    """Payments of one installment, oldest first."""
    payments = await FeePaymentService(db).list_payments(fee_installment_id)
    return ApiResponse(data=[FeePaymentResponse.model_validate(p) for p in payments])


@router.post(
    "",
    response_model=ApiResponse[FeePaymentResponse],
    status_code=status.HTTP_201_CREATED,
)
async def record_payment(
    data: FeePaymentCreate,
    current_user: WriterUser,
    db: AsyncSession = Depends(get_db),
):
    """Record a payment against an installment."""
    payment = await FeePaymentService(db).record_payment(data, current_user.id)
    return ApiResponse(
        data=FeePaymentResponse.model_validate(payment),
        message="Payment recorded successfully",
    )


@router.get("/{payment_id}", response_model=ApiResponse[FeePaymentResponse])
async def get_payment(
    payment_id: int,
    current_user: ReaderUser,
    db: AsyncSession = Depends(get_db),
):
    """Get payment by ID."""
    payment = await FeePaymentService(db).get_payment(payment_id)
    return ApiResponse(data=FeePaymentResponse.model_validate(payment))


@router.put("/{payment_id}", response_model=ApiResponse[FeePaymentResponse])
async def update_payment(
    payment_id: int,
    data: FeePaymentUpdate,
    current_user: WriterUser,
    db: AsyncSession = Depends(get_db),
):
    payment = await FeePaymentService(db).update_payment(payment_id, data, current_user.id)
    return ApiResponse(
        data=FeePaymentResponse.model_validate(payment),
        message="Payment updated successfully",
    )


@router.delete("/{payment_id}", response_model=ApiResponse[FeeInstallmentDetail])
async def delete_payment(
    payment_id: int,
    current_user: WriterUser,
    db: AsyncSession = Depends(get_db),
):
    """Delete a payment; returns the installment with its amounts restored."""
    installment = await FeePaymentService(db).delete_payment(payment_id, current_user.id)
    return ApiResponse(
        data=FeeInstallmentDetail.model_validate(installment),
        message="Payment deleted successfully",
    )


# --- Payment Method Endpoints ---


@methods_router.get("", response_model=ApiResponse[list[PaymentMethodResponse]])
async def list_payment_methods(
    current_user: ReaderUser,
    include_inactive: bool = Query(False),
    db: AsyncSession = Depends(get_db),
):
    methods = await FeePaymentService(db).list_payment_methods(include_inactive)
    return ApiResponse(data=[PaymentMethodResponse.model_validate(m) for m in methods])


@methods_router.post(
    "",
    response_model=ApiResponse[PaymentMethodResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_payment_method(
    data: PaymentMethodCreate,
    current_user: WriterUser,
    db: AsyncSession = Depends(get_db),
):
    method = await FeePaymentService(db).create_payment_method(data, current_user.id)
    return ApiResponse(
        data=PaymentMethodResponse.model_validate(method),
        message="Payment method created successfully",
    )
