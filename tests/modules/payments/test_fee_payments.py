"""Tests for FeePaymentService and the student-fee-payment endpoints."""

from datetime import date
from decimal import Decimal

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fee_ledger.core.audit.models import AuditLog
from fee_ledger.core.exceptions import (
    ConflictError,
    DuplicateError,
    NotFoundError,
    ValidationError,
)
from fee_ledger.modules.enrollments.models import Enrollment
from fee_ledger.modules.installments.models import FeeInstallment
from fee_ledger.modules.installments.schemas import FeeInstallmentCreate
from fee_ledger.modules.installments.service import InstallmentService
from fee_ledger.modules.installments.status import InstallmentStatus
from fee_ledger.modules.payments.models import PaymentMethod, StudentFeePayment
from fee_ledger.modules.payments.schemas import (
    FeePaymentCreate,
    FeePaymentUpdate,
    PaymentMethodCreate,
)
from fee_ledger.modules.payments.service import FeePaymentService

TODAY = date(2024, 9, 5)
DUE = date(2024, 10, 1)


async def create_installment(
    db_session: AsyncSession, enrollment_id: int, amount_due: str = "500"
) -> int:
    installment = await InstallmentService(db_session).create_installment(
        FeeInstallmentCreate(
            enrollment_id=enrollment_id,
            title="Installment 1",
            amount_due=Decimal(amount_due),
            due_date=DUE,
        ),
        today=TODAY,
    )
    return installment.id


def payment(installment_id: int, amount: str, **extra) -> FeePaymentCreate:
    return FeePaymentCreate(
        fee_installment_id=installment_id,
        amount=Decimal(amount),
        payment_date=TODAY,
        **extra,
    )


async def payments_sum(db_session: AsyncSession, installment_id: int) -> Decimal:
    result = await db_session.execute(
        select(StudentFeePayment.amount).where(
            StudentFeePayment.fee_installment_id == installment_id
        )
    )
    return sum(result.scalars().all(), Decimal("0.00"))


class TestFeePaymentService:
    """Tests for FeePaymentService."""

    async def test_partial_then_paid_then_overpayment(
        self, db_session: AsyncSession, enrollment: Enrollment
    ):
        """Test the 200 + 200 + 100 sequence and a rejected extra 50."""
        installment_id = await create_installment(db_session, enrollment.id)
        service = FeePaymentService(db_session)
        installments = InstallmentService(db_session)

        await service.record_payment(payment(installment_id, "200"), today=TODAY)
        await service.record_payment(payment(installment_id, "200"), today=TODAY)

        installment = await installments.get_installment(installment_id)
        assert installment.amount_paid == Decimal("400.00")
        assert installment.remaining_amount == Decimal("100.00")
        assert installment.status == InstallmentStatus.PARTIAL.value

        await service.record_payment(payment(installment_id, "100"), today=TODAY)

        installment = await installments.get_installment(installment_id)
        assert installment.amount_paid == Decimal("500.00")
        assert installment.remaining_amount == Decimal("0.00")
        assert installment.status == InstallmentStatus.PAID.value

        with pytest.raises(ConflictError) as exc_info:
            await service.record_payment(payment(installment_id, "50"), today=TODAY)
        assert exc_info.value.details["field"] == "amount"

        installment = await installments.get_installment(installment_id)
        assert installment.amount_paid == Decimal("500.00")
        assert len(installment.payments) == 3
        assert await payments_sum(db_session, installment_id) == installment.amount_paid

    async def test_overpayment_rejected_on_first_payment(
        self, db_session: AsyncSession, enrollment: Enrollment
    ):
        installment_id = await create_installment(db_session, enrollment.id, "500")

        with pytest.raises(ConflictError) as exc_info:
            await FeePaymentService(db_session).record_payment(
                payment(installment_id, "500.01"), today=TODAY
            )
        assert exc_info.value.details["remaining"] == "500.00"

    async def test_record_unknown_installment(self, db_session: AsyncSession):
        with pytest.raises(NotFoundError):
            await FeePaymentService(db_session).record_payment(payment(424242, "10"), today=TODAY)

    async def test_update_excludes_own_amount(
        self, db_session: AsyncSession, enrollment: Enrollment
    ):
        """Test that editing a payment can use its own amount as headroom."""
        installment_id = await create_installment(db_session, enrollment.id)
        service = FeePaymentService(db_session)
        await service.record_payment(payment(installment_id, "300"), today=TODAY)
        second = await service.record_payment(payment(installment_id, "100"), today=TODAY)
        second_id = second.id

        updated = await service.update_payment(
            second_id, FeePaymentUpdate(amount=Decimal("200")), today=TODAY
        )
        assert updated.amount == Decimal("200.00")

        installment = await InstallmentService(db_session).get_installment(installment_id)
        assert installment.amount_paid == Decimal("500.00")
        assert installment.status == InstallmentStatus.PAID.value

        with pytest.raises(ConflictError):
            await service.update_payment(
                second_id, FeePaymentUpdate(amount=Decimal("200.01")), today=TODAY
            )

    async def test_delete_then_readd_restores_state(
        self, db_session: AsyncSession, enrollment: Enrollment
    ):
        installment_id = await create_installment(db_session, enrollment.id)
        service = FeePaymentService(db_session)
        await service.record_payment(payment(installment_id, "200"), today=TODAY)
        last = await service.record_payment(payment(installment_id, "300"), today=TODAY)

        installment = await service.delete_payment(last.id, today=TODAY)
        assert installment.amount_paid == Decimal("200.00")
        assert installment.status == InstallmentStatus.PARTIAL.value
        assert len(installment.payments) == 1

        await service.record_payment(payment(installment_id, "300"), today=TODAY)
        installment = await InstallmentService(db_session).get_installment(installment_id)
        assert installment.amount_paid == Decimal("500.00")
        assert installment.status == InstallmentStatus.PAID.value

    async def test_deleting_all_payments_returns_to_pending(
        self, db_session: AsyncSession, enrollment: Enrollment
    ):
        installment_id = await create_installment(db_session, enrollment.id)
        service = FeePaymentService(db_session)
        only = await service.record_payment(payment(installment_id, "50"), today=TODAY)

        installment = await service.delete_payment(only.id, today=TODAY)

        assert installment.amount_paid == Decimal("0.00")
        assert installment.status == InstallmentStatus.PENDING.value

    async def test_payment_bumps_installment_version(
        self, db_session: AsyncSession, enrollment: Enrollment
    ):
        installment_id = await create_installment(db_session, enrollment.id)
        before = (await InstallmentService(db_session).get_installment(installment_id)).version_id

        await FeePaymentService(db_session).record_payment(
            payment(installment_id, "10"), today=TODAY
        )

        result = await db_session.execute(
            select(FeeInstallment.version_id).where(FeeInstallment.id == installment_id)
        )
        assert result.scalar_one() == before + 1

    async def test_inactive_payment_method_rejected(
        self, db_session: AsyncSession, enrollment: Enrollment
    ):
        installment_id = await create_installment(db_session, enrollment.id)
        method = PaymentMethod(name="cheque", display_name="Cheque", is_active=False)
        db_session.add(method)
        await db_session.commit()
        method_id = method.id

        with pytest.raises(ValidationError) as exc_info:
            await FeePaymentService(db_session).record_payment(
                payment(installment_id, "10", payment_method_id=method_id), today=TODAY
            )
        assert exc_info.value.details["field"] == "payment_method_id"

    async def test_payment_methods(self, db_session: AsyncSession):
        service = FeePaymentService(db_session)

        method = await service.create_payment_method(PaymentMethodCreate(name=" Mobile_Money "))
        assert method.name == "mobile_money"
        assert method.display_name == "Mobile Money"

        with pytest.raises(DuplicateError):
            await service.create_payment_method(PaymentMethodCreate(name="mobile_money"))

        methods = await service.list_payment_methods()
        assert [m.name for m in methods] == ["mobile_money"]

    async def test_mutations_are_audited(self, db_session: AsyncSession, enrollment: Enrollment):
        installment_id = await create_installment(db_session, enrollment.id)
        service = FeePaymentService(db_session)
        recorded = await service.record_payment(payment(installment_id, "25"), today=TODAY)
        await service.delete_payment(recorded.id, today=TODAY)

        result = await db_session.execute(
            select(AuditLog.action)
            .where(AuditLog.entity_type == "StudentFeePayment")
            .order_by(AuditLog.id)
        )
        assert result.scalars().all() == ["RECORD_PAYMENT", "DELETE_PAYMENT"]


class TestFeePaymentEndpoints:
    """Tests for the student-fee-payment API."""

    async def test_record_list_update_delete(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        admin_headers: dict,
        enrollment: Enrollment,
    ):
        installment_id = await create_installment(db_session, enrollment.id)

        response = await client.post(
            "/api/v1/student-fee-payments",
            json={
                "fee_installment_id": installment_id,
                "amount": "200.00",
                "payment_date": "2024-09-05",
            },
            headers=admin_headers,
        )
        assert response.status_code == 201
        payment_id = response.json()["data"]["id"]
        assert response.json()["data"]["created_by_id"] is not None

        response = await client.get(
            "/api/v1/student-fee-payments",
            params={"fee_installment_id": installment_id},
            headers=admin_headers,
        )
        assert response.status_code == 200
        assert [p["id"] for p in response.json()["data"]] == [payment_id]

        response = await client.put(
            f"/api/v1/student-fee-payments/{payment_id}",
            json={"amount": "250.00"},
            headers=admin_headers,
        )
        assert response.status_code == 200
        assert Decimal(response.json()["data"]["amount"]) == Decimal("250")

        response = await client.delete(
            f"/api/v1/student-fee-payments/{payment_id}", headers=admin_headers
        )
        assert response.status_code == 200
        data = response.json()["data"]
        assert Decimal(data["amount_paid"]) == Decimal("0")
        assert data["payments"] == []

    async def test_overpayment_returns_409(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        admin_headers: dict,
        enrollment: Enrollment,
    ):
        installment_id = await create_installment(db_session, enrollment.id, "100")

        response = await client.post(
            "/api/v1/student-fee-payments",
            json={
                "fee_installment_id": installment_id,
                "amount": "150",
                "payment_date": "2024-09-05",
            },
            headers=admin_headers,
        )

        assert response.status_code == 409
        assert response.json()["errors"][0]["field"] == "amount"

    async def test_non_positive_amount_rejected(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        admin_headers: dict,
        enrollment: Enrollment,
    ):
        installment_id = await create_installment(db_session, enrollment.id)

        response = await client.post(
            "/api/v1/student-fee-payments",
            json={"fee_installment_id": installment_id, "amount": "0", "payment_date": "2024-09-05"},
            headers=admin_headers,
        )

        assert response.status_code == 422
        assert response.json()["errors"][0]["field"] == "amount"

    async def test_payment_method_endpoints(self, client: AsyncClient, admin_headers: dict):
        response = await client.post(
            "/api/v1/payment-methods",
            json={"name": "cash"},
            headers=admin_headers,
        )
        assert response.status_code == 201

        response = await client.post(
            "/api/v1/payment-methods",
            json={"name": "cash"},
            headers=admin_headers,
        )
        assert response.status_code == 409

        response = await client.get("/api/v1/payment-methods", headers=admin_headers)
        assert [m["name"] for m in response.json()["data"]] == ["cash"]
