"""Tests for due-soon selection and reminder dispatch."""

import json
from datetime import date, timedelta
from decimal import Decimal

import httpx
import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fee_ledger.core.audit.models import AuditLog
from fee_ledger.core.exceptions import ValidationError
from fee_ledger.main import app
from fee_ledger.modules.enrollments.models import Enrollment
from fee_ledger.modules.installments.schemas import FeeInstallmentCreate
from fee_ledger.modules.installments.service import InstallmentService
from fee_ledger.modules.installments.status import InstallmentStatus
from fee_ledger.modules.payments.schemas import FeePaymentCreate
from fee_ledger.modules.payments.service import FeePaymentService
from fee_ledger.modules.reminders.dispatcher import (
    ReminderDeliveryError,
    WebhookReminderDispatcher,
    get_reminder_dispatcher,
)
from fee_ledger.modules.reminders.schemas import DueInstallment
from fee_ledger.modules.reminders.service import ReminderService

TODAY = date(2025, 1, 10)


async def add_installment(
    db_session: AsyncSession,
    enrollment_id: int,
    title: str,
    due_date: date,
    amount_due: str = "300",
    today: date = TODAY,
) -> int:
    installment = await InstallmentService(db_session).create_installment(
        FeeInstallmentCreate(
            enrollment_id=enrollment_id,
            title=title,
            amount_due=Decimal(amount_due),
            due_date=due_date,
        ),
        today=today,
    )
    return installment.id


async def pay(db_session: AsyncSession, installment_id: int, amount: str, today: date = TODAY):
    await FeePaymentService(db_session).record_payment(
        FeePaymentCreate(fee_installment_id=installment_id, amount=Decimal(amount), payment_date=today),
        today=today,
    )


class RecordingDispatcher:
    """Collects reminders; fails for the installment ids it is told to."""

    def __init__(self, failing: set[int] | None = None):
        self.failing = failing or set()
        self.sent: list[DueInstallment] = []

    async def send(self, reminder: DueInstallment) -> None:
        if reminder.installment_id in self.failing:
            raise ReminderDeliveryError("gateway rejected the message")
        self.sent.append(reminder)


class TestFindDueWithin:
    """Tests for ReminderService.find_due_within."""

    async def test_selects_unpaid_in_window_sorted(
        self, db_session: AsyncSession, enrollment: Enrollment
    ):
        eid = enrollment.id
        later = await add_installment(db_session, eid, "Later", TODAY + timedelta(days=5))
        today_due = await add_installment(db_session, eid, "Today", TODAY)
        partial = await add_installment(db_session, eid, "Partial", TODAY + timedelta(days=2))
        await pay(db_session, partial, "100")
        paid = await add_installment(db_session, eid, "Paid", TODAY + timedelta(days=1))
        await pay(db_session, paid, "300")
        await add_installment(
            db_session, eid, "Past", TODAY - timedelta(days=1), today=TODAY - timedelta(days=30)
        )
        await add_installment(db_session, eid, "Far", TODAY + timedelta(days=8))

        items = await ReminderService(db_session).find_due_within(7, today=TODAY)

        assert [i.installment_id for i in items] == [today_due, partial, later]
        assert [i.days_until_due for i in items] == [0, 2, 5]
        assert items[1].status == InstallmentStatus.PARTIAL
        assert items[1].remaining_amount == Decimal("200.00")
        assert items[0].enrollment.student_name == "Amina Otieno"
        assert items[0].enrollment.guardian_phone == "+254711000111"
        assert items[0].enrollment.classroom_name == "4A"

    async def test_zero_days_means_due_today(
        self, db_session: AsyncSession, enrollment: Enrollment
    ):
        eid = enrollment.id
        due_today = await add_installment(db_session, eid, "Today", TODAY)
        await add_installment(db_session, eid, "Tomorrow", TODAY + timedelta(days=1))

        items = await ReminderService(db_session).find_due_within(0, today=TODAY)

        assert [i.installment_id for i in items] == [due_today]

    @pytest.mark.parametrize("days", [-1, 366])
    async def test_days_out_of_range(self, db_session: AsyncSession, days: int):
        with pytest.raises(ValidationError) as exc_info:
            await ReminderService(db_session).find_due_within(days, today=TODAY)
        assert exc_info.value.details["field"] == "days"


class TestDispatchReminders:
    """Tests for ReminderService.dispatch_reminders."""

    async def test_partial_failure_keeps_going(
        self, db_session: AsyncSession, enrollment: Enrollment, admin_user
    ):
        eid = enrollment.id
        admin_id = admin_user.id
        first = await add_installment(db_session, eid, "First", TODAY + timedelta(days=1))
        broken = await add_installment(db_session, eid, "Broken", TODAY + timedelta(days=2))
        settled = await add_installment(db_session, eid, "Settled", TODAY + timedelta(days=3))
        await pay(db_session, settled, "300")
        dispatcher = RecordingDispatcher(failing={broken})

        summary = await ReminderService(db_session).dispatch_reminders(
            [first, broken, 999, settled, first],
            dispatcher,
            today=TODAY,
            user_id=admin_id,
        )

        assert summary.requested == 4
        assert summary.sent == 1
        assert summary.failed == 3
        assert [r.installment_id for r in summary.results] == [first, broken, 999, settled]
        assert [r.sent for r in summary.results] == [True, False, False, False]
        assert summary.results[1].error == "gateway rejected the message"
        assert "not found" in summary.results[2].error
        assert "already paid" in summary.results[3].error
        assert [r.installment_id for r in dispatcher.sent] == [first]

        result = await db_session.execute(
            select(AuditLog.entity_id).where(AuditLog.action == "DISPATCH_REMINDERS")
        )
        assert result.scalars().all() == [first]

    async def test_unexpected_dispatcher_error_keeps_going(
        self, db_session: AsyncSession, enrollment: Enrollment
    ):
        eid = enrollment.id
        ids = [
            await add_installment(db_session, eid, f"Term {n}", TODAY + timedelta(days=n))
            for n in (1, 2, 3)
        ]

        class TimingOutDispatcher(RecordingDispatcher):
            def __init__(self):
                super().__init__()
                self.attempts: list[int] = []

            async def send(self, reminder: DueInstallment) -> None:
                self.attempts.append(reminder.installment_id)
                if len(self.attempts) == 1:
                    raise TimeoutError("gateway did not answer")
                await super().send(reminder)

        dispatcher = TimingOutDispatcher()

        summary = await ReminderService(db_session).dispatch_reminders(
            ids, dispatcher, today=TODAY
        )

        assert dispatcher.attempts == ids
        assert summary.sent == 2
        assert summary.failed == 1
        assert summary.results[0].sent is False
        assert summary.results[0].error.startswith("TimeoutError")
        assert [r.installment_id for r in dispatcher.sent] == ids[1:]

    async def test_webhook_dispatcher_posts_json(
        self, db_session: AsyncSession, enrollment: Enrollment
    ):
        installment_id = await add_installment(
            db_session, enrollment.id, "Term 2", TODAY + timedelta(days=4)
        )
        received: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            received.append(request)
            return httpx.Response(202)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            dispatcher = WebhookReminderDispatcher("https://hooks.example/reminders", http)
            summary = await ReminderService(db_session).dispatch_reminders(
                [installment_id], dispatcher, today=TODAY
            )

        assert summary.sent == 1
        assert len(received) == 1
        body = json.loads(received[0].content)
        assert body["installment_id"] == installment_id
        assert body["due_date"] == str(TODAY + timedelta(days=4))
        assert body["days_until_due"] == 4
        assert body["enrollment"]["guardian_name"] == "Grace Otieno"

    async def test_webhook_error_status_becomes_failure(
        self, db_session: AsyncSession, enrollment: Enrollment
    ):
        installment_id = await add_installment(
            db_session, enrollment.id, "Term 2", TODAY + timedelta(days=4)
        )

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(502)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            dispatcher = WebhookReminderDispatcher("https://hooks.example/reminders", http)
            summary = await ReminderService(db_session).dispatch_reminders(
                [installment_id], dispatcher, today=TODAY
            )

        assert summary.sent == 0
        assert summary.results[0].error == "Webhook answered 502"


class TestReminderEndpoints:
    """Tests for the due-soon and reminder endpoints."""

    async def test_due_soon(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        admin_headers: dict,
        enrollment: Enrollment,
    ):
        today = date.today()
        soon = await add_installment(
            db_session, enrollment.id, "Soon", today + timedelta(days=3), today=today
        )
        await add_installment(
            db_session, enrollment.id, "Later", today + timedelta(days=30), today=today
        )

        response = await client.get("/api/v1/fee-installments/due-soon", headers=admin_headers)
        assert response.status_code == 200
        assert [i["installment_id"] for i in response.json()["data"]] == [soon]

        response = await client.get(
            "/api/v1/fee-installments/due-soon", params={"days": 31}, headers=admin_headers
        )
        assert len(response.json()["data"]) == 2

        response = await client.get(
            "/api/v1/fee-installments/due-soon", params={"days": 400}, headers=admin_headers
        )
        assert response.status_code == 422

    async def test_send_reminders_unconfigured(
        self, client: AsyncClient, admin_headers: dict, monkeypatch
    ):
        from fee_ledger.core.config import settings

        monkeypatch.setattr(settings, "reminder_webhook_url", None)

        response = await client.post(
            "/api/v1/fee-installments/reminders",
            json={"installment_ids": [1]},
            headers=admin_headers,
        )

        assert response.status_code == 503

    async def test_send_reminders(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        admin_headers: dict,
        enrollment: Enrollment,
    ):
        today = date.today()
        installment_id = await add_installment(
            db_session, enrollment.id, "Soon", today + timedelta(days=2), today=today
        )
        dispatcher = RecordingDispatcher()

        async def override_dispatcher():
            yield dispatcher

        app.dependency_overrides[get_reminder_dispatcher] = override_dispatcher

        response = await client.post(
            "/api/v1/fee-installments/reminders",
            json={"installment_ids": [installment_id]},
            headers=admin_headers,
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["sent"] == 1
        assert data["failed"] == 0
        assert response.json()["message"] == "1 of 1 reminders sent"
        assert [r.installment_id for r in dispatcher.sent] == [installment_id]
