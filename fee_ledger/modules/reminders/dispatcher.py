"""Delivery of installment reminders to an outside notification channel."""

import logging
from collections.abc import AsyncIterator
from typing import Protocol

import httpx

from fee_ledger.core.config import settings
from fee_ledger.core.exceptions import ServiceUnavailableError
from fee_ledger.modules.reminders.schemas import DueInstallment

logger = logging.getLogger(__name__)


class ReminderDeliveryError(Exception):
    """A single reminder could not be handed over."""


class ReminderDispatcher(Protocol):
    async def send(self, reminder: DueInstallment) -> None: ...


class WebhookReminderDispatcher:
    """
    Posts each reminder as JSON to a webhook (SMS/e-mail gateway, n8n flow, ...).

    Any transport failure or non-2xx answer becomes ReminderDeliveryError.
    """

    def __init__(self, url: str, client: httpx.AsyncClient):
        self.url = url
        self.client = client

    async def send(self, reminder: DueInstallment) -> None:
        try:
            response = await self.client.post(self.url, json=reminder.model_dump(mode="json"))
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise ReminderDeliveryError(
                f"Webhook answered {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise ReminderDeliveryError(f"Webhook unreachable: {exc}") from exc

        logger.debug("Reminder for installment %s delivered", reminder.installment_id)


async def get_reminder_dispatcher() -> AsyncIterator[ReminderDispatcher]:
    """FastAPI dependency: webhook dispatcher, or 503 when none is configured."""
    if not settings.reminders_enabled:
        raise ServiceUnavailableError("Reminder delivery is not configured")

    async with httpx.AsyncClient(timeout=settings.reminder_webhook_timeout) as client:
        yield WebhookReminderDispatcher(settings.reminder_webhook_url, client)
