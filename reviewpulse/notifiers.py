import asyncio
import logging
from typing import Protocol

from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail

from reviewpulse.errors import DeliveryError
from reviewpulse.models import NotificationRecord

LOGGER = logging.getLogger(__name__)


class Notifier(Protocol):
    async def send(self, record: NotificationRecord) -> None: ...


class LoggingNotifier:
    """Writes notifications to the log instead of sending them. For local development."""

    async def send(self, record: NotificationRecord) -> None:
        if not record.recipient:
            raise DeliveryError(f"Notification {record.id} has no recipient.")
        LOGGER.info("[EMAIL MOCK] To: %s | Subject: %s\n%s", record.recipient, record.subject, record.body)


class SendGridNotifier:
    def __init__(self, api_key: str, *, sender: str) -> None:
        if not api_key:
            raise ValueError("SendGrid API key is required.")
        self._client = SendGridAPIClient(api_key)
        self._sender = sender

    async def send(self, record: NotificationRecord) -> None:
        if not record.recipient:
            raise DeliveryError(f"Notification {record.id} has no recipient.")
        message = Mail(
            from_email=self._sender,
            to_emails=record.recipient,
            subject=record.subject,
            plain_text_content=record.body,
        )
        try:
            response = await asyncio.to_thread(self._client.send, message)
        except Exception as exc:  # noqa: BLE001
            raise DeliveryError(f"SendGrid rejected notification {record.id}: {exc}") from exc

        status_code = int(getattr(response, "status_code", 0) or 0)
        if status_code >= 400:
            raise DeliveryError(f"SendGrid returned HTTP {status_code} for notification {record.id}.")
