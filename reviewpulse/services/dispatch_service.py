import logging
from datetime import timedelta

from pydantic import BaseModel, Field

from reviewpulse.errors import DeliveryError
from reviewpulse.models.common import Clock, utc_now
from reviewpulse.notifiers import Notifier
from reviewpulse.pipeline.notification_policy import next_delivery_time
from reviewpulse.store import ReviewStore

LOGGER = logging.getLogger(__name__)


class DispatchReport(BaseModel):
    sent_ids: list[str] = Field(default_factory=list)
    deferred_ids: list[str] = Field(default_factory=list)
    retry_ids: list[str] = Field(default_factory=list)
    failed_ids: list[str] = Field(default_factory=list)


class NotificationDispatcher:
    """Hands due notification records to the delivery collaborator."""

    def __init__(
        self,
        store: ReviewStore,
        notifier: Notifier,
        *,
        max_attempts: int = 3,
        lease: timedelta = timedelta(minutes=5),
        retry_delay: timedelta = timedelta(minutes=10),
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._notifier = notifier
        self._max_attempts = max(1, int(max_attempts))
        self._lease = lease
        self._retry_delay = retry_delay
        self._clock = clock

    async def dispatch_due(self, *, limit: int = 50) -> DispatchReport:
        report = DispatchReport()
        for _ in range(max(0, int(limit))):
            now = self._clock()
            record = await self._store.claim_due_notification(now, lease=self._lease)
            if record is None:
                break

            # Preferences may have changed, or the dispatcher may run late, since the record was created.
            preferences = await self._store.get_preferences(record.user_id)
            deliver_after = next_delivery_time(now, preferences)
            if deliver_after > now:
                await self._store.release_notification(
                    record.id,
                    deliver_after=deliver_after,
                    error_message=record.error_message,
                )
                report.deferred_ids.append(record.id)
                continue

            attempt = record.attempts + 1
            try:
                await self._notifier.send(record)
            except DeliveryError as exc:
                if attempt >= self._max_attempts:
                    LOGGER.error("Notification %s failed after %s attempts: %s", record.id, attempt, exc)
                    await self._store.mark_notification_failed(record.id, error_message=str(exc), attempts=attempt)
                    report.failed_ids.append(record.id)
                else:
                    LOGGER.warning("Notification %s delivery attempt %s failed: %s", record.id, attempt, exc)
                    await self._store.release_notification(
                        record.id,
                        deliver_after=now + self._retry_delay,
                        error_message=str(exc),
                        attempts=attempt,
                    )
                    report.retry_ids.append(record.id)
                continue

            await self._store.mark_notification_sent(record.id, sent_at=now, attempts=attempt)
            report.sent_ids.append(record.id)

        if report.sent_ids or report.deferred_ids or report.retry_ids or report.failed_ids:
            LOGGER.info(
                "Dispatch sent=%s deferred=%s retry=%s failed=%s",
                len(report.sent_ids),
                len(report.deferred_ids),
                len(report.retry_ids),
                len(report.failed_ids),
            )
        return report
