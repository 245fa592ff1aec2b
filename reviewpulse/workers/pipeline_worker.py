from __future__ import annotations

import asyncio
import logging
from typing import Any

from reviewpulse.config import Settings, settings
from reviewpulse.database import ensure_indexes, mongo_database
from reviewpulse.dependencies import Pipeline, build_pipeline
from reviewpulse.errors import ReviewPulseError
from reviewpulse.models.common import PLATFORMS
from reviewpulse.services.retry import retry_transient
from reviewpulse.store import MongoReviewStore

LOGGER = logging.getLogger("pipeline_worker")


class PipelineWorker:
    """Drives ingestion, classification, notification and delivery in polling rounds.

    Every unit of work is independent: a failure is logged against its business
    or review and the round moves on. Notification evaluation is its own sweep
    over completed reviews that have not been evaluated yet, so a review whose
    alerts could not be created is retried on a later round.
    """

    def __init__(
        self,
        pipeline: Pipeline,
        *,
        poll_seconds: int = 30,
        batch_size: int = 50,
        max_fetch_attempts: int = 3,
        retry_backoff_seconds: float = 2.0,
    ) -> None:
        self._pipeline = pipeline
        self._poll_seconds = max(1, int(poll_seconds))
        self._batch_size = max(1, int(batch_size))
        self._max_fetch_attempts = max(1, int(max_fetch_attempts))
        self._retry_backoff_seconds = max(0.0, float(retry_backoff_seconds))

    async def run_forever(self) -> None:
        LOGGER.info("Pipeline worker started. Poll interval: %ss", self._poll_seconds)
        while True:
            summary = await self.run_once()
            if not (summary["ingested"] or summary["classified"] or summary["notified"] or summary["sent"]):
                await asyncio.sleep(self._poll_seconds)

    async def run_once(self) -> dict[str, int]:
        summary = {"ingested": 0, "classified": 0, "notified": 0, "sent": 0, "errors": 0}
        await self._ingest_businesses(summary)
        await self._classify_pending(summary)
        await self._notify_completed(summary)
        await self._dispatch(summary)
        return summary

    async def _ingest_businesses(self, summary: dict[str, Any]) -> None:
        try:
            businesses = await self._pipeline.store.list_active_businesses()
        except Exception:  # noqa: BLE001
            summary["errors"] += 1
            LOGGER.exception("Could not list businesses to ingest")
            return

        for business in businesses:
            for platform in PLATFORMS:
                if not business.is_monitoring(platform) or business.external_id(platform) is None:
                    continue
                try:
                    result = await retry_transient(
                        lambda: self._pipeline.ingestion.ingest(business.id, platform),
                        attempts=self._max_fetch_attempts,
                        base_delay=self._retry_backoff_seconds,
                    )
                except ReviewPulseError as exc:
                    summary["errors"] += 1
                    LOGGER.warning("Ingestion failed business=%s platform=%s: %s", business.id, platform, exc)
                    continue
                except Exception:  # noqa: BLE001
                    summary["errors"] += 1
                    LOGGER.exception("Ingestion failed business=%s platform=%s", business.id, platform)
                    continue

                summary["ingested"] += result.inserted_count
                for failure in result.failures:
                    LOGGER.warning(
                        "Review %s from %s for business=%s not ingested: %s",
                        failure.platform_review_id,
                        platform,
                        business.id,
                        failure.reason,
                    )

    async def _classify_pending(self, summary: dict[str, Any]) -> None:
        try:
            review_ids = await self._pipeline.classification.claimable_review_ids(limit=self._batch_size)
        except Exception:  # noqa: BLE001
            summary["errors"] += 1
            LOGGER.exception("Could not list reviews to classify")
            return

        for review_id in review_ids:
            try:
                outcome = await self._pipeline.classification.classify(review_id)
            except ReviewPulseError as exc:
                summary["errors"] += 1
                LOGGER.warning("Classification failed review=%s: %s", review_id, exc)
                continue
            except Exception:  # noqa: BLE001
                summary["errors"] += 1
                LOGGER.exception("Classification failed review=%s", review_id)
                continue
            if outcome.status == "completed":
                summary["classified"] += 1

    async def _notify_completed(self, summary: dict[str, Any]) -> None:
        try:
            review_ids = await self._pipeline.store.list_unnotified_review_ids(limit=self._batch_size)
        except Exception:  # noqa: BLE001
            summary["errors"] += 1
            LOGGER.exception("Could not list reviews awaiting notifications")
            return

        for review_id in review_ids:
            try:
                outcome = await retry_transient(
                    lambda: self._pipeline.notifications.evaluate_review(review_id),
                    attempts=self._max_fetch_attempts,
                    base_delay=self._retry_backoff_seconds,
                )
            except ReviewPulseError as exc:
                summary["errors"] += 1
                LOGGER.warning("Notification evaluation failed review=%s: %s", review_id, exc)
                continue
            except Exception:  # noqa: BLE001
                summary["errors"] += 1
                LOGGER.exception("Notification evaluation failed review=%s", review_id)
                continue
            summary["notified"] += len(outcome.created_ids)

    async def _dispatch(self, summary: dict[str, Any]) -> None:
        try:
            report = await self._pipeline.dispatcher.dispatch_due(limit=self._batch_size)
        except Exception:  # noqa: BLE001
            summary["errors"] += 1
            LOGGER.exception("Notification dispatch failed")
            return
        summary["sent"] += len(report.sent_ids)


async def _main(config: Settings) -> None:
    async with mongo_database(config) as database:
        await ensure_indexes(database)
        pipeline = build_pipeline(MongoReviewStore(database), config)
        worker = PipelineWorker(
            pipeline,
            poll_seconds=config.worker_poll_seconds,
            batch_size=config.worker_batch_size,
            max_fetch_attempts=config.max_fetch_attempts,
            retry_backoff_seconds=config.retry_backoff_seconds,
        )
        await worker.run_forever()


if __name__ == "__main__":
    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    asyncio.run(_main(settings))
