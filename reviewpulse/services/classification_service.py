import logging
from datetime import datetime, timedelta
from typing import Literal

from pydantic import BaseModel, Field

from reviewpulse.errors import InvalidInputError, NotFoundError, PersistenceError
from reviewpulse.models import ReviewTag, SentimentRecord, SentimentResult
from reviewpulse.models.common import Clock, utc_now
from reviewpulse.pipeline.sentiment import SentimentAnalyzer
from reviewpulse.store import ReviewStore

LOGGER = logging.getLogger(__name__)


class ClassificationOutcome(BaseModel):
    review_id: str
    status: Literal["completed", "skipped"]
    reason: str | None = None
    result: SentimentResult | None = None
    tags: list[ReviewTag] = Field(default_factory=list)


class ReviewClassificationService:
    def __init__(
        self,
        store: ReviewStore,
        analyzer: SentimentAnalyzer,
        *,
        processing_lease: timedelta = timedelta(minutes=10),
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._analyzer = analyzer
        self._processing_lease = processing_lease
        self._clock = clock

    async def claimable_review_ids(self, *, limit: int) -> list[str]:
        """Pending reviews plus ``processing`` ones whose claim outlived the lease."""
        review_ids = await self._store.list_review_ids("pending", limit=limit)
        remaining = limit - len(review_ids)
        if remaining > 0:
            review_ids += await self._store.list_review_ids(
                "processing",
                limit=remaining,
                updated_before=self._stale_before(),
            )
        return review_ids

    async def classify(self, review_id: str, *, retry_failed: bool = False) -> ClassificationOutcome:
        from_statuses = ("pending", "failed") if retry_failed else ("pending",)
        review = await self._store.claim_review(review_id, from_statuses, stale_before=self._stale_before())
        if review is None:
            existing = await self._store.get_review(review_id)
            if existing is None:
                raise NotFoundError(f"Review '{review_id}' not found.")
            LOGGER.info("Review %s not claimable (status=%s)", review_id, existing.processing_status)
            return ClassificationOutcome(
                review_id=review_id,
                status="skipped",
                reason=f"review is {existing.processing_status}",
            )

        try:
            result = self._analyzer.analyze(review.text)
        except InvalidInputError as exc:
            LOGGER.warning("Review %s cannot be classified: %s", review_id, exc)
            await self._store.transition_review(
                review_id,
                expected="processing",
                status="failed",
                error_message=str(exc),
            )
            raise

        tags = self._analyzer.derive_tags(result)
        record = SentimentRecord(
            review_id=review_id,
            business_id=review.business_id,
            result=result,
            tags=tags,
            analyzed_at=self._clock(),
        )
        try:
            await self._store.save_sentiment(record)
            completed = await self._store.transition_review(review_id, expected="processing", status="completed")
        except PersistenceError as exc:
            LOGGER.exception("Storing classification of review %s failed; returning it to pending", review_id)
            await self._rollback(review_id, str(exc))
            raise
        if not completed:
            raise PersistenceError(f"Review '{review_id}' left processing before it could be completed.")

        LOGGER.info(
            "Classified review=%s label=%s score=%.2f tags=%s",
            review_id,
            result.label,
            result.score,
            len(tags),
        )
        return ClassificationOutcome(review_id=review_id, status="completed", result=result, tags=tags)

    def _stale_before(self) -> datetime:
        return self._clock() - self._processing_lease

    async def _rollback(self, review_id: str, error_message: str) -> None:
        try:
            await self._store.transition_review(
                review_id,
                expected="processing",
                status="pending",
                error_message=error_message,
            )
        except PersistenceError:
            LOGGER.exception("Could not return review %s to pending", review_id)
