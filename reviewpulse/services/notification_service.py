import logging
from datetime import datetime

from pydantic import BaseModel, Field

from reviewpulse.errors import InvalidInputError, NotFoundError
from reviewpulse.models.common import Clock, utc_now
from reviewpulse.pipeline.notification_policy import NotificationPolicy
from reviewpulse.store import ReviewStore

LOGGER = logging.getLogger(__name__)


class NotificationOutcome(BaseModel):
    review_id: str
    created_ids: list[str] = Field(default_factory=list)
    created_types: list[str] = Field(default_factory=list)
    duplicate_types: list[str] = Field(default_factory=list)
    deliver_after: datetime | None = None


class NotificationService:
    """Turns a classified review into pending notification records."""

    def __init__(
        self,
        store: ReviewStore,
        policy: NotificationPolicy | None = None,
        *,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._policy = policy or NotificationPolicy()
        self._clock = clock

    async def evaluate_review(self, review_id: str) -> NotificationOutcome:
        review = await self._store.get_review(review_id)
        if review is None:
            raise NotFoundError(f"Review '{review_id}' not found.")
        if review.processing_status != "completed":
            raise InvalidInputError(
                f"Review '{review_id}' is {review.processing_status}; notifications need a completed classification."
            )

        sentiment = await self._store.get_sentiment(review_id)
        if sentiment is None:
            raise InvalidInputError(f"Review '{review_id}' has no sentiment result.")

        business = await self._store.get_business(review.business_id)
        if business is None:
            raise NotFoundError(f"Business '{review.business_id}' not found.")
        user = await self._store.get_user(business.user_id)
        if user is None:
            raise NotFoundError(f"Owner '{business.user_id}' of business '{business.id}' not found.")
        preferences = await self._store.get_preferences(business.user_id)

        now = self._clock()
        drafts = self._policy.evaluate(
            review=review,
            sentiment=sentiment.result,
            preferences=preferences,
            business=business,
            recipient=user.email,
            now=now,
        )

        outcome = NotificationOutcome(review_id=review_id)
        for draft in drafts:
            inserted_id = await self._store.insert_notification(draft)
            if inserted_id is None:
                outcome.duplicate_types.append(draft.notification_type)
                continue
            outcome.created_ids.append(inserted_id)
            outcome.created_types.append(draft.notification_type)
            outcome.deliver_after = draft.deliver_after

        # Only after every record is stored; unmarked reviews are swept again by the worker.
        await self._store.mark_notifications_evaluated(review_id, now)

        LOGGER.info(
            "Notifications for review=%s created=%s duplicates=%s",
            review_id,
            outcome.created_types,
            outcome.duplicate_types,
        )
        return outcome
