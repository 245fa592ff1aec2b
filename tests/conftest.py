from __future__ import annotations

import asyncio
import itertools
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterable

import pytest

from reviewpulse.errors import NotFoundError, PersistenceError, TransientFetchError
from reviewpulse.models import (
    Business,
    NotificationRecord,
    PlatformIds,
    RawReview,
    Review,
    SentimentRecord,
    User,
    UserPreference,
)


class InMemoryReviewStore:
    """Dict-backed store with the same uniqueness and compare-and-swap rules as the Mongo one."""

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._ids = itertools.count(1)
        self.businesses: dict[str, Business] = {}
        self.users: dict[str, User] = {}
        self.preferences: dict[str, UserPreference] = {}
        self.reviews: dict[str, Review] = {}
        self.sentiments: dict[str, SentimentRecord] = {}
        self.notifications: dict[str, NotificationRecord] = {}
        self.locks: dict[str, datetime] = {}
        self.fail_sentiment_writes = False
        self.fail_review_inserts: set[str] = set()
        self.race_on_insert: set[str] = set()
        self.fail_transitions_to: set[str] = set()
        self.fail_notification_inserts = False
        self.find_review_error: Exception | None = None

    def _next_id(self, prefix: str) -> str:
        return f"{prefix}{next(self._ids)}"

    def add_user(self, user: User) -> User:
        user_id = user.id or self._next_id("u")
        stored = user.model_copy(update={"id": user_id})
        self.users[user_id] = stored
        return stored

    def add_business(self, business: Business) -> Business:
        business_id = business.id or self._next_id("b")
        stored = business.model_copy(update={"id": business_id})
        self.businesses[business_id] = stored
        return stored

    def add_review(self, review: Review) -> Review:
        review_id = review.id or self._next_id("r")
        stored = review.model_copy(update={"id": review_id})
        self.reviews[review_id] = stored
        return stored

    async def get_business(self, business_id: str) -> Business | None:
        return self.businesses.get(business_id)

    async def list_active_businesses(self) -> list[Business]:
        return [business for business in self.businesses.values() if business.is_active]

    async def record_fetch(self, business_id: str, platform: str, fetched_at: datetime) -> None:
        business = self.businesses[business_id]
        last_fetch_at = {**business.last_fetch_at, platform: fetched_at}
        self.businesses[business_id] = business.model_copy(update={"last_fetch_at": last_fetch_at})

    async def find_review(self, business_id: str, platform: str, platform_review_id: str) -> Review | None:
        if self.find_review_error is not None:
            raise self.find_review_error
        for review in self.reviews.values():
            if (review.business_id, review.platform, review.platform_review_id) == (
                business_id,
                platform,
                platform_review_id,
            ):
                return review
        return None

    async def insert_review(self, review: Review) -> str | None:
        if review.platform_review_id in self.fail_review_inserts:
            raise PersistenceError(f"write failed for {review.platform_review_id}")
        if review.platform_review_id in self.race_on_insert:
            # Another writer lands the same dedup key between lookup and insert.
            self.race_on_insert.discard(review.platform_review_id)
            self.add_review(review)
        if await self.find_review(review.business_id, review.platform, review.platform_review_id):
            return None
        return self.add_review(review).id

    async def get_review(self, review_id: str) -> Review | None:
        return self.reviews.get(review_id)

    async def list_review_ids(
        self,
        status: str,
        *,
        limit: int,
        updated_before: datetime | None = None,
    ) -> list[str]:
        return [
            review_id
            for review_id, review in self.reviews.items()
            if review.processing_status == status and (updated_before is None or review.updated_at <= updated_before)
        ][:limit]

    async def claim_review(
        self,
        review_id: str,
        from_statuses: Iterable[str],
        *,
        stale_before: datetime | None = None,
    ) -> Review | None:
        review = self.reviews.get(review_id)
        if review is None:
            return None
        stale = (
            stale_before is not None
            and review.processing_status == "processing"
            and review.updated_at <= stale_before
        )
        if review.processing_status not in set(from_statuses) and not stale:
            return None
        claimed = review.model_copy(
            update={
                "processing_status": "processing",
                "error_message": None,
                "attempts": review.attempts + 1,
                "updated_at": self._clock(),
            }
        )
        self.reviews[review_id] = claimed
        return claimed

    async def transition_review(
        self,
        review_id: str,
        *,
        expected: str,
        status: str,
        error_message: str | None = None,
    ) -> bool:
        if status in self.fail_transitions_to:
            self.fail_transitions_to.discard(status)
            raise PersistenceError(f"could not move review {review_id} to {status}")
        review = self.reviews.get(review_id)
        if review is None or review.processing_status != expected:
            return False
        self.reviews[review_id] = review.model_copy(
            update={"processing_status": status, "error_message": error_message, "updated_at": self._clock()}
        )
        return True

    async def list_unnotified_review_ids(self, *, limit: int) -> list[str]:
        return [
            review_id
            for review_id, review in self.reviews.items()
            if review.processing_status == "completed" and review.notifications_evaluated_at is None
        ][:limit]

    async def mark_notifications_evaluated(self, review_id: str, evaluated_at: datetime) -> None:
        review = self.reviews[review_id]
        self.reviews[review_id] = review.model_copy(update={"notifications_evaluated_at": evaluated_at})

    async def save_sentiment(self, record: SentimentRecord) -> None:
        if self.fail_sentiment_writes:
            raise PersistenceError("sentiment collection unavailable")
        self.sentiments[record.review_id] = record

    async def get_sentiment(self, review_id: str) -> SentimentRecord | None:
        return self.sentiments.get(review_id)

    async def get_user(self, user_id: str) -> User | None:
        return self.users.get(user_id)

    async def get_preferences(self, user_id: str) -> UserPreference:
        return self.preferences.get(user_id) or UserPreference(user_id=user_id)

    async def insert_notification(self, record: NotificationRecord) -> str | None:
        if self.fail_notification_inserts:
            raise PersistenceError("notification collection unavailable")
        for existing in self.notifications.values():
            if record.review_id is not None and (
                existing.user_id,
                existing.review_id,
                existing.notification_type,
            ) == (record.user_id, record.review_id, record.notification_type):
                return None
        notification_id = self._next_id("n")
        self.notifications[notification_id] = record.model_copy(update={"id": notification_id})
        return notification_id

    async def claim_due_notification(self, now: datetime, *, lease: timedelta) -> NotificationRecord | None:
        due = [
            record
            for record in self.notifications.values()
            if record.status == "pending"
            and record.deliver_after <= now
            and (record.id not in self.locks or self.locks[record.id] <= now)
        ]
        if not due:
            return None
        record = min(due, key=lambda item: item.deliver_after)
        self.locks[record.id] = now + lease
        return record

    async def mark_notification_sent(self, notification_id: str, *, sent_at: datetime, attempts: int) -> None:
        self._update_notification(
            notification_id,
            status="sent",
            sent_at=sent_at,
            attempts=attempts,
            error_message=None,
        )

    async def release_notification(
        self,
        notification_id: str,
        *,
        deliver_after: datetime,
        error_message: str | None = None,
        attempts: int | None = None,
    ) -> None:
        fields: dict[str, Any] = {"status": "pending", "deliver_after": deliver_after, "error_message": error_message}
        if attempts is not None:
            fields["attempts"] = attempts
        self._update_notification(notification_id, **fields)

    async def mark_notification_failed(self, notification_id: str, *, error_message: str, attempts: int) -> None:
        self._update_notification(notification_id, status="failed", error_message=error_message, attempts=attempts)

    async def business_summary(self, business_id: str) -> dict[str, Any]:
        reviews = [review for review in self.reviews.values() if review.business_id == business_id]
        ratings = [review.rating for review in reviews]
        return {
            "business_id": business_id,
            "total_reviews": len(reviews),
            "average_rating": round(sum(ratings) / len(ratings), 2) if ratings else None,
            "low_rating_count": sum(1 for rating in ratings if rating <= 3),
            "negative_sentiment_count": sum(
                1
                for record in self.sentiments.values()
                if record.business_id == business_id and record.result.label == "negative"
            ),
            "failed_count": sum(1 for review in reviews if review.processing_status == "failed"),
            "latest_review_date": max((review.review_date for review in reviews), default=None),
        }

    def _update_notification(self, notification_id: str, **fields: Any) -> None:
        self.locks.pop(notification_id, None)
        self.notifications[notification_id] = self.notifications[notification_id].model_copy(update=fields)


class FakeReviewSource:
    def __init__(self, reviews: list[RawReview] | None = None) -> None:
        self.reviews = list(reviews or [])
        self.calls: list[tuple[str, str]] = []
        self.error: Exception | None = None
        self.delay_seconds = 0.0

    async def fetch_reviews(self, external_id: str, platform: str) -> list[RawReview]:
        self.calls.append((external_id, platform))
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)
        if self.error is not None:
            raise self.error
        return list(self.reviews)


class FixedClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


def make_raw_review(platform_review_id: str, *, rating: float | None = 5, text: str = "Great coffee") -> RawReview:
    return RawReview(
        platform_review_id=platform_review_id,
        reviewer_name="Ana",
        rating=rating,
        review_text=text,
        review_date=datetime(2026, 10, 1, 9, 30, tzinfo=timezone.utc),
        review_url=f"https://maps.google.com/review/{platform_review_id}",
    )


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(datetime(2026, 10, 19, 15, 0, tzinfo=timezone.utc))


@pytest.fixture
def store(clock: FixedClock) -> InMemoryReviewStore:
    return InMemoryReviewStore(clock)


@pytest.fixture
def owner(store: InMemoryReviewStore) -> User:
    return store.add_user(User(email="owner@example.com", full_name="Owner"))


@pytest.fixture
def business(store: InMemoryReviewStore, owner: User) -> Business:
    return store.add_business(
        Business(
            user_id=owner.id,
            name="Blue Door Cafe",
            platform_ids=PlatformIds(google_place_id="place-123", yelp_business_id="blue-door-cafe"),
        )
    )


@pytest.fixture
def source() -> FakeReviewSource:
    return FakeReviewSource([make_raw_review("g-1"), make_raw_review("g-2", rating=2, text="Cold and slow")])


@pytest.fixture
def unknown_business_error() -> NotFoundError:
    return NotFoundError("Unknown google business 'place-123'.")


@pytest.fixture
def transient_error() -> TransientFetchError:
    return TransientFetchError("rate limited")
