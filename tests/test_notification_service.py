import asyncio
from datetime import datetime, time, timezone

import pytest

from reviewpulse.errors import InvalidInputError, NotFoundError, PersistenceError
from reviewpulse.models import Business, Review, SentimentRecord, UserPreference
from reviewpulse.pipeline.sentiment import LexiconSentimentAnalyzer
from reviewpulse.services.notification_service import NotificationService


def _classified_review(store, business, *, rating: int, text: str, status: str = "completed") -> Review:
    review = store.add_review(
        Review(
            business_id=business.id,
            platform="yelp",
            platform_review_id=f"y-{len(store.reviews) + 1}",
            rating=rating,
            text=text,
            review_date=datetime(2026, 10, 18, tzinfo=timezone.utc),
            processing_status=status,
        )
    )
    if status == "completed":
        analyzer = LexiconSentimentAnalyzer()
        result = analyzer.analyze(text)
        store.sentiments[review.id] = SentimentRecord(
            review_id=review.id,
            business_id=business.id,
            result=result,
            tags=analyzer.derive_tags(result),
        )
    return review


def test_evaluate_creates_pending_notifications(store, business, owner, clock) -> None:
    review = _classified_review(store, business, rating=1, text="Terrible service and rude staff")
    service = NotificationService(store, clock=clock)

    outcome = asyncio.run(service.evaluate_review(review.id))

    assert outcome.created_types == ["new_review", "low_rating", "sentiment_alert"]
    assert outcome.duplicate_types == []
    assert outcome.deliver_after == clock.now
    records = [store.notifications[notification_id] for notification_id in outcome.created_ids]
    assert {record.recipient for record in records} == {owner.email}
    assert {record.status for record in records} == {"pending"}
    assert {record.business_id for record in records} == {business.id}
    assert store.reviews[review.id].notifications_evaluated_at == clock.now


def test_evaluating_twice_suppresses_duplicates(store, business, clock) -> None:
    review = _classified_review(store, business, rating=2, text="Cold coffee")
    service = NotificationService(store, clock=clock)

    first = asyncio.run(service.evaluate_review(review.id))
    second = asyncio.run(service.evaluate_review(review.id))

    assert len(first.created_ids) == 3
    assert second.created_ids == []
    assert second.duplicate_types == first.created_types
    assert len(store.notifications) == 3


def test_owner_preferences_and_quiet_hours_apply(store, business, owner, clock) -> None:
    store.preferences[owner.id] = UserPreference(
        user_id=owner.id,
        new_review_alerts=False,
        quiet_hours_start=time(14, 0),
        quiet_hours_end=time(18, 30),
    )
    review = _classified_review(store, business, rating=2, text="Great coffee")

    outcome = asyncio.run(NotificationService(store, clock=clock).evaluate_review(review.id))

    assert outcome.created_types == ["low_rating"]
    assert outcome.deliver_after == datetime(2026, 10, 19, 18, 30, tzinfo=timezone.utc)


def test_review_must_be_classified(store, business, clock) -> None:
    pending = _classified_review(store, business, rating=2, text="Cold coffee", status="pending")
    completed_without_result = store.add_review(pending.model_copy(update={"id": None, "processing_status": "completed"}))
    service = NotificationService(store, clock=clock)

    with pytest.raises(InvalidInputError):
        asyncio.run(service.evaluate_review(pending.id))
    with pytest.raises(InvalidInputError):
        asyncio.run(service.evaluate_review(completed_without_result.id))
    assert store.notifications == {}


def test_missing_review_business_or_owner(store, clock) -> None:
    orphan = store.add_business(Business(user_id="ghost", name="Orphan Diner"))
    review = _classified_review(store, orphan, rating=3, text="Fine")
    service = NotificationService(store, clock=clock)

    with pytest.raises(NotFoundError):
        asyncio.run(service.evaluate_review("missing"))
    with pytest.raises(NotFoundError):
        asyncio.run(service.evaluate_review(review.id))


def test_failed_insert_leaves_review_unevaluated(store, business, clock) -> None:
    review = _classified_review(store, business, rating=1, text="Terrible service")
    store.fail_notification_inserts = True
    service = NotificationService(store, clock=clock)

    with pytest.raises(PersistenceError):
        asyncio.run(service.evaluate_review(review.id))

    assert store.reviews[review.id].notifications_evaluated_at is None
    assert asyncio.run(store.list_unnotified_review_ids(limit=10)) == [review.id]
