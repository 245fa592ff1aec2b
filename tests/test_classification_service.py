import asyncio
from datetime import datetime, timezone

import pytest

from reviewpulse.errors import InvalidInputError, NotFoundError, PersistenceError
from reviewpulse.models import Review
from reviewpulse.pipeline.sentiment import LexiconSentimentAnalyzer
from reviewpulse.services.classification_service import ReviewClassificationService


def _add_review(store, business, clock, *, text: str, status: str = "pending", rating: int = 4) -> Review:
    return store.add_review(
        Review(
            business_id=business.id,
            platform="google",
            platform_review_id=f"g-{len(store.reviews) + 1}",
            reviewer_name="Ana",
            rating=rating,
            text=text,
            review_date=datetime(2026, 10, 1, tzinfo=timezone.utc),
            processing_status=status,
            updated_at=clock.now,
        )
    )


def _service(store, clock) -> ReviewClassificationService:
    return ReviewClassificationService(store, LexiconSentimentAnalyzer(), clock=clock)


def test_classify_completes_and_stores_sentiment(store, business, clock) -> None:
    review = _add_review(store, business, clock, text="Friendly staff and excellent espresso.")

    outcome = asyncio.run(_service(store, clock).classify(review.id))

    assert outcome.status == "completed"
    assert outcome.result.label == "positive"
    assert store.reviews[review.id].processing_status == "completed"
    assert store.reviews[review.id].attempts == 1
    record = store.sentiments[review.id]
    assert record.business_id == business.id
    assert record.analyzed_at == clock.now
    assert record.result == outcome.result
    assert [tag.name for tag in record.tags] == ["friendly staff", "quality food"]


@pytest.mark.parametrize("status", ["processing", "completed", "failed"])
def test_non_pending_review_is_skipped(store, business, clock, status: str) -> None:
    review = _add_review(store, business, clock, text="Great coffee", status=status)

    outcome = asyncio.run(_service(store, clock).classify(review.id))

    assert outcome.status == "skipped"
    assert outcome.reason == f"review is {status}"
    assert store.reviews[review.id].processing_status == status
    assert store.sentiments == {}


def test_second_classification_of_same_review_is_skipped(store, business, clock) -> None:
    review = _add_review(store, business, clock, text="Great coffee")
    service = _service(store, clock)

    first = asyncio.run(service.classify(review.id))
    second = asyncio.run(service.classify(review.id))

    assert first.status == "completed"
    assert second.status == "skipped"
    assert len(store.sentiments) == 1


def test_empty_text_marks_review_failed(store, business, clock) -> None:
    review = _add_review(store, business, clock, text="   ")

    with pytest.raises(InvalidInputError):
        asyncio.run(_service(store, clock).classify(review.id))

    stored = store.reviews[review.id]
    assert stored.processing_status == "failed"
    assert stored.error_message == "Review text is empty."
    assert store.sentiments == {}


def test_failed_review_is_reclaimed_only_on_request(store, business, clock) -> None:
    review = _add_review(store, business, clock, text="Decent place, slow service", status="failed")
    service = _service(store, clock)

    skipped = asyncio.run(service.classify(review.id))
    retried = asyncio.run(service.classify(review.id, retry_failed=True))

    assert skipped.status == "skipped"
    assert retried.status == "completed"
    assert store.reviews[review.id].processing_status == "completed"
    assert store.reviews[review.id].error_message is None


def test_sentiment_write_failure_returns_review_to_pending(store, business, clock) -> None:
    review = _add_review(store, business, clock, text="Rude waiter and cold food")
    store.fail_sentiment_writes = True
    service = _service(store, clock)

    with pytest.raises(PersistenceError):
        asyncio.run(service.classify(review.id))

    stored = store.reviews[review.id]
    assert stored.processing_status == "pending"
    assert "unavailable" in stored.error_message
    assert store.sentiments == {}

    store.fail_sentiment_writes = False
    outcome = asyncio.run(service.classify(review.id))
    assert outcome.status == "completed"
    assert store.reviews[review.id].attempts == 2


def test_unknown_review_raises_not_found(store, clock) -> None:
    with pytest.raises(NotFoundError):
        asyncio.run(_service(store, clock).classify("missing"))


def test_completion_failure_rolls_review_back_to_pending(store, business, clock) -> None:
    review = _add_review(store, business, clock, text="Friendly staff")
    store.fail_transitions_to.add("completed")
    service = _service(store, clock)

    with pytest.raises(PersistenceError):
        asyncio.run(service.classify(review.id))

    assert store.reviews[review.id].processing_status == "pending"
    assert asyncio.run(service.classify(review.id)).status == "completed"


def test_stale_processing_claim_is_reclaimed_after_lease(store, business, clock) -> None:
    review = _add_review(store, business, clock, text="Great coffee", status="processing")
    service = _service(store, clock)

    assert asyncio.run(service.claimable_review_ids(limit=10)) == []
    assert asyncio.run(service.classify(review.id)).status == "skipped"

    clock.advance(minutes=11)

    assert asyncio.run(service.claimable_review_ids(limit=10)) == [review.id]
    outcome = asyncio.run(service.classify(review.id))
    assert outcome.status == "completed"
    assert store.reviews[review.id].attempts == 1


def test_claimable_ids_put_pending_before_stale(store, business, clock) -> None:
    stale = _add_review(store, business, clock, text="Great coffee", status="processing")
    clock.advance(minutes=30)
    pending = _add_review(store, business, clock, text="Cold coffee")
    service = _service(store, clock)

    assert asyncio.run(service.claimable_review_ids(limit=10)) == [pending.id, stale.id]
    assert asyncio.run(service.claimable_review_ids(limit=1)) == [pending.id]
