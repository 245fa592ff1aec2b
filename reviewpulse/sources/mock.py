from datetime import timedelta

from reviewpulse.errors import NotFoundError
from reviewpulse.models import RawReview
from reviewpulse.models.common import Clock, utc_now

_SAMPLE_REVIEWS: dict[str, list[dict]] = {
    "google": [
        {
            "reviewer_name": "John Doe",
            "rating": 5,
            "review_text": "Great service and amazing food! Highly recommend this place.",
            "age_days": 0,
        },
        {
            "reviewer_name": "Jane Smith",
            "rating": 4,
            "review_text": "Good experience overall. The staff was friendly and the food was delicious.",
            "age_days": 1,
        },
    ],
    "yelp": [
        {
            "reviewer_name": "Mike Johnson",
            "rating": 5,
            "review_text": "Excellent service and great atmosphere. Will definitely come back!",
            "age_days": 0,
        },
        {
            "reviewer_name": "Lisa Brown",
            "rating": 3,
            "review_text": "The food was okay, but the service was a bit slow. Average experience.",
            "age_days": 2,
        },
    ],
    "facebook": [
        {
            "reviewer_name": "Carlos Rivera",
            "rating": 2,
            "review_text": "Coffee was cold and the cashier was rude. Disappointing visit.",
            "age_days": 1,
        },
    ],
    "tripadvisor": [
        {
            "reviewer_name": "Amelia Clarke",
            "rating": 4,
            "review_text": "Lovely decor and a quiet area. Prices are fair for the neighborhood.",
            "age_days": 3,
        },
    ],
}

_REVIEW_URL_TEMPLATES = {
    "google": "https://maps.google.com/place/{external_id}/review/{index}",
    "yelp": "https://www.yelp.com/biz/{external_id}/review/{index}",
    "facebook": "https://www.facebook.com/{external_id}/reviews/{index}",
    "tripadvisor": "https://www.tripadvisor.com/{external_id}/review/{index}",
}


class MockReviewSource:
    """Fixed sample feed for local development.

    Review ids derive from the external id, so repeated fetches return the same
    reviews and exercise deduplication.
    """

    def __init__(self, *, clock: Clock = utc_now, unknown_ids: set[str] | None = None) -> None:
        self._clock = clock
        self._unknown_ids = set(unknown_ids or ())

    async def fetch_reviews(self, external_id: str, platform: str) -> list[RawReview]:
        if external_id in self._unknown_ids:
            raise NotFoundError(f"Unknown {platform} business '{external_id}'.")

        now = self._clock().replace(hour=12, minute=0, second=0, microsecond=0)
        reviews: list[RawReview] = []
        for index, sample in enumerate(_SAMPLE_REVIEWS.get(platform, []), start=1):
            reviews.append(
                RawReview(
                    platform_review_id=f"{platform}_{external_id}_{index}",
                    reviewer_name=sample["reviewer_name"],
                    rating=sample["rating"],
                    review_text=sample["review_text"],
                    review_date=now - timedelta(days=sample["age_days"]),
                    review_url=_REVIEW_URL_TEMPLATES[platform].format(external_id=external_id, index=index),
                )
            )
        return reviews
