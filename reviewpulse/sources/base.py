from typing import Protocol

from reviewpulse.models import RawReview


class ReviewSource(Protocol):
    """Capability to list reviews for one business on one platform.

    Implementations raise ``TransientFetchError`` for failures worth retrying and
    ``NotFoundError`` when the platform does not know ``external_id``.
    """

    async def fetch_reviews(self, external_id: str, platform: str) -> list[RawReview]: ...
