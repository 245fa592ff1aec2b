from reviewpulse.sources.base import ReviewSource
from reviewpulse.sources.http_feed import HttpReviewSource
from reviewpulse.sources.mock import MockReviewSource

__all__ = ["ReviewSource", "HttpReviewSource", "MockReviewSource"]
