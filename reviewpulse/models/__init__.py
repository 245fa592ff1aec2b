from reviewpulse.models.business import Business, MonitoringSettings, PlatformIds, User
from reviewpulse.models.notification import NotificationRecord, UserPreference
from reviewpulse.models.review import RawReview, Review
from reviewpulse.models.sentiment import ReviewTag, SentimentRecord, SentimentResult

__all__ = [
    "Business",
    "MonitoringSettings",
    "PlatformIds",
    "User",
    "NotificationRecord",
    "UserPreference",
    "RawReview",
    "Review",
    "ReviewTag",
    "SentimentRecord",
    "SentimentResult",
]
