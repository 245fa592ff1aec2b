from datetime import datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from reviewpulse.models import Business, NotificationRecord, Review, SentimentResult, UserPreference


def in_quiet_hours(local_time: time, start: time | None, end: time | None) -> bool:
    """True when ``local_time`` falls inside ``[start, end)``, wrapping past midnight."""
    if start is None or end is None or start == end:
        return False
    current = local_time.replace(tzinfo=None)
    if start < end:
        return start <= current < end
    return current >= start or current < end


def next_delivery_time(now: datetime, preferences: UserPreference) -> datetime:
    """Earliest instant at or after ``now`` that is outside the user's quiet hours, in UTC."""
    zone = ZoneInfo(preferences.timezone)
    local_now = now.astimezone(zone)
    start = preferences.quiet_hours_start
    end = preferences.quiet_hours_end
    if not in_quiet_hours(local_now.time(), start, end):
        return now.astimezone(timezone.utc)

    candidate = local_now.replace(hour=end.hour, minute=end.minute, second=0, microsecond=0)
    if candidate <= local_now:
        candidate = candidate + timedelta(days=1)
    return candidate.astimezone(timezone.utc)


class NotificationPolicy:
    _EXCERPT_CHARS = 280

    def evaluate(
        self,
        *,
        review: Review,
        sentiment: SentimentResult,
        preferences: UserPreference,
        business: Business,
        recipient: str,
        now: datetime,
    ) -> list[NotificationRecord]:
        if not preferences.email_notifications_enabled:
            return []

        rating_threshold = (
            business.rating_threshold
            if business.rating_threshold is not None
            else preferences.rating_alert_threshold
        )
        sentiment_threshold = (
            business.sentiment_threshold
            if business.sentiment_threshold is not None
            else preferences.sentiment_threshold
        )

        fired: list[tuple[str, str]] = []
        if preferences.new_review_alerts:
            fired.append(
                (
                    "new_review",
                    f"New {review.rating}-star {review.platform} review for {business.name}",
                )
            )
        if preferences.low_rating_alerts and review.rating <= rating_threshold:
            fired.append(
                (
                    "low_rating",
                    f"Low rating alert: {review.rating}-star review for {business.name}",
                )
            )
        if preferences.sentiment_alerts and sentiment.score < sentiment_threshold:
            fired.append(
                (
                    "sentiment_alert",
                    f"Negative sentiment alert for {business.name} ({sentiment.score:+.2f})",
                )
            )
        if not fired:
            return []

        deliver_after = next_delivery_time(now, preferences)
        body = self.render_body(review=review, sentiment=sentiment, business=business)
        return [
            NotificationRecord(
                user_id=business.user_id,
                business_id=business.id,
                review_id=review.id,
                notification_type=notification_type,
                recipient=recipient,
                subject=subject,
                body=body,
                status="pending",
                deliver_after=deliver_after,
                created_at=now,
            )
            for notification_type, subject in fired
        ]

    def render_body(self, *, review: Review, sentiment: SentimentResult, business: Business) -> str:
        text = " ".join(review.text.split())
        if len(text) > self._EXCERPT_CHARS:
            text = text[: self._EXCERPT_CHARS - 3].rstrip() + "..."
        reviewer = review.reviewer_name or "A customer"
        lines = [
            f"{reviewer} left a {review.rating}-star review for {business.name} on {review.platform}.",
            "",
            f"\"{text}\"" if text else "(no review text)",
            "",
            f"Sentiment: {sentiment.label} (score {sentiment.score:+.2f}, confidence {sentiment.confidence:.2f})",
        ]
        if sentiment.topics:
            lines.append(f"Topics: {', '.join(sentiment.topics)}")
        if review.review_url:
            lines.append(f"Read it: {review.review_url}")
        return "\n".join(lines)
