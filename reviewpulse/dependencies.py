from dataclasses import dataclass
from datetime import timedelta

from fastapi import HTTPException, Request, status

from reviewpulse.config import Settings
from reviewpulse.models.common import PLATFORMS
from reviewpulse.notifiers import LoggingNotifier, Notifier, SendGridNotifier
from reviewpulse.pipeline.sentiment import LexiconSentimentAnalyzer
from reviewpulse.services.classification_service import ReviewClassificationService
from reviewpulse.services.dispatch_service import NotificationDispatcher
from reviewpulse.services.ingestion_service import ReviewIngestionService
from reviewpulse.services.notification_service import NotificationService
from reviewpulse.sources import HttpReviewSource, MockReviewSource, ReviewSource
from reviewpulse.store import ReviewStore


@dataclass
class Pipeline:
    store: ReviewStore
    ingestion: ReviewIngestionService
    classification: ReviewClassificationService
    notifications: NotificationService
    dispatcher: NotificationDispatcher


def build_review_sources(settings: Settings) -> dict[str, ReviewSource]:
    if settings.review_source == "mock":
        source: ReviewSource = MockReviewSource()
    elif settings.review_source == "http":
        source = HttpReviewSource(
            settings.review_feed_base_url,
            api_key=settings.review_feed_api_key,
            timeout_seconds=settings.fetch_timeout_seconds,
        )
    else:
        raise ValueError(f"Unknown review source '{settings.review_source}'. Supported: http, mock.")
    return {platform: source for platform in PLATFORMS}


def build_notifier(settings: Settings) -> Notifier:
    if settings.notifier == "log":
        return LoggingNotifier()
    if settings.notifier == "sendgrid":
        return SendGridNotifier(settings.sendgrid_api_key, sender=settings.email_from)
    raise ValueError(f"Unknown notifier '{settings.notifier}'. Supported: log, sendgrid.")


def build_pipeline(
    store: ReviewStore,
    settings: Settings,
    *,
    sources: dict[str, ReviewSource] | None = None,
    notifier: Notifier | None = None,
) -> Pipeline:
    analyzer = LexiconSentimentAnalyzer(
        positive_threshold=settings.sentiment_positive_threshold,
        negative_threshold=settings.sentiment_negative_threshold,
        match_policy=settings.sentiment_match_policy,
    )
    return Pipeline(
        store=store,
        ingestion=ReviewIngestionService(
            store,
            sources if sources is not None else build_review_sources(settings),
            refresh_interval=timedelta(hours=settings.review_refresh_hours),
            # Outer bound; the HTTP source also applies its own transport timeout.
            fetch_timeout_seconds=settings.fetch_timeout_seconds + 1.0,
        ),
        classification=ReviewClassificationService(
            store,
            analyzer,
            processing_lease=timedelta(seconds=settings.processing_lease_seconds),
        ),
        notifications=NotificationService(store),
        dispatcher=NotificationDispatcher(
            store,
            notifier if notifier is not None else build_notifier(settings),
            max_attempts=settings.max_delivery_attempts,
            lease=timedelta(seconds=settings.delivery_lease_seconds),
            retry_delay=timedelta(seconds=settings.delivery_retry_seconds),
        ),
    )


def get_pipeline(request: Request) -> Pipeline:
    pipeline = getattr(request.app.state, "pipeline", None)
    if pipeline is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Pipeline is not initialized.")
    return pipeline
