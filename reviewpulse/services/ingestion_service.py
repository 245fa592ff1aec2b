from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Literal, Mapping

from pydantic import BaseModel, Field, ValidationError, computed_field

from reviewpulse.errors import InvalidInputError, NotFoundError, PersistenceError, TransientFetchError
from reviewpulse.models import Business, RawReview, Review
from reviewpulse.models.common import PLATFORMS, Clock, utc_now
from reviewpulse.sources.base import ReviewSource
from reviewpulse.store import ReviewStore

LOGGER = logging.getLogger(__name__)


class IngestionFailure(BaseModel):
    platform_review_id: str
    reason: str


class IngestionResult(BaseModel):
    business_id: str
    platform: str
    status: Literal["fetched", "skipped"]
    skip_reason: str | None = None
    inserted_ids: list[str] = Field(default_factory=list)
    duplicate_count: int = 0
    failures: list[IngestionFailure] = Field(default_factory=list)
    fetched_at: datetime | None = None
    last_fetch_at: datetime | None = None

    @computed_field
    @property
    def inserted_count(self) -> int:
        return len(self.inserted_ids)


class ReviewIngestionService:
    def __init__(
        self,
        store: ReviewStore,
        sources: Mapping[str, ReviewSource],
        *,
        refresh_interval: timedelta = timedelta(hours=24),
        fetch_timeout_seconds: float = 15.0,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._sources = dict(sources)
        self._refresh_interval = refresh_interval
        self._fetch_timeout_seconds = fetch_timeout_seconds
        self._clock = clock

    async def ingest(self, business_id: str, platform: str, *, force: bool = False) -> IngestionResult:
        platform_value = self._resolve_platform(platform)
        business = await self._store.get_business(business_id)
        if business is None:
            raise NotFoundError(f"Business '{business_id}' not found.")

        external_id = business.external_id(platform_value)
        if external_id is None:
            raise NotFoundError(f"Business '{business_id}' has no {platform_value} identifier configured.")

        now = self._clock()
        last_fetch_at = business.last_fetch_at.get(platform_value)
        skip_reason = self._skip_reason(business, platform_value, last_fetch_at, now, force=force)
        if skip_reason is not None:
            LOGGER.info("Skipping %s ingestion for business=%s: %s", platform_value, business_id, skip_reason)
            return IngestionResult(
                business_id=business_id,
                platform=platform_value,
                status="skipped",
                skip_reason=skip_reason,
                last_fetch_at=last_fetch_at,
            )

        raw_reviews = await self._fetch(external_id, platform_value)
        result = IngestionResult(
            business_id=business_id,
            platform=platform_value,
            status="fetched",
            fetched_at=now,
            last_fetch_at=last_fetch_at,
        )

        storage_failed = False
        for raw in raw_reviews:
            raw_id = raw.platform_review_id.strip()
            try:
                review = self._to_review(business_id, platform_value, raw, now)
            except ValidationError as exc:
                result.failures.append(
                    IngestionFailure(platform_review_id=raw_id, reason=self._validation_reason(exc))
                )
                continue

            try:
                existing = await self._store.find_review(business_id, platform_value, review.platform_review_id)
                if existing is not None:
                    result.duplicate_count += 1
                    continue
                inserted_id = await self._store.insert_review(review)
            except PersistenceError as exc:
                storage_failed = True
                result.failures.append(IngestionFailure(platform_review_id=raw_id, reason=str(exc)))
                continue

            if inserted_id is None:
                # A concurrent fetch inserted the same dedup key first.
                result.duplicate_count += 1
                continue
            result.inserted_ids.append(inserted_id)

        # Storage failures leave the freshness window open so a retry picks the reviews up.
        if not storage_failed:
            await self._store.record_fetch(business_id, platform_value, now)
            result.last_fetch_at = now

        LOGGER.info(
            "Ingested business=%s platform=%s fetched=%s inserted=%s duplicates=%s failures=%s",
            business_id,
            platform_value,
            len(raw_reviews),
            result.inserted_count,
            result.duplicate_count,
            len(result.failures),
        )
        return result

    async def _fetch(self, external_id: str, platform: str) -> list[RawReview]:
        source = self._sources.get(platform)
        if source is None:
            raise NotFoundError(f"No review source configured for platform '{platform}'.")
        try:
            return await asyncio.wait_for(
                source.fetch_reviews(external_id, platform),
                timeout=self._fetch_timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            raise TransientFetchError(
                f"Fetching {platform} reviews for '{external_id}' exceeded {self._fetch_timeout_seconds}s."
            ) from exc

    def _skip_reason(
        self,
        business: Business,
        platform: str,
        last_fetch_at: datetime | None,
        now: datetime,
        *,
        force: bool,
    ) -> str | None:
        if force:
            return None
        if not business.is_active:
            return "monitoring disabled for business"
        if not business.is_monitoring(platform):
            return f"monitoring disabled for {platform}"
        if last_fetch_at is not None and now - last_fetch_at < self._refresh_interval:
            return "recently fetched"
        return None

    def _to_review(self, business_id: str, platform: str, raw: RawReview, now: datetime) -> Review:
        return Review(
            business_id=business_id,
            platform=platform,
            platform_review_id=raw.platform_review_id.strip(),
            reviewer_name=raw.reviewer_name.strip(),
            reviewer_avatar=raw.reviewer_avatar,
            rating=raw.rating,
            text=raw.review_text.strip(),
            review_date=raw.review_date,
            review_url=raw.review_url,
            processing_status="pending",
            created_at=now,
            updated_at=now,
        )

    def _resolve_platform(self, platform: str) -> str:
        normalized = str(platform or "").strip().lower()
        if normalized not in PLATFORMS:
            supported = ", ".join(PLATFORMS)
            raise InvalidInputError(f"Unknown platform '{platform}'. Supported: {supported}.")
        return normalized

    def _validation_reason(self, exc: ValidationError) -> str:
        parts = []
        for error in exc.errors():
            location = ".".join(str(item) for item in error.get("loc", ()))
            parts.append(f"{location}: {error.get('msg', 'invalid')}" if location else str(error.get("msg")))
        return "; ".join(parts) or "invalid review"
