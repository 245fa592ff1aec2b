from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from reviewpulse.models.common import Platform, utc_now

ProcessingStatus = Literal["pending", "processing", "completed", "failed"]


class RawReview(BaseModel):
    """One review item as returned by a platform source, before validation."""

    platform_review_id: str = ""
    reviewer_name: str = ""
    reviewer_avatar: str | None = None
    rating: float | None = None
    review_text: str = ""
    review_date: datetime | None = None
    review_url: str | None = None


class Review(BaseModel):
    id: str | None = None
    business_id: str
    platform: Platform
    platform_review_id: str = Field(min_length=1)
    reviewer_name: str = ""
    reviewer_avatar: str | None = None
    rating: int = Field(ge=1, le=5)
    text: str = ""
    review_date: datetime
    review_url: str | None = None
    processing_status: ProcessingStatus = "pending"
    error_message: str | None = None
    attempts: int = Field(default=0, ge=0)
    notifications_evaluated_at: datetime | None = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
