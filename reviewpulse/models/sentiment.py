from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from reviewpulse.models.common import utc_now

SentimentLabel = Literal["positive", "negative", "neutral"]
TagCategory = Literal["service", "product", "ambiance", "staff", "value", "other"]


class ReviewTag(BaseModel):
    name: str
    category: TagCategory = "other"
    confidence: float = Field(ge=0.0, le=1.0)


class SentimentResult(BaseModel):
    label: SentimentLabel
    score: float = Field(ge=-1.0, le=1.0)
    confidence: float = Field(ge=0.0, le=0.95)
    topics: list[str] = Field(default_factory=list)
    key_phrases: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)


class SentimentRecord(BaseModel):
    """Stored classification of one review: the result and its tags travel together."""

    id: str | None = None
    review_id: str
    business_id: str
    result: SentimentResult
    tags: list[ReviewTag] = Field(default_factory=list)
    analyzed_at: datetime = Field(default_factory=utc_now)
