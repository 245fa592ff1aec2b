from datetime import datetime, time
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from reviewpulse.models.business import validate_timezone_name
from reviewpulse.models.common import utc_now

NotificationType = Literal["new_review", "low_rating", "sentiment_alert", "weekly_summary", "monthly_report"]
DeliveryStatus = Literal["pending", "sent", "failed"]


class UserPreference(BaseModel):
    user_id: str
    email_notifications_enabled: bool = True
    new_review_alerts: bool = True
    low_rating_alerts: bool = True
    sentiment_alerts: bool = True
    rating_alert_threshold: float = Field(default=3.0, ge=1.0, le=5.0)
    sentiment_threshold: float = Field(default=-0.5, ge=-1.0, le=1.0)
    timezone: str = "UTC"
    quiet_hours_start: time | None = time(22, 0)
    quiet_hours_end: time | None = time(8, 0)

    @field_validator("timezone", mode="before")
    @classmethod
    def parse_timezone(cls, value: object) -> str:
        return validate_timezone_name(str(value or ""))


class NotificationRecord(BaseModel):
    id: str | None = None
    user_id: str
    business_id: str | None = None
    review_id: str | None = None
    notification_type: NotificationType
    recipient: str = ""
    subject: str
    body: str
    status: DeliveryStatus = "pending"
    deliver_after: datetime = Field(default_factory=utc_now)
    sent_at: datetime | None = None
    error_message: str | None = None
    attempts: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=utc_now)
