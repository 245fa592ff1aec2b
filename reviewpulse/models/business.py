from datetime import datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator

from reviewpulse.models.common import utc_now

PLATFORM_ID_FIELDS: dict[str, str] = {
    "google": "google_place_id",
    "yelp": "yelp_business_id",
    "facebook": "facebook_page_id",
    "tripadvisor": "tripadvisor_location_id",
}


def validate_timezone_name(value: str) -> str:
    name = str(value or "").strip() or "UTC"
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Unknown timezone '{name}'.") from exc
    return name


class PlatformIds(BaseModel):
    google_place_id: str | None = None
    yelp_business_id: str | None = None
    facebook_page_id: str | None = None
    tripadvisor_location_id: str | None = None


class MonitoringSettings(BaseModel):
    google: bool = True
    yelp: bool = True
    facebook: bool = False
    tripadvisor: bool = False


class User(BaseModel):
    id: str | None = None
    email: str
    full_name: str = ""


class Business(BaseModel):
    id: str | None = None
    user_id: str
    name: str
    timezone: str = "UTC"
    platform_ids: PlatformIds = Field(default_factory=PlatformIds)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)
    is_active: bool = True
    rating_threshold: float | None = Field(default=None, ge=1.0, le=5.0)
    sentiment_threshold: float | None = Field(default=None, ge=-1.0, le=1.0)
    last_fetch_at: dict[str, datetime] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator("timezone", mode="before")
    @classmethod
    def parse_timezone(cls, value: object) -> str:
        return validate_timezone_name(str(value or ""))

    def external_id(self, platform: str) -> str | None:
        field_name = PLATFORM_ID_FIELDS.get(platform)
        if field_name is None:
            return None
        value = str(getattr(self.platform_ids, field_name) or "").strip()
        return value or None

    def is_monitoring(self, platform: str) -> bool:
        return self.is_active and bool(getattr(self.monitoring, platform, False))
