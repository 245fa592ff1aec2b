from typing import Annotated

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "ReviewPulse"
    app_env: str = "dev"
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"

    mongo_uri: str = "mongodb://localhost:27017"
    db_name: str = "reviewpulse"

    review_source: str = "mock"
    review_feed_base_url: str = "http://localhost:8080/v1"
    review_feed_api_key: str = ""
    review_refresh_hours: float = 24.0
    fetch_timeout_seconds: float = 15.0
    max_fetch_attempts: int = 3
    retry_backoff_seconds: float = 2.0

    sentiment_positive_threshold: float = 0.2
    sentiment_negative_threshold: float = -0.2
    sentiment_match_policy: str = "word"
    processing_lease_seconds: int = 600

    notifier: str = "log"
    sendgrid_api_key: str = ""
    email_from: str = "alerts@reviewpulse.local"
    max_delivery_attempts: int = 3
    delivery_lease_seconds: int = 300
    delivery_retry_seconds: int = 600

    worker_poll_seconds: int = 30
    worker_batch_size: int = 50

    cors_origins: Annotated[list[str], NoDecode] = Field(default_factory=lambda: ["*"])

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, value: object) -> object:
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value

    @field_validator("review_source", "notifier", "sentiment_match_policy", mode="before")
    @classmethod
    def normalize_choice(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


settings = Settings()
