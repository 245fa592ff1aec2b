from datetime import datetime, timezone
from typing import Callable, Literal

Platform = Literal["google", "yelp", "facebook", "tripadvisor"]
PLATFORMS: tuple[str, ...] = ("google", "yelp", "facebook", "tripadvisor")

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
