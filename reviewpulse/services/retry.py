import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from reviewpulse.errors import ReviewPulseError

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


async def retry_transient(
    operation: Callable[[], Awaitable[T]],
    *,
    attempts: int = 3,
    base_delay: float = 2.0,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run ``operation``, retrying retryable pipeline errors with exponential backoff."""
    total_attempts = max(1, int(attempts))
    for attempt in range(1, total_attempts + 1):
        try:
            return await operation()
        except ReviewPulseError as exc:
            if not exc.retryable or attempt == total_attempts:
                raise
            delay = base_delay * (2 ** (attempt - 1))
            LOGGER.warning("Attempt %s/%s failed (%s); retrying in %.1fs", attempt, total_attempts, exc, delay)
            await sleep(delay)
    raise RuntimeError("unreachable")
