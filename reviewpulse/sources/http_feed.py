import logging
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from reviewpulse.errors import InvalidInputError, NotFoundError, TransientFetchError
from reviewpulse.models import RawReview

LOGGER = logging.getLogger(__name__)


class HttpReviewSource:
    """JSON client for a review-feed gateway.

    ``GET {base_url}/{platform}/{external_id}/reviews`` returns either a list of
    review objects or ``{"reviews": [...]}``.
    """

    _RETRYABLE_STATUS_CODES = {408, 425, 429}

    def __init__(
        self,
        base_url: str,
        *,
        api_key: str = "",
        timeout_seconds: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = httpx.Timeout(timeout_seconds)
        self._transport = transport

    async def fetch_reviews(self, external_id: str, platform: str) -> list[RawReview]:
        url = f"{self.base_url}/{platform}/{quote(external_id, safe='')}/reviews"
        headers = {"Accept": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.get(url, headers=headers)
        except httpx.TimeoutException as exc:
            raise TransientFetchError(f"Timed out fetching {platform} reviews for '{external_id}'.") from exc
        except httpx.HTTPError as exc:
            raise TransientFetchError(f"Could not reach review feed for {platform}: {exc}") from exc

        status_code = response.status_code
        if status_code == 404:
            raise NotFoundError(f"Unknown {platform} business '{external_id}'.")
        if status_code in self._RETRYABLE_STATUS_CODES or status_code >= 500:
            raise TransientFetchError(f"Review feed returned HTTP {status_code} for {platform} '{external_id}'.")
        if status_code >= 400:
            raise InvalidInputError(f"Review feed rejected request for {platform} '{external_id}': HTTP {status_code}.")

        try:
            payload = response.json()
        except ValueError as exc:
            raise TransientFetchError(f"Review feed returned invalid JSON for {platform} '{external_id}'.") from exc

        items = payload.get("reviews") if isinstance(payload, dict) else payload
        if not isinstance(items, list):
            raise TransientFetchError(f"Unexpected review feed payload for {platform} '{external_id}'.")

        reviews: list[RawReview] = []
        for item in items:
            try:
                reviews.append(RawReview.model_validate(item))
            except ValidationError as exc:
                # Keep the item so ingestion reports it as a failure by id.
                LOGGER.warning("Malformed %s review item for %s: %s", platform, external_id, exc)
                raw_id = item.get("platform_review_id", "") if isinstance(item, dict) else ""
                reviews.append(RawReview(platform_review_id=str(raw_id or "")))
        LOGGER.info("Fetched %s %s reviews for %s", len(reviews), platform, external_id)
        return reviews
