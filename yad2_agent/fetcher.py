"""Yad2 listing feed client.

Provides:
- AbstractListingClient: interface the conversation depends on
- Yad2FeedClient: async httpx client for the realestate-feed map endpoint
"""

import logging
from typing import Any, List, Optional

import httpx
from pydantic import ValidationError

from .config import FEED_TIMEOUT_SECONDS
from .errors import FetchError
from .models import ListingItem

logger = logging.getLogger(__name__)

FEED_HEADERS = {
    "accept": "application/json, text/plain, */*",
    "accept-language": "he,en-US;q=0.9,en;q=0.8,he-IL;q=0.7",
    "cache-control": "no-cache",
    "sec-fetch-dest": "empty",
    "sec-fetch-mode": "cors",
    "sec-fetch-site": "same-site",
    "Referer": "https://www.yad2.co.il/",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}


class AbstractListingClient:
    """Interface for listing feed clients."""
    async def fetch(self, api_url: str) -> List[ListingItem]:
        #Return the listings behind a fully parameterized feed URL
        raise NotImplementedError


class Yad2FeedClient(AbstractListingClient):
    """Fetches ``data.markers`` from the Yad2 realestate feed."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = FEED_TIMEOUT_SECONDS,
    ) -> None:
        self._client = client
        self.timeout = timeout

    async def fetch(self, api_url: str) -> List[ListingItem]:
        logger.info("Fetching listings from %s", api_url)
        try:
            if self._client is not None:
                response = await self._client.get(api_url, headers=FEED_HEADERS)
            else:
                async with httpx.AsyncClient(headers=FEED_HEADERS, timeout=self.timeout) as client:
                    response = await client.get(api_url)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPError as e:
            raise FetchError(f"Failed to fetch real estate data: {e}") from e
        except ValueError as e:
            raise FetchError(f"Feed returned a non-JSON body: {e}") from e

        items = self._parse_markers(body)
        logger.info("Feed returned %d listings", len(items))
        return items

    def _parse_markers(self, body: Any) -> List[ListingItem]:
        """Convert the ``{data: {markers: [...]}}`` body into ListingItems."""
        data = body.get("data") if isinstance(body, dict) else None
        markers = data.get("markers") if isinstance(data, dict) else None
        if not isinstance(markers, list):
            raise FetchError("Feed response has no data.markers list")

        items: List[ListingItem] = []
        for position, marker in enumerate(markers):
            try:
                items.append(ListingItem.model_validate(marker))
            except ValidationError as e:
                token = marker.get("token") if isinstance(marker, dict) else None
                logger.warning(
                    "Dropping malformed marker %d (token=%s): %d errors",
                    position, token, e.error_count(),
                )
        return items
