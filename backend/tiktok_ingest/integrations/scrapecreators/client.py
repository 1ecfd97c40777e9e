"""ScrapeCreators API client for TikTok profile data."""
import logging
from typing import Any

import httpx

from tiktok_ingest.errors import ConfigurationError, UpstreamAPIError
from tiktok_ingest.integrations.resilience import CircuitBreaker, CircuitOpenError, retry_with_backoff

logger = logging.getLogger(__name__)

BASE_URL = "https://api.scrapecreators.com"
PROFILE_VIDEOS_PATH = "/v3/tiktok/profile/videos"


class ScrapeCreatorsClient:
    """Async client for the ScrapeCreators TikTok endpoints.

    The API key is checked on the first request so a worker can start
    without it and fail loudly only when it actually scrapes.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = BASE_URL,
        timeout: float = 30.0,
        max_retries: int = 2,
        circuit_breaker: CircuitBreaker | None = None,
    ):
        self.api_key = api_key
        self.max_retries = max_retries
        self.circuit_breaker = circuit_breaker or CircuitBreaker("scrapecreators")
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={"Accept": "application/json"},
        )

    async def close(self):
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        await self.close()

    async def _get(self, path: str, params: dict[str, Any]) -> dict[str, Any]:
        resp = await self._client.get(path, params=params, headers={"x-api-key": self.api_key})
        resp.raise_for_status()
        return resp.json()

    async def get_profile_videos(
        self, handle: str, max_cursor: str | None = None, trim: bool = True
    ) -> dict[str, Any]:
        """Fetch one page of a profile's posts (raw payload)."""
        if not self.api_key:
            raise ConfigurationError(
                "SCRAPECREATORS_API_KEY is not configured", missing=["SCRAPECREATORS_API_KEY"],
            )

        params: dict[str, Any] = {"handle": handle, "trim": str(trim).lower()}
        if max_cursor:
            params["max_cursor"] = max_cursor

        logger.info("Fetching profile videos for %s (cursor=%s)", handle, max_cursor or "-")
        try:
            return await self.circuit_breaker.call(
                retry_with_backoff, self._get, PROFILE_VIDEOS_PATH, params,
                max_retries=self.max_retries,
            )
        except CircuitOpenError as exc:
            raise UpstreamAPIError(str(exc)) from exc
        except httpx.HTTPStatusError as exc:
            logger.error(
                "Profile videos request failed with status %d: %s",
                exc.response.status_code, exc.response.text[:500],
            )
            raise UpstreamAPIError(
                f"API request failed with status {exc.response.status_code}",
                status_code=exc.response.status_code,
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise UpstreamAPIError(f"Profile videos request failed: {exc}") from exc
