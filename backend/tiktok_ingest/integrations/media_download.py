"""Media downloader for externally hosted TikTok assets.

Sends browser-like headers (the CDN rejects obvious bots), follows redirects,
and retries transient failures with exponential backoff. Every request is
bounded by the client timeout.
"""
import logging
from dataclasses import dataclass

import httpx

from tiktok_ingest.errors import MediaDownloadError
from tiktok_ingest.integrations.resilience import retry_with_backoff
from tiktok_ingest.utils.media_types import resolve_content_type

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,image/apng,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "User-Agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Sec-Fetch-Dest": "document",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Site": "none",
    "Cache-Control": "max-age=0",
}


@dataclass
class DownloadResult:
    content: bytes
    content_type: str

    @property
    def size(self) -> int:
        return len(self.content)


class MediaDownloader:
    def __init__(
        self,
        timeout: float = 60.0,
        retries: int = 2,
        max_bytes: int = 524_288_000,
        backoff_base: float = 1.0,
    ):
        self.retries = retries
        self.max_bytes = max_bytes
        self.backoff_base = backoff_base
        self._client = httpx.AsyncClient(
            timeout=timeout,
            headers=DEFAULT_HEADERS,
            follow_redirects=True,
        )

    async def close(self):
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        await self.close()

    async def _fetch(self, url: str) -> tuple[bytes, str | None]:
        """Stream the body, aborting as soon as it exceeds ``max_bytes``."""
        async with self._client.stream("GET", url) as resp:
            resp.raise_for_status()
            declared = resp.headers.get("content-length", "")
            if declared.isdigit() and int(declared) > self.max_bytes:
                raise MediaDownloadError(
                    f"Media too large ({declared} bytes > {self.max_bytes})", url=url,
                )
            chunks: list[bytes] = []
            received = 0
            async for chunk in resp.aiter_bytes():
                received += len(chunk)
                if received > self.max_bytes:
                    raise MediaDownloadError(
                        f"Media too large (over {self.max_bytes} bytes)", url=url,
                    )
                chunks.append(chunk)
            return b"".join(chunks), resp.headers.get("content-type")

    async def download(self, url: str) -> DownloadResult:
        """Download ``url``; raises MediaDownloadError once retries are exhausted."""
        try:
            content, header = await retry_with_backoff(
                self._fetch, url, max_retries=self.retries, backoff_base=self.backoff_base,
            )
        except httpx.HTTPStatusError as exc:
            raise MediaDownloadError(
                f"HTTP {exc.response.status_code} downloading {url}",
                url=url,
                status_code=exc.response.status_code,
            ) from exc
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise MediaDownloadError(f"Failed to download {url}: {exc}", url=url) from exc

        if not content:
            raise MediaDownloadError(f"Empty response body from {url}", url=url)

        content_type = resolve_content_type(header, content)
        logger.debug("Downloaded %s (%d bytes, %s)", url, len(content), content_type)
        return DownloadResult(content=content, content_type=content_type)

