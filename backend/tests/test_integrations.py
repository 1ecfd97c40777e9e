"""Tests for external integrations and resilience patterns."""
import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from botocore.exceptions import ClientError

from tiktok_ingest.errors import ConfigurationError, MediaDownloadError, StorageError, UpstreamAPIError
from tiktok_ingest.integrations.media_download import MediaDownloader
from tiktok_ingest.integrations.resilience import (
    CircuitBreaker,
    CircuitOpenError,
    CircuitState,
    retry_with_backoff,
)
from tiktok_ingest.integrations.scrapecreators.client import PROFILE_VIDEOS_PATH, ScrapeCreatorsClient
from tiktok_ingest.integrations.storage.r2 import R2Storage


def _resp(status_code: int = 200, json_data: dict | None = None) -> httpx.Response:
    """Create an httpx.Response with a proper request set."""
    resp = httpx.Response(
        status_code,
        json=json_data or {},
        request=httpx.Request("GET", "https://test.com"),
    )
    return resp


def _status_error(status_code: int) -> httpx.HTTPStatusError:
    return httpx.HTTPStatusError("", request=MagicMock(), response=MagicMock(status_code=status_code))


# ═══════════════════════════════════════════════════════
# Circuit Breaker Tests
# ═══════════════════════════════════════════════════════


class TestCircuitBreaker:
    def test_initial_state_is_closed(self):
        cb = CircuitBreaker("test")
        assert cb.state == CircuitState.CLOSED

    async def test_success_keeps_closed(self):
        cb = CircuitBreaker("test")
        result = await cb.call(AsyncMock(return_value="ok"))
        assert result == "ok"
        assert cb.state == CircuitState.CLOSED
        assert cb.failure_count == 0

    async def test_failures_open_circuit(self):
        cb = CircuitBreaker("test", failure_threshold=3)
        failing = AsyncMock(side_effect=Exception("fail"))

        for _ in range(3):
            with pytest.raises(Exception, match="fail"):
                await cb.call(failing)

        assert cb.state == CircuitState.OPEN
        assert cb.failure_count == 3

    async def test_open_circuit_blocks_calls(self):
        cb = CircuitBreaker("test", failure_threshold=1, open_timeout=30)

        with pytest.raises(Exception):
            await cb.call(AsyncMock(side_effect=Exception("fail")))

        assert cb.state == CircuitState.OPEN

        blocked = AsyncMock(return_value="ok")
        with pytest.raises(CircuitOpenError):
            await cb.call(blocked)
        blocked.assert_not_called()

    async def test_half_open_after_timeout(self):
        cb = CircuitBreaker("test", failure_threshold=1, open_timeout=0.1)

        with pytest.raises(Exception):
            await cb.call(AsyncMock(side_effect=Exception("fail")))

        await asyncio.sleep(0.15)

        # Trial call is let through and closes the circuit
        result = await cb.call(AsyncMock(return_value="recovered"))
        assert result == "recovered"
        assert cb.state == CircuitState.CLOSED

    async def test_half_open_failure_reopens(self):
        cb = CircuitBreaker("test", failure_threshold=1, open_timeout=0.1)

        with pytest.raises(Exception):
            await cb.call(AsyncMock(side_effect=Exception("fail")))
        await asyncio.sleep(0.15)

        with pytest.raises(Exception):
            await cb.call(AsyncMock(side_effect=Exception("still failing")))

        assert cb.state == CircuitState.OPEN

    def test_reset(self):
        cb = CircuitBreaker("test")
        cb.state = CircuitState.OPEN
        cb.failure_count = 5
        cb.reset()
        assert cb.state == CircuitState.CLOSED
        assert cb.failure_count == 0


# ═══════════════════════════════════════════════════════
# Retry with Backoff Tests
# ═══════════════════════════════════════════════════════


class TestRetryWithBackoff:
    async def test_success_no_retry(self):
        func = AsyncMock(return_value="ok")
        result = await retry_with_backoff(func, max_retries=3, backoff_base=0.01)
        assert result == "ok"
        assert func.call_count == 1

    async def test_retry_on_failure_then_success(self):
        func = AsyncMock(side_effect=[_status_error(500), "success"])
        result = await retry_with_backoff(func, max_retries=3, backoff_base=0.01)
        assert result == "success"
        assert func.call_count == 2

    async def test_max_retries_exceeded(self):
        func = AsyncMock(side_effect=_status_error(502))

        with pytest.raises(httpx.HTTPStatusError):
            await retry_with_backoff(func, max_retries=2, backoff_base=0.01)
        assert func.call_count == 3  # initial + 2 retries

    async def test_non_retryable_status_fails_immediately(self):
        func = AsyncMock(side_effect=_status_error(404))

        with pytest.raises(httpx.HTTPStatusError):
            await retry_with_backoff(func, max_retries=3, backoff_base=0.01)
        assert func.call_count == 1

    async def test_transport_error_is_retried(self):
        func = AsyncMock(side_effect=[httpx.ConnectError("refused"), "ok"])
        result = await retry_with_backoff(func, max_retries=1, backoff_base=0.01)
        assert result == "ok"

    async def test_delay_is_capped(self):
        func = AsyncMock(side_effect=[_status_error(503)] * 3 + ["ok"])
        with patch("tiktok_ingest.integrations.resilience.asyncio.sleep", new=AsyncMock()) as sleep:
            await retry_with_backoff(func, max_retries=3, backoff_base=1.0, max_delay=3.0)
        assert [call.args[0] for call in sleep.await_args_list] == [1.0, 2.0, 3.0]


# ═══════════════════════════════════════════════════════
# Media Downloader Tests (mocked HTTP)
# ═══════════════════════════════════════════════════════


JPEG = b"\xff\xd8\xff\xe0" + b"\x00" * 32
MP4 = b"\x00\x00\x00\x18ftypisom" + b"\x00" * 32


def _downloader(handler, **kwargs) -> MediaDownloader:
    """MediaDownloader whose HTTP client is served by ``handler``."""
    downloader = MediaDownloader(backoff_base=0.01, **kwargs)
    downloader._client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return downloader


def _media_handler(status_code: int = 200, content: bytes = b"", content_type: str | None = None):
    headers = {"content-type": content_type} if content_type else {}

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, content=content, headers=headers)

    return handler


class TestMediaDownloader:
    async def test_download_uses_header_content_type(self):
        downloader = _downloader(_media_handler(content=MP4, content_type="video/mp4"))
        result = await downloader.download("https://cdn.tiktok.test/v.mp4")

        assert result.content == MP4
        assert result.content_type == "video/mp4"
        assert result.size == len(MP4)
        await downloader.close()

    async def test_generic_content_type_is_sniffed(self):
        downloader = _downloader(_media_handler(content=JPEG, content_type="application/octet-stream"))
        result = await downloader.download("https://cdn.tiktok.test/cover")

        assert result.content_type == "image/jpeg"
        await downloader.close()

    async def test_http_error_raises_media_download_error(self):
        calls = []

        def handler(request):
            calls.append(request.url)
            return httpx.Response(404)

        downloader = _downloader(handler)
        with pytest.raises(MediaDownloadError) as exc_info:
            await downloader.download("https://cdn.tiktok.test/gone.jpg")

        assert exc_info.value.status_code == 404
        assert exc_info.value.url == "https://cdn.tiktok.test/gone.jpg"
        assert len(calls) == 1
        await downloader.close()

    async def test_server_error_is_retried(self):
        responses = [
            httpx.Response(503),
            httpx.Response(200, content=JPEG, headers={"content-type": "image/jpeg"}),
        ]
        downloader = _downloader(lambda request: responses.pop(0), retries=2)

        result = await downloader.download("https://cdn.tiktok.test/flaky.jpg")

        assert result.content == JPEG
        assert responses == []
        await downloader.close()

    async def test_empty_body_is_rejected(self):
        downloader = _downloader(_media_handler(content=b""))
        with pytest.raises(MediaDownloadError, match="Empty response body"):
            await downloader.download("https://cdn.tiktok.test/empty.jpg")
        await downloader.close()

    async def test_declared_length_over_limit_is_rejected(self):
        downloader = _downloader(_media_handler(content=JPEG, content_type="image/jpeg"), max_bytes=10)
        with pytest.raises(MediaDownloadError, match="too large"):
            await downloader.download("https://cdn.tiktok.test/huge.jpg")
        await downloader.close()

    async def test_streamed_body_stops_at_limit(self):
        pulled = []

        async def body():
            for _ in range(100):
                pulled.append(1)
                yield b"x" * 8

        # Chunked response: no Content-Length to check up front
        downloader = _downloader(lambda request: httpx.Response(200, content=body()), max_bytes=20)

        with pytest.raises(MediaDownloadError, match="too large"):
            await downloader.download("https://cdn.tiktok.test/endless.mp4")

        assert len(pulled) < 100
        await downloader.close()

    async def test_transport_error_is_wrapped(self):
        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        downloader = _downloader(handler, retries=0)
        with pytest.raises(MediaDownloadError, match="Failed to download"):
            await downloader.download("https://cdn.tiktok.test/slow.mp4")
        await downloader.close()

    async def test_invalid_url_is_wrapped(self):
        def handler(request):
            raise httpx.InvalidURL("bad url")

        downloader = _downloader(handler)
        with pytest.raises(MediaDownloadError, match="bad url"):
            await downloader.download("https://cdn.tiktok.test/odd.jpg")
        await downloader.close()


# ═══════════════════════════════════════════════════════
# R2 Storage Tests (mocked boto3 client)
# ═══════════════════════════════════════════════════════


def _storage(**overrides) -> R2Storage:
    options = {
        "endpoint_url": "https://account.r2.cloudflarestorage.com",
        "access_key": "key",
        "secret_key": "secret",
        "bucket_name": "media",
        "public_url": "https://media.example.com/",
    }
    options.update(overrides)
    storage = R2Storage(**options)
    storage._client = MagicMock()
    return storage


class TestR2Storage:
    async def test_upload_puts_object_with_cache_headers(self):
        storage = _storage()
        key = await storage.upload(b"data", "tiktok/videos/a.mp4", "video/mp4")

        assert key == "tiktok/videos/a.mp4"
        kwargs = storage._client.put_object.call_args.kwargs
        assert kwargs["Bucket"] == "media"
        assert kwargs["ContentType"] == "video/mp4"
        assert kwargs["CacheControl"] == "public, max-age=31536000"

    async def test_upload_client_error_raises_storage_error(self):
        storage = _storage()
        storage._client.put_object.side_effect = ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "denied"}}, "PutObject",
        )
        with pytest.raises(StorageError) as exc_info:
            await storage.upload(b"data", "a.jpg", "image/jpeg")
        assert exc_info.value.key == "a.jpg"

    async def test_presigned_url_uses_default_expiry(self):
        storage = _storage(presign_expires=900)
        storage._client.generate_presigned_url.return_value = "https://signed.test/a.jpg"

        assert await storage.presigned_url("a.jpg") == "https://signed.test/a.jpg"
        assert storage._client.generate_presigned_url.call_args.kwargs["ExpiresIn"] == 900

    async def test_missing_settings_raise_configuration_error(self):
        storage = R2Storage(endpoint_url="", access_key="", secret_key="", bucket_name="media")
        with pytest.raises(ConfigurationError) as exc_info:
            await storage.upload(b"data", "a.jpg", "image/jpeg")
        assert exc_info.value.missing == ["S3_ENDPOINT", "S3_ACCESS_KEY", "S3_SECRET_KEY"]

    def test_public_url_and_key_round_trip(self):
        storage = _storage()
        url = storage.public_url("/tiktok/avatars/a.jpg")
        assert url == "https://media.example.com/tiktok/avatars/a.jpg"
        assert storage.is_storage_url(url)
        assert storage.key_from_url(url) == "tiktok/avatars/a.jpg"
        assert not storage.is_storage_url("https://cdn.tiktok.test/a.jpg")

    def test_public_url_requires_base(self):
        storage = _storage(public_url="")
        with pytest.raises(StorageError):
            storage.public_url("a.jpg")
        assert storage.is_storage_url("https://media.example.com/a.jpg") is False


# ═══════════════════════════════════════════════════════
# ScrapeCreators Client Tests (mocked HTTP)
# ═══════════════════════════════════════════════════════


class TestScrapeCreatorsClient:
    async def test_get_profile_videos(self):
        client = ScrapeCreatorsClient(api_key="test-key")
        mock_resp = _resp(200, {"aweme_list": [], "has_more": 0})

        with patch.object(client._client, "get", return_value=mock_resp) as mock_get:
            result = await client.get_profile_videos("creator", max_cursor="123")

        assert result == {"aweme_list": [], "has_more": 0}
        args, kwargs = mock_get.call_args
        assert args[0] == PROFILE_VIDEOS_PATH
        assert kwargs["params"] == {"handle": "creator", "trim": "true", "max_cursor": "123"}
        assert kwargs["headers"]["x-api-key"] == "test-key"
        await client.close()

    async def test_missing_api_key_raises_configuration_error(self):
        client = ScrapeCreatorsClient(api_key="")
        with patch.object(client._client, "get") as mock_get:
            with pytest.raises(ConfigurationError):
                await client.get_profile_videos("creator")
        mock_get.assert_not_called()
        await client.close()

    async def test_http_error_raises_upstream_error(self):
        client = ScrapeCreatorsClient(api_key="test-key")
        with patch.object(client._client, "get", return_value=_resp(401, {"error": "bad key"})):
            with pytest.raises(UpstreamAPIError) as exc_info:
                await client.get_profile_videos("creator")
        assert exc_info.value.status_code == 401
        await client.close()

    async def test_open_circuit_raises_upstream_error(self):
        client = ScrapeCreatorsClient(
            api_key="test-key", circuit_breaker=CircuitBreaker("scrapecreators-test", failure_threshold=1),
        )
        with patch.object(client._client, "get", return_value=_resp(403)) as mock_get:
            with pytest.raises(UpstreamAPIError):
                await client.get_profile_videos("creator")
            with pytest.raises(UpstreamAPIError, match="OPEN"):
                await client.get_profile_videos("creator")
        assert mock_get.call_count == 1
        await client.close()
