"""Tests for Celery task definitions, configuration, and task logic."""
from unittest.mock import AsyncMock, patch

import pytest
from celery.exceptions import Retry

from tiktok_ingest.errors import PayloadValidationError, UpstreamAPIError


# ── Celery App Configuration ──


def test_celery_app_config():
    """Celery app should have correct serializer and timezone settings."""
    from tiktok_ingest.tasks.celery_app import celery_app

    assert celery_app.conf.task_serializer == "json"
    assert celery_app.conf.result_serializer == "json"
    assert celery_app.conf.timezone == "UTC"
    assert "json" in celery_app.conf.accept_content
    assert celery_app.conf.task_acks_late is True


def test_celery_task_routes():
    """Task routes should map to correct queues."""
    from tiktok_ingest.tasks.celery_app import celery_app

    routes = celery_app.conf.task_routes
    assert routes["tiktok_ingest.tasks.ingest_tasks.sync_profile_posts"]["queue"] == "ingest"
    assert routes["tiktok_ingest.tasks.ingest_tasks.retry_failed_cache_assets"]["queue"] == "media"


def test_celery_beat_schedule():
    """Beat schedule should retry failed media hourly."""
    from tiktok_ingest.tasks.celery_app import celery_app

    schedule = celery_app.conf.beat_schedule
    assert schedule["retry-failed-cache-assets"]["task"] == "tiktok_ingest.tasks.ingest_tasks.retry_failed_cache_assets"
    assert schedule["retry-failed-cache-assets"]["schedule"] == 3600.0


# ── Task Registration ──


def test_ingest_tasks_registered():
    from tiktok_ingest.tasks.celery_app import celery_app
    from tiktok_ingest.tasks.ingest_tasks import retry_failed_cache_assets, sync_profile_posts

    assert sync_profile_posts.name == "tiktok_ingest.tasks.ingest_tasks.sync_profile_posts"
    assert retry_failed_cache_assets.name == "tiktok_ingest.tasks.ingest_tasks.retry_failed_cache_assets"
    assert sync_profile_posts.name in celery_app.tasks


# ── Task Logic (synchronous, mocking the async runtime) ──


SYNC_RESULT = {
    "handle": "creator",
    "profile_id": "7d3f7c1e-0000-4000-8000-000000000001",
    "pages_scraped": 2,
    "posts_scraped": 12,
    "posts_created": 10,
    "posts_updated": 2,
    "duplicates_skipped": 0,
}


def test_sync_profile_posts_returns_summary():
    from tiktok_ingest.tasks.ingest_tasks import sync_profile_posts

    with patch(
        "tiktok_ingest.tasks.ingest_tasks._sync_profile_posts", new=AsyncMock(return_value=SYNC_RESULT),
    ) as run:
        result = sync_profile_posts("creator", force_recache=True, max_pages=2)

    assert result == SYNC_RESULT
    run.assert_awaited_once_with("creator", True, 2)


def test_sync_profile_posts_retries_upstream_errors():
    from tiktok_ingest.tasks.ingest_tasks import sync_profile_posts

    error = UpstreamAPIError("API request failed with status 503", status_code=503)
    with patch("tiktok_ingest.tasks.ingest_tasks._sync_profile_posts", new=AsyncMock(side_effect=error)), \
            patch.object(sync_profile_posts, "retry", side_effect=Retry("retrying")) as retry:
        with pytest.raises(Retry):
            sync_profile_posts("creator")

    retry.assert_called_once_with(exc=error)


def test_sync_profile_posts_does_not_retry_invalid_payloads():
    from tiktok_ingest.tasks.ingest_tasks import sync_profile_posts

    error = PayloadValidationError(["aweme_list: Input should be a valid list"])
    with patch("tiktok_ingest.tasks.ingest_tasks._sync_profile_posts", new=AsyncMock(side_effect=error)), \
            patch.object(sync_profile_posts, "retry") as retry:
        with pytest.raises(PayloadValidationError):
            sync_profile_posts("creator")

    retry.assert_not_called()


def test_retry_failed_cache_assets_returns_stats():
    from tiktok_ingest.tasks.ingest_tasks import retry_failed_cache_assets

    summary = {"retried": 3, "stats": {"pending": 0, "cached": 10, "failed": 1, "total": 11}}
    with patch(
        "tiktok_ingest.tasks.ingest_tasks._retry_failed_cache_assets", new=AsyncMock(return_value=summary),
    ):
        assert retry_failed_cache_assets() == summary
