"""Ingestion tasks.

Handles full-profile syncs and the periodic retry of failed media downloads.
"""
import asyncio
import logging

from tiktok_ingest.config import settings
from tiktok_ingest.errors import UpstreamAPIError
from tiktok_ingest.runtime import ingest_runtime
from tiktok_ingest.services.profile_sync_service import sync_profile
from tiktok_ingest.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


async def _sync_profile_posts(handle: str, force_recache: bool, max_pages: int | None) -> dict:
    async with ingest_runtime(settings) as runtime:
        result = await sync_profile(
            runtime.scraping,
            runtime.reconciler,
            handle,
            force_recache=force_recache,
            max_pages=max_pages,
        )
    return result.model_dump(mode="json")


async def _retry_failed_cache_assets() -> dict:
    async with ingest_runtime(settings) as runtime:
        retried = await runtime.assets.retry_failed()
        stats = await runtime.assets.get_stats()
    return {"retried": retried, "stats": stats}


@celery_app.task(
    bind=True,
    name="tiktok_ingest.tasks.ingest_tasks.sync_profile_posts",
    max_retries=3,
    default_retry_delay=120,
)
def sync_profile_posts(self, handle: str, force_recache: bool = False, max_pages: int | None = None):
    """Scrape every page of a profile and upsert its posts.

    Upstream API failures are retried; committed batches from the failed
    attempt stay in place and are reconciled as updates on the next run.
    """
    logger.info("Syncing TikTok profile @%s (force_recache=%s)", handle, force_recache)
    try:
        result = asyncio.run(_sync_profile_posts(handle, force_recache, max_pages))
    except UpstreamAPIError as exc:
        logger.warning("Upstream error syncing @%s, retrying: %s", handle, exc)
        raise self.retry(exc=exc)

    logger.info(
        "Synced @%s: %d pages, %d created, %d updated",
        handle, result["pages_scraped"], result["posts_created"], result["posts_updated"],
    )
    return result


@celery_app.task(name="tiktok_ingest.tasks.ingest_tasks.retry_failed_cache_assets")
def retry_failed_cache_assets():
    """Periodic task (every 1 hour): re-fetch media whose caching failed."""
    result = asyncio.run(_retry_failed_cache_assets())
    logger.info("Retried %d failed cache assets, stats: %s", result["retried"], result["stats"])
    return result
