"""Full-profile sync: walk every cursor page and reconcile each one."""
import asyncio
import uuid

import structlog
from pydantic import BaseModel

from tiktok_ingest.schemas.ingest import ProfileData
from tiktok_ingest.services.bulk_upsert_service import BulkUpsertService
from tiktok_ingest.services.scraping_service import ScrapingService

logger = structlog.get_logger()


class ProfileSyncResult(BaseModel):
    handle: str
    profile_id: uuid.UUID | None = None
    pages_scraped: int = 0
    posts_scraped: int = 0
    posts_created: int = 0
    posts_updated: int = 0
    duplicates_skipped: int = 0


async def sync_profile(
    scraping: ScrapingService,
    reconciler: BulkUpsertService,
    handle: str,
    force_recache: bool = False,
    max_pages: int | None = None,
    page_delay: float = 1.0,
) -> ProfileSyncResult:
    """Scrape and upsert pages until the cursor runs out or ``max_pages`` is reached."""
    handle = handle.lstrip("@").strip()
    log = logger.bind(handle=handle)
    result = ProfileSyncResult(handle=handle)
    seen: set[str] = set()
    max_cursor: str | None = None

    while True:
        page = await scraping.scrape_profile_videos(handle, max_cursor=max_cursor)
        result.pages_scraped += 1

        posts = []
        for post in page.posts:
            if post.tiktok_id in seen:
                result.duplicates_skipped += 1
                log.warning("duplicate_post_across_pages", tiktok_id=post.tiktok_id, page=result.pages_scraped)
                continue
            seen.add(post.tiktok_id)
            posts.append(post)

        log.info("page_scraped", page=result.pages_scraped, posts=len(posts), has_more=page.has_more)

        if posts:
            upserted = await reconciler.bulk_upsert(
                page.profile or ProfileData(handle=handle), posts, force_recache=force_recache,
            )
            result.profile_id = upserted.profile_id
            result.posts_scraped += upserted.stats.total_posts
            result.posts_created += upserted.stats.posts_created
            result.posts_updated += upserted.stats.posts_updated

        if not page.has_more or not page.max_cursor:
            break
        if max_pages is not None and result.pages_scraped >= max_pages:
            log.info("page_limit_reached", max_pages=max_pages)
            break

        max_cursor = page.max_cursor
        if page_delay > 0:
            await asyncio.sleep(page_delay)

    log.info(
        "profile_sync_completed",
        pages=result.pages_scraped,
        posts=result.posts_scraped,
        created=result.posts_created,
        updated=result.posts_updated,
    )
    return result
