"""Process wiring: connect every client, build the services, close on exit."""
from collections.abc import AsyncIterator
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tiktok_ingest.config import Settings
from tiktok_ingest.database import open_database
from tiktok_ingest.integrations.media_download import MediaDownloader
from tiktok_ingest.integrations.scrapecreators.client import ScrapeCreatorsClient
from tiktok_ingest.integrations.storage import R2Storage
from tiktok_ingest.services.bulk_upsert_service import BulkUpsertService
from tiktok_ingest.services.cache_asset_service import CacheAssetService
from tiktok_ingest.services.media_cache_service import MediaCacheService
from tiktok_ingest.services.query_cache import QueryCache
from tiktok_ingest.services.scraping_service import ScrapingService
from tiktok_ingest.utils.redis_client import close_redis, connect_redis

logger = structlog.get_logger()


@dataclass
class Runtime:
    session_factory: async_sessionmaker[AsyncSession]
    query_cache: QueryCache
    assets: CacheAssetService
    media: MediaCacheService
    reconciler: BulkUpsertService
    scraping: ScrapingService


@asynccontextmanager
async def ingest_runtime(settings: Settings) -> AsyncIterator[Runtime]:
    async with AsyncExitStack() as stack:
        session_factory = await stack.enter_async_context(open_database(settings.DATABASE_URL))

        redis = await connect_redis(settings.REDIS_URL)
        stack.push_async_callback(close_redis, redis)

        downloader = await stack.enter_async_context(
            MediaDownloader(
                timeout=settings.MEDIA_DOWNLOAD_TIMEOUT,
                retries=settings.MEDIA_DOWNLOAD_RETRIES,
                max_bytes=settings.MEDIA_MAX_BYTES,
            )
        )
        client = await stack.enter_async_context(
            ScrapeCreatorsClient(
                api_key=settings.SCRAPECREATORS_API_KEY,
                base_url=settings.SCRAPECREATORS_BASE_URL,
                timeout=settings.SCRAPER_TIMEOUT,
            )
        )

        query_cache = QueryCache(redis, default_ttl=settings.QUERY_CACHE_TTL_SECONDS)
        assets = CacheAssetService(session_factory, R2Storage.from_settings(settings), downloader)
        media = MediaCacheService(assets)
        runtime = Runtime(
            session_factory=session_factory,
            query_cache=query_cache,
            assets=assets,
            media=media,
            reconciler=BulkUpsertService(
                session_factory,
                media,
                batch_size=settings.INGEST_BATCH_SIZE,
                batch_delay=settings.INGEST_BATCH_DELAY_SECONDS,
            ),
            scraping=ScrapingService(client, query_cache, cache_ttl=settings.QUERY_CACHE_TTL_SECONDS),
        )
        logger.info("runtime_started", env=settings.APP_ENV, lookaside_cache=query_cache.available)
        yield runtime
        logger.info("runtime_stopped")
