"""Cache asset store: durable copies of externally hosted media.

An asset is created the first time a URL is referenced, fetched, written to
blob storage, and from then on resolved to a presigned or public URL. Fetch
and storage failures never raise out of ``create_cache_asset``; they leave the
asset ``FAILED`` so callers can fall back to the original URL.
"""
import asyncio
import logging
import uuid
from collections.abc import Sequence

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tiktok_ingest.errors import ConfigurationError, MediaDownloadError, StorageError
from tiktok_ingest.integrations.media_download import MediaDownloader
from tiktok_ingest.integrations.storage.r2 import R2Storage
from tiktok_ingest.models.cache_asset import CacheAsset, CacheStatus
from tiktok_ingest.repositories import cache_asset_repository
from tiktok_ingest.utils.helpers import chunk_list
from tiktok_ingest.utils.media_types import extension_for, generate_storage_key

logger = logging.getLogger(__name__)

RETRY_CONCURRENCY = 10


def _parse_asset_id(value: str | uuid.UUID) -> uuid.UUID | None:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(value)
    except (ValueError, AttributeError, TypeError):
        return None


class CacheAssetService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        storage: R2Storage,
        downloader: MediaDownloader,
    ):
        self._session_factory = session_factory
        self._storage = storage
        self._downloader = downloader

    # ── Creation ──

    async def create_cache_asset(
        self,
        original_url: str | None,
        folder: str = "media",
        filename: str | None = None,
        force_recache: bool = False,
    ) -> CacheAsset | None:
        """Return the asset for ``original_url``, fetching it when needed.

        Known URLs are returned without a fetch unless ``force_recache`` is set
        or the previous attempt failed. ``filename`` pins the object name inside
        ``folder``; otherwise one is generated. Empty URLs return None.
        """
        if not original_url or not original_url.strip():
            return None
        url = original_url.strip()

        asset, needs_fetch = await self._claim(url, force_recache)
        if not needs_fetch:
            return asset
        return await self._cache(asset, folder, filename)

    async def create_bulk_cache_assets(
        self,
        urls: Sequence[str | None],
        folder: str = "media",
        force_recache: bool = False,
    ) -> list[CacheAsset]:
        """Cache many URLs concurrently.

        Returns one asset per URL that was processed; callers match results
        back to inputs by ``original_url``. Duplicate URLs are processed once.
        """
        unique_urls = list(dict.fromkeys(u.strip() for u in urls if u and u.strip()))
        if not unique_urls:
            return []

        logger.info("Creating %d cache assets in %s", len(unique_urls), folder)
        results = await asyncio.gather(
            *(self.create_cache_asset(url, folder, force_recache=force_recache) for url in unique_urls),
            return_exceptions=True,
        )

        assets: list[CacheAsset] = []
        for url, result in zip(unique_urls, results):
            if isinstance(result, ConfigurationError):
                raise result
            if isinstance(result, Exception):
                logger.error("Failed to create cache asset for %s", url, exc_info=result)
                continue
            if isinstance(result, BaseException):
                raise result
            if result is not None:
                assets.append(result)
        return assets

    async def _claim(self, url: str, force_recache: bool) -> tuple[CacheAsset, bool]:
        """Find or insert the row for ``url``; second item says whether to fetch."""
        async with self._session_factory() as db:
            existing = await cache_asset_repository.get_by_original_url(db, url)
            if existing is not None:
                if not force_recache and existing.status != CacheStatus.FAILED:
                    logger.debug("Cache asset already exists: %s", existing.id)
                    return existing, False
                logger.info(
                    "Re-caching asset %s (status=%s, force=%s)",
                    existing.id, existing.status.value, force_recache,
                )
                await cache_asset_repository.mark_pending(db, existing)
                await db.commit()
                return existing, True

            asset = CacheAsset(original_url=url, status=CacheStatus.PENDING)
            try:
                await cache_asset_repository.create(db, asset)
                await db.commit()
            except IntegrityError:
                # Another request inserted the same URL first; reuse its row.
                await db.rollback()
                winner = await cache_asset_repository.get_by_original_url(db, url)
                if winner is None:
                    raise
                logger.info("Concurrent cache request for %s, reusing asset %s", url, winner.id)
                return winner, False

            logger.info("Created cache asset %s for %s", asset.id, url)
            return asset, True

    def _build_key(self, folder: str, filename: str | None, content_type: str, url: str) -> str:
        if filename:
            return "/".join(part.strip("/") for part in (self._storage.key_prefix, folder, filename) if part)
        return generate_storage_key(folder, extension_for(content_type, url), prefix=self._storage.key_prefix)

    async def _cache(self, asset: CacheAsset, folder: str, filename: str | None = None) -> CacheAsset:
        url = asset.original_url
        content_type: str | None = None
        file_size: int | None = None
        try:
            if self._storage.is_storage_url(url):
                key = self._storage.key_from_url(url)
            else:
                download = await self._downloader.download(url)
                content_type = download.content_type
                file_size = download.size
                key = self._build_key(folder, filename, content_type, url)
                await self._storage.upload(download.content, key, content_type)
            stored = await self._mark_cached(asset.id, key, content_type, file_size)
        except ConfigurationError as exc:
            await self._record_failure(asset.id, str(exc))
            raise
        except (MediaDownloadError, StorageError) as exc:
            logger.warning("Failed to cache media %s: %s", url, exc)
            return await self._record_failure(asset.id, str(exc))
        except Exception as exc:
            logger.exception("Unexpected error caching media %s", url)
            return await self._record_failure(asset.id, f"{type(exc).__name__}: {exc}")
        logger.info("Cached %s as %s", url, key)
        return stored

    async def _mark_cached(
        self, asset_id: uuid.UUID, key: str, content_type: str | None, file_size: int | None
    ) -> CacheAsset:
        async with self._session_factory() as db:
            stored = await cache_asset_repository.get_by_id(db, asset_id)
            if stored is None:
                raise LookupError(f"Cache asset {asset_id} disappeared while caching")
            await cache_asset_repository.mark_cached(db, stored, key, content_type, file_size)
            await db.commit()
        return stored

    async def _record_failure(self, asset_id: uuid.UUID, message: str) -> CacheAsset:
        async with self._session_factory() as db:
            stored = await cache_asset_repository.get_by_id(db, asset_id)
            if stored is None:
                raise LookupError(f"Cache asset {asset_id} disappeared while caching")
            await cache_asset_repository.mark_failed(db, stored, message)
            await db.commit()
        return stored

    # ── Lookup ──

    async def get_cache_asset(self, asset_id: str | uuid.UUID) -> CacheAsset | None:
        parsed = _parse_asset_id(asset_id)
        if parsed is None:
            return None
        async with self._session_factory() as db:
            return await cache_asset_repository.get_by_id(db, parsed)

    async def get_cache_asset_by_url(self, original_url: str) -> CacheAsset | None:
        async with self._session_factory() as db:
            return await cache_asset_repository.get_by_original_url(db, original_url)

    # ── URL resolution ──

    async def _url_for_key(self, key: str, prefer_public: bool) -> str | None:
        if not prefer_public:
            try:
                return await self._storage.presigned_url(key)
            except (StorageError, ConfigurationError) as exc:
                logger.warning("Failed to generate presigned URL for %s, using public URL: %s", key, exc)
        try:
            return self._storage.public_url(key)
        except StorageError as exc:
            logger.warning("Failed to generate public URL for %s: %s", key, exc)
            return None

    async def get_url(
        self,
        cache_asset_id_or_key: str | uuid.UUID | None,
        original_url: str | None = None,
        prefer_public: bool = False,
    ) -> str:
        """Best available URL: presigned, then public, then the original.

        UUIDs are looked up as cache assets; any other string is treated as a
        storage key written before assets existed. Never raises.
        """
        fallback = original_url or ""
        if not cache_asset_id_or_key:
            return fallback

        asset_id = _parse_asset_id(cache_asset_id_or_key)
        if asset_id is None:
            resolved = await self._url_for_key(str(cache_asset_id_or_key), prefer_public)
            return resolved or fallback

        try:
            asset = await self.get_cache_asset(asset_id)
        except SQLAlchemyError:
            logger.exception("Error loading cache asset %s", asset_id)
            return fallback

        if asset is None:
            return fallback
        if asset.is_cached:
            resolved = await self._url_for_key(asset.cache_key, prefer_public)
            if resolved:
                return resolved
        return original_url or asset.original_url

    async def get_urls(
        self,
        cache_asset_ids_or_keys: Sequence[str | uuid.UUID | None],
        original_urls: Sequence[str | None] | None = None,
        prefer_public: bool = False,
    ) -> list[str]:
        """Order-preserving batch form of ``get_url``."""
        originals = list(original_urls or [])
        return list(
            await asyncio.gather(*(
                self.get_url(
                    value,
                    originals[index] if index < len(originals) else None,
                    prefer_public,
                )
                for index, value in enumerate(cache_asset_ids_or_keys)
            ))
        )

    # ── Administration ──

    async def get_stats(self) -> dict[str, int]:
        async with self._session_factory() as db:
            counts = await cache_asset_repository.count_by_status(db)
        stats = {status.value: counts.get(status, 0) for status in CacheStatus}
        stats["total"] = sum(counts.values())
        return stats

    async def retry_failed(self, folder: str = "media", limit: int | None = None) -> int:
        """Re-fetch every FAILED asset. Returns how many were retried."""
        async with self._session_factory() as db:
            failed = await cache_asset_repository.list_by_status(db, CacheStatus.FAILED, limit=limit)

        logger.info("Found %d failed assets to retry", len(failed))
        recovered = 0
        for chunk in chunk_list(failed, RETRY_CONCURRENCY):
            assets = await self.create_bulk_cache_assets(
                [asset.original_url for asset in chunk], folder, force_recache=True,
            )
            recovered += sum(1 for asset in assets if asset.status == CacheStatus.CACHED)

        logger.info("Retried %d failed assets, %d recovered", len(failed), recovered)
        return len(failed)
