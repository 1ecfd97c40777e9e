"""Cache asset data access layer."""
import uuid as _uuid

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tiktok_ingest.models.cache_asset import CacheAsset, CacheStatus
from tiktok_ingest.utils.helpers import utc_now


async def get_by_id(db: AsyncSession, asset_id: _uuid.UUID) -> CacheAsset | None:
    return (await db.execute(select(CacheAsset).where(CacheAsset.id == asset_id))).scalar_one_or_none()


async def get_by_original_url(db: AsyncSession, original_url: str) -> CacheAsset | None:
    return (
        await db.execute(select(CacheAsset).where(CacheAsset.original_url == original_url))
    ).scalar_one_or_none()


async def list_by_status(db: AsyncSession, status: CacheStatus, limit: int | None = None) -> list[CacheAsset]:
    q = select(CacheAsset).where(CacheAsset.status == status).order_by(CacheAsset.created_at.asc())
    if limit:
        q = q.limit(limit)
    return list((await db.execute(q)).scalars().all())


async def count_by_status(db: AsyncSession) -> dict[CacheStatus, int]:
    rows = (
        await db.execute(select(CacheAsset.status, func.count(CacheAsset.id)).group_by(CacheAsset.status))
    ).all()
    return {status: count for status, count in rows}


async def create(db: AsyncSession, asset: CacheAsset) -> CacheAsset:
    db.add(asset)
    await db.flush()
    return asset


async def mark_pending(db: AsyncSession, asset: CacheAsset) -> CacheAsset:
    asset.status = CacheStatus.PENDING
    asset.error_message = None
    await db.flush()
    return asset


async def mark_cached(
    db: AsyncSession,
    asset: CacheAsset,
    cache_key: str,
    content_type: str | None = None,
    file_size: int | None = None,
) -> CacheAsset:
    asset.status = CacheStatus.CACHED
    asset.cache_key = cache_key
    asset.content_type = content_type
    asset.file_size = file_size
    asset.error_message = None
    asset.cached_at = utc_now()
    await db.flush()
    return asset


async def mark_failed(db: AsyncSession, asset: CacheAsset, error_message: str) -> CacheAsset:
    asset.status = CacheStatus.FAILED
    asset.error_message = error_message[:2000]
    await db.flush()
    return asset
