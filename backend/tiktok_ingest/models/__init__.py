"""SQLAlchemy ORM models."""
from tiktok_ingest.models.base import Base, JSONType, TimestampMixin, UUIDMixin
from tiktok_ingest.models.cache_asset import CacheAsset, CacheStatus
from tiktok_ingest.models.tiktok_profile import TiktokProfile
from tiktok_ingest.models.tiktok_post import PostContentType, TiktokPost

__all__ = [
    "Base",
    "JSONType",
    "TimestampMixin",
    "UUIDMixin",
    "CacheAsset",
    "CacheStatus",
    "TiktokProfile",
    "TiktokPost",
    "PostContentType",
]
