"""Ingestion records exchanged between the scraper, orchestrator and reconciler."""
import json
import logging
import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from tiktok_ingest.models.tiktok_post import PostContentType

logger = logging.getLogger(__name__)


class HashtagData(BaseModel):
    text: str
    url: str


class ImageData(BaseModel):
    url: str
    width: int = 0
    height: int = 0


class ProfileData(BaseModel):
    handle: str
    nickname: str | None = None
    avatar: str | None = None
    bio: str | None = None
    verified: bool | None = None


class PostData(BaseModel):
    tiktok_id: str
    tiktok_url: str
    content_type: PostContentType = PostContentType.VIDEO
    title: str | None = None
    description: str | None = None
    author_nickname: str | None = None
    author_handle: str
    author_avatar: str | None = None
    hashtags: list[HashtagData] = Field(default_factory=list)
    mentions: list[str] = Field(default_factory=list)
    view_count: int = 0
    like_count: int = 0
    share_count: int = 0
    comment_count: int = 0
    save_count: int = 0
    duration: float | None = None
    video_url: str | None = None
    cover_url: str | None = None
    music_url: str | None = None
    images: list[ImageData] = Field(default_factory=list)
    published_at: datetime | None = None


class CachedImage(BaseModel):
    """One carousel image as persisted on a post."""
    cache_asset_id: uuid.UUID | None = None
    url: str | None = None
    width: int = 0
    height: int = 0


class BulkUpsertStats(BaseModel):
    posts_created: int = 0
    posts_updated: int = 0
    total_posts: int = 0


class BulkUpsertResult(BaseModel):
    stats: BulkUpsertStats
    profile_id: uuid.UUID


class ProfileVideosPage(BaseModel):
    posts: list[PostData] = Field(default_factory=list)
    profile: ProfileData | None = None
    has_more: bool = False
    max_cursor: str | None = None
    min_cursor: str | None = None


# ── JSON column boundaries ──

_images_adapter = TypeAdapter(list[CachedImage])


def dump_images(images: list[CachedImage]) -> list[dict[str, Any]]:
    """Serialize cached images for the ``images`` JSON column."""
    return _images_adapter.dump_python(images, mode="json")


def load_images(raw: Any) -> list[CachedImage]:
    """Parse the ``images`` column; accepts legacy string-encoded JSON."""
    if raw is None:
        return []
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except ValueError:
            logger.warning("Unparseable images column, treating as empty")
            return []
    try:
        return _images_adapter.validate_python(raw)
    except ValidationError:
        logger.warning("Images column does not match the expected shape, treating as empty")
        return []
