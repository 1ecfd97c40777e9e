"""Media cache orchestrator: caches every media field of a TikTok post."""
import asyncio
import logging
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum

from tiktok_ingest.errors import ConfigurationError, ErrorKind, IngestError
from tiktok_ingest.models.cache_asset import CacheStatus
from tiktok_ingest.schemas.ingest import CachedImage, ImageData
from tiktok_ingest.services.cache_asset_service import CacheAssetService

logger = logging.getLogger(__name__)

VIDEO_FOLDER = "tiktok/videos"
COVER_FOLDER = "carousel/covers"
MUSIC_FOLDER = "tiktok/music"
IMAGE_FOLDER = "carousel/images"
AVATAR_FOLDER = "tiktok/avatars"


class MediaField(str, Enum):
    VIDEO = "video"
    COVER = "cover"
    MUSIC = "music"
    IMAGE = "image"
    AVATAR = "avatar"


@dataclass
class MediaFieldError:
    field: MediaField
    url: str
    kind: ErrorKind
    message: str


@dataclass
class CacheOutcome:
    """Result of caching one field: an asset id, an error, or neither for blank input."""
    asset_id: uuid.UUID | None = None
    error: MediaFieldError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class PostMediaCacheResult:
    cached_video_id: uuid.UUID | None = None
    cached_cover_id: uuid.UUID | None = None
    cached_music_id: uuid.UUID | None = None
    cached_author_avatar_id: uuid.UUID | None = None
    cached_images: list[CachedImage] = field(default_factory=list)
    errors: list[MediaFieldError] = field(default_factory=list)


class MediaCacheService:
    def __init__(self, assets: CacheAssetService):
        self._assets = assets

    async def _cache_field(
        self,
        media_field: MediaField,
        url: str | None,
        folder: str,
        force_recache: bool,
    ) -> CacheOutcome:
        if not url or not url.strip():
            return CacheOutcome()

        try:
            asset = await self._assets.create_cache_asset(url, folder, force_recache=force_recache)
        except ConfigurationError:
            raise
        except IngestError as exc:
            logger.warning("Failed to cache %s %s: %s", media_field.value, url, exc)
            return CacheOutcome(error=MediaFieldError(media_field, url, exc.kind, exc.message))
        except Exception as exc:
            # One bad asset must not block the post.
            logger.exception("Unexpected error caching %s %s", media_field.value, url)
            return CacheOutcome(error=MediaFieldError(media_field, url, ErrorKind.UNEXPECTED, str(exc)))

        if asset is None:
            return CacheOutcome()
        if asset.status == CacheStatus.FAILED:
            return CacheOutcome(
                error=MediaFieldError(
                    media_field, url, ErrorKind.FETCH, asset.error_message or "Media caching failed",
                )
            )
        return CacheOutcome(asset_id=asset.id)

    # ── Single fields ──

    async def cache_image(self, url: str | None, force_recache: bool = False, folder: str = COVER_FOLDER) -> CacheOutcome:
        return await self._cache_field(MediaField.COVER, url, folder, force_recache)

    async def cache_video(self, url: str | None, force_recache: bool = False) -> CacheOutcome:
        return await self._cache_field(MediaField.VIDEO, url, VIDEO_FOLDER, force_recache)

    async def cache_avatar(self, url: str | None, force_recache: bool = False) -> CacheOutcome:
        return await self._cache_field(MediaField.AVATAR, url, AVATAR_FOLDER, force_recache)

    async def cache_music(self, url: str | None, force_recache: bool = False) -> CacheOutcome:
        return await self._cache_field(MediaField.MUSIC, url, MUSIC_FOLDER, force_recache)

    async def cache_images(self, urls: Sequence[str | None], force_recache: bool = False) -> list[CacheOutcome]:
        """Cache carousel images. Output order matches ``urls``."""
        return list(
            await asyncio.gather(*(
                self._cache_field(MediaField.IMAGE, url, IMAGE_FOLDER, force_recache) for url in urls
            ))
        )

    # ── Whole post ──

    async def cache_tiktok_post_media(
        self,
        video_url: str | None = None,
        cover_url: str | None = None,
        music_url: str | None = None,
        images: Sequence[ImageData] | None = None,
        author_avatar_url: str | None = None,
        force_recache: bool = False,
    ) -> PostMediaCacheResult:
        """Cache each media field independently.

        A failed field resolves to None and is reported in ``errors``; callers
        fall back to the original URL for it.
        """
        image_list = [image for image in (images or []) if image.url and image.url.strip()]

        video, cover, music, avatar, image_outcomes = await asyncio.gather(
            self.cache_video(video_url, force_recache),
            self.cache_image(cover_url, force_recache),
            self.cache_music(music_url, force_recache),
            self.cache_avatar(author_avatar_url, force_recache),
            self.cache_images([image.url for image in image_list], force_recache),
        )

        result = PostMediaCacheResult(
            cached_video_id=video.asset_id,
            cached_cover_id=cover.asset_id,
            cached_music_id=music.asset_id,
            cached_author_avatar_id=avatar.asset_id,
            cached_images=[
                CachedImage(
                    cache_asset_id=outcome.asset_id,
                    url=image.url,
                    width=image.width,
                    height=image.height,
                )
                for image, outcome in zip(image_list, image_outcomes)
            ],
        )
        for outcome in (video, cover, music, avatar, *image_outcomes):
            if outcome.error is not None:
                result.errors.append(outcome.error)

        if result.errors:
            logger.info("Cached post media with %d field errors", len(result.errors))
        return result

    # ── Resolution ──

    async def get_url(
        self,
        cache_asset_id: str | uuid.UUID | None,
        original_url: str | None = None,
        prefer_public: bool = False,
    ) -> str:
        return await self._assets.get_url(cache_asset_id, original_url, prefer_public)

    async def get_urls(
        self,
        cache_asset_ids: Sequence[str | uuid.UUID | None],
        original_urls: Sequence[str | None] | None = None,
        prefer_public: bool = False,
    ) -> list[str]:
        return await self._assets.get_urls(cache_asset_ids, original_urls, prefer_public)
