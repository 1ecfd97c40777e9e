"""Bulk upsert reconciler: writes one scraped page of posts for a profile.

Flow per call:
    1. Cache the profile avatar, outside any transaction.
    2. Probe stored posts by ``tiktok_id`` in one query.
    3. Cache media for new posts (and known ones when ``force_recache``);
       known posts otherwise reuse their stored asset ids.
    4. Upsert the profile in its own short transaction.
    5. Upsert posts in fixed-size batches, one transaction per batch, with a
       short pause between batches.
    6. Recompute profile aggregates from the stored rows.
"""
import asyncio
import uuid
from collections.abc import Callable, Sequence
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tiktok_ingest.errors import PostPersistenceError
from tiktok_ingest.models.tiktok_post import TiktokPost
from tiktok_ingest.observability import capture_post_upsert_failure
from tiktok_ingest.repositories import post_repository, profile_repository
from tiktok_ingest.repositories.post_repository import PostAggregates, StoredPostMedia
from tiktok_ingest.schemas.ingest import (
    BulkUpsertResult,
    BulkUpsertStats,
    PostData,
    ProfileData,
    dump_images,
)
from tiktok_ingest.services.media_cache_service import MediaCacheService, PostMediaCacheResult
from tiktok_ingest.utils.helpers import chunk_list
from tiktok_ingest.utils.sanitize import safe_serialize, sanitize_string

logger = structlog.get_logger()

ErrorReporter = Callable[[BaseException, PostData, bool], None]


def _merge_media(post: PostData, result: PostMediaCacheResult, previous: StoredPostMedia | None) -> StoredPostMedia:
    """Freshly cached ids win; a field whose recache failed keeps its stored id."""
    prev = previous or StoredPostMedia(tiktok_id=post.tiktok_id)
    stored_images = {image.url: image.cache_asset_id for image in prev.images if image.url}
    images = [
        image if image.cache_asset_id is not None
        else image.model_copy(update={"cache_asset_id": stored_images.get(image.url)})
        for image in result.cached_images
    ]
    return StoredPostMedia(
        tiktok_id=post.tiktok_id,
        video_id=result.cached_video_id or prev.video_id,
        cover_id=result.cached_cover_id or prev.cover_id,
        music_id=result.cached_music_id or prev.music_id,
        author_avatar_id=result.cached_author_avatar_id or prev.author_avatar_id,
        images=images,
    )


def _post_fields(post: PostData, media: StoredPostMedia) -> dict[str, Any]:
    return {
        "tiktok_url": post.tiktok_url,
        "content_type": post.content_type,
        "title": sanitize_string(post.title),
        "description": sanitize_string(post.description),
        "author_nickname": sanitize_string(post.author_nickname),
        "author_handle": post.author_handle,
        "author_avatar_id": media.author_avatar_id,
        "video_id": media.video_id,
        "cover_id": media.cover_id,
        "music_id": media.music_id,
        "images": dump_images(media.images),
        "hashtags": safe_serialize([tag.model_dump() for tag in post.hashtags]),
        "mentions": safe_serialize(list(post.mentions)),
        "view_count": post.view_count,
        "like_count": post.like_count,
        "share_count": post.share_count,
        "comment_count": post.comment_count,
        "save_count": post.save_count,
        "duration": post.duration,
        "published_at": post.published_at,
    }


class BulkUpsertService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        media: MediaCacheService,
        batch_size: int = 5,
        batch_delay: float = 0.5,
        error_reporter: ErrorReporter = capture_post_upsert_failure,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self._session_factory = session_factory
        self._media = media
        self._batch_size = batch_size
        self._batch_delay = batch_delay
        self._report_error = error_reporter

    async def bulk_upsert(
        self,
        profile: ProfileData,
        posts: Sequence[PostData],
        force_recache: bool = False,
    ) -> BulkUpsertResult:
        log = logger.bind(handle=profile.handle)
        posts = list(posts)
        log.info("bulk_upsert_started", posts=len(posts), force_recache=force_recache)

        avatar = await self._media.cache_avatar(profile.avatar, force_recache)
        if avatar.error is not None:
            log.warning("profile_avatar_cache_failed", url=avatar.error.url, error=avatar.error.message)

        async with self._session_factory() as db:
            stored = await post_repository.find_stored_media(db, [post.tiktok_id for post in posts])
        log.info("existing_posts_looked_up", new=len({p.tiktok_id for p in posts} - stored.keys()), existing=len(stored))

        media = await self._resolve_media(posts, stored, force_recache)

        async with self._session_factory.begin() as db:
            stored_profile = await profile_repository.upsert(
                db,
                handle=profile.handle,
                nickname=sanitize_string(profile.nickname),
                bio=sanitize_string(profile.bio),
                verified=bool(profile.verified),
                avatar_id=avatar.asset_id,
            )
            profile_id = stored_profile.id

        stats = BulkUpsertStats(total_posts=len(posts))
        batches = chunk_list(posts, self._batch_size)
        try:
            for batch_index, batch in enumerate(batches):
                if batch_index > 0 and self._batch_delay > 0:
                    await asyncio.sleep(self._batch_delay)
                created, updated = await self._upsert_batch(profile_id, batch, batch_index, media)
                stats.posts_created += created
                stats.posts_updated += updated
                log.info(
                    "batch_committed",
                    batch=batch_index + 1,
                    batches=len(batches),
                    created=created,
                    updated=updated,
                )
        except Exception:
            await self._recompute_aggregates_safely(profile_id)
            raise

        aggregates = await self._recompute_aggregates(profile_id)
        log.info(
            "bulk_upsert_completed",
            profile_id=str(profile_id),
            posts_created=stats.posts_created,
            posts_updated=stats.posts_updated,
            profile_total_posts=aggregates.total_posts,
            profile_avatar_cached=avatar.asset_id is not None,
        )
        return BulkUpsertResult(stats=stats, profile_id=profile_id)

    # ── Media ──

    async def _resolve_media(
        self,
        posts: list[PostData],
        stored: dict[str, StoredPostMedia],
        force_recache: bool,
    ) -> dict[str, StoredPostMedia]:
        """Asset ids to write for every post, keyed by ``tiktok_id``."""
        media = dict(stored)
        to_cache = list({
            post.tiktok_id: post for post in posts if force_recache or post.tiktok_id not in stored
        }.values())

        # Fan-out is bounded to one batch of posts at a time.
        for chunk in chunk_list(to_cache, self._batch_size):
            results = await asyncio.gather(*(self._cache_post_media(post, force_recache) for post in chunk))
            for post, result in zip(chunk, results):
                media[post.tiktok_id] = _merge_media(post, result, stored.get(post.tiktok_id))
        return media

    async def _cache_post_media(self, post: PostData, force_recache: bool) -> PostMediaCacheResult:
        result = await self._media.cache_tiktok_post_media(
            video_url=post.video_url,
            cover_url=post.cover_url,
            music_url=post.music_url,
            images=post.images,
            author_avatar_url=post.author_avatar,
            force_recache=force_recache,
        )
        if result.errors:
            logger.warning(
                "post_media_cache_errors",
                tiktok_id=post.tiktok_id,
                errors=[f"{error.field.value}: {error.kind.value}: {error.message}" for error in result.errors],
            )
        return result

    # ── Persistence ──

    async def _upsert_batch(
        self,
        profile_id: uuid.UUID,
        batch: list[PostData],
        batch_index: int,
        media: dict[str, StoredPostMedia],
    ) -> tuple[int, int]:
        """Write one batch in a single transaction. Returns (created, updated)."""
        created = updated = 0
        # One AsyncSession cannot run statements concurrently, so posts are
        # written one after another inside the batch transaction.
        async with self._session_factory.begin() as db:
            for post in batch:
                post_media = media.get(post.tiktok_id) or StoredPostMedia(tiktok_id=post.tiktok_id)
                if await self._upsert_post(db, profile_id, post, post_media, batch_index):
                    created += 1
                else:
                    updated += 1
        return created, updated

    async def _upsert_post(
        self,
        db: AsyncSession,
        profile_id: uuid.UUID,
        post: PostData,
        media: StoredPostMedia,
        batch_index: int,
    ) -> bool:
        """Create or update one post. Returns True when the post was created."""
        is_new = True
        try:
            existing = await post_repository.get_by_tiktok_id(db, post.tiktok_id)
            is_new = existing is None
            fields = _post_fields(post, media)
            if existing is None:
                await post_repository.create(
                    db, TiktokPost(tiktok_id=post.tiktok_id, profile_id=profile_id, **fields)
                )
            else:
                for name, value in fields.items():
                    setattr(existing, name, value)
                await post_repository.update(db, existing)
        except Exception as exc:
            logger.error(
                "post_upsert_failed",
                tiktok_id=post.tiktok_id,
                batch=batch_index,
                operation="create" if is_new else "update",
                error_type=type(exc).__name__,
                error=str(exc),
                exc_info=True,
            )
            self._report_error(exc, post, is_new)
            raise PostPersistenceError(post.tiktok_id, batch_index, str(exc)) from exc
        return is_new

    # ── Aggregates ──

    async def _recompute_aggregates(self, profile_id: uuid.UUID) -> PostAggregates:
        async with self._session_factory.begin() as db:
            profile = await profile_repository.get_by_id(db, profile_id)
            aggregates = await post_repository.aggregate_for_profile(db, profile_id)
            if profile is not None:
                await profile_repository.apply_aggregates(db, profile, aggregates)
        return aggregates

    async def _recompute_aggregates_safely(self, profile_id: uuid.UUID) -> None:
        try:
            await self._recompute_aggregates(profile_id)
        except Exception:
            logger.exception("aggregate_recompute_failed", profile_id=str(profile_id))
