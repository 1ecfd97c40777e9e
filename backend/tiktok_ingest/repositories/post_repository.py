"""TikTok post data access layer."""
import uuid as _uuid
from dataclasses import dataclass, field

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tiktok_ingest.models.tiktok_post import TiktokPost
from tiktok_ingest.schemas.ingest import CachedImage, load_images


@dataclass
class StoredPostMedia:
    """Media references already persisted for a post."""
    tiktok_id: str
    video_id: _uuid.UUID | None = None
    cover_id: _uuid.UUID | None = None
    music_id: _uuid.UUID | None = None
    author_avatar_id: _uuid.UUID | None = None
    images: list[CachedImage] = field(default_factory=list)


@dataclass
class PostAggregates:
    total_posts: int = 0
    total_views: int = 0
    total_likes: int = 0
    total_shares: int = 0
    total_comments: int = 0
    total_saves: int = 0


async def get_by_tiktok_id(db: AsyncSession, tiktok_id: str) -> TiktokPost | None:
    return (await db.execute(select(TiktokPost).where(TiktokPost.tiktok_id == tiktok_id))).scalar_one_or_none()


async def find_stored_media(db: AsyncSession, tiktok_ids: list[str]) -> dict[str, StoredPostMedia]:
    """One query for every incoming natural key; returns the ones already stored."""
    if not tiktok_ids:
        return {}
    rows = (
        await db.execute(
            select(
                TiktokPost.tiktok_id,
                TiktokPost.video_id,
                TiktokPost.cover_id,
                TiktokPost.music_id,
                TiktokPost.author_avatar_id,
                TiktokPost.images,
            ).where(TiktokPost.tiktok_id.in_(set(tiktok_ids)))
        )
    ).all()
    return {
        row.tiktok_id: StoredPostMedia(
            tiktok_id=row.tiktok_id,
            video_id=row.video_id,
            cover_id=row.cover_id,
            music_id=row.music_id,
            author_avatar_id=row.author_avatar_id,
            images=load_images(row.images),
        )
        for row in rows
    }


async def aggregate_for_profile(db: AsyncSession, profile_id: _uuid.UUID) -> PostAggregates:
    """Sum engagement over every stored post of the profile."""
    row = (
        await db.execute(
            select(
                func.count(TiktokPost.id),
                func.coalesce(func.sum(TiktokPost.view_count), 0),
                func.coalesce(func.sum(TiktokPost.like_count), 0),
                func.coalesce(func.sum(TiktokPost.share_count), 0),
                func.coalesce(func.sum(TiktokPost.comment_count), 0),
                func.coalesce(func.sum(TiktokPost.save_count), 0),
            ).where(TiktokPost.profile_id == profile_id)
        )
    ).one()
    return PostAggregates(*(int(value or 0) for value in row))


async def create(db: AsyncSession, post: TiktokPost) -> TiktokPost:
    db.add(post)
    await db.flush()
    return post


async def update(db: AsyncSession, post: TiktokPost) -> TiktokPost:
    await db.flush()
    return post
