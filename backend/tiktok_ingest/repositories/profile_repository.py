"""TikTok profile data access layer."""
import uuid as _uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tiktok_ingest.models.tiktok_profile import TiktokProfile
from tiktok_ingest.repositories.post_repository import PostAggregates


async def get_by_id(db: AsyncSession, profile_id: _uuid.UUID) -> TiktokProfile | None:
    return (await db.execute(select(TiktokProfile).where(TiktokProfile.id == profile_id))).scalar_one_or_none()


async def get_by_handle(db: AsyncSession, handle: str) -> TiktokProfile | None:
    return (await db.execute(select(TiktokProfile).where(TiktokProfile.handle == handle))).scalar_one_or_none()


async def upsert(
    db: AsyncSession,
    *,
    handle: str,
    nickname: str | None,
    bio: str | None,
    verified: bool,
    avatar_id: _uuid.UUID | None,
) -> TiktokProfile:
    """Create or update by handle. A missing ``avatar_id`` keeps the stored one."""
    profile = await get_by_handle(db, handle)
    if profile is None:
        profile = TiktokProfile(
            handle=handle,
            nickname=nickname,
            bio=bio,
            verified=verified,
            avatar_id=avatar_id,
        )
        db.add(profile)
    else:
        profile.nickname = nickname
        profile.bio = bio
        profile.verified = verified
        if avatar_id is not None:
            profile.avatar_id = avatar_id
    await db.flush()
    return profile


async def apply_aggregates(db: AsyncSession, profile: TiktokProfile, aggregates: PostAggregates) -> TiktokProfile:
    profile.total_posts = aggregates.total_posts
    profile.total_views = aggregates.total_views
    profile.total_likes = aggregates.total_likes
    profile.total_shares = aggregates.total_shares
    profile.total_comments = aggregates.total_comments
    profile.total_saves = aggregates.total_saves
    await db.flush()
    return profile
