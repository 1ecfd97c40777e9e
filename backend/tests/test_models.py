"""ORM model definition tests."""
from sqlalchemy import text

from tiktok_ingest.models import (
    Base,
    CacheAsset,
    CacheStatus,
    PostContentType,
    TiktokPost,
    TiktokProfile,
)


def test_all_tables_registered():
    assert set(Base.metadata.tables.keys()) == {"cache_assets", "tiktok_profiles", "tiktok_posts"}


def test_cache_status_enum():
    assert CacheStatus.PENDING.value == "pending"
    assert CacheStatus.CACHED.value == "cached"
    assert CacheStatus.FAILED.value == "failed"


def test_post_content_type_enum():
    assert PostContentType.VIDEO.value == "video"
    assert PostContentType.PHOTO.value == "photo"


def test_natural_keys_are_unique():
    assert CacheAsset.__table__.c.original_url.unique
    assert TiktokProfile.__table__.c.handle.unique
    assert TiktokPost.__table__.c.tiktok_id.unique
    assert TiktokPost.__table__.c.tiktok_url.unique


def test_media_references_point_at_cache_assets():
    for column in ("author_avatar_id", "video_id", "cover_id", "music_id"):
        fks = list(TiktokPost.__table__.c[column].foreign_keys)
        assert len(fks) == 1
        assert fks[0].target_fullname == "cache_assets.id"
        assert fks[0].ondelete == "SET NULL"
    assert list(TiktokProfile.__table__.c.avatar_id.foreign_keys)[0].target_fullname == "cache_assets.id"


def test_is_cached_requires_key():
    assert CacheAsset(original_url="u", status=CacheStatus.CACHED, cache_key="media/a.jpg").is_cached
    assert not CacheAsset(original_url="u", status=CacheStatus.CACHED, cache_key=None).is_cached
    assert not CacheAsset(original_url="u", status=CacheStatus.FAILED, cache_key="media/a.jpg").is_cached


async def test_enum_values_are_stored(db_session):
    asset = CacheAsset(original_url="https://cdn.tiktok.test/a.jpg", status=CacheStatus.FAILED)
    db_session.add(asset)
    await db_session.commit()

    raw = await db_session.execute(text("SELECT status FROM cache_assets"))
    assert raw.scalar_one() == "failed"
