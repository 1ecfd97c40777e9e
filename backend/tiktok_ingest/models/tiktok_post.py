"""TikTok post ORM model."""
import enum
import uuid
from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Float, ForeignKey, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tiktok_ingest.models.base import Base, JSONType, TimestampMixin, UUIDMixin, pg_enum


class PostContentType(str, enum.Enum):
    VIDEO = "video"
    PHOTO = "photo"


def _cache_asset_fk() -> ForeignKey:
    return ForeignKey("cache_assets.id", ondelete="SET NULL")


class TiktokPost(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "tiktok_posts"

    tiktok_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    profile_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("tiktok_profiles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    tiktok_url: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    content_type: Mapped[PostContentType] = mapped_column(
        pg_enum(PostContentType, name="post_content_type"), nullable=False
    )
    title: Mapped[str | None] = mapped_column(Text, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    author_nickname: Mapped[str | None] = mapped_column(String(255), nullable=True)
    author_handle: Mapped[str] = mapped_column(String(100), nullable=False, index=True)

    # Cached media references
    author_avatar_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), _cache_asset_fk(), nullable=True)
    video_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), _cache_asset_fk(), nullable=True)
    cover_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), _cache_asset_fk(), nullable=True)
    music_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), _cache_asset_fk(), nullable=True)
    images: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)

    hashtags: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    mentions: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)

    # Engagement metrics, overwritten on every scrape
    view_count: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    like_count: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    share_count: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    comment_count: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    save_count: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    duration: Mapped[float | None] = mapped_column(Float, nullable=True)
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, index=True)

    # Relationships
    profile = relationship("TiktokProfile", back_populates="posts")
