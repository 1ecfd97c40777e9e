"""TikTok profile ORM model."""
import uuid

from sqlalchemy import BigInteger, Boolean, ForeignKey, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tiktok_ingest.models.base import Base, TimestampMixin, UUIDMixin


class TiktokProfile(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "tiktok_profiles"

    handle: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    nickname: Mapped[str | None] = mapped_column(String(255), nullable=True)
    bio: Mapped[str | None] = mapped_column(Text, nullable=True)
    verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    avatar_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("cache_assets.id", ondelete="SET NULL"), nullable=True
    )

    # Aggregates, always recomputed from stored posts
    total_posts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_views: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    total_likes: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    total_shares: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    total_comments: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    total_saves: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    # Relationships
    avatar = relationship("CacheAsset", lazy="noload")
    posts = relationship("TiktokPost", back_populates="profile", lazy="noload")
