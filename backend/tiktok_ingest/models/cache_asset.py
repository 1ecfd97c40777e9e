"""Cache asset ORM model: one durable copy of one external URL."""
import enum
from datetime import datetime

from sqlalchemy import BigInteger, DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from tiktok_ingest.models.base import Base, TimestampMixin, UUIDMixin, pg_enum


class CacheStatus(str, enum.Enum):
    PENDING = "pending"
    CACHED = "cached"
    FAILED = "failed"


class CacheAsset(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "cache_assets"

    original_url: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    cache_key: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[CacheStatus] = mapped_column(
        pg_enum(CacheStatus, name="cache_status"), nullable=False, default=CacheStatus.PENDING, index=True
    )
    content_type: Mapped[str | None] = mapped_column(String(255), nullable=True)
    file_size: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    cached_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def is_cached(self) -> bool:
        return self.status == CacheStatus.CACHED and bool(self.cache_key)
