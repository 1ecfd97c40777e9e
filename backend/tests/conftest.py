"""Shared test fixtures with file-backed SQLite and in-memory media fakes."""
from unittest.mock import MagicMock

import pytest
from sqlalchemy import event
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.ext.compiler import compiles

from tiktok_ingest.database import create_engine, create_session_factory
from tiktok_ingest.errors import MediaDownloadError, StorageError
from tiktok_ingest.integrations.media_download import DownloadResult
from tiktok_ingest.models import Base
from tiktok_ingest.schemas.ingest import ImageData, PostData, ProfileData
from tiktok_ingest.services.bulk_upsert_service import BulkUpsertService
from tiktok_ingest.services.cache_asset_service import CacheAssetService
from tiktok_ingest.services.media_cache_service import MediaCacheService

# --- SQLite compatibility: compile PostgreSQL types for SQLite ---

@compiles(UUID, "sqlite")
def _compile_uuid_sqlite(type_, compiler, **kw):
    return "VARCHAR(36)"


PUBLIC_BASE = "https://media.example.com"
JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x00" * 64
MP4_BYTES = b"\x00\x00\x00\x18ftypisom" + b"\x00" * 64


class FakeStorage:
    """Blob storage kept in a dict, with switchable failures."""

    def __init__(self, public_base: str = PUBLIC_BASE, key_prefix: str = ""):
        self.public_base = public_base
        self.key_prefix = key_prefix
        self.objects: dict[str, tuple[bytes, str]] = {}
        self.fail_upload = False
        self.fail_presign = False

    async def upload(self, data: bytes, key: str, content_type: str) -> str:
        if self.fail_upload:
            raise StorageError(f"Failed to upload {key}", key=key)
        self.objects[key] = (data, content_type)
        return key

    async def presigned_url(self, key: str, expires_in: int | None = None) -> str:
        if self.fail_presign:
            raise StorageError(f"Failed to presign {key}", key=key)
        return f"{self.public_base}/{key}?X-Amz-Signature=test"

    def public_url(self, key: str) -> str:
        if not self.public_base:
            raise StorageError("S3_PUBLIC_URL is not configured", key=key)
        return f"{self.public_base}/{key}"

    def is_storage_url(self, url: str) -> bool:
        return bool(self.public_base) and url.startswith(f"{self.public_base}/")

    def key_from_url(self, url: str) -> str:
        return url[len(self.public_base) + 1:]


class FakeDownloader:
    """Serves JPEG bytes for every URL unless told to fail it."""

    def __init__(self):
        self.calls: list[str] = []
        self.failing: set[str] = set()
        self.responses: dict[str, DownloadResult] = {}

    async def download(self, url: str) -> DownloadResult:
        self.calls.append(url)
        if url in self.failing:
            raise MediaDownloadError(f"HTTP 404 downloading {url}", url=url, status_code=404)
        return self.responses.get(url) or DownloadResult(content=JPEG_BYTES, content_type="image/jpeg")

    def call_count(self, url: str) -> int:
        return self.calls.count(url)


@pytest.fixture
async def engine(tmp_path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")

    @event.listens_for(engine.sync_engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, _connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def downloader() -> FakeDownloader:
    return FakeDownloader()


@pytest.fixture
def assets(session_factory, storage, downloader) -> CacheAssetService:
    return CacheAssetService(session_factory, storage, downloader)


@pytest.fixture
def media(assets) -> MediaCacheService:
    return MediaCacheService(assets)


@pytest.fixture
def error_reporter() -> MagicMock:
    return MagicMock()


@pytest.fixture
def reconciler(session_factory, media, error_reporter) -> BulkUpsertService:
    return BulkUpsertService(session_factory, media, batch_size=5, batch_delay=0, error_reporter=error_reporter)


@pytest.fixture
def make_post():
    """Factory for PostData with unique media URLs per post."""

    def _make(tiktok_id: str, handle: str = "creator", **overrides) -> PostData:
        fields = {
            "tiktok_id": tiktok_id,
            "tiktok_url": f"https://www.tiktok.com/@{handle}/video/{tiktok_id}",
            "title": f"Post {tiktok_id}",
            "description": f"Post {tiktok_id} #fyp @friend",
            "author_nickname": "Creator",
            "author_handle": handle,
            "author_avatar": f"https://cdn.tiktok.test/{handle}/avatar.jpg",
            "hashtags": [{"text": "#fyp", "url": "https://www.tiktok.com/tag/fyp"}],
            "mentions": ["friend"],
            "view_count": 1000,
            "like_count": 100,
            "share_count": 10,
            "comment_count": 5,
            "save_count": 2,
            "duration": 15.0,
            "video_url": f"https://cdn.tiktok.test/{tiktok_id}/video.mp4",
            "cover_url": f"https://cdn.tiktok.test/{tiktok_id}/cover.jpg",
            "music_url": f"https://cdn.tiktok.test/{tiktok_id}/music.mp3",
        }
        fields.update(overrides)
        return PostData(**fields)

    return _make


@pytest.fixture
def make_photo_post(make_post):
    def _make(tiktok_id: str, image_count: int = 2, **overrides) -> PostData:
        images = [
            ImageData(url=f"https://cdn.tiktok.test/{tiktok_id}/image-{i}.jpg", width=1080, height=1920)
            for i in range(image_count)
        ]
        return make_post(
            tiktok_id,
            content_type="photo",
            video_url=None,
            duration=None,
            cover_url=images[0].url if images else None,
            images=images,
            **overrides,
        )

    return _make


@pytest.fixture
def profile_data() -> ProfileData:
    return ProfileData(
        handle="creator",
        nickname="Creator",
        avatar="https://cdn.tiktok.test/creator/profile.jpg",
        bio="Daily videos",
        verified=True,
    )
