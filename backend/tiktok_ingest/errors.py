"""Error taxonomy for the ingestion pipeline.

Every failure the pipeline can surface maps onto one ``ErrorKind`` so callers
branch on the kind instead of parsing messages.
"""
from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    FETCH = "fetch"
    STORAGE = "storage"
    INVALID_PAYLOAD = "invalid_payload"
    UPSTREAM = "upstream"
    PERSISTENCE = "persistence"
    CONFIGURATION = "configuration"
    UNEXPECTED = "unexpected"


class IngestError(Exception):
    """Base class for all pipeline errors."""

    kind: ErrorKind = ErrorKind.UNEXPECTED

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context


class ConfigurationError(IngestError):
    """Raised at first use when required settings are missing."""

    kind = ErrorKind.CONFIGURATION

    def __init__(self, message: str, missing: list[str] | None = None):
        super().__init__(message, missing=missing or [])
        self.missing = missing or []


class MediaDownloadError(IngestError):
    kind = ErrorKind.FETCH

    def __init__(self, message: str, url: str, status_code: int | None = None):
        super().__init__(message, url=url, status_code=status_code)
        self.url = url
        self.status_code = status_code


class StorageError(IngestError):
    kind = ErrorKind.STORAGE

    def __init__(self, message: str, key: str | None = None):
        super().__init__(message, key=key)
        self.key = key


class PayloadValidationError(IngestError):
    """Upstream payload does not match the expected shape."""

    kind = ErrorKind.INVALID_PAYLOAD

    def __init__(self, issues: list[str]):
        super().__init__(f"Invalid API response structure: {', '.join(issues)}", issues=issues)
        self.issues = issues


class UpstreamAPIError(IngestError):
    kind = ErrorKind.UPSTREAM

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message, status_code=status_code)
        self.status_code = status_code


class PostPersistenceError(IngestError):
    """A single post could not be written; fails its whole batch."""

    kind = ErrorKind.PERSISTENCE

    def __init__(self, tiktok_id: str, batch_index: int, reason: str):
        super().__init__(
            f"Failed to upsert post {tiktok_id} in batch {batch_index}: {reason}",
            tiktok_id=tiktok_id,
            batch_index=batch_index,
        )
        self.tiktok_id = tiktok_id
        self.batch_index = batch_index
