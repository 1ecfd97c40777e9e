"""S3-compatible blob storage (Cloudflare R2 / MinIO) via boto3.

boto3 is synchronous, so network calls run in a worker thread. Credentials are
checked the first time the client is needed, not at construction.
"""
import asyncio
import logging
from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from tiktok_ingest.config import Settings
from tiktok_ingest.errors import ConfigurationError, StorageError

logger = logging.getLogger(__name__)

CACHE_CONTROL = "public, max-age=31536000"  # 1 year


class R2Storage:
    def __init__(
        self,
        *,
        endpoint_url: str,
        access_key: str,
        secret_key: str,
        bucket_name: str,
        region: str = "auto",
        public_url: str = "",
        key_prefix: str = "",
        presign_expires: int = 3600,
        timeout: float = 30.0,
    ):
        self.endpoint_url = endpoint_url
        self.access_key = access_key
        self.secret_key = secret_key
        self.bucket_name = bucket_name
        self.region = region
        self.public_base = public_url.rstrip("/")
        self.key_prefix = key_prefix.strip("/")
        self.presign_expires = presign_expires
        self.timeout = timeout
        self._client: Any = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "R2Storage":
        return cls(
            endpoint_url=settings.S3_ENDPOINT,
            access_key=settings.S3_ACCESS_KEY,
            secret_key=settings.S3_SECRET_KEY,
            bucket_name=settings.S3_BUCKET_NAME,
            region=settings.S3_REGION,
            public_url=settings.S3_PUBLIC_URL,
            key_prefix=settings.S3_KEY_PREFIX,
            presign_expires=settings.S3_PRESIGN_EXPIRES,
        )

    def validate_config(self) -> None:
        required = {
            "S3_ENDPOINT": self.endpoint_url,
            "S3_ACCESS_KEY": self.access_key,
            "S3_SECRET_KEY": self.secret_key,
            "S3_BUCKET_NAME": self.bucket_name,
        }
        missing = [name for name, value in required.items() if not value]
        if missing:
            raise ConfigurationError(
                f"Missing required storage settings: {', '.join(missing)}", missing=missing,
            )

    def _get_client(self) -> Any:
        if self._client is None:
            self.validate_config()
            self._client = boto3.client(
                service_name="s3",
                endpoint_url=self.endpoint_url,
                aws_access_key_id=self.access_key,
                aws_secret_access_key=self.secret_key,
                region_name=self.region,
                config=Config(
                    signature_version="s3v4",
                    connect_timeout=self.timeout,
                    read_timeout=self.timeout,
                    retries={"max_attempts": 2},
                ),
            )
        return self._client

    # ── Writes ──

    async def upload(self, data: bytes, key: str, content_type: str) -> str:
        """Store ``data`` under ``key`` and return the key."""
        client = self._get_client()
        try:
            await asyncio.to_thread(
                client.put_object,
                Bucket=self.bucket_name,
                Key=key,
                Body=data,
                ContentType=content_type,
                CacheControl=CACHE_CONTROL,
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Failed to upload {key}: {exc}", key=key) from exc
        logger.info("Uploaded %s (%d bytes)", key, len(data))
        return key

    # ── URL resolution ──

    async def presigned_url(self, key: str, expires_in: int | None = None) -> str:
        """Time-limited GET URL for ``key``."""
        client = self._get_client()
        try:
            return await asyncio.to_thread(
                client.generate_presigned_url,
                "get_object",
                Params={"Bucket": self.bucket_name, "Key": key},
                ExpiresIn=expires_in or self.presign_expires,
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Failed to presign {key}: {exc}", key=key) from exc

    def public_url(self, key: str) -> str:
        if not self.public_base:
            raise StorageError("S3_PUBLIC_URL is not configured", key=key)
        return f"{self.public_base}/{key.lstrip('/')}"

    def is_storage_url(self, url: str) -> bool:
        return bool(self.public_base) and url.startswith(f"{self.public_base}/")

    def key_from_url(self, url: str) -> str:
        if not self.is_storage_url(url):
            raise StorageError(f"Not a storage URL: {url}")
        return url[len(self.public_base) + 1:]
