"""Lookaside cache for expensive upstream API responses.

Keys are a SHA-256 digest of the endpoint plus its parameters serialized with
sorted keys, so parameter order never produces a different entry. Redis
problems are logged and degrade to a miss; they never fail the caller.
"""
import hashlib
import json
import logging
from typing import Any

from redis.asyncio import Redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

KEY_NAMESPACE = "lookaside:"


class CacheKeys:
    """Endpoint names for ScrapeCreators TikTok calls."""
    PROFILE_VIDEOS = "tiktok:profile:videos"
    PROFILE_INFO = "tiktok:profile:info"
    VIDEO_DETAILS = "tiktok:video:details"


class CacheTTL:
    """TTL constants (seconds)."""
    ONE_HOUR = 3600
    FOUR_HOURS = 14400
    ONE_DAY = 86400
    ONE_WEEK = 604800


def generate_cache_key(endpoint: str, params: dict[str, Any] | None = None) -> str:
    key_data = f"{endpoint}:{json.dumps(params or {}, sort_keys=True, separators=(',', ':'), default=str)}"
    return KEY_NAMESPACE + hashlib.sha256(key_data.encode("utf-8")).hexdigest()


class QueryCache:
    def __init__(self, redis: Redis | None, default_ttl: int = CacheTTL.ONE_HOUR):
        self._redis = redis
        self.default_ttl = default_ttl

    @property
    def available(self) -> bool:
        return self._redis is not None

    async def get(self, endpoint: str, params: dict[str, Any] | None = None) -> Any | None:
        """Return the cached value, or None on miss or cache failure."""
        if self._redis is None:
            return None
        key = generate_cache_key(endpoint, params)
        try:
            raw = await self._redis.get(key)
        except RedisError:
            logger.warning("Error getting cached data for %s", endpoint, exc_info=True)
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Discarding undecodable cache entry for %s", endpoint)
            return None

    async def put(
        self,
        endpoint: str,
        value: Any,
        ttl_seconds: int | None = None,
        params: dict[str, Any] | None = None,
    ) -> None:
        if self._redis is None:
            return
        key = generate_cache_key(endpoint, params)
        try:
            await self._redis.set(key, json.dumps(value, default=str), ex=ttl_seconds or self.default_ttl)
        except (RedisError, TypeError, ValueError):
            logger.warning("Error setting cached data for %s", endpoint, exc_info=True)

    async def invalidate(self, endpoint: str, params: dict[str, Any] | None = None) -> None:
        if self._redis is None:
            return
        try:
            await self._redis.delete(generate_cache_key(endpoint, params))
        except RedisError:
            logger.warning("Error deleting cached data for %s", endpoint, exc_info=True)

    async def clear_all(self) -> int:
        """Drop every lookaside entry. Other keys in the same Redis are left alone."""
        if self._redis is None:
            return 0
        removed = 0
        try:
            async for key in self._redis.scan_iter(match=f"{KEY_NAMESPACE}*", count=500):
                removed += await self._redis.delete(key)
        except RedisError:
            logger.warning("Error clearing lookaside cache", exc_info=True)
        return removed
