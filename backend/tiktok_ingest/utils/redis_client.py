"""Redis client helper -- provides async Redis connection."""
import logging

from redis.asyncio import Redis, from_url
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


async def connect_redis(url: str) -> Redis | None:
    """Create an async Redis client, or ``None`` when Redis is unreachable.

    Callers treat a missing client as a permanent cache miss.
    """
    client = from_url(url, decode_responses=True)
    try:
        await client.ping()
    except (RedisError, OSError):
        logger.warning("Redis unavailable at %s, lookaside cache disabled", url)
        await client.aclose()
        return None
    logger.info("Redis connected: %s", url)
    return client


async def close_redis(client: Redis | None) -> None:
    """Close Redis connection."""
    if client is not None:
        await client.aclose()
