"""
Redis connection shared by the validation cache

Only used when REDIS_URL is set; the same URL is the Celery broker.
"""

from typing import Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from call_orchestrator.core.config import settings
from call_orchestrator.core.logging import get_logger

logger = get_logger(__name__)

_redis_client: Optional[redis.Redis] = None


async def get_redis() -> redis.Redis:
    """Lazily create the pooled client for settings.redis_url"""
    global _redis_client

    if not settings.redis_url:
        raise RuntimeError("REDIS_URL is not configured")

    if _redis_client is None:
        _redis_client = redis.from_url(
            settings.redis_url,
            max_connections=20,
            decode_responses=True,
        )
        logger.info("Redis client created")

    return _redis_client


async def redis_healthy() -> Optional[bool]:
    """PING result, or None when Redis is not configured"""
    if not settings.redis_url:
        return None
    try:
        client = await get_redis()
        return bool(await client.ping())
    except RedisError as e:
        logger.warning(f"Redis ping failed: {e}")
        return False


async def close_redis() -> None:
    """Close the client and its pool"""
    global _redis_client

    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
