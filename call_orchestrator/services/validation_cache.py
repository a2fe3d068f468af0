"""
Cache of provider credential validation results

Entries are keyed by a digest of the secret, never the secret itself,
and expire after credential_validation_ttl_seconds.
"""

import hashlib
import json
import time
from typing import Any, Dict, Optional, Tuple

from call_orchestrator.core.config import settings
from call_orchestrator.core.logging import get_logger

logger = get_logger(__name__)


def validation_key(provider: str, *secrets: Optional[str]) -> str:
    digest = hashlib.sha256("\x1f".join(s or "" for s in secrets).encode()).hexdigest()
    return f"credvalid:{provider}:{digest[:32]}"


class MemoryValidationCache:
    """In-process TTL cache"""

    def __init__(self, ttl_seconds: Optional[int] = None):
        self.ttl_seconds = ttl_seconds or settings.credential_validation_ttl_seconds
        self._entries: Dict[str, Tuple[float, Dict[str, Any]]] = {}

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if time.monotonic() >= expires_at:
            self._entries.pop(key, None)
            return None
        return value

    async def set(self, key: str, value: Dict[str, Any]) -> None:
        self._entries[key] = (time.monotonic() + self.ttl_seconds, value)

    async def clear(self) -> None:
        self._entries.clear()


class RedisValidationCache:
    """
    Redis-backed cache shared by every worker
    """

    def __init__(self, ttl_seconds: Optional[int] = None):
        self.ttl_seconds = ttl_seconds or settings.credential_validation_ttl_seconds

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        from call_orchestrator.services.redis_service import get_redis

        client = await get_redis()
        data = await client.get(key)
        if data:
            return json.loads(data)
        return None

    async def set(self, key: str, value: Dict[str, Any]) -> None:
        from call_orchestrator.services.redis_service import get_redis

        client = await get_redis()
        await client.setex(key, self.ttl_seconds, json.dumps(value, default=str))

    async def clear(self) -> None:
        from call_orchestrator.services.redis_service import get_redis

        client = await get_redis()
        async for key in client.scan_iter(match="credvalid:*"):
            await client.delete(key)


def create_validation_cache():
    """Redis when configured, otherwise in-process"""
    if settings.redis_url:
        logger.info("Using Redis for credential validation cache")
        return RedisValidationCache()
    return MemoryValidationCache()
