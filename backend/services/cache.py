"""
Caching service for Drive listings and addon metadata.

Two interchangeable backends sit behind one facade:
- RedisBackend: durable remote store (survives restarts)
- MemoryBackend: in-process dict with lazy expiry

Every operation is best-effort. A backend failure is logged and turns into
a miss or a no-op; it never reaches the caller.
"""
import json
import time
import logging
from typing import Any, Callable, Dict, Optional, Protocol, Tuple

import redis.asyncio as redis

from core.config import REDIS_URL

logger = logging.getLogger(__name__)


class CacheBackend(Protocol):
    """Raw string store. Implementations may raise; the facade absorbs it."""

    async def get(self, key: str) -> Optional[str]: ...
    async def set(self, key: str, payload: str, ttl_seconds: int) -> None: ...
    async def delete(self, key: str) -> None: ...


# ============================================================================
# Backends
# ============================================================================

class MemoryBackend:
    """
    In-process backend.

    Entries are (payload, expires_at). Expired entries are dropped lazily
    when a read touches them, or in bulk by purge_expired().
    """

    name = "memory"

    def __init__(self, clock: Callable[[], float] = time.time):
        self._store: Dict[str, Tuple[str, float]] = {}
        self._clock = clock

    async def get(self, key: str) -> Optional[str]:
        entry = self._store.get(key)
        if entry is None:
            return None
        payload, expires_at = entry
        if self._clock() >= expires_at:
            self._store.pop(key, None)
            return None
        return payload

    async def set(self, key: str, payload: str, ttl_seconds: int) -> None:
        self._store[key] = (payload, self._clock() + ttl_seconds)

    async def delete(self, key: str) -> None:
        self._store.pop(key, None)

    def purge_expired(self) -> int:
        """Remove every expired entry. Returns the number removed."""
        now = self._clock()
        stale = [k for k, (_, exp) in self._store.items() if now >= exp]
        for k in stale:
            self._store.pop(k, None)
        return len(stale)

    def __len__(self) -> int:
        return len(self._store)


class RedisBackend:
    """Redis backend using SET ... EX so the server enforces the TTL."""

    name = "redis"

    def __init__(self, client):
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisBackend":
        client = redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=3,
            socket_connect_timeout=3,
            health_check_interval=30,
        )
        return cls(client)

    async def get(self, key: str) -> Optional[str]:
        return await self._client.get(key)

    async def set(self, key: str, payload: str, ttl_seconds: int) -> None:
        await self._client.set(key, payload, ex=max(int(ttl_seconds), 1))

    async def delete(self, key: str) -> None:
        await self._client.delete(key)

    async def close(self) -> None:
        await self._client.aclose()


# ============================================================================
# Facade
# ============================================================================

class Cache:
    """
    JSON-valued TTL cache over a CacheBackend.

    get() returns None on a miss, on an undecodable payload, and on any
    backend error. put() and delete() never raise.
    """

    def __init__(self, backend: CacheBackend):
        self.backend = backend
        self._hits = 0
        self._misses = 0
        self._errors = 0

    async def get(self, key: str) -> Any:
        try:
            payload = await self.backend.get(key)
        except Exception as e:
            self._errors += 1
            self._misses += 1
            logger.warning(f"Cache get failed for {key}: {e}")
            return None

        if payload is None:
            self._misses += 1
            return None

        try:
            value = json.loads(payload)
        except (TypeError, ValueError) as e:
            self._errors += 1
            self._misses += 1
            logger.warning(f"Discarding malformed cache payload for {key}: {e}")
            return None

        self._hits += 1
        return value

    async def put(self, key: str, value: Any, ttl_seconds: int) -> None:
        try:
            payload = json.dumps(value)
        except (TypeError, ValueError) as e:
            self._errors += 1
            logger.warning(f"Value for {key} is not JSON serializable: {e}")
            return
        try:
            await self.backend.set(key, payload, ttl_seconds)
        except Exception as e:
            self._errors += 1
            logger.warning(f"Cache put failed for {key}: {e}")

    async def delete(self, key: str) -> None:
        try:
            await self.backend.delete(key)
        except Exception as e:
            self._errors += 1
            logger.warning(f"Cache delete failed for {key}: {e}")

    async def close(self) -> None:
        close = getattr(self.backend, "close", None)
        if close is None:
            return
        try:
            await close()
        except Exception as e:
            logger.warning(f"Error closing cache backend: {e}")

    def get_stats(self) -> dict:
        """Get cache statistics."""
        total_requests = self._hits + self._misses
        hit_rate = (self._hits / total_requests * 100) if total_requests > 0 else 0
        return {
            "backend": getattr(self.backend, "name", type(self.backend).__name__),
            "hits": self._hits,
            "misses": self._misses,
            "errors": self._errors,
            "hit_rate_percent": round(hit_rate, 1),
        }


def build_cache(redis_url: str = REDIS_URL) -> Cache:
    """Pick the backend once at startup: Redis when configured, else memory."""
    if redis_url:
        logger.info("Redis cache initialized.")
        return Cache(RedisBackend.from_url(redis_url))
    logger.info("Using in-memory cache (not persistent).")
    return Cache(MemoryBackend())
