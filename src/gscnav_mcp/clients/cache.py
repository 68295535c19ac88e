"""Cache stores for Search Analytics responses.

Any key-value store with optional expiry satisfies the ``CacheStore``
contract. Absence of a value (expired or never set) is the only miss
signal the client relies on.
"""

import json
import logging
import time
from typing import Any, Protocol, runtime_checkable

from redis.asyncio import Redis

from gscnav_mcp.core.config import Settings

logger = logging.getLogger(__name__)


@runtime_checkable
class CacheStore(Protocol):
    """Minimal async key-value store with expiry."""

    async def get(self, key: str) -> Any | None: ...

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None: ...

    async def clear(self, prefix: str | None = None) -> int: ...


class MemoryCacheStore:
    """Process-local cache with per-entry expiry.

    Expired entries are evicted lazily when read.

    Examples:
        >>> cache = MemoryCacheStore(default_ttl=3600)
        >>> await cache.set("gsc:site:2024-01-01", [{"query": "shoes"}])
        >>> await cache.get("gsc:site:2024-01-01")
        [{'query': 'shoes'}]
    """

    def __init__(self, default_ttl: int = 3600):
        """Initialize memory cache.

        Args:
            default_ttl: Default time-to-live in seconds (default: 3600 = 1 hour)
        """
        self.default_ttl = default_ttl
        self._entries: dict[str, tuple[Any, float]] = {}

    async def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            logger.debug(f"Cache miss for key: {key}")
            return None

        value, expires_at = entry
        if time.monotonic() >= expires_at:
            del self._entries[key]
            logger.debug(f"Cache entry expired for key: {key}")
            return None

        logger.debug(f"Cache hit for key: {key}")
        return value

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        ttl = ttl or self.default_ttl
        self._entries[key] = (value, time.monotonic() + ttl)
        logger.debug(f"Cache set for key: {key} with TTL={ttl}s")

    async def clear(self, prefix: str | None = None) -> int:
        if prefix is None:
            removed = len(self._entries)
            self._entries.clear()
        else:
            keys = [key for key in self._entries if key.startswith(prefix)]
            for key in keys:
                del self._entries[key]
            removed = len(keys)

        logger.info(f"Cleared {removed} cache entries (prefix={prefix!r})")
        return removed

    def __len__(self) -> int:
        return len(self._entries)


class RedisCacheStore:
    """Redis cache store with JSON serialization and TTL.

    Examples:
        >>> cache = RedisCacheStore("redis://localhost:6379/0")
        >>> await cache.set("gsc:site:2024-01-01", [{"query": "shoes"}], ttl=600)
        >>> await cache.clear("gsc:site")
        1
    """

    def __init__(
        self,
        redis_url: str,
        default_ttl: int = 3600,
        redis: Redis | None = None,
    ):
        """Initialize Redis cache store.

        Args:
            redis_url: Redis connection URL (e.g., "redis://localhost:6379/0")
            default_ttl: Default time-to-live in seconds (default: 3600 = 1 hour)
            redis: Optional pre-built client, mainly for tests
        """
        self.redis = redis or Redis.from_url(redis_url, decode_responses=False)
        self.default_ttl = default_ttl
        logger.info(f"RedisCacheStore initialized with TTL={default_ttl}s")

    async def get(self, key: str) -> Any | None:
        """Get cached value by key.

        Returns:
            Decoded value if found, None otherwise. Corrupted entries are
            deleted and reported as a miss.
        """
        data = await self.redis.get(key)
        if not data:
            logger.debug(f"Cache miss for key: {key}")
            return None

        try:
            result = json.loads(data)
        except json.JSONDecodeError as e:
            logger.error(f"Failed to decode cached data for key {key}: {e}")
            await self.redis.delete(key)
            return None

        logger.debug(f"Cache hit for key: {key}")
        return result

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        """Set cached value with TTL.

        Raises:
            TypeError: If value is not JSON serializable
        """
        ttl = ttl or self.default_ttl
        try:
            serialized = json.dumps(value)
        except TypeError as e:
            logger.error(f"Failed to serialize value for key {key}: {e}")
            raise
        await self.redis.setex(key, ttl, serialized)
        logger.debug(f"Cache set for key: {key} with TTL={ttl}s")

    async def clear(self, prefix: str | None = None) -> int:
        """Delete every key starting with ``prefix`` (all keys when omitted)."""
        pattern = f"{_escape_glob(prefix)}*" if prefix else "*"
        keys = [key async for key in self.redis.scan_iter(match=pattern)]

        if not keys:
            logger.debug(f"No keys found matching pattern: {pattern}")
            return 0

        deleted: int = await self.redis.delete(*keys)
        logger.info(f"Cleared {deleted} keys matching pattern: {pattern}")
        return deleted

    async def ping(self) -> bool:
        """Check if Redis connection is healthy."""
        try:
            await self.redis.ping()
            return True
        except Exception as e:
            logger.error(f"Redis ping failed: {e}")
            return False

    async def close(self) -> None:
        """Close Redis connection."""
        await self.redis.aclose()
        logger.info("Redis connection closed")


def _escape_glob(value: str) -> str:
    """Escape Redis glob metacharacters so a prefix matches literally."""
    for char in ("\\", "*", "?", "[", "]"):
        value = value.replace(char, f"\\{char}")
    return value


def create_cache_store(settings: Settings) -> CacheStore:
    """Build the cache store selected by settings."""
    if settings.redis.enabled:
        logger.info("Using Redis cache store")
        return RedisCacheStore(settings.redis.url, default_ttl=settings.cache.ttl_seconds)

    logger.info("Using in-memory cache store")
    return MemoryCacheStore(default_ttl=settings.cache.ttl_seconds)
