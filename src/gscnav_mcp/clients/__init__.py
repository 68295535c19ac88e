"""API clients and cache stores."""

from gscnav_mcp.clients.cache import (
    CacheStore,
    MemoryCacheStore,
    RedisCacheStore,
    create_cache_store,
)

__all__ = ["CacheStore", "MemoryCacheStore", "RedisCacheStore", "create_cache_store"]
