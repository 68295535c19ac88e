"""Tests for cache stores."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from gscnav_mcp.clients.cache import (
    CacheStore,
    MemoryCacheStore,
    RedisCacheStore,
    create_cache_store,
)
from gscnav_mcp.core.config import Settings


class TestMemoryCacheStore:
    """Test the in-process cache."""

    @pytest.mark.asyncio
    async def test_set_and_get(self):
        cache = MemoryCacheStore()
        await cache.set("gsc:site", [{"query": "shoes"}])

        assert await cache.get("gsc:site") == [{"query": "shoes"}]

    @pytest.mark.asyncio
    async def test_empty_list_is_a_hit(self):
        cache = MemoryCacheStore()
        await cache.set("gsc:site", [])

        assert await cache.get("gsc:site") == []

    @pytest.mark.asyncio
    async def test_missing_key(self):
        assert await MemoryCacheStore().get("nope") is None

    @pytest.mark.asyncio
    async def test_expired_entry_is_evicted(self):
        cache = MemoryCacheStore(default_ttl=60)

        with patch("gscnav_mcp.clients.cache.time") as mock_time:
            mock_time.monotonic.return_value = 1000.0
            await cache.set("key", "value")
            mock_time.monotonic.return_value = 1061.0
            assert await cache.get("key") is None

        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_explicit_ttl_overrides_default(self):
        cache = MemoryCacheStore(default_ttl=3600)

        with patch("gscnav_mcp.clients.cache.time") as mock_time:
            mock_time.monotonic.return_value = 0.0
            await cache.set("key", "value", ttl=10)
            mock_time.monotonic.return_value = 11.0
            assert await cache.get("key") is None

    @pytest.mark.asyncio
    async def test_clear_by_prefix(self):
        cache = MemoryCacheStore()
        await cache.set("gsc:a:1", 1)
        await cache.set("gsc:a:2", 2)
        await cache.set("gsc:b:1", 3)

        assert await cache.clear("gsc:a") == 2
        assert await cache.get("gsc:b:1") == 3

    @pytest.mark.asyncio
    async def test_clear_all(self):
        cache = MemoryCacheStore()
        await cache.set("a", 1)
        await cache.set("b", 2)

        assert await cache.clear() == 2
        assert len(cache) == 0

    def test_satisfies_protocol(self):
        assert isinstance(MemoryCacheStore(), CacheStore)


class TestRedisCacheStore:
    """Test the Redis-backed cache with a mocked client."""

    @pytest.fixture
    def mock_redis(self):
        client = AsyncMock()
        client.get = AsyncMock(return_value=None)
        client.setex = AsyncMock(return_value=True)
        client.delete = AsyncMock(return_value=1)
        client.ping = AsyncMock(return_value=True)
        return client

    @pytest.fixture
    def cache(self, mock_redis):
        return RedisCacheStore("redis://localhost:6379/0", default_ttl=3600, redis=mock_redis)

    @pytest.mark.asyncio
    async def test_get_decodes_json(self, cache, mock_redis):
        mock_redis.get.return_value = json.dumps([{"query": "shoes"}]).encode()

        assert await cache.get("gsc:key") == [{"query": "shoes"}]
        mock_redis.get.assert_called_once_with("gsc:key")

    @pytest.mark.asyncio
    async def test_get_miss(self, cache):
        assert await cache.get("gsc:key") is None

    @pytest.mark.asyncio
    async def test_corrupted_entry_is_deleted(self, cache, mock_redis):
        mock_redis.get.return_value = b"{broken"

        assert await cache.get("gsc:key") is None
        mock_redis.delete.assert_called_once_with("gsc:key")

    @pytest.mark.asyncio
    async def test_set_uses_setex(self, cache, mock_redis):
        await cache.set("gsc:key", [1, 2], ttl=600)

        mock_redis.setex.assert_called_once_with("gsc:key", 600, "[1, 2]")

    @pytest.mark.asyncio
    async def test_set_uses_default_ttl(self, cache, mock_redis):
        await cache.set("gsc:key", [])

        mock_redis.setex.assert_called_once_with("gsc:key", 3600, "[]")

    @pytest.mark.asyncio
    async def test_set_rejects_unserializable(self, cache):
        with pytest.raises(TypeError):
            await cache.set("gsc:key", {"value": object()})

    @pytest.mark.asyncio
    async def test_clear_scans_escaped_prefix(self, cache, mock_redis):
        async def scan_iter(match):
            for key in (b"gsc:a*1", b"gsc:a*2"):
                yield key

        mock_redis.scan_iter = MagicMock(side_effect=scan_iter)
        mock_redis.delete.return_value = 2

        assert await cache.clear("gsc:a*") == 2
        mock_redis.scan_iter.assert_called_once_with(match="gsc:a\\**")
        mock_redis.delete.assert_called_once_with(b"gsc:a*1", b"gsc:a*2")

    @pytest.mark.asyncio
    async def test_clear_without_matches(self, cache, mock_redis):
        async def scan_iter(match):
            return
            yield

        mock_redis.scan_iter = MagicMock(side_effect=scan_iter)

        assert await cache.clear() == 0
        mock_redis.delete.assert_not_called()

    @pytest.mark.asyncio
    async def test_ping_failure_returns_false(self, cache, mock_redis):
        mock_redis.ping.side_effect = ConnectionError("refused")

        assert await cache.ping() is False


class TestCreateCacheStore:
    def test_memory_by_default(self):
        store = create_cache_store(Settings())
        assert isinstance(store, MemoryCacheStore)
        assert store.default_ttl == 3600

    def test_redis_when_enabled(self):
        settings = Settings(redis={"enabled": True, "url": "redis://localhost:6379/1"})

        with patch("gscnav_mcp.clients.cache.Redis.from_url") as from_url:
            store = create_cache_store(settings)

        assert isinstance(store, RedisCacheStore)
        from_url.assert_called_once_with("redis://localhost:6379/1", decode_responses=False)
