"""
Unit tests for cache helpers.

Tests cover:
- Key layout
- Read-through fetch (hit, miss, degraded cache)
- Backend factory
"""

import pytest

from threadacl.cache import InMemoryCache, RedisCache, cached_fetch, create_cache
from threadacl.cache.keys import (
    EXPLICIT,
    GROUP,
    group_parents_key,
    permission_key,
    permission_prefix,
    user_groups_key,
)
from threadacl.config import CacheBackend, CacheConfig
from threadacl.models import PermissionType


class TestKeys:
    """Tests for the cache key layout."""

    def test_user_groups_key(self):
        assert user_groups_key("u1") == "user:u1:groups"

    def test_group_parents_key(self):
        assert group_parents_key("g1") == "group:g1:parents"

    def test_permission_keys_share_content_prefix(self):
        """Every permission key of an item starts with its prefix."""
        explicit = permission_key("c1", "u1", EXPLICIT, PermissionType.EDIT)
        group = permission_key("c1", "u2", GROUP, PermissionType.VIEW)

        assert explicit == "permissions:c1:u1:explicit_edit"
        assert group == "permissions:c1:u2:group_view"
        assert explicit.startswith(permission_prefix("c1"))
        assert group.startswith(permission_prefix("c1"))

    def test_prefix_does_not_match_longer_id(self):
        """c1's prefix must not cover c10's keys."""
        key = permission_key("c10", "u1", EXPLICIT, PermissionType.EDIT)
        assert not key.startswith(permission_prefix("c1"))

    def test_invalid_scope(self):
        with pytest.raises(ValueError):
            permission_key("c1", "u1", "decision", PermissionType.EDIT)


class TestCachedFetch:
    """Tests for the read-through helper."""

    @pytest.mark.asyncio
    async def test_miss_then_hit(self):
        """The loader runs once; the second call is served from cache."""
        cache = InMemoryCache()
        await cache.connect()
        calls = []

        async def loader():
            calls.append(1)
            return ["g1"]

        first = await cached_fetch(cache, "user:u1:groups", 60, loader)
        second = await cached_fetch(cache, "user:u1:groups", 60, loader)

        assert first == second == ["g1"]
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_cached_false_is_a_hit(self):
        cache = InMemoryCache()
        await cache.connect()
        calls = []

        async def loader():
            calls.append(1)
            return False

        assert await cached_fetch(cache, "k", 60, loader) is False
        assert await cached_fetch(cache, "k", 60, loader) is False
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_unavailable_cache_falls_back_to_loader(self):
        """A cache that fails reads and writes still yields the loaded value."""
        cache = InMemoryCache()  # never connected: every call fails

        async def loader():
            return ["g1", "g2"]

        assert await cached_fetch(cache, "user:u1:groups", 60, loader) == ["g1", "g2"]

    @pytest.mark.asyncio
    async def test_loader_errors_propagate(self):
        cache = InMemoryCache()
        await cache.connect()

        async def loader():
            raise RuntimeError("store down")

        with pytest.raises(RuntimeError):
            await cached_fetch(cache, "k", 60, loader)
        assert cache.keys() == []


class TestCreateCache:
    """Tests for the backend factory."""

    def test_memory_backend(self):
        cache = create_cache(CacheConfig(backend=CacheBackend.MEMORY))
        assert isinstance(cache, InMemoryCache)

    def test_redis_backend(self):
        cache = create_cache(
            CacheConfig(
                backend=CacheBackend.REDIS,
                redis_url="redis://cache:6379/1",
                key_prefix="acl:",
            )
        )
        assert isinstance(cache, RedisCache)
        assert cache.url == "redis://cache:6379/1"
        assert cache.key_prefix == "acl:"
        assert not cache.is_connected
