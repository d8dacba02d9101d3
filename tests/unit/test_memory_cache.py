"""
Unit tests for the in-memory cache backend.

Tests cover:
- Connection lifecycle
- TTL expiry
- Key and prefix deletion
- JSON round-tripped values
"""

import pytest

from threadacl.cache import Cache, InMemoryCache
from threadacl.errors import CacheUnavailableError


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestInMemoryCache:
    """Tests for InMemoryCache."""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def cache(self, clock):
        """Create a fresh cache."""
        return InMemoryCache(clock=clock)

    def test_implements_protocol(self, cache):
        """InMemoryCache satisfies the Cache protocol."""
        assert isinstance(cache, Cache)

    @pytest.mark.asyncio
    async def test_connect_disconnect(self, cache):
        """Test connection lifecycle."""
        assert not cache.is_connected

        await cache.connect()
        assert cache.is_connected

        await cache.close()
        assert not cache.is_connected

    @pytest.mark.asyncio
    async def test_get_requires_connection(self, cache):
        """Reads fail if not connected."""
        with pytest.raises(CacheUnavailableError):
            await cache.get("user:1:groups")

    @pytest.mark.asyncio
    async def test_set_then_get(self, cache):
        """Stored value comes back unchanged."""
        await cache.connect()

        await cache.set("user:1:groups", ["g1", "g2"], ttl_seconds=60)

        assert await cache.get("user:1:groups") == ["g1", "g2"]

    @pytest.mark.asyncio
    async def test_missing_key_is_none(self, cache):
        await cache.connect()
        assert await cache.get("nope") is None

    @pytest.mark.asyncio
    async def test_false_is_stored(self, cache):
        """A cached False is a value, not a miss."""
        await cache.connect()

        await cache.set("permissions:c1:u1:explicit_edit", False, ttl_seconds=60)

        assert await cache.get("permissions:c1:u1:explicit_edit") is False

    @pytest.mark.asyncio
    async def test_values_are_copies(self, cache):
        """Mutating the stored object does not change the cached value."""
        await cache.connect()
        value = ["g1"]

        await cache.set("user:1:groups", value, ttl_seconds=60)
        value.append("g2")

        assert await cache.get("user:1:groups") == ["g1"]

    @pytest.mark.asyncio
    async def test_entry_expires(self, cache, clock):
        """Entries disappear once their TTL has elapsed."""
        await cache.connect()
        await cache.set("group:g1:parents", ["g2"], ttl_seconds=10)

        clock.now += 9.5
        assert await cache.get("group:g1:parents") == ["g2"]

        clock.now += 1
        assert await cache.get("group:g1:parents") is None
        assert cache.keys() == []

    @pytest.mark.asyncio
    async def test_expired_entries_swept_on_write(self, cache, clock):
        """Keys never read again are dropped once the purge interval passes."""
        await cache.connect()
        await cache.set("permissions:c1:u1:explicit_view", True, ttl_seconds=1)

        clock.now += 2
        await cache.set("permissions:c2:u1:explicit_view", True, ttl_seconds=10)
        assert cache.entry_count() == 2

        clock.now += 60
        await cache.set("permissions:c3:u1:explicit_view", False, ttl_seconds=10)
        assert cache.entry_count() == 1
        assert cache.keys() == ["permissions:c3:u1:explicit_view"]

    @pytest.mark.asyncio
    async def test_ttl_must_be_positive(self, cache):
        await cache.connect()
        with pytest.raises(ValueError):
            await cache.set("k", 1, ttl_seconds=0)

    @pytest.mark.asyncio
    async def test_delete_counts_existing_keys(self, cache):
        """Delete returns the number of keys actually removed."""
        await cache.connect()
        await cache.set("a", 1, ttl_seconds=60)
        await cache.set("b", 2, ttl_seconds=60)

        deleted = await cache.delete("a", "b", "c")

        assert deleted == 2
        assert cache.keys() == []

    @pytest.mark.asyncio
    async def test_delete_prefix(self, cache):
        """Prefix delete removes only matching keys."""
        await cache.connect()
        await cache.set("permissions:c1:u1:explicit_edit", True, ttl_seconds=60)
        await cache.set("permissions:c1:u2:group_view", False, ttl_seconds=60)
        await cache.set("permissions:c10:u1:explicit_edit", True, ttl_seconds=60)

        deleted = await cache.delete_prefix("permissions:c1:")

        assert deleted == 2
        assert cache.keys() == ["permissions:c10:u1:explicit_edit"]

    @pytest.mark.asyncio
    async def test_close_clears_data(self, cache):
        await cache.connect()
        await cache.set("a", 1, ttl_seconds=60)

        await cache.close()
        await cache.connect()

        assert await cache.get("a") is None
