"""
In-memory cache implementation.

This module provides a process-local cache backend for:
- Unit tests
- Integration tests
- Single-process deployments without Redis

Invariants:
    - All data is lost on process exit
    - Values are stored as JSON round-tripped copies, so callers observe the
      same shapes a networked backend would return
    - Expired entries are never returned
    - Expired entries are swept on write at most once per purge interval,
      so keys that are never read again do not accumulate
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Callable
from typing import Any

from ..errors import CacheUnavailableError

logger = logging.getLogger(__name__)


class InMemoryCache:
    """In-memory implementation of the Cache protocol.

    Attributes:
        clock: Monotonic time source in seconds (injectable for tests)
        purge_interval_seconds: Minimum time between sweeps of expired entries

    Thread safety:
        Uses an asyncio lock. Safe to use from multiple coroutines.

    Example:
        >>> cache = InMemoryCache()
        >>> await cache.connect()
        >>> await cache.set("group:g1:parents", ["g2"], ttl_seconds=600)
        >>> await cache.delete_prefix("group:")
        1
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        purge_interval_seconds: float = 60.0,
    ) -> None:
        self.clock = clock
        self.purge_interval_seconds = purge_interval_seconds
        self._next_purge = 0.0
        self._entries: dict[str, tuple[str, float]] = {}
        self._connected = False
        self._lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        """Connect (no-op for in-memory)."""
        self._connected = True
        logger.debug("InMemoryCache connected")

    async def close(self) -> None:
        """Close and clear all data."""
        self._connected = False
        self._entries.clear()
        logger.debug("InMemoryCache closed")

    def _check_connected(self) -> None:
        if not self._connected:
            raise CacheUnavailableError("Not connected")

    async def get(self, key: str) -> Any | None:
        self._check_connected()
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            payload, expires_at = entry
            if expires_at <= self.clock():
                del self._entries[key]
                return None
            return json.loads(payload)

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        self._check_connected()
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive, got {ttl_seconds}")
        payload = json.dumps(value)
        async with self._lock:
            now = self.clock()
            if now >= self._next_purge:
                self._purge_expired(now)
            self._entries[key] = (payload, now + ttl_seconds)

    async def delete(self, *keys: str) -> int:
        self._check_connected()
        deleted = 0
        async with self._lock:
            for key in keys:
                if self._entries.pop(key, None) is not None:
                    deleted += 1
        return deleted

    async def delete_prefix(self, prefix: str) -> int:
        self._check_connected()
        async with self._lock:
            matching = [key for key in self._entries if key.startswith(prefix)]
            for key in matching:
                del self._entries[key]
        logger.debug(f"Deleted {len(matching)} keys with prefix {prefix}")
        return len(matching)

    def _purge_expired(self, now: float) -> None:
        expired = [key for key, (_, expires_at) in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]
        self._next_purge = now + self.purge_interval_seconds
        if expired:
            logger.debug(f"Purged {len(expired)} expired keys")

    def entry_count(self) -> int:
        """Stored entries, expired ones included (testing helper)."""
        return len(self._entries)

    def keys(self) -> list[str]:
        """Snapshot of live keys (testing helper)."""
        now = self.clock()
        return sorted(key for key, (_, expires_at) in self._entries.items() if expires_at > now)
