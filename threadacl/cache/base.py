"""
Base protocol and helpers for the cache abstraction.

The cache is a shared, best-effort store of derived values (group closures,
parent group lists, grant lookups). It is never authoritative: every value
can be recomputed from the relational store.

Invariants:
    - Values are JSON-serializable (lists, strings, booleans)
    - Every entry carries a TTL, which bounds staleness after a missed eviction
    - A failed read is treated as a miss; a failed write is logged and dropped
    - Evictions (delete, delete_prefix) report failures to the caller

How to change safely:
    - Protocol changes require updating all implementations
    - New key families must be registered in keys.py and evicted by the
      invalidation coordinator
"""

from __future__ import annotations

import logging
from abc import abstractmethod
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any, Protocol, TypeVar, runtime_checkable

from ..errors import CacheUnavailableError

if TYPE_CHECKING:
    from ..config import CacheConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")


@runtime_checkable
class Cache(Protocol):
    """Protocol for cache backends.

    Example:
        >>> cache = InMemoryCache()
        >>> await cache.connect()
        >>> await cache.set("user:42:groups", ["g1", "g2"], ttl_seconds=600)
        >>> await cache.get("user:42:groups")
        ['g1', 'g2']
    """

    @abstractmethod
    async def connect(self) -> None:
        """Connect to the backend.

        Raises:
            CacheUnavailableError: If the backend cannot be reached
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release backend resources."""
        ...

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """Return the cached value, or None on a miss or expired entry.

        Raises:
            CacheUnavailableError: If the backend fails
        """
        ...

    @abstractmethod
    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        """Store a value that expires after ``ttl_seconds``.

        Raises:
            CacheUnavailableError: If the backend fails
        """
        ...

    @abstractmethod
    async def delete(self, *keys: str) -> int:
        """Delete keys. Returns the number of keys that existed.

        Raises:
            CacheUnavailableError: If the backend fails
        """
        ...

    @abstractmethod
    async def delete_prefix(self, prefix: str) -> int:
        """Delete every key starting with ``prefix``. Returns the number deleted.

        Raises:
            CacheUnavailableError: If the backend fails
        """
        ...

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Whether the backend connection is open."""
        ...


async def cached_fetch(
    cache: Cache,
    key: str,
    ttl_seconds: int,
    loader: Callable[[], Awaitable[T]],
) -> T:
    """Read-through lookup: cache first, then ``loader``, then repopulate.

    Cache failures degrade to a store read; loader failures propagate.

    Args:
        cache: Cache backend
        key: Cache key
        ttl_seconds: TTL for a repopulated entry
        loader: Coroutine factory computing the value from the store

    Returns:
        Cached or freshly loaded value
    """
    try:
        cached = await cache.get(key)
    except CacheUnavailableError as e:
        logger.warning(f"Cache read failed, falling back to store: {e}", extra={"key": key})
        cached = None

    if cached is not None:
        logger.debug(f"Cache hit for key: {key}")
        return cached

    logger.debug(f"Cache miss for key: {key}")
    value = await loader()

    try:
        await cache.set(key, value, ttl_seconds)
    except CacheUnavailableError as e:
        logger.warning(f"Cache write failed: {e}", extra={"key": key})

    return value


def create_cache(config: CacheConfig) -> Cache:
    """Factory function to create a cache backend from configuration.

    Args:
        config: Cache configuration

    Returns:
        Appropriate Cache implementation

    Raises:
        ValueError: If backend is not supported
    """
    from ..config import CacheBackend
    from .memory import InMemoryCache
    from .redis import RedisCache

    if config.backend == CacheBackend.MEMORY:
        return InMemoryCache()
    elif config.backend == CacheBackend.REDIS:
        return RedisCache(config.redis_url, key_prefix=config.key_prefix)
    else:
        raise ValueError(f"Unsupported cache backend: {config.backend}")
