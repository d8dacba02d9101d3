"""
Redis cache implementation.

Production cache backend built on ``redis.asyncio``. Values are JSON
strings stored with SET ... EX, and prefix deletion walks the keyspace with
SCAN (never KEYS) so large keyspaces do not block the server.

Invariants:
    - Every key is namespaced with ``key_prefix``
    - Redis errors surface as CacheUnavailableError
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from redis import asyncio as aioredis
from redis.exceptions import RedisError

from ..errors import CacheUnavailableError

logger = logging.getLogger(__name__)

_GLOB_SPECIAL = re.compile(r"([*?\[\]\\])")


def escape_glob(text: str) -> str:
    """Escape Redis glob metacharacters so ``text`` matches literally."""
    return _GLOB_SPECIAL.sub(r"\\\1", text)


class RedisCache:
    """Redis implementation of the Cache protocol.

    Example:
        >>> cache = RedisCache("redis://localhost:6379/0")
        >>> await cache.connect()
        >>> await cache.set("user:42:groups", ["g1"], ttl_seconds=600)
    """

    SCAN_BATCH = 500

    def __init__(
        self,
        url: str,
        key_prefix: str = "threadacl:",
        client: aioredis.Redis | None = None,
    ) -> None:
        """Initialize the Redis cache.

        Args:
            url: Redis connection URL
            key_prefix: Namespace prepended to every key
            client: Pre-built client (tests inject a mock here)
        """
        self.url = url
        self.key_prefix = key_prefix
        self._client = client

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    def _key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    def _require_client(self) -> aioredis.Redis:
        if self._client is None:
            raise CacheUnavailableError("Not connected")
        return self._client

    async def connect(self) -> None:
        if self._client is None:
            self._client = aioredis.Redis.from_url(self.url, decode_responses=True)
        try:
            await self._client.ping()
        except RedisError as e:
            raise CacheUnavailableError(f"Failed to connect to Redis: {e}") from e
        logger.info("Connected to Redis cache")

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("Redis cache closed")

    async def get(self, key: str) -> Any | None:
        client = self._require_client()
        try:
            payload = await client.get(self._key(key))
        except RedisError as e:
            raise CacheUnavailableError(f"Redis GET failed: {e}") from e
        if payload is None:
            return None
        return json.loads(payload)

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        client = self._require_client()
        try:
            await client.set(self._key(key), json.dumps(value), ex=ttl_seconds)
        except RedisError as e:
            raise CacheUnavailableError(f"Redis SET failed: {e}") from e

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        client = self._require_client()
        try:
            return int(await client.delete(*(self._key(key) for key in keys)))
        except RedisError as e:
            raise CacheUnavailableError(f"Redis DEL failed: {e}") from e

    async def delete_prefix(self, prefix: str) -> int:
        client = self._require_client()
        pattern = f"{escape_glob(self._key(prefix))}*"
        deleted = 0
        batch: list[str] = []
        try:
            async for key in client.scan_iter(match=pattern, count=self.SCAN_BATCH):
                batch.append(key)
                if len(batch) >= self.SCAN_BATCH:
                    deleted += int(await client.delete(*batch))
                    batch.clear()
            if batch:
                deleted += int(await client.delete(*batch))
        except RedisError as e:
            raise CacheUnavailableError(f"Redis prefix delete failed: {e}") from e

        logger.debug(f"Deleted {deleted} keys with prefix {prefix}")
        return deleted
