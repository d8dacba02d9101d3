"""
Cache abstraction for ThreadACL.

This module provides a pluggable cache backend interface supporting:
- Redis (recommended for multi-process deployments)
- In-memory (tests, single-process)

Invariants:
    - The cache is never the system of record
    - Entries always carry a TTL
    - Prefix deletion is available on every backend

How to change safely:
    - New backends must implement the Cache protocol
    - Keep key layout changes in keys.py
"""

from .base import Cache, cached_fetch, create_cache
from .memory import InMemoryCache
from .redis import RedisCache

__all__ = [
    "Cache",
    "cached_fetch",
    "create_cache",
    "InMemoryCache",
    "RedisCache",
]
