"""
Configuration management for ThreadACL.

All configuration is done via environment variables - no config files inside
containers. This module provides typed configuration classes with validation.

Invariants:
    - All settings have sensible defaults for local development
    - Production deployments MUST set explicit values for the cache backend
    - Secrets (Redis passwords in URLs) are never logged

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Deprecate settings by logging warnings but continuing to support them
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from urllib.parse import urlsplit, urlunsplit

logger = logging.getLogger(__name__)


class CacheBackend(Enum):
    """Supported cache backends."""

    MEMORY = "memory"
    REDIS = "redis"


@dataclass(frozen=True)
class StorageConfig:
    """Relational store configuration.

    Attributes:
        db_path: SQLite database file
        wal_mode: SQLite WAL mode enabled
        busy_timeout_ms: SQLite busy timeout in milliseconds
    """

    db_path: str = "./threadacl.db"
    wal_mode: bool = True
    busy_timeout_ms: int = 5000

    @classmethod
    def from_env(cls) -> StorageConfig:
        """Load configuration from environment variables."""
        return cls(
            db_path=os.getenv("THREADACL_DB_PATH", "./threadacl.db"),
            wal_mode=os.getenv("SQLITE_WAL_MODE", "true").lower() == "true",
            busy_timeout_ms=int(os.getenv("SQLITE_BUSY_TIMEOUT_MS", "5000")),
        )


@dataclass(frozen=True)
class CacheConfig:
    """Cache configuration.

    Attributes:
        backend: Which cache backend to use
        redis_url: Redis connection URL (if backend is REDIS)
        key_prefix: Namespace prepended to every Redis key
        ttl_seconds: TTL for closures and grant lookups
    """

    backend: CacheBackend = CacheBackend.MEMORY
    redis_url: str = "redis://localhost:6379/0"
    key_prefix: str = "threadacl:"
    ttl_seconds: int = 600  # 10 minutes

    @classmethod
    def from_env(cls) -> CacheConfig:
        """Load configuration from environment variables."""
        backend_str = os.getenv("CACHE_BACKEND", "memory").lower()
        try:
            backend = CacheBackend(backend_str)
        except ValueError:
            raise ValueError(
                f"Invalid CACHE_BACKEND '{backend_str}'. Must be one of: memory, redis"
            ) from None

        return cls(
            backend=backend,
            redis_url=os.getenv("REDIS_URL", "redis://localhost:6379/0"),
            key_prefix=os.getenv("CACHE_KEY_PREFIX", "threadacl:"),
            ttl_seconds=int(os.getenv("CACHE_TTL_SECONDS", "600")),
        )

    @property
    def redacted_redis_url(self) -> str:
        """Redis URL with any password replaced by ***."""
        parts = urlsplit(self.redis_url)
        if parts.password is None:
            return self.redis_url
        netloc = parts.netloc.replace(f":{parts.password}@", ":***@")
        return urlunsplit(parts._replace(netloc=netloc))


@dataclass(frozen=True)
class HttpConfig:
    """HTTP server configuration.

    Attributes:
        host: Address to bind
        port: Port to bind
    """

    host: str = "0.0.0.0"
    port: int = 8080

    @classmethod
    def from_env(cls) -> HttpConfig:
        """Load configuration from environment variables."""
        return cls(
            host=os.getenv("HTTP_HOST", "0.0.0.0"),
            port=int(os.getenv("HTTP_PORT", "8080")),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Observability and logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
        )


@dataclass
class ServerConfig:
    """Complete server configuration.

    Attributes:
        storage: Relational store configuration
        cache: Cache configuration
        http: HTTP server configuration
        observability: Observability configuration
    """

    storage: StorageConfig = field(default_factory=StorageConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    http: HttpConfig = field(default_factory=HttpConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> ServerConfig:
        """Load complete configuration from environment variables.

        Raises:
            ValueError: If configuration is missing or invalid.
        """
        config = cls(
            storage=StorageConfig.from_env(),
            cache=CacheConfig.from_env(),
            http=HttpConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if self.cache.backend == CacheBackend.REDIS and not self.cache.redis_url:
            raise ValueError("REDIS_URL is required when CACHE_BACKEND=redis")
        if self.cache.ttl_seconds <= 0:
            raise ValueError("CACHE_TTL_SECONDS must be positive")
        if not self.storage.db_path:
            raise ValueError("THREADACL_DB_PATH must not be empty")
        if self.storage.db_path == ":memory:":
            raise ValueError(
                "THREADACL_DB_PATH must be a file; every operation opens its own connection"
            )
        if self.observability.log_format not in ("json", "text"):
            raise ValueError("LOG_FORMAT must be one of: json, text")

        db_dir = os.path.dirname(os.path.abspath(self.storage.db_path))
        if not os.path.exists(db_dir):
            logger.warning(
                f"Database directory does not exist: {db_dir}. It will be created on startup."
            )

    def log_config(self) -> None:
        """Log configuration (redacting secrets)."""
        logger.info(
            "Server configuration loaded",
            extra={
                "db_path": self.storage.db_path,
                "cache_backend": self.cache.backend.value,
                "redis_url": self.cache.redacted_redis_url
                if self.cache.backend == CacheBackend.REDIS
                else None,
                "cache_ttl_seconds": self.cache.ttl_seconds,
                "http_bind": f"{self.http.host}:{self.http.port}",
                "log_level": self.observability.log_level,
            },
        )
