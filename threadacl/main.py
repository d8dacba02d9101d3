"""
ThreadACL Server - Main entry point.

This module starts the ThreadACL HTTP API with all components:
- SQLite store (schema created on startup)
- Cache backend (memory or Redis)
- FastAPI application served by uvicorn

Usage:
    python -m threadacl.main

Configuration is entirely via environment variables.
See config.py for all available settings.

Invariants:
    - Configuration errors abort startup before anything binds
    - The cache is connected before the first request is served
    - Shutdown closes the cache after in-flight requests finish
"""

from __future__ import annotations

import asyncio
import logging
import sys

import json_log_formatter
import uvicorn

from .api import ApiSettings, create_app
from .config import ServerConfig
from .services import AuthorizationService

logger = logging.getLogger(__name__)


def setup_logging(config: ServerConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Server configuration
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("redis").setLevel(logging.WARNING)


class Server:
    """ThreadACL server orchestrator.

    Attributes:
        config: Server configuration
        service: Authorization service shared by all requests

    Example:
        >>> server = Server()
        >>> await server.start()
        >>> # Serving until request_shutdown()
    """

    def __init__(self, config: ServerConfig | None = None) -> None:
        self.config = config or ServerConfig.from_env()
        self.service = AuthorizationService.from_config(self.config)
        self._uvicorn: uvicorn.Server | None = None

    async def start(self) -> None:
        """Serve HTTP until shutdown is requested."""
        logger.info("Starting ThreadACL server")
        self.config.log_config()

        app = create_app(self.service, ApiSettings())
        self._uvicorn = uvicorn.Server(
            uvicorn.Config(
                app,
                host=self.config.http.host,
                port=self.config.http.port,
                log_config=None,
            )
        )
        try:
            await self._uvicorn.serve()
        except Exception as e:
            logger.error(f"Server failed: {e}", exc_info=True)
            raise
        logger.info("ThreadACL server stopped")

    def request_shutdown(self) -> None:
        """Request graceful shutdown."""
        if self._uvicorn is not None:
            self._uvicorn.should_exit = True


def main() -> None:
    """Main entry point."""
    try:
        config = ServerConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config)

    server = Server(config)

    # uvicorn installs SIGINT/SIGTERM handlers that trigger graceful shutdown
    try:
        asyncio.run(server.start())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
