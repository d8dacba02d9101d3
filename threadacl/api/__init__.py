"""
API module for ThreadACL.

This module provides:
- HTTP server (FastAPI) exposing the authorization service
- Request/response schemas
- API settings loaded with pydantic-settings
"""

from .http_server import create_app, status_for
from .settings import ApiSettings

__all__ = [
    "create_app",
    "status_for",
    "ApiSettings",
]
