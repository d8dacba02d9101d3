"""
Configuration for the ThreadACL HTTP API.

Uses pydantic-settings for environment variable loading.
"""

from pydantic import Field
from pydantic_settings import BaseSettings


class ApiSettings(BaseSettings):
    """HTTP API configuration loaded from environment."""

    # CORS settings
    cors_origins: list[str] = Field(default=["*"], description="Allowed CORS origins")

    # Pagination defaults
    default_page_size: int = Field(default=10, description="Default items per page")
    max_page_size: int = Field(default=100, description="Maximum items per page")

    model_config = {"env_prefix": "THREADACL_API_"}
