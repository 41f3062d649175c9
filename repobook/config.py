"""
Repobook Configuration.

Environment-driven configuration using Pydantic Settings. Every field can
be set with a ``REPOBOOK_`` prefixed environment variable or in a ``.env``
file; command-line flags override both.
"""

from __future__ import annotations

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


__all__ = ["RepobookConfig", "LOG_FORMAT"]


LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class RepobookConfig(BaseSettings):
    """
    Server configuration.

    Configuration Sources (priority order):
    1. Command-line flags
    2. Environment variables
    3. .env file
    4. Default values
    """

    model_config = SettingsConfigDict(
        env_prefix="REPOBOOK_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Server
    host: str = "127.0.0.1"
    port: int = Field(0, ge=0, le=65535)  # 0 = pick a free port
    open_browser: bool = True

    # Repository
    ignore_file: str = ".gitignore"

    # Search
    search_limit: int = Field(200, ge=1)
    search_timeout_seconds: float = Field(3.0, gt=0)

    # Render cache (0 = unbounded)
    cache_max_entries: int = Field(0, ge=0)

    # Observability
    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"unknown log level: {value}")
        return level
