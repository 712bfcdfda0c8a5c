"""Centralized, typed configuration using pydantic-settings.

Provides a single ``Settings`` class backed by ``.env`` file and environment
variables, a cached ``get_settings()`` accessor, and a ``validate_credentials()``
startup gate that enforces credential presence in production mode.

IMPORTANT: This module has ZERO imports from the ``slackmcp`` package to
prevent circular imports.  Only stdlib, pydantic, pydantic_settings, and
structlog are used.
"""

from __future__ import annotations

import sys
from functools import lru_cache
from pathlib import Path

import structlog
from pydantic import Field, SecretStr, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = structlog.get_logger()


class Settings(BaseSettings):
    """Application settings loaded from environment variables and ``.env`` file.

    ``SecretStr`` fields prevent accidental leaks in logs or error output.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # -- General ---------------------------------------------------------------
    production: bool = False
    server_host: str = "0.0.0.0"
    server_port: int = 8000

    # -- Slack (secrets) -------------------------------------------------------
    slack_bot_token: SecretStr = SecretStr("")

    # -- Observability ---------------------------------------------------------
    sentry_dsn: str = ""

    # -- Identifier cache ------------------------------------------------------
    cache_dir: Path = Path("data/cache")
    principal_ttl_seconds: int = Field(default=3600, gt=0)
    channel_ttl_seconds: int = Field(default=900, gt=0)
    cache_page_limit: int = Field(default=200, ge=1, le=1000)
    cold_start_timeout_seconds: float = Field(default=30.0, gt=0)

    # -- Thread engine ---------------------------------------------------------
    history_page_limit: int = Field(default=200, ge=1, le=1000)
    reply_page_limit: int = Field(default=200, ge=1, le=1000)
    max_history_pages: int = Field(default=20, ge=1)
    reply_fetch_concurrency: int = Field(default=8, ge=1, le=50)
    operation_timeout_seconds: float = Field(default=60.0, gt=0)
    max_threads_per_collection: int = Field(default=50, ge=1, le=100)
    active_thread_window_hours: int = Field(default=168, ge=1)
    channel_scan_limit: int = Field(default=10, ge=1)

    # -- Resilience ------------------------------------------------------------
    retry_attempts: int = Field(default=3, ge=1)


@lru_cache
def get_settings() -> Settings:
    """Return a cached ``Settings`` instance.

    The ``@lru_cache`` decorator ensures environment variables are parsed
    exactly once.  Call ``get_settings.cache_clear()`` in tests to reset.

    Returns:
        The application ``Settings``.
    """
    try:
        return Settings()
    except ValidationError as exc:
        # Log only the structured errors list -- never the full exception
        # which may contain raw SecretStr values.
        logger.error("settings_validation_failed", errors=exc.errors())
        sys.exit(1)


def validate_credentials(settings: Settings) -> None:
    """Enforce credential presence at startup.

    In **production** mode (``settings.production is True``), the application
    exits with a clear error block if the bot token is missing or the cache
    directory cannot be created.

    In **development** mode, each problem is logged as a warning but the
    application continues to start.

    Args:
        settings: The loaded application settings.
    """
    errors: list[str] = []

    if not settings.slack_bot_token.get_secret_value():
        errors.append("SLACK_BOT_TOKEN is empty or not set")

    try:
        settings.cache_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        errors.append(f"Cache directory not writable: {settings.cache_dir} ({exc})")

    if not errors:
        logger.info("credential_validation_passed")
        return

    if settings.production:
        for err in errors:
            logger.error("credential_missing", detail=err)
        print("\n=== STARTUP FAILED ===", file=sys.stderr)
        print("Missing required configuration for production mode:", file=sys.stderr)
        for err in errors:
            print(f"  - {err}", file=sys.stderr)
        print("======================\n", file=sys.stderr)
        sys.exit(1)
    else:
        for err in errors:
            logger.warning("credential_missing_dev", detail=err)
