"""Throttle configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Determine which environment to load (default: development)
APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Nested BaseSettings don't inherit env_file, so populate os.environ first.
if _env_file and not os.getenv("TESTING"):
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


U64_MAX = 2**64 - 1
U32_MAX = 2**32 - 1


def _build_throttle_settings() -> "ThrottleSettings":
    """Build throttle settings from environment."""

    return ThrottleSettings()


def _build_log_settings() -> "LogSettings":
    """Build log settings from environment."""

    return LogSettings()


def _default_shards() -> int:
    return os.cpu_count() or 1


class ThrottleSettings(BaseSettings):
    """Engine-wide throttling configuration.

    The ``max_*`` ceilings are administrative limits applied on top of the
    u64/u32 wire ranges when a limit is configured.
    """

    enabled: bool = Field(
        True,
        description="Master switch; when false every runtime hook is a no-op",
    )
    page_size: int = Field(
        4096,
        description="Bytes per dirty page when converting page counts",
        ge=1,
    )
    dirty_batch_pages: int = Field(
        32,
        description="Per-shard dirty delta (in pages) folded into the global counter",
        ge=1,
    )
    dirty_shards: int = Field(
        default_factory=_default_shards,
        description="Number of counter shards assumed when bounding approximate drift",
        ge=1,
    )
    max_speed: int = Field(
        U64_MAX,
        description="Largest accepted speed (units per second)",
        ge=0,
        le=U64_MAX,
    )
    max_burst: int = Field(
        U64_MAX,
        description="Largest accepted burst (units)",
        ge=0,
        le=U64_MAX,
    )
    max_latency_ms: int = Field(
        U32_MAX,
        description="Largest accepted latency bound in milliseconds",
        ge=0,
        le=U32_MAX,
    )

    model_config = SettingsConfigDict(
        env_prefix="IOLIMIT_",
        case_sensitive=False,
    )

    @property
    def dirty_batch_bytes(self) -> int:
        return self.dirty_batch_pages * self.page_size


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field(
        "INFO",
        description="Root log level name",
    )
    format: str = Field(
        "json",
        description="Log format: 'json' or 'plain'",
    )
    output: str = Field(
        "stdout",
        description="Log destination: 'stdout' or 'file'",
    )
    file_path: str | None = Field(
        None,
        description="Log file path when output is 'file'",
    )
    max_bytes: int = Field(
        10 * 1024 * 1024,
        description="Rotate the log file after this many bytes (0 disables rotation)",
        ge=0,
    )
    backup_count: int = Field(
        5,
        description="Number of rotated log files to keep",
        ge=0,
    )
    correlation_id_field: str = Field(
        "correlation_id",
        description="Key under which the correlation id is emitted in JSON logs",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are malformed.
    """

    app_env: str = APP_ENV
    throttle: ThrottleSettings = Field(default_factory=_build_throttle_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


settings = Settings()
