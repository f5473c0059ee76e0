"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file

Settings are read once at process start and treated as immutable afterwards.
Limiters never read this module directly; they receive frozen config values
built by ``LimiterSettings.fixed_window_config()`` and
``LimiterSettings.token_bucket_config()``.
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from ratelimit_api.adapters.rate_limit.base import FixedWindowConfig, TokenBucketConfig


# Determine which environment to load (default: development)
APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

# Map environments to their respective .env files (relative to PROJECT_ROOT)
ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

# Select the .env file for the current environment
_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Load .env file early to populate os.environ before creating nested settings
# This is necessary because Pydantic nested BaseSettings don't inherit env_file
if _env_file and not os.getenv("TESTING"):
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=False)


class RedisSettings(BaseSettings):
    """Connection parameters for the shared Redis store."""

    host: str = Field("redis", description="Redis host name")
    port: int = Field(6379, description="Redis TCP port", ge=1, le=65535)
    password: str | None = Field(None, description="Redis AUTH password")
    db: int = Field(0, description="Logical database index", ge=0)
    socket_timeout_seconds: float = Field(
        1.0,
        description="Upper bound for a single store round trip",
        gt=0,
    )
    connect_timeout_seconds: float = Field(
        1.0,
        description="Upper bound for establishing a store connection",
        gt=0,
    )
    startup_timeout_seconds: float = Field(
        5.0,
        description="Upper bound for the connectivity check performed at startup",
        gt=0,
    )
    health_timeout_seconds: float = Field(
        2.0,
        description="Upper bound for the ping issued by the health endpoint",
        gt=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="REDIS_",
        case_sensitive=False,
    )


class LimiterSettings(BaseSettings):
    """Algorithm parameters for both limiters."""

    fixed_window_max_requests: int = Field(
        3,
        description="Maximum requests allowed per window and client",
        ge=1,
    )
    fixed_window_ttl_seconds: int = Field(
        10,
        description="Window length in seconds, counted from the first request",
        ge=1,
    )
    fixed_window_atomic: bool = Field(
        True,
        description=(
            "Run increment and expiration as a single store-side script. "
            "When false, two separate store operations are issued."
        ),
    )
    token_bucket_max_tokens: int = Field(
        5,
        description="Bucket capacity in tokens",
        ge=1,
    )
    token_bucket_refill_rate: float = Field(
        1.0,
        description="Tokens added per second",
        ge=0,
    )
    token_bucket_idle_ttl_seconds: int = Field(
        60,
        description=(
            "Minimum lifetime of idle bucket state. Raised automatically to the "
            "time needed to refill an empty bucket."
        ),
        ge=1,
    )

    model_config = SettingsConfigDict(
        env_prefix="LIMITER_",
        case_sensitive=False,
    )

    def fixed_window_config(self) -> FixedWindowConfig:
        return FixedWindowConfig(
            max_requests=self.fixed_window_max_requests,
            window_seconds=self.fixed_window_ttl_seconds,
            atomic=self.fixed_window_atomic,
        )

    def token_bucket_config(self) -> TokenBucketConfig:
        return TokenBucketConfig(
            max_tokens=self.token_bucket_max_tokens,
            refill_rate=self.token_bucket_refill_rate,
            idle_ttl_seconds=self.token_bucket_idle_ttl_seconds,
        )


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    store_backend: str = Field(
        "redis",
        description="State store backend: 'redis' (shared) or 'memory' (single process)",
    )
    client_id_header: str = Field(
        "X-Client-ID",
        description="Header carrying the client identity; falls back to peer address",
    )
    include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* and Retry-After headers on decisions",
    )
    fail_fast_on_startup: bool = Field(
        True,
        description="Refuse to start when the store is unreachable at startup",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="Log format: 'json' or 'plain'")
    output: str = Field("stdout", description="Log destination: 'stdout' or 'file'")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(
        10_485_760,
        description="Rotate the log file after this many bytes (0 disables rotation)",
        ge=0,
    )
    backup_count: int = Field(5, description="Rotated files to keep", ge=0)
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to propagate the request correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are invalid.
    """

    app_env: str = APP_ENV
    redis: RedisSettings = Field(default_factory=RedisSettings)
    limiter: LimiterSettings = Field(default_factory=LimiterSettings)
    app: AppSettings = Field(default_factory=AppSettings)
    log: LogSettings = Field(default_factory=LogSettings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
# Nested settings are created via default_factory so env loading works.
settings = Settings()
