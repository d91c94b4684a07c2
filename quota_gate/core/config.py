"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- A plain .env in the project root is used when no environment file exists

Per-token quota overrides (``TOKEN_LIMIT_<token>=<limit>,<minutes>``) have a
variable name per token, so they are not modelled here; see
``quota_gate.core.quotas.parse_token_limits``.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}


def _resolve_env_file() -> Path | None:
    candidates = [ENV_FILE_MAP.get(APP_ENV, ".env.development"), ".env"]
    for name in candidates:
        path = PROJECT_ROOT / name
        if path.is_file():
            return path
    return None


_env_file = _resolve_env_file()

# Nested BaseSettings don't inherit env_file, so populate os.environ up front.
# override=False keeps variables injected by the process environment (and tests).
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=False)


class LimiterSettings(BaseSettings):
    """Default quota applied to addresses and unrecognized tokens."""

    ip_requests_per_second: int = Field(
        5,
        description="Maximum requests per 1-second window for identifiers without an override",
        ge=1,
    )
    ip_block_duration_minutes: int = Field(
        1,
        description="How long an identifier stays blocked after exceeding the default limit",
        ge=0,
    )
    token_header: str = Field(
        "API_KEY",
        description="Request header carrying the access token used as identifier",
    )
    token_override_prefix: str = Field(
        "TOKEN_LIMIT_",
        description="Environment variable prefix for per-token quota overrides",
    )

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


class StoreSettings(BaseSettings):
    """Counting store backend selection."""

    backend: Literal["redis", "memory"] = Field(
        "redis",
        description="Counting store backend: 'redis' (shared) or 'memory' (single process)",
    )

    model_config = SettingsConfigDict(
        env_prefix="STORE_",
        case_sensitive=False,
    )


class RedisSettings(BaseSettings):
    """Connection settings for the Redis counting store."""

    addr: str = Field(
        "localhost:6379",
        description="Redis address as host:port",
    )
    password: str | None = Field(
        None,
        description="Redis AUTH password",
    )
    db: int = Field(
        0,
        description="Redis logical database number",
        ge=0,
    )
    socket_timeout_seconds: float = Field(
        0.5,
        description="Per-command socket timeout; a timeout counts as store unavailable",
        gt=0,
    )
    max_retries: int = Field(
        2,
        description="Retries on connection errors/timeouts before giving up",
        ge=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="REDIS_",
        case_sensitive=False,
    )


class ServerSettings(BaseSettings):
    """Bind address for the HTTP server."""

    host: str = Field("0.0.0.0", description="Interface to bind")
    port: int = Field(8080, description="TCP port to listen on", ge=1, le=65535)

    model_config = SettingsConfigDict(
        env_prefix="SERVER_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging configuration."""

    level: str = Field("INFO", description="Root log level")
    format: Literal["json", "plain"] = Field(
        "json",
        description="Log line format",
    )
    output: Literal["stdout", "file"] = Field(
        "stdout",
        description="Where log lines are written",
    )
    file_path: str | None = Field(
        None,
        description="Log file path when output=file (defaults to logs/quota_gate.log)",
    )
    max_bytes: int = Field(
        0,
        description="Rotate the log file at this size; 0 disables rotation",
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


def _build_limiter_settings() -> LimiterSettings:
    # BaseSettings fields are populated from the environment, not the constructor.
    return LimiterSettings()  # type: ignore[call-arg]


def _build_store_settings() -> StoreSettings:
    return StoreSettings()  # type: ignore[call-arg]


def _build_redis_settings() -> RedisSettings:
    return RedisSettings()  # type: ignore[call-arg]


def _build_server_settings() -> ServerSettings:
    return ServerSettings()  # type: ignore[call-arg]


def _build_log_settings() -> LogSettings:
    return LogSettings()  # type: ignore[call-arg]


class Settings(BaseSettings):
    """Main application settings container.

    Raises validation errors on startup if a setting is out of range.
    """

    app_env: str = APP_ENV
    limiter: LimiterSettings = Field(default_factory=_build_limiter_settings)
    store: StoreSettings = Field(default_factory=_build_store_settings)
    redis: RedisSettings = Field(default_factory=_build_redis_settings)
    server: ServerSettings = Field(default_factory=_build_server_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


settings = Settings()
