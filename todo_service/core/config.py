"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file

Pipeline-related values left unset (None) fall back to the environment
preset resolved in ``todo_service.pipeline.factory``.
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


# Nested BaseSettings don't inherit env_file, so populate os.environ first
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


def split_csv(value: str | None) -> tuple[str, ...]:
    """Split a comma-separated setting into trimmed, non-empty items.

    Examples:
        >>> split_csv("/health, /docs/*")
        ('/health', '/docs/*')
        >>> split_csv(None)
        ()
    """
    if not value:
        return ()
    return tuple(item.strip() for item in value.split(",") if item.strip())


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    title: str = Field(
        "TODO Service",
        description="Application title exposed in the OpenAPI document",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="Log format: json or plain")
    output: str = Field("stdout", description="Log destination: stdout or file")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(
        10 * 1024 * 1024,
        description="Rotate the log file after this many bytes (0 disables rotation)",
        ge=0,
    )
    backup_count: int = Field(5, description="Rotated log files to keep", ge=0)
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to read/propagate the request correlation id",
    )
    slow_request_ms: int = Field(
        1000,
        description="Requests slower than this are logged as warnings",
        ge=1,
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class RateLimitSettings(BaseSettings):
    """Rate limiting stage configuration."""

    enabled: bool = Field(True, description="Register the global rate limit stage")
    max_requests: int | None = Field(
        None,
        description="Requests allowed per window; None uses the environment preset",
        ge=0,
    )
    window_ms: int = Field(
        15 * 60 * 1000,
        description="Fixed window duration in milliseconds",
        ge=1,
    )
    standard_headers: bool = Field(True, description="Emit RateLimit-* headers")
    legacy_headers: bool = Field(False, description="Emit X-RateLimit-* headers")
    skip_routes: str | None = Field(
        "/health",
        description="Comma-separated route templates exempt from the global limit",
    )
    strict_enabled: bool = Field(
        True,
        description="Register the strict limit stage for sensitive write endpoints",
    )
    strict_routes: str | None = Field(
        "POST /api/v1/todos,DELETE /api/v1/todos/{todo_id}",
        description="Comma-separated 'METHOD /route' entries guarded by the strict limit",
    )

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )


class CorsSettings(BaseSettings):
    """CORS stage configuration."""

    enabled: bool = Field(True, description="Register the CORS stage")
    allow_origins: str | None = Field(
        None,
        description="Comma-separated allowed origins ('*' for any); None uses the preset",
    )
    allow_credentials: bool = Field(True, description="Send Access-Control-Allow-Credentials")
    allow_methods: str = Field("GET,POST,PUT,PATCH,DELETE,OPTIONS")
    allow_headers: str = Field("Content-Type,Authorization,X-Requested-With")
    expose_headers: str = Field("X-Total-Count")
    max_age: int = Field(86400, description="Preflight cache lifetime in seconds", ge=0)

    model_config = SettingsConfigDict(
        env_prefix="CORS_",
        case_sensitive=False,
    )


class AuthSettings(BaseSettings):
    """Bearer token stage configuration."""

    enabled: bool | None = Field(
        None,
        description="Register the bearer auth stage; None uses the environment preset",
    )
    tokens: str = Field(
        "demo-token",
        description="Comma-separated list of accepted bearer tokens",
    )
    skip_routes: str | None = Field(
        "/health,/docs/*,/openapi.json,/redoc",
        description="Comma-separated route templates that never require a token",
    )

    model_config = SettingsConfigDict(
        env_prefix="AUTH_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are invalid.
    """

    app_env: str = APP_ENV
    app: AppSettings = Field(default_factory=AppSettings)
    log: LogSettings = Field(default_factory=LogSettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    cors: CorsSettings = Field(default_factory=CorsSettings)
    auth: AuthSettings = Field(default_factory=AuthSettings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
settings = Settings()
