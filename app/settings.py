"""
Application settings for the resilient cache & session service.

Loads configuration from environment variables (.env file) with sensible defaults.
All settings can be overridden via environment variables.

Redis settings are read lazily (``default_factory``) so that a fresh
``RedisSettings()`` always reflects the current process environment. The
connection manager builds one per connection attempt.
"""

import os
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator

# Load .env file if present
load_dotenv()


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("true", "1")


def _env_number(name: str, default, cast=int, allow_zero: bool = False):
    """Read a numeric environment variable.

    Unset, malformed or out-of-range values fall back to ``default`` so the
    settings always import. app/config_validator.py reports the bad value at
    startup (fatal in production).
    """
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = cast(raw)
    except ValueError:
        return default
    if value > 0 or (allow_zero and value == 0):
        return value
    return default


class RedisSettings(BaseModel):
    """Remote store connection settings."""

    model_config = ConfigDict(validate_default=True)

    url: str = Field(
        default_factory=lambda: os.getenv("REDIS_URL", ""),
        description="Redis connection URL (rediss:// enables TLS). Empty = memory only",
    )
    tls: bool = Field(
        default_factory=lambda: _env_flag("REDIS_TLS"),
        description="Force TLS even for redis:// URLs",
    )
    tls_ca_path: Optional[str] = Field(
        default_factory=lambda: os.getenv("REDIS_TLS_CA") or None,
        description="Path to a custom CA bundle (PEM)",
    )
    tls_reject_unauthorized: bool = Field(
        default_factory=lambda: os.getenv("REDIS_TLS_REJECT_UNAUTHORIZED", "true")
        .strip()
        .lower()
        != "false",
        description="Verify the server certificate when a custom CA is configured",
    )
    connect_timeout_ms: int = Field(
        default_factory=lambda: _env_number("REDIS_CONNECT_TIMEOUT", 10000),
        description="Connect timeout in milliseconds",
    )
    command_timeout_ms: int = Field(
        default_factory=lambda: _env_number("REDIS_COMMAND_TIMEOUT", 5000),
        description="Per-command timeout in milliseconds",
    )
    max_retries_per_request: int = Field(
        default_factory=lambda: _env_number("REDIS_MAX_RETRIES_PER_REQUEST", 3, allow_zero=True),
        description="Client-level retries for a single command",
    )
    reconnect_max_attempts: int = Field(
        default_factory=lambda: _env_number("REDIS_RECONNECT_MAX_ATTEMPTS", 10, allow_zero=True),
        description="Automatic reconnect attempts before giving up",
    )
    reconnect_step_ms: int = Field(
        default_factory=lambda: _env_number("REDIS_RECONNECT_STEP_MS", 200),
        description="Linear backoff step per reconnect attempt (ms)",
    )
    reconnect_max_delay_ms: int = Field(
        default_factory=lambda: _env_number("REDIS_RECONNECT_MAX_DELAY_MS", 5000),
        description="Backoff ceiling (ms)",
    )
    health_check_interval_seconds: float = Field(
        default_factory=lambda: _env_number("REDIS_HEALTH_CHECK_INTERVAL", 30.0, cast=float),
        description="Interval of the background liveness probe",
    )

    @field_validator(
        "connect_timeout_ms",
        "command_timeout_ms",
        "reconnect_step_ms",
        "reconnect_max_delay_ms",
    )
    def validate_positive_ms(cls, v):
        if v <= 0:
            raise ValueError("Timeouts and delays must be positive")
        return v

    @field_validator("max_retries_per_request", "reconnect_max_attempts")
    def validate_non_negative(cls, v):
        if v < 0:
            raise ValueError("Value must not be negative")
        return v

    @field_validator("health_check_interval_seconds")
    def validate_interval(cls, v):
        if v <= 0:
            raise ValueError("Health check interval must be positive")
        return v


class CacheSettings(BaseModel):
    """Cache engine configuration."""

    default_ttl_seconds: int = Field(
        default=_env_number("CACHE_DEFAULT_TTL", 60),
        description="Default TTL for cached values (seconds)",
    )
    cleanup_interval_seconds: int = Field(
        default=_env_number("CACHE_CLEANUP_INTERVAL", 300),  # 5 minutes
        description="Fallback reaper interval (seconds)",
    )

    @field_validator("default_ttl_seconds", "cleanup_interval_seconds")
    def validate_positive_seconds(cls, v):
        if v <= 0:
            raise ValueError("Value must be positive")
        return v


class SessionSettings(BaseModel):
    """Session management configuration."""

    ttl_seconds: int = Field(
        default=_env_number("SESSION_TTL_SECONDS", 10 * 24 * 60 * 60),  # 10 days
        description="Session lifetime in seconds",
    )
    cleanup_interval_seconds: int = Field(
        default=_env_number("SESSION_CLEANUP_INTERVAL", 3600),  # 1 hour
        description="Fallback reaper interval (seconds)",
    )
    header_name: str = Field(
        default=os.getenv("SESSION_HEADER", "X-Session-Token"),
        description="Request header carrying the session token",
    )
    default_user_id: str = Field(
        default=os.getenv("SESSION_DEFAULT_USER", "admin"),
        description="User id assigned when none is supplied",
    )

    @field_validator("ttl_seconds", "cleanup_interval_seconds")
    def validate_positive_seconds(cls, v):
        if v <= 0:
            raise ValueError("Value must be positive")
        return v


class APISettings(BaseModel):
    """API and server settings."""

    title: str = Field(default="Resilient Cache & Session Service", description="API title")
    description: str = Field(
        default="Key-value caching and session management on Redis with in-memory fallback.",
        description="API description",
    )
    version: str = Field(default="1.0.0", description="API version")
    cors_origins: List[str] = Field(
        default_factory=lambda: [
            url.strip()
            for url in os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",")
            if url.strip()
        ],
        description="Allowed CORS origins",
    )
    response_cache_ttl_seconds: int = Field(
        default=_env_number("RESPONSE_CACHE_TTL", 30),
        description="TTL for cached GET responses (seconds)",
    )


class Settings(BaseModel):
    """Global application configuration.

    Configuration priority:
    1. Environment variables (.env file or system)
    2. Defaults specified below
    """

    key_prefix: str = Field(
        default=os.getenv("KEY_PREFIX", "rsc:"),
        description="Literal prefix shared by every key this service writes",
    )
    api_key: str = Field(
        default=os.getenv("API_KEY", ""),
        description="API key guarding admin endpoints (empty = admin disabled)",
    )
    env: str = Field(
        default=os.getenv("ENV", "development"),
        description="Deployment environment",
    )

    redis: RedisSettings = Field(
        default_factory=RedisSettings, description="Remote store configuration"
    )
    cache: CacheSettings = Field(
        default_factory=CacheSettings, description="Cache engine configuration"
    )
    session: SessionSettings = Field(
        default_factory=SessionSettings, description="Session engine configuration"
    )
    api: APISettings = Field(
        default_factory=APISettings, description="API and server configuration"
    )

    model_config = ConfigDict(
        extra="forbid",  # Prevent typos in environment variables
        validate_assignment=True,  # Validate on attribute assignment
    )


# Global settings instance
settings = Settings()
