"""
Environment variable validation for the cache & session service.

Checks the Redis, cache and session configuration before the application
starts. Nothing here is fatal for Redis itself: a missing REDIS_URL only means
memory-only mode. Malformed values are errors in production and warnings
everywhere else.

Called automatically during application startup in app/main.py.
"""

import logging
import os
import sys
from typing import List
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

# ==============================================================================
# Known Environment Variables
# ==============================================================================

# Variable -> (type, zero allowed). Bad values fall back to defaults in
# app/settings.py, so they are reported here.
NUMERIC_VARS = {
    "REDIS_CONNECT_TIMEOUT": (int, False),
    "REDIS_COMMAND_TIMEOUT": (int, False),
    "REDIS_MAX_RETRIES_PER_REQUEST": (int, True),
    "REDIS_RECONNECT_MAX_ATTEMPTS": (int, True),
    "REDIS_RECONNECT_STEP_MS": (int, False),
    "REDIS_RECONNECT_MAX_DELAY_MS": (int, False),
    "REDIS_HEALTH_CHECK_INTERVAL": (float, False),
    "CACHE_DEFAULT_TTL": (int, False),
    "CACHE_CLEANUP_INTERVAL": (int, False),
    "SESSION_TTL_SECONDS": (int, False),
    "SESSION_CLEANUP_INTERVAL": (int, False),
    "RESPONSE_CACHE_TTL": (int, False),
}

REDIS_SCHEMES = ("redis", "rediss")

# Insecure default values that must be changed
INSECURE_DEFAULTS = {
    "API_KEY": [
        "change-me",
        "change-me-to-a-secure-random-key",
    ],
}

ENV_VAR_DOCUMENTATION = """
## Redis
- REDIS_URL: Connection URL (redis:// or rediss://). Empty = memory-only mode
- REDIS_TLS: Force TLS for redis:// URLs (true/1)
- REDIS_TLS_CA: Path to a PEM CA bundle (also enables TLS)
- REDIS_TLS_REJECT_UNAUTHORIZED: Verify server certificate with custom CA (default true)
- REDIS_CONNECT_TIMEOUT / REDIS_COMMAND_TIMEOUT: Timeouts in ms (10000 / 5000)
- REDIS_MAX_RETRIES_PER_REQUEST: Client retries per command (3)
- REDIS_RECONNECT_MAX_ATTEMPTS / _STEP_MS / _MAX_DELAY_MS: Backoff (10 / 200 / 5000)
- REDIS_HEALTH_CHECK_INTERVAL: Seconds between background PINGs (30)

## Cache & Sessions
- KEY_PREFIX: Prefix for every key (rsc:)
- CACHE_DEFAULT_TTL / CACHE_CLEANUP_INTERVAL: Seconds (60 / 300)
- SESSION_TTL_SECONDS / SESSION_CLEANUP_INTERVAL: Seconds (864000 / 3600)
- SESSION_HEADER: Header carrying the session token (X-Session-Token)
- RESPONSE_CACHE_TTL: Seconds for cached GET responses (30)

## HTTP
- API_KEY: Key for /admin endpoints (empty = admin disabled)
- ALLOWED_ORIGINS: Comma-separated CORS origins

## General
- ENV: Environment type (production, development)
- LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
"""


def _check_numbers() -> List[str]:
    problems = []
    for var, (cast, allow_zero) in NUMERIC_VARS.items():
        val = os.getenv(var, "").strip()
        if not val:
            continue
        try:
            number = cast(val)
        except ValueError:
            kind = "an integer" if cast is int else "a number"
            problems.append(f"{var}='{val}' is not {kind}")
            continue
        if allow_zero and not number >= 0:
            problems.append(f"{var}={val} must not be negative")
        elif not allow_zero and not number > 0:
            problems.append(f"{var}={val} must be positive")
    return problems


def _check_redis_url() -> List[str]:
    url = os.getenv("REDIS_URL", "")
    if not url:
        return []
    scheme = urlparse(url).scheme
    if scheme not in REDIS_SCHEMES:
        return [f"REDIS_URL has unsupported scheme '{scheme}' (expected redis:// or rediss://)"]
    return []


def validate_config() -> None:
    """
    Validate the environment before startup.

    1. Warns when REDIS_URL is unset (memory-only mode)
    2. Checks numeric variables (type and range) and the Redis URL scheme
    3. Warns about insecure or missing API keys
    4. Exits with error code 1 on malformed values in production

    Raises:
        SystemExit: If values are malformed and ENV=production
    """
    env = os.getenv("ENV", "development")

    if not os.getenv("REDIS_URL"):
        logger.warning("REDIS_URL is not set: running in memory-only mode")

    problems = _check_numbers() + _check_redis_url()

    if problems:
        log = logger.critical if env == "production" else logger.warning
        log("=" * 80)
        log("Invalid environment configuration")
        log("=" * 80)
        for problem in problems:
            log(f"  ✗ {problem}")
        log("=" * 80)
        if env == "production":
            sys.exit(1)

    api_key = os.getenv("API_KEY", "")
    if not api_key:
        logger.warning("API_KEY is not set: admin endpoints are disabled")
    elif api_key in INSECURE_DEFAULTS["API_KEY"]:
        logger.warning(f"⚠ API_KEY = '{api_key}' (default placeholder)")
        logger.warning("Generate a secure value: openssl rand -hex 32")

    if env == "production" and "localhost" in os.getenv("ALLOWED_ORIGINS", ""):
        logger.warning(
            "⚠ ALLOWED_ORIGINS includes localhost in production - potential security risk!"
        )

    logger.info("=" * 80)
    logger.info("✅ Environment configuration validated")
    logger.info(f"Environment: {env}")
    logger.info(f"Redis: {'configured' if os.getenv('REDIS_URL') else 'not configured'}")
    logger.info("=" * 80)


def print_env_documentation() -> None:
    """Print environment variable documentation."""
    print(ENV_VAR_DOCUMENTATION)


if __name__ == "__main__":
    print_env_documentation()
