"""
API dependencies for the cache & session service.

Contains FastAPI dependencies for authentication and storage access.
"""

import logging
from typing import Optional, Tuple

from fastapi import Depends, Header, HTTPException, Request, status

from app.settings import settings
from app.storage import (
    CacheStore,
    ConnectionManager,
    SessionRecord,
    SessionStore,
    get_cache_store,
    get_connection_manager,
    get_session_store,
)

logger = logging.getLogger(__name__)


def check_api_key(x_api_key: Optional[str] = Header(None)) -> str:
    """Verify the API key from the X-API-Key header.

    Args:
        x_api_key: Value from X-API-Key header (automatically extracted by FastAPI)

    Returns:
        The API key if valid

    Raises:
        HTTPException: 403 if admin is disabled (no API_KEY configured),
            401 if the key is missing or wrong
    """
    expected_key = settings.api_key

    if not expected_key:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Admin endpoints are disabled"
        )

    if x_api_key != expected_key:
        logger.warning(
            f"API key authentication failed. Received: {x_api_key[:4] if x_api_key else 'None'}***"
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key"
        )

    return x_api_key


def get_connection() -> ConnectionManager:
    return get_connection_manager()


def get_cache() -> CacheStore:
    return get_cache_store()


def get_sessions() -> SessionStore:
    return get_session_store()


def get_session_token(request: Request) -> Optional[str]:
    """Session token from the configured header (X-Session-Token by default)."""
    return request.headers.get(settings.session.header_name)


async def require_session(
    token: Optional[str] = Depends(get_session_token),
    sessions: SessionStore = Depends(get_sessions),
) -> Tuple[str, SessionRecord]:
    """Resolve the request's session or fail with 401.

    Returns:
        (token, record) for a live session
    """
    record = await sessions.validate_session(token)
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired session",
        )
    return token, record


__all__ = [
    "check_api_key",
    "get_cache",
    "get_connection",
    "get_session_token",
    "get_sessions",
    "require_session",
]
