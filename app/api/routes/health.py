"""
Health check endpoints for the cache & session service.
"""

import logging
import socket
from typing import Any, Dict

from fastapi import APIRouter, Depends, status

from app.api.dependencies import get_cache, get_connection, get_sessions
from app.storage import CacheStore, ConnectionManager, SessionStore

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get(
    "/health",
    status_code=status.HTTP_200_OK,
    summary="Basic health check",
    description="""
    Quick health check that reports which backend is serving requests.
    Never performs I/O against Redis.

    **Example Response:**
    ```json
    {
      "status": "healthy",
      "backend": "redis",
      "redis": {"enabled": true, "tls": false, "connected": true, "state": "connected"},
      "socket": "hostname"
    }
    ```
    """,
)
async def health(
    connection: ConnectionManager = Depends(get_connection),
    cache: CacheStore = Depends(get_cache),
) -> Dict[str, Any]:
    """Returns basic system health status."""
    return {
        "status": "healthy",
        "backend": cache.backend,
        "redis": connection.info(),
        "socket": socket.gethostname(),
    }


@router.get("/health/detailed", status_code=status.HTTP_200_OK)
async def detailed_health_check(
    connection: ConnectionManager = Depends(get_connection),
    cache: CacheStore = Depends(get_cache),
    sessions: SessionStore = Depends(get_sessions),
) -> Dict[str, Any]:
    """Detailed health check with an active Redis PING and engine stats."""
    health_status: Dict[str, Any] = {"status": "healthy", "dependencies": {}}

    if connection.client() is None:
        health_status["dependencies"]["redis"] = "not_connected"
        health_status["status"] = "degraded"
    elif await connection.health_check():
        health_status["dependencies"]["redis"] = "healthy"
    else:
        logger.warning("Redis health check failed, serving from memory")
        health_status["dependencies"]["redis"] = "degraded"
        health_status["status"] = "degraded"

    health_status["redis"] = connection.info()
    health_status["cache"] = await cache.stats()
    health_status["sessions"] = {
        "backend": sessions.backend,
        "active": await sessions.active_session_count(),
    }

    return health_status


@router.get("/health/live", status_code=status.HTTP_200_OK)
async def liveness_check() -> Dict[str, str]:
    """Kubernetes-style liveness probe"""
    return {"status": "alive"}
