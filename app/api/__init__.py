"""
API layer for the cache & session service.

Contains FastAPI routes and HTTP-related functionality.
"""

from fastapi import APIRouter
from app.api.routes import health, sessions, admin


def create_api_router() -> APIRouter:
    """Create the main API router with all sub-routers included."""
    api_router = APIRouter()

    api_router.include_router(health.router, tags=["Health"])
    api_router.include_router(sessions.router, prefix="/sessions", tags=["Sessions"])
    api_router.include_router(admin.router, prefix="/admin", tags=["Admin"])

    return api_router


__all__ = ["create_api_router"]
