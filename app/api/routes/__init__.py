"""
API routes for the cache & session service.
"""

from app.api.routes import health, sessions, admin

__all__ = ["health", "sessions", "admin"]
