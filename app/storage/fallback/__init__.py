"""
FALLBACK Implementation: In-Memory Key Map

This package contains the high-availability fallback backend.
Used automatically by the cache and session engines when:
- Redis URL not configured
- Redis connection fails or is reconnecting
- A remote command fails or times out

See memory.py for implementation details.
"""

from .memory import FallbackMap

__all__ = ["FallbackMap"]
