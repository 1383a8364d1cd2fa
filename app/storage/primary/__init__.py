"""
PRIMARY Implementation: Redis Connection

This package contains the Redis side of the dual-backend layer.
Use this backend for:
- Production deployments
- State shared across application instances
- Native TTL management

See connection.py for implementation details.
"""

from .connection import (
    ConnectionConfig,
    ConnectionManager,
    ConnectionState,
    build_connection_config,
    is_reconnectable,
)

__all__ = [
    "ConnectionConfig",
    "ConnectionManager",
    "ConnectionState",
    "build_connection_config",
    "is_reconnectable",
]
