from fastapi import Request
from fastapi.responses import JSONResponse
import logging

logger = logging.getLogger(__name__)


class StoreException(Exception):
    """Base exception for the cache and session layer"""

    def __init__(self, message: str, status_code: int = 500):
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class StoreConnectionError(StoreException):
    """Transient remote store I/O failure.

    Raised by DualBackendStore._execute; the engines catch it and serve the
    call from the fallback map.
    """

    def __init__(self, message: str):
        super().__init__(message, status_code=503)


class ConfigError(StoreException):
    """Malformed connection configuration (e.g. unreadable TLS material)"""

    def __init__(self, message: str):
        super().__init__(message, status_code=500)


class SerializationError(StoreException):
    """Stored payload could not be encoded or decoded"""

    def __init__(self, message: str):
        super().__init__(message, status_code=500)


class CapacityExceeded(StoreException):
    """Fallback store capacity exceeded.

    Reserved: the fallback map is currently unbounded and never raises this.
    """

    def __init__(self, message: str = "Fallback store capacity exceeded"):
        super().__init__(message, status_code=507)


async def store_exception_handler(request: Request, exc: StoreException):
    """Handle custom store exceptions"""
    logger.error(
        f"Store Exception: {exc.message}",
        extra={
            "path": request.url.path,
            "method": request.method,
        },
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "detail": exc.message,
            "type": exc.__class__.__name__,
        },
    )


async def generic_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions"""
    logger.exception(
        f"Unexpected error: {str(exc)}",
        extra={
            "path": request.url.path,
            "method": request.method,
        },
    )

    # Don't leak implementation details
    return JSONResponse(
        status_code=500,
        content={
            "detail": "An internal error occurred. Please try again later.",
        },
    )
