"""
Resilient Cache & Session Service - Main Application

Redis-backed caching and session management that keeps serving from memory
while Redis is unavailable.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator

from app.api import create_api_router
from app.config_validator import validate_config
from app.exceptions import (
    StoreException,
    generic_exception_handler,
    store_exception_handler,
)
from app.logging_config import setup_logging
from app.middleware.security_headers import SecurityHeadersMiddleware
from app.settings import settings
from app.storage import CACHE_KEYS, close_storage, get_cache_store, init_storage

# Configure structured logging (JSON in production, colored in development)
setup_logging()
logger = logging.getLogger(__name__)


# ------------------------------------------------------------------------------
# Lifespan event handler
# ------------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Connect storage on startup and release it on shutdown."""
    logger.info("Starting application...")
    validate_config()
    await init_storage()

    yield

    logger.info("Initiating graceful shutdown...")
    try:
        await close_storage()
        logger.info("Closed storage backends")
    except Exception as e:
        logger.warning(f"Error closing storage: {e}")

    logger.info("Graceful shutdown complete")


# ------------------------------------------------------------------------------
# FastAPI app setup
# ------------------------------------------------------------------------------

app = FastAPI(
    title=settings.api.title,
    description=settings.api.description,
    version=settings.api.version,
    lifespan=lifespan,
    middleware=[
        # Read-mostly stats route served through the cache engine
        get_cache_store().response_caching_filter(
            prefix=CACHE_KEYS["API_RESPONSE"],
            ttl=settings.api.response_cache_ttl_seconds,
            path_prefix="/sessions/stats",
        ),
    ],
)

# ------------------------------------------------------------------------------
# Exception Handlers
# ------------------------------------------------------------------------------

app.add_exception_handler(StoreException, store_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)

# ------------------------------------------------------------------------------
# Middleware configuration
# ------------------------------------------------------------------------------

app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.api.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "X-API-Key", settings.session.header_name],
    max_age=600,  # Cache preflight requests for 10 minutes
)

# ------------------------------------------------------------------------------
# Prometheus metrics
# ------------------------------------------------------------------------------

Instrumentator().instrument(app).expose(app)

# ------------------------------------------------------------------------------
# Routes
# ------------------------------------------------------------------------------

app.include_router(create_api_router())

logger.info(f"Application started: {settings.api.title} v{settings.api.version}")
