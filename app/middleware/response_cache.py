"""
GET response caching backed by the cache engine.

Successful JSON responses are stored under ``key_prefix + path[?query]`` and
served from the cache until the TTL runs out. The cache is an optimization
only: any cache failure is logged and the request proceeds normally.
"""

import json
import logging
from typing import TYPE_CHECKING, Any, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

from app.metrics import response_cache_requests_total

if TYPE_CHECKING:
    from app.storage.cache import CacheStore

logger = logging.getLogger(__name__)

CACHE_HEADER = "X-Cache"


class ResponseCacheMiddleware(BaseHTTPMiddleware):
    """
    Serve repeated GET requests from the cache.

    Args:
        app: The ASGI app to wrap.
        cache: Cache engine used for storage.
        key_prefix: Prefix for cache keys; the request path is appended.
        ttl: Seconds a stored response stays valid.
        path_prefix: Only GET requests whose path starts with this are cached.
    """

    def __init__(
        self,
        app: ASGIApp,
        cache: "CacheStore",
        key_prefix: str,
        ttl: int,
        path_prefix: str = "/",
    ):
        super().__init__(app)
        self.cache = cache
        self.key_prefix = key_prefix
        self.ttl = ttl
        self.path_prefix = path_prefix

    def cache_key(self, request: Request) -> str:
        key = self.key_prefix + request.url.path
        if request.url.query:
            key += "?" + request.url.query
        return key

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.method != "GET" or not request.url.path.startswith(self.path_prefix):
            return await call_next(request)

        key = self.cache_key(request)

        cached = await self._lookup(key)
        if cached is not None:
            response_cache_requests_total.labels(result="hit").inc()
            return JSONResponse(content=cached, headers={CACHE_HEADER: "HIT"})

        response = await call_next(request)
        if response.status_code != 200 or not _is_json(response):
            return response

        body = b"".join([chunk async for chunk in response.body_iterator])
        await self._store(key, body)
        response_cache_requests_total.labels(result="miss").inc()

        headers = dict(response.headers)
        headers[CACHE_HEADER] = "MISS"
        return Response(
            content=body,
            status_code=response.status_code,
            headers=headers,
            media_type=response.media_type,
        )

    async def _lookup(self, key: str) -> Optional[Any]:
        try:
            return await self.cache.get(key)
        except Exception as e:
            response_cache_requests_total.labels(result="error").inc()
            logger.error(f"Response cache read failed for {key}: {e}")
            return None

    async def _store(self, key: str, body: bytes) -> None:
        try:
            await self.cache.set(key, json.loads(body), self.ttl)
        except Exception as e:
            response_cache_requests_total.labels(result="error").inc()
            logger.error(f"Response cache write failed for {key}: {e}")


def _is_json(response: Response) -> bool:
    content_type = response.headers.get("content-type", "")
    return content_type.startswith("application/json")
