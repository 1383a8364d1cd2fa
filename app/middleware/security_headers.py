from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Middleware to add security headers to all responses.

    Session tokens travel in request headers and session responses carry
    them in the body, so ``/sessions`` responses are also marked
    ``Cache-Control: no-store`` for intermediaries.
    """

    HEADERS = {
        "X-Content-Type-Options": "nosniff",
        "X-Frame-Options": "DENY",
        "Referrer-Policy": "no-referrer",
        "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
        # Pure JSON API: nothing may be loaded or framed
        "Content-Security-Policy": "default-src 'none'; frame-ancestors 'none'",
    }

    NO_STORE_PREFIXES = ("/sessions", "/admin")

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)

        for name, value in self.HEADERS.items():
            response.headers[name] = value

        if request.url.path.startswith(self.NO_STORE_PREFIXES):
            response.headers["Cache-Control"] = "no-store"

        return response
