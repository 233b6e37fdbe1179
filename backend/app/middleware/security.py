"""
Middleware that adds security headers to every response.
"""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from ..config import get_settings

# Paths whose responses carry tokens or identity and must never be cached
NO_STORE_SEGMENTS = ("/auth/", "/users/")


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Headers added:
    - X-Frame-Options: DENY (Prevents clickjacking)
    - X-Content-Type-Options: nosniff (Prevents MIME sniffing)
    - Referrer-Policy: no-referrer (OAuth redirects carry tokens in the URL)
    - Content-Security-Policy: JSON API, nothing to load
    - Cache-Control: no-store on auth and user routes
    - Strict-Transport-Security: (In production only)
    """

    def __init__(self, app):
        super().__init__(app)
        self.is_production = get_settings().is_production

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)

        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "no-referrer"
        response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"

        if any(segment in request.url.path for segment in NO_STORE_SEGMENTS):
            response.headers["Cache-Control"] = "no-store"
            response.headers["Pragma"] = "no-cache"

        if self.is_production:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        return response
