"""
Security middleware for the API:
- Security headers on every response
- Request logging for auth and guarded endpoints
"""

import time

from fastapi import Request
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Add security headers to all responses.

    The API only serves JSON and redirects, so the CSP denies everything.
    """

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"
        response.headers["Referrer-Policy"] = "no-referrer"
        if request.url.scheme == "https":
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        return response


class SecurityLoggingMiddleware(BaseHTTPMiddleware):
    """Log auth requests and their outcome"""

    def __init__(self, app, watched_prefixes: tuple = ()):
        super().__init__(app)
        self.watched_prefixes = tuple(p for p in watched_prefixes if p)

    async def dispatch(self, request: Request, call_next):
        if not request.url.path.startswith(self.watched_prefixes):
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000

        message = (
            f"{request.method} {request.url.path} from {client_ip} "
            f"-> {response.status_code} ({elapsed_ms:.1f}ms)"
        )
        if response.status_code in (401, 403, 409):
            logger.warning(message)
        else:
            logger.info(message)
        return response
