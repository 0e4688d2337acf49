"""
Auth exception taxonomy and the exception translators registered on the app.

- login_error_handler: AuthenticationError -> 401 (login-specific)
- http_exception_handler: every other AuthError, HTTPException and
  request validation error -> uniform error envelope
"""

from datetime import datetime, timezone
from http import HTTPStatus

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger
from starlette.exceptions import HTTPException as StarletteHTTPException


class AuthError(Exception):
    """Base class for errors surfaced by the auth system"""

    status_code = status.HTTP_400_BAD_REQUEST
    error = "Bad Request"

    def __init__(self, detail: str = None):
        self.detail = detail or self.error
        super().__init__(self.detail)


class AuthenticationError(AuthError):
    """Bad local credentials or an invalid/expired provider assertion"""

    status_code = status.HTTP_401_UNAUTHORIZED
    error = "Unauthorized"


class OAuthConflictError(AuthError):
    """External identity cannot be mapped to exactly one local user"""

    status_code = status.HTTP_409_CONFLICT
    error = "Conflict"


class UserExistsError(AuthError):
    status_code = status.HTTP_409_CONFLICT
    error = "Conflict"


class OAuthNotConfiguredError(AuthError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    error = "Service Unavailable"


def error_envelope(request: Request, status_code: int, error: str, detail) -> dict:
    return {
        "success": False,
        "status_code": status_code,
        "error": error,
        "detail": detail,
        "path": request.url.path,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


async def login_error_handler(request: Request, exc: AuthenticationError) -> JSONResponse:
    """Translate failed logins (local or OAuth) to 401."""
    logger.warning(f"[LOGIN] Authentication failed on {request.method} {request.url.path}: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content=error_envelope(request, exc.status_code, exc.error, exc.detail),
        headers={"WWW-Authenticate": "Bearer"},
    )


async def http_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Translate request errors to the uniform error envelope."""
    headers = None

    if isinstance(exc, AuthError):
        status_code, error, detail = exc.status_code, exc.error, exc.detail
    elif isinstance(exc, RequestValidationError):
        status_code = 422
        error = "Unprocessable Entity"
        detail = [
            {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
            for err in exc.errors()
        ]
    elif isinstance(exc, StarletteHTTPException):
        status_code, detail = exc.status_code, exc.detail
        error = _reason(status_code)
        headers = getattr(exc, "headers", None)
    else:
        logger.exception(f"Unhandled error on {request.method} {request.url.path}: {type(exc).__name__}")
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
        error = "Internal Server Error"
        detail = "Internal server error"

    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} -> {status_code}: {detail}")
    else:
        logger.debug(f"{request.method} {request.url.path} -> {status_code}: {detail}")

    return JSONResponse(
        status_code=status_code,
        content=error_envelope(request, status_code, error, detail),
        headers=headers,
    )


def _reason(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return "Error"


def register_exception_handlers(app):
    """Register the login translator and the global translator on an app."""
    app.add_exception_handler(AuthenticationError, login_error_handler)
    app.add_exception_handler(AuthError, http_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, http_exception_handler)
    app.add_exception_handler(Exception, http_exception_handler)
