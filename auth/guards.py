"""
Guards for FastAPI routes.

A guard is a dependency that must succeed before the handler runs:
- local_auth_guard: username/password check for /token-obtain/
- google_login_redirect / google_auth_guard: Google OAuth handshake
- verify_jwt_token: bearer-token check applied to the whole /q module
"""

import secrets

from fastapi import Depends, Header, HTTPException, Query, Request
from fastapi.responses import RedirectResponse
from loguru import logger

from auth.auth_manager import AuthManager
from auth.errors import AuthenticationError, OAuthNotConfiguredError
from auth.google_oauth import GoogleOAuthClient, OAuthAssertion
from auth.models import User
from auth.schemas import LoginRequest

OAUTH_STATE_COOKIE = "raptor_oauth_state"
OAUTH_NONCE_COOKIE = "raptor_oauth_nonce"
OAUTH_COOKIE_TTL_SECONDS = 10 * 60


# ==================== INJECTED SERVICES ====================

def get_auth_manager(request: Request) -> AuthManager:
    return request.app.state.auth_manager


def get_google_client(request: Request) -> GoogleOAuthClient:
    return request.app.state.google_client


# ==================== LOCAL CREDENTIALS ====================

def local_auth_guard(
    credentials: LoginRequest,
    auth_manager: AuthManager = Depends(get_auth_manager),
) -> User:
    """
    Guard: the submitted username/password must match an active account.
    """
    user = auth_manager.validate_user(credentials.username, credentials.password)
    if user is None:
        raise AuthenticationError("Invalid username or password")
    return user


# ==================== GOOGLE OAUTH ====================

def oauth_cookie_path(request: Request) -> str:
    return f"{request.app.state.config.api_base_path}/google"


def oauth_cookie_kwargs(request: Request, *, key: str, value: str, max_age: int) -> dict:
    return {
        "key": key,
        "value": value,
        "max_age": max_age,
        "httponly": True,
        "secure": bool(request.app.state.config.cookie_secure),
        "samesite": "lax",
        "path": oauth_cookie_path(request),
    }


def clear_oauth_cookies(request: Request, response):
    for key in (OAUTH_STATE_COOKIE, OAUTH_NONCE_COOKIE):
        response.set_cookie(**oauth_cookie_kwargs(request, key=key, value="", max_age=0))


def google_login_redirect(
    request: Request,
    google: GoogleOAuthClient = Depends(get_google_client),
) -> RedirectResponse:
    """
    Guard: hand the caller off to Google's consent screen.
    """
    state = secrets.token_urlsafe(32)
    nonce = secrets.token_urlsafe(32)
    url = google.build_authorize_url(state=state, nonce=nonce)

    response = RedirectResponse(url=url, status_code=302)
    response.headers["Cache-Control"] = "no-store"
    response.set_cookie(**oauth_cookie_kwargs(
        request, key=OAUTH_STATE_COOKIE, value=state, max_age=OAUTH_COOKIE_TTL_SECONDS))
    response.set_cookie(**oauth_cookie_kwargs(
        request, key=OAUTH_NONCE_COOKIE, value=nonce, max_age=OAUTH_COOKIE_TTL_SECONDS))
    logger.info("[OAUTH] Redirecting to Google consent screen")
    return response


def google_auth_guard(
    request: Request,
    code: str = Query(None),
    state: str = Query(None),
    error: str = Query(None),
    google: GoogleOAuthClient = Depends(get_google_client),
) -> OAuthAssertion:
    """
    Guard: complete the Google handshake and return the validated assertion.
    """
    if not google.enabled:
        raise OAuthNotConfiguredError("Google OAuth is not configured")

    if error:
        raise AuthenticationError(f"Google sign-in was not completed: {error}")
    if not code:
        raise AuthenticationError("Missing authorization code")

    cookie_state = (request.cookies.get(OAUTH_STATE_COOKIE) or "").strip()
    cookie_nonce = (request.cookies.get(OAUTH_NONCE_COOKIE) or "").strip()
    if not cookie_state or not secrets.compare_digest(
        cookie_state.encode("utf-8"), (state or "").strip().encode("utf-8")
    ):
        raise AuthenticationError("Invalid OAuth state")
    if not cookie_nonce:
        raise AuthenticationError("Missing OAuth nonce")

    return google.authenticate(code, expected_nonce=cookie_nonce)


# ==================== JWT ====================

async def verify_jwt_token(
    authorization: str = Header(None),
    auth_manager: AuthManager = Depends(get_auth_manager),
) -> dict:
    """
    Guard: verify the bearer JWT and return its payload.
    """
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=401,
            detail="Missing authorization token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token = authorization[len("Bearer "):].strip()
    payload = auth_manager.verify_token(token)
    if not payload:
        raise HTTPException(
            status_code=401,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return payload
