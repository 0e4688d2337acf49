"""
FastAPI authentication endpoints.

Mounted under the configured base path (default /api/auth):
- POST /token-obtain/     - login with username/password, returns a JWT
- POST /verify-password/  - check a password without issuing a token
- GET  /google            - start Google OAuth
- GET  /google/callback   - finish Google OAuth, returns a JWT
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from loguru import logger

from auth.auth_manager import AuthManager
from auth.google_oauth import OAuthAssertion
from auth.guards import (
    clear_oauth_cookies,
    get_auth_manager,
    google_auth_guard,
    google_login_redirect,
    local_auth_guard,
)
from auth.models import User
from auth.schemas import LoginRequest, TokenResponse, VerifyPasswordResponse

router = APIRouter(tags=["auth"])


# ==================== LOCAL LOGIN ====================

@router.post("/token-obtain/", response_model=TokenResponse)
def login_user(
    user: User = Depends(local_auth_guard),
    auth_manager: AuthManager = Depends(get_auth_manager),
):
    """
    Login with username/password and return a JWT.

    Request body:
        {"username": "Ed", "password": "WinryRockbell"}

    Invalid credentials are rejected by the guard with 401.
    """
    return auth_manager.get_jwt_token(user)


@router.post("/verify-password/", response_model=VerifyPasswordResponse)
def verify_password(
    data: LoginRequest,
    auth_manager: AuthManager = Depends(get_auth_manager),
):
    """
    Check whether the password matches the stored one for username.

    Not guarded, so a wrong password (or unknown user) answers {"match": false}.
    """
    match = auth_manager.verify_password(data.username, data.password)
    return {"match": match}


# ==================== GOOGLE OAUTH ====================

@router.get("/google")
def google_auth(redirect=Depends(google_login_redirect)):
    """Redirect to Google's consent screen."""
    return redirect


@router.get("/google/callback", response_model=TokenResponse)
def google_auth_redirect(
    request: Request,
    assertion: OAuthAssertion = Depends(google_auth_guard),
    auth_manager: AuthManager = Depends(get_auth_manager),
):
    """
    Google OAuth callback.

    The guard has already validated the Google assertion; here we find or
    create the local user and issue the same JWT as a local login.
    """
    user = auth_manager.validate_oauth_user(assertion)
    token = auth_manager.get_jwt_token(user)
    logger.info(f"[OAUTH] Google login completed for user: {user.user_id}")

    response = JSONResponse(content=token)
    response.headers["Cache-Control"] = "no-store"
    clear_oauth_cookies(request, response)
    return response
