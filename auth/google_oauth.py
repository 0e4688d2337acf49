"""
Google OAuth 2.0 / OpenID Connect handshake.

Flow:
  1. build_authorize_url()  -> redirect the browser to Google's consent screen
  2. exchange_code()        -> trade the returned code for tokens
  3. validate_id_token()    -> verify signature (Google JWKS), audience,
                               issuer, expiry and nonce
  4. authenticate()         -> 2 + 3, producing an OAuthAssertion
"""

import json
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple
from urllib.parse import urlencode

import jwt
import requests
from loguru import logger

from auth.config import AuthConfig
from auth.errors import AuthenticationError, OAuthNotConfiguredError

GOOGLE_AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_JWKS_URL = "https://www.googleapis.com/oauth2/v3/certs"
GOOGLE_ISSUERS = ("https://accounts.google.com", "accounts.google.com")

JWKS_CACHE_SECONDS = 3600
HTTP_TIMEOUT_SECONDS = 10

_jwks_cache: Dict[str, Tuple[float, Optional[Dict[str, Any]]]] = {}


@dataclass(frozen=True)
class OAuthAssertion:
    """Provider-validated identity, consumed once by the callback."""

    provider: str
    subject: str
    email: Optional[str] = None
    email_verified: bool = False
    name: Optional[str] = None
    picture: Optional[str] = None

    @classmethod
    def from_claims(cls, claims: Dict[str, Any], provider: str = "google") -> "OAuthAssertion":
        email = str(claims.get("email") or "").strip().lower() or None
        return cls(
            provider=provider,
            subject=str(claims.get("sub") or "").strip(),
            email=email,
            email_verified=claims.get("email_verified") is True,
            name=str(claims.get("name") or "").strip() or None,
            picture=str(claims.get("picture") or "").strip() or None,
        )


def _get_jwks(jwks_uri: str) -> Dict[str, Any]:
    """
    Fetch Google's signing keys.
    Caches result for 1 hour.
    """
    ts, cached = _jwks_cache.get(jwks_uri, (0.0, None))
    now = time.time()
    if cached is not None and now - ts < JWKS_CACHE_SECONDS:
        return cached
    r = requests.get(jwks_uri, timeout=HTTP_TIMEOUT_SECONDS)
    r.raise_for_status()
    data = r.json()
    if not isinstance(data, dict):
        raise ValueError("Invalid JWKS")
    _jwks_cache[jwks_uri] = (now, data)
    return data


class GoogleOAuthClient:
    """Google login for one configured OAuth client"""

    def __init__(self, config: AuthConfig):
        self.client_id = config.google_client_id
        self.client_secret = config.google_client_secret
        self.redirect_uri = config.google_callback_url

    @property
    def enabled(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def _require_enabled(self):
        if not self.enabled:
            raise OAuthNotConfiguredError("Google OAuth is not configured")

    def build_authorize_url(self, *, state: str, nonce: str) -> str:
        self._require_enabled()
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": "openid email profile",
            "state": state,
            "nonce": nonce,
            "prompt": "select_account",
        }
        return f"{GOOGLE_AUTHORIZE_URL}?{urlencode(params)}"

    def exchange_code(self, code: str) -> Dict[str, Any]:
        """Exchange authorization code for tokens (id_token, access_token)."""
        self._require_enabled()
        payload = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.redirect_uri,
        }
        r = requests.post(GOOGLE_TOKEN_URL, data=payload, timeout=HTTP_TIMEOUT_SECONDS)
        if r.status_code >= 400:
            # Avoid leaking provider error bodies
            raise ValueError(f"Token exchange failed (status={r.status_code})")
        data = r.json()
        if not isinstance(data, dict):
            raise ValueError("Invalid token response")
        return data

    def validate_id_token(self, id_token: str, *, expected_nonce: str) -> Dict[str, Any]:
        self._require_enabled()

        kid = str(jwt.get_unverified_header(id_token).get("kid") or "")
        if not kid:
            raise ValueError("ID token missing kid")

        keys = _get_jwks(GOOGLE_JWKS_URL).get("keys")
        if not isinstance(keys, list):
            raise ValueError("Invalid JWKS keys")
        jwk = next((k for k in keys if isinstance(k, dict) and str(k.get("kid") or "") == kid), None)
        if jwk is None:
            raise ValueError("Unknown signing key (kid)")

        key = jwt.algorithms.RSAAlgorithm.from_jwk(json.dumps(jwk))
        claims = jwt.decode(
            id_token,
            key=key,
            algorithms=["RS256"],
            audience=self.client_id,
            options={"require": ["exp", "iat", "iss", "aud", "sub"]},
        )

        if claims.get("iss") not in GOOGLE_ISSUERS:
            raise ValueError("Unexpected ID token issuer")

        nonce = str(claims.get("nonce") or "")
        if not nonce or nonce != expected_nonce:
            raise ValueError("Nonce mismatch")

        return claims

    def authenticate(self, code: str, *, expected_nonce: str) -> OAuthAssertion:
        """Run the code exchange and ID-token validation for one callback."""
        try:
            tokens = self.exchange_code(code)
            id_token = str(tokens.get("id_token") or "").strip()
            if not id_token:
                raise ValueError("Missing id_token in token response")
            claims = self.validate_id_token(id_token, expected_nonce=expected_nonce)
        except (ValueError, jwt.PyJWTError, requests.RequestException) as e:
            logger.warning(f"[OAUTH] Google assertion rejected: {type(e).__name__}: {e}")
            raise AuthenticationError("Invalid Google sign-in") from e

        assertion = OAuthAssertion.from_claims(claims)
        if not assertion.subject:
            raise AuthenticationError("Google sign-in missing subject")
        return assertion
