"""Pytest configuration and fixtures.

Fixtures:
- config: AuthConfig backed by an in-memory SQLite store and low bcrypt cost
- app / client: application built with create_app(config), lifespan running
- auth_manager: the AuthManager wired into the app
- ed: seeded local user (Ed / WinryRockbell)
- google: stub for the Google handshake (no network)
- google_login: helper running /google then /google/callback
"""
from urllib.parse import parse_qs, urlencode, urlparse

import jwt
import pytest
from fastapi.testclient import TestClient

from apps.api.main import create_app
from auth.config import AuthConfig
from auth.errors import AuthenticationError
from auth.models import User

TEST_JWT_SECRET = "test-secret-key-for-testing-purposes-only-0123456789"

_AUTH_ENV = (
    "ADMIN_INITIAL_USERNAME",
    "ADMIN_INITIAL_PASSWORD",
    "API_BASE_PATH",
    "JWT_EXPIRY_SECONDS",
    "GOOGLE_CALLBACK_URL",
    "AUTH_COOKIE_SECURE",
    "CORS_ORIGINS",
)


class FakeGoogleClient:
    """Stands in for GoogleOAuthClient; assertions are keyed by auth code."""

    enabled = True

    def __init__(self):
        self.assertions = {}
        self.nonces = []

    def build_authorize_url(self, *, state, nonce):
        query = urlencode({"client_id": "test-client-id", "state": state, "nonce": nonce})
        return f"https://accounts.google.com/o/oauth2/v2/auth?{query}"

    def authenticate(self, code, *, expected_nonce):
        self.nonces.append(expected_nonce)
        if code not in self.assertions:
            raise AuthenticationError("Invalid Google sign-in")
        return self.assertions[code]


@pytest.fixture
def auth_env(monkeypatch, tmp_path):
    """Isolated environment for AuthConfig (no stray .env, no inherited vars)."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("JWT_SECRET", TEST_JWT_SECRET)
    monkeypatch.setenv("DATABASE_URL", "sqlite://")
    monkeypatch.setenv("BCRYPT_ROUNDS", "4")
    monkeypatch.setenv("LOG_LEVEL", "WARNING")
    monkeypatch.setenv("GOOGLE_CLIENT_ID", "test-client-id.apps.googleusercontent.com")
    monkeypatch.setenv("GOOGLE_CLIENT_SECRET", "test-client-secret")
    for name in _AUTH_ENV:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.fixture
def config(auth_env):
    return AuthConfig()


@pytest.fixture
def app(config):
    return create_app(config)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def auth_manager(app, client):
    # client fixture runs the lifespan, so tables exist
    return app.state.auth_manager


@pytest.fixture
def ed(auth_manager):
    return auth_manager.create_user(
        "Ed", "WinryRockbell", email="ed@amestris.gov", full_name="Edward Elric"
    )


@pytest.fixture
def google(app):
    fake = FakeGoogleClient()
    app.state.google_client = fake
    return fake


@pytest.fixture
def google_login(client, google):
    """Run the browser side of the Google flow for the given auth code."""

    def _login(code):
        start = client.get("/api/auth/google", follow_redirects=False)
        assert start.status_code == 302
        state = parse_qs(urlparse(start.headers["location"]).query)["state"][0]
        return client.get("/api/auth/google/callback", params={"code": code, "state": state})

    return _login


@pytest.fixture
def count_users(app):
    def _count(**filters):
        session = app.state.db.get_session()
        try:
            return session.query(User).filter_by(**filters).count()
        finally:
            session.close()

    return _count


@pytest.fixture
def decode():
    """Decode a token issued by the app under test."""

    def _decode(token, **kwargs):
        return jwt.decode(token, TEST_JWT_SECRET, algorithms=["HS256"], **kwargs)

    return _decode
