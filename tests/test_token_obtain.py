"""Tests for local login (POST /api/auth/token-obtain/)."""
import time

from auth.models import User


def test_token_obtain_returns_jwt_for_valid_credentials(client, ed, decode):
    before = int(time.time())
    response = client.post(
        "/api/auth/token-obtain/",
        json={"username": "Ed", "password": "WinryRockbell"},
    )

    assert response.status_code == 200
    body = response.json()
    assert set(body) == {"token"}

    claims = decode(body["token"])
    assert claims["sub"] == ed.user_id
    assert claims["username"] == "Ed"
    assert claims["exp"] - claims["iat"] == 86400
    assert before <= claims["iat"] <= int(time.time()) + 1


def test_token_obtain_rejects_wrong_password(client, ed):
    response = client.post(
        "/api/auth/token-obtain/",
        json={"username": "Ed", "password": "FullMetalAlchemist"},
    )

    assert response.status_code == 401
    assert response.headers["www-authenticate"] == "Bearer"
    body = response.json()
    assert body["success"] is False
    assert body["status_code"] == 401
    assert body["error"] == "Unauthorized"
    assert body["path"] == "/api/auth/token-obtain/"
    assert "token" not in body


def test_token_obtain_rejects_unknown_user(client, ed):
    response = client.post(
        "/api/auth/token-obtain/",
        json={"username": "Alphonse", "password": "WinryRockbell"},
    )

    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid username or password"


def test_token_obtain_rejects_disabled_account(app, client, ed):
    session = app.state.db.get_session()
    try:
        session.get(User, ed.user_id).is_active = False
        session.commit()
    finally:
        session.close()

    response = client.post(
        "/api/auth/token-obtain/",
        json={"username": "Ed", "password": "WinryRockbell"},
    )

    assert response.status_code == 401


def test_token_obtain_rejects_oauth_only_account(client, auth_manager):
    from auth.google_oauth import OAuthAssertion

    user = auth_manager.validate_oauth_user(
        OAuthAssertion(provider="google", subject="g-1", email="winry@rush.valley", email_verified=True)
    )

    response = client.post(
        "/api/auth/token-obtain/",
        json={"username": user.username, "password": "anything-at-all"},
    )

    assert response.status_code == 401


def test_token_obtain_missing_password_is_validation_error(client):
    response = client.post("/api/auth/token-obtain/", json={"username": "Ed"})

    assert response.status_code == 422
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "Unprocessable Entity"
    assert any(err["loc"][-1] == "password" for err in body["detail"])


def test_token_obtain_stamps_last_login_only(app, client, ed):
    assert ed.last_login is None

    client.post("/api/auth/token-obtain/", json={"username": "Ed", "password": "WinryRockbell"})

    session = app.state.db.get_session()
    try:
        stored = session.get(User, ed.user_id)
        assert stored.password_hash == ed.password_hash
        assert stored.google_id is None
        assert stored.last_login is not None
    finally:
        session.close()
