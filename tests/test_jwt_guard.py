"""Tests for the JWT guard protecting the /q module."""
from datetime import datetime, timedelta, timezone

import jwt

from conftest import TEST_JWT_SECRET


def _login(client):
    response = client.post(
        "/api/auth/token-obtain/", json={"username": "Ed", "password": "WinryRockbell"}
    )
    return response.json()["token"]


def test_manager_root_requires_token(client):
    response = client.get("/q/")

    assert response.status_code == 401
    assert response.headers["www-authenticate"] == "Bearer"
    body = response.json()
    assert body["success"] is False
    assert body["detail"] == "Missing authorization token"
    assert body["path"] == "/q/"


def test_manager_root_with_valid_token(client, ed):
    token = _login(client)

    response = client.get("/q/", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 200
    body = response.json()
    assert body["service"] == "raptor-manager"
    assert body["user"] == ed.user_id
    paths = {route["path"] for route in body["routes"]}
    assert "/q/quantify/" in paths


def test_quantify_mount_is_guarded(client, ed):
    assert client.get("/q/quantify/").status_code == 401

    token = _login(client)
    response = client.get("/q/quantify/", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 200
    assert response.json() == {"module": "quantify", "status": "available", "user": ed.user_id}


def test_expired_token_rejected(client, ed):
    issued = datetime.now(timezone.utc) - timedelta(days=2)
    token = jwt.encode(
        {"sub": ed.user_id, "username": "Ed", "email": ed.email, "iat": issued,
         "exp": issued + timedelta(seconds=86400)},
        TEST_JWT_SECRET,
        algorithm="HS256",
    )

    response = client.get("/q/", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid or expired token"


def test_token_signed_with_other_secret_rejected(client, ed):
    now = datetime.now(timezone.utc)
    token = jwt.encode(
        {"sub": ed.user_id, "iat": now, "exp": now + timedelta(hours=1)},
        "a-completely-different-secret-of-enough-length",
        algorithm="HS256",
    )

    response = client.get("/q/", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401


def test_non_bearer_scheme_rejected(client, ed):
    token = _login(client)

    response = client.get("/q/", headers={"Authorization": f"Token {token}"})

    assert response.status_code == 401


def test_auth_routes_are_public(client, ed):
    response = client.post(
        "/api/auth/verify-password/", json={"username": "Ed", "password": "WinryRockbell"}
    )

    assert response.status_code == 200


def test_manager_routes_list_nested_quantify_router():
    from apps.api.main import manager_routes

    routes = {route["path"]: route["methods"] for route in manager_routes()}

    assert routes == {"/q/": ["GET"], "/q/quantify/": ["GET"]}
