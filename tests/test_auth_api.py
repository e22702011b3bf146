from __future__ import annotations

import httpx
import pytest

from silverlining.api.schemas.common import UserStatus


async def _register(client: httpx.AsyncClient, email: str = "asha@example.com", password: str = "secret123") -> dict:
    res = await client.post(
        "/api/auth/register",
        json={"name": "Asha", "email": email, "password": password, "phone": "9000000001"},
    )
    assert res.status_code == 201, res.text
    return res.json()


@pytest.mark.anyio
async def test_register_returns_tokens_and_welcome_notification(async_client: httpx.AsyncClient, mongo_db):
    body = await _register(async_client, email="Asha@Example.com")
    assert body["success"] is True
    data = body["data"]
    assert data["accessToken"] and data["refreshToken"]
    assert data["tokenType"] == "bearer"
    assert data["user"]["email"] == "asha@example.com"
    assert data["user"]["role"] == "USER"
    assert "password" not in data["user"]

    stored = mongo_db["users"].find_one({"email": "asha@example.com"})
    assert stored["password"] != "secret123"
    assert mongo_db["notifications"].count_documents({"userId": stored["id"], "title": "Welcome to Silver Lining!"}) == 1
    assert mongo_db["logs"].count_documents({"category": "AUTH", "action": "REGISTER"}) == 1


@pytest.mark.anyio
async def test_register_duplicate_email_conflicts(async_client: httpx.AsyncClient):
    await _register(async_client)
    res = await async_client.post(
        "/api/auth/register", json={"name": "Other", "email": "ASHA@example.com", "password": "secret123"}
    )
    assert res.status_code == 409


@pytest.mark.anyio
async def test_register_validates_payload(async_client: httpx.AsyncClient):
    res = await async_client.post("/api/auth/register", json={"name": "X", "email": "not-an-email", "password": "123"})
    assert res.status_code == 422


@pytest.mark.anyio
async def test_login_success_and_failures_are_logged(async_client: httpx.AsyncClient, make_user, mongo_db):
    make_user(email="ravi@example.com", password="goodpass")

    ok = await async_client.post("/api/auth/login", json={"email": "ravi@example.com", "password": "goodpass"})
    assert ok.status_code == 200
    assert ok.json()["data"]["user"]["email"] == "ravi@example.com"

    bad = await async_client.post("/api/auth/login", json={"email": "ravi@example.com", "password": "wrong"})
    assert bad.status_code == 401
    assert bad.json()["detail"] == "Invalid credentials"

    unknown = await async_client.post("/api/auth/login", json={"email": "nobody@example.com", "password": "x"})
    assert unknown.status_code == 401

    assert mongo_db["logs"].count_documents({"action": "LOGIN"}) == 1
    assert mongo_db["logs"].count_documents({"action": "LOGIN_FAILED"}) == 2


@pytest.mark.anyio
async def test_login_rejects_inactive_user(async_client: httpx.AsyncClient, make_user):
    make_user(email="idle@example.com", password="goodpass", status=UserStatus.INACTIVE)
    res = await async_client.post("/api/auth/login", json={"email": "idle@example.com", "password": "goodpass"})
    assert res.status_code == 401


@pytest.mark.anyio
async def test_refresh_then_logout_revokes_refresh_token(async_client: httpx.AsyncClient):
    tokens = (await _register(async_client))["data"]

    refreshed = await async_client.post("/api/auth/refresh", json={"refreshToken": tokens["refreshToken"]})
    assert refreshed.status_code == 200
    assert refreshed.json()["data"]["accessToken"]

    out = await async_client.post("/api/auth/logout", json={"refreshToken": tokens["refreshToken"]})
    assert out.status_code == 200

    again = await async_client.post("/api/auth/refresh", json={"refreshToken": tokens["refreshToken"]})
    assert again.status_code == 401
    assert again.json()["detail"] == "Token revoked"


@pytest.mark.anyio
async def test_access_token_is_not_a_refresh_token(async_client: httpx.AsyncClient):
    tokens = (await _register(async_client))["data"]
    res = await async_client.post("/api/auth/refresh", json={"refreshToken": tokens["accessToken"]})
    assert res.status_code == 401


@pytest.mark.anyio
async def test_protected_route_requires_bearer_token(async_client: httpx.AsyncClient, make_user, auth_headers):
    missing = await async_client.get("/api/notifications")
    assert missing.status_code == 401
    assert missing.json()["detail"] == "Access token required"

    garbage = await async_client.get("/api/notifications", headers={"Authorization": "Bearer not-a-jwt"})
    assert garbage.status_code == 401

    user = make_user()
    ok = await async_client.get("/api/notifications", headers=auth_headers(user))
    assert ok.status_code == 200


@pytest.mark.anyio
async def test_token_of_deactivated_user_is_rejected(async_client: httpx.AsyncClient, make_user, auth_headers, mongo_db):
    user = make_user()
    headers = auth_headers(user)
    mongo_db["users"].update_one({"id": user["id"]}, {"$set": {"status": "INACTIVE"}})
    res = await async_client.get("/api/notifications", headers=headers)
    assert res.status_code == 401
