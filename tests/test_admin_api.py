from __future__ import annotations

import httpx
import pytest

from silverlining.api.schemas.common import UserRole


@pytest.mark.anyio
async def test_admin_routes_reject_non_admins(async_client: httpx.AsyncClient, user_headers):
    assert (await async_client.get("/api/admin/dashboard")).status_code == 401
    for path in ("/api/admin/dashboard", "/api/admin/stats", "/api/admin/health", "/api/admin/background", "/api/admin/commerce"):
        res = await async_client.get(path, headers=user_headers)
        assert res.status_code == 403, path


@pytest.mark.anyio
async def test_init_bootstraps_settings_and_admin_then_locks(async_client: httpx.AsyncClient, state, mongo_db):
    first = await async_client.post("/api/admin/init")
    assert first.status_code == 200
    data = first.json()["data"]
    assert data["adminUser"] == "created"
    assert data["settingsCreated"] > 0

    admin = mongo_db["users"].find_one({"email": state.config.default_admin_email})
    assert admin["role"] == "ADMIN"
    assert mongo_db["logs"].count_documents({"action": "ADMIN_BOOTSTRAPPED"}) == 1

    # Once an admin exists the endpoint needs an admin token.
    assert (await async_client.post("/api/admin/init")).status_code == 401

    login = await async_client.post(
        "/api/auth/login",
        json={"email": state.config.default_admin_email, "password": state.config.default_admin_password},
    )
    token = login.json()["data"]["accessToken"]
    again = await async_client.post("/api/admin/init", headers={"Authorization": f"Bearer {token}"})
    assert again.status_code == 200
    assert again.json()["data"] == {"settings": "initialized", "settingsCreated": 0, "adminUser": "exists"}


@pytest.mark.anyio
async def test_init_promotes_existing_account_with_bootstrap_email(
    async_client: httpx.AsyncClient, state, make_user, mongo_db
):
    existing = make_user(email=state.config.default_admin_email)
    res = await async_client.post("/api/admin/init")
    assert res.status_code == 200
    assert mongo_db["users"].find_one({"id": existing["id"]})["role"] == "ADMIN"
    assert mongo_db["users"].count_documents({}) == 1


@pytest.mark.anyio
async def test_init_forbidden_for_regular_user_once_admin_exists(async_client: httpx.AsyncClient, admin_user, user_headers):
    res = await async_client.post("/api/admin/init", headers=user_headers)
    assert res.status_code == 403


@pytest.mark.anyio
async def test_dashboard_and_stats(async_client: httpx.AsyncClient, admin_headers, make_user):
    investor = make_user()
    make_user(role=UserRole.ADMIN, email="second-admin@example.com")
    txn = await async_client.post(
        "/api/transactions",
        json={"userId": investor["id"], "type": "BUY", "amount": 2000, "silverQuantity": 20, "silverPrice": 100},
    )
    await async_client.post(
        "/api/transactions",
        json={"userId": investor["id"], "type": "SELL", "amount": 1000, "silverQuantity": 10, "silverPrice": 100},
    )
    await async_client.patch(f"/api/transactions/{txn.json()['data']['id']}/status", json={"status": "COMPLETED"})
    await async_client.post("/api/kyc", json={"userId": investor["id"], "panNumber": "P", "aadhaarNumber": "A"})

    dash = (await async_client.get("/api/admin/dashboard", headers=admin_headers)).json()["data"]
    assert dash["overview"]["totalUsers"] == 3
    assert dash["overview"]["totalTransactions"] == 2
    assert dash["overview"]["totalVolume"] == 2000
    assert dash["overview"]["pendingKYC"] == 1
    assert dash["metrics"]["averageTransactionValue"] == 1000
    assert dash["recentActivity"]

    stats = (await async_client.get("/api/admin/stats", headers=admin_headers)).json()["data"]
    assert stats["users"]["byRole"] == {"ADMIN": 2, "USER": 1}
    assert stats["transactions"]["completed"] == 1
    assert stats["transactions"]["pending"] == 1
    assert stats["transactions"]["successRate"] == 50.0
    assert stats["kyc"]["pending"] == 1
    assert stats["notifications"]["total"] >= 3


@pytest.mark.anyio
async def test_system_health(async_client: httpx.AsyncClient, admin_headers):
    data = (await async_client.get("/api/admin/health", headers=admin_headers)).json()["data"]
    assert data["status"] == "healthy"
    assert data["database"] == "connected"
    assert data["backgroundJobs"] == "stopped"
    assert data["environment"] == "development"


@pytest.mark.anyio
async def test_background_status_and_manual_run(async_client: httpx.AsyncClient, admin_headers):
    status = (await async_client.get("/api/admin/background", headers=admin_headers)).json()["data"]
    assert status["running"] is False
    assert set(status["jobs"]) == {
        "notification_cleanup",
        "log_cleanup",
        "system_health",
        "user_activity",
        "transaction_monitor",
    }

    run = await async_client.post("/api/admin/background/log_cleanup", headers=admin_headers)
    assert run.status_code == 200
    assert run.json()["data"] == {"deleted": 0}

    job = (await async_client.get("/api/admin/background", headers=admin_headers)).json()["data"]["jobs"]["log_cleanup"]
    assert job["lastRun"] is not None
    assert job["lastError"] is None
    assert job["lastResult"] == {"deleted": 0}

    unknown = await async_client.post("/api/admin/background/nope", headers=admin_headers)
    assert unknown.status_code == 404


@pytest.mark.anyio
async def test_commerce_config_is_redacted(async_client: httpx.AsyncClient, admin_headers, monkeypatch):
    monkeypatch.setenv("STRIPE_API_KEY", "sk_live_123")
    monkeypatch.setenv("DATABASE_URL", "postgres://medusa:hunter2@db:5432/store")
    data = (await async_client.get("/api/admin/commerce", headers=admin_headers)).json()["data"]
    stripe = next(p for p in data["plugins"] if isinstance(p, dict) and p["resolve"] == "medusa-plugin-stripe")
    assert stripe["options"]["api_key"] == "***"
    assert data["projectConfig"]["database_url"] == "postgres://medusa:***@db:5432/store"
    assert data["projectConfig"]["jwt_secret"] == "***"
