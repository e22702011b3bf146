from __future__ import annotations

from datetime import timedelta

import httpx
import pytest

from silverlining.api.schemas.common import LogCategory, LogLevel, utc_now
from silverlining.api.services import log_service


@pytest.mark.anyio
async def test_logs_require_auth(async_client: httpx.AsyncClient):
    assert (await async_client.get("/api/logs")).status_code == 401


@pytest.mark.anyio
async def test_create_log_defaults_to_caller_and_request_metadata(
    async_client: httpx.AsyncClient, make_user, auth_headers
):
    me = make_user(email="writer@example.com")
    headers = {**auth_headers(me), "User-Agent": "pytest-agent", "X-Forwarded-For": "203.0.113.9, 10.0.0.1"}
    res = await async_client.post(
        "/api/logs",
        json={"level": "INFO", "category": "API", "message": "client event", "action": "CLICK", "metadata": {"x": 1}},
        headers=headers,
    )
    assert res.status_code == 201, res.text
    data = res.json()["data"]
    assert data["userId"] == me["id"]
    assert data["userEmail"] == "writer@example.com"
    assert data["ipAddress"] == "203.0.113.9"
    assert data["userAgent"] == "pytest-agent"
    assert data["metadata"] == {"x": 1}


@pytest.mark.anyio
async def test_create_log_rejects_unknown_level(async_client: httpx.AsyncClient, user_headers):
    res = await async_client.post(
        "/api/logs", json={"level": "LOUD", "category": "API", "message": "x"}, headers=user_headers
    )
    assert res.status_code == 422


@pytest.mark.anyio
async def test_list_filters_search_and_dates(async_client: httpx.AsyncClient, state, user_headers, mongo_db):
    log_service.log(state, LogLevel.ERROR, LogCategory.SYSTEM, "disk nearly full", action="DISK")
    log_service.log(state, LogLevel.INFO, LogCategory.USER, "profile viewed", user_email="viewer@example.com")
    old = log_service.log(state, LogLevel.INFO, LogCategory.SYSTEM, "ancient history")
    mongo_db["logs"].update_one({"id": old["id"]}, {"$set": {"timestamp": utc_now() - timedelta(days=3)}})

    errors = (await async_client.get("/api/logs", params={"level": "ERROR"}, headers=user_headers)).json()
    assert [d["message"] for d in errors["data"]] == ["disk nearly full"]

    system = (await async_client.get("/api/logs", params={"category": "SYSTEM"}, headers=user_headers)).json()
    assert system["pagination"]["total"] == 2

    by_email = (await async_client.get("/api/logs", params={"search": "VIEWER@"}, headers=user_headers)).json()
    assert [d["message"] for d in by_email["data"]] == ["profile viewed"]

    # Naive datetimes are read as UTC.
    since = (utc_now() - timedelta(days=1)).replace(tzinfo=None).isoformat()
    recent = (await async_client.get("/api/logs", params={"startDate": since}, headers=user_headers)).json()
    assert "ancient history" not in [d["message"] for d in recent["data"]]
    assert recent["pagination"]["total"] == 2


@pytest.mark.anyio
async def test_audit_endpoint_ignores_level_filter(async_client: httpx.AsyncClient, state, user_headers):
    log_service.audit_log(
        state, LogCategory.USER, "role changed", before_state={"role": "USER"}, after_state={"role": "ADMIN"}
    )
    log_service.log(state, LogLevel.INFO, LogCategory.USER, "not audit")

    res = await async_client.get("/api/logs/audit", params={"level": "INFO"}, headers=user_headers)
    body = res.json()
    assert [d["message"] for d in body["data"]] == ["role changed"]
    assert body["data"][0]["metadata"]["afterState"] == {"role": "ADMIN"}


@pytest.mark.anyio
async def test_log_stats(async_client: httpx.AsyncClient, state, user_headers):
    log_service.log(state, LogLevel.ERROR, LogCategory.API, "boom")
    log_service.log_error(state, LogCategory.TRANSACTION, "payment gateway down", error=RuntimeError("timeout"))
    log_service.audit_log(state, LogCategory.KYC, "kyc reviewed")

    stats = (await async_client.get("/api/logs/stats", headers=user_headers)).json()["data"]
    assert stats["totalLogs"] == 3
    assert stats["logsByLevel"] == {"ERROR": 2, "AUDIT": 1}
    assert stats["recentErrors"] == 2
    assert stats["recentAuditLogs"] == 1
    assert len(stats["recentLogs"]) == 3


def test_log_error_records_exception_details(state, mongo_db):
    log_service.log_error(state, LogCategory.SYSTEM, "failed", error=ValueError("bad value"))
    doc = mongo_db["logs"].find_one({"message": "failed"})
    assert doc["level"] == "ERROR"
    assert doc["metadata"]["error"] == {"type": "ValueError", "message": "bad value"}


def test_cleanup_old_logs_keeps_audit_entries(state, mongo_db):
    stale = log_service.log(state, LogLevel.INFO, LogCategory.SYSTEM, "stale")
    stale_audit = log_service.audit_log(state, LogCategory.SYSTEM, "stale audit")
    log_service.log(state, LogLevel.INFO, LogCategory.SYSTEM, "fresh")
    long_ago = utc_now() - timedelta(days=200)
    mongo_db["logs"].update_many({"id": {"$in": [stale["id"], stale_audit["id"]]}}, {"$set": {"timestamp": long_ago}})

    assert log_service.cleanup_old_logs(state, 90) == 1
    assert {d["message"] for d in mongo_db["logs"].find({})} == {"stale audit", "fresh"}
