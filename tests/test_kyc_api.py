from __future__ import annotations

import httpx
import pytest


async def _submit(client: httpx.AsyncClient, user_id: str, **extra) -> dict:
    payload = {"userId": user_id, "panNumber": "ABCDE1234F", "aadhaarNumber": "1234-5678-9012"}
    payload.update(extra)
    res = await client.post("/api/kyc", json=payload)
    assert res.status_code == 201, res.text
    return res.json()["data"]


@pytest.mark.anyio
async def test_submit_kyc_starts_pending_with_documents(async_client: httpx.AsyncClient, make_user):
    user = make_user(name="Applicant")
    app = await _submit(async_client, user["id"], notes="first try")

    assert app["status"] == "PENDING"
    assert app["documents"] == {"panNumber": "ABCDE1234F", "aadhaarNumber": "1234-5678-9012"}
    assert app["personalInfo"] == {"notes": "first try"}
    assert app["reviewedAt"] is None
    assert app["user"]["name"] == "Applicant"


@pytest.mark.anyio
async def test_submit_kyc_unknown_user_and_duplicate(async_client: httpx.AsyncClient, make_user):
    missing = await async_client.post(
        "/api/kyc", json={"userId": "ghost", "panNumber": "P", "aadhaarNumber": "A"}
    )
    assert missing.status_code == 404

    user = make_user()
    await _submit(async_client, user["id"])
    dup = await async_client.post("/api/kyc", json={"userId": user["id"], "panNumber": "P", "aadhaarNumber": "A"})
    assert dup.status_code == 409


@pytest.mark.anyio
async def test_approve_records_reviewer_audits_and_notifies(
    async_client: httpx.AsyncClient, make_user, admin_user, admin_headers, mongo_db
):
    user = make_user()
    app = await _submit(async_client, user["id"])

    res = await async_client.put(
        f"/api/kyc/{app['id']}/status", json={"status": "APPROVED", "notes": "all good"}, headers=admin_headers
    )
    assert res.status_code == 200
    data = res.json()["data"]
    assert data["status"] == "APPROVED"
    assert data["remarks"] == "all good"
    assert data["reviewedBy"] == admin_user["id"]
    assert data["reviewedAt"] is not None

    assert mongo_db["notifications"].count_documents({"userId": user["id"], "title": "KYC Application Approved"}) == 1
    audit = mongo_db["logs"].find_one({"level": "AUDIT", "action": "KYC_APPROVED"})
    assert audit["metadata"]["beforeState"] == {"status": "PENDING"}
    assert audit["metadata"]["afterState"] == {"status": "APPROVED"}


@pytest.mark.anyio
async def test_reject_uses_notes_as_reason(async_client: httpx.AsyncClient, make_user, mongo_db):
    user = make_user()
    app = await _submit(async_client, user["id"])

    res = await async_client.put(f"/api/kyc/{app['id']}/status", json={"status": "REJECTED", "notes": "blurry scan"})
    assert res.status_code == 200
    assert res.json()["data"]["reviewedBy"] is None

    note = mongo_db["notifications"].find_one({"userId": user["id"], "title": "KYC Application Rejected"})
    assert note["message"].endswith("Reason: blurry scan")


@pytest.mark.anyio
async def test_update_status_unknown_application_404(async_client: httpx.AsyncClient):
    res = await async_client.put("/api/kyc/nope/status", json={"status": "APPROVED"})
    assert res.status_code == 404


@pytest.mark.anyio
async def test_list_filter_get_and_stats(async_client: httpx.AsyncClient, make_user):
    a = await _submit(async_client, make_user()["id"])
    await _submit(async_client, make_user()["id"])
    await async_client.put(f"/api/kyc/{a['id']}/status", json={"status": "APPROVED"})

    pending = await async_client.get("/api/kyc", params={"status": "PENDING"})
    assert len(pending.json()["data"]) == 1

    everything = await async_client.get("/api/kyc")
    assert len(everything.json()["data"]) == 2

    one = await async_client.get(f"/api/kyc/{a['id']}")
    assert one.json()["data"]["status"] == "APPROVED"
    assert (await async_client.get("/api/kyc/missing")).status_code == 404

    stats = (await async_client.get("/api/kyc/stats/overview")).json()["data"]
    assert stats == {"total": 2, "pending": 1, "approved": 1, "rejected": 0, "byStatus": {"PENDING": 1, "APPROVED": 1}}
