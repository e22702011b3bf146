from __future__ import annotations

import re

import httpx
import pytest

from silverlining.api.services.transactions_service import generate_reference_id


def _payload(user_id: str, **overrides) -> dict:
    body = {
        "userId": user_id,
        "type": "BUY",
        "amount": 10500,
        "silverQuantity": 100,
        "silverPrice": 105,
        "paymentMethod": "UPI",
    }
    body.update(overrides)
    return body


async def _create(client: httpx.AsyncClient, user_id: str, **overrides) -> dict:
    res = await client.post("/api/transactions", json=_payload(user_id, **overrides))
    assert res.status_code == 201, res.text
    return res.json()["data"]


def test_generated_reference_ids_have_expected_shape():
    ref = generate_reference_id()
    assert re.fullmatch(r"TXN_\d{13}_[a-z0-9]{9}", ref)
    assert generate_reference_id() != ref


@pytest.mark.anyio
async def test_create_transaction_defaults(async_client: httpx.AsyncClient, make_user, mongo_db):
    user = make_user(name="Buyer")
    txn = await _create(async_client, user["id"], fees=50)

    assert txn["status"] == "PENDING"
    assert txn["referenceId"].startswith("TXN_")
    assert txn["totalAmount"] == 10550
    assert txn["user"]["name"] == "Buyer"

    note = mongo_db["notifications"].find_one({"userId": user["id"], "title": "Transaction Created"})
    assert "BUY transaction of ₹10,500.00" in note["message"]
    assert mongo_db["logs"].count_documents({"action": "TRANSACTION_CREATED", "resourceId": txn["id"]}) == 1


@pytest.mark.anyio
async def test_create_transaction_unknown_user_and_duplicate_reference(async_client: httpx.AsyncClient, make_user):
    missing = await async_client.post("/api/transactions", json=_payload("ghost"))
    assert missing.status_code == 404

    user = make_user()
    await _create(async_client, user["id"], referenceId="REF-1")
    dup = await async_client.post("/api/transactions", json=_payload(user["id"], referenceId="REF-1"))
    assert dup.status_code == 409


@pytest.mark.anyio
async def test_create_transaction_validates_amounts(async_client: httpx.AsyncClient, make_user):
    user = make_user()
    res = await async_client.post("/api/transactions", json=_payload(user["id"], amount=0))
    assert res.status_code == 422
    res = await async_client.post("/api/transactions", json=_payload(user["id"], type="GIFT"))
    assert res.status_code == 422


@pytest.mark.anyio
async def test_status_transitions_notify_owner(async_client: httpx.AsyncClient, make_user, mongo_db):
    user = make_user()
    done = await _create(async_client, user["id"])
    failed = await _create(async_client, user["id"], type="SELL")

    res = await async_client.patch(f"/api/transactions/{done['id']}/status", json={"status": "COMPLETED"})
    assert res.status_code == 200
    assert res.json()["data"]["status"] == "COMPLETED"

    res = await async_client.patch(
        f"/api/transactions/{failed['id']}/status", json={"status": "FAILED", "remarks": "bank declined"}
    )
    assert res.json()["data"]["remarks"] == "bank declined"

    titles = {n["title"] for n in mongo_db["notifications"].find({"userId": user["id"]})}
    assert {"Transaction Completed", "Transaction Failed"} <= titles
    assert mongo_db["logs"].count_documents({"action": "TRANSACTION_COMPLETED"}) == 1

    missing = await async_client.patch("/api/transactions/nope/status", json={"status": "COMPLETED"})
    assert missing.status_code == 404


@pytest.mark.anyio
async def test_list_filters_and_user_listing(async_client: httpx.AsyncClient, make_user):
    alice = make_user()
    bob = make_user()
    await _create(async_client, alice["id"])
    await _create(async_client, alice["id"], type="SELL")
    await _create(async_client, bob["id"])

    sells = await async_client.get("/api/transactions", params={"type": "SELL"})
    assert [t["type"] for t in sells.json()["data"]] == ["SELL"]

    for_bob = await async_client.get("/api/transactions", params={"userId": bob["id"]})
    assert for_bob.json()["pagination"]["total"] == 1

    page = await async_client.get("/api/transactions", params={"limit": 2})
    body = page.json()
    assert len(body["data"]) == 2
    assert body["pagination"]["hasNext"] is True

    alice_txns = await async_client.get(f"/api/transactions/user/{alice['id']}")
    assert alice_txns.status_code == 200
    assert len(alice_txns.json()["data"]) == 2

    ghost = await async_client.get("/api/transactions/user/ghost")
    assert ghost.status_code == 404


@pytest.mark.anyio
async def test_get_transaction_and_stats(async_client: httpx.AsyncClient, make_user):
    user = make_user()
    buy = await _create(async_client, user["id"], amount=1000, silverQuantity=10)
    await _create(async_client, user["id"], type="SELL", amount=500, silverQuantity=4)
    await async_client.patch(f"/api/transactions/{buy['id']}/status", json={"status": "COMPLETED"})

    one = await async_client.get(f"/api/transactions/{buy['id']}")
    assert one.json()["data"]["amount"] == 1000
    assert (await async_client.get("/api/transactions/missing")).status_code == 404

    stats = (await async_client.get("/api/transactions/stats/overview")).json()["data"]
    assert stats["totalTransactions"] == 2
    assert stats["totalAmount"] == 1500
    assert stats["totalSilverQuantity"] == 14
    assert stats["byType"]["BUY"] == {"count": 1, "totalAmount": 1000}
    assert stats["byStatus"] == {"COMPLETED": 1, "PENDING": 1}


@pytest.mark.anyio
async def test_repeated_status_is_logged_without_renotifying(async_client: httpx.AsyncClient, make_user, mongo_db):
    user = make_user()
    txn = await _create(async_client, user["id"])
    mongo_db["notifications"].delete_many({})

    for _ in range(2):
        res = await async_client.patch(f"/api/transactions/{txn['id']}/status", json={"status": "COMPLETED"})
        assert res.status_code == 200

    actions = [d["action"] for d in mongo_db["logs"].find({"category": "TRANSACTION", "resourceId": txn["id"]})]
    assert actions.count("TRANSACTION_COMPLETED") == 1
    assert actions.count("TRANSACTION_STATUS_UNCHANGED") == 1
    assert mongo_db["notifications"].count_documents({"userId": user["id"]}) == 1
