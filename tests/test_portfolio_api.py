from __future__ import annotations

from datetime import timedelta

import httpx
import pytest

from silverlining.api.schemas.common import utc_now
from silverlining.api.services.portfolio_service import derive_metrics


async def _open(client: httpx.AsyncClient, headers: dict, user_id: str, **overrides) -> dict:
    payload = {
        "userId": user_id,
        "totalSilverHolding": 100,
        "totalInvested": 10000,
        "currentValue": 12000,
        "currentSilverPrice": 120,
    }
    payload.update(overrides)
    res = await client.post("/api/portfolio", json=payload, headers=headers)
    assert res.status_code == 201, res.text
    return res.json()["data"]


def test_derive_metrics_is_zero_safe():
    assert derive_metrics(0, 0, 0) == {"totalProfit": 0, "profitPercentage": 0.0, "averageBuyPrice": 0.0}
    m = derive_metrics(50, 5000, 4000)
    assert m["totalProfit"] == -1000
    assert m["profitPercentage"] == -20.0
    assert m["averageBuyPrice"] == 100.0


@pytest.mark.anyio
async def test_portfolio_routes_require_auth(async_client: httpx.AsyncClient):
    res = await async_client.get("/api/portfolio")
    assert res.status_code == 401


@pytest.mark.anyio
async def test_create_portfolio_derives_profit_and_notifies(
    async_client: httpx.AsyncClient, user_headers, make_user, mongo_db
):
    owner = make_user(name="Holder")
    p = await _open(async_client, user_headers, owner["id"])

    assert p["totalProfit"] == 2000
    assert p["profitPercentage"] == 20.0
    assert p["averageBuyPrice"] == 100.0
    assert p["performance"] == {"daily": 0.0, "weekly": 0.0, "monthly": 0.0, "yearly": 0.0}
    assert p["user"]["name"] == "Holder"

    assert mongo_db["notifications"].count_documents({"userId": owner["id"], "title": "Portfolio Created"}) == 1
    audit = mongo_db["logs"].find_one({"action": "PORTFOLIO_CREATED"})
    assert audit["level"] == "AUDIT"
    assert audit["resourceId"] == p["id"]


@pytest.mark.anyio
async def test_create_portfolio_unknown_user_and_duplicate(async_client: httpx.AsyncClient, user_headers, make_user):
    missing = await async_client.post(
        "/api/portfolio",
        json={"userId": "ghost", "totalSilverHolding": 1, "totalInvested": 1, "currentValue": 1, "currentSilverPrice": 1},
        headers=user_headers,
    )
    assert missing.status_code == 404

    owner = make_user()
    await _open(async_client, user_headers, owner["id"])
    dup = await async_client.post(
        "/api/portfolio",
        json={"userId": owner["id"], "totalSilverHolding": 1, "totalInvested": 1, "currentValue": 1, "currentSilverPrice": 1},
        headers=user_headers,
    )
    assert dup.status_code == 409


@pytest.mark.anyio
async def test_get_update_delete_portfolio(async_client: httpx.AsyncClient, user_headers, make_user, mongo_db):
    owner = make_user()
    p = await _open(async_client, user_headers, owner["id"])

    by_user = await async_client.get(f"/api/portfolio/user/{owner['id']}", headers=user_headers)
    assert by_user.json()["data"]["id"] == p["id"]
    assert (await async_client.get("/api/portfolio/user/ghost", headers=user_headers)).status_code == 404

    res = await async_client.put(f"/api/portfolio/{p['id']}", json={"currentValue": 9000}, headers=user_headers)
    assert res.status_code == 200
    data = res.json()["data"]
    assert data["totalProfit"] == -1000
    assert data["profitPercentage"] == -10.0

    audit = mongo_db["logs"].find_one({"action": "PORTFOLIO_UPDATED"})
    assert audit["metadata"]["changes"] == {"currentValue": 9000.0, "totalProfit": -1000.0, "profitPercentage": -10.0}

    assert (await async_client.put("/api/portfolio/nope", json={"currentValue": 1}, headers=user_headers)).status_code == 404

    deleted = await async_client.delete(f"/api/portfolio/{p['id']}", headers=user_headers)
    assert deleted.status_code == 200
    assert (await async_client.get(f"/api/portfolio/{p['id']}", headers=user_headers)).status_code == 404
    assert (await async_client.delete(f"/api/portfolio/{p['id']}", headers=user_headers)).status_code == 404


@pytest.mark.anyio
async def test_list_sort_search_and_value_range(async_client: httpx.AsyncClient, user_headers, make_user):
    zara = make_user(name="Zara", email="zara@example.com")
    anil = make_user(name="Anil", email="anil@example.com")
    mona = make_user(name="Mona", email="mona@example.com")
    await _open(async_client, user_headers, zara["id"], currentValue=5000)
    await _open(async_client, user_headers, anil["id"], currentValue=60000)
    await _open(async_client, user_headers, mona["id"], currentValue=20000)

    default = await async_client.get("/api/portfolio", headers=user_headers)
    assert [p["currentValue"] for p in default.json()["data"]] == [60000, 20000, 5000]

    by_user = await async_client.get("/api/portfolio", params={"sortBy": "user", "sortOrder": "asc"}, headers=user_headers)
    assert [p["user"]["name"] for p in by_user.json()["data"]] == ["Anil", "Mona", "Zara"]

    by_profit = await async_client.get(
        "/api/portfolio", params={"sortBy": "profit", "sortOrder": "asc"}, headers=user_headers
    )
    assert [p["user"]["name"] for p in by_profit.json()["data"]] == ["Zara", "Mona", "Anil"]

    ranged = await async_client.get(
        "/api/portfolio", params={"minValue": 10000, "maxValue": 50000}, headers=user_headers
    )
    assert [p["user"]["name"] for p in ranged.json()["data"]] == ["Mona"]

    searched = await async_client.get("/api/portfolio", params={"search": "zara@"}, headers=user_headers)
    body = searched.json()
    assert body["pagination"]["total"] == 1
    assert body["data"][0]["user"]["name"] == "Zara"

    bad_order = await async_client.get("/api/portfolio", params={"sortOrder": "sideways"}, headers=user_headers)
    assert bad_order.status_code == 422


@pytest.mark.anyio
async def test_sync_rebuilds_from_completed_transactions(async_client: httpx.AsyncClient, user_headers, make_user):
    owner = make_user()
    p = await _open(async_client, user_headers, owner["id"], currentSilverPrice=110)

    async def txn(kind: str, amount: float, qty: float, complete: bool = True) -> None:
        res = await async_client.post(
            "/api/transactions",
            json={"userId": owner["id"], "type": kind, "amount": amount, "silverQuantity": qty, "silverPrice": 100},
        )
        if complete:
            await async_client.patch(f"/api/transactions/{res.json()['data']['id']}/status", json={"status": "COMPLETED"})

    await txn("BUY", 10000, 100)
    await txn("SELL", 2000, 20)
    await txn("BUY", 999, 9, complete=False)

    res = await async_client.post(f"/api/portfolio/{p['id']}/sync", headers=user_headers)
    assert res.status_code == 200
    body = res.json()
    assert body["message"] == "Portfolio synced with 2 transactions"
    data = body["data"]
    assert data["totalSilverHolding"] == 80
    assert data["totalInvested"] == 8000
    assert data["currentValue"] == 8800
    assert data["totalProfit"] == 800
    assert [h["type"] for h in data["holdings"]] == ["BUY", "SELL"]

    assert (await async_client.post("/api/portfolio/nope/sync", headers=user_headers)).status_code == 404


@pytest.mark.anyio
async def test_stats_and_detailed_analytics(async_client: httpx.AsyncClient, user_headers, make_user, mongo_db):
    a = await _open(async_client, user_headers, make_user()["id"], totalInvested=10000, currentValue=12000)
    await _open(async_client, user_headers, make_user()["id"], totalInvested=60000, currentValue=60000)
    old = await _open(async_client, user_headers, make_user()["id"], totalInvested=5000, currentValue=4000)
    mongo_db["portfolios"].update_one({"id": old["id"]}, {"$set": {"lastUpdated": utc_now() - timedelta(days=45)}})

    stats = (await async_client.get("/api/portfolio/stats", headers=user_headers)).json()["data"]
    assert stats["totalPortfolios"] == 3
    assert stats["totalPortfolioValue"] == 76000
    assert stats["totalProfit"] == 1000
    assert stats["topPerformers"][0]["id"] == a["id"]
    assert len(stats["portfolioValueByDay"]) == 2

    analytics = (await async_client.get("/api/portfolio/analytics/detailed", headers=user_headers)).json()["data"]
    assert analytics["period"] == "30d"
    assert analytics["totalPortfolios"] == 2
    assert analytics["valueRanges"]["10k-50k"] == 1
    assert analytics["valueRanges"]["50k-100k"] == 1
    assert analytics["profitDistribution"] == {"profitable": 1, "breakeven": 1, "loss": 0}

    wide = (
        await async_client.get("/api/portfolio/analytics/detailed", params={"period": "90d"}, headers=user_headers)
    ).json()["data"]
    assert wide["totalPortfolios"] == 3
    assert wide["profitDistribution"]["loss"] == 1

    bad = await async_client.get("/api/portfolio/analytics/detailed", params={"period": "1y"}, headers=user_headers)
    assert bad.status_code == 422


@pytest.mark.anyio
async def test_value_range_upper_bounds_are_inclusive(async_client: httpx.AsyncClient, user_headers, make_user):
    for value in (10000, 50000, 100000, 500000, 500000.5):
        await _open(async_client, user_headers, make_user()["id"], totalInvested=value, currentValue=value)

    ranges = (await async_client.get("/api/portfolio/analytics/detailed", headers=user_headers)).json()["data"][
        "valueRanges"
    ]
    assert ranges == {"0-10k": 1, "10k-50k": 1, "50k-100k": 1, "100k-500k": 1, "500k+": 1}
