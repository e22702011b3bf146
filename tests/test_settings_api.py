from __future__ import annotations

import httpx
import pytest

from silverlining.api.services.settings_service import DEFAULT_SETTINGS


@pytest.mark.anyio
async def test_init_defaults_is_idempotent(async_client: httpx.AsyncClient):
    first = await async_client.post("/api/settings/init")
    assert first.status_code == 200
    data = first.json()["data"]
    assert data["created"] == len(DEFAULT_SETTINGS)
    assert data["total"] == len(DEFAULT_SETTINGS)

    await async_client.put("/api/settings/silver_price", json={"value": "110"})
    second = (await async_client.post("/api/settings/init")).json()["data"]
    assert second["created"] == 0
    assert second["settings"] == []

    price = (await async_client.get("/api/settings/silver_price")).json()["data"]
    assert price["value"] == "110"


@pytest.mark.anyio
async def test_listing_groups_by_category_and_config_maps(async_client: httpx.AsyncClient):
    await async_client.post("/api/settings/init")

    listing = (await async_client.get("/api/settings")).json()["data"]
    keys = [s["key"] for s in listing["settings"]]
    assert keys == sorted(keys)
    assert set(listing["groupedSettings"]) == {"system", "app", "notifications", "security"}

    system = (await async_client.get("/api/settings/system/config")).json()["data"]
    assert system["app_name"] == "Silver Lining MVP"
    app_cfg = (await async_client.get("/api/settings/app/config")).json()["data"]
    assert app_cfg["default_currency"] == "INR"

    security = (await async_client.get("/api/settings/category/security")).json()["data"]
    assert {s["key"] for s in security} == {"session_timeout", "max_login_attempts", "password_min_length", "require_2fa"}


@pytest.mark.anyio
async def test_create_get_update_setting(async_client: httpx.AsyncClient):
    res = await async_client.post(
        "/api/settings", json={"key": "feature_flags", "value": {"beta": True}, "description": "Flags"}
    )
    assert res.status_code == 201
    assert res.json()["data"]["category"] == "general"

    dup = await async_client.post("/api/settings", json={"key": "feature_flags", "value": 1})
    assert dup.status_code == 409

    got = (await async_client.get("/api/settings/feature_flags")).json()["data"]
    assert got["value"] == {"beta": True}

    updated = await async_client.put("/api/settings/feature_flags", json={"value": None, "category": "experiments"})
    assert updated.status_code == 200
    data = updated.json()["data"]
    assert data["value"] is None
    assert data["category"] == "experiments"
    assert data["description"] == "Flags"

    assert (await async_client.get("/api/settings/missing")).status_code == 404
    assert (await async_client.put("/api/settings/missing", json={"value": 1})).status_code == 404
