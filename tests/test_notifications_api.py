from __future__ import annotations

from datetime import timedelta

import httpx
import pytest

from silverlining.api.schemas.common import NotificationType, UserRole, utc_now
from silverlining.api.services import notifications_service


def test_render_template_substitutes_known_placeholders_only():
    out = notifications_service.render_template("Hi {{userName}}, ref {{ref}}", {"userName": "Asha"})
    assert out == "Hi Asha, ref {{ref}}"


@pytest.mark.anyio
async def test_list_mark_read_and_delete_own_notifications(
    async_client: httpx.AsyncClient, state, make_user, auth_headers, mongo_db
):
    me = make_user()
    other = make_user()
    headers = auth_headers(me)
    first = notifications_service.create_notification(state, me["id"], "One", "first")
    notifications_service.create_notification(state, me["id"], "Two", "second", NotificationType.WARNING)
    mongo_db["notifications"].update_one({"id": first.id}, {"$set": {"createdAt": utc_now() - timedelta(minutes=1)}})
    theirs = notifications_service.create_notification(state, other["id"], "Theirs", "not yours")

    res = await async_client.get("/api/notifications", headers=headers)
    assert res.status_code == 200
    body = res.json()
    assert body["unreadCount"] == 2
    assert [n["title"] for n in body["data"]] == ["Two", "One"]

    warnings = await async_client.get("/api/notifications", params={"type": "WARNING"}, headers=headers)
    assert [n["title"] for n in warnings.json()["data"]] == ["Two"]

    read = await async_client.put(f"/api/notifications/{first.id}/read", headers=headers)
    assert read.status_code == 200
    assert read.json()["data"]["isRead"] is True

    unread = await async_client.get("/api/notifications", params={"unreadOnly": "true"}, headers=headers)
    assert [n["title"] for n in unread.json()["data"]] == ["Two"]
    assert unread.json()["unreadCount"] == 1

    # Someone else's notification is invisible to me.
    assert (await async_client.put(f"/api/notifications/{theirs.id}/read", headers=headers)).status_code == 404
    assert (await async_client.delete(f"/api/notifications/{theirs.id}", headers=headers)).status_code == 404

    deleted = await async_client.delete(f"/api/notifications/{first.id}", headers=headers)
    assert deleted.status_code == 200


@pytest.mark.anyio
async def test_mark_all_read_and_stats(async_client: httpx.AsyncClient, state, make_user, auth_headers):
    me = make_user()
    headers = auth_headers(me)
    for i in range(3):
        notifications_service.create_notification(state, me["id"], f"N{i}", "body", NotificationType.SUCCESS)

    res = await async_client.put("/api/notifications/mark-all-read", headers=headers)
    assert res.status_code == 200
    assert res.json()["data"] == {"count": 3}

    stats = (await async_client.get("/api/notifications/stats", headers=headers)).json()["data"]
    assert stats["total"] == 3
    assert stats["unread"] == 0
    assert stats["byType"] == {"SUCCESS": 3}
    assert len(stats["recent"]) == 3


@pytest.mark.anyio
async def test_create_notification_for_user(async_client: httpx.AsyncClient, user_headers, make_user):
    target = make_user()
    res = await async_client.post(
        "/api/notifications",
        json={"userId": target["id"], "title": "Hello", "message": "World", "type": "INFO", "metadata": {"k": 1}},
        headers=user_headers,
    )
    assert res.status_code == 201
    assert res.json()["data"]["metadata"] == {"k": 1}

    missing = await async_client.post(
        "/api/notifications", json={"userId": "ghost", "title": "x", "message": "y"}, headers=user_headers
    )
    assert missing.status_code == 404


@pytest.mark.anyio
async def test_template_notification(async_client: httpx.AsyncClient, user_headers, make_user):
    target = make_user()
    res = await async_client.post(
        "/api/notifications/template/kyc-rejected",
        json={"userId": target["id"], "variables": {"reason": "expired document"}},
        headers=user_headers,
    )
    assert res.status_code == 201
    data = res.json()["data"]
    assert data["title"] == "KYC Application Rejected"
    assert data["message"] == "Your KYC application has been rejected. Reason: expired document"
    assert data["type"] == "ERROR"
    assert data["metadata"]["templateId"] == "kyc-rejected"

    unknown = await async_client.post(
        "/api/notifications/template/nope", json={"userId": target["id"]}, headers=user_headers
    )
    assert unknown.status_code == 404


@pytest.mark.anyio
async def test_system_notification_fans_out_to_admins(async_client: httpx.AsyncClient, user_headers, make_user):
    make_user(role=UserRole.ADMIN, email="a1@example.com")
    make_user(role=UserRole.ADMIN, email="a2@example.com")

    res = await async_client.post(
        "/api/notifications/system", json={"title": "Maintenance", "message": "Tonight", "type": "WARNING"}, headers=user_headers
    )
    assert res.status_code == 201
    body = res.json()
    assert len(body["data"]) == 2
    assert body["message"] == "System notification sent to 2 admins"


@pytest.mark.anyio
async def test_all_notifications_is_admin_only(
    async_client: httpx.AsyncClient, state, user_headers, admin_headers, make_user
):
    u = make_user()
    notifications_service.create_notification(state, u["id"], "A", "a")
    notifications_service.create_notification(state, u["id"], "B", "b")

    forbidden = await async_client.get("/api/notifications/all", headers=user_headers)
    assert forbidden.status_code == 403

    res = await async_client.get("/api/notifications/all", params={"userId": u["id"]}, headers=admin_headers)
    assert res.status_code == 200
    assert res.json()["pagination"]["total"] == 2


def test_delete_old_notifications_keeps_unread(state, make_user, mongo_db):
    u = make_user()
    old_read = notifications_service.create_notification(state, u["id"], "old read", "x")
    old_unread = notifications_service.create_notification(state, u["id"], "old unread", "x")
    fresh_read = notifications_service.create_notification(state, u["id"], "fresh read", "x")
    long_ago = utc_now() - timedelta(days=120)
    mongo_db["notifications"].update_one({"id": old_read.id}, {"$set": {"createdAt": long_ago, "isRead": True}})
    mongo_db["notifications"].update_one({"id": old_unread.id}, {"$set": {"createdAt": long_ago}})
    mongo_db["notifications"].update_one({"id": fresh_read.id}, {"$set": {"isRead": True}})

    assert notifications_service.delete_old_notifications(state, 90) == 1
    remaining = {d["title"] for d in mongo_db["notifications"].find({"userId": u["id"]})}
    assert remaining == {"old unread", "fresh read"}
