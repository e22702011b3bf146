from __future__ import annotations

import logging
import re
from collections import Counter
from datetime import timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple
from uuid import uuid4

from silverlining.api.schemas.common import NotificationType, UserRole, utc_now
from silverlining.api.schemas.notifications import NotificationOut, NotificationStats, NotificationTemplate
from silverlining.api.services.errors import NotFoundError
from silverlining.api.state import AppState

logger = logging.getLogger(__name__)


TEMPLATES: Dict[str, NotificationTemplate] = {
    t.id: t
    for t in [
        NotificationTemplate(
            id="user-registered",
            name="User Registration",
            title="Welcome to Silver Lining!",
            message="Welcome {{userName}}! Your account has been successfully created.",
            type=NotificationType.SUCCESS,
        ),
        NotificationTemplate(
            id="transaction-created",
            name="Transaction Created",
            title="Transaction Created",
            message="Your {{transactionType}} transaction of ₹{{amount}} has been created successfully.",
            type=NotificationType.INFO,
        ),
        NotificationTemplate(
            id="transaction-completed",
            name="Transaction Completed",
            title="Transaction Completed",
            message="Your {{transactionType}} transaction has been completed successfully.",
            type=NotificationType.SUCCESS,
        ),
        NotificationTemplate(
            id="transaction-failed",
            name="Transaction Failed",
            title="Transaction Failed",
            message="Your {{transactionType}} transaction has failed. Please contact support.",
            type=NotificationType.ERROR,
        ),
        NotificationTemplate(
            id="kyc-approved",
            name="KYC Approved",
            title="KYC Application Approved",
            message="Congratulations! Your KYC application has been approved.",
            type=NotificationType.SUCCESS,
        ),
        NotificationTemplate(
            id="kyc-rejected",
            name="KYC Rejected",
            title="KYC Application Rejected",
            message="Your KYC application has been rejected. Reason: {{reason}}",
            type=NotificationType.ERROR,
        ),
        NotificationTemplate(
            id="portfolio-updated",
            name="Portfolio Updated",
            title="Portfolio Updated",
            message="Your portfolio has been updated. Current value: ₹{{currentValue}}",
            type=NotificationType.INFO,
        ),
        NotificationTemplate(
            id="security-alert",
            name="Security Alert",
            title="Security Alert",
            message="Unusual activity detected on your account. Please verify your login.",
            type=NotificationType.WARNING,
        ),
    ]
}

_PLACEHOLDER = re.compile(r"\{\{(\w+)\}\}")


def _doc_to_out(doc: dict) -> NotificationOut:
    return NotificationOut(
        id=doc["id"],
        user_id=doc["userId"],
        title=doc["title"],
        message=doc["message"],
        type=doc.get("type", NotificationType.INFO.value),
        is_read=bool(doc.get("isRead", False)),
        metadata=doc.get("metadata"),
        created_at=doc["createdAt"],
    )


def _deliver(doc: dict) -> None:
    # Delivery channel is the application log for now; push/email hooks attach here.
    logger.info("Delivering notification to user %s: %s", doc["userId"], doc["title"])


def _user_exists(state: AppState, user_id: str) -> bool:
    return state.mongo.collections().users.count_documents({"id": user_id}, limit=1) > 0


# PUBLIC_INTERFACE
def render_template(text: str, variables: Dict[str, Any]) -> str:
    """Replace {{name}} placeholders; unknown names are left as-is."""

    def _sub(m: "re.Match[str]") -> str:
        key = m.group(1)
        return str(variables[key]) if key in variables else m.group(0)

    return _PLACEHOLDER.sub(_sub, text)


# PUBLIC_INTERFACE
def create_notification(
    state: AppState,
    user_id: str,
    title: str,
    message: str,
    type: NotificationType = NotificationType.INFO,
    metadata: Optional[Dict[str, Any]] = None,
    *,
    check_user: bool = True,
) -> NotificationOut:
    """Store a notification for ``user_id`` and deliver it. Raises NotFoundError for an unknown user."""
    if check_user and not _user_exists(state, user_id):
        raise NotFoundError("User not found")

    doc = {
        "id": str(uuid4()),
        "userId": user_id,
        "title": title,
        "message": message,
        "type": NotificationType(type).value,
        "isRead": False,
        "metadata": metadata,
        "createdAt": utc_now(),
    }
    state.mongo.collections().notifications.insert_one(doc)
    _deliver(doc)
    return _doc_to_out(doc)


# PUBLIC_INTERFACE
def create_bulk_notifications(state: AppState, items: Iterable[Dict[str, Any]]) -> List[NotificationOut]:
    """Create several notifications; each item carries user_id/title/message/type/metadata."""
    created = [create_notification(state, **item) for item in items]
    logger.info("Created %d bulk notifications", len(created))
    return created


# PUBLIC_INTERFACE
def notify_safely(state: AppState, user_id: str, template_id: str, variables: Optional[Dict[str, Any]] = None) -> None:
    """Send a template notification as a side effect; failures are logged, not raised."""
    try:
        send_template_notification(state, user_id, template_id, variables or {})
    except Exception:
        logger.exception("Failed to send %s notification to user %s", template_id, user_id)


# PUBLIC_INTERFACE
def send_template_notification(
    state: AppState,
    user_id: str,
    template_id: str,
    variables: Dict[str, Any],
    metadata: Optional[Dict[str, Any]] = None,
) -> NotificationOut:
    """Render a named template and create the notification. Raises NotFoundError for unknown templates."""
    template = TEMPLATES.get(template_id)
    if template is None:
        raise NotFoundError(f"Template {template_id} not found")

    meta = dict(metadata or {})
    meta.update({"templateId": template_id, "variables": variables})
    return create_notification(
        state,
        user_id,
        render_template(template.title, variables),
        render_template(template.message, variables),
        template.type,
        meta,
    )


# PUBLIC_INTERFACE
def list_user_notifications(
    state: AppState,
    user_id: str,
    *,
    page: int = 1,
    limit: int = 20,
    unread_only: bool = False,
    type: Optional[NotificationType] = None,
) -> Tuple[List[NotificationOut], int, int]:
    """Returns (items, total_matching, unread_count) for one user, newest first."""
    cols = state.mongo.collections()
    q: Dict[str, Any] = {"userId": user_id}
    if unread_only:
        q["isRead"] = False
    if type is not None:
        q["type"] = NotificationType(type).value

    total = int(cols.notifications.count_documents(q))
    docs = list(
        cols.notifications.find(q, projection={"_id": 0})
        .sort("createdAt", -1)
        .skip((page - 1) * limit)
        .limit(limit)
    )
    unread = int(cols.notifications.count_documents({"userId": user_id, "isRead": False}))
    return ([_doc_to_out(d) for d in docs], total, unread)


# PUBLIC_INTERFACE
def list_all_notifications(
    state: AppState,
    *,
    page: int = 1,
    limit: int = 50,
    unread_only: bool = False,
    type: Optional[NotificationType] = None,
    user_id: Optional[str] = None,
) -> Tuple[List[NotificationOut], int]:
    """Admin view across users. Returns (items, total_matching)."""
    cols = state.mongo.collections()
    q: Dict[str, Any] = {}
    if user_id:
        q["userId"] = user_id
    if unread_only:
        q["isRead"] = False
    if type is not None:
        q["type"] = NotificationType(type).value

    total = int(cols.notifications.count_documents(q))
    docs = list(
        cols.notifications.find(q, projection={"_id": 0})
        .sort("createdAt", -1)
        .skip((page - 1) * limit)
        .limit(limit)
    )
    return ([_doc_to_out(d) for d in docs], total)


# PUBLIC_INTERFACE
def mark_as_read(state: AppState, notification_id: str, user_id: str) -> Optional[NotificationOut]:
    """Mark one of the user's notifications read. Returns None if not found for that user."""
    cols = state.mongo.collections()
    q = {"id": notification_id, "userId": user_id}
    res = cols.notifications.update_one(q, {"$set": {"isRead": True}})
    if res.matched_count == 0:
        return None
    doc = cols.notifications.find_one(q, projection={"_id": 0})
    return _doc_to_out(doc) if doc else None


# PUBLIC_INTERFACE
def mark_all_as_read(state: AppState, user_id: str) -> int:
    res = state.mongo.collections().notifications.update_many(
        {"userId": user_id, "isRead": False}, {"$set": {"isRead": True}}
    )
    return int(res.modified_count)


# PUBLIC_INTERFACE
def delete_notification(state: AppState, notification_id: str, user_id: str) -> bool:
    """Delete one of the user's notifications. Returns True if deleted, False if not found."""
    res = state.mongo.collections().notifications.delete_one({"id": notification_id, "userId": user_id})
    return res.deleted_count > 0


# PUBLIC_INTERFACE
def delete_old_notifications(state: AppState, days: int) -> int:
    """Delete read notifications older than ``days``. Unread ones are kept. Returns the deleted count."""
    cutoff = utc_now() - timedelta(days=days)
    res = state.mongo.collections().notifications.delete_many({"createdAt": {"$lt": cutoff}, "isRead": True})
    deleted = int(res.deleted_count)
    logger.info("Deleted %d old notifications (older than %d days)", deleted, days)
    return deleted


# PUBLIC_INTERFACE
def get_stats(state: AppState, user_id: str) -> NotificationStats:
    cols = state.mongo.collections()
    by_type: Counter = Counter()
    unread = 0
    for doc in cols.notifications.find({"userId": user_id}, projection={"_id": 0, "type": 1, "isRead": 1}):
        by_type[doc.get("type")] += 1
        if not doc.get("isRead"):
            unread += 1
    recent = cols.notifications.find({"userId": user_id}, projection={"_id": 0}).sort("createdAt", -1).limit(10)
    return NotificationStats(
        total=sum(by_type.values()),
        unread=unread,
        by_type=dict(by_type),
        recent=[_doc_to_out(d) for d in recent],
    )


# PUBLIC_INTERFACE
def create_system_notification(
    state: AppState,
    title: str,
    message: str,
    type: NotificationType = NotificationType.INFO,
    metadata: Optional[Dict[str, Any]] = None,
) -> List[NotificationOut]:
    """Fan a notification out to every ADMIN user. Returns the created notifications (empty without admins)."""
    cols = state.mongo.collections()
    admins = list(cols.users.find({"role": UserRole.ADMIN.value}, projection={"_id": 0, "id": 1}))
    created = create_bulk_notifications(
        state,
        (
            {"user_id": a["id"], "title": title, "message": message, "type": type, "metadata": metadata, "check_user": False}
            for a in admins
        ),
    )
    logger.info("Created system notification for %d admins: %s", len(created), title)
    return created
