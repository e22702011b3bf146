"""Structured application log: every entry is echoed to the Python logger and stored in the logs collection."""

from __future__ import annotations

import logging
import re
from collections import Counter
from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple
from uuid import uuid4

from silverlining.api.schemas.common import LogCategory, LogLevel, ensure_utc, utc_now
from silverlining.api.schemas.logs import LogOut, LogsQuery, LogStats
from silverlining.api.state import AppState

logger = logging.getLogger(__name__)

_PY_LEVELS = {
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.WARN: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
    LogLevel.AUDIT: logging.INFO,
}


def _doc_to_out(doc: dict) -> LogOut:
    return LogOut(
        id=doc["id"],
        level=doc["level"],
        category=doc["category"],
        message=doc.get("message", ""),
        user_id=doc.get("userId"),
        user_email=doc.get("userEmail"),
        action=doc.get("action"),
        resource=doc.get("resource"),
        resource_id=doc.get("resourceId"),
        ip_address=doc.get("ipAddress"),
        user_agent=doc.get("userAgent"),
        metadata=doc.get("metadata") or {},
        timestamp=doc["timestamp"],
    )


# PUBLIC_INTERFACE
def log(
    state: AppState,
    level: LogLevel,
    category: LogCategory,
    message: str,
    *,
    user_id: Optional[str] = None,
    user_email: Optional[str] = None,
    action: Optional[str] = None,
    resource: Optional[str] = None,
    resource_id: Optional[str] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> Optional[dict]:
    """
    Write a log entry to the Python logger and to the logs collection.

    Storage failures are logged and swallowed so that logging never breaks the calling operation.
    Returns the stored document, or None when the write failed.
    """
    level = LogLevel(level)
    category = LogCategory(category)
    logger.log(
        _PY_LEVELS[level],
        "[%s] [%s] %s user=%s action=%s",
        level.value,
        category.value,
        message,
        user_email or user_id,
        action,
    )

    doc = {
        "id": str(uuid4()),
        "level": level.value,
        "category": category.value,
        "message": message,
        "userId": user_id,
        "userEmail": user_email,
        "action": action,
        "resource": resource,
        "resourceId": resource_id,
        "ipAddress": ip_address,
        "userAgent": user_agent,
        "metadata": dict(metadata or {}),
        "timestamp": utc_now(),
    }
    try:
        state.mongo.collections().logs.insert_one(doc)
    except Exception:
        logger.exception("Failed to write log entry to database (category=%s action=%s)", category.value, action)
        return None
    doc.pop("_id", None)
    return doc


# PUBLIC_INTERFACE
def audit_log(
    state: AppState,
    category: LogCategory,
    message: str,
    *,
    before_state: Optional[Dict[str, Any]] = None,
    after_state: Optional[Dict[str, Any]] = None,
    changes: Optional[Dict[str, Any]] = None,
    metadata: Optional[Dict[str, Any]] = None,
    **fields: Any,
) -> Optional[dict]:
    """Write an AUDIT entry; before/after state and changes are merged into metadata."""
    merged = dict(metadata or {})
    merged.update({"beforeState": before_state, "afterState": after_state, "changes": changes})
    return log(state, LogLevel.AUDIT, category, message, metadata=merged, **fields)


# PUBLIC_INTERFACE
def log_user_action(
    state: AppState,
    user_id: Optional[str],
    user_email: Optional[str],
    action: str,
    message: str,
    metadata: Optional[Dict[str, Any]] = None,
    **fields: Any,
) -> Optional[dict]:
    return log(
        state,
        LogLevel.INFO,
        LogCategory.USER,
        message,
        user_id=user_id,
        user_email=user_email,
        action=action,
        metadata=metadata,
        **fields,
    )


# PUBLIC_INTERFACE
def log_auth_event(
    state: AppState,
    action: str,
    message: str,
    *,
    level: LogLevel = LogLevel.INFO,
    **fields: Any,
) -> Optional[dict]:
    """AUTH-category entry (LOGIN, LOGIN_FAILED, LOGOUT, ...); the user-activity job reads these."""
    return log(state, level, LogCategory.AUTH, message, action=action, **fields)


# PUBLIC_INTERFACE
def log_security_event(
    state: AppState,
    action: str,
    message: str,
    metadata: Optional[Dict[str, Any]] = None,
    **fields: Any,
) -> Optional[dict]:
    return log(state, LogLevel.WARN, LogCategory.SECURITY, message, action=action, metadata=metadata, **fields)


# PUBLIC_INTERFACE
def log_transaction(
    state: AppState,
    transaction_id: str,
    action: str,
    message: str,
    metadata: Optional[Dict[str, Any]] = None,
    **fields: Any,
) -> Optional[dict]:
    return log(
        state,
        LogLevel.INFO,
        LogCategory.TRANSACTION,
        message,
        action=action,
        resource="TRANSACTION",
        resource_id=transaction_id,
        metadata=metadata,
        **fields,
    )


# PUBLIC_INTERFACE
def log_portfolio_change(
    state: AppState,
    portfolio_id: str,
    action: str,
    message: str,
    *,
    before_state: Optional[Dict[str, Any]] = None,
    after_state: Optional[Dict[str, Any]] = None,
    changes: Optional[Dict[str, Any]] = None,
    **fields: Any,
) -> Optional[dict]:
    return audit_log(
        state,
        LogCategory.PORTFOLIO,
        message,
        before_state=before_state,
        after_state=after_state,
        changes=changes,
        action=action,
        resource="PORTFOLIO",
        resource_id=portfolio_id,
        **fields,
    )


# PUBLIC_INTERFACE
def log_system_event(
    state: AppState,
    action: str,
    message: str,
    metadata: Optional[Dict[str, Any]] = None,
    level: LogLevel = LogLevel.INFO,
) -> Optional[dict]:
    return log(state, level, LogCategory.SYSTEM, message, action=action, metadata=metadata)


# PUBLIC_INTERFACE
def log_error(
    state: AppState,
    category: LogCategory,
    message: str,
    error: Optional[BaseException] = None,
    metadata: Optional[Dict[str, Any]] = None,
    **fields: Any,
) -> Optional[dict]:
    merged = dict(metadata or {})
    if error is not None:
        merged["error"] = {"type": type(error).__name__, "message": str(error)}
    return log(state, LogLevel.ERROR, category, message, metadata=merged, **fields)


def _logs_query_from_filters(filters: LogsQuery, *, audit_only: bool = False) -> Dict[str, Any]:
    q: Dict[str, Any] = {}
    if audit_only:
        q["level"] = LogLevel.AUDIT.value
    elif filters.level is not None:
        q["level"] = filters.level.value
    if filters.category is not None:
        q["category"] = filters.category.value
    if filters.user_id:
        q["userId"] = filters.user_id
    if filters.resource:
        q["resource"] = filters.resource
    if filters.resource_id:
        q["resourceId"] = filters.resource_id

    ts: Dict[str, Any] = {}
    if filters.start_date is not None:
        ts["$gte"] = ensure_utc(filters.start_date)
    if filters.end_date is not None:
        ts["$lte"] = ensure_utc(filters.end_date)
    if ts:
        q["timestamp"] = ts

    if filters.search:
        pattern = {"$regex": re.escape(filters.search), "$options": "i"}
        q["$or"] = [{"message": pattern}, {"userEmail": pattern}, {"action": pattern}]
    return q


# PUBLIC_INTERFACE
def list_logs(state: AppState, filters: LogsQuery, *, audit_only: bool = False) -> Tuple[List[LogOut], int]:
    """
    List log rows with filters and pagination, newest first.

    Returns (items, total_matching).
    """
    cols = state.mongo.collections()
    q = _logs_query_from_filters(filters, audit_only=audit_only)

    total = int(cols.logs.count_documents(q))
    docs = list(
        cols.logs.find(q, projection={"_id": 0})
        .sort("timestamp", -1)
        .skip((filters.page - 1) * filters.limit)
        .limit(filters.limit)
    )
    return ([_doc_to_out(d) for d in docs], total)


# PUBLIC_INTERFACE
def get_stats(state: AppState) -> LogStats:
    """Totals by level and category plus 24h error/audit counts."""
    cols = state.mongo.collections()
    since = utc_now() - timedelta(hours=24)

    by_level: Counter = Counter()
    by_category: Counter = Counter()
    for doc in cols.logs.find({}, projection={"_id": 0, "level": 1, "category": 1}):
        by_level[doc.get("level")] += 1
        by_category[doc.get("category")] += 1

    recent = list(cols.logs.find({}, projection={"_id": 0}).sort("timestamp", -1).limit(10))
    return LogStats(
        total_logs=sum(by_level.values()),
        logs_by_level=dict(by_level),
        logs_by_category=dict(by_category),
        recent_logs=[_doc_to_out(d) for d in recent],
        recent_errors=int(cols.logs.count_documents({"level": LogLevel.ERROR.value, "timestamp": {"$gte": since}})),
        recent_audit_logs=int(cols.logs.count_documents({"level": LogLevel.AUDIT.value, "timestamp": {"$gte": since}})),
    )


# PUBLIC_INTERFACE
def recent_logs(state: AppState, limit: int = 10) -> List[LogOut]:
    cols = state.mongo.collections()
    docs = cols.logs.find({}, projection={"_id": 0}).sort("timestamp", -1).limit(limit)
    return [_doc_to_out(d) for d in docs]


# PUBLIC_INTERFACE
def cleanup_old_logs(state: AppState, days: int) -> int:
    """Delete non-AUDIT entries older than ``days``; audit history is kept. Returns the deleted count."""
    cutoff = utc_now() - timedelta(days=days)
    res = state.mongo.collections().logs.delete_many(
        {"timestamp": {"$lt": cutoff}, "level": {"$ne": LogLevel.AUDIT.value}}
    )
    return int(res.deleted_count)
