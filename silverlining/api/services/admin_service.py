from __future__ import annotations

import logging
from collections import Counter
from typing import Any, Dict

from silverlining.api.schemas.common import (
    KycStatus,
    TransactionStatus,
    UserRole,
    UserStatus,
    percentage,
    utc_now,
)
from silverlining.api.schemas.users import UserCreate
from silverlining.api.services import log_service, settings_service, users_service
from silverlining.api.services.analytics_service import month_start
from silverlining.api.services.errors import ConflictError
from silverlining.api.state import AppState

logger = logging.getLogger(__name__)

DEFAULT_ADMIN_NAME = "System Administrator"


def _completed_volume(state: AppState) -> float:
    return sum(
        float(d.get("amount") or 0.0)
        for d in state.mongo.collections().transactions.find(
            {"status": TransactionStatus.COMPLETED.value}, projection={"_id": 0, "amount": 1}
        )
    )


# PUBLIC_INTERFACE
def dashboard(state: AppState) -> Dict[str, Any]:
    """Headline counts, derived rates and the latest log entries for the admin home page."""
    cols = state.mongo.collections()
    total_users = int(cols.users.count_documents({}))
    active_users = int(cols.users.count_documents({"status": UserStatus.ACTIVE.value}))
    new_users = int(cols.users.count_documents({"createdAt": {"$gte": month_start(utc_now())}}))
    total_txns = int(cols.transactions.count_documents({}))
    volume = _completed_volume(state)

    recent = [
        {
            "id": entry.id,
            "type": (entry.action or entry.category.value).lower(),
            "description": entry.message,
            "timestamp": entry.timestamp.isoformat(),
        }
        for entry in log_service.recent_logs(state, 10)
    ]

    return {
        "overview": {
            "totalUsers": total_users,
            "activeUsers": active_users,
            "newUsersThisMonth": new_users,
            "totalTransactions": total_txns,
            "totalVolume": volume,
            "pendingKYC": int(cols.kyc_applications.count_documents({"status": KycStatus.PENDING.value})),
            "totalPortfolios": int(cols.portfolios.count_documents({})),
            "totalNotifications": int(cols.notifications.count_documents({})),
        },
        "metrics": {
            "userGrowth": percentage(new_users, total_users),
            "activeUserRate": percentage(active_users, total_users),
            # Volume covers completed transactions only but is spread over all of them.
            "averageTransactionValue": (volume / total_txns) if total_txns else 0.0,
        },
        "recentActivity": recent,
    }


# PUBLIC_INTERFACE
def system_stats(state: AppState) -> Dict[str, Any]:
    """Per-collection breakdowns for users, transactions, KYC, portfolios and notifications."""
    cols = state.mongo.collections()

    user_status: Counter = Counter()
    user_role: Counter = Counter()
    for d in cols.users.find({}, projection={"_id": 0, "status": 1, "role": 1}):
        user_status[d.get("status")] += 1
        user_role[d.get("role")] += 1

    txn_status: Counter = Counter()
    txn_type: Counter = Counter()
    volume = 0.0
    for d in cols.transactions.find({}, projection={"_id": 0, "status": 1, "type": 1, "amount": 1}):
        txn_status[d.get("status")] += 1
        txn_type[d.get("type")] += 1
        if d.get("status") == TransactionStatus.COMPLETED.value:
            volume += float(d.get("amount") or 0.0)

    kyc_status: Counter = Counter(
        d.get("status") for d in cols.kyc_applications.find({}, projection={"_id": 0, "status": 1})
    )

    portfolios = list(
        cols.portfolios.find(
            {}, projection={"_id": 0, "totalSilverHolding": 1, "currentValue": 1, "currentSilverPrice": 1}
        )
    )
    prices = [float(p.get("currentSilverPrice") or 0.0) for p in portfolios]

    notif_type: Counter = Counter()
    unread = 0
    for d in cols.notifications.find({}, projection={"_id": 0, "type": 1, "isRead": 1}):
        notif_type[d.get("type")] += 1
        if not d.get("isRead"):
            unread += 1

    total_users = sum(user_status.values())
    total_txns = sum(txn_status.values())
    total_kyc = sum(kyc_status.values())
    total_notifs = sum(notif_type.values())
    completed = txn_status.get(TransactionStatus.COMPLETED.value, 0)
    approved = kyc_status.get(KycStatus.APPROVED.value, 0)

    return {
        "users": {
            "total": total_users,
            "active": user_status.get(UserStatus.ACTIVE.value, 0),
            "inactive": user_status.get(UserStatus.INACTIVE.value, 0),
            "pending": user_status.get(UserStatus.PENDING.value, 0),
            "byRole": dict(user_role),
        },
        "transactions": {
            "total": total_txns,
            "completed": completed,
            "pending": txn_status.get(TransactionStatus.PENDING.value, 0),
            "failed": txn_status.get(TransactionStatus.FAILED.value, 0),
            "totalVolume": volume,
            "byType": dict(txn_type),
            "successRate": percentage(completed, total_txns),
        },
        "kyc": {
            "total": total_kyc,
            "pending": kyc_status.get(KycStatus.PENDING.value, 0),
            "approved": approved,
            "rejected": kyc_status.get(KycStatus.REJECTED.value, 0),
            "byStatus": dict(kyc_status),
            "approvalRate": percentage(approved, total_kyc),
        },
        "portfolios": {
            "total": len(portfolios),
            "totalSilverHolding": sum(float(p.get("totalSilverHolding") or 0.0) for p in portfolios),
            "totalValue": sum(float(p.get("currentValue") or 0.0) for p in portfolios),
            "averageSilverPrice": (sum(prices) / len(prices)) if prices else 0.0,
        },
        "notifications": {
            "total": total_notifs,
            "unread": unread,
            "read": total_notifs - unread,
            "byType": dict(notif_type),
        },
    }


# PUBLIC_INTERFACE
def system_health(state: AppState) -> Dict[str, Any]:
    """Liveness of the process, the database and the background scheduler."""
    now = utc_now()
    db_ok = state.mongo.ping()
    background = state.background
    jobs_running = bool(background is not None and background.is_running())  # type: ignore[attr-defined]
    operational = "operational" if db_ok else "degraded"
    return {
        "status": "healthy" if db_ok else "unhealthy",
        "timestamp": now.isoformat(),
        "uptime": (now - state.started_at).total_seconds(),
        "version": state.config.app_version,
        "environment": state.config.app_env,
        "database": "connected" if db_ok else "disconnected",
        "backgroundJobs": "running" if jobs_running else "stopped",
        "services": {
            "auth": operational,
            "transactions": operational,
            "kyc": operational,
            "notifications": operational,
        },
    }


# PUBLIC_INTERFACE
def init_system(state: AppState) -> Dict[str, Any]:
    """Insert missing default settings and create the bootstrap admin when no admin exists."""
    created, _total = settings_service.init_defaults(state)

    cols = state.mongo.collections()
    admin_exists = bool(cols.users.count_documents({"role": UserRole.ADMIN.value}, limit=1))
    if not admin_exists:
        try:
            admin = users_service.create_user(
                state,
                UserCreate(
                    name=DEFAULT_ADMIN_NAME,
                    email=state.config.default_admin_email,
                    password=state.config.default_admin_password,
                    role=UserRole.ADMIN,
                    status=UserStatus.ACTIVE,
                ),
            )
        except ConflictError:
            # The bootstrap email belongs to a non-admin account; promote it.
            doc = users_service.find_user_doc_by_email(state, state.config.default_admin_email)
            assert doc is not None
            cols.users.update_one(
                {"id": doc["id"]},
                {"$set": {"role": UserRole.ADMIN.value, "status": UserStatus.ACTIVE.value, "updatedAt": utc_now()}},
            )
            admin_id = doc["id"]
        else:
            admin_id = admin.id
        logger.info("Default admin user created: %s", state.config.default_admin_email)
        log_service.log_system_event(
            state, "ADMIN_BOOTSTRAPPED", "Default admin user created", {"userId": admin_id}
        )

    logger.info("System initialization completed")
    return {
        "settings": "initialized",
        "settingsCreated": len(created),
        "adminUser": "exists" if admin_exists else "created",
    }
