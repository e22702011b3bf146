from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from silverlining.api.schemas.common import LogCategory, LogLevel, TransactionStatus, UserStatus, percentage, utc_now
from silverlining.api.services import log_service, settings_service
from silverlining.api.state import AppState

logger = logging.getLogger(__name__)

DEFAULT_SILVER_PRICE = 105.0


# PUBLIC_INTERFACE
def month_start(now: datetime, months_back: int = 0) -> datetime:
    """First instant of the month ``months_back`` months before ``now``'s month (negative counts forward)."""
    year, month = divmod(now.year * 12 + (now.month - 1) - months_back, 12)
    return now.replace(year=year, month=month + 1, day=1, hour=0, minute=0, second=0, microsecond=0)


def _completed(state: AppState, since: Optional[datetime] = None, until: Optional[datetime] = None) -> List[dict]:
    q: Dict[str, Any] = {"status": TransactionStatus.COMPLETED.value}
    rng: Dict[str, Any] = {}
    if since is not None:
        rng["$gte"] = since
    if until is not None:
        rng["$lt"] = until
    if rng:
        q["transactionDate"] = rng
    return list(
        state.mongo.collections().transactions.find(
            q, projection={"_id": 0, "amount": 1, "silverPrice": 1, "transactionDate": 1, "createdAt": 1}
        )
    )


def _amount_sum(docs: List[dict]) -> float:
    return sum(float(d.get("amount") or 0.0) for d in docs)


def _price_metrics(state: AppState) -> Tuple[float, float, str]:
    """(average completed price, % change between the two latest completed prices, trend)."""
    cols = state.mongo.collections()
    prices = [
        float(d.get("silverPrice") or 0.0)
        for d in cols.transactions.find(
            {"status": TransactionStatus.COMPLETED.value}, projection={"_id": 0, "silverPrice": 1}
        ).sort("transactionDate", -1)
    ]
    if not prices:
        try:
            fallback = float(settings_service.get_setting_value(state, "silver_price", DEFAULT_SILVER_PRICE))
        except (TypeError, ValueError):
            fallback = DEFAULT_SILVER_PRICE
        return fallback, 0.0, "stable"

    avg_price = sum(prices) / len(prices)
    change = percentage(prices[0] - prices[1], prices[1]) if len(prices) > 1 else 0.0
    trend = "up" if change > 0.5 else ("down" if change < -0.5 else "stable")
    return avg_price, change, trend


def _recent_activity(state: AppState, limit: int = 10) -> List[Dict[str, Any]]:
    return [
        {
            "id": entry.id,
            "type": (entry.action or entry.category.value).lower(),
            "description": entry.message,
            "user": entry.user_email,
            "timestamp": entry.timestamp.isoformat(),
        }
        for entry in log_service.recent_logs(state, limit)
    ]


def _monthly_data(state: AppState, now: datetime, months: int = 6) -> List[Dict[str, Any]]:
    cols = state.mongo.collections()
    data = []
    for i in range(months - 1, -1, -1):
        start = month_start(now, i)
        end = month_start(now, i - 1)
        data.append(
            {
                "name": start.strftime("%b"),
                "users": int(cols.users.count_documents({"createdAt": {"$lt": end}})),
                "revenue": _amount_sum(_completed(state, start, end)),
            }
        )
    return data


def _platform_health(state: AppState, now: datetime) -> List[Dict[str, Any]]:
    cols = state.mongo.collections()
    db_ok = state.mongo.ping()
    since = now - timedelta(hours=24)
    errors = int(cols.logs.count_documents({"level": LogLevel.ERROR.value, "timestamp": {"$gte": since}}))
    security = int(cols.logs.count_documents({"category": LogCategory.SECURITY.value, "timestamp": {"$gte": since}}))
    uptime = (now - state.started_at).total_seconds()
    stamp = now.isoformat()
    return [
        {"name": "System Uptime", "value": f"{uptime / 3600:.1f}h", "status": "excellent", "lastUpdated": stamp},
        {
            "name": "Database",
            "value": "Connected" if db_ok else "Unreachable",
            "status": "excellent" if db_ok else "critical",
            "lastUpdated": stamp,
        },
        {
            "name": "Errors (24h)",
            "value": str(errors),
            "status": "excellent" if errors == 0 else ("good" if errors <= state.config.error_rate_threshold else "warning"),
            "lastUpdated": stamp,
        },
        {
            "name": "Security Events (24h)",
            "value": str(security),
            "status": "excellent" if security == 0 else "warning",
            "lastUpdated": stamp,
        },
    ]


# PUBLIC_INTERFACE
def dashboard(state: AppState) -> Dict[str, Any]:
    """Everything the admin dashboard home page renders, in one payload."""
    cols = state.mongo.collections()
    now = utc_now()

    total_users = int(cols.users.count_documents({}))
    active_users = int(cols.users.count_documents({"status": UserStatus.ACTIVE.value}))
    new_users = int(cols.users.count_documents({"createdAt": {"$gte": month_start(now)}}))

    statuses = Counter(
        d.get("status") for d in cols.transactions.find({}, projection={"_id": 0, "status": 1})
    )
    total_txns = sum(statuses.values())
    completed_count = statuses.get(TransactionStatus.COMPLETED.value, 0)

    completed = _completed(state)
    total_revenue = _amount_sum(completed)
    avg_txn = total_revenue / len(completed) if completed else 0.0
    last_30 = _amount_sum(_completed(state, now - timedelta(days=30)))
    prior_30 = _amount_sum(_completed(state, now - timedelta(days=60), now - timedelta(days=30)))

    total_holding = sum(
        float(d.get("totalSilverHolding") or 0.0)
        for d in cols.portfolios.find({}, projection={"_id": 0, "totalSilverHolding": 1})
    )
    avg_price, price_change, trend = _price_metrics(state)

    return {
        "overview": {
            "totalUsers": total_users,
            "activeUsers": active_users,
            "totalTransactions": total_txns,
            "totalVolume": total_revenue,
            "totalSilverHolding": total_holding,
            "averageTransactionValue": avg_txn,
        },
        "revenue": {
            "totalRevenue": total_revenue,
            "monthlyRevenue": last_30,
            "weeklyRevenue": _amount_sum(_completed(state, now - timedelta(days=7))),
            "dailyRevenue": _amount_sum(_completed(state, now - timedelta(days=1))),
            "revenueGrowth": percentage(last_30 - prior_30, prior_30),
        },
        "users": {
            "newUsers": new_users,
            "activeUsers": active_users,
            "userGrowth": percentage(new_users, total_users),
        },
        "transactions": {
            "totalTransactions": total_txns,
            "successfulTransactions": completed_count,
            "failedTransactions": statuses.get(TransactionStatus.FAILED.value, 0),
            "successRate": percentage(completed_count, total_txns),
            "averageTransactionValue": avg_txn,
        },
        "silverMetrics": {
            "totalSilverHolding": total_holding,
            "averageSilverPrice": avg_price,
            "priceChange": price_change,
            "marketTrend": trend,
        },
        "recentActivity": _recent_activity(state),
        "monthlyData": _monthly_data(state, now),
        "platformHealth": _platform_health(state, now),
    }


# PUBLIC_INTERFACE
def user_analytics(state: AppState) -> Dict[str, Any]:
    cols = state.mongo.collections()
    now = utc_now()
    by_role: Counter = Counter()
    by_status: Counter = Counter()
    for doc in cols.users.find({}, projection={"_id": 0, "role": 1, "status": 1}):
        by_role[doc.get("role")] += 1
        by_status[doc.get("status")] += 1

    this_month = int(cols.users.count_documents({"createdAt": {"$gte": month_start(now)}}))
    last_month = int(
        cols.users.count_documents({"createdAt": {"$gte": month_start(now, 1), "$lt": month_start(now)}})
    )
    return {
        "totalUsers": sum(by_role.values()),
        "activeUsers": by_status.get(UserStatus.ACTIVE.value, 0),
        "newUsersThisMonth": this_month,
        "newUsersLastMonth": last_month,
        "usersByRole": dict(by_role),
        "usersByStatus": dict(by_status),
        "userGrowthRate": percentage(this_month - last_month, last_month),
    }


# PUBLIC_INTERFACE
def transaction_analytics(state: AppState) -> Dict[str, Any]:
    docs = list(
        state.mongo.collections().transactions.find(
            {}, projection={"_id": 0, "type": 1, "status": 1, "amount": 1, "createdAt": 1}
        )
    )
    completed = [float(d.get("amount") or 0.0) for d in docs if d.get("status") == TransactionStatus.COMPLETED.value]
    by_month = Counter(d["createdAt"].strftime("%Y-%m") for d in docs)
    return {
        "totalTransactions": len(docs),
        "successfulTransactions": len(completed),
        "failedTransactions": sum(1 for d in docs if d.get("status") == TransactionStatus.FAILED.value),
        "totalVolume": sum(completed),
        "averageTransactionValue": (sum(completed) / len(completed)) if completed else 0.0,
        "successRate": percentage(len(completed), len(docs)),
        "transactionsByType": dict(Counter(d.get("type") for d in docs)),
        "transactionsByStatus": dict(Counter(d.get("status") for d in docs)),
        "transactionsByMonth": [{"month": m, "count": by_month[m]} for m in sorted(by_month)],
    }


# PUBLIC_INTERFACE
def financial_analytics(state: AppState) -> Dict[str, Any]:
    cols = state.mongo.collections()
    completed = sorted(_completed(state), key=lambda d: d["createdAt"])
    revenue_by_month: Counter = Counter()
    for d in completed:
        revenue_by_month[d["createdAt"].strftime("%Y-%m")] += float(d.get("amount") or 0.0)

    history = sorted(completed, key=lambda d: d["createdAt"], reverse=True)[:30]
    prices = [float(d.get("silverPrice") or 0.0) for d in completed]
    return {
        "totalRevenue": _amount_sum(completed),
        "totalSilverHolding": sum(
            float(d.get("totalSilverHolding") or 0.0)
            for d in cols.portfolios.find({}, projection={"_id": 0, "totalSilverHolding": 1})
        ),
        "averageSilverPrice": (sum(prices) / len(prices)) if prices else 0.0,
        "revenueByMonth": [{"month": m, "revenue": revenue_by_month[m]} for m in sorted(revenue_by_month)],
        "silverPriceHistory": [
            {"silverPrice": float(d.get("silverPrice") or 0.0), "createdAt": d["createdAt"].isoformat()} for d in history
        ],
    }
