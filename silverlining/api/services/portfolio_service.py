from __future__ import annotations

import logging
import re
from collections import OrderedDict
from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple
from uuid import uuid4

from pymongo.errors import DuplicateKeyError

from silverlining.api.schemas.common import NotificationType, TransactionType, utc_now
from silverlining.api.schemas.portfolio import (
    ChartPoint,
    DailyValue,
    Performance,
    PortfolioAnalytics,
    PortfolioCreate,
    PortfolioOut,
    PortfolioStats,
    PortfolioUpdate,
    ProfitDistribution,
)
from silverlining.api.schemas.users import UserSummary
from silverlining.api.services import log_service, notifications_service, transactions_service, users_service
from silverlining.api.services.errors import ConflictError, NotFoundError
from silverlining.api.state import AppState

logger = logging.getLogger(__name__)

# Public sort keys -> stored field. "user" sorts by owner name and is handled separately.
SORT_FIELDS: Dict[str, str] = {
    "currentValue": "currentValue",
    "profit": "totalProfit",
    "totalProfit": "totalProfit",
    "profitPercentage": "profitPercentage",
    "silverHolding": "totalSilverHolding",
    "totalSilverHolding": "totalSilverHolding",
    "totalInvested": "totalInvested",
    "averageBuyPrice": "averageBuyPrice",
    "lastUpdated": "lastUpdated",
    "createdAt": "createdAt",
    "user": "user",
}

PERIOD_DAYS = {"7d": 7, "30d": 30, "90d": 90}

# (label, inclusive upper bound); the last bucket is open-ended.
VALUE_RANGES: List[Tuple[str, Optional[float]]] = [
    ("0-10k", 10_000.0),
    ("10k-50k", 50_000.0),
    ("50k-100k", 100_000.0),
    ("100k-500k", 500_000.0),
    ("500k+", None),
]


def _doc_to_out(doc: dict, user: Optional[UserSummary] = None) -> PortfolioOut:
    return PortfolioOut(
        id=doc["id"],
        user_id=doc["userId"],
        total_silver_holding=float(doc.get("totalSilverHolding", 0.0)),
        total_invested=float(doc.get("totalInvested", 0.0)),
        current_value=float(doc.get("currentValue", 0.0)),
        total_profit=float(doc.get("totalProfit", 0.0)),
        profit_percentage=float(doc.get("profitPercentage", 0.0)),
        average_buy_price=float(doc.get("averageBuyPrice", 0.0)),
        current_silver_price=float(doc.get("currentSilverPrice", 0.0)),
        last_updated=doc.get("lastUpdated") or doc["updatedAt"],
        holdings=doc.get("holdings") or [],
        performance=Performance(**(doc.get("performance") or {})),
        created_at=doc["createdAt"],
        updated_at=doc["updatedAt"],
        user=user,
    )


def _with_users(state: AppState, docs: List[dict]) -> List[PortfolioOut]:
    users = users_service.user_summaries(state, (d["userId"] for d in docs))
    return [_doc_to_out(d, users.get(d["userId"])) for d in docs]


# PUBLIC_INTERFACE
def derive_metrics(total_silver_holding: float, total_invested: float, current_value: float) -> Dict[str, float]:
    """Profit, profit percentage and average buy price for the given totals (zero-safe)."""
    total_profit = current_value - total_invested
    return {
        "totalProfit": total_profit,
        "profitPercentage": (total_profit / total_invested * 100.0) if total_invested > 0 else 0.0,
        "averageBuyPrice": (total_invested / total_silver_holding) if total_silver_holding > 0 else 0.0,
    }


def _snapshot(doc: dict) -> Dict[str, Any]:
    keys = ("totalSilverHolding", "totalInvested", "currentValue", "totalProfit", "profitPercentage", "currentSilverPrice")
    return {k: doc.get(k) for k in keys}


def _value_range(q: Dict[str, Any], min_value: Optional[float], max_value: Optional[float]) -> None:
    rng: Dict[str, float] = {}
    if min_value is not None:
        rng["$gte"] = float(min_value)
    if max_value is not None:
        rng["$lte"] = float(max_value)
    if rng:
        q["currentValue"] = rng


# PUBLIC_INTERFACE
def list_portfolios(
    state: AppState,
    *,
    search: Optional[str] = None,
    min_value: Optional[float] = None,
    max_value: Optional[float] = None,
    page: int = 1,
    limit: int = 10,
    sort_by: str = "currentValue",
    sort_order: str = "desc",
) -> Tuple[List[PortfolioOut], int]:
    """
    List portfolios with owner details.

    ``search`` matches the owner's name or email. Returns (items, total_matching).
    """
    cols = state.mongo.collections()
    q: Dict[str, Any] = {}
    if search:
        pattern = {"$regex": re.escape(search.strip()), "$options": "i"}
        owner_ids = [
            d["id"] for d in cols.users.find({"$or": [{"name": pattern}, {"email": pattern}]}, projection={"_id": 0, "id": 1})
        ]
        q["userId"] = {"$in": owner_ids}
    _value_range(q, min_value, max_value)

    direction = 1 if sort_order == "asc" else -1
    # Unlisted plain field names sort on the stored field of that name.
    field = SORT_FIELDS.get(sort_by) or (sort_by if re.fullmatch(r"[A-Za-z]+", sort_by or "") else "currentValue")
    skip = (page - 1) * limit
    total = int(cols.portfolios.count_documents(q))

    if field == "user":
        docs = list(cols.portfolios.find(q, projection={"_id": 0}))
        users = users_service.user_summaries(state, (d["userId"] for d in docs))
        docs.sort(key=lambda d: (users[d["userId"]].name.lower() if d["userId"] in users else ""), reverse=direction < 0)
        return ([_doc_to_out(d, users.get(d["userId"])) for d in docs[skip : skip + limit]], total)

    docs = list(cols.portfolios.find(q, projection={"_id": 0}).sort(field, direction).skip(skip).limit(limit))
    return (_with_users(state, docs), total)


# PUBLIC_INTERFACE
def get_portfolio(state: AppState, portfolio_id: str) -> Optional[PortfolioOut]:
    doc = state.mongo.collections().portfolios.find_one({"id": portfolio_id}, projection={"_id": 0})
    return _with_users(state, [doc])[0] if doc else None


# PUBLIC_INTERFACE
def get_user_portfolio(state: AppState, user_id: str) -> Optional[PortfolioOut]:
    doc = state.mongo.collections().portfolios.find_one({"userId": user_id}, projection={"_id": 0})
    return _with_users(state, [doc])[0] if doc else None


# PUBLIC_INTERFACE
def create_portfolio(state: AppState, payload: PortfolioCreate) -> PortfolioOut:
    """
    Open a portfolio for a user and notify them.

    Raises NotFoundError for an unknown user and ConflictError if the user already has a portfolio.
    """
    cols = state.mongo.collections()
    user = users_service.find_user_doc(state, payload.user_id)
    if not user:
        raise NotFoundError("User not found")
    if cols.portfolios.count_documents({"userId": payload.user_id}, limit=1):
        raise ConflictError("Portfolio already exists for this user")

    now = utc_now()
    doc: Dict[str, Any] = {
        "id": str(uuid4()),
        "userId": payload.user_id,
        "totalSilverHolding": float(payload.total_silver_holding),
        "totalInvested": float(payload.total_invested),
        "currentValue": float(payload.current_value),
        "currentSilverPrice": float(payload.current_silver_price),
        "holdings": payload.holdings,
        "performance": (payload.performance or Performance()).model_dump(),
        "lastUpdated": now,
        "createdAt": now,
        "updatedAt": now,
    }
    doc.update(derive_metrics(doc["totalSilverHolding"], doc["totalInvested"], doc["currentValue"]))
    try:
        cols.portfolios.insert_one(doc)
    except DuplicateKeyError as e:
        raise ConflictError("Portfolio already exists for this user") from e

    notifications_service.create_notification(
        state,
        payload.user_id,
        "Portfolio Created",
        f"Your portfolio has been created successfully with {doc['totalSilverHolding']:g}g silver holdings.",
        NotificationType.INFO,
        check_user=False,
    )
    log_service.log_portfolio_change(
        state,
        doc["id"],
        "PORTFOLIO_CREATED",
        f"Portfolio created for {user['email']}",
        after_state=_snapshot(doc),
        user_id=user["id"],
        user_email=user["email"],
    )
    logger.info("Created portfolio for user: %s", user["email"])
    return _with_users(state, [doc])[0]


def _save_with_audit(state: AppState, existing: dict, updated: dict, action: str, message: str) -> None:
    state.mongo.collections().portfolios.replace_one({"id": existing["id"]}, updated, upsert=False)
    before = _snapshot(existing)
    after = _snapshot(updated)
    log_service.log_portfolio_change(
        state,
        existing["id"],
        action,
        message,
        before_state=before,
        after_state=after,
        changes={k: after[k] for k in after if after[k] != before.get(k)},
        user_id=existing["userId"],
    )


# PUBLIC_INTERFACE
def update_portfolio(state: AppState, portfolio_id: str, payload: PortfolioUpdate) -> Optional[PortfolioOut]:
    """Apply a partial update, recompute derived fields and stamp lastUpdated. Returns None if not found."""
    cols = state.mongo.collections()
    existing = cols.portfolios.find_one({"id": portfolio_id}, projection={"_id": 0})
    if not existing:
        return None

    updated = dict(existing)
    if payload.total_silver_holding is not None:
        updated["totalSilverHolding"] = float(payload.total_silver_holding)
    if payload.total_invested is not None:
        updated["totalInvested"] = float(payload.total_invested)
    if payload.current_value is not None:
        updated["currentValue"] = float(payload.current_value)
    if payload.current_silver_price is not None:
        updated["currentSilverPrice"] = float(payload.current_silver_price)
    if payload.holdings is not None:
        updated["holdings"] = payload.holdings
    if payload.performance is not None:
        updated["performance"] = payload.performance.model_dump()
    updated.update(
        derive_metrics(updated["totalSilverHolding"], updated["totalInvested"], updated["currentValue"])
    )
    now = utc_now()
    updated["lastUpdated"] = now
    updated["updatedAt"] = now

    _save_with_audit(state, existing, updated, "PORTFOLIO_UPDATED", f"Portfolio {portfolio_id} updated")
    return _with_users(state, [updated])[0]


# PUBLIC_INTERFACE
def delete_portfolio(state: AppState, portfolio_id: str) -> bool:
    res = state.mongo.collections().portfolios.delete_one({"id": portfolio_id})
    return res.deleted_count > 0


# PUBLIC_INTERFACE
def sync_with_transactions(state: AppState, portfolio_id: str) -> Optional[Tuple[PortfolioOut, int]]:
    """
    Rebuild holdings from the owner's COMPLETED transactions in creation order.

    BUY adds quantity and amount, SELL subtracts both; the value uses the stored currentSilverPrice.
    Returns (portfolio, transaction_count) or None if the portfolio does not exist.
    """
    cols = state.mongo.collections()
    existing = cols.portfolios.find_one({"id": portfolio_id}, projection={"_id": 0})
    if not existing:
        return None

    txns = transactions_service.completed_for_user(state, existing["userId"])
    holding = 0.0
    invested = 0.0
    holdings: List[Dict[str, Any]] = []
    for t in txns:
        sign = 1.0 if t["type"] == TransactionType.BUY.value else -1.0
        holding += sign * float(t.get("silverQuantity") or 0.0)
        invested += sign * float(t.get("amount") or 0.0)
        holdings.append(
            {
                "type": t["type"],
                "quantity": t.get("silverQuantity"),
                "price": t.get("silverPrice"),
                "amount": t.get("amount"),
                "date": t["createdAt"],
                "transactionId": t["id"],
            }
        )

    updated = dict(existing)
    updated["totalSilverHolding"] = holding
    updated["totalInvested"] = invested
    updated["currentValue"] = holding * float(existing.get("currentSilverPrice") or 0.0)
    updated["holdings"] = holdings
    updated.update(derive_metrics(holding, invested, updated["currentValue"]))
    now = utc_now()
    updated["lastUpdated"] = now
    updated["updatedAt"] = now

    _save_with_audit(
        state, existing, updated, "PORTFOLIO_SYNCED", f"Portfolio {portfolio_id} synced with {len(txns)} transactions"
    )
    logger.info("Synced portfolio ID: %s with %d transactions", portfolio_id, len(txns))
    return _with_users(state, [updated])[0], len(txns)


# PUBLIC_INTERFACE
def get_stats(state: AppState) -> PortfolioStats:
    cols = state.mongo.collections()
    docs = list(cols.portfolios.find({}, projection={"_id": 0}))
    count = len(docs)
    total_value = sum(float(d.get("currentValue") or 0.0) for d in docs)
    total_invested = sum(float(d.get("totalInvested") or 0.0) for d in docs)
    total_profit = sum(float(d.get("totalProfit") or 0.0) for d in docs)

    by_day: "OrderedDict[Any, Dict[str, Any]]" = OrderedDict()
    for d in sorted(docs, key=lambda x: x["lastUpdated"]):
        day = d["lastUpdated"].date()
        bucket = by_day.setdefault(day, {"date": day, "total_value": 0.0, "count": 0})
        bucket["total_value"] += float(d.get("currentValue") or 0.0)
        bucket["count"] += 1

    top = sorted(docs, key=lambda x: float(x.get("profitPercentage") or 0.0), reverse=True)[:5]
    recent = sorted(docs, key=lambda x: x["lastUpdated"], reverse=True)[:5]
    return PortfolioStats(
        total_portfolios=count,
        total_silver_holding=sum(float(d.get("totalSilverHolding") or 0.0) for d in docs),
        total_portfolio_value=total_value,
        total_invested=total_invested,
        total_profit=total_profit,
        overall_profit_percentage=(total_profit / total_invested * 100.0) if total_invested > 0 else 0.0,
        average_silver_price=(sum(float(d.get("currentSilverPrice") or 0.0) for d in docs) / count) if count else 0.0,
        average_portfolio_value=(total_value / count) if count else 0.0,
        portfolio_value_by_day=[DailyValue(**b) for b in by_day.values()],
        top_performers=_with_users(state, top),
        recent_portfolios=_with_users(state, recent),
    )


def _bucket_label(value: float) -> str:
    for label, upper in VALUE_RANGES:
        if upper is None or value <= upper:
            return label
    return VALUE_RANGES[-1][0]


# PUBLIC_INTERFACE
def get_analytics(
    state: AppState,
    period: str = "30d",
    min_value: Optional[float] = None,
    max_value: Optional[float] = None,
) -> PortfolioAnalytics:
    """Portfolios updated within the period: daily chart, value ranges and profit distribution."""
    now = utc_now()
    start = now - timedelta(days=PERIOD_DAYS.get(period, 30))
    q: Dict[str, Any] = {"lastUpdated": {"$gte": start}}
    _value_range(q, min_value, max_value)
    docs = list(state.mongo.collections().portfolios.find(q, projection={"_id": 0}).sort("lastUpdated", 1))

    daily: "OrderedDict[Any, Dict[str, Any]]" = OrderedDict()
    for d in docs:
        day = d["lastUpdated"].date()
        bucket = daily.setdefault(day, {"date": day, "total_value": 0.0, "total_profit": 0.0, "pct_sum": 0.0, "count": 0})
        bucket["total_value"] += float(d.get("currentValue") or 0.0)
        bucket["total_profit"] += float(d.get("totalProfit") or 0.0)
        bucket["pct_sum"] += float(d.get("profitPercentage") or 0.0)
        bucket["count"] += 1

    chart = [
        ChartPoint(
            date=b["date"],
            total_value=b["total_value"],
            total_profit=b["total_profit"],
            avg_profit_percentage=b["pct_sum"] / b["count"],
            count=b["count"],
        )
        for b in daily.values()
    ]

    ranges = {label: 0 for label, _ in VALUE_RANGES}
    for d in docs:
        ranges[_bucket_label(float(d.get("currentValue") or 0.0))] += 1

    profits = [float(d.get("totalProfit") or 0.0) for d in docs]
    pcts = [float(d.get("profitPercentage") or 0.0) for d in docs]
    return PortfolioAnalytics(
        period=period if period in PERIOD_DAYS else "30d",
        start_date=start,
        end_date=now,
        total_portfolios=len(docs),
        total_value=sum(float(d.get("currentValue") or 0.0) for d in docs),
        total_profit=sum(profits),
        avg_profit_percentage=(sum(pcts) / len(pcts)) if pcts else 0.0,
        chart_data=chart,
        value_ranges=ranges,
        profit_distribution=ProfitDistribution(
            profitable=sum(1 for p in profits if p > 0),
            breakeven=sum(1 for p in profits if p == 0),
            loss=sum(1 for p in profits if p < 0),
        ),
    )
