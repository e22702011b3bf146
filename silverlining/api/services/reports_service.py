"""
Report builders.

Each report is a plain dict with camelCase keys: reportType, generatedAt, period, summary, details.
When both startDate and endDate are given they bound createdAt of the report's primary records;
otherwise the report covers all records. Rates are percentages and 0 when the denominator is 0.
"""

from __future__ import annotations

import logging
from collections import Counter, OrderedDict
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from silverlining.api.schemas.common import KycStatus, TransactionStatus, UserStatus, ensure_utc, percentage, utc_now
from silverlining.api.schemas.reports import ReportType, ReportTypeInfo
from silverlining.api.state import AppState

logger = logging.getLogger(__name__)

REPORT_TYPES: List[ReportTypeInfo] = [
    ReportTypeInfo(
        id=ReportType.USER_ACTIVITY,
        name="User Activity Report",
        description="Detailed user activity and engagement metrics",
    ),
    ReportTypeInfo(
        id=ReportType.TRANSACTION_SUMMARY,
        name="Transaction Summary Report",
        description="Comprehensive transaction analysis and statistics",
    ),
    ReportTypeInfo(
        id=ReportType.FINANCIAL_REPORT,
        name="Financial Report",
        description="Financial metrics and revenue analysis",
    ),
    ReportTypeInfo(
        id=ReportType.KYC_REPORT,
        name="KYC Report",
        description="KYC application status and processing metrics",
    ),
    ReportTypeInfo(
        id=ReportType.PORTFOLIO_REPORT,
        name="Portfolio Report",
        description="Portfolio holdings and performance analysis",
    ),
]


def _created_between(start: Optional[datetime], end: Optional[datetime]) -> Dict[str, Any]:
    if start is None or end is None:
        return {}
    return {"createdAt": {"$gte": ensure_utc(start), "$lte": ensure_utc(end)}}


def _report(
    report_type: ReportType,
    start: Optional[datetime],
    end: Optional[datetime],
    summary: Dict[str, Any],
    details: Dict[str, Any],
) -> Dict[str, Any]:
    return {
        "reportType": report_type.value,
        "generatedAt": utc_now().isoformat(),
        "period": {
            "startDate": ensure_utc(start).isoformat() if start else None,
            "endDate": ensure_utc(end).isoformat() if end else None,
        },
        "summary": summary,
        "details": details,
    }


def _avg(values: List[float]) -> float:
    return sum(values) / len(values) if values else 0.0


# PUBLIC_INTERFACE
def user_activity_report(state: AppState, start: Optional[datetime] = None, end: Optional[datetime] = None) -> Dict[str, Any]:
    cols = state.mongo.collections()
    total = int(cols.users.count_documents({}))
    new_users = int(cols.users.count_documents(_created_between(start, end)))
    active = int(cols.users.count_documents({"status": UserStatus.ACTIVE.value}))

    by_role: Counter = Counter()
    by_status: Counter = Counter()
    for doc in cols.users.find({}, projection={"_id": 0, "role": 1, "status": 1}):
        by_role[doc.get("role")] += 1
        by_status[doc.get("status")] += 1

    return _report(
        ReportType.USER_ACTIVITY,
        start,
        end,
        {
            "totalUsers": total,
            "newUsers": new_users,
            "activeUsers": active,
            "userGrowth": percentage(new_users, total),
        },
        {"usersByRole": dict(by_role), "usersByStatus": dict(by_status)},
    )


# PUBLIC_INTERFACE
def transaction_summary_report(
    state: AppState, start: Optional[datetime] = None, end: Optional[datetime] = None
) -> Dict[str, Any]:
    docs = list(
        state.mongo.collections().transactions.find(
            _created_between(start, end), projection={"_id": 0, "type": 1, "status": 1, "amount": 1}
        )
    )
    completed = [float(d.get("amount") or 0.0) for d in docs if d.get("status") == TransactionStatus.COMPLETED.value]
    failed = sum(1 for d in docs if d.get("status") == TransactionStatus.FAILED.value)

    return _report(
        ReportType.TRANSACTION_SUMMARY,
        start,
        end,
        {
            "totalTransactions": len(docs),
            "successfulTransactions": len(completed),
            "failedTransactions": failed,
            "successRate": percentage(len(completed), len(docs)),
            "totalVolume": sum(completed),
            "averageTransactionValue": _avg(completed),
        },
        {
            "transactionsByType": dict(Counter(d.get("type") for d in docs)),
            "transactionsByStatus": dict(Counter(d.get("status") for d in docs)),
        },
    )


# PUBLIC_INTERFACE
def financial_report(state: AppState, start: Optional[datetime] = None, end: Optional[datetime] = None) -> Dict[str, Any]:
    cols = state.mongo.collections()
    q = {**_created_between(start, end), "status": TransactionStatus.COMPLETED.value}
    txns = list(cols.transactions.find(q, projection={"_id": 0, "amount": 1, "silverPrice": 1, "createdAt": 1}).sort("createdAt", 1))

    revenue_by_month: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()
    for t in txns:
        month = t["createdAt"].strftime("%Y-%m")
        bucket = revenue_by_month.setdefault(month, {"month": month, "revenue": 0.0, "count": 0})
        bucket["revenue"] += float(t.get("amount") or 0.0)
        bucket["count"] += 1

    portfolios = list(cols.portfolios.find({}, projection={"_id": 0, "totalSilverHolding": 1, "currentValue": 1}))
    total_holding = sum(float(p.get("totalSilverHolding") or 0.0) for p in portfolios)
    avg_price = _avg([float(t.get("silverPrice") or 0.0) for t in txns])

    return _report(
        ReportType.FINANCIAL_REPORT,
        start,
        end,
        {
            "totalRevenue": sum(float(t.get("amount") or 0.0) for t in txns),
            "totalSilverHolding": total_holding,
            "averageSilverPrice": avg_price,
            "totalPortfolioValue": sum(float(p.get("currentValue") or 0.0) for p in portfolios),
        },
        {
            "revenueByMonth": list(revenue_by_month.values()),
            "silverMetrics": {"totalHolding": total_holding, "averagePrice": avg_price},
        },
    )


# PUBLIC_INTERFACE
def kyc_report(state: AppState, start: Optional[datetime] = None, end: Optional[datetime] = None) -> Dict[str, Any]:
    by_status: Counter = Counter(
        d.get("status")
        for d in state.mongo.collections().kyc_applications.find(
            _created_between(start, end), projection={"_id": 0, "status": 1}
        )
    )
    total = sum(by_status.values())
    approved = by_status.get(KycStatus.APPROVED.value, 0)
    return _report(
        ReportType.KYC_REPORT,
        start,
        end,
        {
            "totalApplications": total,
            "pendingApplications": by_status.get(KycStatus.PENDING.value, 0),
            "approvedApplications": approved,
            "rejectedApplications": by_status.get(KycStatus.REJECTED.value, 0),
            "approvalRate": percentage(approved, total),
        },
        {"applicationsByStatus": dict(by_status)},
    )


# PUBLIC_INTERFACE
def portfolio_report(state: AppState, start: Optional[datetime] = None, end: Optional[datetime] = None) -> Dict[str, Any]:
    docs = list(
        state.mongo.collections().portfolios.find(
            _created_between(start, end),
            projection={"_id": 0, "totalSilverHolding": 1, "currentValue": 1, "currentSilverPrice": 1},
        )
    )
    total_holding = sum(float(d.get("totalSilverHolding") or 0.0) for d in docs)
    values = [float(d.get("currentValue") or 0.0) for d in docs]
    avg_price = _avg([float(d.get("currentSilverPrice") or 0.0) for d in docs])
    return _report(
        ReportType.PORTFOLIO_REPORT,
        start,
        end,
        {
            "totalPortfolios": len(docs),
            "totalSilverHolding": total_holding,
            "totalPortfolioValue": sum(values),
            "averageSilverPrice": avg_price,
            "averagePortfolioValue": _avg(values),
        },
        {
            "silverMetrics": {"totalHolding": total_holding, "averagePrice": avg_price},
            "portfolioMetrics": {"totalValue": sum(values), "averageValue": _avg(values)},
        },
    )


_BUILDERS: Dict[ReportType, Callable[..., Dict[str, Any]]] = {
    ReportType.USER_ACTIVITY: user_activity_report,
    ReportType.TRANSACTION_SUMMARY: transaction_summary_report,
    ReportType.FINANCIAL_REPORT: financial_report,
    ReportType.KYC_REPORT: kyc_report,
    ReportType.PORTFOLIO_REPORT: portfolio_report,
}


# PUBLIC_INTERFACE
def generate_report(
    state: AppState, report_type: ReportType, start: Optional[datetime] = None, end: Optional[datetime] = None
) -> Dict[str, Any]:
    """Dispatch to the builder for ``report_type``."""
    report = _BUILDERS[ReportType(report_type)](state, start, end)
    logger.info("Report generated: %s", report_type.value)
    return report
