from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from fastapi import APIRouter, Depends, Query

from silverlining.api.deps import app_state
from silverlining.api.schemas.common import Envelope
from silverlining.api.schemas.reports import GenerateReportRequest, GeneratedReportResponse, ReportType, ReportTypeInfo
from silverlining.api.services import reports_service
from silverlining.api.state import AppState

router = APIRouter(prefix="/api/reports", tags=["Reports"])

_PERIOD_NOTE = "When both startDate and endDate are given they bound the records' createdAt."


def _period(
    start_date: Optional[datetime] = Query(None, alias="startDate", description="ISO start of the period."),
    end_date: Optional[datetime] = Query(None, alias="endDate", description="ISO end of the period."),
) -> Tuple[Optional[datetime], Optional[datetime]]:
    return start_date, end_date


def _run(state: AppState, report_type: ReportType, period: Tuple[Optional[datetime], Optional[datetime]]) -> Envelope[Dict[str, Any]]:
    return Envelope(data=reports_service.generate_report(state, report_type, *period))


@router.get(
    "/types",
    response_model=Envelope[List[ReportTypeInfo]],
    summary="Report types",
    operation_id="list_report_types",
)
def report_types() -> Envelope[List[ReportTypeInfo]]:
    return Envelope(data=reports_service.REPORT_TYPES)


@router.get(
    "/user-activity",
    response_model=Envelope[Dict[str, Any]],
    summary="User activity report",
    description=_PERIOD_NOTE,
    operation_id="user_activity_report",
)
def user_activity(state: AppState = Depends(app_state), period=Depends(_period)) -> Envelope[Dict[str, Any]]:
    return _run(state, ReportType.USER_ACTIVITY, period)


@router.get(
    "/transaction-summary",
    response_model=Envelope[Dict[str, Any]],
    summary="Transaction summary report",
    description=_PERIOD_NOTE,
    operation_id="transaction_summary_report",
)
def transaction_summary(state: AppState = Depends(app_state), period=Depends(_period)) -> Envelope[Dict[str, Any]]:
    return _run(state, ReportType.TRANSACTION_SUMMARY, period)


@router.get(
    "/financial",
    response_model=Envelope[Dict[str, Any]],
    summary="Financial report",
    description=_PERIOD_NOTE + " Revenue is grouped by calendar month (YYYY-MM).",
    operation_id="financial_report",
)
def financial(state: AppState = Depends(app_state), period=Depends(_period)) -> Envelope[Dict[str, Any]]:
    return _run(state, ReportType.FINANCIAL_REPORT, period)


@router.get(
    "/kyc",
    response_model=Envelope[Dict[str, Any]],
    summary="KYC report",
    description=_PERIOD_NOTE,
    operation_id="kyc_report",
)
def kyc(state: AppState = Depends(app_state), period=Depends(_period)) -> Envelope[Dict[str, Any]]:
    return _run(state, ReportType.KYC_REPORT, period)


@router.get(
    "/portfolio",
    response_model=Envelope[Dict[str, Any]],
    summary="Portfolio report",
    description=_PERIOD_NOTE,
    operation_id="portfolio_report",
)
def portfolio(state: AppState = Depends(app_state), period=Depends(_period)) -> Envelope[Dict[str, Any]]:
    return _run(state, ReportType.PORTFOLIO_REPORT, period)


@router.post(
    "/generate",
    response_model=GeneratedReportResponse,
    summary="Generate report",
    description="Build any report type by name. Unknown types are rejected with 422.",
    operation_id="generate_report",
)
def generate(payload: GenerateReportRequest, state: AppState = Depends(app_state)) -> GeneratedReportResponse:
    report = reports_service.generate_report(state, payload.type, payload.start_date, payload.end_date)
    return GeneratedReportResponse(data=report, format=payload.format)
