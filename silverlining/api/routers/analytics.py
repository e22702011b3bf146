from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends

from silverlining.api.deps import app_state
from silverlining.api.schemas.common import Envelope
from silverlining.api.services import analytics_service
from silverlining.api.state import AppState

router = APIRouter(prefix="/api/analytics", tags=["Analytics"])


@router.get(
    "/dashboard",
    response_model=Envelope[Dict[str, Any]],
    summary="Dashboard analytics",
    description=(
        "Overview, revenue windows, user and transaction metrics, silver price trend, recent activity, "
        "six months of user/revenue history and platform health."
    ),
    operation_id="dashboard_analytics",
)
def dashboard(state: AppState = Depends(app_state)) -> Envelope[Dict[str, Any]]:
    return Envelope(data=analytics_service.dashboard(state))


@router.get(
    "/users",
    response_model=Envelope[Dict[str, Any]],
    summary="User analytics",
    operation_id="user_analytics",
)
def users(state: AppState = Depends(app_state)) -> Envelope[Dict[str, Any]]:
    return Envelope(data=analytics_service.user_analytics(state))


@router.get(
    "/transactions",
    response_model=Envelope[Dict[str, Any]],
    summary="Transaction analytics",
    operation_id="transaction_analytics",
)
def transactions(state: AppState = Depends(app_state)) -> Envelope[Dict[str, Any]]:
    return Envelope(data=analytics_service.transaction_analytics(state))


@router.get(
    "/financial",
    response_model=Envelope[Dict[str, Any]],
    summary="Financial analytics",
    description="Completed revenue by month, total holdings and the last 30 completed prices.",
    operation_id="financial_analytics",
)
def financial(state: AppState = Depends(app_state)) -> Envelope[Dict[str, Any]]:
    return Envelope(data=analytics_service.financial_analytics(state))
