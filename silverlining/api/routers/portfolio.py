from __future__ import annotations

from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status

from silverlining.api.deps import app_state, get_current_user
from silverlining.api.schemas.common import Envelope, ErrorResponse, make_pagination
from silverlining.api.schemas.portfolio import (
    PortfolioAnalytics,
    PortfolioCreate,
    PortfolioOut,
    PortfolioStats,
    PortfolioUpdate,
)
from silverlining.api.services import portfolio_service
from silverlining.api.services.errors import ConflictError, NotFoundError
from silverlining.api.state import AppState

router = APIRouter(prefix="/api/portfolio", tags=["Portfolio"], dependencies=[Depends(get_current_user)])

_NOT_FOUND = "Portfolio not found"


@router.get(
    "",
    response_model=Envelope[List[PortfolioOut]],
    summary="List portfolios",
    description=(
        "Paginated portfolios with owner details. search matches the owner's name or email; "
        "minValue/maxValue bound currentValue; sortBy accepts currentValue, user, profit, "
        "profitPercentage, silverHolding or a stored field name."
    ),
    operation_id="list_portfolios",
)
def list_portfolios(
    state: AppState = Depends(app_state),
    search: Optional[str] = Query(None),
    min_value: Optional[float] = Query(None, alias="minValue"),
    max_value: Optional[float] = Query(None, alias="maxValue"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=500),
    sort_by: str = Query("currentValue", alias="sortBy"),
    sort_order: Literal["asc", "desc"] = Query("desc", alias="sortOrder"),
) -> Envelope[List[PortfolioOut]]:
    items, total = portfolio_service.list_portfolios(
        state,
        search=search,
        min_value=min_value,
        max_value=max_value,
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return Envelope(data=items, pagination=make_pagination(page, limit, total))


@router.get(
    "/stats",
    response_model=Envelope[PortfolioStats],
    summary="Portfolio statistics",
    operation_id="portfolio_stats",
)
def portfolio_stats(state: AppState = Depends(app_state)) -> Envelope[PortfolioStats]:
    return Envelope(data=portfolio_service.get_stats(state))


@router.get(
    "/analytics/detailed",
    response_model=Envelope[PortfolioAnalytics],
    summary="Detailed portfolio analytics",
    description="Daily chart data, value ranges and profit distribution for portfolios updated within the period.",
    operation_id="portfolio_analytics",
)
def portfolio_analytics(
    state: AppState = Depends(app_state),
    period: Literal["7d", "30d", "90d"] = Query("30d"),
    min_value: Optional[float] = Query(None, alias="minValue"),
    max_value: Optional[float] = Query(None, alias="maxValue"),
) -> Envelope[PortfolioAnalytics]:
    return Envelope(data=portfolio_service.get_analytics(state, period, min_value, max_value))


@router.get(
    "/user/{user_id}",
    response_model=Envelope[PortfolioOut],
    responses={404: {"model": ErrorResponse}},
    summary="Get a user's portfolio",
    operation_id="get_user_portfolio",
)
def get_user_portfolio(
    user_id: str = Path(..., description="Owner user id"), state: AppState = Depends(app_state)
) -> Envelope[PortfolioOut]:
    portfolio = portfolio_service.get_user_portfolio(state, user_id)
    if not portfolio:
        raise HTTPException(status_code=404, detail=_NOT_FOUND)
    return Envelope(data=portfolio)


@router.get(
    "/{portfolio_id}",
    response_model=Envelope[PortfolioOut],
    responses={404: {"model": ErrorResponse}},
    summary="Get portfolio",
    operation_id="get_portfolio",
)
def get_portfolio(
    portfolio_id: str = Path(..., description="Portfolio id"), state: AppState = Depends(app_state)
) -> Envelope[PortfolioOut]:
    portfolio = portfolio_service.get_portfolio(state, portfolio_id)
    if not portfolio:
        raise HTTPException(status_code=404, detail=_NOT_FOUND)
    return Envelope(data=portfolio)


@router.post(
    "",
    response_model=Envelope[PortfolioOut],
    status_code=status.HTTP_201_CREATED,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    summary="Create portfolio",
    operation_id="create_portfolio",
)
def create_portfolio(payload: PortfolioCreate, state: AppState = Depends(app_state)) -> Envelope[PortfolioOut]:
    try:
        portfolio = portfolio_service.create_portfolio(state, payload)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except ConflictError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    return Envelope(data=portfolio, message="Portfolio created successfully")


@router.put(
    "/{portfolio_id}",
    response_model=Envelope[PortfolioOut],
    responses={404: {"model": ErrorResponse}},
    summary="Update portfolio",
    description="Partial update; profit, profit percentage and average buy price are recomputed.",
    operation_id="update_portfolio",
)
def update_portfolio(
    payload: PortfolioUpdate,
    portfolio_id: str = Path(..., description="Portfolio id"),
    state: AppState = Depends(app_state),
) -> Envelope[PortfolioOut]:
    portfolio = portfolio_service.update_portfolio(state, portfolio_id, payload)
    if not portfolio:
        raise HTTPException(status_code=404, detail=_NOT_FOUND)
    return Envelope(data=portfolio, message="Portfolio updated successfully")


@router.delete(
    "/{portfolio_id}",
    response_model=Envelope[None],
    responses={404: {"model": ErrorResponse}},
    summary="Delete portfolio",
    operation_id="delete_portfolio",
)
def delete_portfolio(
    portfolio_id: str = Path(..., description="Portfolio id"), state: AppState = Depends(app_state)
) -> Envelope[None]:
    if not portfolio_service.delete_portfolio(state, portfolio_id):
        raise HTTPException(status_code=404, detail=_NOT_FOUND)
    return Envelope(message="Portfolio deleted successfully")


@router.post(
    "/{portfolio_id}/sync",
    response_model=Envelope[PortfolioOut],
    responses={404: {"model": ErrorResponse}},
    summary="Sync portfolio with transactions",
    description="Rebuild holdings and invested amount from the owner's completed transactions.",
    operation_id="sync_portfolio",
)
def sync_portfolio(
    portfolio_id: str = Path(..., description="Portfolio id"), state: AppState = Depends(app_state)
) -> Envelope[PortfolioOut]:
    result = portfolio_service.sync_with_transactions(state, portfolio_id)
    if result is None:
        raise HTTPException(status_code=404, detail=_NOT_FOUND)
    portfolio, count = result
    return Envelope(data=portfolio, message=f"Portfolio synced with {count} transactions")
