from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, List, Optional

from pydantic import Field

from silverlining.api.schemas.common import ApiModel
from silverlining.api.schemas.users import UserSummary


class Performance(ApiModel):
    """Period returns in percent."""

    daily: float = 0.0
    weekly: float = 0.0
    monthly: float = 0.0
    yearly: float = 0.0


class PortfolioCreate(ApiModel):
    """Request body for opening a user's portfolio."""

    user_id: str
    total_silver_holding: float = Field(..., ge=0, description="Silver held, in grams.")
    total_invested: float = Field(..., ge=0)
    current_value: float = Field(..., ge=0)
    current_silver_price: float = Field(..., ge=0)
    holdings: List[Dict[str, Any]] = Field(default_factory=list)
    performance: Optional[Performance] = None


class PortfolioUpdate(ApiModel):
    """Partial update; derived profit fields are recomputed from the result."""

    total_silver_holding: Optional[float] = Field(default=None, ge=0)
    total_invested: Optional[float] = Field(default=None, ge=0)
    current_value: Optional[float] = Field(default=None, ge=0)
    current_silver_price: Optional[float] = Field(default=None, ge=0)
    holdings: Optional[List[Dict[str, Any]]] = None
    performance: Optional[Performance] = None


class PortfolioOut(ApiModel):
    id: str
    user_id: str
    total_silver_holding: float
    total_invested: float
    current_value: float
    total_profit: float
    profit_percentage: float
    average_buy_price: float
    current_silver_price: float
    last_updated: datetime
    holdings: List[Dict[str, Any]] = Field(default_factory=list)
    performance: Performance = Field(default_factory=Performance)
    created_at: datetime
    updated_at: datetime
    user: Optional[UserSummary] = None


class DailyValue(ApiModel):
    date: date
    total_value: float
    count: int


class PortfolioStats(ApiModel):
    total_portfolios: int
    total_silver_holding: float
    total_portfolio_value: float
    total_invested: float
    total_profit: float
    overall_profit_percentage: float
    average_silver_price: float
    average_portfolio_value: float
    portfolio_value_by_day: List[DailyValue]
    top_performers: List[PortfolioOut]
    recent_portfolios: List[PortfolioOut]


class ChartPoint(ApiModel):
    date: date
    total_value: float
    total_profit: float
    avg_profit_percentage: float
    count: int


class ProfitDistribution(ApiModel):
    profitable: int
    breakeven: int
    loss: int


class PortfolioAnalytics(ApiModel):
    period: str
    start_date: datetime
    end_date: datetime
    total_portfolios: int
    total_value: float
    total_profit: float
    avg_profit_percentage: float
    chart_data: List[ChartPoint]
    # Keys are the bucket labels ("0-10k", ...), kept verbatim on the wire.
    value_ranges: Dict[str, int]
    profit_distribution: ProfitDistribution
