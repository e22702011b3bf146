from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import Field

from silverlining.api.schemas.common import ApiModel, Envelope


class ReportType(str, Enum):
    USER_ACTIVITY = "user_activity"
    TRANSACTION_SUMMARY = "transaction_summary"
    FINANCIAL_REPORT = "financial_report"
    KYC_REPORT = "kyc_report"
    PORTFOLIO_REPORT = "portfolio_report"


class ReportTypeInfo(ApiModel):
    id: ReportType
    name: str
    description: str
    parameters: List[str] = Field(default_factory=lambda: ["startDate", "endDate"])


class GenerateReportRequest(ApiModel):
    type: ReportType
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    format: str = Field("json", description="Output format; only json is produced.")


class GeneratedReportResponse(Envelope[Dict[str, Any]]):
    format: str = "json"
