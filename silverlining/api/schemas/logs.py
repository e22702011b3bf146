from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import Field

from silverlining.api.schemas.common import ApiModel, LogCategory, LogLevel


class LogCreate(ApiModel):
    """Request body for writing a log entry through the API."""

    level: LogLevel = Field(..., description="DEBUG|INFO|WARN|ERROR|AUDIT")
    category: LogCategory = Field(..., description="Functional area the entry belongs to.")
    message: str = Field(..., min_length=1)
    action: Optional[str] = None
    resource: Optional[str] = None
    resource_id: Optional[str] = None
    user_id: Optional[str] = Field(default=None, description="Defaults to the authenticated caller.")
    user_email: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class LogOut(ApiModel):
    """A stored log row."""

    id: str
    level: LogLevel
    category: LogCategory
    message: str
    user_id: Optional[str] = None
    user_email: Optional[str] = None
    action: Optional[str] = None
    resource: Optional[str] = None
    resource_id: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime


class LogsQuery(ApiModel):
    """Filter/pagination model for listing logs (used by router query params)."""

    level: Optional[LogLevel] = None
    category: Optional[LogCategory] = None
    user_id: Optional[str] = None
    resource: Optional[str] = None
    resource_id: Optional[str] = None
    start_date: Optional[datetime] = Field(default=None, description="Start time (inclusive) filter.")
    end_date: Optional[datetime] = Field(default=None, description="End time (inclusive) filter.")
    search: Optional[str] = Field(default=None, description="Case-insensitive match on message, userEmail or action.")
    page: int = Field(1, ge=1)
    limit: int = Field(50, ge=1, le=500)


class LogStats(ApiModel):
    total_logs: int
    logs_by_level: Dict[str, int]
    logs_by_category: Dict[str, int]
    recent_logs: List[LogOut]
    recent_errors: int = Field(..., description="ERROR entries in the last 24 hours.")
    recent_audit_logs: int = Field(..., description="AUDIT entries in the last 24 hours.")
