from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from silverlining.api.deps import app_state, client_ip, get_current_user, user_agent
from silverlining.api.schemas.common import Envelope, ErrorResponse, LogCategory, LogLevel, make_pagination
from silverlining.api.schemas.logs import LogCreate, LogOut, LogsQuery, LogStats
from silverlining.api.services import log_service
from silverlining.api.state import AppState

router = APIRouter(prefix="/api/logs", tags=["Logs"], dependencies=[Depends(get_current_user)])


def _logs_query(
    level: Optional[LogLevel] = Query(None),
    category: Optional[LogCategory] = Query(None),
    user_id: Optional[str] = Query(None, alias="userId"),
    resource: Optional[str] = Query(None),
    resource_id: Optional[str] = Query(None, alias="resourceId"),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    search: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
) -> LogsQuery:
    return LogsQuery(
        level=level,
        category=category,
        user_id=user_id,
        resource=resource,
        resource_id=resource_id,
        start_date=start_date,
        end_date=end_date,
        search=search,
        page=page,
        limit=limit,
    )


@router.get(
    "",
    response_model=Envelope[List[LogOut]],
    summary="List logs",
    description="Paginated log entries, newest first. search matches message, userEmail or action.",
    operation_id="list_logs",
)
def list_logs(
    state: AppState = Depends(app_state), filters: LogsQuery = Depends(_logs_query)
) -> Envelope[List[LogOut]]:
    items, total = log_service.list_logs(state, filters)
    return Envelope(data=items, pagination=make_pagination(filters.page, filters.limit, total))


@router.post(
    "",
    response_model=Envelope[LogOut],
    status_code=status.HTTP_201_CREATED,
    responses={500: {"model": ErrorResponse}},
    summary="Write a log entry",
    description="userId/userEmail default to the caller; client IP and user agent come from the request.",
    operation_id="create_log",
)
def create_log(
    request: Request,
    payload: LogCreate,
    state: AppState = Depends(app_state),
    user: dict = Depends(get_current_user),
) -> Envelope[LogOut]:
    doc = log_service.log(
        state,
        payload.level,
        payload.category,
        payload.message,
        user_id=payload.user_id or user["id"],
        user_email=payload.user_email or user.get("email"),
        action=payload.action,
        resource=payload.resource,
        resource_id=payload.resource_id,
        ip_address=client_ip(request),
        user_agent=user_agent(request),
        metadata=payload.metadata,
    )
    if doc is None:
        raise HTTPException(status_code=500, detail="Failed to create log")
    return Envelope(data=LogOut.model_validate(doc), message="Log created successfully")


@router.get(
    "/stats",
    response_model=Envelope[LogStats],
    summary="Log statistics",
    operation_id="log_stats",
)
def log_stats(state: AppState = Depends(app_state)) -> Envelope[LogStats]:
    return Envelope(data=log_service.get_stats(state))


@router.get(
    "/audit",
    response_model=Envelope[List[LogOut]],
    summary="Audit trail",
    description="AUDIT-level entries; the level filter is ignored.",
    operation_id="list_audit_logs",
)
def audit_logs(
    state: AppState = Depends(app_state), filters: LogsQuery = Depends(_logs_query)
) -> Envelope[List[LogOut]]:
    items, total = log_service.list_logs(state, filters, audit_only=True)
    return Envelope(data=items, pagination=make_pagination(filters.page, filters.limit, total))
