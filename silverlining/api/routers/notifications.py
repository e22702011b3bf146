from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status

from silverlining.api.deps import app_state, get_current_user, require_admin
from silverlining.api.schemas.common import Envelope, ErrorResponse, NotificationType, make_pagination
from silverlining.api.schemas.notifications import (
    NotificationCreate,
    NotificationListResponse,
    NotificationOut,
    NotificationStats,
    SystemNotificationCreate,
    TemplateNotificationRequest,
)
from silverlining.api.services import notifications_service
from silverlining.api.services.errors import NotFoundError
from silverlining.api.state import AppState

router = APIRouter(prefix="/api/notifications", tags=["Notifications"], dependencies=[Depends(get_current_user)])

_NOT_FOUND = "Notification not found"


@router.get(
    "",
    response_model=NotificationListResponse,
    summary="List my notifications",
    description="The caller's notifications, newest first, with their overall unread count.",
    operation_id="list_my_notifications",
)
def list_notifications(
    state: AppState = Depends(app_state),
    user: dict = Depends(get_current_user),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=500),
    unread_only: bool = Query(False, alias="unreadOnly"),
    notification_type: Optional[NotificationType] = Query(None, alias="type"),
) -> NotificationListResponse:
    items, total, unread = notifications_service.list_user_notifications(
        state, user["id"], page=page, limit=limit, unread_only=unread_only, type=notification_type
    )
    return NotificationListResponse(data=items, pagination=make_pagination(page, limit, total), unread_count=unread)


@router.get(
    "/all",
    response_model=Envelope[List[NotificationOut]],
    summary="List all notifications",
    description="Admin view across every user.",
    operation_id="list_all_notifications",
    dependencies=[Depends(require_admin)],
)
def list_all_notifications(
    state: AppState = Depends(app_state),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    unread_only: bool = Query(False, alias="unreadOnly"),
    notification_type: Optional[NotificationType] = Query(None, alias="type"),
    user_id: Optional[str] = Query(None, alias="userId"),
) -> Envelope[List[NotificationOut]]:
    items, total = notifications_service.list_all_notifications(
        state, page=page, limit=limit, unread_only=unread_only, type=notification_type, user_id=user_id
    )
    return Envelope(data=items, pagination=make_pagination(page, limit, total))


@router.get(
    "/stats",
    response_model=Envelope[NotificationStats],
    summary="My notification statistics",
    operation_id="notification_stats",
)
def notification_stats(
    state: AppState = Depends(app_state), user: dict = Depends(get_current_user)
) -> Envelope[NotificationStats]:
    return Envelope(data=notifications_service.get_stats(state, user["id"]))


@router.put(
    "/mark-all-read",
    response_model=Envelope[dict],
    summary="Mark all my notifications read",
    operation_id="mark_all_notifications_read",
)
def mark_all_read(state: AppState = Depends(app_state), user: dict = Depends(get_current_user)) -> Envelope[dict]:
    count = notifications_service.mark_all_as_read(state, user["id"])
    return Envelope(data={"count": count}, message=f"{count} notifications marked as read")


@router.put(
    "/{notification_id}/read",
    response_model=Envelope[NotificationOut],
    responses={404: {"model": ErrorResponse}},
    summary="Mark a notification read",
    operation_id="mark_notification_read",
)
def mark_read(
    notification_id: str = Path(..., description="Notification id"),
    state: AppState = Depends(app_state),
    user: dict = Depends(get_current_user),
) -> Envelope[NotificationOut]:
    notification = notifications_service.mark_as_read(state, notification_id, user["id"])
    if not notification:
        raise HTTPException(status_code=404, detail=_NOT_FOUND)
    return Envelope(data=notification, message="Notification marked as read")


@router.delete(
    "/{notification_id}",
    response_model=Envelope[None],
    responses={404: {"model": ErrorResponse}},
    summary="Delete a notification",
    operation_id="delete_notification",
)
def delete_notification(
    notification_id: str = Path(..., description="Notification id"),
    state: AppState = Depends(app_state),
    user: dict = Depends(get_current_user),
) -> Envelope[None]:
    if not notifications_service.delete_notification(state, notification_id, user["id"]):
        raise HTTPException(status_code=404, detail=_NOT_FOUND)
    return Envelope(message="Notification deleted successfully")


@router.post(
    "",
    response_model=Envelope[NotificationOut],
    status_code=status.HTTP_201_CREATED,
    responses={404: {"model": ErrorResponse}},
    summary="Create notification",
    operation_id="create_notification",
)
def create_notification(payload: NotificationCreate, state: AppState = Depends(app_state)) -> Envelope[NotificationOut]:
    try:
        notification = notifications_service.create_notification(
            state, payload.user_id, payload.title, payload.message, payload.type, payload.metadata
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return Envelope(data=notification, message="Notification created successfully")


@router.post(
    "/template/{template_id}",
    response_model=Envelope[NotificationOut],
    status_code=status.HTTP_201_CREATED,
    responses={404: {"model": ErrorResponse}},
    summary="Send template notification",
    description="Render a named template with {{variable}} substitution and send it to a user.",
    operation_id="send_template_notification",
)
def send_template(
    payload: TemplateNotificationRequest,
    template_id: str = Path(..., description="Template id, e.g. user-registered"),
    state: AppState = Depends(app_state),
) -> Envelope[NotificationOut]:
    try:
        notification = notifications_service.send_template_notification(
            state, payload.user_id, template_id, payload.variables
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return Envelope(data=notification, message="Template notification sent successfully")


@router.post(
    "/system",
    response_model=Envelope[List[NotificationOut]],
    status_code=status.HTTP_201_CREATED,
    summary="Send system notification",
    description="Fan a notification out to every admin user.",
    operation_id="send_system_notification",
)
def send_system(
    payload: SystemNotificationCreate, state: AppState = Depends(app_state)
) -> Envelope[List[NotificationOut]]:
    created = notifications_service.create_system_notification(
        state, payload.title, payload.message, payload.type, payload.metadata
    )
    return Envelope(data=created, message=f"System notification sent to {len(created)} admins")
