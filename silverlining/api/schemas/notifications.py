from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import Field

from silverlining.api.schemas.common import ApiModel, Envelope, NotificationType


class NotificationCreate(ApiModel):
    """Request body for creating a notification for one user."""

    user_id: str = Field(..., description="Recipient user id.")
    title: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1)
    type: NotificationType = NotificationType.INFO
    metadata: Optional[Dict[str, Any]] = None


class SystemNotificationCreate(ApiModel):
    """Request body for a notification fanned out to every admin."""

    title: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1)
    type: NotificationType = NotificationType.INFO
    metadata: Optional[Dict[str, Any]] = None


class TemplateNotificationRequest(ApiModel):
    user_id: str
    variables: Dict[str, Any] = Field(default_factory=dict, description="Values substituted into {{name}} placeholders.")


class NotificationOut(ApiModel):
    id: str
    user_id: str
    title: str
    message: str
    type: NotificationType
    is_read: bool = False
    metadata: Optional[Dict[str, Any]] = None
    created_at: datetime


class NotificationTemplate(ApiModel):
    id: str
    name: str
    title: str
    message: str
    type: NotificationType


class NotificationStats(ApiModel):
    total: int
    unread: int
    by_type: Dict[str, int]
    recent: List[NotificationOut]


class NotificationListResponse(Envelope[List[NotificationOut]]):
    """The caller's notifications plus their overall unread count."""

    unread_count: int = 0
