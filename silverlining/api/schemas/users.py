from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional

from pydantic import Field

from silverlining.api.schemas.common import ApiModel, UserRole, UserStatus

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class UserCreate(ApiModel):
    """Request body for creating a user (admin)."""

    email: str = Field(..., pattern=EMAIL_PATTERN, description="Unique login email.")
    password: str = Field(..., min_length=6, description="Plain-text password; only the bcrypt hash is stored.")
    name: str = Field(..., min_length=1)
    phone: Optional[str] = Field(default=None, description="Optional unique phone number.")
    role: UserRole = UserRole.USER
    status: UserStatus = UserStatus.ACTIVE


class UserUpdate(ApiModel):
    """Request body for updating a user (partial update)."""

    email: Optional[str] = Field(default=None, pattern=EMAIL_PATTERN)
    password: Optional[str] = Field(default=None, min_length=6)
    name: Optional[str] = Field(default=None, min_length=1)
    phone: Optional[str] = None
    role: Optional[UserRole] = None
    status: Optional[UserStatus] = None


class UserOut(ApiModel):
    """A user as returned by the API; the password hash is never included."""

    id: str
    email: str
    phone: Optional[str] = None
    name: str
    role: UserRole
    status: UserStatus
    created_at: datetime
    updated_at: datetime


class UserSummary(ApiModel):
    """Owner details embedded in KYC, transaction and portfolio responses."""

    id: str
    name: str
    email: str
    phone: Optional[str] = None


class UserStats(ApiModel):
    total_users: int
    active_users: int
    new_users_this_month: int
    users_by_role: Dict[str, int]
