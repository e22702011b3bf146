from __future__ import annotations

from typing import Optional

from pydantic import Field

from silverlining.api.schemas.common import ApiModel
from silverlining.api.schemas.users import EMAIL_PATTERN, UserOut


class RegisterRequest(ApiModel):
    name: str = Field(..., min_length=1)
    email: str = Field(..., pattern=EMAIL_PATTERN)
    password: str = Field(..., min_length=6)
    phone: Optional[str] = None


class LoginRequest(ApiModel):
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class RefreshRequest(ApiModel):
    refresh_token: str = Field(..., min_length=1)


class TokenPair(ApiModel):
    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = "bearer"
    expires_in: int = Field(..., description="Access token lifetime in seconds.")


class AuthResult(TokenPair):
    """Login/registration result: tokens plus the authenticated user."""

    user: UserOut
