"""Shared FastAPI dependencies: app state, bearer authentication and client metadata."""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from silverlining.api.schemas.common import UserRole
from silverlining.api.services import auth_service
from silverlining.api.services.errors import AuthError
from silverlining.api.state import AppState, get_state

# auto_error=False so a missing header is reported as 401 like a bad token.
bearer = HTTPBearer(auto_error=False)


# PUBLIC_INTERFACE
def app_state(request: Request) -> AppState:
    return get_state(request.app)


# PUBLIC_INTERFACE
def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
) -> dict:
    """Resolve the authenticated user document (without password) or raise 401."""
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Access token required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        return auth_service.user_from_access_token(get_state(request.app), credentials.credentials)
    except AuthError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        ) from e


# PUBLIC_INTERFACE
def get_optional_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
) -> Optional[dict]:
    """Like get_current_user, but anonymous or invalid tokens yield None."""
    if credentials is None or not credentials.credentials:
        return None
    try:
        return auth_service.user_from_access_token(get_state(request.app), credentials.credentials)
    except AuthError:
        return None


# PUBLIC_INTERFACE
def require_admin(user: dict = Depends(get_current_user)) -> dict:
    if user.get("role") != UserRole.ADMIN.value:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return user


# PUBLIC_INTERFACE
def client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


# PUBLIC_INTERFACE
def user_agent(request: Request) -> Optional[str]:
    return request.headers.get("user-agent")
