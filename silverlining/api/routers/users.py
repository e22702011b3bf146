from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status

from silverlining.api.deps import app_state
from silverlining.api.schemas.common import Envelope, ErrorResponse, UserRole, UserStatus, make_pagination
from silverlining.api.schemas.users import UserCreate, UserOut, UserStats, UserUpdate
from silverlining.api.services import log_service, users_service
from silverlining.api.services.errors import ConflictError
from silverlining.api.state import AppState

router = APIRouter(prefix="/api/users", tags=["Users"])


@router.get(
    "",
    response_model=Envelope[List[UserOut]],
    summary="List users",
    description="Paginated non-admin users, newest first. Search matches name or email (case-insensitive).",
    operation_id="list_users",
)
def list_users(
    state: AppState = Depends(app_state),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=500),
    search: Optional[str] = Query(None),
    role: Optional[UserRole] = Query(None),
    user_status: Optional[UserStatus] = Query(None, alias="status"),
) -> Envelope[List[UserOut]]:
    items, total = users_service.list_users(
        state, page=page, limit=limit, search=search, role=role, status=user_status
    )
    return Envelope(data=items, pagination=make_pagination(page, limit, total))


@router.get(
    "/stats/overview",
    response_model=Envelope[UserStats],
    summary="User statistics",
    description="Totals, active users, sign-ups this month and counts by role (admins excluded).",
    operation_id="user_stats",
)
def user_stats(state: AppState = Depends(app_state)) -> Envelope[UserStats]:
    return Envelope(data=users_service.get_stats(state))


@router.get(
    "/{user_id}",
    response_model=Envelope[UserOut],
    responses={404: {"model": ErrorResponse}},
    summary="Get user",
    operation_id="get_user",
)
def get_user(user_id: str = Path(..., description="User id"), state: AppState = Depends(app_state)) -> Envelope[UserOut]:
    user = users_service.get_user(state, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return Envelope(data=user)


@router.post(
    "",
    response_model=Envelope[UserOut],
    status_code=status.HTTP_201_CREATED,
    responses={409: {"model": ErrorResponse}},
    summary="Create user",
    operation_id="create_user",
)
def create_user(payload: UserCreate, state: AppState = Depends(app_state)) -> Envelope[UserOut]:
    try:
        user = users_service.create_user(state, payload)
    except ConflictError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    log_service.log_user_action(
        state, user.id, user.email, "USER_CREATED", f"User {user.email} created", resource="user", resource_id=user.id
    )
    return Envelope(data=user, message="User created successfully")


@router.put(
    "/{user_id}",
    response_model=Envelope[UserOut],
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    summary="Update user",
    description="Partial update; a new password is re-hashed.",
    operation_id="update_user",
)
def update_user(
    payload: UserUpdate,
    user_id: str = Path(..., description="User id"),
    state: AppState = Depends(app_state),
) -> Envelope[UserOut]:
    try:
        user = users_service.update_user(state, user_id, payload)
    except ConflictError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    log_service.log_user_action(
        state,
        user.id,
        user.email,
        "USER_UPDATED",
        f"User {user.email} updated",
        {"fields": sorted(payload.model_dump(exclude_unset=True, exclude={"password"}))},
        resource="user",
        resource_id=user.id,
    )
    return Envelope(data=user, message="User updated successfully")


@router.delete(
    "/{user_id}",
    response_model=Envelope[None],
    responses={404: {"model": ErrorResponse}},
    summary="Delete user",
    description="Delete a user together with their notifications, KYC application, portfolio and transactions.",
    operation_id="delete_user",
)
def delete_user(user_id: str = Path(..., description="User id"), state: AppState = Depends(app_state)) -> Envelope[None]:
    if not users_service.delete_user(state, user_id):
        raise HTTPException(status_code=404, detail="User not found")
    log_service.log_user_action(
        state, user_id, None, "USER_DELETED", f"User {user_id} deleted", resource="user", resource_id=user_id
    )
    return Envelope(message="User deleted successfully")
