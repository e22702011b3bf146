from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, status

from silverlining.api.deps import app_state, client_ip, user_agent
from silverlining.api.schemas.auth import AuthResult, LoginRequest, RefreshRequest, RegisterRequest, TokenPair
from silverlining.api.schemas.common import Envelope, ErrorResponse
from silverlining.api.services import auth_service
from silverlining.api.services.errors import AuthError, ConflictError
from silverlining.api.state import AppState

router = APIRouter(prefix="/api/auth", tags=["Auth"])


def _unauthorized(e: AuthError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))


@router.post(
    "/register",
    response_model=Envelope[AuthResult],
    status_code=status.HTTP_201_CREATED,
    responses={409: {"model": ErrorResponse}},
    summary="Register",
    description="Create a USER account and return an access/refresh token pair.",
    operation_id="register",
)
def register(
    request: Request, payload: RegisterRequest, state: AppState = Depends(app_state)
) -> Envelope[AuthResult]:
    try:
        result = auth_service.register(state, payload, client_ip(request))
    except ConflictError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    return Envelope(data=result, message="User registered successfully")


@router.post(
    "/login",
    response_model=Envelope[AuthResult],
    responses={401: {"model": ErrorResponse}},
    summary="Login",
    description="Exchange email and password for an access/refresh token pair.",
    operation_id="login",
)
def login(request: Request, payload: LoginRequest, state: AppState = Depends(app_state)) -> Envelope[AuthResult]:
    try:
        result = auth_service.login(state, payload, client_ip(request), user_agent(request))
    except AuthError as e:
        raise _unauthorized(e) from e
    return Envelope(data=result, message="Login successful")


@router.post(
    "/refresh",
    response_model=Envelope[TokenPair],
    responses={401: {"model": ErrorResponse}},
    summary="Refresh access token",
    description="Issue a new access token from a valid, unrevoked refresh token.",
    operation_id="refresh_token",
)
def refresh(payload: RefreshRequest, state: AppState = Depends(app_state)) -> Envelope[TokenPair]:
    try:
        pair = auth_service.refresh(state, payload.refresh_token)
    except AuthError as e:
        raise _unauthorized(e) from e
    return Envelope(data=pair, message="Token refreshed successfully")


@router.post(
    "/logout",
    response_model=Envelope[None],
    responses={401: {"model": ErrorResponse}},
    summary="Logout",
    description="Revoke a refresh token so it can no longer be used.",
    operation_id="logout",
)
def logout(payload: RefreshRequest, state: AppState = Depends(app_state)) -> Envelope[None]:
    try:
        auth_service.logout(state, payload.refresh_token)
    except AuthError as e:
        raise _unauthorized(e) from e
    return Envelope(message="Logged out successfully")
