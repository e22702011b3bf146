from __future__ import annotations

import logging
from typing import Optional

from pymongo.errors import DuplicateKeyError

from silverlining.api.schemas.auth import AuthResult, LoginRequest, RegisterRequest, TokenPair
from silverlining.api.schemas.common import LogLevel, UserStatus
from silverlining.api.schemas.users import UserCreate
from silverlining.api.security import ACCESS, REFRESH, TokenError, claims_expiry, create_token, decode_token, verify_password
from silverlining.api.services import log_service, notifications_service, users_service
from silverlining.api.services.errors import AuthError
from silverlining.api.state import AppState

logger = logging.getLogger(__name__)


def _issue_tokens(state: AppState, user_doc: dict) -> AuthResult:
    access = create_token(state.config, user_doc, ACCESS)
    refresh = create_token(state.config, user_doc, REFRESH)
    return AuthResult(
        access_token=access["token"],
        refresh_token=refresh["token"],
        expires_in=state.config.jwt_access_ttl_sec,
        user=users_service.to_out(user_doc),
    )


# PUBLIC_INTERFACE
def register(state: AppState, payload: RegisterRequest, ip_address: Optional[str] = None) -> AuthResult:
    """Create a USER/ACTIVE account and sign the caller in. Raises ConflictError if the email is taken."""
    user = users_service.create_user(
        state,
        UserCreate(email=payload.email, password=payload.password, name=payload.name, phone=payload.phone),
    )
    doc = users_service.find_user_doc(state, user.id)
    assert doc is not None

    log_service.log_auth_event(
        state,
        "REGISTER",
        f"User registered: {user.email}",
        user_id=user.id,
        user_email=user.email,
        ip_address=ip_address,
    )
    notifications_service.notify_safely(state, user.id, "user-registered", {"userName": user.name})
    return _issue_tokens(state, doc)


# PUBLIC_INTERFACE
def login(
    state: AppState,
    payload: LoginRequest,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> AuthResult:
    """
    Verify credentials and issue an access/refresh token pair.

    Unknown email, wrong password and non-active accounts all raise AuthError("Invalid credentials")
    and leave an AUTH/LOGIN_FAILED entry for the user-activity monitor.
    """
    doc = users_service.find_user_doc_by_email(state, payload.email)
    if (
        not doc
        or not verify_password(payload.password, doc.get("password", ""))
        or doc.get("status", UserStatus.ACTIVE.value) != UserStatus.ACTIVE.value
    ):
        log_service.log_auth_event(
            state,
            "LOGIN_FAILED",
            f"Failed login attempt for {payload.email}",
            level=LogLevel.WARN,
            user_id=doc["id"] if doc else None,
            user_email=payload.email,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        raise AuthError("Invalid credentials")

    log_service.log_auth_event(
        state,
        "LOGIN",
        f"User logged in: {doc['email']}",
        user_id=doc["id"],
        user_email=doc["email"],
        ip_address=ip_address,
        user_agent=user_agent,
    )
    return _issue_tokens(state, doc)


def _decode_refresh(state: AppState, refresh_token: str) -> dict:
    try:
        claims = decode_token(state.config, refresh_token, REFRESH)
    except TokenError as e:
        raise AuthError(str(e)) from e

    revoked = state.mongo.collections().revoked_tokens.count_documents({"jti": claims.get("jti")}, limit=1)
    if revoked:
        raise AuthError("Token revoked")
    return claims


# PUBLIC_INTERFACE
def refresh(state: AppState, refresh_token: str) -> TokenPair:
    """Exchange a valid, non-revoked refresh token for a new access token."""
    claims = _decode_refresh(state, refresh_token)
    doc = users_service.find_user_doc(state, claims["sub"])
    if not doc or doc.get("status") != UserStatus.ACTIVE.value:
        raise AuthError("User not found")

    access = create_token(state.config, doc, ACCESS)
    return TokenPair(access_token=access["token"], expires_in=state.config.jwt_access_ttl_sec)


# PUBLIC_INTERFACE
def logout(state: AppState, refresh_token: str) -> None:
    """Revoke a refresh token until its natural expiry."""
    claims = _decode_refresh(state, refresh_token)
    try:
        state.mongo.collections().revoked_tokens.insert_one(
            {"jti": claims["jti"], "userId": claims["sub"], "expiresAt": claims_expiry(claims)}
        )
    except DuplicateKeyError:
        logger.info("Refresh token %s already revoked", claims["jti"])

    log_service.log_auth_event(
        state,
        "LOGOUT",
        f"User logged out: {claims.get('email')}",
        user_id=claims["sub"],
        user_email=claims.get("email"),
    )


# PUBLIC_INTERFACE
def user_from_access_token(state: AppState, token: str) -> dict:
    """Resolve the active user document for a bearer access token. Raises AuthError."""
    try:
        claims = decode_token(state.config, token, ACCESS)
    except TokenError as e:
        raise AuthError(str(e)) from e

    doc = users_service.find_user_doc(state, claims["sub"])
    if not doc or doc.get("status") != UserStatus.ACTIVE.value:
        raise AuthError("User not found or inactive")
    doc.pop("password", None)
    return doc
