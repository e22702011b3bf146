from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict
from uuid import uuid4

from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext

from silverlining.api.config import BackendConfig
from silverlining.api.schemas.common import utc_now

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
ACCESS = "access"
REFRESH = "refresh"

pwd_ctx = CryptContext(schemes=["bcrypt"], deprecated="auto")


class TokenError(Exception):
    """Raised when a JWT cannot be decoded, is expired, or has the wrong type."""


# PUBLIC_INTERFACE
def hash_password(password: str, rounds: int = 12) -> str:
    return pwd_ctx.using(bcrypt__rounds=rounds).hash(password)


# PUBLIC_INTERFACE
def verify_password(password: str, hashed: str) -> bool:
    try:
        return pwd_ctx.verify(password, hashed)
    except (ValueError, TypeError):
        # Unrecognized or corrupt hash
        logger.warning("Password hash could not be verified")
        return False


def _secret_for(config: BackendConfig, token_type: str) -> str:
    return config.jwt_refresh_secret if token_type == REFRESH else config.jwt_secret


# PUBLIC_INTERFACE
def create_token(config: BackendConfig, user: Dict[str, Any], token_type: str) -> Dict[str, Any]:
    """
    Sign a JWT for ``user``.

    Returns {"token", "jti", "expiresAt"}; the jti lets refresh tokens be revoked on logout.
    """
    ttl = config.jwt_refresh_ttl_sec if token_type == REFRESH else config.jwt_access_ttl_sec
    now = utc_now()
    expires_at = now + timedelta(seconds=ttl)
    jti = str(uuid4())
    claims = {
        "sub": user["id"],
        "email": user["email"],
        "role": user.get("role"),
        "type": token_type,
        "jti": jti,
        "iat": int(now.timestamp()),
        "exp": int(expires_at.timestamp()),
    }
    token = jwt.encode(claims, _secret_for(config, token_type), algorithm=ALGORITHM)
    return {"token": token, "jti": jti, "expiresAt": expires_at}


# PUBLIC_INTERFACE
def decode_token(config: BackendConfig, token: str, token_type: str) -> Dict[str, Any]:
    """Verify signature, expiry and token type. Raises TokenError."""
    try:
        claims = jwt.decode(token, _secret_for(config, token_type), algorithms=[ALGORITHM])
    except ExpiredSignatureError as e:
        raise TokenError("Token expired") from e
    except JWTError as e:
        raise TokenError("Invalid token") from e

    if claims.get("type") != token_type or not claims.get("sub"):
        raise TokenError("Invalid token")
    return claims


def claims_expiry(claims: Dict[str, Any]) -> datetime:
    return datetime.fromtimestamp(int(claims["exp"]), tz=timezone.utc)
