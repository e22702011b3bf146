from __future__ import annotations

from dataclasses import replace

import pytest

from silverlining.api.security import (
    ACCESS,
    REFRESH,
    TokenError,
    create_token,
    decode_token,
    hash_password,
    verify_password,
)


def test_hash_password_honours_rounds_and_verifies():
    hashed = hash_password("secret123", 4)
    assert hashed.startswith("$2b$04$")
    assert verify_password("secret123", hashed) is True
    assert verify_password("wrong", hashed) is False


def test_verify_password_rejects_garbage_hash():
    assert verify_password("secret123", "not-a-hash") is False


def test_tokens_are_typed(state):
    user = {"id": "u1", "email": "a@example.com", "role": "USER"}
    access = create_token(state.config, user, ACCESS)
    claims = decode_token(state.config, access["token"], ACCESS)
    assert claims["sub"] == "u1"
    assert claims["jti"] == access["jti"]

    # Refresh tokens use their own secret, so an access token never decodes as one.
    with pytest.raises(TokenError):
        decode_token(state.config, access["token"], REFRESH)


def test_expired_token_raises(state):
    expired_cfg = replace(state.config, jwt_access_ttl_sec=-10)
    token = create_token(expired_cfg, {"id": "u1", "email": "a@example.com"}, ACCESS)["token"]
    with pytest.raises(TokenError, match="Token expired"):
        decode_token(state.config, token, ACCESS)
