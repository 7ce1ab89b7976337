"""
Access and refresh tokens (HS256 via PyJWT).

Access tokens carry the account's `user_id`, `email` and `role`; refresh
tokens carry identity only, so a role change takes effect at the next
refresh. Every token has a `type` claim and a unique `jti`.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

import jwt

from ..constants import (ACCESS_TOKEN_TTL, CURRENT_TOKEN_VERSION,
                         JWT_ALGORITHM, REFRESH_TOKEN_TTL)
from ..utils.time import utcnow

ACCESS = "access"
REFRESH = "refresh"


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    access_jti: str
    refresh_jti: str
    access_expires_at: datetime
    refresh_expires_at: datetime


def encode_jwt_token(
    claims: dict[str, Any], secret_key: str, expires_in: int = ACCESS_TOKEN_TTL
) -> str:
    """Sign `claims` with issue, not-before, expiry, jti and version claims added."""
    now = utcnow()
    payload = {
        "jti": uuid.uuid4().hex,
        "version": CURRENT_TOKEN_VERSION,
        **claims,
        "iat": now,
        "nbf": now,
        "exp": now + timedelta(seconds=expires_in),
    }
    return jwt.encode(payload, secret_key, algorithm=JWT_ALGORITHM)


def decode_jwt_token(
    token: str, secret_key: str, expected_type: str | None = None
) -> dict[str, Any]:
    """
    Verify a token and return its claims.

    Args:
        token: Encoded JWT
        secret_key: Signing secret
        expected_type: If given, the token's `type` claim must equal it

    Raises:
        jwt.ExpiredSignatureError: The token has expired
        jwt.InvalidTokenError: Bad signature, missing claims or wrong type
    """
    payload = jwt.decode(
        token, secret_key, algorithms=[JWT_ALGORITHM], options={"require": ["exp", "iat"]}
    )
    if expected_type is not None and payload.get("type") != expected_type:
        raise jwt.InvalidTokenError(f"expected a {expected_type} token")
    return payload


def generate_token_pair(
    account_claims: dict[str, Any],
    secret_key: str,
    access_token_ttl: int = ACCESS_TOKEN_TTL,
    refresh_token_ttl: int = REFRESH_TOKEN_TTL,
) -> TokenPair:
    """
    Issue an access token and a refresh token for one login.

    Args:
        account_claims: `user_id`, `email` and `role` of the account
        secret_key: Signing secret
        access_token_ttl: Access token lifetime in seconds
        refresh_token_ttl: Refresh token lifetime in seconds
    """
    now = utcnow()
    access_jti = uuid.uuid4().hex
    refresh_jti = uuid.uuid4().hex
    identity = {
        "user_id": account_claims.get("user_id"),
        "email": account_claims.get("email"),
    }

    return TokenPair(
        access_token=encode_jwt_token(
            {**account_claims, "type": ACCESS, "jti": access_jti}, secret_key, access_token_ttl
        ),
        refresh_token=encode_jwt_token(
            {**identity, "type": REFRESH, "jti": refresh_jti}, secret_key, refresh_token_ttl
        ),
        access_jti=access_jti,
        refresh_jti=refresh_jti,
        access_expires_at=now + timedelta(seconds=access_token_ttl),
        refresh_expires_at=now + timedelta(seconds=refresh_token_ttl),
    )
