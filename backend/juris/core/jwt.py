"""Bearer tokens identifying the caller.

The engine does not authenticate users; the platform issues HS256 tokens
whose ``sub`` claim is the caller id, and the AI routes only verify them to
scope conversations and tool calls.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any

from jose import JWTError, jwt

from juris.core.config import settings


def create_access_token(subject: str | Any, expires_delta: timedelta | None = None) -> str:
    """Sign a token for ``subject`` (usually a user UUID).

    Lifetime defaults to ACCESS_TOKEN_EXPIRE_MINUTES.
    """
    issued = datetime.now(UTC)
    lifetime = expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    claims = {"sub": str(subject), "iat": issued, "exp": issued + lifetime}
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict[str, Any] | None:
    """Verified claims, or None for a bad signature, expiry or malformed token."""
    try:
        return jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
            options={"require_sub": True},
        )
    except JWTError:
        return None


def verify_token(token: str) -> str | None:
    claims = decode_access_token(token)
    return None if claims is None else claims["sub"]


__all__ = [
    "create_access_token",
    "decode_access_token",
    "verify_token",
]
