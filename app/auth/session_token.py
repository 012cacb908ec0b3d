"""Signed session tokens identifying the authenticated principal.

The OAuth login flow (outside this service) issues a session token once the
GitHub user is known. Tokens are HS256 JWTs whose ``sub`` claim is the
GitHub login, carried in the ``session`` cookie or a Bearer header.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

import jwt

from app.config import Settings, get_settings

logger = logging.getLogger(__name__)

SESSION_COOKIE = "session"
TOKEN_TYPE = "session"


def create_session_token(principal: str, settings: Settings | None = None) -> str:
    """Create a signed session token for ``principal``.

    Args:
        principal: The GitHub login.
        settings: Settings to sign with; defaults to the cached settings.

    Returns:
        Encoded JWT string.
    """
    settings = settings or get_settings()
    now = datetime.now(timezone.utc)
    payload = {
        "sub": principal,
        "iat": now,
        "exp": now + timedelta(minutes=settings.SESSION_TOKEN_EXPIRE_MINUTES),
        "type": TOKEN_TYPE,
    }
    return jwt.encode(payload, settings.SESSION_SECRET_KEY, algorithm="HS256")


def decode_session_token(token: str, settings: Settings | None = None) -> str:
    """Decode and validate a session token.

    Returns:
        The principal (sub claim).

    Raises:
        ValueError: If the token is invalid, expired or of the wrong type.
    """
    settings = settings or get_settings()
    try:
        payload = jwt.decode(
            token, settings.SESSION_SECRET_KEY, algorithms=["HS256"]
        )
    except jwt.ExpiredSignatureError:
        raise ValueError("Session token has expired")
    except jwt.InvalidTokenError as e:
        raise ValueError(f"Invalid session token: {e}")

    if payload.get("type") != TOKEN_TYPE:
        raise ValueError("Token is not a session token")

    sub = payload.get("sub")
    if not sub:
        raise ValueError("Token missing subject")
    return sub
