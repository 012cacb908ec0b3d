"""Auth module: session tokens and principal resolution."""

from app.auth.dependencies import get_current_principal, require_principal
from app.auth.session_token import (
    SESSION_COOKIE,
    create_session_token,
    decode_session_token,
)

__all__ = [
    "SESSION_COOKIE",
    "create_session_token",
    "decode_session_token",
    "get_current_principal",
    "require_principal",
]
