"""FastAPI dependencies for principal resolution and app-scoped services.

Services (ledger, gate, job store, pipeline) are created in the application
lifespan and hung off ``app.state``; these dependencies hand them to routes.
"""

from __future__ import annotations

import logging

from fastapi import Depends, Request

from app.auth.session_token import SESSION_COOKIE, decode_session_token
from app.config import Settings
from app.errors import AuthenticationRequired
from app.services.gate import AuthorizationGate
from app.services.jobs import JobStore
from app.services.ledger import CreditLedger
from app.services.pipeline import GenerationPipeline

logger = logging.getLogger(__name__)


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_ledger(request: Request) -> CreditLedger:
    return request.app.state.ledger


def get_gate(request: Request) -> AuthorizationGate:
    return request.app.state.gate


def get_jobs(request: Request) -> JobStore:
    return request.app.state.jobs


def get_pipeline(request: Request) -> GenerationPipeline:
    return request.app.state.pipeline


def _token_from_request(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header[len("Bearer "):]
    return request.cookies.get(SESSION_COOKIE)


async def get_current_principal(
    request: Request,
    settings: Settings = Depends(get_app_settings),
) -> str | None:
    """Resolve the calling principal from the session token.

    Anonymous callers (no token, or an invalid/expired one) resolve to None,
    which keeps the standard tier open to them.
    """
    token = _token_from_request(request)
    if not token:
        return None

    try:
        return decode_session_token(token, settings)
    except ValueError as e:
        logger.debug(f"Ignoring session token: {e}")
        return None


async def require_principal(
    principal: str | None = Depends(get_current_principal),
) -> str:
    """Like get_current_principal, but 401 for anonymous callers."""
    if principal is None:
        raise AuthenticationRequired("Authentication required")
    return principal
