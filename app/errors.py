"""HTTP-boundary exceptions for rejected generation requests.

Inside the gate and ledger, denials are plain decisions. These are raised
only by routers when turning a rejected decision into a response.
"""

from __future__ import annotations

from fastapi import HTTPException, status

from app.services.gate import LOGIN_REQUIRED, PAYMENT_REQUIRED, GateDecision


class AuthenticationRequired(HTTPException):
    """Premium requested (or account data asked for) without a session."""

    def __init__(self, detail: str = LOGIN_REQUIRED) -> None:
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class PaymentRequired(HTTPException):
    """Unpaid, unknown, mis-owned or exhausted premium request.

    Every sub-case carries the same message.
    """

    def __init__(self, detail: str = PAYMENT_REQUIRED) -> None:
        super().__init__(status_code=status.HTTP_402_PAYMENT_REQUIRED, detail=detail)


class InvalidEvidence(HTTPException):
    """Request body failed evidence validation."""

    def __init__(self, details: str | None = None) -> None:
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid evidence")
        self.details = details


def raise_for_decision(decision: GateDecision) -> None:
    """Raise the boundary exception for a rejected decision, no-op otherwise."""
    if decision.accepted:
        return
    if decision.status_code == status.HTTP_401_UNAUTHORIZED:
        raise AuthenticationRequired(decision.reason or LOGIN_REQUIRED)
    raise PaymentRequired(decision.reason or PAYMENT_REQUIRED)
