"""Authorization gate that decides standard vs. premium for each generation request.

The decision is an explicit state machine so every fail-closed default is
visible in one place:

    NO_PREMIUM_REQUESTED -> FREE_RUN
    PREMIUM_REQUESTED    -> REJECTED(401) | PREMIUM_RUN (fast path) | SLOW_PATH_VERIFY
    SLOW_PATH_VERIFY     -> REJECTED(402) | PREMIUM_RUN

The fast path only needs a stored balance. The slow path calls the payment
verifier once, requires the session to be paid *and* owned by the caller,
then awards and deducts through the ledger.

Denials are returned as decisions, never raised. Only ledger outages
propagate, as LedgerUnavailable.

Tests:
    - tests/unit/test_gate.py
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from app.models import CreditSource
from app.services.billing import PaymentVerifier
from app.services.ledger import CreditLedger

logger = logging.getLogger(__name__)

PAYMENT_SESSION_FIELD = "_payment_session_id"
PREMIUM_FLAG_FIELD = "_premium"
LEGACY_SESSION_FIELD = "_stripe_session_id"

# Request-internal fields that must never reach validation or the pipeline
CONTROL_FIELDS = (PAYMENT_SESSION_FIELD, PREMIUM_FLAG_FIELD, LEGACY_SESSION_FIELD)

LOGIN_REQUIRED = "Login required for premium generation"
PAYMENT_REQUIRED = "Payment required or no premium credits remaining"


class GateState(str, Enum):
    """States of the authorization decision."""

    NO_PREMIUM_REQUESTED = "no_premium_requested"
    PREMIUM_REQUESTED = "premium_requested"
    SLOW_PATH_VERIFY = "slow_path_verify"
    FREE_RUN = "free_run"
    PREMIUM_RUN = "premium_run"
    REJECTED = "rejected"


TERMINAL_STATES = frozenset({GateState.FREE_RUN, GateState.PREMIUM_RUN, GateState.REJECTED})


@dataclass
class GateRequest:
    """Control fields pulled out of a raw payload."""

    payload: dict[str, Any]
    principal: str | None
    session_ref: str | None
    premium_flag: bool

    @property
    def premium_requested(self) -> bool:
        return self.session_ref is not None or self.premium_flag


@dataclass
class GateDecision:
    """Outcome of the gate.

    Attributes:
        state: Terminal state reached.
        payload: Payload with control fields stripped (empty on rejection).
        premium: Whether the pipeline should run in premium mode.
        credits_remaining: Balance after the deduct, premium runs only.
        status_code: HTTP status for rejections.
        reason: Caller-visible rejection message.
        detail: Internal reason, for logs only.
        path: Transitions taken, for logs and tests.
    """

    state: GateState
    payload: dict[str, Any] = field(default_factory=dict)
    premium: bool = False
    credits_remaining: int | None = None
    status_code: int | None = None
    reason: str | None = None
    detail: str | None = None
    path: list[GateState] = field(default_factory=list)

    @property
    def accepted(self) -> bool:
        return self.state in (GateState.FREE_RUN, GateState.PREMIUM_RUN)

    @property
    def job_kind(self) -> str:
        return "generate-premium" if self.premium else "generate"


def strip_control_fields(payload: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of ``payload`` without payment/premium control fields."""
    return {k: v for k, v in payload.items() if k not in CONTROL_FIELDS}


def parse_request(payload: dict[str, Any], principal: str | None) -> GateRequest:
    """Read control fields from a raw payload.

    A session reference counts only as a non-empty string; the premium flag
    only as JSON ``true``.
    """
    session_ref = payload.get(PAYMENT_SESSION_FIELD)
    if not isinstance(session_ref, str) or not session_ref:
        session_ref = payload.get(LEGACY_SESSION_FIELD)
    if not isinstance(session_ref, str) or not session_ref:
        session_ref = None

    return GateRequest(
        payload=strip_control_fields(payload),
        principal=principal or None,
        session_ref=session_ref,
        premium_flag=payload.get(PREMIUM_FLAG_FIELD) is True,
    )


class AuthorizationGate:
    """Runs the premium authorization state machine.

    Args:
        ledger: Credit ledger.
        verifier: Payment verifier, None when payments are not configured.
        verify_timeout: Seconds allowed for the slow-path verifier call.
    """

    def __init__(
        self,
        ledger: CreditLedger,
        verifier: PaymentVerifier | None,
        verify_timeout: float = 10.0,
    ) -> None:
        self.ledger = ledger
        self.verifier = verifier
        self.verify_timeout = verify_timeout
        self._handlers = {
            GateState.NO_PREMIUM_REQUESTED: self._no_premium_requested,
            GateState.PREMIUM_REQUESTED: self._premium_requested,
            GateState.SLOW_PATH_VERIFY: self._slow_path_verify,
        }

    async def authorize(self, payload: dict[str, Any], principal: str | None) -> GateDecision:
        """Decide how (and whether) to run a generation request.

        Args:
            payload: Raw request body.
            principal: Authenticated user, None for anonymous callers.

        Returns:
            GateDecision in a terminal state.

        Raises:
            LedgerUnavailable: If the credit store fails.
        """
        request = parse_request(payload, principal)
        state = (
            GateState.PREMIUM_REQUESTED
            if request.premium_requested
            else GateState.NO_PREMIUM_REQUESTED
        )
        path = [state]

        decision: GateDecision | None = None
        while decision is None:
            state, decision = await self._handlers[state](request)
            path.append(state)

        decision.path = path
        if decision.state == GateState.REJECTED:
            logger.info(
                f"Generation rejected ({decision.status_code}) for "
                f"{request.principal or 'anonymous'}: {decision.detail}"
            )
        else:
            logger.info(
                f"Generation authorized as {decision.state.value} for "
                f"{request.principal or 'anonymous'}"
            )
        return decision

    async def _no_premium_requested(self, request: GateRequest):
        return GateState.FREE_RUN, GateDecision(
            state=GateState.FREE_RUN,
            payload=request.payload,
        )

    async def _premium_requested(self, request: GateRequest):
        if request.principal is None:
            return GateState.REJECTED, self._reject(401, LOGIN_REQUIRED, "not authenticated")

        remaining = await self.ledger.consume(request.principal)
        if remaining is not None:
            return GateState.PREMIUM_RUN, self._premium_run(request, remaining)

        return GateState.SLOW_PATH_VERIFY, None

    async def _slow_path_verify(self, request: GateRequest):
        if request.session_ref is None:
            return GateState.REJECTED, self._payment_required("no credits and no payment session")
        if self.verifier is None:
            return GateState.REJECTED, self._payment_required("payment verifier unavailable")

        try:
            verification = await asyncio.wait_for(
                self.verifier.retrieve(request.session_ref),
                timeout=self.verify_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Payment verification timed out for {request.session_ref}")
            return GateState.REJECTED, self._payment_required("verifier timeout")
        except Exception as e:
            logger.warning(f"Payment verification failed for {request.session_ref}: {e}")
            return GateState.REJECTED, self._payment_required("verifier error")

        if not verification.paid:
            return GateState.REJECTED, self._payment_required("session not paid")
        if verification.owner_principal != request.principal:
            logger.warning(
                f"Payment session {request.session_ref} belongs to "
                f"{verification.owner_principal!r}, not {request.principal!r}"
            )
            return GateState.REJECTED, self._payment_required("owner mismatch")

        await self.ledger.award(request.principal, request.session_ref, source=CreditSource.VERIFY)
        remaining = await self.ledger.consume(request.principal)
        if remaining is None:
            return GateState.REJECTED, self._payment_required("credits exhausted after verification")

        return GateState.PREMIUM_RUN, self._premium_run(request, remaining)

    @staticmethod
    def _premium_run(request: GateRequest, remaining: int) -> GateDecision:
        return GateDecision(
            state=GateState.PREMIUM_RUN,
            payload=request.payload,
            premium=True,
            credits_remaining=remaining,
        )

    def _payment_required(self, detail: str) -> GateDecision:
        return self._reject(402, PAYMENT_REQUIRED, detail)

    @staticmethod
    def _reject(status_code: int, reason: str, detail: str) -> GateDecision:
        return GateDecision(
            state=GateState.REJECTED,
            status_code=status_code,
            reason=reason,
            detail=detail,
        )
