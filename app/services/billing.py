"""Payment verifier protocol and the Stripe-backed implementation.

The authorization gate only needs one capability from the payment provider:
look up a checkout session and report whether it is paid and who bought it.
Without STRIPE_SECRET_KEY no verifier is built and premium verification
fails closed.

The same module parses Stripe webhook deliveries into award signals, so the
webhook and inline verification agree on what "paid" and "owner" mean.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Protocol

import stripe

from app.config import Settings

logger = logging.getLogger(__name__)

# Checkout sessions are created with the buyer's login in this metadata key
OWNER_METADATA_KEY = "user_login"
CHECKOUT_COMPLETED = "checkout.session.completed"


@dataclass(frozen=True)
class PaymentVerification:
    """Result of looking up a payment session."""

    paid: bool
    owner_principal: str | None = None


@dataclass(frozen=True)
class CheckoutAward:
    """A paid checkout that should be credited."""

    principal: str
    payment_ref: str


class PaymentVerifier(Protocol):
    """Anything that can look up a payment session by reference."""

    async def retrieve(self, session_ref: str) -> PaymentVerification: ...


def _field(obj: Any, key: str) -> Any:
    """Read a key from a Stripe object or plain dict, None when absent."""
    if obj is None:
        return None
    try:
        return obj[key]
    except (KeyError, TypeError):
        return None


def verification_from_session(session: Any) -> PaymentVerification:
    """Map a Stripe Checkout session to a PaymentVerification."""
    owner = _field(_field(session, "metadata"), OWNER_METADATA_KEY)
    return PaymentVerification(
        paid=_field(session, "payment_status") == "paid",
        owner_principal=owner or None,
    )


class StripeVerifier:
    """Looks up Stripe Checkout sessions.

    The Stripe client is synchronous, so lookups run in a worker thread.
    Timeouts are applied by the caller.
    """

    def __init__(self, api_key: str) -> None:
        self._api_key = api_key

    async def retrieve(self, session_ref: str) -> PaymentVerification:
        session = await asyncio.to_thread(
            stripe.checkout.Session.retrieve,
            session_ref,
            api_key=self._api_key,
        )
        return verification_from_session(session)


def build_verifier(settings: Settings) -> PaymentVerifier | None:
    """Create the configured verifier, or None when payments are disabled."""
    if not settings.STRIPE_SECRET_KEY:
        logger.warning("STRIPE_SECRET_KEY not set, premium verification disabled")
        return None
    return StripeVerifier(settings.STRIPE_SECRET_KEY)


def construct_webhook_event(payload: bytes, signature: str | None, secret: str) -> Any:
    """Verify a webhook signature and parse the event.

    Raises:
        ValueError: If the payload is not valid JSON.
        stripe.SignatureVerificationError: If the signature does not match.
    """
    return stripe.Webhook.construct_event(payload, signature or "", secret)


def checkout_award(event: Any) -> CheckoutAward | None:
    """Extract an award signal from a webhook event.

    Returns:
        CheckoutAward for a paid ``checkout.session.completed`` event that
        names its buyer, None for everything else.
    """
    if _field(event, "type") != CHECKOUT_COMPLETED:
        return None

    session = _field(_field(event, "data"), "object")
    verification = verification_from_session(session)
    payment_ref = _field(session, "id")

    if not verification.paid:
        logger.info(f"Checkout {payment_ref} completed but not paid yet")
        return None
    if not verification.owner_principal or not payment_ref:
        logger.warning(f"Checkout {payment_ref} has no {OWNER_METADATA_KEY} metadata, not crediting")
        return None

    return CheckoutAward(principal=verification.owner_principal, payment_ref=payment_ref)
