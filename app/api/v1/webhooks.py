"""Payment provider webhook.

Endpoints:
    POST /api/v1/stripe/webhook - Credit paid checkout sessions

Stripe delivers events at least once, and the buyer may also have redeemed
the same session inline through /generate. Both paths call the ledger's
idempotent award with the checkout session id, so a session is credited once.
"""

from __future__ import annotations

import logging

import stripe
from fastapi import APIRouter, Depends, HTTPException, Request, status

from app.auth.dependencies import get_app_settings, get_ledger
from app.config import Settings
from app.models import CreditSource
from app.schemas import WebhookResponse
from app.services.billing import checkout_award, construct_webhook_event
from app.services.ledger import CreditLedger

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/stripe", tags=["payments"])


@router.post("/webhook", response_model=WebhookResponse)
async def stripe_webhook(
    request: Request,
    settings: Settings = Depends(get_app_settings),
    ledger: CreditLedger = Depends(get_ledger),
) -> WebhookResponse:
    """Verify a Stripe event and award credits for paid checkouts.

    Raises:
        HTTPException 503: If no webhook secret is configured.
        HTTPException 400: On an invalid payload or signature.
    """
    if not settings.STRIPE_WEBHOOK_SECRET:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Stripe webhook not configured",
        )

    payload = await request.body()
    signature = request.headers.get("stripe-signature")

    try:
        event = construct_webhook_event(payload, signature, settings.STRIPE_WEBHOOK_SECRET)
    except ValueError as e:
        logger.error(f"Invalid webhook payload: {e}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid payload")
    except stripe.SignatureVerificationError as e:
        logger.error(f"Invalid webhook signature: {e}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid signature")

    event_type = event["type"]
    award = checkout_award(event)
    if award is None:
        logger.info(f"Ignoring webhook event {event_type}")
        return WebhookResponse(event_type=event_type)

    credited = await ledger.award(award.principal, award.payment_ref, source=CreditSource.WEBHOOK)
    return WebhookResponse(credited=credited, event_type=event_type)
