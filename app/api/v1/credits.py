"""Credits API endpoints: balance, history, costs.

Endpoints:
    GET /api/v1/credits/balance - Remaining premium credits
    GET /api/v1/credits/history - Processed payments, newest first
    GET /api/v1/credits/costs   - Credits per purchase and per premium run
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query

from app.auth.dependencies import get_app_settings, get_ledger, require_principal
from app.config import Settings
from app.schemas import CreditBalanceResponse, CreditEventResponse
from app.services.ledger import CreditLedger

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/credits", tags=["credits"])

PREMIUM_GENERATION_COST = 1


@router.get("/balance", response_model=CreditBalanceResponse)
async def get_balance(
    principal: str = Depends(require_principal),
    ledger: CreditLedger = Depends(get_ledger),
) -> CreditBalanceResponse:
    """Return the current principal's premium credit balance."""
    remaining = await ledger.get_balance(principal)
    return CreditBalanceResponse(principal=principal, remaining=remaining)


@router.get("/history", response_model=list[CreditEventResponse])
async def get_history(
    limit: int = Query(20, ge=1, le=100),
    principal: str = Depends(require_principal),
    ledger: CreditLedger = Depends(get_ledger),
) -> list[CreditEventResponse]:
    """Return the payments credited to the current principal."""
    events = await ledger.events_for(principal, limit=limit)
    return [CreditEventResponse.model_validate(e) for e in events]


@router.get("/costs")
async def get_costs(settings: Settings = Depends(get_app_settings)) -> dict[str, int]:
    """Return the credit table so clients can show prices."""
    return {
        "credits_per_purchase": settings.CREDITS_PER_PURCHASE,
        "premium_generation": PREMIUM_GENERATION_COST,
    }
