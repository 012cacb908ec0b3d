"""Generation API endpoint.

Endpoints:
    POST /api/v1/generate - Validate evidence, authorize the tier, start a job

The body is evidence JSON plus optional control fields:
``_payment_session_id`` (a paid checkout session) and ``_premium``
(spend an existing credit). Both are removed before validation and never
reach the pipeline.

Examples:
    >>> POST /api/v1/generate
    >>> {"timeframe": {...}, "contributions": [...], "_premium": true}
    >>>
    >>> # Response (202)
    >>> {"job_id": "job_...", "premium": true, "credits_remaining": 4}

Tests:
    - tests/integration/test_api_generate.py
"""

from __future__ import annotations

import json
import logging
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, Request, status
from pydantic import ValidationError

from app.auth.dependencies import get_current_principal, get_gate, get_jobs, get_pipeline
from app.errors import InvalidEvidence, raise_for_decision
from app.schemas import Evidence, GenerateResponse
from app.services.gate import AuthorizationGate, strip_control_fields
from app.services.jobs import JobStore
from app.services.pipeline import GenerationPipeline, run_generation_job

logger = logging.getLogger(__name__)

router = APIRouter(tags=["generate"])


def format_validation_errors(exc: ValidationError) -> str:
    """Flatten pydantic errors into one readable line."""
    parts = []
    for error in exc.errors():
        location = ".".join(str(p) for p in error.get("loc", ())) or "evidence"
        parts.append(f"{location} {error.get('msg', 'is invalid')}")
    return "; ".join(parts)


async def read_json_object(request: Request) -> dict[str, Any]:
    """Parse the body as a JSON object, 400 otherwise."""
    raw = await request.body()
    if not raw:
        return {}
    try:
        body = json.loads(raw)
    except json.JSONDecodeError as e:
        raise InvalidEvidence(f"Body is not valid JSON: {e.msg}")
    except UnicodeDecodeError as e:
        raise InvalidEvidence(f"Body is not valid JSON: {e.reason}")
    if not isinstance(body, dict):
        raise InvalidEvidence("Body must be a JSON object")
    return body


@router.post(
    "/generate",
    response_model=GenerateResponse,
    response_model_exclude_none=True,
    status_code=status.HTTP_202_ACCEPTED,
)
async def generate(
    request: Request,
    background_tasks: BackgroundTasks,
    principal: str | None = Depends(get_current_principal),
    gate: AuthorizationGate = Depends(get_gate),
    jobs: JobStore = Depends(get_jobs),
    pipeline: GenerationPipeline = Depends(get_pipeline),
) -> GenerateResponse:
    """Start a standard or premium generation.

    Evidence is validated before any credit is touched, and the job is
    created only once authorization is final.

    Raises:
        InvalidEvidence: 400 on malformed evidence.
        AuthenticationRequired: 401 on premium without a session.
        PaymentRequired: 402 on any payment/credit denial.
    """
    body = await read_json_object(request)

    try:
        Evidence.model_validate(strip_control_fields(body))
    except ValidationError as e:
        raise InvalidEvidence(format_validation_errors(e))

    decision = await gate.authorize(body, principal)
    raise_for_decision(decision)

    job_id = jobs.create_job(decision.job_kind, owner=principal)
    background_tasks.add_task(
        run_generation_job,
        job_id,
        decision.payload,
        decision.premium,
        pipeline,
        jobs,
    )

    return GenerateResponse(
        job_id=job_id,
        premium=decision.premium,
        credits_remaining=decision.credits_remaining,
    )
