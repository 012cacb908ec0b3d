"""Pydantic schemas for the generation, jobs and credits API.

Evidence validation is intentionally shallow: the pipeline owns the full
evidence schema. Here we only check the shape every run needs and pass
everything else through untouched.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"


class Timeframe(BaseModel):
    """Review period covered by the evidence."""

    model_config = ConfigDict(extra="allow")

    start_date: str = Field(..., pattern=DATE_PATTERN, examples=["2025-01-01"])
    end_date: str = Field(..., pattern=DATE_PATTERN, examples=["2025-12-31"])

    @model_validator(mode="after")
    def validate_range(self) -> "Timeframe":
        """Dates must be real calendar dates with start <= end."""
        start = date.fromisoformat(self.start_date)
        end = date.fromisoformat(self.end_date)
        if start > end:
            raise ValueError("start_date must not be after end_date")
        return self


class Evidence(BaseModel):
    """Collected contribution evidence for one review period."""

    model_config = ConfigDict(extra="allow")

    timeframe: Timeframe
    contributions: list[dict[str, Any]]


class GenerateResponse(BaseModel):
    """Response after accepting a generation request."""

    job_id: str
    premium: bool
    credits_remaining: int | None = Field(
        default=None,
        description="Remaining premium credits, present only for premium runs",
    )


class JobResponse(BaseModel):
    """Status of a background generation job."""

    id: str
    kind: str
    status: str
    progress: str | None = None
    result: Any = None
    error: str | None = None
    created_at: datetime
    updated_at: datetime | None = None


class LatestJobResponse(BaseModel):
    """Most recent job of the caller, if any."""

    latest: JobResponse | None = None


class CreditBalanceResponse(BaseModel):
    """Current premium credit balance."""

    principal: str
    remaining: int


class CreditEventResponse(BaseModel):
    """Single processed payment."""

    payment_ref: str
    count: int
    source: str
    awarded_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class WebhookResponse(BaseModel):
    """Acknowledgement of a payment provider webhook."""

    received: bool = True
    credited: bool = False
    event_type: str | None = None
