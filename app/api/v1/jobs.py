"""Job status endpoints.

Endpoints:
    GET /api/v1/jobs          - Latest job of the calling principal
    GET /api/v1/jobs/{job_id} - Status of one job
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from app.auth.dependencies import get_current_principal, get_jobs
from app.schemas import JobResponse, LatestJobResponse
from app.services.jobs import Job, JobStore

router = APIRouter(prefix="/jobs", tags=["jobs"])


def job_to_response(job: Job) -> JobResponse:
    return JobResponse(
        id=job.id,
        kind=job.kind,
        status=job.status.value,
        progress=job.progress,
        result=job.result,
        error=job.error,
        created_at=job.created_at,
        updated_at=job.updated_at,
    )


@router.get("", response_model=LatestJobResponse)
async def latest_job(
    principal: str | None = Depends(get_current_principal),
    jobs: JobStore = Depends(get_jobs),
) -> LatestJobResponse:
    """Return the caller's most recent job, or ``{"latest": null}``."""
    job = jobs.latest_for(principal) if principal else None
    return LatestJobResponse(latest=job_to_response(job) if job else None)


@router.get("/{job_id}", response_model=JobResponse)
async def get_job(
    job_id: str,
    jobs: JobStore = Depends(get_jobs),
) -> JobResponse:
    """Return a job by id."""
    job = jobs.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    return job_to_response(job)
