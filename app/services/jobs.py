"""In-memory job-status store for background generation runs.

Jobs are created as PENDING before the background task starts, move to
RUNNING with progress messages, and end as DONE (with the pipeline result)
or FAILED (with the error). The store is bounded; the oldest job is evicted
when it is full.
"""

from __future__ import annotations

import logging
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)

JOB_STORE_MAX = 500


class JobStatus(str, Enum):
    """Status of a background job.

    States:
        PENDING: Created, not started
        RUNNING: Pipeline in progress
        DONE: Finished with a result
        FAILED: Finished with an error
    """

    PENDING = "pending"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"


@dataclass
class Job:
    """One background job."""

    id: str
    kind: str
    owner: str | None = None
    status: JobStatus = JobStatus.PENDING
    progress: str | None = None
    result: Any = None
    error: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind,
            "status": self.status.value,
            "progress": self.progress,
            "result": self.result,
            "error": self.error,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class JobStore:
    """Bounded map of job id -> Job, insertion ordered."""

    def __init__(self, max_jobs: int = JOB_STORE_MAX) -> None:
        self.max_jobs = max_jobs
        self._jobs: OrderedDict[str, Job] = OrderedDict()

    def __len__(self) -> int:
        return len(self._jobs)

    def create_job(self, kind: str, owner: str | None = None) -> str:
        """Register a new PENDING job and return its id."""
        while len(self._jobs) >= self.max_jobs:
            evicted, _ = self._jobs.popitem(last=False)
            logger.debug(f"Evicted job {evicted}")

        job = Job(id=f"job_{uuid.uuid4().hex}", kind=kind, owner=owner)
        self._jobs[job.id] = job
        logger.info(f"Created {kind} job {job.id}")
        return job.id

    def get_job(self, job_id: str) -> Job | None:
        return self._jobs.get(job_id)

    def latest_for(self, owner: str) -> Job | None:
        """Most recently created job belonging to ``owner``."""
        for job in reversed(self._jobs.values()):
            if job.owner == owner:
                return job
        return None

    def update(self, job_id: str, **changes: Any) -> None:
        job = self._jobs.get(job_id)
        if job is None:
            return
        for key, value in changes.items():
            setattr(job, key, value)
        job.updated_at = datetime.now(timezone.utc)

    def clear(self) -> None:
        self._jobs.clear()
