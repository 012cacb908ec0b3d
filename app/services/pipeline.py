"""Generation pipeline protocol, default implementation and background runner.

The review pipeline itself (evidence -> themes -> bullets -> stories ->
self-eval) lives outside this service. Deployments point PIPELINE_FACTORY at
a ``module:callable`` returning a GenerationPipeline; without one, jobs fail
with a clear error instead of silently producing nothing.
"""

from __future__ import annotations

import importlib
import logging
from typing import Any, Callable, Protocol

from app.services.jobs import JobStatus, JobStore

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, str], None]


class GenerationPipeline(Protocol):
    """Runs generation for validated evidence."""

    async def run(
        self,
        evidence: dict[str, Any],
        *,
        premium: bool,
        on_progress: ProgressCallback | None = None,
    ) -> Any: ...


class PipelineNotConfigured(RuntimeError):
    """No generation pipeline was configured for this deployment."""


class UnconfiguredPipeline:
    """Default: fails every run. Used when PIPELINE_FACTORY is not set."""

    async def run(
        self,
        evidence: dict[str, Any],
        *,
        premium: bool,
        on_progress: ProgressCallback | None = None,
    ) -> Any:
        raise PipelineNotConfigured("No generation pipeline configured (set PIPELINE_FACTORY)")


def load_pipeline(factory_path: str | None) -> GenerationPipeline:
    """Build the pipeline named by ``module:callable``.

    Raises:
        ValueError: If the path is malformed.
        ImportError / AttributeError: If it cannot be resolved.
    """
    if not factory_path:
        logger.warning("PIPELINE_FACTORY not set, generation jobs will fail")
        return UnconfiguredPipeline()

    module_name, sep, attr = factory_path.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"PIPELINE_FACTORY must look like 'module:callable', got {factory_path!r}")

    factory = getattr(importlib.import_module(module_name), attr)
    logger.info(f"Loaded generation pipeline from {factory_path}")
    return factory()


async def run_generation_job(
    job_id: str,
    evidence: dict[str, Any],
    premium: bool,
    pipeline: GenerationPipeline,
    jobs: JobStore,
) -> None:
    """Background task to run the pipeline and record the outcome on the job.

    Failures are recorded on the job. A premium credit spent on this job is
    not refunded.
    """
    logger.info(f"Starting background generation for {job_id} (premium={premium})")
    jobs.update(job_id, status=JobStatus.RUNNING)

    def report(step_index: int, total: int, label: str) -> None:
        jobs.update(job_id, progress=f"{step_index}/{total} {label}")

    try:
        result = await pipeline.run(evidence, premium=premium, on_progress=report)
    except Exception as e:
        logger.error(f"Background generation failed for {job_id}: {e}")
        jobs.update(job_id, status=JobStatus.FAILED, error=str(e))
        return

    jobs.update(job_id, status=JobStatus.DONE, result=result)
    logger.info(f"Generation complete for {job_id}")
