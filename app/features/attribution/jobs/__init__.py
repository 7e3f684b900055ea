"""
Background jobs for the attribution feature.

run_job executes a single run of a named job; the worker's registry runs
the long-lived schedulers.
"""

from app.infrastructure.observability.logging import get_logger

from .attribution_processing_job import (
    run_attribution_processing,
    start_attribution_processing_scheduler,
)
from .client_sync_job import run_client_sync
from .review_auto_confirm_job import run_review_auto_confirm, start_review_auto_confirm_scheduler

logger = get_logger(__name__)


async def run_job(job_name: str, client_id: str | None = None) -> dict:
    """Run one iteration of a job by name; failures are logged, not raised."""
    try:
        if job_name == "attribution_processing":
            return await run_attribution_processing(client_id)
        if job_name == "client_sync":
            return await run_client_sync()
        if job_name == "review_auto_confirm":
            return await run_review_auto_confirm()
    except Exception as e:
        logger.error("Triggered job failed", job=job_name, error=str(e), error_type=type(e).__name__)
        return {"job": job_name, "failed": True, "error": str(e)}

    raise ValueError(f"Unknown job '{job_name}'")


__all__ = [
    "run_attribution_processing",
    "run_client_sync",
    "run_job",
    "run_review_auto_confirm",
    "start_attribution_processing_scheduler",
    "start_review_auto_confirm_scheduler",
]
