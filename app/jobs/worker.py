"""
Generic background worker runner.

Reads the desired job name from CLI args or the WORKER_JOB environment
variable, opens the database pools and Redis, keeps a heartbeat alive and
delegates to the appropriate scheduler.
"""

import asyncio
import os
import sys
from collections.abc import Awaitable, Callable

from app.config import settings
from app.db.pool import attribution_pool, production_pool
from app.features.attribution.jobs import (
    run_client_sync,
    start_attribution_processing_scheduler,
    start_review_auto_confirm_scheduler,
)
from app.features.attribution.jobs.heartbeat import heartbeat_loop
from app.infrastructure.observability.logging import get_logger, setup_logging
from app.services.redis_client import fast_redis

logger = get_logger(__name__)

JobCoroutine = Callable[[], Awaitable[object]]

JOB_REGISTRY: dict[str, JobCoroutine] = {
    "attribution_processing": start_attribution_processing_scheduler,
    "client_sync": run_client_sync,
    "review_auto_confirm": start_review_auto_confirm_scheduler,
}


def _resolve_job_name() -> str:
    """Pick the target job from CLI args or WORKER_JOB env variable."""
    if len(sys.argv) > 1:
        return sys.argv[1].strip().lower()
    return os.getenv("WORKER_JOB", "attribution_processing").strip().lower()


def _resources() -> list[tuple[str, object]]:
    # Opened in this order, closed in reverse
    return [
        ("attribution_database", attribution_pool),
        ("production_database", production_pool),
        ("redis", fast_redis),
    ]


async def _close_resources(resources: list[tuple[str, object]] | None = None) -> None:
    for name, resource in reversed(resources if resources is not None else _resources()):
        try:
            await resource.close()
        except Exception as e:
            logger.error("Worker resource close failed", resource=name, error=str(e))


async def _open_resources() -> None:
    opened: list[tuple[str, object]] = []
    for name, resource in _resources():
        try:
            await resource.initialize()
        except Exception as e:
            logger.error(
                "Worker startup aborted",
                resource=name,
                error=str(e),
                opened=[n for n, _ in opened],
            )
            await _close_resources(opened)
            raise
        opened.append((name, resource))


async def run_worker(job_name: str | None = None) -> None:
    """Run the requested background job."""
    name = (job_name or _resolve_job_name()).strip().lower()
    if name not in JOB_REGISTRY:
        raise ValueError(
            f"Unknown worker job '{name}'. "
            f"Available jobs: {', '.join(sorted(JOB_REGISTRY.keys()))}"
        )

    logger.info("Starting background worker", job=name)
    await _open_resources()
    heartbeat = asyncio.create_task(heartbeat_loop(name))
    try:
        await JOB_REGISTRY[name]()
    finally:
        heartbeat.cancel()
        try:
            await heartbeat
        except asyncio.CancelledError:
            pass
        await _close_resources()
        logger.info("Background worker stopped", job=name)


def main() -> None:
    """CLI entrypoint."""
    setup_logging(log_level=settings.LOG_LEVEL)
    job_name = _resolve_job_name()
    asyncio.run(run_worker(job_name))


if __name__ == "__main__":
    main()
