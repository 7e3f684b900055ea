"""
Checkpointed batch processing of a client's attribution events.

Events are paged by id from the production database. Inside a page, events
are grouped by domain: groups run concurrently under a semaphore, events of
one group run one after another in event-time order so the per-domain
aggregate sees them in order. Progress is checkpointed after every page so
a crashed run resumes after the last committed page.
"""

import asyncio
from collections import defaultdict
from datetime import UTC, datetime

from app.config import settings
from app.features.attribution.domain import HARD_MATCH, SOFT_MATCH, AttributionEvent, ProcessingJob
from app.features.attribution.domain.normalization import as_utc, extract_domain, normalize_domain
from app.features.attribution.repository import (
    ClientConfigRepository,
    EmailLedgerRepository,
    ProcessingJobRepository,
)
from app.features.attribution.services.client_sync import client_sync_service
from app.features.attribution.services.matching_engine import attribution_matcher
from app.infrastructure.audit import system_logger
from app.infrastructure.observability.logging import (
    bind_job_context,
    clear_job_context,
    get_logger,
)
from app.services.redis_client import fast_redis

logger = get_logger(__name__)

LOCK_KEY_PREFIX = "attribution:processing-lock:"


class AttributionProcessingError(Exception):
    """Job-level failure of a batch processing run."""

    def __init__(self, message: str, operation: str | None = None, recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


class BatchProcessingMetrics:
    """Counters for one client run."""

    def __init__(self):
        self.reset()

    def reset(self):
        self.start_time = datetime.now(UTC)
        self.events_processed = 0
        self.matched_hard = 0
        self.matched_soft = 0
        self.no_match = 0
        self.failed_events = 0
        self.batches = 0
        self.total_duration_seconds = 0.0

    def record_match(self, match_type: str):
        self.events_processed += 1
        if match_type == HARD_MATCH:
            self.matched_hard += 1
        elif match_type == SOFT_MATCH:
            self.matched_soft += 1
        else:
            self.no_match += 1

    def record_failure(self):
        self.failed_events += 1

    def finalize(self):
        self.total_duration_seconds = (datetime.now(UTC) - self.start_time).total_seconds()

    def to_dict(self) -> dict:
        return {
            "start_time": self.start_time.isoformat(),
            "total_duration_seconds": round(self.total_duration_seconds, 2),
            "events_processed": self.events_processed,
            "matched_hard": self.matched_hard,
            "matched_soft": self.matched_soft,
            "no_match": self.no_match,
            "failed_events": self.failed_events,
            "batches": self.batches,
        }


def group_events_by_domain(events: list[AttributionEvent]) -> list[list[AttributionEvent]]:
    """
    Split a page into per-domain groups, each ordered by event time.

    Events without a resolvable domain touch no aggregate and each get a
    group of their own.
    """
    groups: dict[str, list[AttributionEvent]] = defaultdict(list)
    for event in events:
        domain = normalize_domain(event.domain) or extract_domain(event.email)
        key = f"{event.client_id}:{domain}" if domain else f"event:{event.id}"
        groups[key].append(event)

    return [
        sorted(group, key=lambda e: (as_utc(e.event_time), e.id)) for group in groups.values()
    ]


class AttributionBatchProcessor:
    """Runs a client's events through the matching engine in checkpointed pages."""

    def __init__(
        self,
        matcher=attribution_matcher,
        ledger=EmailLedgerRepository,
        client_configs=ClientConfigRepository,
        jobs=ProcessingJobRepository,
        client_sync=client_sync_service,
        lock_client=fast_redis,
        batch_size: int | None = None,
        batch_delay_seconds: float | None = None,
        max_concurrency: int | None = None,
        lock_ttl_seconds: int | None = None,
    ):
        config = settings.get_processing_config()
        self.matcher = matcher
        self.ledger = ledger
        self.client_configs = client_configs
        self.jobs = jobs
        self.client_sync = client_sync
        self.lock_client = lock_client
        self.batch_size = batch_size or config["batch_size"]
        self.batch_delay_seconds = (
            batch_delay_seconds if batch_delay_seconds is not None else config["batch_delay_seconds"]
        )
        self.max_concurrency = max_concurrency or config["max_concurrency"]
        self.lock_ttl_seconds = lock_ttl_seconds or config["lock_ttl_seconds"]

    async def process_client_attributions(self, client_id: str) -> dict:
        """
        Process every pending event of one production client.

        Returns:
            Dict: run metrics, or {"skipped": True, ...} when another run holds the client lock

        Raises:
            AttributionProcessingError: If the run fails outside a single event
        """
        lock_key = f"{LOCK_KEY_PREFIX}{client_id}"
        try:
            token = await self.lock_client.acquire_lock(lock_key, self.lock_ttl_seconds)
        except Exception as e:
            raise AttributionProcessingError(
                f"Could not acquire processing lock: {e}", operation="acquire_lock"
            ) from e

        if token is None:
            logger.warning("Client processing already running, skipping", client_id=client_id)
            return {"skipped": True, "reason": "already_running", "client_id": client_id}

        try:
            return await self._run(client_id, lock_key, token)
        finally:
            await self.lock_client.release_lock(lock_key, token)

    async def _run(self, client_id: str, lock_key: str, lock_token: str) -> dict:
        metrics = BatchProcessingMetrics()

        try:
            client = await self.client_sync.ensure_client_config(client_id)
        except Exception as e:
            raise AttributionProcessingError(
                f"Client {client_id} could not be resolved: {e}",
                operation="resolve_client",
                recoverable=False,
            ) from e

        job: ProcessingJob | None = None
        try:
            job = await self.jobs.get_or_create_job(client.id)
            bind_job_context(job_id=job.id, client_id=client_id)

            total_events = await self.ledger.count_attribution_events(client_id)
            await self.jobs.start_job(job.id, total_events)
            await system_logger.info(
                "worker",
                "Processing job started",
                context={"total_events": total_events, "resume_after": job.last_processed_event_id},
                client_config_id=client.id,
                processing_job_id=job.id,
            )

            cursor = job.last_processed_event_id
            while True:
                events = await self.ledger.fetch_attribution_events(
                    client_id, after_event_id=cursor, limit=self.batch_size
                )
                if not events:
                    break

                await self._process_batch(job, events, metrics)

                cursor = events[-1].id
                job.last_processed_event_id = cursor
                job.current_batch += 1
                metrics.batches += 1
                await self.jobs.update_progress(job)
                await self._renew_lock(lock_key, lock_token)

                logger.info(
                    "Batch checkpointed",
                    batch=job.current_batch,
                    batch_events=len(events),
                    processed_events=job.processed_events,
                    total_events=total_events,
                )

                if len(events) < self.batch_size:
                    break
                await asyncio.sleep(self.batch_delay_seconds)

            await self.jobs.complete_job(job.id)
            metrics.finalize()
            summary = {"client_id": client_id, "job_id": job.id, **metrics.to_dict()}

            await system_logger.info(
                "worker",
                "Processing job completed",
                context=metrics.to_dict(),
                client_config_id=client.id,
                processing_job_id=job.id,
            )
            return summary

        except Exception as e:
            metrics.finalize()
            if job is not None:
                await self._mark_job_failed(client.id, job, e, metrics)
            if isinstance(e, AttributionProcessingError):
                raise
            raise AttributionProcessingError(
                f"Processing failed for client {client_id}: {e}", operation="process_client"
            ) from e

        finally:
            clear_job_context()

    async def _renew_lock(self, lock_key: str, lock_token: str) -> None:
        """Push the client lock's expiry out after a checkpoint so long runs keep it."""
        try:
            still_held = await self.lock_client.extend_lock(
                lock_key, lock_token, self.lock_ttl_seconds
            )
        except Exception as e:
            # The lock keeps its previous expiry; the next checkpoint tries again
            logger.warning("Processing lock renewal failed", lock_key=lock_key, error=str(e))
            return

        if not still_held:
            raise AttributionProcessingError(
                "Processing lock expired or was taken by another worker",
                operation="renew_lock",
            )

    async def _mark_job_failed(
        self,
        client_config_id: str,
        job: ProcessingJob,
        error: Exception,
        metrics: BatchProcessingMetrics,
    ) -> None:
        try:
            await self.jobs.fail_job(job.id, str(error))
        except Exception as e:
            logger.error(
                "Could not mark processing job failed",
                job_id=job.id,
                error=str(e),
                original_error=str(error),
            )

        await system_logger.error(
            "worker",
            "Processing job failed",
            context={"error": str(error), "error_type": type(error).__name__, **metrics.to_dict()},
            client_config_id=client_config_id,
            processing_job_id=job.id,
        )

    async def _process_batch(
        self, job: ProcessingJob, events: list[AttributionEvent], metrics: BatchProcessingMetrics
    ) -> None:
        semaphore = asyncio.Semaphore(self.max_concurrency)
        groups = group_events_by_domain(events)

        results = await asyncio.gather(
            *[self._process_group(semaphore, job, group, metrics) for group in groups],
            return_exceptions=True,
        )

        # Per-event failures are absorbed in _process_group; anything here is job-level
        for result in results:
            if isinstance(result, BaseException):
                raise result

    async def _process_group(
        self,
        semaphore: asyncio.Semaphore,
        job: ProcessingJob,
        group: list[AttributionEvent],
        metrics: BatchProcessingMetrics,
    ) -> None:
        async with semaphore:
            for event in group:
                await self._process_event(job, event, metrics)

    async def _process_event(
        self, job: ProcessingJob, event: AttributionEvent, metrics: BatchProcessingMetrics
    ) -> None:
        try:
            result = await self.matcher.process_attribution_event(event)
        except Exception as e:
            metrics.record_failure()
            logger.warning(
                "Attribution event failed",
                event_id=event.id,
                error=str(e),
                error_type=type(e).__name__,
            )
            await self.jobs.log_event_error(job.id, event.id, e)
            return

        metrics.record_match(result.match_type)
        job.processed_events += 1
        if result.match_type == HARD_MATCH:
            job.matched_hard += 1
        elif result.match_type == SOFT_MATCH:
            job.matched_soft += 1
        else:
            job.no_match += 1

    async def process_all_clients(self) -> dict:
        """Run every configured client in turn; one client's failure does not stop the others."""
        configs = await self.client_configs.list_client_configs()
        outcomes: list[dict] = []

        for config in configs:
            try:
                summary = await self.process_client_attributions(config.client_id)
                status = "skipped" if summary.get("skipped") else "completed"
                outcomes.append({"client_id": config.client_id, "status": status, **summary})
            except Exception as e:
                logger.error(
                    "Client processing failed",
                    client_id=config.client_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                outcomes.append({"client_id": config.client_id, "status": "failed", "error": str(e)})

        result = {
            "clients": len(configs),
            "completed": sum(1 for o in outcomes if o["status"] == "completed"),
            "failed": sum(1 for o in outcomes if o["status"] == "failed"),
            "skipped": sum(1 for o in outcomes if o["status"] == "skipped"),
            "outcomes": outcomes,
        }
        logger.info(
            "All clients processed",
            clients=result["clients"],
            completed=result["completed"],
            failed=result["failed"],
            skipped=result["skipped"],
        )
        return result


attribution_batch_processor = AttributionBatchProcessor()
