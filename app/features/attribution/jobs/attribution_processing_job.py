"""
Daily attribution processing job.

Runs every configured client through the batch processor once a day at
PROCESSING_SCHEDULE_HOUR (UTC). Each client run resumes from its own
checkpoint, so a crashed cycle picks up where it stopped on the next run.
"""

import asyncio
from datetime import UTC, datetime

from app.config import settings
from app.features.attribution.jobs.heartbeat import write_heartbeat
from app.features.attribution.jobs.schedule import seconds_until_hour
from app.features.attribution.services.batch_processor import (
    AttributionProcessingError,
    attribution_batch_processor,
)
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

JOB_NAME = "attribution_processing"


class AttributionProcessingJob:
    """Wraps the batch processor with a re-entrancy guard and run bookkeeping."""

    def __init__(self, processor=attribution_batch_processor):
        self.processor = processor
        self.is_running = False
        self.last_run_time: datetime | None = None
        self.last_result: dict | None = None

    async def run_once(self, client_id: str | None = None) -> dict:
        """
        Process one client, or every configured client when client_id is None.

        Returns:
            Dict: processor summary, or {"skipped": True, ...} if a run is in progress
        """
        if self.is_running:
            logger.warning("Attribution processing already running, skipping this iteration")
            return {"skipped": True, "reason": "already_running"}

        try:
            self.is_running = True
            await write_heartbeat(JOB_NAME, "processing")
            logger.info("Starting attribution processing", client_id=client_id)

            if client_id:
                result = await self.processor.process_client_attributions(client_id)
            else:
                result = await self.processor.process_all_clients()

            self.last_run_time = datetime.now(UTC)
            self.last_result = result
            return result

        except AttributionProcessingError:
            raise
        except Exception as e:
            logger.error(
                "Attribution processing failed", error=str(e), error_type=type(e).__name__
            )
            raise AttributionProcessingError(
                f"Attribution processing failed: {e}", operation="run_once"
            ) from e

        finally:
            self.is_running = False
            await write_heartbeat(JOB_NAME, "idle")

    def get_job_status(self) -> dict:
        return {
            "job_name": JOB_NAME,
            "is_running": self.is_running,
            "last_run_time": self.last_run_time.isoformat() if self.last_run_time else None,
            "schedule_hour_utc": settings.PROCESSING_SCHEDULE_HOUR,
        }


attribution_processing_job = AttributionProcessingJob()


async def run_attribution_processing(client_id: str | None = None) -> dict:
    return await attribution_processing_job.run_once(client_id)


async def start_attribution_processing_scheduler() -> None:
    """Sleep until the daily slot, run, repeat."""
    logger.info(
        "Starting attribution processing scheduler",
        schedule_hour_utc=settings.PROCESSING_SCHEDULE_HOUR,
    )

    while True:
        try:
            delay = seconds_until_hour(settings.PROCESSING_SCHEDULE_HOUR)
            logger.info("Next attribution processing run scheduled", in_seconds=round(delay))
            await asyncio.sleep(delay)

            result = await run_attribution_processing()
            if not result.get("skipped", False):
                logger.info(
                    "Attribution processing cycle completed",
                    **{k: v for k, v in result.items() if k != "outcomes"},
                )

        except asyncio.CancelledError:
            logger.info("Attribution processing scheduler stopped")
            raise
        except Exception as e:
            logger.error(
                "Error in attribution processing scheduler",
                error=str(e),
                error_type=type(e).__name__,
            )
            # Avoid a tight loop if the failure happens right at the slot
            await asyncio.sleep(60)
