"""
Persistence for processing_job checkpoints and per-event failures.

A client has at most one open (PENDING or RUNNING) job; rerunning the
processor resumes that job from its last_processed_event_id.
"""

import traceback

from app.db.helpers import DatabaseError, execute_query, fetch_one, with_db_retry
from app.features.attribution.domain import ProcessingJob
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class ProcessingJobRepository:
    """Lifecycle updates for batch processing jobs."""

    JOB_SELECT_COLUMNS = """
        id, client_config_id, status, total_events, processed_events,
        matched_hard, matched_soft, no_match, last_processed_event_id, current_batch
    """

    @classmethod
    def _row_to_job(cls, row: dict | None) -> ProcessingJob | None:
        if not row:
            return None

        return ProcessingJob(
            id=str(row["id"]),
            client_config_id=str(row["client_config_id"]),
            status=row["status"],
            total_events=row.get("total_events") or 0,
            processed_events=row.get("processed_events") or 0,
            matched_hard=row.get("matched_hard") or 0,
            matched_soft=row.get("matched_soft") or 0,
            no_match=row.get("no_match") or 0,
            last_processed_event_id=(
                str(row["last_processed_event_id"]) if row.get("last_processed_event_id") else None
            ),
            current_batch=row.get("current_batch") or 0,
        )

    @classmethod
    async def get_or_create_job(
        cls, client_config_id: str, job_type: str = "SINGLE_CLIENT"
    ) -> ProcessingJob:
        """Return the client's open job, or create a PENDING one."""

        existing_query = f"""
            SELECT {cls.JOB_SELECT_COLUMNS}
            FROM processing_job
            WHERE client_config_id = %s AND status IN ('PENDING', 'RUNNING')
            ORDER BY created_at DESC
            LIMIT 1
        """

        existing = await fetch_one(existing_query, (client_config_id,))
        if existing:
            job = cls._row_to_job(existing)
            logger.info(
                "Resuming processing job",
                job_id=job.id,
                client_config_id=client_config_id,
                last_processed_event_id=job.last_processed_event_id,
            )
            return job

        insert_query = f"""
            INSERT INTO processing_job (client_config_id, job_type, status)
            VALUES (%s, %s, 'PENDING')
            RETURNING {cls.JOB_SELECT_COLUMNS}
        """

        row = await fetch_one(insert_query, (client_config_id, job_type))
        if not row:
            raise DatabaseError("Failed to create processing job", operation="create_processing_job")

        logger.info("Processing job created", job_id=str(row["id"]), client_config_id=client_config_id)
        return cls._row_to_job(row)

    @classmethod
    async def start_job(cls, job_id: str, total_events: int) -> None:
        query = """
            UPDATE processing_job
            SET status = 'RUNNING',
                total_events = %s,
                started_at = COALESCE(started_at, NOW())
            WHERE id = %s
        """

        await execute_query(query, (total_events, job_id))

    @classmethod
    @with_db_retry(max_retries=3, base_delay=0.1)
    async def update_progress(cls, job: ProcessingJob) -> None:
        """Checkpoint counters and the resume cursor."""

        query = """
            UPDATE processing_job
            SET processed_events = %s,
                matched_hard = %s,
                matched_soft = %s,
                no_match = %s,
                last_processed_event_id = %s,
                current_batch = %s,
                last_checkpoint_at = NOW()
            WHERE id = %s
        """

        await execute_query(
            query,
            (
                job.processed_events,
                job.matched_hard,
                job.matched_soft,
                job.no_match,
                job.last_processed_event_id,
                job.current_batch,
                job.id,
            ),
        )

    @classmethod
    @with_db_retry(max_retries=3, base_delay=0.1)
    async def complete_job(cls, job_id: str) -> None:
        query = """
            UPDATE processing_job
            SET status = 'COMPLETED',
                completed_at = NOW(),
                error_message = NULL
            WHERE id = %s
        """

        await execute_query(query, (job_id,))
        logger.info("Processing job completed", job_id=job_id)

    @classmethod
    async def fail_job(cls, job_id: str, error_message: str) -> None:
        truncated_error = (error_message or "")[:500]
        query = """
            UPDATE processing_job
            SET status = 'FAILED',
                completed_at = NOW(),
                error_message = %s
            WHERE id = %s
        """

        await execute_query(query, (truncated_error, job_id))
        logger.warning("Processing job failed", job_id=job_id, error=truncated_error)

    @classmethod
    async def log_event_error(cls, job_id: str, event_id: str, error: BaseException) -> None:
        query = """
            INSERT INTO event_processing_error (
                processing_job_id, attribution_event_id, error_message, error_stack
            )
            VALUES (%s, %s, %s, %s)
        """

        stack = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        await execute_query(query, (job_id, event_id, str(error)[:1000], stack[-4000:]))
