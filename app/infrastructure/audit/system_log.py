"""
SystemLogger - persisted operational log lines.

Batch processing milestones (job started, batch checkpointed, job failed)
are written to the system_log table so operators can follow a run without
shell access to the worker.

Usage:
    from app.infrastructure.audit import system_logger

    await system_logger.log(
        level="INFO",
        source="worker",
        message="Processing job started",
        context={"total_events": 1200},
        client_config_id=client.id,
        processing_job_id=job.id,
    )

Writes go to the structured log first and the database second. A database
failure is logged at error level and never propagates to the caller.
"""

import json
from datetime import UTC, datetime
from typing import Any, Literal

from app.db.pool import attribution_pool
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

LogLevel = Literal["DEBUG", "INFO", "WARN", "ERROR"]
LogSource = Literal["worker", "api", "cron"]

_STRUCTLOG_METHODS = {"DEBUG": "debug", "INFO": "info", "WARN": "warning", "ERROR": "error"}


class SystemLogger:
    """Writes system_log rows alongside structured log events."""

    @staticmethod
    async def log(
        level: LogLevel,
        source: LogSource,
        message: str,
        context: dict[str, Any] | None = None,
        client_config_id: str | None = None,
        processing_job_id: str | None = None,
    ) -> bool:
        """
        Persist one operational log line.

        Returns:
            True if the row was written, False if the insert failed (never raises)
        """

        log_method = getattr(logger, _STRUCTLOG_METHODS.get(level, "info"))
        log_method(
            message,
            log_source=source,
            client_config_id=client_config_id,
            processing_job_id=processing_job_id,
            **(context or {}),
        )

        try:
            async with attribution_pool.connection() as conn:
                await conn.execute(
                    """
                    INSERT INTO system_log (
                        level, source, message, context, client_config_id, processing_job_id
                    ) VALUES (%s, %s, %s, %s::jsonb, %s, %s)
                    """,
                    (
                        level,
                        source,
                        message,
                        json.dumps(context, default=str) if context else None,
                        client_config_id,
                        processing_job_id,
                    ),
                )

            return True

        except Exception as e:
            # Operational logging must never break a processing run
            logger.error(
                "Failed to write system log to database",
                error=str(e),
                error_type=type(e).__name__,
                fallback_data={
                    "level": level,
                    "source": source,
                    "message": message,
                    "client_config_id": client_config_id,
                    "processing_job_id": processing_job_id,
                    "timestamp": datetime.now(UTC).isoformat(),
                },
            )
            return False

    @staticmethod
    async def info(source: LogSource, message: str, **kwargs) -> bool:
        return await SystemLogger.log("INFO", source, message, **kwargs)

    @staticmethod
    async def error(source: LogSource, message: str, **kwargs) -> bool:
        return await SystemLogger.log("ERROR", source, message, **kwargs)


# Global instance
system_logger = SystemLogger()
