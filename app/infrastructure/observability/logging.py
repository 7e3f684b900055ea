"""
structlog configuration shared by the API and the attribution worker.

Every line is a JSON object carrying level, logger name, ISO timestamp,
the service tag and whatever job context is bound for the running task.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.stdlib import LoggerFactory

SERVICE_NAME = "attribution-portal"

_QUIET_LOGGERS = ("psycopg.pool", "uvicorn.access")


def setup_logging(log_level: str = "INFO") -> None:
    level = getattr(logging, log_level.upper(), logging.INFO)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            _tag_service,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def _tag_service(logger, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def bind_job_context(**fields: Any) -> None:
    """Attach fields such as job_id and client_id to every log line of the current task."""
    structlog.contextvars.bind_contextvars(**fields)


def clear_job_context() -> None:
    structlog.contextvars.clear_contextvars()


def log_health_check(component: str, healthy: bool, latency_ms: float, error: str | None = None):
    fields: dict[str, Any] = {"component": component, "healthy": healthy, "latency_ms": latency_ms}
    if error:
        fields["error"] = error

    logger = get_logger("health")
    if healthy:
        logger.info("Health check passed", **fields)
    else:
        logger.error("Health check failed", **fields)
