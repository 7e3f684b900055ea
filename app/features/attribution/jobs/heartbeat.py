"""
Worker liveness heartbeat kept in Redis.

The API's readiness check and operators read the key to tell whether a
worker process is alive and what it is doing.
"""

import asyncio
import json
from datetime import UTC, datetime

from app.infrastructure.observability.logging import get_logger
from app.services.redis_client import fast_redis

logger = get_logger(__name__)

HEARTBEAT_KEY_PREFIX = "attribution:worker-heartbeat:"
HEARTBEAT_INTERVAL_SECONDS = 30
HEARTBEAT_TTL_SECONDS = 120


async def write_heartbeat(job_name: str, status: str, current_job_id: str | None = None) -> bool:
    payload = {
        "job": job_name,
        "status": status,  # "running", "idle" or "processing"
        "current_job_id": current_job_id,
        "last_heartbeat": datetime.now(UTC).isoformat(),
    }
    return await fast_redis.set_with_ttl(
        f"{HEARTBEAT_KEY_PREFIX}{job_name}", json.dumps(payload), HEARTBEAT_TTL_SECONDS
    )


async def read_heartbeat(job_name: str) -> dict | None:
    raw = await fast_redis.get(f"{HEARTBEAT_KEY_PREFIX}{job_name}")
    return json.loads(raw) if raw else None


async def heartbeat_loop(job_name: str) -> None:
    """Refresh the heartbeat until cancelled."""
    try:
        while True:
            ok = await write_heartbeat(job_name, "running")
            if not ok:
                logger.warning("Worker heartbeat write failed", job=job_name)
            await asyncio.sleep(HEARTBEAT_INTERVAL_SECONDS)
    except asyncio.CancelledError:
        await write_heartbeat(job_name, "idle")
        raise
