# app/routes/health.py
"""
Liveness, readiness and worker heartbeat endpoints.
"""

import time
from typing import Any

from fastapi import APIRouter

from app.db.pool import db_health_check
from app.features.attribution.jobs.heartbeat import read_heartbeat
from app.infrastructure.observability.logging import log_health_check
from app.services.redis_client import fast_redis

router = APIRouter()

WORKER_JOBS = ("attribution_processing", "client_sync", "review_auto_confirm")


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 1)


async def _check_redis() -> dict[str, Any]:
    started = time.perf_counter()
    try:
        ok = bool(await fast_redis.ping())
    except Exception as e:
        return {"ok": False, "error": f"{type(e).__name__}: {e}"}
    latency_ms = _elapsed_ms(started)
    log_health_check("redis", ok, latency_ms)
    return {"ok": ok, "latency_ms": latency_ms}


async def _check_databases() -> dict[str, dict[str, Any]]:
    started = time.perf_counter()
    try:
        report = await db_health_check()
    except Exception as e:
        return {
            "database": {
                "ok": False,
                "error": f"{type(e).__name__}: {e}",
                "latency_ms": _elapsed_ms(started),
            }
        }
    latency_ms = _elapsed_ms(started)

    checks = {}
    for name in ("attribution", "production"):
        pool_report = report.get(name, {})
        ok = bool(pool_report.get("healthy", False))
        entry = {
            "ok": ok,
            "latency_ms": latency_ms,
            "connection_time_ms": pool_report.get("connection_time_ms"),
            "pool_stats": pool_report.get("pool_stats"),
        }
        if "warnings" in pool_report:
            entry["warnings"] = pool_report["warnings"]
        if not ok:
            entry["error"] = pool_report.get("error", "Database unhealthy")
        log_health_check(f"{name}_database", ok, latency_ms, pool_report.get("error"))
        checks[f"{name}_database"] = entry
    return checks


@router.get("/healthz")
async def healthz():
    """Process is up; no dependencies are touched."""
    return {"status": "ok", "service": "attribution-portal"}


@router.get("/readyz")
async def readyz():
    """Ready when Redis answers and both database pools are healthy."""
    checks = {"redis": await _check_redis()}
    checks.update(await _check_databases())
    overall_ok = all(check["ok"] for check in checks.values())
    return {"overall_ok": overall_ok, "checks": checks, "timestamp": time.time()}


@router.get("/health/database")
async def database_health():
    return await db_health_check()


@router.get("/health/worker")
async def worker_health():
    """Last heartbeat written by each worker job, None when a job is silent."""
    return {job: await read_heartbeat(job) for job in WORKER_JOBS}
