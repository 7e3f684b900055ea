"""
Attribution Portal API.

Opens both database pools and Redis for the lifetime of the process and
mounts the health and attribution routers.
"""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from app.config import settings
from app.db.pool import attribution_pool, production_pool
from app.features.attribution import attribution_router
from app.infrastructure.observability.logging import get_logger, setup_logging
from app.routes import health
from app.services.redis_client import fast_redis

setup_logging(log_level=settings.LOG_LEVEL)
logger = get_logger(__name__)

# Opened in this order, closed in reverse
RESOURCES = (
    ("attribution_database", attribution_pool),
    ("production_database", production_pool),
    ("redis", fast_redis),
)


async def _close_all(resources) -> list[str]:
    failures = []
    for name, resource in reversed(resources):
        try:
            await resource.close()
        except Exception as e:
            logger.error("Resource close failed", resource=name, error=str(e))
            failures.append(f"{name}: {e}")
    return failures


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Attribution portal starting", environment=settings.environment)

    opened = []
    for name, resource in RESOURCES:
        try:
            await resource.initialize()
        except Exception as e:
            logger.error(
                "Startup aborted",
                resource=name,
                error=str(e),
                opened=[n for n, _ in opened],
            )
            await _close_all(opened)
            raise
        opened.append((name, resource))

    logger.info("Attribution portal ready", resources=[n for n, _ in opened])

    yield

    logger.info("Attribution portal shutting down")
    failures = await _close_all(RESOURCES)
    if failures:
        logger.warning("Shutdown finished with errors", errors=failures)


app = FastAPI(
    title="Attribution Portal",
    description="Matches business outcomes to outbound email for revenue-share billing",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health.router)
app.include_router(attribution_router)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    logger.info(
        "HTTP request completed",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round((time.perf_counter() - started) * 1000, 2),
    )
    return response


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
