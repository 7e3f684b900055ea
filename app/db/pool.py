# app/db/pool.py
"""
Async PostgreSQL pools for the attribution portal.

The portal talks to two databases:
- attribution: portal-owned tables (domains, timeline, matches, jobs), read/write
- production: the outbound-email platform (sends, prospects, events), read only

Both are psycopg_pool pools handing out autocommit connections with dict rows.
Multi-statement writes go through ``transaction()``.
"""

import asyncio
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import psycopg
from psycopg import sql
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from app.config import settings
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

CLOSE_TIMEOUT_SECONDS = 30.0
UTILIZATION_WARN_PERCENT = 80
UTILIZATION_UNHEALTHY_PERCENT = 90


class DatabasePoolManager:
    """Owns one named AsyncConnectionPool from startup to shutdown."""

    def __init__(self, name: str, conninfo: str, read_only: bool = False):
        self.name = name
        self.conninfo = conninfo
        self.read_only = read_only
        self.pool: AsyncConnectionPool | None = None
        self._initialized = False
        self._closed = False

    @property
    def is_ready(self) -> bool:
        return self._initialized and not self._closed

    async def initialize(self) -> None:
        if self._initialized:
            logger.warning("Pool initialize called twice, ignoring", pool=self.name)
            return
        if self._closed:
            raise RuntimeError(f"Pool '{self.name}' was closed and cannot be reopened")

        options = settings.get_db_pool_config()
        logger.info(
            "Opening database pool",
            pool=self.name,
            min_size=options["min_size"],
            max_size=options["max_size"],
            read_only=self.read_only,
        )

        self.pool = AsyncConnectionPool(
            conninfo=self.conninfo,
            open=False,
            check=AsyncConnectionPool.check_connection,
            configure=self._prepare_connection,
            **options,
        )
        try:
            await self.pool.open()
            await self.pool.wait()
            self._initialized = True
            await self._check_connection()
        except Exception as e:
            logger.error("Database pool failed to open", pool=self.name, error=str(e))
            self._initialized = False
            await self._discard_pool()
            raise RuntimeError(f"Database pool '{self.name}' initialization failed: {e}") from e

        logger.info("Database pool ready", pool=self.name)

    async def _discard_pool(self) -> None:
        if self.pool is None:
            return
        try:
            await self.pool.close()
        except Exception as e:
            logger.warning("Could not close half-open pool", pool=self.name, error=str(e))
        self.pool = None

    async def _prepare_connection(self, conn: psycopg.AsyncConnection) -> None:
        """Per-connection session setup, run once when the pool creates a connection."""
        conn.row_factory = dict_row
        await conn.set_autocommit(True)

        # Guard the email platform against accidental writes
        if self.read_only:
            await conn.execute("SET default_transaction_read_only = on")

        application_name = f"attribution-{self.name}-{settings.environment}"
        await conn.execute(
            sql.SQL("SET application_name = {}").format(sql.Literal(application_name))
        )
        await conn.execute("SET timezone = 'UTC'")
        await conn.execute("SET statement_timeout = '60s'")

    async def _check_connection(self) -> float:
        """Round-trip a trivial query; returns elapsed milliseconds."""
        started = time.perf_counter()
        async with self.connection() as conn:
            cursor = await conn.execute("SELECT 1 AS ok")
            row = await cursor.fetchone()
        if not row or row.get("ok") != 1:
            raise RuntimeError(f"Unexpected health check result from pool '{self.name}': {row!r}")
        return (time.perf_counter() - started) * 1000

    async def close(self) -> None:
        if not self.is_ready:
            return

        logger.info("Closing database pool", pool=self.name)
        try:
            if self.pool:
                await asyncio.wait_for(self.pool.close(), timeout=CLOSE_TIMEOUT_SECONDS)
            logger.info("Database pool closed", pool=self.name)
        except TimeoutError:
            logger.warning("Timed out waiting for pool to drain", pool=self.name)
        except Exception as e:
            logger.error("Database pool close failed", pool=self.name, error=str(e))
        finally:
            self._initialized = False
            self._closed = True

    @asynccontextmanager
    async def connection(self) -> AsyncGenerator[psycopg.AsyncConnection, None]:
        """Borrow a connection; it goes back to the pool when the block exits."""
        if self._closed:
            raise RuntimeError(f"Database pool '{self.name}' is closed")
        if not self._initialized:
            raise RuntimeError(f"Database pool '{self.name}' has not been initialized")

        try:
            async with self.pool.connection() as conn:
                yield conn
        except Exception as e:
            logger.error(
                "Error while holding pooled connection",
                pool=self.name,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[psycopg.AsyncConnection, None]:
        """Borrow a connection inside BEGIN/COMMIT; any exception rolls back."""
        async with self.connection() as conn:
            async with conn.transaction():
                yield conn

    async def health_check(self) -> dict[str, Any]:
        if not self.is_ready:
            reason = "Pool is closed" if self._closed else "Pool not initialized"
            return {"healthy": False, "service": self.name, "error": reason}

        try:
            connection_time_ms = await self._check_connection()
        except Exception as e:
            logger.error("Database pool health check failed", pool=self.name, error=str(e))
            return {
                "healthy": False,
                "service": self.name,
                "error": str(e),
                "error_type": type(e).__name__,
            }

        stats = self.pool.get_stats()
        size = stats.get("pool_size", 0)
        available = stats.get("pool_available", 0)
        utilization = (size - available) / size * 100 if size else 0.0

        report = {
            "healthy": utilization < UTILIZATION_UNHEALTHY_PERCENT,
            "service": self.name,
            "connection_time_ms": round(connection_time_ms, 2),
            "pool_stats": {
                "pool_size": size,
                "pool_available": available,
                "pool_utilization_percent": round(utilization, 2),
                "requests_waiting": stats.get("requests_waiting", 0),
            },
        }
        if utilization > UTILIZATION_WARN_PERCENT:
            report["warnings"] = [f"High pool utilization: {utilization:.1f}%"]
        return report


attribution_pool = DatabasePoolManager("attribution", settings.ATTRIBUTION_DB_URL)
production_pool = DatabasePoolManager("production", settings.PRODUCTION_DB_URL, read_only=True)


async def get_db_connection(pool: DatabasePoolManager | None = None):
    """Connection context manager for ``pool``, defaulting to the attribution database."""
    return (pool or attribution_pool).connection()


async def get_db_transaction(pool: DatabasePoolManager | None = None):
    """Transactional connection context manager, defaulting to the attribution database."""
    return (pool or attribution_pool).transaction()


async def db_health_check() -> dict[str, Any]:
    attribution = await attribution_pool.health_check()
    production = await production_pool.health_check()
    return {
        "healthy": bool(attribution.get("healthy")) and bool(production.get("healthy")),
        "attribution": attribution,
        "production": production,
    }
