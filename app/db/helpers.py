# app/db/helpers.py
"""
Thin query helpers used by the attribution repositories.

Each helper runs on the connection it is given (so several statements can
share one transaction) or borrows one from a pool, the attribution
database unless ``pool`` says otherwise. psycopg errors surface as
DatabaseError so callers handle one exception type.
"""

import asyncio
import functools
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import psycopg

from app.db.pool import DatabasePoolManager, get_db_connection
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

Params = tuple | dict


class DatabaseError(Exception):
    """A query failed; ``recoverable`` marks connection-level failures worth retrying."""

    def __init__(self, message: str, operation: str = "unknown", recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


@asynccontextmanager
async def _borrowed(
    connection: psycopg.AsyncConnection | None, pool: DatabasePoolManager | None
) -> AsyncGenerator[psycopg.AsyncConnection, None]:
    if connection is not None:
        yield connection
        return
    async with await get_db_connection(pool) as conn:
        yield conn


def _wrap_error(operation: str, query: str, error: psycopg.Error) -> DatabaseError:
    logger.error(
        "Query failed",
        operation=operation,
        query=query[:100],
        error=str(error),
        error_type=type(error).__name__,
    )
    return DatabaseError(
        f"Query failed: {error}",
        operation=operation,
        recoverable=isinstance(error, psycopg.OperationalError),
    )


async def fetch_one(
    query: str,
    params: Params = (),
    *,
    connection: psycopg.AsyncConnection | None = None,
    pool: DatabasePoolManager | None = None,
) -> dict[str, Any] | None:
    """First row of ``query`` as a dict, or None when nothing matched."""
    try:
        async with _borrowed(connection, pool) as conn:
            cursor = await conn.execute(query, params)
            return await cursor.fetchone()
    except psycopg.Error as e:
        raise _wrap_error("fetch_one", query, e) from e


async def fetch_all(
    query: str,
    params: Params = (),
    *,
    connection: psycopg.AsyncConnection | None = None,
    pool: DatabasePoolManager | None = None,
) -> list[dict[str, Any]]:
    try:
        async with _borrowed(connection, pool) as conn:
            cursor = await conn.execute(query, params)
            return await cursor.fetchall()
    except psycopg.Error as e:
        raise _wrap_error("fetch_all", query, e) from e


async def fetch_val(
    query: str,
    params: Params = (),
    *,
    connection: psycopg.AsyncConnection | None = None,
    pool: DatabasePoolManager | None = None,
) -> Any:
    """First column of the first row, or None."""
    row = await fetch_one(query, params, connection=connection, pool=pool)
    if not row:
        return None
    return next(iter(row.values()))


async def execute_query(
    query: str,
    params: Params = (),
    *,
    connection: psycopg.AsyncConnection | None = None,
    pool: DatabasePoolManager | None = None,
) -> int:
    """Run a write statement and return the affected row count."""
    try:
        async with _borrowed(connection, pool) as conn:
            cursor = await conn.execute(query, params)
            return cursor.rowcount
    except psycopg.Error as e:
        raise _wrap_error("execute", query, e) from e


def with_db_retry(max_retries: int = 3, base_delay: float = 0.1):
    """
    Retry a coroutine on recoverable DatabaseError with exponential backoff.

    Non-recoverable errors (constraint violations, bad SQL) are raised on the
    first attempt. The wait before retry ``n`` is ``base_delay * 2**n``.
    """

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            attempt = 0
            while True:
                try:
                    return await func(*args, **kwargs)
                except DatabaseError as e:
                    if not e.recoverable:
                        raise
                    if attempt >= max_retries:
                        logger.error(
                            "Giving up on database operation",
                            operation=func.__name__,
                            attempts=attempt + 1,
                            error=str(e),
                        )
                        raise

                    delay = base_delay * (2**attempt)
                    attempt += 1
                    logger.warning(
                        "Retrying database operation",
                        operation=func.__name__,
                        attempt=attempt,
                        max_retries=max_retries,
                        delay=delay,
                        error=str(e),
                    )
                    await asyncio.sleep(delay)

        return wrapper

    return decorator
