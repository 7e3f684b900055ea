"""
Read models and review-workflow writes for attributed_domain.

The matching engine never calls into this module; it owns the status and
review_* columns that the engine leaves alone.
"""

import json
from datetime import datetime
from typing import Any

import psycopg

from app.db.helpers import DatabaseError, fetch_all, fetch_one
from app.db.pool import get_db_transaction
from app.features.attribution.domain import AttributedDomain
from app.features.attribution.repository.attribution_store_repository import DOMAIN_SELECT_COLUMNS
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

INSERT_STATUS_CHANGE = """
    INSERT INTO domain_event (attributed_domain_id, event_source, event_time, metadata)
    VALUES (%s, 'STATUS_CHANGE', %s, %s::jsonb)
"""


class AttributedDomainRepository:
    """Queries behind the domain listing, timeline and review endpoints."""

    @classmethod
    async def get_by_id(cls, domain_id: str) -> AttributedDomain | None:
        query = f"SELECT {DOMAIN_SELECT_COLUMNS} FROM attributed_domain WHERE id = %s"
        row = await fetch_one(query, (domain_id,))
        return AttributedDomain.from_row(row) if row else None

    @classmethod
    async def list_for_client(
        cls,
        client_config_id: str,
        *,
        status: str | None = None,
        match_type: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[AttributedDomain]:
        filters = ["client_config_id = %(client_config_id)s"]
        params: dict[str, Any] = {
            "client_config_id": client_config_id,
            "limit": limit,
            "offset": offset,
        }
        if status:
            filters.append("status = %(status)s")
            params["status"] = status
        if match_type:
            filters.append("match_type = %(match_type)s")
            params["match_type"] = match_type

        query = f"""
            SELECT {DOMAIN_SELECT_COLUMNS}
            FROM attributed_domain
            WHERE {" AND ".join(filters)}
            ORDER BY first_event_at DESC NULLS LAST, domain
            LIMIT %(limit)s OFFSET %(offset)s
        """

        rows = await fetch_all(query, params)
        return [AttributedDomain.from_row(row) for row in rows]

    @classmethod
    async def get_timeline(cls, domain_id: str) -> list[dict[str, Any]]:
        query = """
            SELECT id, event_source, event_time, email, source_id, source_table, metadata
            FROM domain_event
            WHERE attributed_domain_id = %s
            ORDER BY event_time, created_at
        """

        rows = await fetch_all(query, (domain_id,))
        return [
            {
                "id": str(row["id"]),
                "event_source": row["event_source"],
                "event_time": row["event_time"],
                "email": row.get("email"),
                "source_id": str(row["source_id"]) if row.get("source_id") else None,
                "source_table": row.get("source_table"),
                "metadata": row.get("metadata"),
            }
            for row in rows
        ]

    @classmethod
    async def transition_status(
        cls,
        domain_id: str,
        *,
        from_status: str,
        to_status: str,
        changes: dict[str, Any],
        changed_at: datetime,
        metadata: dict[str, Any],
    ) -> AttributedDomain | None:
        """
        Move a domain from from_status to to_status and log a STATUS_CHANGE row.

        The UPDATE is conditional on the current status, so a concurrent
        transition makes this return None instead of overwriting it.
        """

        assignments = ["status = %(to_status)s", "updated_at = NOW()"]
        params: dict[str, Any] = {
            "domain_id": domain_id,
            "from_status": from_status,
            "to_status": to_status,
        }
        for column, value in changes.items():
            assignments.append(f"{column} = %({column})s")
            params[column] = value

        update_query = f"""
            UPDATE attributed_domain
            SET {", ".join(assignments)}
            WHERE id = %(domain_id)s AND status = %(from_status)s
            RETURNING {DOMAIN_SELECT_COLUMNS}
        """

        try:
            async with await get_db_transaction() as conn:
                row = await fetch_one(update_query, params, connection=conn)
                if not row:
                    return None
                await conn.execute(
                    INSERT_STATUS_CHANGE,
                    (domain_id, changed_at, json.dumps(metadata, default=str)),
                )
        except psycopg.Error as e:
            logger.error("Status transition failed", domain_id=domain_id, error=str(e))
            raise DatabaseError(
                f"Status transition failed: {e}",
                operation="transition_status",
                recoverable=isinstance(e, psycopg.OperationalError),
            ) from e

        logger.info(
            "Domain status changed",
            domain_id=domain_id,
            from_status=from_status,
            to_status=to_status,
        )
        return AttributedDomain.from_row(row)

    @classmethod
    async def list_expired_reviews(cls, sent_before: datetime) -> list[AttributedDomain]:
        query = f"""
            SELECT {DOMAIN_SELECT_COLUMNS}
            FROM attributed_domain
            WHERE status = 'PENDING_CLIENT_REVIEW'
              AND review_sent_at IS NOT NULL
              AND review_sent_at < %s
            ORDER BY review_sent_at
        """

        rows = await fetch_all(query, (sent_before,))
        return [AttributedDomain.from_row(row) for row in rows]
