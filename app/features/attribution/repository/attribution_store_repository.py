"""
Write side of the matching engine.

AttributionStore.transaction() yields an AttributionWriter bound to one
attribution-database transaction, so the aggregate upsert, the timeline row
and the audit row for an event either all commit or all roll back.
"""

import json
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import psycopg

from app.db.helpers import DatabaseError, execute_query, fetch_one
from app.db.pool import get_db_transaction
from app.features.attribution.domain import (
    AttributedDomain,
    AttributedDomainUpsert,
    AttributionMatchRecord,
    DomainEventRecord,
)
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

DOMAIN_SELECT_COLUMNS = """
    id, client_config_id, domain, first_email_sent_at, first_event_at, last_event_at,
    first_attributed_month, has_positive_reply, has_sign_up, has_meeting_booked,
    has_paying_customer, is_within_window, match_type, status, matched_emails,
    review_sent_at, review_sent_by, review_responded_at, review_response,
    review_response_by, review_notes
"""

# Merge rules: earliest first_event_at (and its month) wins, flags only turn on,
# classification is last-write-wins, status and review_* are never touched.
UPSERT_ATTRIBUTED_DOMAIN = f"""
    INSERT INTO attributed_domain (
        client_config_id, domain, first_email_sent_at, first_event_at, last_event_at,
        first_attributed_month, has_positive_reply, has_sign_up, has_meeting_booked,
        has_paying_customer, is_within_window, match_type, matched_emails
    )
    VALUES (
        %(client_config_id)s, %(domain)s, %(first_email_sent_at)s, %(event_time)s, %(event_time)s,
        %(first_attributed_month)s, %(has_positive_reply)s, %(has_sign_up)s,
        %(has_meeting_booked)s, %(has_paying_customer)s, %(is_within_window)s,
        %(match_type)s, %(matched_emails)s
    )
    ON CONFLICT (client_config_id, domain) DO UPDATE SET
        first_email_sent_at = LEAST(attributed_domain.first_email_sent_at, EXCLUDED.first_email_sent_at),
        first_attributed_month = CASE
            WHEN attributed_domain.first_event_at IS NULL
                 OR EXCLUDED.first_event_at < attributed_domain.first_event_at
            THEN EXCLUDED.first_attributed_month
            ELSE attributed_domain.first_attributed_month
        END,
        first_event_at = LEAST(attributed_domain.first_event_at, EXCLUDED.first_event_at),
        last_event_at = GREATEST(attributed_domain.last_event_at, EXCLUDED.last_event_at),
        has_positive_reply = attributed_domain.has_positive_reply OR EXCLUDED.has_positive_reply,
        has_sign_up = attributed_domain.has_sign_up OR EXCLUDED.has_sign_up,
        has_meeting_booked = attributed_domain.has_meeting_booked OR EXCLUDED.has_meeting_booked,
        has_paying_customer = attributed_domain.has_paying_customer OR EXCLUDED.has_paying_customer,
        is_within_window = EXCLUDED.is_within_window,
        match_type = EXCLUDED.match_type,
        matched_emails = ARRAY(
            SELECT DISTINCT address
            FROM unnest(
                COALESCE(attributed_domain.matched_emails, ARRAY[]::text[]) || EXCLUDED.matched_emails
            ) AS address
            ORDER BY address
        ),
        updated_at = NOW()
    RETURNING {DOMAIN_SELECT_COLUMNS}
"""

INSERT_DOMAIN_EVENT = """
    INSERT INTO domain_event (
        attributed_domain_id, event_source, event_time, email,
        source_id, source_table, metadata
    )
    VALUES (%s, %s, %s, %s, %s, %s, %s::jsonb)
    ON CONFLICT (attributed_domain_id, event_source, source_id) DO NOTHING
"""

INSERT_ATTRIBUTION_MATCH = """
    INSERT INTO attribution_match (
        client_config_id, attribution_event_id, attributed_domain_id, prospect_id,
        event_type, event_time, event_email, event_domain, match_type,
        matched_email, email_sent_at, days_since_email, is_within_window, match_reason
    )
    VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
    RETURNING id
"""


def _metadata_json(metadata: dict | None) -> str | None:
    return json.dumps(metadata, default=str) if metadata else None


class AttributionWriter:
    """Writes bound to a single open transaction."""

    def __init__(self, connection: psycopg.AsyncConnection):
        self.connection = connection

    async def upsert_attributed_domain(self, record: AttributedDomainUpsert) -> AttributedDomain:
        params = {
            "client_config_id": record.client_config_id,
            "domain": record.domain,
            "first_email_sent_at": record.first_email_sent_at,
            "event_time": record.event_time,
            "first_attributed_month": record.first_attributed_month,
            "has_positive_reply": record.has_positive_reply,
            "has_sign_up": record.has_sign_up,
            "has_meeting_booked": record.has_meeting_booked,
            "has_paying_customer": record.has_paying_customer,
            "is_within_window": record.is_within_window,
            "match_type": record.match_type,
            "matched_emails": [record.matched_email] if record.matched_email else [],
        }

        row = await fetch_one(UPSERT_ATTRIBUTED_DOMAIN, params, connection=self.connection)
        if not row:
            raise DatabaseError(
                "Attributed domain upsert returned no row", operation="upsert_attributed_domain"
            )
        return AttributedDomain.from_row(row)

    async def create_domain_event(self, record: DomainEventRecord) -> bool:
        """Append a timeline row. Returns False when the row already existed."""

        inserted = await execute_query(
            INSERT_DOMAIN_EVENT,
            (
                record.attributed_domain_id,
                record.event_source,
                record.event_time,
                record.email,
                record.source_id,
                record.source_table,
                _metadata_json(record.metadata),
            ),
            connection=self.connection,
        )
        return inserted > 0

    async def create_attribution_match(self, record: AttributionMatchRecord) -> str:
        row = await fetch_one(
            INSERT_ATTRIBUTION_MATCH,
            (
                record.client_config_id,
                record.attribution_event_id,
                record.attributed_domain_id,
                record.prospect_id,
                record.event_type,
                record.event_time,
                record.event_email,
                record.event_domain,
                record.match_type,
                record.matched_email,
                record.email_sent_at,
                record.days_since_email,
                record.is_within_window,
                record.match_reason,
            ),
            connection=self.connection,
        )
        if not row:
            raise DatabaseError(
                "Attribution match insert returned no row", operation="create_attribution_match"
            )
        return str(row["id"])


class AttributionStore:
    """Default Postgres-backed store used by the matching engine."""

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[AttributionWriter, None]:
        try:
            async with await get_db_transaction() as conn:
                yield AttributionWriter(conn)
        except psycopg.Error as e:
            logger.error("Attribution transaction failed", error=str(e))
            raise DatabaseError(
                f"Attribution transaction failed: {e}",
                operation="attribution_transaction",
                recoverable=isinstance(e, psycopg.OperationalError),
            ) from e


attribution_store = AttributionStore()
