"""
Read-only queries against the production outbound-email platform.

Everything here runs on the production pool, which is opened read only.
Lookups always return the earliest qualifying send so the window check in
the matching engine measures from the first touch.
"""

from datetime import datetime
from typing import Any

from app.db.helpers import fetch_all, fetch_one, fetch_val
from app.db.pool import production_pool
from app.features.attribution.domain import (
    AttributionEvent,
    EmailConversationRecord,
    EmailSendRecord,
)
from app.features.attribution.domain.models import EVENT_TYPES
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class EmailLedgerRepository:
    """Email-ledger lookups scoped by production client id."""

    SEND_SELECT = """
        SELECT ec.id, ec.prospect_id, ec.timestamp_email,
               LOWER(p.lead_email) AS recipient_email,
               LOWER(p.company_domain) AS recipient_domain
        FROM email_conversation ec
        JOIN prospect p ON ec.prospect_id = p.id
        JOIN client_integration ci ON ec.client_integration_id = ci.id
        WHERE ec.type = 'Sent'
          AND ci.client_id = %(client_id)s
    """

    # A prospect belongs to a domain through its company domain or its address
    DOMAIN_FILTER = """
          AND (LOWER(p.company_domain) = %(domain)s
               OR SPLIT_PART(LOWER(p.lead_email), '@', 2) = %(domain)s)
    """

    EVENT_SELECT = """
        SELECT ae.id, ci.client_id, ae.event_type, ae.email, ae.domain,
               ae.event_time, ae.metadata
        FROM attribution_event ae
        JOIN client_integration ci ON ae.client_integration_id = ci.id
        WHERE ci.client_id = %(client_id)s
          AND ae.event_type = ANY(%(event_types)s)
    """

    @classmethod
    def _row_to_send(cls, row: dict | None) -> EmailSendRecord | None:
        if not row:
            return None

        return EmailSendRecord(
            id=str(row["id"]),
            prospect_id=str(row["prospect_id"]) if row.get("prospect_id") else None,
            recipient_email=row.get("recipient_email"),
            recipient_domain=row.get("recipient_domain"),
            timestamp_email=row["timestamp_email"],
        )

    @classmethod
    async def find_hard_match_email(
        cls, client_id: str, email: str, before_time: datetime
    ) -> EmailSendRecord | None:
        """Earliest send to this exact address at or before before_time."""

        query = f"""
            {cls.SEND_SELECT}
              AND LOWER(p.lead_email) = %(email)s
              AND ec.timestamp_email <= %(before_time)s
            ORDER BY ec.timestamp_email ASC
            LIMIT 1
        """

        row = await fetch_one(
            query,
            {"client_id": client_id, "email": email.lower(), "before_time": before_time},
            pool=production_pool,
        )
        return cls._row_to_send(row)

    @classmethod
    async def find_soft_match_email(
        cls, client_id: str, domain: str, before_time: datetime
    ) -> EmailSendRecord | None:
        """Earliest send to any address at this domain at or before before_time."""

        query = f"""
            {cls.SEND_SELECT}
            {cls.DOMAIN_FILTER}
              AND ec.timestamp_email <= %(before_time)s
            ORDER BY ec.timestamp_email ASC
            LIMIT 1
        """

        row = await fetch_one(
            query,
            {"client_id": client_id, "domain": domain.lower(), "before_time": before_time},
            pool=production_pool,
        )
        return cls._row_to_send(row)

    @classmethod
    async def get_first_email_sent_to_address(
        cls, client_id: str, email: str
    ) -> EmailSendRecord | None:
        query = f"""
            {cls.SEND_SELECT}
              AND LOWER(p.lead_email) = %(email)s
            ORDER BY ec.timestamp_email ASC
            LIMIT 1
        """

        row = await fetch_one(
            query, {"client_id": client_id, "email": email.lower()}, pool=production_pool
        )
        return cls._row_to_send(row)

    @classmethod
    async def get_first_email_sent_to_domain(
        cls, client_id: str, domain: str
    ) -> EmailSendRecord | None:
        query = f"""
            {cls.SEND_SELECT}
            {cls.DOMAIN_FILTER}
            ORDER BY ec.timestamp_email ASC
            LIMIT 1
        """

        row = await fetch_one(
            query, {"client_id": client_id, "domain": domain.lower()}, pool=production_pool
        )
        return cls._row_to_send(row)

    @classmethod
    async def get_emails_for_domain(
        cls, client_id: str, domain: str
    ) -> list[EmailConversationRecord]:
        """Every sent and received email with prospects at this domain, oldest first."""

        query = f"""
            SELECT ec.id, ec.prospect_id, ec.type, ec.timestamp_email, ec.subject,
                   LOWER(p.lead_email) AS prospect_email
            FROM email_conversation ec
            JOIN prospect p ON ec.prospect_id = p.id
            JOIN client_integration ci ON ec.client_integration_id = ci.id
            WHERE ci.client_id = %(client_id)s
            {cls.DOMAIN_FILTER}
            ORDER BY ec.timestamp_email ASC, ec.id
        """

        rows = await fetch_all(
            query, {"client_id": client_id, "domain": domain.lower()}, pool=production_pool
        )
        return [
            EmailConversationRecord(
                id=str(row["id"]),
                prospect_id=str(row["prospect_id"]) if row.get("prospect_id") else None,
                direction=row["type"],
                timestamp_email=row["timestamp_email"],
                subject=row.get("subject"),
                prospect_email=row.get("prospect_email"),
            )
            for row in rows
        ]

    @classmethod
    def _row_to_event(cls, row: dict) -> AttributionEvent:
        return AttributionEvent(
            id=str(row["id"]),
            client_id=str(row["client_id"]),
            event_type=row["event_type"],
            event_time=row["event_time"],
            email=row.get("email"),
            domain=row.get("domain"),
            metadata=row.get("metadata"),
        )

    @classmethod
    async def fetch_attribution_events(
        cls, client_id: str, after_event_id: str | None = None, limit: int = 1000
    ) -> list[AttributionEvent]:
        """
        Keyset-paginated page of a client's events ordered by id.

        Args:
            client_id: Production client id
            after_event_id: Resume after this id (exclusive); None starts from the beginning
            limit: Page size
        """

        params: dict[str, Any] = {
            "client_id": client_id,
            "event_types": list(EVENT_TYPES),
            "limit": limit,
        }
        cursor_filter = ""
        if after_event_id:
            cursor_filter = "AND ae.id > %(after_event_id)s"
            params["after_event_id"] = after_event_id

        query = f"""
            {cls.EVENT_SELECT}
              {cursor_filter}
            ORDER BY ae.id
            LIMIT %(limit)s
        """

        rows = await fetch_all(query, params, pool=production_pool)
        return [cls._row_to_event(row) for row in rows]

    @classmethod
    async def count_attribution_events(cls, client_id: str) -> int:
        query = """
            SELECT COUNT(*) AS count
            FROM attribution_event ae
            JOIN client_integration ci ON ae.client_integration_id = ci.id
            WHERE ci.client_id = %(client_id)s
              AND ae.event_type = ANY(%(event_types)s)
        """

        count = await fetch_val(
            query,
            {"client_id": client_id, "event_types": list(EVENT_TYPES)},
            pool=production_pool,
        )
        return int(count or 0)

    @classmethod
    async def fetch_active_clients(cls) -> list[dict[str, Any]]:
        """Active, non-deleted production clients as {"id", "client_name"} dicts."""

        query = """
            SELECT id, client_name
            FROM client
            WHERE is_active = true AND is_deleted = false
            ORDER BY client_name
        """

        rows = await fetch_all(query, pool=production_pool)
        return [{"id": str(row["id"]), "client_name": row["client_name"]} for row in rows]

    @classmethod
    async def get_client(cls, client_id: str) -> dict[str, Any] | None:
        query = "SELECT id, client_name FROM client WHERE id = %s"
        row = await fetch_one(query, (client_id,), pool=production_pool)
        if not row:
            return None
        return {"id": str(row["id"]), "client_name": row["client_name"]}
