"""
Attribution matching engine.

Takes one business event and decides whether an outbound email earned it:

1. Hard match: an email was sent to the exact address before the event.
2. Soft match: an email was sent to anyone at the event's domain before the
   event. Disabled for personal email domains and for clients that turned
   soft matching off.
3. The earliest qualifying send is measured against the client's attribution
   window (inclusive); inside is ATTRIBUTED, outside is OUTSIDE_WINDOW.

Results are written through the attribution store in one transaction: the
per-domain aggregate, a timeline row and an audit row.
"""

from app.config import settings
from app.features.attribution.domain import (
    HARD_MATCH,
    NO_MATCH,
    SOFT_MATCH,
    AttributedDomainUpsert,
    AttributionEvent,
    AttributionMatchRecord,
    ClientConfig,
    DomainEventRecord,
    EmailSendRecord,
    MatchResult,
)
from app.features.attribution.domain.models import MatchType
from app.features.attribution.domain.normalization import (
    as_utc,
    days_between,
    extract_domain,
    format_attribution_month,
    map_event_type_to_source,
    normalize_domain,
    normalize_email,
)
from app.features.attribution.repository import (
    ClientConfigRepository,
    EmailLedgerRepository,
    attribution_store,
)
from app.features.attribution.services.interfaces import (
    AttributionStoreProtocol,
    ClientConfigSource,
    EmailLedger,
    PersonalDomainCheck,
)
from app.features.attribution.services.personal_domains import (
    personal_domain_classifier,
)
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

CLIENT_NOT_CONFIGURED_REASON = "Client not configured in attribution system"

_MATCH_LABELS = {
    HARD_MATCH: "Hard match (exact email)",
    SOFT_MATCH: "Soft match (same domain)",
}


def build_match_reason(
    *,
    match_type: MatchType,
    event_email: str | None,
    event_domain: str | None,
    matched_identity: str | None,
    send: EmailSendRecord | None,
    days_since_email: int | None,
    is_personal: bool,
    is_within_window: bool,
    window_days: int,
) -> str:
    """Human-readable audit reason; identical inputs give identical text."""
    if match_type == NO_MATCH or send is None:
        if is_personal:
            return f"No match: {event_domain} is a personal email domain (soft matching disabled)"
        return f"No match: No emails found sent to {event_email or event_domain} before the event"

    sent_on = as_utc(send.timestamp_email).date().isoformat()
    prefix = (
        f"{_MATCH_LABELS[match_type]}: Email sent to {matched_identity} on {sent_on}, "
        f"{days_since_email} days before event."
    )
    if is_within_window:
        return f"{prefix} ATTRIBUTED (within {window_days}-day window)"
    return f"{prefix} OUTSIDE WINDOW (>{window_days} days)"


def _no_match(reason: str) -> MatchResult:
    return MatchResult(
        match_type=NO_MATCH,
        attribution_status="NO_MATCH",
        is_within_window=False,
        days_since_email=None,
        matched_email=None,
        email_sent_at=None,
        prospect_id=None,
        match_reason=reason,
    )


class AttributionMatcher:
    """
    Stateless matcher wired to its collaborators.

    Safe to call concurrently for different domains. Events for the same
    (client, domain) should be applied in event-time order by the caller;
    the aggregate upsert itself never lets first_event_at move later.
    """

    def __init__(
        self,
        client_configs: ClientConfigSource = ClientConfigRepository,
        ledger: EmailLedger = EmailLedgerRepository,
        personal_domains: PersonalDomainCheck = personal_domain_classifier,
        store: AttributionStoreProtocol = attribution_store,
        default_window_days: int | None = None,
    ):
        self.client_configs = client_configs
        self.ledger = ledger
        self.personal_domains = personal_domains
        self.store = store
        self.default_window_days = (
            default_window_days if default_window_days is not None else settings.ATTRIBUTION_WINDOW_DAYS
        )

    def _window_days(self, client: ClientConfig) -> int:
        # 0 is a real setting: only same-day events are attributed
        if client.attribution_window_days is not None:
            return client.attribution_window_days
        return self.default_window_days

    async def process_attribution_event(self, event: AttributionEvent) -> MatchResult:
        """
        Classify one event and record the outcome.

        Lookup and persistence errors propagate; a missing client or an
        event with no email history is a normal NO_MATCH result.
        """
        client = await self.client_configs.get_client_config_by_client_id(event.client_id)
        if client is None:
            logger.warning(
                "Attribution event for unconfigured client",
                event_id=event.id,
                client_id=event.client_id,
            )
            return _no_match(CLIENT_NOT_CONFIGURED_REASON)

        event_time = as_utc(event.event_time)
        event_email = normalize_email(event.email)
        event_domain = normalize_domain(event.domain) or extract_domain(event_email)

        is_personal = False
        if event_domain and client.exclude_personal_domains:
            is_personal = await self.personal_domains.is_personal_email_domain(event_domain)

        match_type: MatchType = NO_MATCH
        send: EmailSendRecord | None = None
        matched_identity: str | None = None

        if event_email:
            send = await self.ledger.find_hard_match_email(client.client_id, event_email, event_time)
            if send:
                match_type = HARD_MATCH
                matched_identity = event_email

        if send is None and event_domain and not is_personal and client.soft_match_enabled:
            send = await self.ledger.find_soft_match_email(client.client_id, event_domain, event_time)
            if send:
                match_type = SOFT_MATCH
                # Soft matches only ever reveal the domain
                matched_identity = event_domain

        window_days = self._window_days(client)
        days_since_email: int | None = None
        is_within_window = False
        attribution_status = "NO_MATCH"

        if send:
            days_since_email = days_between(send.timestamp_email, event_time)
            is_within_window = days_since_email <= window_days
            attribution_status = "ATTRIBUTED" if is_within_window else "OUTSIDE_WINDOW"

        result = MatchResult(
            match_type=match_type,
            attribution_status=attribution_status,
            is_within_window=is_within_window,
            days_since_email=days_since_email,
            matched_email=matched_identity,
            email_sent_at=send.timestamp_email if send else None,
            prospect_id=send.prospect_id if send else None,
            match_reason=build_match_reason(
                match_type=match_type,
                event_email=event_email,
                event_domain=event_domain,
                matched_identity=matched_identity,
                send=send,
                days_since_email=days_since_email,
                is_personal=is_personal,
                is_within_window=is_within_window,
                window_days=window_days,
            ),
        )

        first_email_sent_at = None
        if event_domain:
            first_email_sent_at = await self._first_email_sent_at(client, event_email, event_domain)

        await self._record(client, event, event_time, event_email, event_domain, first_email_sent_at, result)

        logger.info(
            "Attribution event processed",
            event_id=event.id,
            client_id=event.client_id,
            domain=event_domain,
            match_type=result.match_type,
            attribution_status=result.attribution_status,
            days_since_email=result.days_since_email,
        )
        return result

    async def _first_email_sent_at(self, client: ClientConfig, event_email: str | None, event_domain: str):
        if event_email:
            first = await self.ledger.get_first_email_sent_to_address(client.client_id, event_email)
            if first:
                return first.timestamp_email
        first = await self.ledger.get_first_email_sent_to_domain(client.client_id, event_domain)
        return first.timestamp_email if first else None

    async def _record(
        self,
        client: ClientConfig,
        event: AttributionEvent,
        event_time,
        event_email: str | None,
        event_domain: str | None,
        first_email_sent_at,
        result: MatchResult,
    ) -> None:
        async with self.store.transaction() as writer:
            attributed_domain_id = None

            if event_domain:
                aggregate = await writer.upsert_attributed_domain(
                    AttributedDomainUpsert(
                        client_config_id=client.id,
                        domain=event_domain,
                        event_time=event_time,
                        first_attributed_month=format_attribution_month(event_time),
                        first_email_sent_at=first_email_sent_at,
                        is_within_window=result.is_within_window,
                        match_type=result.match_type,
                        has_positive_reply=event.event_type == "positive_reply",
                        has_sign_up=event.event_type == "sign_up",
                        has_meeting_booked=event.event_type == "meeting_booked",
                        has_paying_customer=event.event_type == "paying_customer",
                        matched_email=result.matched_email if result.match_type == HARD_MATCH else None,
                    )
                )
                attributed_domain_id = aggregate.id

                event_source = map_event_type_to_source(event.event_type)
                if event_source:
                    await writer.create_domain_event(
                        DomainEventRecord(
                            attributed_domain_id=aggregate.id,
                            event_source=event_source,
                            event_time=event_time,
                            email=event_email,
                            source_id=event.id,
                            source_table="attribution_event",
                            metadata=event.metadata,
                        )
                    )

            await writer.create_attribution_match(
                AttributionMatchRecord(
                    client_config_id=client.id,
                    attribution_event_id=event.id,
                    attributed_domain_id=attributed_domain_id,
                    event_type=event.event_type,
                    event_time=event_time,
                    event_email=event_email,
                    event_domain=event_domain,
                    match_type=result.match_type,
                    matched_email=result.matched_email,
                    prospect_id=result.prospect_id,
                    email_sent_at=result.email_sent_at,
                    days_since_email=result.days_since_email,
                    is_within_window=result.is_within_window,
                    match_reason=result.match_reason,
                )
            )


# Default wiring against the Postgres repositories
attribution_matcher = AttributionMatcher()


async def process_attribution_event(event: AttributionEvent) -> MatchResult:
    return await attribution_matcher.process_attribution_event(event)
