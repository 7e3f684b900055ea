"""
Email history on the domain timeline.

The matching engine only records business events. Operators can pull the
full sent/received conversation history for an attributed domain onto its
timeline so reviewers see the outreach next to the outcomes.
"""

from app.features.attribution.domain import AttributedDomain, DomainEventRecord
from app.features.attribution.repository import EmailLedgerRepository, attribution_store
from app.features.attribution.services.interfaces import AttributionStoreProtocol, EmailLedger
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

EMAIL_SOURCE_TABLE = "email_conversation"


class DomainTimelineService:
    def __init__(
        self,
        ledger: EmailLedger = EmailLedgerRepository,
        store: AttributionStoreProtocol = attribution_store,
    ):
        self.ledger = ledger
        self.store = store

    async def add_email_events_to_timeline(self, client_id: str, domain: AttributedDomain) -> dict:
        """
        Copy the domain's email conversations onto its timeline.

        Rows are keyed by the conversation id, so running this again only adds
        emails that arrived since the last run.

        Returns:
            Dict: emails_found and events_added counts
        """
        emails = await self.ledger.get_emails_for_domain(client_id, domain.domain)

        added = 0
        async with self.store.transaction() as writer:
            for email in emails:
                inserted = await writer.create_domain_event(
                    DomainEventRecord(
                        attributed_domain_id=domain.id,
                        event_source=email.event_source,
                        event_time=email.timestamp_email,
                        email=email.prospect_email,
                        source_id=email.id,
                        source_table=EMAIL_SOURCE_TABLE,
                        metadata={"subject": email.subject, "prospect_id": email.prospect_id},
                    )
                )
                if inserted:
                    added += 1

        logger.info(
            "Email history added to timeline",
            domain_id=domain.id,
            domain=domain.domain,
            emails_found=len(emails),
            events_added=added,
        )
        return {"emails_found": len(emails), "events_added": added}


domain_timeline_service = DomainTimelineService()
