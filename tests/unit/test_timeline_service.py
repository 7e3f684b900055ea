from datetime import timedelta

import pytest

from app.features.attribution.domain import AttributedDomain
from app.features.attribution.services.timeline_service import DomainTimelineService
from tests.fakes import DAY_ZERO


def _acme_domain() -> AttributedDomain:
    return AttributedDomain(
        id="domain-1",
        client_config_id="cfg-1",
        domain="acme.com",
        first_email_sent_at=DAY_ZERO,
        first_event_at=DAY_ZERO + timedelta(days=10),
        last_event_at=DAY_ZERO + timedelta(days=10),
        first_attributed_month="2024-03",
        has_positive_reply=False,
        has_sign_up=True,
        has_meeting_booked=False,
        has_paying_customer=False,
        is_within_window=True,
        match_type="HARD_MATCH",
    )


@pytest.mark.asyncio
async def test_sent_and_received_emails_become_timeline_rows(ledger, store):
    ledger.add_conversation("client-1", "alice@acme.com", "Sent", DAY_ZERO, subject="Quick intro")
    ledger.add_conversation(
        "client-1", "Alice@Acme.com", "Received", DAY_ZERO + timedelta(days=1), subject="Re: Quick intro"
    )
    ledger.add_conversation("client-1", "zed@other.com", "Sent", DAY_ZERO)
    ledger.add_conversation("client-2", "bob@acme.com", "Sent", DAY_ZERO)
    service = DomainTimelineService(ledger=ledger, store=store)

    result = await service.add_email_events_to_timeline("client-1", _acme_domain())

    assert result == {"emails_found": 2, "events_added": 2}
    sent, received = store.domain_events
    assert sent.event_source == "EMAIL_SENT"
    assert sent.attributed_domain_id == "domain-1"
    assert sent.source_table == "email_conversation"
    assert sent.metadata == {"subject": "Quick intro", "prospect_id": "prospect-1"}
    assert received.event_source == "EMAIL_RECEIVED"
    assert received.email == "alice@acme.com"


@pytest.mark.asyncio
async def test_rerun_only_adds_new_emails(ledger, store):
    ledger.add_conversation("client-1", "alice@acme.com", "Sent", DAY_ZERO)
    service = DomainTimelineService(ledger=ledger, store=store)
    await service.add_email_events_to_timeline("client-1", _acme_domain())

    ledger.add_conversation("client-1", "alice@acme.com", "Received", DAY_ZERO + timedelta(days=2))
    result = await service.add_email_events_to_timeline("client-1", _acme_domain())

    assert result == {"emails_found": 2, "events_added": 1}
    assert len(store.domain_events) == 2
