from datetime import timedelta

import pytest

from app.features.attribution.domain import AttributionEvent, ClientConfig
from app.features.attribution.services.matching_engine import (
    CLIENT_NOT_CONFIGURED_REASON,
    AttributionMatcher,
)
from tests.fakes import DAY_ZERO, FakeClientConfigs


def _matcher(client_configs, ledger, personal_domains, store):
    return AttributionMatcher(
        client_configs=client_configs,
        ledger=ledger,
        personal_domains=personal_domains,
        store=store,
        default_window_days=31,
    )


def _event(event_id="evt-1", event_type="paying_customer", days=0, email=None, domain=None):
    return AttributionEvent(
        id=event_id,
        client_id="client-1",
        event_type=event_type,
        event_time=DAY_ZERO + timedelta(days=days),
        email=email,
        domain=domain,
    )


@pytest.mark.asyncio
async def test_hard_match_within_window(client_configs, ledger, personal_domains, store):
    ledger.add_send("client-1", "alice@acme.com", DAY_ZERO, prospect_id="prospect-alice")
    matcher = _matcher(client_configs, ledger, personal_domains, store)

    result = await matcher.process_attribution_event(_event(days=20, email="Alice@Acme.com"))

    assert result.match_type == "HARD_MATCH"
    assert result.attribution_status == "ATTRIBUTED"
    assert result.is_within_window is True
    assert result.days_since_email == 20
    assert result.matched_email == "alice@acme.com"
    assert result.prospect_id == "prospect-alice"
    assert result.match_reason == (
        "Hard match (exact email): Email sent to alice@acme.com on 2024-03-01, "
        "20 days before event. ATTRIBUTED (within 31-day window)"
    )


@pytest.mark.asyncio
async def test_soft_match_reveals_only_domain(client_configs, ledger, personal_domains, store):
    ledger.add_send("client-1", "bob@acme.com", DAY_ZERO)
    matcher = _matcher(client_configs, ledger, personal_domains, store)

    result = await matcher.process_attribution_event(
        _event(event_type="sign_up", days=10, email="carol@acme.com", domain="acme.com")
    )

    assert result.match_type == "SOFT_MATCH"
    assert result.attribution_status == "ATTRIBUTED"
    assert result.matched_email == "acme.com"
    assert "bob@acme.com" not in result.match_reason

    aggregate = store.domain("cfg-1", "acme.com")
    assert aggregate.has_sign_up is True
    assert aggregate.matched_emails == []


@pytest.mark.asyncio
async def test_no_email_history_is_no_match(client_configs, ledger, personal_domains, store):
    matcher = _matcher(client_configs, ledger, personal_domains, store)

    result = await matcher.process_attribution_event(
        _event(event_type="meeting_booked", domain="newdomain.com")
    )

    assert result.match_type == "NO_MATCH"
    assert result.attribution_status == "NO_MATCH"
    assert result.is_within_window is False
    assert result.days_since_email is None
    assert result.match_reason == "No match: No emails found sent to newdomain.com before the event"
    assert len(store.matches) == 1
    assert store.domain("cfg-1", "newdomain.com").match_type == "NO_MATCH"


@pytest.mark.asyncio
async def test_hard_match_outside_window(client_configs, ledger, personal_domains, store):
    ledger.add_send("client-1", "dan@bigco.com", DAY_ZERO)
    matcher = _matcher(client_configs, ledger, personal_domains, store)

    result = await matcher.process_attribution_event(
        _event(event_type="positive_reply", days=45, email="dan@bigco.com")
    )

    assert result.match_type == "HARD_MATCH"
    assert result.attribution_status == "OUTSIDE_WINDOW"
    assert result.is_within_window is False
    assert result.days_since_email == 45
    assert result.match_reason.endswith("OUTSIDE WINDOW (>31 days)")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "days, expected_status",
    [(31, "ATTRIBUTED"), (32, "OUTSIDE_WINDOW")],
)
async def test_window_boundary_is_inclusive(
    client_configs, ledger, personal_domains, store, days, expected_status
):
    ledger.add_send("client-1", "alice@acme.com", DAY_ZERO)
    matcher = _matcher(client_configs, ledger, personal_domains, store)

    result = await matcher.process_attribution_event(_event(days=days, email="alice@acme.com"))

    assert result.days_since_email == days
    assert result.attribution_status == expected_status


@pytest.mark.asyncio
async def test_per_client_window_overrides_default(ledger, personal_domains, store):
    configs = FakeClientConfigs(
        ClientConfig(
            id="cfg-1",
            client_id="client-1",
            client_name="Acme",
            slug="acme",
            attribution_window_days=60,
        )
    )
    ledger.add_send("client-1", "dan@bigco.com", DAY_ZERO)
    matcher = _matcher(configs, ledger, personal_domains, store)

    result = await matcher.process_attribution_event(_event(days=45, email="dan@bigco.com"))

    assert result.attribution_status == "ATTRIBUTED"
    assert "within 60-day window" in result.match_reason


@pytest.mark.asyncio
async def test_zero_day_window_is_honoured(ledger, personal_domains, store):
    configs = FakeClientConfigs(
        ClientConfig(
            id="cfg-1",
            client_id="client-1",
            client_name="Acme",
            slug="acme",
            attribution_window_days=0,
        )
    )
    ledger.add_send("client-1", "dan@bigco.com", DAY_ZERO)
    matcher = _matcher(configs, ledger, personal_domains, store)

    same_day = await matcher.process_attribution_event(
        _event(event_id="evt-1", days=0, email="dan@bigco.com")
    )
    next_day = await matcher.process_attribution_event(
        _event(event_id="evt-2", days=1, email="dan@bigco.com")
    )

    assert same_day.attribution_status == "ATTRIBUTED"
    assert next_day.attribution_status == "OUTSIDE_WINDOW"
    assert next_day.days_since_email == 1


@pytest.mark.asyncio
async def test_personal_domain_blocks_soft_match(client_configs, ledger, personal_domains, store):
    ledger.add_send("client-1", "someone.else@gmail.com", DAY_ZERO)
    matcher = _matcher(client_configs, ledger, personal_domains, store)

    result = await matcher.process_attribution_event(_event(days=5, email="eve@gmail.com"))

    assert result.match_type == "NO_MATCH"
    assert result.match_reason == (
        "No match: gmail.com is a personal email domain (soft matching disabled)"
    )


@pytest.mark.asyncio
async def test_personal_domain_still_allows_hard_match(client_configs, ledger, personal_domains, store):
    ledger.add_send("client-1", "eve@gmail.com", DAY_ZERO)
    matcher = _matcher(client_configs, ledger, personal_domains, store)

    result = await matcher.process_attribution_event(_event(days=5, email="eve@gmail.com"))

    assert result.match_type == "HARD_MATCH"
    assert result.attribution_status == "ATTRIBUTED"


@pytest.mark.asyncio
async def test_soft_matching_disabled_for_client(ledger, personal_domains, store):
    configs = FakeClientConfigs(
        ClientConfig(
            id="cfg-1", client_id="client-1", client_name="Acme", slug="acme", soft_match_enabled=False
        )
    )
    ledger.add_send("client-1", "bob@acme.com", DAY_ZERO)
    matcher = _matcher(configs, ledger, personal_domains, store)

    result = await matcher.process_attribution_event(_event(days=3, email="carol@acme.com"))

    assert result.match_type == "NO_MATCH"


@pytest.mark.asyncio
async def test_unknown_client_writes_nothing(ledger, personal_domains, store):
    matcher = _matcher(FakeClientConfigs(), ledger, personal_domains, store)

    result = await matcher.process_attribution_event(_event(email="alice@acme.com"))

    assert result.match_type == "NO_MATCH"
    assert result.match_reason == CLIENT_NOT_CONFIGURED_REASON
    assert store.matches == []
    assert store.domains == {}


@pytest.mark.asyncio
async def test_event_without_domain_still_audited(client_configs, ledger, personal_domains, store):
    matcher = _matcher(client_configs, ledger, personal_domains, store)

    result = await matcher.process_attribution_event(_event(email="not-an-email"))

    assert result.match_type == "NO_MATCH"
    assert store.domains == {}
    assert store.domain_events == []
    assert len(store.matches) == 1
    assert store.matches[0].attributed_domain_id is None


@pytest.mark.asyncio
async def test_send_after_event_does_not_match(client_configs, ledger, personal_domains, store):
    ledger.add_send("client-1", "alice@acme.com", DAY_ZERO + timedelta(days=2))
    matcher = _matcher(client_configs, ledger, personal_domains, store)

    result = await matcher.process_attribution_event(_event(days=1, email="alice@acme.com"))

    assert result.match_type == "NO_MATCH"
    # The aggregate still records when the domain was first emailed
    assert store.domain("cfg-1", "acme.com").first_email_sent_at == DAY_ZERO + timedelta(days=2)


@pytest.mark.asyncio
async def test_reprocessing_is_deterministic(client_configs, ledger, personal_domains, store):
    ledger.add_send("client-1", "alice@acme.com", DAY_ZERO)
    matcher = _matcher(client_configs, ledger, personal_domains, store)
    event = _event(days=20, email="alice@acme.com")

    first = await matcher.process_attribution_event(event)
    second = await matcher.process_attribution_event(event)

    assert first == second
    assert len(store.matches) == 2
    assert len(store.domain_events) == 1
    assert store.domain("cfg-1", "acme.com").first_event_at == event.event_time


@pytest.mark.asyncio
async def test_aggregate_merges_events(client_configs, ledger, personal_domains, store):
    ledger.add_send("client-1", "alice@acme.com", DAY_ZERO)
    ledger.add_send("client-1", "bob@acme.com", DAY_ZERO + timedelta(days=1))
    matcher = _matcher(client_configs, ledger, personal_domains, store)

    await matcher.process_attribution_event(
        _event("evt-2", "paying_customer", days=50, email="bob@acme.com")
    )
    await matcher.process_attribution_event(
        _event("evt-1", "meeting_booked", days=10, email="alice@acme.com")
    )

    aggregate = store.domain("cfg-1", "acme.com")
    assert aggregate.first_event_at == DAY_ZERO + timedelta(days=10)
    assert aggregate.last_event_at == DAY_ZERO + timedelta(days=50)
    assert aggregate.first_attributed_month == "2024-03"
    assert aggregate.has_paying_customer is True
    assert aggregate.has_meeting_booked is True
    assert aggregate.has_sign_up is False
    assert aggregate.first_email_sent_at == DAY_ZERO
    assert aggregate.matched_emails == ["alice@acme.com", "bob@acme.com"]
    # Classification reflects the last processed event
    assert aggregate.is_within_window is True
    assert aggregate.match_type == "HARD_MATCH"
    assert aggregate.status == "NO_STATUS"


@pytest.mark.asyncio
async def test_engine_leaves_review_fields_alone(client_configs, ledger, personal_domains, store):
    ledger.add_send("client-1", "alice@acme.com", DAY_ZERO)
    matcher = _matcher(client_configs, ledger, personal_domains, store)

    await matcher.process_attribution_event(_event("evt-1", days=5, email="alice@acme.com"))
    aggregate = store.domain("cfg-1", "acme.com")
    aggregate.status = "PENDING_CLIENT_REVIEW"
    aggregate.review_sent_by = "agency@example.com"

    await matcher.process_attribution_event(_event("evt-2", days=40, email="alice@acme.com"))

    assert aggregate.status == "PENDING_CLIENT_REVIEW"
    assert aggregate.review_sent_by == "agency@example.com"
    assert aggregate.is_within_window is False


@pytest.mark.asyncio
async def test_lookup_failure_propagates(client_configs, ledger, personal_domains, store):
    ledger.fail_lookups = True
    matcher = _matcher(client_configs, ledger, personal_domains, store)

    with pytest.raises(RuntimeError):
        await matcher.process_attribution_event(_event(email="alice@acme.com"))

    assert store.matches == []


@pytest.mark.asyncio
async def test_timeline_row_carries_event_source(client_configs, ledger, personal_domains, store):
    matcher = _matcher(client_configs, ledger, personal_domains, store)

    await matcher.process_attribution_event(
        _event(event_type="positive_reply", email="alice@acme.com")
    )

    entry = store.domain_events[0]
    assert entry.event_source == "POSITIVE_REPLY"
    assert entry.source_id == "evt-1"
    assert entry.source_table == "attribution_event"
