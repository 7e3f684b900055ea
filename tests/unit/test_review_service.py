from dataclasses import replace
from datetime import timedelta

import pytest

from app.features.attribution.domain import AttributedDomain
from app.features.attribution.services.review_workflow import (
    DomainNotFoundError,
    ReviewService,
    ReviewTransitionError,
    ReviewValidationError,
    baseline_status,
)
from tests.fakes import DAY_ZERO


def _domain(domain_id="domain-1", status="NO_STATUS", **overrides) -> AttributedDomain:
    fields = {
        "id": domain_id,
        "client_config_id": "cfg-1",
        "domain": "acme.com",
        "first_email_sent_at": DAY_ZERO,
        "first_event_at": DAY_ZERO + timedelta(days=10),
        "last_event_at": DAY_ZERO + timedelta(days=10),
        "first_attributed_month": "2024-03",
        "has_positive_reply": False,
        "has_sign_up": True,
        "has_meeting_booked": False,
        "has_paying_customer": False,
        "is_within_window": True,
        "match_type": "HARD_MATCH",
        "status": status,
    }
    fields.update(overrides)
    return AttributedDomain(**fields)


class FakeDomainRepository:
    def __init__(self, *domains: AttributedDomain):
        self.domains = {d.id: d for d in domains}
        self.status_changes: list[dict] = []
        self.lose_race = False

    async def get_by_id(self, domain_id):
        return self.domains.get(domain_id)

    async def transition_status(self, domain_id, *, from_status, to_status, changes, changed_at, metadata):
        current = self.domains[domain_id]
        if self.lose_race or current.status != from_status:
            return None
        updated = replace(current, status=to_status, **changes)
        self.domains[domain_id] = updated
        self.status_changes.append({"domain_id": domain_id, "changed_at": changed_at, **metadata})
        return updated

    async def list_expired_reviews(self, sent_before):
        return [
            d
            for d in self.domains.values()
            if d.status == "PENDING_CLIENT_REVIEW" and d.review_sent_at and d.review_sent_at < sent_before
        ]


@pytest.mark.parametrize(
    "within, match_type, expected",
    [
        (True, "HARD_MATCH", "ATTRIBUTED"),
        (False, "SOFT_MATCH", "OUTSIDE_WINDOW"),
        (False, "NO_MATCH", "UNATTRIBUTED"),
    ],
)
def test_baseline_status(within, match_type, expected):
    assert baseline_status(_domain(is_within_window=within, match_type=match_type)) == expected


@pytest.mark.asyncio
async def test_send_for_review_moves_to_pending():
    repo = FakeDomainRepository(_domain())
    service = ReviewService(repository=repo, expiry_days=7)

    domain = await service.send_for_review("domain-1", sent_by="ops@agency.com", now=DAY_ZERO)

    assert domain.status == "PENDING_CLIENT_REVIEW"
    assert domain.review_sent_at == DAY_ZERO
    assert domain.review_sent_by == "ops@agency.com"
    change = repo.status_changes[0]
    assert change["old_status"] == "NO_STATUS"
    assert change["new_status"] == "PENDING_CLIENT_REVIEW"
    assert change["action"] == "SENT_FOR_REVIEW"
    assert change["changed_by"] == "ops@agency.com"


@pytest.mark.asyncio
async def test_send_for_review_requires_no_status():
    service = ReviewService(repository=FakeDomainRepository(_domain(status="ATTRIBUTED")))

    with pytest.raises(ReviewTransitionError):
        await service.send_for_review("domain-1", sent_by="ops@agency.com")


@pytest.mark.asyncio
async def test_unknown_domain():
    service = ReviewService(repository=FakeDomainRepository())

    with pytest.raises(DomainNotFoundError):
        await service.send_for_review("missing", sent_by="ops@agency.com")


@pytest.mark.asyncio
async def test_client_confirms_review():
    repo = FakeDomainRepository(_domain(status="PENDING_CLIENT_REVIEW", review_sent_at=DAY_ZERO))
    service = ReviewService(repository=repo)

    domain = await service.respond_to_review(
        "domain-1", response="confirmed", responded_by="client@acme.com", now=DAY_ZERO
    )

    assert domain.status == "ATTRIBUTED"
    assert domain.review_response == "CONFIRMED"
    assert domain.review_response_by == "client@acme.com"
    assert repo.status_changes[0]["action"] == "REVIEW_CONFIRMED"


@pytest.mark.asyncio
async def test_client_rejects_review_with_notes():
    repo = FakeDomainRepository(_domain(status="PENDING_CLIENT_REVIEW", review_sent_at=DAY_ZERO))
    service = ReviewService(repository=repo)

    domain = await service.respond_to_review(
        "domain-1",
        response="REJECTED",
        responded_by="client@acme.com",
        notes="  Came in through a partner referral ",
    )

    assert domain.status == "CLIENT_REJECTED"
    assert domain.review_notes == "Came in through a partner referral"
    assert repo.status_changes[0]["reason"] == "Came in through a partner referral"


@pytest.mark.asyncio
async def test_rejection_without_notes_is_invalid():
    repo = FakeDomainRepository(_domain(status="PENDING_CLIENT_REVIEW"))
    service = ReviewService(repository=repo)

    with pytest.raises(ReviewValidationError):
        await service.respond_to_review("domain-1", response="REJECTED", responded_by="client", notes=" ")

    assert repo.domains["domain-1"].status == "PENDING_CLIENT_REVIEW"


@pytest.mark.asyncio
async def test_unknown_response_is_invalid():
    service = ReviewService(repository=FakeDomainRepository(_domain(status="PENDING_CLIENT_REVIEW")))

    with pytest.raises(ReviewValidationError):
        await service.respond_to_review("domain-1", response="MAYBE", responded_by="client")


@pytest.mark.asyncio
async def test_response_requires_pending_review():
    service = ReviewService(repository=FakeDomainRepository(_domain()))

    with pytest.raises(ReviewTransitionError):
        await service.respond_to_review("domain-1", response="CONFIRMED", responded_by="client")


@pytest.mark.asyncio
async def test_concurrent_transition_is_reported():
    repo = FakeDomainRepository(_domain())
    repo.lose_race = True
    service = ReviewService(repository=repo)

    with pytest.raises(ReviewTransitionError):
        await service.send_for_review("domain-1", sent_by="ops@agency.com")


@pytest.mark.asyncio
async def test_auto_confirm_expired_reviews():
    now = DAY_ZERO + timedelta(days=30)
    repo = FakeDomainRepository(
        _domain("stale", status="PENDING_CLIENT_REVIEW", review_sent_at=now - timedelta(days=8)),
        _domain("fresh", status="PENDING_CLIENT_REVIEW", review_sent_at=now - timedelta(days=2)),
        _domain("untouched"),
    )
    service = ReviewService(repository=repo, expiry_days=7)

    result = await service.auto_confirm_expired_reviews(now=now)

    assert result["expired"] == 1
    assert result["auto_confirmed"] == 1
    assert result["confirmed_domain_ids"] == ["stale"]
    stale = repo.domains["stale"]
    assert stale.status == "ATTRIBUTED"
    assert stale.review_response == "CONFIRMED"
    assert stale.review_response_by == "System (Auto-confirmed)"
    assert stale.review_notes == "Auto-confirmed after 7-day review period expired"
    assert repo.domains["fresh"].status == "PENDING_CLIENT_REVIEW"
    assert repo.status_changes[0]["action"] == "AUTO_CONFIRMED"
