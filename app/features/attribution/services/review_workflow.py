"""
Client review workflow for attributed domains.

    NO_STATUS --send_for_review--> PENDING_CLIENT_REVIEW
    PENDING_CLIENT_REVIEW --CONFIRMED--> ATTRIBUTED
    PENDING_CLIENT_REVIEW --REJECTED--> CLIENT_REJECTED
    PENDING_CLIENT_REVIEW --expiry--> ATTRIBUTED (auto-confirmed)

This service is the only writer of attributed_domain.status and the
review_* columns. Every transition appends a STATUS_CHANGE timeline row.
"""

from datetime import UTC, datetime, timedelta

from app.config import settings
from app.features.attribution.domain import (
    STATUS_ATTRIBUTED,
    STATUS_NONE,
    STATUS_PENDING_REVIEW,
    STATUS_REJECTED,
    AttributedDomain,
)
from app.features.attribution.repository import AttributedDomainRepository
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

AUTO_CONFIRM_ACTOR = "System (Auto-confirmed)"


class ReviewError(Exception):
    """Base exception for review workflow failures."""

    def __init__(self, message: str, domain_id: str | None = None, recoverable: bool = False):
        super().__init__(message)
        self.domain_id = domain_id
        self.recoverable = recoverable


class DomainNotFoundError(ReviewError):
    pass


class ReviewTransitionError(ReviewError):
    """The domain is not in a state that allows the requested transition."""


class ReviewValidationError(ReviewError):
    pass


def baseline_status(domain: AttributedDomain) -> str:
    """Pre-review status implied by the engine's classification."""
    if domain.is_within_window:
        return "ATTRIBUTED"
    if domain.match_type in ("HARD_MATCH", "SOFT_MATCH"):
        return "OUTSIDE_WINDOW"
    return "UNATTRIBUTED"


class ReviewService:
    def __init__(self, repository=AttributedDomainRepository, expiry_days: int | None = None):
        self.repository = repository
        self.expiry_days = expiry_days or settings.REVIEW_EXPIRY_DAYS

    async def _load(self, domain_id: str) -> AttributedDomain:
        domain = await self.repository.get_by_id(domain_id)
        if domain is None:
            raise DomainNotFoundError(f"Domain {domain_id} not found", domain_id=domain_id)
        return domain

    async def _transition(
        self,
        domain: AttributedDomain,
        *,
        to_status: str,
        changes: dict,
        now: datetime,
        action: str,
        reason: str,
        changed_by: str,
    ) -> AttributedDomain:
        updated = await self.repository.transition_status(
            domain.id,
            from_status=domain.status,
            to_status=to_status,
            changes=changes,
            changed_at=now,
            metadata={
                "old_status": domain.status,
                "new_status": to_status,
                "action": action,
                "reason": reason,
                "changed_by": changed_by,
            },
        )
        if updated is None:
            # Someone else moved the domain between our read and the update
            raise ReviewTransitionError(
                f"Domain {domain.id} changed status concurrently", domain_id=domain.id
            )
        return updated

    async def send_for_review(
        self, domain_id: str, sent_by: str, now: datetime | None = None
    ) -> AttributedDomain:
        now = now or datetime.now(UTC)
        domain = await self._load(domain_id)
        if domain.status != STATUS_NONE:
            raise ReviewTransitionError(
                f"Domain {domain_id} cannot be sent for review from status {domain.status}",
                domain_id=domain_id,
            )

        return await self._transition(
            domain,
            to_status=STATUS_PENDING_REVIEW,
            changes={"review_sent_at": now, "review_sent_by": sent_by},
            now=now,
            action="SENT_FOR_REVIEW",
            reason=f"Sent for client review (baseline {baseline_status(domain)})",
            changed_by=sent_by,
        )

    async def respond_to_review(
        self,
        domain_id: str,
        response: str,
        responded_by: str,
        notes: str | None = None,
        now: datetime | None = None,
    ) -> AttributedDomain:
        """
        Record the client's answer to a pending review.

        Raises:
            ReviewValidationError: Unknown response, or a rejection without notes
            ReviewTransitionError: Domain is not pending review
            DomainNotFoundError: Unknown domain id
        """
        response = (response or "").strip().upper()
        if response not in ("CONFIRMED", "REJECTED"):
            raise ReviewValidationError('response must be "CONFIRMED" or "REJECTED"', domain_id)

        notes = (notes or "").strip() or None
        if response == "REJECTED" and not notes:
            raise ReviewValidationError("A rejection requires notes", domain_id)

        now = now or datetime.now(UTC)
        domain = await self._load(domain_id)
        if domain.status != STATUS_PENDING_REVIEW:
            raise ReviewTransitionError(
                f"Domain {domain_id} is not pending review", domain_id=domain_id
            )

        confirmed = response == "CONFIRMED"
        return await self._transition(
            domain,
            to_status=STATUS_ATTRIBUTED if confirmed else STATUS_REJECTED,
            changes={
                "review_responded_at": now,
                "review_response": response,
                "review_response_by": responded_by,
                "review_notes": notes,
            },
            now=now,
            action="REVIEW_CONFIRMED" if confirmed else "REVIEW_REJECTED",
            reason=notes
            or ("Attribution confirmed by client" if confirmed else "Attribution rejected by client"),
            changed_by=responded_by,
        )

    async def auto_confirm_expired_reviews(self, now: datetime | None = None) -> dict:
        """Confirm every review left unanswered past the expiry period."""
        now = now or datetime.now(UTC)
        cutoff = now - timedelta(days=self.expiry_days)
        expired = await self.repository.list_expired_reviews(cutoff)

        confirmed: list[str] = []
        failures: list[dict] = []
        notes = f"Auto-confirmed after {self.expiry_days}-day review period expired"

        for domain in expired:
            try:
                await self._transition(
                    domain,
                    to_status=STATUS_ATTRIBUTED,
                    changes={
                        "review_responded_at": now,
                        "review_response": "CONFIRMED",
                        "review_response_by": AUTO_CONFIRM_ACTOR,
                        "review_notes": notes,
                    },
                    now=now,
                    action="AUTO_CONFIRMED",
                    reason=f"{notes} without client response",
                    changed_by="System",
                )
                confirmed.append(domain.id)
            except Exception as e:
                logger.warning("Auto-confirm failed", domain_id=domain.id, error=str(e))
                failures.append({"domain_id": domain.id, "error": str(e)})

        logger.info(
            "Expired reviews auto-confirmed",
            expired=len(expired),
            confirmed=len(confirmed),
            failed=len(failures),
        )
        return {
            "expired": len(expired),
            "auto_confirmed": len(confirmed),
            "failed": len(failures),
            "confirmed_domain_ids": confirmed,
            "failures": failures,
        }


review_service = ReviewService()
