"""
Domain models for the attribution feature.

Lightweight dataclasses describing the rows the matching engine reads and
writes. They carry no persistence logic so repositories, services, jobs
and the API layer can all share them.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

# Business event vocabulary reported by client integrations
EventType = Literal["positive_reply", "sign_up", "meeting_booked", "paying_customer"]
EVENT_TYPES: tuple[str, ...] = ("positive_reply", "sign_up", "meeting_booked", "paying_customer")

# Timeline vocabulary for domain_event rows
EventSource = Literal[
    "EMAIL_SENT",
    "EMAIL_RECEIVED",
    "POSITIVE_REPLY",
    "SIGN_UP",
    "MEETING_BOOKED",
    "PAYING_CUSTOMER",
    "STATUS_CHANGE",
]

MatchType = Literal["HARD_MATCH", "SOFT_MATCH", "NO_MATCH"]
HARD_MATCH: MatchType = "HARD_MATCH"
SOFT_MATCH: MatchType = "SOFT_MATCH"
NO_MATCH: MatchType = "NO_MATCH"

AttributionStatus = Literal["ATTRIBUTED", "OUTSIDE_WINDOW", "NO_MATCH"]

# Review workflow: NO_STATUS -> PENDING_CLIENT_REVIEW -> ATTRIBUTED | CLIENT_REJECTED
DomainStatus = Literal["NO_STATUS", "PENDING_CLIENT_REVIEW", "ATTRIBUTED", "CLIENT_REJECTED"]
STATUS_NONE: DomainStatus = "NO_STATUS"
STATUS_PENDING_REVIEW: DomainStatus = "PENDING_CLIENT_REVIEW"
STATUS_ATTRIBUTED: DomainStatus = "ATTRIBUTED"
STATUS_REJECTED: DomainStatus = "CLIENT_REJECTED"

ReviewResponse = Literal["CONFIRMED", "REJECTED"]


@dataclass(slots=True, frozen=True)
class AttributionEvent:
    """A business outcome reported by a client integration."""

    id: str
    client_id: str
    event_type: str  # one of EVENT_TYPES
    event_time: datetime
    email: str | None = None
    domain: str | None = None
    metadata: dict[str, Any] | None = None


@dataclass(slots=True)
class ClientConfig:
    """Represents a client_config row."""

    id: str
    client_id: str
    client_name: str
    slug: str
    rev_share_rate: float = 0.10
    attribution_window_days: int = 31
    soft_match_enabled: bool = True
    exclude_personal_domains: bool = True


@dataclass(slots=True)
class EmailSendRecord:
    """One outbound email the agency sent on behalf of a client."""

    id: str
    prospect_id: str | None
    recipient_email: str | None
    recipient_domain: str | None
    timestamp_email: datetime


@dataclass(slots=True)
class EmailConversationRecord:
    """One sent or received email with a prospect, shown on the domain timeline."""

    id: str
    prospect_id: str | None
    direction: str  # "Sent" or "Received", as stored by the email platform
    timestamp_email: datetime
    subject: str | None = None
    prospect_email: str | None = None

    @property
    def event_source(self) -> EventSource:
        return "EMAIL_SENT" if self.direction == "Sent" else "EMAIL_RECEIVED"


@dataclass(slots=True)
class MatchResult:
    match_type: MatchType
    attribution_status: AttributionStatus
    is_within_window: bool
    days_since_email: int | None
    matched_email: str | None
    email_sent_at: datetime | None
    prospect_id: str | None
    match_reason: str


@dataclass(slots=True)
class AttributedDomainUpsert:
    """Partial record merged into attributed_domain by the engine."""

    client_config_id: str
    domain: str
    event_time: datetime
    first_attributed_month: str  # "YYYY-MM" of event_time
    first_email_sent_at: datetime | None
    is_within_window: bool
    match_type: MatchType
    has_positive_reply: bool = False
    has_sign_up: bool = False
    has_meeting_booked: bool = False
    has_paying_customer: bool = False
    matched_email: str | None = None  # only set for hard matches


@dataclass(slots=True)
class AttributedDomain:
    """Represents an attributed_domain row."""

    id: str
    client_config_id: str
    domain: str
    first_email_sent_at: datetime | None
    first_event_at: datetime | None
    last_event_at: datetime | None
    first_attributed_month: str | None
    has_positive_reply: bool
    has_sign_up: bool
    has_meeting_booked: bool
    has_paying_customer: bool
    is_within_window: bool
    match_type: str | None
    status: str = STATUS_NONE
    matched_emails: list[str] = field(default_factory=list)
    review_sent_at: datetime | None = None
    review_sent_by: str | None = None
    review_responded_at: datetime | None = None
    review_response: str | None = None
    review_response_by: str | None = None
    review_notes: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "AttributedDomain":
        return cls(
            id=str(row["id"]),
            client_config_id=str(row["client_config_id"]),
            domain=row["domain"],
            first_email_sent_at=row.get("first_email_sent_at"),
            first_event_at=row.get("first_event_at"),
            last_event_at=row.get("last_event_at"),
            first_attributed_month=row.get("first_attributed_month"),
            has_positive_reply=bool(row.get("has_positive_reply")),
            has_sign_up=bool(row.get("has_sign_up")),
            has_meeting_booked=bool(row.get("has_meeting_booked")),
            has_paying_customer=bool(row.get("has_paying_customer")),
            is_within_window=bool(row.get("is_within_window")),
            match_type=row.get("match_type"),
            status=row.get("status") or STATUS_NONE,
            matched_emails=list(row.get("matched_emails") or []),
            review_sent_at=row.get("review_sent_at"),
            review_sent_by=row.get("review_sent_by"),
            review_responded_at=row.get("review_responded_at"),
            review_response=row.get("review_response"),
            review_response_by=row.get("review_response_by"),
            review_notes=row.get("review_notes"),
        )


@dataclass(slots=True)
class DomainEventRecord:
    """Timeline entry appended to domain_event."""

    attributed_domain_id: str
    event_source: EventSource
    event_time: datetime
    email: str | None = None
    source_id: str | None = None
    source_table: str | None = None
    metadata: dict[str, Any] | None = None


@dataclass(slots=True)
class AttributionMatchRecord:
    """Immutable audit snapshot appended to attribution_match."""

    client_config_id: str
    attribution_event_id: str
    attributed_domain_id: str | None
    event_type: str
    event_time: datetime
    event_email: str | None
    event_domain: str | None
    match_type: MatchType
    matched_email: str | None
    prospect_id: str | None
    email_sent_at: datetime | None
    days_since_email: int | None
    is_within_window: bool
    match_reason: str


@dataclass(slots=True)
class ProcessingJob:
    """Represents a processing_job checkpoint row."""

    id: str
    client_config_id: str
    status: str  # PENDING, RUNNING, COMPLETED or FAILED
    total_events: int = 0
    processed_events: int = 0
    matched_hard: int = 0
    matched_soft: int = 0
    no_match: int = 0
    last_processed_event_id: str | None = None
    current_batch: int = 0
