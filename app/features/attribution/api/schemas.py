"""Request and response models for the attribution API."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


class ProcessEventRequest(BaseModel):
    """A manually submitted business event."""

    id: str | None = Field(default=None, description="Event id; generated when omitted")
    client_id: str
    event_type: Literal["positive_reply", "sign_up", "meeting_booked", "paying_customer"]
    event_time: datetime
    email: str | None = None
    domain: str | None = None
    metadata: dict[str, Any] | None = None


class MatchResultResponse(BaseModel):
    event_id: str
    match_type: str
    attribution_status: str
    is_within_window: bool
    days_since_email: int | None
    matched_email: str | None
    email_sent_at: datetime | None
    prospect_id: str | None
    match_reason: str


class AttributedDomainResponse(BaseModel):
    id: str
    domain: str
    status: str
    baseline_status: str
    match_type: str | None
    is_within_window: bool
    first_email_sent_at: datetime | None
    first_event_at: datetime | None
    last_event_at: datetime | None
    first_attributed_month: str | None
    has_positive_reply: bool
    has_sign_up: bool
    has_meeting_booked: bool
    has_paying_customer: bool
    matched_emails: list[str] = []
    review_sent_at: datetime | None = None
    review_sent_by: str | None = None
    review_responded_at: datetime | None = None
    review_response: str | None = None
    review_response_by: str | None = None
    review_notes: str | None = None


class DomainListResponse(BaseModel):
    client_id: str
    domains: list[AttributedDomainResponse]
    count: int


class TimelineEntry(BaseModel):
    id: str
    event_source: str
    event_time: datetime
    email: str | None = None
    source_id: str | None = None
    source_table: str | None = None
    metadata: dict[str, Any] | None = None


class TimelineResponse(BaseModel):
    domain_id: str
    domain: str
    events: list[TimelineEntry]


class ClientSettingsResponse(BaseModel):
    client_id: str
    client_name: str
    slug: str
    rev_share_rate: float
    attribution_window_days: int
    soft_match_enabled: bool
    exclude_personal_domains: bool


class ClientSettingsUpdateRequest(BaseModel):
    """Partial update; omitted fields keep their current value."""

    rev_share_rate: float | None = Field(default=None, ge=0, le=1)
    attribution_window_days: int | None = Field(default=None, ge=0, le=365)
    soft_match_enabled: bool | None = None
    exclude_personal_domains: bool | None = None


class TimelineEmailsResponse(BaseModel):
    domain_id: str
    emails_found: int
    events_added: int


class SendForReviewRequest(BaseModel):
    sent_by: str = Field(..., min_length=1)


class ReviewResponseRequest(BaseModel):
    response: Literal["CONFIRMED", "REJECTED"]
    responded_by: str = Field(..., min_length=1)
    notes: str | None = None


class TriggerJobRequest(BaseModel):
    job: Literal["attribution_processing", "client_sync", "review_auto_confirm"]
    client_id: str | None = Field(
        default=None, description="Limit attribution_processing to one client"
    )


class TriggerJobResponse(BaseModel):
    job: str
    client_id: str | None = None
    status: Literal["accepted"] = "accepted"
