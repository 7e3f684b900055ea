"""
Attribution routes.

Endpoints:
    POST /attribution/events/process - Run one event through the matching engine
    GET  /attribution/clients - Matching settings of every client
    PATCH /attribution/clients/{client_id}/settings - Change a client's matching settings
    GET  /attribution/clients/{client_id}/domains - Aggregates for a client
    POST /attribution/clients/{client_id}/domains/{domain_id}/timeline/emails - Add email history to a timeline
    GET  /attribution/domains/{domain_id}/timeline - Timeline of one domain
    POST /attribution/domains/{domain_id}/send-for-review - Agency opens a review
    POST /attribution/domains/{domain_id}/review-response - Client answers a review
    POST /attribution/jobs/trigger - Kick off a background job run

The service is deployed behind the agency gateway, which handles access control.
"""

import uuid

from fastapi import APIRouter, BackgroundTasks, HTTPException, Query, status

from app.db.helpers import DatabaseError
from app.features.attribution.api.schemas import (
    AttributedDomainResponse,
    ClientSettingsResponse,
    ClientSettingsUpdateRequest,
    DomainListResponse,
    MatchResultResponse,
    ProcessEventRequest,
    ReviewResponseRequest,
    SendForReviewRequest,
    TimelineEmailsResponse,
    TimelineEntry,
    TimelineResponse,
    TriggerJobRequest,
    TriggerJobResponse,
)
from app.features.attribution.domain import AttributedDomain, AttributionEvent, ClientConfig
from app.features.attribution.jobs import run_job
from app.features.attribution.repository import AttributedDomainRepository, ClientConfigRepository
from app.features.attribution.services import (
    DomainNotFoundError,
    ReviewTransitionError,
    ReviewValidationError,
    attribution_matcher,
    baseline_status,
    domain_timeline_service,
    review_service,
)
from app.infrastructure.observability.logging import get_logger

router = APIRouter(prefix="/attribution", tags=["attribution"])
logger = get_logger(__name__)


def _domain_response(domain: AttributedDomain) -> AttributedDomainResponse:
    return AttributedDomainResponse(
        id=domain.id,
        domain=domain.domain,
        status=domain.status,
        baseline_status=baseline_status(domain),
        match_type=domain.match_type,
        is_within_window=domain.is_within_window,
        first_email_sent_at=domain.first_email_sent_at,
        first_event_at=domain.first_event_at,
        last_event_at=domain.last_event_at,
        first_attributed_month=domain.first_attributed_month,
        has_positive_reply=domain.has_positive_reply,
        has_sign_up=domain.has_sign_up,
        has_meeting_booked=domain.has_meeting_booked,
        has_paying_customer=domain.has_paying_customer,
        matched_emails=domain.matched_emails,
        review_sent_at=domain.review_sent_at,
        review_sent_by=domain.review_sent_by,
        review_responded_at=domain.review_responded_at,
        review_response=domain.review_response,
        review_response_by=domain.review_response_by,
        review_notes=domain.review_notes,
    )


def _database_unavailable(action: str, error: DatabaseError, **fields) -> HTTPException:
    logger.error(f"{action} failed", error=str(error), operation=error.operation, **fields)
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Attribution database unavailable"
    )


def _settings_response(config: ClientConfig) -> ClientSettingsResponse:
    return ClientSettingsResponse(
        client_id=config.client_id,
        client_name=config.client_name,
        slug=config.slug,
        rev_share_rate=config.rev_share_rate,
        attribution_window_days=config.attribution_window_days,
        soft_match_enabled=config.soft_match_enabled,
        exclude_personal_domains=config.exclude_personal_domains,
    )


async def _load_domain(domain_id: uuid.UUID) -> AttributedDomain:
    try:
        domain = await AttributedDomainRepository.get_by_id(str(domain_id))
    except DatabaseError as e:
        raise _database_unavailable("Domain lookup", e, domain_id=str(domain_id)) from e
    if not domain:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Domain not found")
    return domain


@router.post("/events/process", response_model=MatchResultResponse)
async def process_event(request: ProcessEventRequest):
    """
    Match a single event immediately.

    Raises:
        400: Neither email nor domain supplied
        503: Database unavailable
    """
    if not (request.email or request.domain):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Either email or domain is required"
        )

    event = AttributionEvent(
        id=request.id or str(uuid.uuid4()),
        client_id=request.client_id,
        event_type=request.event_type,
        event_time=request.event_time,
        email=request.email,
        domain=request.domain,
        metadata=request.metadata,
    )

    try:
        result = await attribution_matcher.process_attribution_event(event)
    except DatabaseError as e:
        raise _database_unavailable("Manual event processing", e, event_id=event.id) from e

    return MatchResultResponse(
        event_id=event.id,
        match_type=result.match_type,
        attribution_status=result.attribution_status,
        is_within_window=result.is_within_window,
        days_since_email=result.days_since_email,
        matched_email=result.matched_email,
        email_sent_at=result.email_sent_at,
        prospect_id=result.prospect_id,
        match_reason=result.match_reason,
    )


@router.get("/clients", response_model=list[ClientSettingsResponse])
async def list_client_settings():
    try:
        configs = await ClientConfigRepository.list_client_configs()
    except DatabaseError as e:
        raise _database_unavailable("Client settings listing", e) from e
    return [_settings_response(config) for config in configs]


@router.patch("/clients/{client_id}/settings", response_model=ClientSettingsResponse)
async def update_client_settings(client_id: str, request: ClientSettingsUpdateRequest):
    """
    Change a client's matching settings.

    Raises:
        400: No settings supplied
        404: Unknown client
    """
    changes = request.model_dump(exclude_none=True)
    if not changes:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="No settings provided to update"
        )

    try:
        config = await ClientConfigRepository.update_settings(client_id, changes)
    except DatabaseError as e:
        raise _database_unavailable("Client settings update", e, client_id=client_id) from e

    if not config:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Client not found")
    return _settings_response(config)


@router.get("/clients/{client_id}/domains", response_model=DomainListResponse)
async def list_client_domains(
    client_id: str,
    status_filter: str | None = Query(default=None, alias="status"),
    match_type: str | None = None,
    limit: int = Query(default=100, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
):
    try:
        client = await ClientConfigRepository.get_client_config_by_client_id(client_id)
        if not client:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Client not found")

        domains = await AttributedDomainRepository.list_for_client(
            client.id, status=status_filter, match_type=match_type, limit=limit, offset=offset
        )
    except DatabaseError as e:
        raise _database_unavailable("Domain listing", e, client_id=client_id) from e
    return DomainListResponse(
        client_id=client_id,
        domains=[_domain_response(d) for d in domains],
        count=len(domains),
    )


@router.post(
    "/clients/{client_id}/domains/{domain_id}/timeline/emails",
    response_model=TimelineEmailsResponse,
)
async def add_domain_emails_to_timeline(client_id: str, domain_id: uuid.UUID):
    """Copy the domain's sent and received emails onto its timeline."""
    try:
        client = await ClientConfigRepository.get_client_config_by_client_id(client_id)
    except DatabaseError as e:
        raise _database_unavailable("Client lookup", e, client_id=client_id) from e
    domain = await _load_domain(domain_id)
    if not client or domain.client_config_id != client.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Domain not found")

    try:
        result = await domain_timeline_service.add_email_events_to_timeline(client_id, domain)
    except DatabaseError as e:
        raise _database_unavailable("Timeline email import", e, domain_id=domain.id) from e

    return TimelineEmailsResponse(domain_id=domain.id, **result)


@router.get("/domains/{domain_id}/timeline", response_model=TimelineResponse)
async def get_domain_timeline(domain_id: uuid.UUID):
    domain = await _load_domain(domain_id)

    try:
        events = await AttributedDomainRepository.get_timeline(domain.id)
    except DatabaseError as e:
        raise _database_unavailable("Timeline lookup", e, domain_id=domain.id) from e

    return TimelineResponse(
        domain_id=domain.id,
        domain=domain.domain,
        events=[TimelineEntry(**entry) for entry in events],
    )


@router.post("/domains/{domain_id}/send-for-review", response_model=AttributedDomainResponse)
async def send_for_review(domain_id: uuid.UUID, request: SendForReviewRequest):
    try:
        domain = await review_service.send_for_review(str(domain_id), sent_by=request.sent_by)
    except DomainNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except ReviewTransitionError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    except DatabaseError as e:
        raise _database_unavailable("Send for review", e, domain_id=str(domain_id)) from e

    logger.info("Domain sent for review", domain_id=str(domain_id), sent_by=request.sent_by)
    return _domain_response(domain)


@router.post("/domains/{domain_id}/review-response", response_model=AttributedDomainResponse)
async def respond_to_review(domain_id: uuid.UUID, request: ReviewResponseRequest):
    """
    Record the client's answer to a pending review.

    Raises:
        400: Rejection without notes
        404: Unknown domain
        409: Domain is not pending review
    """
    try:
        domain = await review_service.respond_to_review(
            str(domain_id),
            response=request.response,
            responded_by=request.responded_by,
            notes=request.notes,
        )
    except ReviewValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except DomainNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except ReviewTransitionError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    except DatabaseError as e:
        raise _database_unavailable("Review response", e, domain_id=str(domain_id)) from e

    return _domain_response(domain)


@router.post(
    "/jobs/trigger", response_model=TriggerJobResponse, status_code=status.HTTP_202_ACCEPTED
)
async def trigger_job(request: TriggerJobRequest, background_tasks: BackgroundTasks):
    """Run a job once in the background; progress shows up in system_log."""
    if request.client_id and request.job != "attribution_processing":
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="client_id is only supported for attribution_processing",
        )

    background_tasks.add_task(run_job, request.job, client_id=request.client_id)
    logger.info("Job triggered", job=request.job, client_id=request.client_id)
    return TriggerJobResponse(job=request.job, client_id=request.client_id)
