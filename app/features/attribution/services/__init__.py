from .batch_processor import (
    AttributionBatchProcessor,
    AttributionProcessingError,
    attribution_batch_processor,
)
from .client_sync import ClientSyncError, ClientSyncService, client_sync_service
from .matching_engine import AttributionMatcher, attribution_matcher, process_attribution_event
from .personal_domains import PersonalDomainClassifier, personal_domain_classifier
from .review_workflow import (
    DomainNotFoundError,
    ReviewService,
    ReviewTransitionError,
    ReviewValidationError,
    baseline_status,
    review_service,
)
from .timeline_service import DomainTimelineService, domain_timeline_service

__all__ = [
    "AttributionBatchProcessor",
    "AttributionMatcher",
    "AttributionProcessingError",
    "ClientSyncError",
    "ClientSyncService",
    "DomainNotFoundError",
    "DomainTimelineService",
    "PersonalDomainClassifier",
    "ReviewService",
    "ReviewTransitionError",
    "ReviewValidationError",
    "attribution_batch_processor",
    "attribution_matcher",
    "baseline_status",
    "client_sync_service",
    "domain_timeline_service",
    "personal_domain_classifier",
    "process_attribution_event",
    "review_service",
]
