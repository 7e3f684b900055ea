from .models import (
    EVENT_TYPES,
    HARD_MATCH,
    NO_MATCH,
    SOFT_MATCH,
    STATUS_ATTRIBUTED,
    STATUS_NONE,
    STATUS_PENDING_REVIEW,
    STATUS_REJECTED,
    AttributedDomain,
    AttributedDomainUpsert,
    AttributionEvent,
    AttributionMatchRecord,
    ClientConfig,
    DomainEventRecord,
    EmailConversationRecord,
    EmailSendRecord,
    MatchResult,
    ProcessingJob,
)

__all__ = [
    "EVENT_TYPES",
    "HARD_MATCH",
    "NO_MATCH",
    "SOFT_MATCH",
    "STATUS_ATTRIBUTED",
    "STATUS_NONE",
    "STATUS_PENDING_REVIEW",
    "STATUS_REJECTED",
    "AttributedDomain",
    "AttributedDomainUpsert",
    "AttributionEvent",
    "AttributionMatchRecord",
    "ClientConfig",
    "DomainEventRecord",
    "EmailConversationRecord",
    "EmailSendRecord",
    "MatchResult",
    "ProcessingJob",
]
