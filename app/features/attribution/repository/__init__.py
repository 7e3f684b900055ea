from .attribution_store_repository import AttributionStore, AttributionWriter, attribution_store
from .client_config_repository import ClientConfigRepository
from .domain_repository import AttributedDomainRepository
from .email_ledger_repository import EmailLedgerRepository
from .personal_domain_repository import PersonalDomainRepository
from .processing_job_repository import ProcessingJobRepository

__all__ = [
    "AttributedDomainRepository",
    "AttributionStore",
    "AttributionWriter",
    "ClientConfigRepository",
    "EmailLedgerRepository",
    "PersonalDomainRepository",
    "ProcessingJobRepository",
    "attribution_store",
]
