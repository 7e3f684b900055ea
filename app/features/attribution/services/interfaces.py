"""
Collaborator interfaces consumed by the matching engine.

The Postgres repositories satisfy these structurally; tests pass in-memory
fakes instead.
"""

from contextlib import AbstractAsyncContextManager
from datetime import datetime
from typing import Protocol

from app.features.attribution.domain import (
    AttributedDomain,
    AttributedDomainUpsert,
    AttributionMatchRecord,
    ClientConfig,
    DomainEventRecord,
    EmailConversationRecord,
    EmailSendRecord,
)


class ClientConfigSource(Protocol):
    async def get_client_config_by_client_id(self, client_id: str) -> ClientConfig | None: ...


class EmailLedger(Protocol):
    async def find_hard_match_email(
        self, client_id: str, email: str, before_time: datetime
    ) -> EmailSendRecord | None: ...

    async def find_soft_match_email(
        self, client_id: str, domain: str, before_time: datetime
    ) -> EmailSendRecord | None: ...

    async def get_first_email_sent_to_address(
        self, client_id: str, email: str
    ) -> EmailSendRecord | None: ...

    async def get_first_email_sent_to_domain(
        self, client_id: str, domain: str
    ) -> EmailSendRecord | None: ...

    async def get_emails_for_domain(
        self, client_id: str, domain: str
    ) -> list[EmailConversationRecord]: ...


class PersonalDomainCheck(Protocol):
    async def is_personal_email_domain(self, domain: str) -> bool: ...


class AttributionWriterProtocol(Protocol):
    async def upsert_attributed_domain(self, record: AttributedDomainUpsert) -> AttributedDomain: ...

    async def create_domain_event(self, record: DomainEventRecord) -> bool: ...

    async def create_attribution_match(self, record: AttributionMatchRecord) -> str: ...


class AttributionStoreProtocol(Protocol):
    def transaction(self) -> AbstractAsyncContextManager[AttributionWriterProtocol]: ...
