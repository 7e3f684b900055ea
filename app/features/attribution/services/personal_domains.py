"""
Personal/free email provider classification.

The personal_email_domain table is small and changes rarely, so the whole
set is loaded once and refreshed after a TTL instead of querying per event.
"""

import asyncio
import time

from app.config import settings
from app.features.attribution.domain.normalization import normalize_domain
from app.features.attribution.repository import PersonalDomainRepository
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class PersonalDomainClassifier:
    """Cached membership check against the personal domain reference list."""

    def __init__(self, repository=PersonalDomainRepository, ttl_seconds: int | None = None):
        self.repository = repository
        self.ttl_seconds = (
            ttl_seconds if ttl_seconds is not None else settings.PERSONAL_DOMAIN_CACHE_TTL_SECONDS
        )
        self._domains: frozenset[str] = frozenset()
        self._loaded_at: float | None = None
        self._lock = asyncio.Lock()

    def _is_stale(self) -> bool:
        return self._loaded_at is None or time.monotonic() - self._loaded_at >= self.ttl_seconds

    async def _refresh(self) -> None:
        async with self._lock:
            if not self._is_stale():
                return
            domains = await self.repository.list_personal_email_domains()
            self._domains = frozenset(d.lower() for d in domains)
            self._loaded_at = time.monotonic()
            logger.debug("Personal domain list loaded", count=len(self._domains))

    async def is_personal_email_domain(self, domain: str) -> bool:
        normalized = normalize_domain(domain)
        if not normalized:
            return False
        if self._is_stale():
            await self._refresh()
        return normalized in self._domains

    def invalidate(self) -> None:
        self._loaded_at = None


personal_domain_classifier = PersonalDomainClassifier()
