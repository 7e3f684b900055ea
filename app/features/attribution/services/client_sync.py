"""
Mirror active production clients into client_config.

New clients get a slug derived from their name and the default revenue
share; existing configs are never modified here.
"""

from app.features.attribution.domain import ClientConfig
from app.features.attribution.domain.normalization import slugify
from app.features.attribution.repository import ClientConfigRepository, EmailLedgerRepository
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

DEFAULT_REV_SHARE_RATE = 0.10


class ClientSyncError(Exception):
    """Raised when a client cannot be resolved in production."""

    def __init__(self, message: str, operation: str = "client_sync", recoverable: bool = False):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


class ClientSyncService:
    def __init__(self, client_configs=ClientConfigRepository, ledger=EmailLedgerRepository):
        self.client_configs = client_configs
        self.ledger = ledger

    async def _create_config(self, client_id: str, client_name: str) -> ClientConfig:
        return await self.client_configs.create_client_config(
            client_id=client_id,
            client_name=client_name,
            slug=slugify(client_name) or client_id,
            rev_share_rate=DEFAULT_REV_SHARE_RATE,
        )

    async def ensure_client_config(self, client_id: str) -> ClientConfig:
        """Return the client's config, creating it from the production client if needed."""
        existing = await self.client_configs.get_client_config_by_client_id(client_id)
        if existing:
            return existing

        client = await self.ledger.get_client(client_id)
        if not client:
            raise ClientSyncError(
                f"Client {client_id} not found in production", operation="ensure_client_config"
            )

        logger.info("Creating missing client config", client_id=client_id)
        return await self._create_config(client_id, client["client_name"])

    async def sync_clients_from_production(self) -> dict:
        """
        Create a client_config for every active production client without one.

        Returns:
            Dict with total, created and existing counts plus the created client ids
        """
        production_clients = await self.ledger.fetch_active_clients()
        configured = {config.client_id for config in await self.client_configs.list_client_configs()}

        created: list[str] = []
        for client in production_clients:
            if client["id"] in configured:
                continue
            await self._create_config(client["id"], client["client_name"])
            created.append(client["id"])

        summary = {
            "total": len(production_clients),
            "created": len(created),
            "existing": len(production_clients) - len(created),
            "created_client_ids": created,
        }
        logger.info("Client sync completed", **{k: v for k, v in summary.items() if k != "created_client_ids"})
        return summary


client_sync_service = ClientSyncService()
