"""One-shot sync of production clients into client_config."""

from app.features.attribution.services.client_sync import client_sync_service
from app.infrastructure.audit import system_logger
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


async def run_client_sync() -> dict:
    summary = await client_sync_service.sync_clients_from_production()
    if summary["created"]:
        await system_logger.info(
            "cron",
            "New clients synced from production",
            context={"created": summary["created"], "client_ids": summary["created_client_ids"]},
        )
    return summary
