"""Daily auto-confirmation of client reviews left unanswered past the expiry."""

import asyncio

from app.config import settings
from app.features.attribution.jobs.schedule import seconds_until_hour
from app.features.attribution.services.review_workflow import review_service
from app.infrastructure.audit import system_logger
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


async def run_review_auto_confirm() -> dict:
    result = await review_service.auto_confirm_expired_reviews()
    if result["expired"]:
        await system_logger.info(
            "cron",
            "Expired reviews auto-confirmed",
            context={k: v for k, v in result.items() if k != "confirmed_domain_ids"},
        )
    return result


async def start_review_auto_confirm_scheduler() -> None:
    logger.info(
        "Starting review auto-confirm scheduler",
        schedule_hour_utc=settings.REVIEW_AUTO_CONFIRM_HOUR,
        expiry_days=settings.REVIEW_EXPIRY_DAYS,
    )

    while True:
        try:
            await asyncio.sleep(seconds_until_hour(settings.REVIEW_AUTO_CONFIRM_HOUR))
            await run_review_auto_confirm()
        except asyncio.CancelledError:
            logger.info("Review auto-confirm scheduler stopped")
            raise
        except Exception as e:
            logger.error(
                "Error in review auto-confirm scheduler", error=str(e), error_type=type(e).__name__
            )
            await asyncio.sleep(60)
