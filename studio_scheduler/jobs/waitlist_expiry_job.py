"""
Waitlist expiry job.

Moves waitlist entries whose ``expires_at`` has passed to ``expired`` on a
fixed interval (WAITLIST_EXPIRY_INTERVAL_MINUTES).

Usage:
    python -m studio_scheduler.jobs.worker waitlist_expiry
"""

import asyncio
import time

from studio_scheduler.config import settings
from studio_scheduler.db.helpers import DatabaseError
from studio_scheduler.features.waitlist.service import WaitlistService, waitlist_service
from studio_scheduler.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

ERROR_BACKOFF_SECONDS = 300


async def run_waitlist_expiry(service: WaitlistService = waitlist_service) -> dict:
    """Run one expiry pass and return a summary."""
    start = time.perf_counter()
    expired = await service.expire_stale()
    return {
        "expired": expired,
        "duration_ms": round((time.perf_counter() - start) * 1000, 2),
    }


async def start_waitlist_expiry_scheduler() -> None:
    """Run expiry passes forever, sleeping between them."""
    interval_seconds = settings.WAITLIST_EXPIRY_INTERVAL_MINUTES * 60
    logger.info(
        "Starting waitlist expiry scheduler",
        interval_minutes=settings.WAITLIST_EXPIRY_INTERVAL_MINUTES,
    )

    while True:
        try:
            summary = await run_waitlist_expiry()
            logger.info("Waitlist expiry cycle completed", **summary)
            await asyncio.sleep(interval_seconds)
        except DatabaseError as e:
            logger.error(
                "Error in waitlist expiry scheduler",
                error=str(e),
                operation=e.operation,
            )
            await asyncio.sleep(ERROR_BACKOFF_SECONDS)
