"""
One-shot scheduling analysis.

Regenerates pending suggestions outside the admin UI, e.g. from a nightly
cron container.
"""

from studio_scheduler.features.matching.service import MatchingService, matching_service
from studio_scheduler.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


async def run_match_analysis(service: MatchingService = matching_service) -> None:
    result = await service.run_analysis()
    logger.info(
        "Match analysis job finished",
        message=result.message,
        bookings=result.bookings_considered,
        slots=result.slots_considered,
        suggestions=len(result.suggestions),
        replaced=result.replaced,
    )
