"""
Generic background worker runner.

Reads the desired job name from CLI args or the WORKER_JOB environment
variable, opens the database pool and delegates to the job.
"""

import asyncio
import os
import sys
from collections.abc import Awaitable, Callable

from studio_scheduler.config import settings
from studio_scheduler.db.pool import db_pool
from studio_scheduler.infrastructure.observability.logging import get_logger, setup_logging
from studio_scheduler.integrations.notifications import notification_dispatcher
from studio_scheduler.jobs.match_analysis_job import run_match_analysis
from studio_scheduler.jobs.waitlist_expiry_job import start_waitlist_expiry_scheduler

logger = get_logger(__name__)

JobCoroutine = Callable[[], Awaitable[None]]

JOB_REGISTRY: dict[str, JobCoroutine] = {
    "waitlist_expiry": start_waitlist_expiry_scheduler,
    "match_analysis": run_match_analysis,
}


def _resolve_job_name() -> str:
    """Pick the target job from CLI args or WORKER_JOB env variable."""
    if len(sys.argv) > 1:
        return sys.argv[1].strip().lower()
    return os.getenv("WORKER_JOB", "waitlist_expiry").strip().lower()


async def run_worker(job_name: str | None = None) -> None:
    """Run the requested background job."""
    name = (job_name or _resolve_job_name()).strip().lower()
    if name not in JOB_REGISTRY:
        raise ValueError(
            f"Unknown worker job '{name}'. "
            f"Available jobs: {', '.join(sorted(JOB_REGISTRY.keys()))}"
        )

    logger.info("Starting background worker", job=name)
    await db_pool.initialize()
    try:
        await JOB_REGISTRY[name]()
    finally:
        await notification_dispatcher.close()
        await db_pool.close()


def main() -> None:
    """CLI entrypoint."""
    setup_logging(settings.LOG_LEVEL)
    job_name = _resolve_job_name()
    asyncio.run(run_worker(job_name))


if __name__ == "__main__":
    main()
