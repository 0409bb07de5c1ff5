"""
FastAPI application with database pool and notification client lifecycle.
"""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from studio_scheduler.config import settings
from studio_scheduler.db.pool import db_pool
from studio_scheduler.infrastructure.observability.logging import get_logger, setup_logging
from studio_scheduler.integrations.notifications import notification_dispatcher
from studio_scheduler.routes import booking_status, health, pipeline, scheduling, waitlist

# Setup logging before creating the app
setup_logging(log_level=settings.LOG_LEVEL)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the database pool on startup, close it and the HTTP client on shutdown."""
    logger.info("Application starting", environment=settings.environment, debug=settings.debug)

    try:
        logger.info("Initializing database pool")
        await db_pool.initialize()
    except Exception as e:
        logger.error("Failed to initialize services", error=str(e))
        raise

    yield

    logger.info("Application shutting down")
    shutdown_errors = []

    try:
        await notification_dispatcher.close()
    except Exception as e:
        logger.error("Error closing notification client", error=str(e))
        shutdown_errors.append(f"Notifications: {e}")

    # Close database pool last (may have active connections)
    try:
        logger.info("Closing database pool")
        await db_pool.close()
    except Exception as e:
        logger.error("Error closing database pool", error=str(e))
        shutdown_errors.append(f"Database: {e}")

    if shutdown_errors:
        logger.warning("Some services had shutdown errors", errors=shutdown_errors)
    else:
        logger.info("All services closed successfully")


app = FastAPI(
    title="Studio Scheduler",
    description="Booking-to-slot matching, confirmation and waitlist offers for a tattoo studio",
    version="0.1.0",
    lifespan=lifespan,
)

# Include routers
app.include_router(health.router)
app.include_router(scheduling.router)
app.include_router(booking_status.router)
app.include_router(pipeline.router)
app.include_router(waitlist.router)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log HTTP requests with timing."""
    start_time = time.time()
    response = await call_next(request)
    process_time = (time.time() - start_time) * 1000

    logger.info(
        "HTTP request completed",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round(process_time, 2),
    )
    return response


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
