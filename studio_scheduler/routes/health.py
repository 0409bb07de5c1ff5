"""
Health check endpoints with database pool monitoring.
"""

import time

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from studio_scheduler.db.pool import db_health_check

router = APIRouter()


@router.get("/healthz")
async def healthz():
    """Basic health check - always returns 200 if app is running."""
    return {"status": "ok", "service": "studio-scheduler"}


@router.get("/readyz")
async def readyz():
    """Readiness check including the database pool."""
    t0 = time.time()
    db_health = await db_health_check()
    is_healthy = db_health.get("healthy", False)

    database = {
        "ok": is_healthy,
        "latency_ms": round((time.time() - t0) * 1000, 1),
    }
    if "pool_stats" in db_health:
        database.update(db_health["pool_stats"])
    if not is_healthy:
        database["error"] = db_health.get("error", "Database unhealthy")

    body = {"status": "ready" if is_healthy else "not_ready", "checks": {"database": database}}
    return JSONResponse(status_code=200 if is_healthy else 503, content=body)
