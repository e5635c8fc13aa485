# slotdesk/routes/health.py
"""
Health check endpoints: liveness and database pool readiness.
"""

import time

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from slotdesk.config import settings
from slotdesk.db.pool import DatabasePoolManager, get_db

router = APIRouter(tags=["health"])


@router.get("/health")
async def health():
    """Basic health check - always returns 200 if app is running."""
    return {"status": "ok", "service": "slotdesk", "timestamp": time.time()}


@router.get("/readyz")
async def readyz(db: DatabasePoolManager = Depends(get_db)):
    """Readiness check including the database pool; 503 while not ready."""
    t0 = time.time()
    db_health = await db.health_check()
    is_healthy = db_health.get("healthy", False)

    database = {
        "ok": is_healthy,
        "latency_ms": round((time.time() - t0) * 1000, 1),
    }

    if "pool_stats" in db_health:
        database.update(db_health["pool_stats"])
        database["connection_time_ms"] = db_health.get("connection_time_ms", 0)

    if "warnings" in db_health:
        database["warnings"] = db_health["warnings"]

    if not is_healthy:
        database["error"] = db_health.get("error", "Database unhealthy")

    body = {
        "overall_ok": is_healthy,
        "checks": {"database": database},
        "environment": settings.environment,
        "timestamp": time.time(),
    }
    return JSONResponse(status_code=200 if is_healthy else 503, content=body)
