"""Health check endpoint — public, no auth required."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Request

from stepsync.config import get_settings
from stepsync.fitness.config_loader import get_sync_config
from stepsync.services.database import get_pool

router = APIRouter(tags=["system"])
logger = logging.getLogger("stepsync.health")


@router.get("/health")
async def health_check(request: Request) -> dict:
    """Liveness probe. Returns 200 if the API process is up.

    Also performs a lightweight DB connectivity check and reports how many
    sync attempts are currently running.
    """
    settings = get_settings()
    db_ok = False
    try:
        pool = get_pool()
        async with pool.acquire() as conn:
            await conn.fetchval("SELECT 1")
        db_ok = True
    except Exception as exc:
        logger.warning("Health check DB probe failed: %s", exc)

    runtime = getattr(request.app.state, "sync_runtime", None)
    return {
        "status": "healthy" if db_ok else "degraded",
        "version": settings.app_version,
        "environment": settings.environment,
        "database": "connected" if db_ok else "unreachable",
        "sync_config": get_sync_config().version,
        "syncs_in_flight": len(runtime.scheduler.single_flight) if runtime else 0,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
