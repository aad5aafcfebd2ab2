"""stepsync API — FastAPI application entry point.

Run locally:
    uvicorn stepsync.main:app --reload --port 8080
"""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator

import httpx
from fastapi import FastAPI

from stepsync.config import Settings, get_settings
from stepsync.dependencies import SyncRuntime
from stepsync.fitness.adapters.google_fit import GoogleFitAdapter
from stepsync.fitness.adapters.oneself import OneselfSink
from stepsync.fitness.base import AccountStore
from stepsync.fitness.config_loader import get_sync_config, reload_sync_config
from stepsync.fitness.store import PostgresAccountStore
from stepsync.fitness.sync.orchestrator import SyncOrchestrator
from stepsync.fitness.sync.scheduler import SyncScheduler
from stepsync.routers import auth, health, sync
from stepsync.services.database import close_pool, init_pool

logger = logging.getLogger("stepsync")


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
    )


def build_runtime(
    settings: Settings,
    http_client: httpx.AsyncClient,
    store: AccountStore,
) -> SyncRuntime:
    """Wire the sync collaborators from settings and the bundled config."""
    if settings.sync_config_path:
        config = reload_sync_config(Path(settings.sync_config_path))
    else:
        config = get_sync_config()

    source = GoogleFitAdapter(
        config.source,
        client_id=settings.google_client_id,
        client_secret=settings.google_client_secret,
        redirect_url=settings.google_redirect_url,
        http_client=http_client,
    )
    sink = OneselfSink(
        settings.oneself_api_endpoint,
        config.events,
        app_id=settings.oneself_app_id,
        app_secret=settings.oneself_app_secret,
        http_client=http_client,
    )
    orchestrator = SyncOrchestrator(source=source, sink=sink, store=store, config=config)
    scheduler = SyncScheduler(orchestrator, max_concurrent=settings.sync_max_concurrent)
    return SyncRuntime(scheduler=scheduler, sink=sink, source=source, store=store)


# ---------- Lifespan ----------

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup / shutdown hooks."""
    settings = get_settings()
    logger.info(
        "Starting stepsync API v%s [%s]",
        settings.app_version,
        settings.environment,
    )
    pool = await init_pool(settings)
    async with httpx.AsyncClient(timeout=settings.http_timeout_seconds) as http_client:
        app.state.sync_runtime = build_runtime(
            settings, http_client, PostgresAccountStore(pool)
        )
        yield
    app.state.sync_runtime = None
    await close_pool()
    logger.info("stepsync API shut down")


# ---------- App factory ----------

def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="stepsync API",
        description=(
            "Incremental Google Fit step sync: hourly step buckets forwarded "
            "to 1self with start/complete/error lifecycle events."
        ),
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ---------- Health check (outside v1 prefix — always at /health) ----------
    app.include_router(health.router)

    # ---------- Account linking (root paths, matching the Google redirect URL) ----------
    app.include_router(auth.router)

    # ---------- API v1 routes ----------
    app.include_router(sync.router, prefix="/api/v1")

    return app


app = create_app()
