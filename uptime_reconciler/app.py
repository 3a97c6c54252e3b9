"""FastAPI application: remote check endpoint and optional scheduled worker."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI, HTTPException
from fastapi.responses import PlainTextResponse

from uptime_reconciler.config import Settings, get_settings, load_monitors
from uptime_reconciler.db import Database, DatabaseKeyValueStore
from uptime_reconciler.discovery import CloudflareDiscovery
from uptime_reconciler.models import MonitorTarget, RemoteCheckRequest, RemoteCheckResponse
from uptime_reconciler.probe import detect_location, probe_target

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Initialize and tear down shared app resources."""
    settings = get_settings()

    async with Database(settings.database_url) as db:
        app.state.database = db

        worker = None
        if settings.scheduler_enabled:
            worker = asyncio.create_task(worker_task(settings, db))

        yield

        if worker is not None:
            worker.cancel()
            with suppress(asyncio.CancelledError):
                await worker


async def worker_task(settings: Settings, database: Database) -> None:
    """Run the scheduled reconciliation loop against ``database``."""
    from .engine import create_reconciler, worker_loop

    store = DatabaseKeyValueStore(database)

    async def make_reconciler():
        return await create_reconciler(settings, store)

    await worker_loop(make_reconciler, interval_s=settings.check_interval_s)


async def resolve_target(target_id: str, settings: Settings) -> MonitorTarget | None:
    """Find a target by id among discovered DNS records, then in static config."""
    if settings.cloudflare_zone_id and settings.cloudflare_api_token:
        try:
            discovery = CloudflareDiscovery(
                settings.cloudflare_zone_id, settings.cloudflare_api_token
            )
            found = await discovery.find(target_id)
            if found is not None:
                return found
        except Exception:
            logger.exception("Skipping target auto-discovery")

    monitors = load_monitors(settings.monitors_file) if settings.monitors_file else []
    return next((m for m in monitors if m.id == target_id), None)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(title="Uptime Reconciler", lifespan=lifespan)

    @app.get("/healthz")
    async def healthz() -> dict[str, str]:
        """Return a simple health status."""
        return {"status": "ok"}

    @app.get("/", response_class=PlainTextResponse, status_code=405)
    async def index() -> str:
        """Only POST runs checks."""
        return "Remote worker is working..."

    @app.post("/", response_model=RemoteCheckResponse)
    async def remote_check(payload: RemoteCheckRequest) -> RemoteCheckResponse:
        """Probe the requested target from this location."""
        settings = get_settings()
        location = await detect_location(settings.location)
        logger.info("Handling remote check for %s at %s", payload.target, location)

        target = await resolve_target(payload.target, settings)
        if target is None:
            raise HTTPException(status_code=404, detail="Target Not Found")

        status = await probe_target(target)
        return RemoteCheckResponse(location=location, status=status)

    return app
