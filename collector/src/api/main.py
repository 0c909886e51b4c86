"""
FastAPI application entry point for the collector read API.

Loads CollectorSettings at startup and builds the ShardStore onto
app.state for route handlers. The API only reads shards; polling is done by
the collector daemon (collector.src.main).

CHANGELOG:
- 2026-10-19: Initial creation (STORY-010)
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from collector.src.api.health import router as health_router
from collector.src.api.series import router as series_router
from collector.src.config import CollectorSettings
from collector.src.shards import ShardStore

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: load settings and build the shard store.

    Raises:
        pydantic.ValidationError: If the environment configuration is invalid.
    """
    settings = CollectorSettings()
    app.state.settings = settings
    app.state.store = ShardStore(
        settings.workdir,
        lock_timeout_s=settings.lock_timeout_s,
        extension=settings.shard_extension,
    )
    logger.info(
        "Collector API ready (workdir=%s, %d devices)",
        settings.workdir,
        len(settings.devices),
    )
    yield
    logger.info("Collector API shutting down")


app = FastAPI(
    title="Energy Meter Collector API",
    description="Hourly readings and consumption rollups for polled energy meters.",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health_router)
app.include_router(series_router)


@app.get("/")
async def root() -> dict:
    """Root health check endpoint.

    Returns:
        dict: JSON object with application status.
    """
    return {"status": "ok"}
