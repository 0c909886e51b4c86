"""
FastAPI dependency injection providers.

Exposes the settings and shard store built at startup (stored on
``app.state`` by the lifespan) to route handlers via Depends().

CHANGELOG:
- 2026-10-19: Initial creation (STORY-010)
"""

from typing import Annotated

from fastapi import Depends, Request

from collector.src.config import CollectorSettings
from collector.src.shards import ShardStore


def get_settings(request: Request) -> CollectorSettings:
    """Return the settings loaded at application startup."""
    return request.app.state.settings


def get_store(request: Request) -> ShardStore:
    """Return the shard store built at application startup."""
    return request.app.state.store


Settings = Annotated[CollectorSettings, Depends(get_settings)]
Store = Annotated[ShardStore, Depends(get_store)]
