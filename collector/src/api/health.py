"""
Health check endpoint for the collector read API.

Provides a simple GET /health endpoint that returns {"status": "ok"} with
HTTP 200. No shard is touched; intended for Docker HEALTHCHECK only.

CHANGELOG:
- 2026-10-19: Initial creation (STORY-010)

TODO:
- None
"""

from fastapi import APIRouter

router = APIRouter(tags=["health"])


@router.get("/health")
async def health() -> dict[str, str]:
    """Return a simple health status.

    Returns:
        dict: ``{"status": "ok"}`` indicating the service is alive.
    """
    return {"status": "ok"}
