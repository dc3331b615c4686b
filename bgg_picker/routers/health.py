"""Health, readiness, and metrics endpoints.

- GET /health — service status + relay pool stats
- GET /readiness — 200 only when at least one relay is eligible for requests
- GET /metrics — relay, scheduler and cache metrics
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter, Response

from bgg_picker.models.responses import ApiResponse

if TYPE_CHECKING:
    from bgg_picker.proxy.router import ProxyRouter
    from bgg_picker.services.collection_service import CollectionService
    from bgg_picker.services.request_scheduler import RequestScheduler


def create_health_router(
    *,
    proxy_router: ProxyRouter | None = None,
    scheduler: RequestScheduler | None = None,
    collection_service: CollectionService | None = None,
    version: str = "",
) -> APIRouter:
    """Factory that creates the health router with injected dependencies."""

    health_router = APIRouter(tags=["health"])

    @health_router.get("/health")
    async def health() -> dict:
        """Service health check with relay statistics."""
        relay_stats = proxy_router.get_stats() if proxy_router else {}

        return ApiResponse(
            success=True,
            data={
                "status": "healthy",
                "version": version,
                "relay_pool": relay_stats,
            },
        ).model_dump()

    @health_router.get("/readiness")
    async def readiness(response: Response) -> dict:
        """Readiness probe: 200 iff at least one relay passes the skip rule."""
        relay_stats = proxy_router.get_stats() if proxy_router else {"healthy": 0}
        relay_healthy = relay_stats.get("healthy", 0)

        is_ready = relay_healthy > 0
        if not is_ready:
            response.status_code = 503

        return ApiResponse(
            success=is_ready,
            data={
                "ready": is_ready,
                "relay_healthy": relay_healthy,
            },
            error=None if is_ready else "No healthy relay available",
        ).model_dump()

    @health_router.get("/metrics")
    async def metrics() -> dict:
        """Operational metrics endpoint."""
        return ApiResponse(
            success=True,
            data={
                "relay_pool": proxy_router.get_stats() if proxy_router else {},
                "scheduler": scheduler.get_stats() if scheduler else {},
                "cache": collection_service.get_stats() if collection_service else {},
            },
        ).model_dump()

    return health_router
