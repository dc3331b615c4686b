"""FastAPI application entry point with lifespan management.

Startup: load settings, configure logging, build the relay router (loading
persisted relay health), request scheduler, BGG client, collection cache and
selector, then start the periodic relay health check.
Shutdown: cancel the health check and close the relay HTTP client.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from bgg_picker.config.relays import load_relays
from bgg_picker.config.settings import PickerSettings
from bgg_picker.logging_config import configure_logging
from bgg_picker.middleware.error_handler import register_error_handlers
from bgg_picker.middleware.request_id import RequestIdMiddleware
from bgg_picker.proxy.health_store import JsonFileHealthStore
from bgg_picker.proxy.router import ProxyRouter
from bgg_picker.routers.collection import create_collection_router
from bgg_picker.routers.health import create_health_router
from bgg_picker.routers.roll import create_roll_router
from bgg_picker.selection.weighting import WeightedSelector
from bgg_picker.services.bgg_client import BGGClient
from bgg_picker.services.collection_service import CollectionService
from bgg_picker.services.request_scheduler import RequestScheduler

logger = logging.getLogger(__name__)

# Shared state for the application, populated during lifespan startup
_state: dict = {}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown logic."""
    settings = PickerSettings()

    configure_logging(settings.log_level, json_output=settings.log_json)
    logger.info("Starting picker service on port %d", settings.port)

    # Relay router
    endpoints = load_relays(settings.relays_path)
    proxy_router = ProxyRouter(
        endpoints,
        JsonFileHealthStore(settings.health_store_path),
        custom_endpoint_url=settings.custom_proxy_url,
        user_agent=f"BoardGamePicker/{settings.app_version}",
        request_timeout_seconds=settings.request_timeout_seconds,
        probe_timeout_seconds=settings.probe_timeout_seconds,
        max_passes=settings.max_passes,
        health_check_interval_seconds=settings.health_check_interval_seconds,
        verbose=settings.verbose,
    )
    await proxy_router.initialize()

    # Start relay health check loop
    health_check_task = asyncio.create_task(
        proxy_router.health_check_loop(probe_first=settings.probe_on_startup)
    )

    scheduler = RequestScheduler(max_concurrency=settings.max_concurrent_requests)
    client = BGGClient(proxy_router, scheduler, batch_size=settings.details_batch_size)
    collection_service = CollectionService(
        client,
        collection_ttl_seconds=settings.collection_cache_ttl_seconds,
        play_ttl_seconds=settings.play_cache_ttl_seconds,
    )
    selector = WeightedSelector()

    # Mount routers
    app.include_router(
        create_health_router(
            proxy_router=proxy_router,
            scheduler=scheduler,
            collection_service=collection_service,
            version=settings.app_version,
        )
    )
    app.include_router(create_collection_router(collection_service=collection_service))
    app.include_router(
        create_roll_router(collection_service=collection_service, selector=selector)
    )

    _state.update({
        "settings": settings,
        "proxy_router": proxy_router,
        "scheduler": scheduler,
        "collection_service": collection_service,
    })

    logger.info("Picker service started with %d relays", len(endpoints))

    yield

    # --- Shutdown ---
    logger.info("Shutting down picker service…")

    health_check_task.cancel()
    try:
        await health_check_task
    except asyncio.CancelledError:
        pass

    await proxy_router.aclose()
    _state.clear()

    logger.info("Picker service shut down")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Loads ``PickerSettings`` eagerly so that an invalid ``PICKER_*``
    environment variable fails at import time rather than on first request.
    """
    settings = PickerSettings()

    app = FastAPI(
        title="Board Game Picker",
        version=settings.app_version,
        lifespan=lifespan,
    )

    register_error_handlers(app)
    app.add_middleware(RequestIdMiddleware)

    return app


app = create_app()
