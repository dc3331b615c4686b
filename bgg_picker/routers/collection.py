"""Collection endpoints.

- GET  /api/v1/collection/{username} — cached or fresh collection
- POST /api/v1/collection/games/details — enriched details for game ids
- GET  /api/v1/collection/{username}/plays/{game_id} — last play date
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi import APIRouter

from bgg_picker.models.requests import GameDetailsRequest
from bgg_picker.models.responses import ApiResponse, CollectionPayload

if TYPE_CHECKING:
    from bgg_picker.services.collection_service import CollectionService

logger = logging.getLogger(__name__)


def create_collection_router(*, collection_service: CollectionService) -> APIRouter:
    """Factory that creates the collection router with injected dependencies."""
    collection_router = APIRouter(prefix="/api/v1/collection", tags=["collection"])

    # Registered before /{username} so "games" is not taken as a username.
    @collection_router.post("/games/details")
    async def game_details(body: GameDetailsRequest) -> dict:
        """Enriched details, served from cache where possible."""
        games, cached, fetched = await collection_service.get_game_details(body.game_ids)
        return ApiResponse(
            success=True,
            data={"games": [game.model_dump(mode="json") for game in games]},
            meta={"cached": cached, "fetched": fetched},
        ).model_dump()

    @collection_router.get("/{username}")
    async def get_collection(
        username: str,
        refresh: bool = False,
        sync_plays: bool = False,
    ) -> dict:
        """Return the user's collection; ``refresh=true`` bypasses the cache."""
        result = await collection_service.get_collection(
            username, refresh=refresh, sync_plays=sync_plays
        )
        payload = CollectionPayload(
            username=username,
            source=result.source,
            cached_at=result.fetched_at,
            total=len(result.games),
            games=result.games,
        )
        return ApiResponse(success=True, data=payload.model_dump(mode="json")).model_dump()

    @collection_router.get("/{username}/plays/{game_id}")
    async def get_last_played(username: str, game_id: str) -> dict:
        """Most recent play date of one game, or null."""
        last_played, source = await collection_service.get_last_played(username, game_id)
        return ApiResponse(
            success=True,
            data={
                "game_id": game_id,
                "source": source,
                "last_played": last_played.date().isoformat() if last_played else None,
            },
        ).model_dump()

    return collection_router
