"""Roll endpoint.

- POST /api/v1/roll — filter the pool and pick one game by weighted sampling
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi import APIRouter

from bgg_picker.models.requests import RollRequest
from bgg_picker.models.responses import ApiResponse, RollResult
from bgg_picker.selection.filters import apply_filters
from bgg_picker.selection.weighting import WeightedSelector, weight_info_text

if TYPE_CHECKING:
    from bgg_picker.services.collection_service import CollectionService

logger = logging.getLogger(__name__)


def create_roll_router(
    *,
    collection_service: CollectionService | None = None,
    selector: WeightedSelector | None = None,
) -> APIRouter:
    """Factory that creates the roll router with injected dependencies."""
    roll_router = APIRouter(prefix="/api/v1", tags=["roll"])
    _selector = selector or WeightedSelector()

    @roll_router.post("/roll")
    async def roll(body: RollRequest) -> dict:
        """Pick one game. An empty filtered pool is reported, not raised."""
        if body.games is not None:
            pool = body.games
        else:
            if collection_service is None:
                raise RuntimeError("Collection service is not configured")
            result = await collection_service.get_collection(
                body.username or "", sync_plays=body.sync_plays
            )
            pool = result.games

        candidates = apply_filters(pool, body.filters)
        info = weight_info_text(candidates, body.method, body.rating)
        picked = _selector.select(candidates, body.method, body.rating)

        weight = probability = None
        if picked is not None:
            weights = _selector.weights(candidates, body.method, body.rating)
            weight = weights[candidates.index(picked)]
            total = sum(weights)
            probability = weight / total if total > 0 else 1 / len(candidates)
            logger.info(
                "Rolled %s from %d candidates (method=%s)",
                picked.name,
                len(candidates),
                body.method.value,
            )

        return ApiResponse(
            success=picked is not None,
            data=RollResult(
                game=picked,
                weight=weight,
                probability=probability,
                pool_size=len(candidates),
                info=info,
            ).model_dump(mode="json"),
            error=None if picked is not None else "No games match the current filters",
        ).model_dump()

    return roll_router
