"""Pydantic request models for the collection and roll endpoints."""

from __future__ import annotations

from pydantic import BaseModel, Field, model_validator

from bgg_picker.models.game import Game
from bgg_picker.selection.filters import GameFilters
from bgg_picker.selection.weighting import RatingConfig, WeightingMethod


class GameDetailsRequest(BaseModel):
    """Request model for enriched details of specific games (one thing call per 20 ids)."""

    game_ids: list[str] = Field(..., min_length=1, max_length=500)


class RollRequest(BaseModel):
    """Request model for a single roll.

    Either ``username`` (the collection is resolved through the cache) or an
    explicit ``games`` pool must be supplied.
    """

    username: str | None = Field(default=None, min_length=1, max_length=100)
    games: list[Game] | None = None
    method: WeightingMethod = WeightingMethod.RANDOM
    rating: RatingConfig = Field(default_factory=RatingConfig)
    filters: GameFilters = Field(default_factory=GameFilters)
    sync_plays: bool = False  # fetch last-play dates before weighting

    @model_validator(mode="after")
    def _require_pool(self) -> RollRequest:
        if self.username is None and self.games is None:
            raise ValueError("Either 'username' or 'games' is required")
        return self
