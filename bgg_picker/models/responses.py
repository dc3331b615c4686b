"""API response envelope and payload models.

All API responses are wrapped in the envelope for consistency:
{ success: bool, data: T | None, error: str | None, meta: dict | None }
"""

from __future__ import annotations

from datetime import datetime
from typing import Generic, TypeVar

from pydantic import BaseModel

from bgg_picker.models.game import Game

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """JSON envelope for all API responses."""

    success: bool
    data: T | None = None
    error: str | None = None
    meta: dict | None = None


class CollectionPayload(BaseModel):
    """A user's collection and whether it was served from cache."""

    username: str
    source: str
    cached_at: datetime
    total: int
    games: list[Game]


class RollResult(BaseModel):
    """Outcome of one roll. ``game`` is ``None`` when the filtered pool is empty."""

    game: Game | None
    weight: float | None
    probability: float | None
    pool_size: int
    info: str
