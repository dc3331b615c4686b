"""Game model shared by the BGG client, filters, selector and API.

All detail fields are optional so that partially parsed collection entries
still validate: missing values are ``None`` rather than failures.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class Game(BaseModel):
    """One board game from a user's BGG collection."""

    id: str
    name: str = "Unknown Game"
    year_published: int | None = None
    image: str | None = None
    thumbnail: str | None = None
    owned: bool = False
    wishlist: bool = False

    # Fields read by the weighting policy
    personal_rating: float | None = Field(default=None, ge=0, le=10)
    play_count: int = Field(default=0, ge=0)
    last_played: datetime | None = None

    # Enriched details
    min_players: int | None = None
    max_players: int | None = None
    play_time: int | None = None
    min_play_time: int | None = None
    max_play_time: int | None = None
    complexity: float | None = None
    bgg_rating: float | None = None

    @property
    def is_rated(self) -> bool:
        rating = self.personal_rating
        return rating is not None and rating > 0
