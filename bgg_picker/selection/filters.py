"""Collection filters applied before a roll."""

from __future__ import annotations

from collections.abc import Iterable
from enum import Enum
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field, model_validator

if TYPE_CHECKING:
    from bgg_picker.models.game import Game

# A player-count filter of this value means "this many or more".
PLAYER_COUNT_OPEN_ENDED = 5


class GameType(str, Enum):
    ALL = "all"
    OWNED = "owned"
    WISHLIST = "wishlist"


class GameFilters(BaseModel):
    """Active filter criteria. Unset bounds do not filter."""

    player_count: int | None = Field(default=None, ge=1)
    min_play_time: int | None = Field(default=None, ge=0)
    max_play_time: int | None = Field(default=None, ge=0)
    min_complexity: float | None = Field(default=None, ge=0, le=5)
    max_complexity: float | None = Field(default=None, ge=0, le=5)
    game_type: GameType = GameType.ALL
    include_unrated: bool = True
    use_personal_rating: bool = False
    min_personal_rating: float = Field(default=0, ge=0, le=10)

    @model_validator(mode="after")
    def _check_ranges(self) -> GameFilters:
        if (
            self.min_play_time is not None
            and self.max_play_time is not None
            and self.min_play_time > self.max_play_time
        ):
            raise ValueError("min_play_time must not exceed max_play_time")
        if (
            self.min_complexity is not None
            and self.max_complexity is not None
            and self.min_complexity > self.max_complexity
        ):
            raise ValueError("min_complexity must not exceed max_complexity")
        return self

    @property
    def filters_complexity(self) -> bool:
        return self.min_complexity is not None or self.max_complexity is not None


def matches(game: Game, filters: GameFilters) -> bool:
    """Return True if ``game`` passes every active filter."""
    if filters.game_type == GameType.OWNED and not game.owned:
        return False
    if filters.game_type == GameType.WISHLIST and not game.wishlist:
        return False

    if filters.player_count is not None:
        min_players = game.min_players or 1
        max_players = game.max_players or min_players
        if filters.player_count >= PLAYER_COUNT_OPEN_ENDED:
            if max_players < PLAYER_COUNT_OPEN_ENDED:
                return False
        elif min_players > filters.player_count or max_players < filters.player_count:
            return False

    play_time = game.play_time or 0
    if filters.min_play_time is not None and play_time < filters.min_play_time:
        return False
    if filters.max_play_time is not None and play_time > filters.max_play_time:
        return False

    if filters.filters_complexity:
        if not game.complexity:
            return False
        if filters.min_complexity is not None and game.complexity < filters.min_complexity:
            return False
        if filters.max_complexity is not None and game.complexity > filters.max_complexity:
            return False

    if not game.is_rated and not filters.include_unrated:
        return False

    if (
        filters.use_personal_rating
        and game.is_rated
        and game.personal_rating < filters.min_personal_rating  # type: ignore[operator]
    ):
        return False

    return True


def apply_filters(games: Iterable[Game], filters: GameFilters | None = None) -> list[Game]:
    """Return the games that pass ``filters``, preserving order."""
    if filters is None:
        return list(games)
    return [game for game in games if matches(game, filters)]
