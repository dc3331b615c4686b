"""Game selection — filters and weighted random picking."""

from bgg_picker.selection.filters import GameFilters, GameType, apply_filters
from bgg_picker.selection.weighting import (
    RatingConfig,
    WeightedSelector,
    WeightingMethod,
    rating_multiplier,
    weight_info_text,
)

__all__ = [
    "GameFilters",
    "GameType",
    "RatingConfig",
    "WeightedSelector",
    "WeightingMethod",
    "apply_filters",
    "rating_multiplier",
    "weight_info_text",
]
