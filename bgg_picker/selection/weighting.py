"""Weighted random game selection.

Each candidate gets a weight from the active policy:

- ``random``: every game weighs 1.
- ``recency``: ``1.05 ** days_since_played`` (capped at 365 days). Never-played
  games get the cap; played games without a date get 180 days.
- ``unplayed``: unplayed games weigh 10; others ``1.03 ** days`` (capped at
  365 days) or 2 when the date is unknown.

When rating modulation is on, a rated game's weight is multiplied by a step
function of its personal rating. One game is then drawn by roulette-wheel
sampling over the weights, in input order, from an injectable uniform RNG.
"""

from __future__ import annotations

import logging
import math
import random
from collections.abc import Callable, Sequence
from datetime import datetime, timezone
from enum import Enum
from typing import Protocol, TypeVar

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

RECENCY_BASE = 1.05
UNPLAYED_BASE = 1.03
MAX_DAYS = 365
UNKNOWN_DATE_DAYS = 180
UNPLAYED_WEIGHT = 10.0
UNKNOWN_DATE_WEIGHT = 2.0

# (minimum rating, multiplier), checked top-down
RATING_STEPS: tuple[tuple[float, float], ...] = (
    (9, 3.0),
    (8, 2.0),
    (7, 1.5),
    (6, 1.0),
    (5, 0.7),
    (4, 0.5),
)
LOW_RATING_MULTIPLIER = 0.3

_SECONDS_PER_DAY = 86400


class WeightingMethod(str, Enum):
    """Selection policies."""

    RANDOM = "random"
    RECENCY = "recency"
    UNPLAYED = "unplayed"


class RatingConfig(BaseModel):
    """Personal-rating modulation settings."""

    enabled: bool = False
    min_rating: float = Field(default=0, ge=0, le=10)


class SelectionItem(Protocol):
    """The fields the weighting policy reads. ``Game`` satisfies this."""

    last_played: datetime | None
    play_count: int
    personal_rating: float | None


ItemT = TypeVar("ItemT", bound=SelectionItem)


def rating_multiplier(rating: float) -> float:
    for threshold, multiplier in RATING_STEPS:
        if rating >= threshold:
            return multiplier
    return LOW_RATING_MULTIPLIER


def has_valid_rating(item: SelectionItem) -> bool:
    rating = item.personal_rating
    if isinstance(rating, bool) or not isinstance(rating, (int, float)):
        return False
    return not math.isnan(rating) and rating > 0


def days_since(moment: datetime, now: datetime) -> float:
    """Fractional days between ``moment`` and ``now``. Naive datetimes are UTC."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return (now - moment).total_seconds() / _SECONDS_PER_DAY


def base_weight(item: SelectionItem, method: WeightingMethod, now: datetime) -> float:
    """Policy weight of one item before rating modulation."""
    if method == WeightingMethod.RECENCY:
        if item.last_played is not None:
            return RECENCY_BASE ** min(days_since(item.last_played, now), MAX_DAYS)
        if item.play_count == 0:
            return RECENCY_BASE**MAX_DAYS
        return RECENCY_BASE**UNKNOWN_DATE_DAYS

    if method == WeightingMethod.UNPLAYED:
        if item.play_count == 0:
            return UNPLAYED_WEIGHT
        if item.last_played is not None:
            return UNPLAYED_BASE ** min(days_since(item.last_played, now), MAX_DAYS)
        return UNKNOWN_DATE_WEIGHT

    return 1.0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WeightedSelector:
    """Picks one item from a pool by weighted random sampling.

    Parameters
    ----------
    rng:
        Uniform ``[0, 1)`` generator. Defaults to ``random.random``; tests pass
        a fixed sequence.
    clock:
        Returns the current time used for days-since-played.
    """

    def __init__(
        self,
        rng: Callable[[], float] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._rng = rng or random.random
        self._clock = clock or _utcnow

    def weight(
        self,
        item: SelectionItem,
        method: WeightingMethod,
        rating_config: RatingConfig | None = None,
        *,
        now: datetime | None = None,
    ) -> float:
        """Final weight of ``item``: policy weight times rating multiplier."""
        weight = base_weight(item, method, now or self._clock())
        if rating_config is not None and rating_config.enabled and has_valid_rating(item):
            weight *= rating_multiplier(float(item.personal_rating))  # type: ignore[arg-type]
        return weight

    def weights(
        self,
        items: Sequence[SelectionItem],
        method: WeightingMethod,
        rating_config: RatingConfig | None = None,
    ) -> list[float]:
        now = self._clock()
        return [self.weight(item, method, rating_config, now=now) for item in items]

    def select(
        self,
        items: Sequence[ItemT],
        method: WeightingMethod = WeightingMethod.RANDOM,
        rating_config: RatingConfig | None = None,
    ) -> ItemT | None:
        """Return one item, or ``None`` when ``items`` is empty."""
        if not items:
            return None

        modulated = rating_config is not None and rating_config.enabled
        if method == WeightingMethod.RANDOM and not modulated:
            return self._uniform(items)

        weights = self.weights(items, method, rating_config)
        total = sum(weights)
        if total <= 0:
            logger.debug("All %d weights are zero — falling back to uniform pick", len(items))
            return self._uniform(items)

        remaining = self._rng() * total
        for item, weight in zip(items, weights):
            remaining -= weight
            if remaining <= 0:
                return item

        # Floating-point residue can leave a sliver past the last weight.
        return items[-1]

    def _uniform(self, items: Sequence[ItemT]) -> ItemT:
        index = int(self._rng() * len(items))
        return items[min(index, len(items) - 1)]


def weight_info_text(
    items: Sequence[SelectionItem],
    method: WeightingMethod,
    rating_config: RatingConfig | None = None,
) -> str:
    """Human-readable summary of how the current pool will be weighted."""
    count = len(items)
    if method == WeightingMethod.RECENCY:
        text = f"Favoring games not played recently ({count} games)"
    elif method == WeightingMethod.UNPLAYED:
        unplayed = sum(1 for item in items if item.play_count == 0)
        text = f"Favoring unplayed games ({unplayed} unplayed of {count})"
    else:
        text = f"Equal chance for all {count} games"

    if rating_config is not None and rating_config.enabled:
        rated = [float(item.personal_rating) for item in items if has_valid_rating(item)]  # type: ignore[arg-type]
        qualifying = sum(1 for rating in rated if rating >= rating_config.min_rating)
        avg = f"{sum(rated) / len(rated):.1f}" if rated else "N/A"
        text += (
            f" | Ratings: {qualifying} meet min {rating_config.min_rating:g}"
            f"★ (avg {avg})"
        )

    return text
