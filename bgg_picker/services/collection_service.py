"""Cached access to BGG collections, game details and play dates.

Collections are cached per lowercase username for ``collection_ttl_seconds``
(24 h by default) and play dates per ``(username, game_id)`` for
``play_ttl_seconds`` (7 days). Game details do not change often and are
cached per id for the life of the process. All caches are in-memory.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone

from bgg_picker.middleware.error_handler import PickerError
from bgg_picker.models.game import Game
from bgg_picker.services.bgg_client import BGGClient, ProgressFn

logger = logging.getLogger(__name__)


@dataclass
class CollectionResult:
    """A collection plus where it came from."""

    source: str  # "cache" or "bgg"
    fetched_at: datetime
    games: list[Game] = field(default_factory=list)


class CollectionService:
    """TTL-cached facade over ``BGGClient``.

    Parameters
    ----------
    client:
        BGG client used on cache misses.
    collection_ttl_seconds:
        Lifetime of a cached collection.
    play_ttl_seconds:
        Lifetime of a cached last-play lookup.
    clock:
        Monotonic clock used for expiry.
    """

    def __init__(
        self,
        client: BGGClient,
        collection_ttl_seconds: int = 86400,
        play_ttl_seconds: int = 604800,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client = client
        self._collection_ttl = collection_ttl_seconds
        self._play_ttl = play_ttl_seconds
        self._clock = clock

        # username -> (result, expiry)
        self._collections: dict[str, tuple[CollectionResult, float]] = {}
        # (username, game_id) -> (last_played, expiry)
        self._plays: dict[tuple[str, str], tuple[datetime | None, float]] = {}
        # game_id -> Game
        self._details: dict[str, Game] = {}

    async def get_collection(
        self,
        username: str,
        *,
        refresh: bool = False,
        enrich: bool = True,
        sync_plays: bool = False,
        on_progress: ProgressFn | None = None,
    ) -> CollectionResult:
        """Return the user's collection, from cache unless expired or ``refresh``."""
        key = username.strip().lower()

        if not refresh:
            cached = self._collections.get(key)
            if cached is not None:
                result, expiry = cached
                if self._clock() < expiry:
                    logger.info(
                        "Serving cached collection for %s",
                        username,
                        extra={"username": username},
                    )
                    games = [game.model_copy() for game in result.games]
                    if sync_plays:
                        await self.sync_play_data(username, games, on_progress)
                    return CollectionResult(
                        source="cache",
                        fetched_at=result.fetched_at,
                        games=games,
                    )

        logger.info("Fetching fresh collection for %s", username, extra={"username": username})
        games = await self._client.fetch_collection(username)
        if enrich:
            await self._client.enrich_games(games, on_progress=on_progress)
            for game in games:
                self._details[game.id] = game.model_copy()
        if sync_plays:
            await self.sync_play_data(username, games, on_progress)

        result = CollectionResult(
            source="bgg",
            fetched_at=datetime.now(timezone.utc),
            games=games,
        )
        self._collections[key] = (
            CollectionResult(
                source="bgg",
                fetched_at=result.fetched_at,
                games=[game.model_copy() for game in games],
            ),
            self._clock() + self._collection_ttl,
        )
        return result

    async def get_game_details(self, game_ids: list[str]) -> tuple[list[Game], int, int]:
        """Return details for ``game_ids`` as ``(games, cached_count, fetched_count)``."""
        cached = [self._details[gid].model_copy() for gid in game_ids if gid in self._details]
        missing = [gid for gid in dict.fromkeys(game_ids) if gid not in self._details]

        fetched: list[Game] = []
        if missing:
            logger.info("Fetching %d uncached games", len(missing))
            fetched = await self._client.fetch_game_details(missing)
            for game in fetched:
                self._details[game.id] = game.model_copy()

        return cached + fetched, len(cached), len(missing)

    async def get_last_played(self, username: str, game_id: str) -> tuple[datetime | None, str]:
        """Return ``(last_played, source)`` for one game."""
        key = (username.strip().lower(), game_id)
        cached = self._plays.get(key)
        if cached is not None:
            last_played, expiry = cached
            if self._clock() < expiry:
                return last_played, "cache"

        last_played = await self._client.fetch_last_played(username, game_id)
        if last_played is not None:
            self._plays[key] = (last_played, self._clock() + self._play_ttl)
        return last_played, "bgg"

    async def sync_play_data(
        self,
        username: str,
        games: list[Game],
        on_progress: ProgressFn | None = None,
    ) -> int:
        """Fill ``last_played`` for played games through the play-date cache."""
        played = [game for game in games if game.play_count > 0 and game.last_played is None]
        updated = 0
        for index, game in enumerate(played):
            if on_progress is not None and index % 5 == 0:
                on_progress(f"Syncing play data... ({index + 1}/{len(played)})")
            try:
                last_played, _source = await self.get_last_played(username, game.id)
            except PickerError as exc:
                logger.warning(
                    "Failed to sync play data for %s: %s",
                    game.name,
                    exc,
                    extra={"username": username, "error_reason": str(exc)},
                )
                continue
            if last_played is not None:
                game.last_played = last_played
                updated += 1
        logger.info("Synced play dates for %d of %d games", updated, len(played))
        return updated

    def invalidate(self, username: str) -> None:
        """Drop the cached collection for ``username``."""
        self._collections.pop(username.strip().lower(), None)

    def get_stats(self) -> dict:
        return {
            "cached_collections": len(self._collections),
            "cached_games": len(self._details),
            "cached_plays": len(self._plays),
        }
