"""BGG XML API client built on the relay router and request scheduler.

Every outbound call is admitted by the ``RequestScheduler`` and executed by
the ``ProxyRouter``. Operations scheduled here call the router directly
inside their slot, never ``schedule()`` again, so nested work cannot starve
the bounded pool.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime
from urllib.parse import quote, urlencode

from bgg_picker.middleware.error_handler import PickerError
from bgg_picker.models.game import Game
from bgg_picker.proxy.router import BGG_API_BASE, ProxyRouter
from bgg_picker.services.bgg_parser import (
    apply_thing_details,
    parse_collection,
    parse_latest_play_date,
)
from bgg_picker.services.request_scheduler import RequestScheduler

logger = logging.getLogger(__name__)

ProgressFn = Callable[[str], None]

DEFAULT_MIN_PLAYERS = 1
DEFAULT_MAX_PLAYERS = 1
DEFAULT_PLAY_TIME = 60
DEFAULT_COMPLEXITY = 2.5


def collection_url(username: str) -> str:
    query = urlencode(
        {"username": username, "stats": 1, "excludesubtype": "boardgameexpansion"},
        quote_via=quote,
    )
    return f"{BGG_API_BASE}/collection?{query}"


def thing_url(game_ids: list[str]) -> str:
    return f"{BGG_API_BASE}/thing?id={','.join(game_ids)}&stats=1&type=boardgame"


def plays_url(username: str, game_id: str) -> str:
    return f"{BGG_API_BASE}/plays?username={quote(username, safe='')}&id={game_id}&page=1"


class BGGClient:
    """Fetches and parses collection, detail and play data from BGG.

    Parameters
    ----------
    router:
        Relay router that performs the GETs.
    scheduler:
        Admission queue bounding concurrent router calls.
    batch_size:
        Game ids per ``/thing`` request (BGG caps this at 20).
    """

    def __init__(
        self,
        router: ProxyRouter,
        scheduler: RequestScheduler,
        batch_size: int = 20,
    ) -> None:
        self._router = router
        self._scheduler = scheduler
        self._batch_size = batch_size

    async def fetch_collection(self, username: str) -> list[Game]:
        """Fetch and parse a user's collection (expansions excluded)."""
        url = collection_url(username)
        logger.info("Fetching BGG collection for %s", username, extra={"username": username})
        xml_text = await self._scheduler.schedule(lambda: self._router.request(url))
        return parse_collection(xml_text, username)

    async def enrich_games(
        self,
        games: list[Game],
        on_progress: ProgressFn | None = None,
    ) -> list[Game]:
        """Fill defaults, then merge ``/thing`` details in scheduled batches.

        A failed batch is logged and skipped; the games keep their defaults.
        """
        for game in games:
            if not game.min_players:
                game.min_players = DEFAULT_MIN_PLAYERS
            if not game.max_players:
                game.max_players = DEFAULT_MAX_PLAYERS
            if not game.play_time:
                game.play_time = DEFAULT_PLAY_TIME
            if not game.complexity:
                game.complexity = DEFAULT_COMPLEXITY

        batches = [
            games[i : i + self._batch_size] for i in range(0, len(games), self._batch_size)
        ]
        if not batches:
            return games

        completed = 0

        async def run_batch(batch: list[Game]) -> None:
            nonlocal completed
            await self._fetch_batch_details(batch)
            completed += 1
            if on_progress is not None:
                pct = round(completed / len(batches) * 100)
                on_progress(
                    f"Loading game details... {pct}% ({completed}/{len(batches)} batches)"
                )

        await asyncio.gather(
            *(self._scheduler.schedule(lambda b=batch: run_batch(b)) for batch in batches)
        )
        return games

    async def fetch_game_details(self, game_ids: list[str]) -> list[Game]:
        """Fetch standalone detail records for ``game_ids``."""
        games = [Game(id=game_id) for game_id in game_ids]
        await self.enrich_games(games)
        return games

    async def fetch_last_played(self, username: str, game_id: str) -> datetime | None:
        """Date of the user's most recent play of ``game_id``, or ``None``."""
        return await self._scheduler.schedule(
            lambda: self._fetch_last_played(username, game_id)
        )

    # ------------------------------------------------------------------
    # Slot bodies (run inside a scheduler slot)
    # ------------------------------------------------------------------

    async def _fetch_batch_details(self, batch: list[Game]) -> None:
        try:
            xml_text = await self._router.request(thing_url([game.id for game in batch]))
            apply_thing_details(xml_text, batch)
        except PickerError as exc:
            logger.error("Batch game details error: %s", exc, extra={"error_reason": str(exc)})

    async def _fetch_last_played(self, username: str, game_id: str) -> datetime | None:
        xml_text = await self._router.request(plays_url(username, game_id))
        return parse_latest_play_date(xml_text)
