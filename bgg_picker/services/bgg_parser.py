"""Parsers for BGG XML API v2 documents (collection, thing, plays).

Parsing is best-effort per field: a missing or malformed value becomes
``None`` (or the documented default) instead of failing the whole item.
Document-level problems (BGG error payloads, the "still processing" notice,
empty collections) raise the matching ``PickerError``.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from datetime import datetime, timezone

from bgg_picker.middleware.error_handler import (
    BGGApiError,
    CollectionNotFoundError,
    CollectionProcessingError,
    EmptyCollectionError,
)
from bgg_picker.models.game import Game

logger = logging.getLogger(__name__)

_PROCESSING_MARKER = "accepted and will be processed"


def _parse_document(xml_text: str) -> ET.Element:
    try:
        return ET.fromstring(xml_text)
    except ET.ParseError as exc:
        raise BGGApiError(f"XML parsing failed: {exc}") from exc


def _to_int(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return int(float(value))
    except ValueError:
        return None


def _to_float(value: str | None) -> float | None:
    if value is None or value.strip().upper() == "N/A":
        return None
    try:
        return float(value)
    except ValueError:
        return None


def _text(element: ET.Element, path: str) -> str | None:
    found = element.find(path)
    if found is None or found.text is None:
        return None
    text = found.text.strip()
    return text or None


def _attr(element: ET.Element, path: str, name: str = "value") -> str | None:
    found = element.find(path)
    if found is None:
        return None
    return found.get(name)


def _check_errors(root: ET.Element) -> None:
    error = next(root.iter("error"), None)
    if error is not None:
        message = " ".join(t.strip() for t in error.itertext() if t.strip()) or "unknown error"
        raise BGGApiError(f"BGG API Error: {message}")

    message_el = root if root.tag == "message" else root.find("message")
    if message_el is not None and _PROCESSING_MARKER in "".join(message_el.itertext()):
        raise CollectionProcessingError()


# ---------------------------------------------------------------------------
# Collection
# ---------------------------------------------------------------------------


def parse_collection(xml_text: str, username: str) -> list[Game]:
    """Parse a ``/collection`` response into games.

    Raises
    ------
    BGGApiError
        BGG returned an error document or malformed XML.
    CollectionProcessingError
        BGG has queued the collection export.
    EmptyCollectionError / CollectionNotFoundError
        No items were returned.
    """
    root = _parse_document(xml_text)
    _check_errors(root)

    items = root.findall("item") if root.tag == "items" else root.findall(".//item")
    if not items:
        if root.tag == "items":
            total = root.get("totalitems", "0")
            if total == "0":
                raise EmptyCollectionError(
                    f'User "{username}" exists but has no games in their collection.'
                )
            raise CollectionNotFoundError(
                f'User "{username}" has {total} items but none match current filters.'
            )
        raise CollectionNotFoundError(f'No collection data found for user "{username}".')

    games = []
    for item in items:
        game = parse_collection_item(item)
        if game is not None:
            games.append(game)
    logger.debug("Parsed %d games for %s", len(games), username, extra={"username": username})
    return games


def parse_collection_item(item: ET.Element) -> Game | None:
    """Convert one collection ``<item>`` into a ``Game``; ``None`` if it has no id."""
    game_id = item.get("objectid")
    if not game_id:
        logger.warning("Skipping collection item without objectid")
        return None

    thumbnail = _text(item, "thumbnail")
    status = item.find("status")
    stats = item.find("stats")

    rating = _to_float(_attr(item, "stats/rating"))
    if rating is not None and not 0 <= rating <= 10:
        rating = None

    game = Game(
        id=game_id,
        name=_text(item, "name") or "Unknown Game",
        year_published=_to_int(_text(item, "yearpublished")),
        image=_text(item, "image") or thumbnail,
        thumbnail=thumbnail,
        owned=(
            item.get("subtype") == "boardgame"
            and status is not None
            and status.get("own") == "1"
        ),
        wishlist=status is not None and status.get("wishlist") == "1",
        personal_rating=rating,
        play_count=max(_to_int(_text(item, "numplays")) or 0, 0),
    )

    if stats is not None:
        game.min_players = _to_int(stats.get("minplayers"))
        game.max_players = _to_int(stats.get("maxplayers"))
        game.play_time = _to_int(stats.get("playingtime"))
        game.min_play_time = _to_int(stats.get("minplaytime"))
        game.max_play_time = _to_int(stats.get("maxplaytime"))
        game.complexity = _to_float(_attr(stats, "rating/averageweight"))
        game.bgg_rating = _to_float(_attr(stats, "rating/average"))
        if game.bgg_rating is None:
            game.bgg_rating = _to_float(_attr(stats, "rating/bayesaverage"))

    return game


# ---------------------------------------------------------------------------
# Thing details
# ---------------------------------------------------------------------------


def apply_thing_details(xml_text: str, games: list[Game]) -> int:
    """Merge ``/thing`` details into matching ``games``. Returns the number updated."""
    root = _parse_document(xml_text)
    _check_errors(root)

    by_id = {game.id: game for game in games}
    updated = 0

    for item in root.iter("item"):
        game = by_id.get(item.get("id", ""))
        if game is None:
            continue

        complexity = _to_float(_attr(item, "statistics/ratings/averageweight"))
        if complexity:
            game.complexity = complexity

        min_players = _to_int(_attr(item, "minplayers"))
        max_players = _to_int(_attr(item, "maxplayers"))
        if min_players:
            game.min_players = min_players
        if max_players:
            game.max_players = max_players

        play_time = _to_int(_attr(item, "playingtime"))
        max_time = _to_int(_attr(item, "maxplaytime"))
        min_time = _to_int(_attr(item, "minplaytime"))
        if play_time:
            game.play_time = play_time
        elif max_time:
            game.play_time = max_time
        if min_time:
            game.min_play_time = min_time
        if max_time:
            game.max_play_time = max_time

        average = _to_float(_attr(item, "statistics/ratings/average"))
        if average:
            game.bgg_rating = average

        updated += 1

    return updated


# ---------------------------------------------------------------------------
# Plays
# ---------------------------------------------------------------------------


def parse_latest_play_date(xml_text: str) -> datetime | None:
    """Return the date of the newest ``<play>`` (BGG lists newest first)."""
    root = _parse_document(xml_text)
    _check_errors(root)

    play = root.find("play")
    if play is None:
        return None

    raw = play.get("date")
    if not raw:
        return None
    try:
        parsed = datetime.strptime(raw, "%Y-%m-%d")
    except ValueError:
        logger.warning("Unparseable play date %r", raw)
        return None
    return parsed.replace(tzinfo=timezone.utc)
