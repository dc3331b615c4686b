"""Shared test fixtures and hypothesis strategies for the picker test suite."""

from __future__ import annotations

import os
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

import httpx
import pytest
from hypothesis import strategies as st

from bgg_picker.config.settings import PickerSettings
from bgg_picker.models.game import Game
from bgg_picker.proxy.health_store import MemoryHealthStore
from bgg_picker.proxy.router import ProxyRouter
from bgg_picker.proxy.types import Endpoint, EndpointHealth, ResponseShape

FIXED_NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
FIXED_EPOCH = FIXED_NOW.timestamp()


# ---------------------------------------------------------------------------
# Keep PICKER_* from the developer's shell out of settings under test
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in list(os.environ):
        if key.startswith("PICKER_"):
            monkeypatch.delenv(key, raising=False)


# ---------------------------------------------------------------------------
# Settings fixture
# ---------------------------------------------------------------------------

@pytest.fixture
def settings(tmp_path) -> PickerSettings:
    """Test settings with safe defaults."""
    return PickerSettings(
        health_store_path=str(tmp_path / "health.json"),
        log_json=False,
    )


# ---------------------------------------------------------------------------
# Relay helpers
# ---------------------------------------------------------------------------

def make_endpoints(*names: str, **kwargs) -> list[Endpoint]:
    """Build plain encoding relays ``https://<name>.relay/?url=``."""
    return [
        Endpoint(identifier=name, url_template=f"https://{name.lower()}.relay/?url=", **kwargs)
        for name in names
    ]


def health(success: int = 0, failure: int = 0, consecutive: int = 0, last_success=None):
    return EndpointHealth(
        success_count=success,
        failure_count=failure,
        consecutive_failures=consecutive,
        last_check_time=FIXED_EPOCH,
        last_success_time=last_success,
    )


class RecordingSleep:
    """Async sleep stand-in that records requested delays without waiting."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def make_router(
    endpoints: list[Endpoint],
    handler: Callable[[httpx.Request], httpx.Response],
    *,
    store: MemoryHealthStore | None = None,
    sleep: RecordingSleep | None = None,
    **kwargs,
) -> ProxyRouter:
    """Router wired to an ``httpx.MockTransport`` and a fixed clock."""
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ProxyRouter(
        endpoints,
        store if store is not None else MemoryHealthStore(),
        client=client,
        sleep=sleep or RecordingSleep(),
        clock=lambda: FIXED_EPOCH,
        **kwargs,
    )


def relay_of(request: httpx.Request) -> str:
    """Name of the relay a mock request was sent through."""
    return request.url.host.split(".")[0]


# ---------------------------------------------------------------------------
# Game helpers
# ---------------------------------------------------------------------------

def make_game(game_id: str = "1", **kwargs) -> Game:
    kwargs.setdefault("name", f"Game {game_id}")
    return Game(id=game_id, **kwargs)


def days_ago(days: float) -> datetime:
    return FIXED_NOW - timedelta(days=days)


class SequenceRng:
    """Deterministic ``[0, 1)`` source cycling through fixed values."""

    def __init__(self, *values: float) -> None:
        self._values = list(values)
        self._index = 0

    def __call__(self) -> float:
        value = self._values[self._index % len(self._values)]
        self._index += 1
        return value


# ---------------------------------------------------------------------------
# BGG XML fixtures
# ---------------------------------------------------------------------------

COLLECTION_XML = """<?xml version="1.0" encoding="utf-8"?>
<items totalitems="3" termsofuse="https://boardgamegeek.com/xmlapi/termsofuse">
  <item objecttype="thing" objectid="13" subtype="boardgame" collid="1">
    <name sortindex="1">Catan</name>
    <yearpublished>1995</yearpublished>
    <image>https://cf.geekdo-images.com/catan.jpg</image>
    <thumbnail>https://cf.geekdo-images.com/catan_t.jpg</thumbnail>
    <stats minplayers="3" maxplayers="4" minplaytime="60" maxplaytime="120" playingtime="120" numowned="1">
      <rating value="7.5">
        <average value="7.1"/>
        <bayesaverage value="6.9"/>
        <averageweight value="2.3"/>
      </rating>
    </stats>
    <status own="1" prevowned="0" fortrade="0" want="0" wanttoplay="0" wanttobuy="0" wishlist="0" preordered="0"/>
    <numplays>12</numplays>
  </item>
  <item objecttype="thing" objectid="822" subtype="boardgame" collid="2">
    <name sortindex="1">Carcassonne</name>
    <thumbnail>https://cf.geekdo-images.com/carc_t.jpg</thumbnail>
    <stats minplayers="2" maxplayers="5" playingtime="45">
      <rating value="N/A">
        <average value="N/A"/>
        <bayesaverage value="7.3"/>
      </rating>
    </stats>
    <status own="0" wishlist="1"/>
    <numplays>0</numplays>
  </item>
  <item objecttype="thing" objectid="174430" subtype="boardgame" collid="3">
    <name sortindex="1">Gloomhaven</name>
    <status own="1" wishlist="0"/>
  </item>
</items>
"""

THING_XML = """<?xml version="1.0" encoding="utf-8"?>
<items termsofuse="https://boardgamegeek.com/xmlapi/termsofuse">
  <item type="boardgame" id="13">
    <minplayers value="3"/>
    <maxplayers value="4"/>
    <playingtime value="90"/>
    <minplaytime value="60"/>
    <maxplaytime value="90"/>
    <statistics page="1">
      <ratings>
        <average value="7.09"/>
        <averageweight value="2.29"/>
      </ratings>
    </statistics>
  </item>
  <item type="boardgame" id="174430">
    <minplayers value="1"/>
    <maxplayers value="4"/>
    <playingtime value="0"/>
    <minplaytime value="60"/>
    <maxplaytime value="120"/>
    <statistics page="1">
      <ratings>
        <average value="8.6"/>
        <averageweight value="3.9"/>
      </ratings>
    </statistics>
  </item>
</items>
"""

PLAYS_XML = """<?xml version="1.0" encoding="utf-8"?>
<plays username="alice" userid="1" total="2" page="1">
  <play id="2" date="2024-05-20" quantity="1" length="0" incomplete="0" nowinstats="0" location="">
    <item name="Catan" objecttype="thing" objectid="13"/>
  </play>
  <play id="1" date="2023-01-02" quantity="1" length="0" incomplete="0" nowinstats="0" location="">
    <item name="Catan" objecttype="thing" objectid="13"/>
  </play>
</plays>
"""

PROCESSING_XML = """<message>
Your request for this collection has been accepted and will be processed.  Please try again later for access.
</message>"""


# ---------------------------------------------------------------------------
# Hypothesis strategies (reusable across property tests)
# ---------------------------------------------------------------------------

# Attempt outcome sequences (True = success)
outcome_sequences = st.lists(st.booleans(), min_size=1, max_size=40)

# Health snapshots for a relay (None = no recorded data)
health_snapshots = st.one_of(
    st.none(),
    st.builds(
        health,
        success=st.integers(min_value=0, max_value=50),
        failure=st.integers(min_value=0, max_value=50),
        consecutive=st.integers(min_value=0, max_value=10),
    ),
)

personal_ratings = st.one_of(
    st.none(),
    st.floats(min_value=0, max_value=10, allow_nan=False),
)

games = st.builds(
    make_game,
    game_id=st.integers(min_value=1, max_value=10**6).map(str),
    play_count=st.integers(min_value=0, max_value=500),
    personal_rating=personal_ratings,
    last_played=st.one_of(
        st.none(),
        st.floats(min_value=0, max_value=2000).map(days_ago),
    ),
)
