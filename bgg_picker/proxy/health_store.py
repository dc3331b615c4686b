"""Durable storage for relay health statistics.

The router loads the health map once at startup and saves the complete map
after every update. Any key-value mechanism satisfies the ``HealthStore``
protocol; two are provided here:

- ``MemoryHealthStore`` keeps a serialised copy in memory (tests, ephemeral runs).
- ``JsonFileHealthStore`` keeps the map in a JSON document under a fixed
  namespace key so the file can be shared with other settings.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Protocol

from bgg_picker.proxy.types import EndpointHealth

logger = logging.getLogger(__name__)

HEALTH_NAMESPACE = "bgg-proxy-health"


class HealthStore(Protocol):
    """Persistence contract used by ``ProxyRouter``."""

    def load(self) -> dict[str, EndpointHealth]: ...

    def save(self, health: dict[str, EndpointHealth]) -> None: ...


def _serialise(health: dict[str, EndpointHealth]) -> dict[str, dict]:
    return {identifier: h.to_dict() for identifier, h in health.items()}


def _deserialise(raw: object) -> dict[str, EndpointHealth]:
    if not isinstance(raw, dict):
        return {}
    result: dict[str, EndpointHealth] = {}
    for identifier, data in raw.items():
        if not isinstance(data, dict):
            logger.warning("Ignoring malformed health entry for relay '%s'", identifier)
            continue
        try:
            result[str(identifier)] = EndpointHealth.from_dict(data)
        except (TypeError, ValueError) as exc:
            logger.warning("Ignoring malformed health entry for relay '%s': %s", identifier, exc)
    return result


class MemoryHealthStore:
    """In-memory store. Saves a serialised snapshot so callers cannot alias it."""

    def __init__(self, initial: dict[str, EndpointHealth] | None = None) -> None:
        self._data: dict[str, dict] = _serialise(initial or {})
        self.save_count = 0

    def load(self) -> dict[str, EndpointHealth]:
        return _deserialise(self._data)

    def save(self, health: dict[str, EndpointHealth]) -> None:
        self._data = _serialise(health)
        self.save_count += 1


class JsonFileHealthStore:
    """JSON file store keyed by a fixed namespace.

    Parameters
    ----------
    path:
        Location of the JSON document. Parent directories are created on save.
    namespace:
        Top-level key under which the health map is kept.
    """

    def __init__(self, path: str | Path, namespace: str = HEALTH_NAMESPACE) -> None:
        self._path = Path(path)
        self._namespace = namespace

    def load(self) -> dict[str, EndpointHealth]:
        document = self._read_document()
        health = _deserialise(document.get(self._namespace))
        logger.debug("Loaded health for %d relays from %s", len(health), self._path)
        return health

    def save(self, health: dict[str, EndpointHealth]) -> None:
        document = self._read_document()
        document[self._namespace] = _serialise(health)

        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(document, indent=2), encoding="utf-8")
        os.replace(tmp_path, self._path)

    def _read_document(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.error("Failed to load relay health from %s: %s", self._path, exc)
            return {}
        return raw if isinstance(raw, dict) else {}
