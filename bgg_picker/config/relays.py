"""Relay table models and YAML loader.

Provides typed Pydantic models for the CORS relay table and a loader that
parses the YAML config into router ``Endpoint`` objects. The built-in table
is used whenever the file is missing or unusable.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

from bgg_picker.proxy.types import Endpoint, ResponseShape

logger = logging.getLogger(__name__)


class RelayConfig(BaseModel):
    """One relay entry as written in the YAML table."""

    name: str = Field(min_length=1)
    url: str = Field(min_length=1)
    encode: bool = True
    response: ResponseShape = ResponseShape.RAW_TEXT
    send_user_agent: bool = True

    def to_endpoint(self) -> Endpoint:
        return Endpoint(
            identifier=self.name,
            url_template=self.url,
            encodes_target=self.encode,
            response_shape=self.response,
            sends_user_agent=self.send_user_agent,
        )


DEFAULT_RELAYS: tuple[RelayConfig, ...] = (
    RelayConfig(
        name="AllOrigins",
        url="https://api.allorigins.win/get?url=",
        response=ResponseShape.JSON_WRAPPED,
        send_user_agent=False,
    ),
    RelayConfig(name="ThingProxy", url="https://thingproxy.freeboard.io/fetch/", encode=False),
    RelayConfig(name="CodeTabs", url="https://api.codetabs.com/v1/proxy?quest="),
    RelayConfig(name="CORSProxy.io", url="https://corsproxy.io/?"),
    RelayConfig(name="HTMLDriven", url="https://cors-proxy.htmldriven.com/?url="),
    RelayConfig(name="CORS.sh", url="https://proxy.cors.sh/", encode=False),
    RelayConfig(name="Bridged", url="https://cors.bridged.cc/", encode=False),
    RelayConfig(name="CORS-Anywhere", url="https://cors-anywhere.herokuapp.com/", encode=False),
)


def default_endpoints() -> list[Endpoint]:
    return [relay.to_endpoint() for relay in DEFAULT_RELAYS]


def load_relays(yaml_path: str | None) -> list[Endpoint]:
    """Parse a relay table YAML file into router endpoints.

    Args:
        yaml_path: Path to the YAML configuration file, or ``None``.

    Returns:
        Endpoints in configuration order. If the file is not found, cannot be
        parsed or yields no valid entries, returns the built-in table.
    """
    if not yaml_path:
        return default_endpoints()

    path = Path(yaml_path)

    if not path.exists():
        logger.warning("Relay table not found at %s — using built-in relays", yaml_path)
        return default_endpoints()

    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        logger.error("Failed to parse relay table YAML at %s: %s", yaml_path, exc)
        return default_endpoints()

    if not isinstance(raw, dict) or not isinstance(raw.get("relays"), list):
        logger.warning("Relay table YAML missing 'relays' list — using built-in relays")
        return default_endpoints()

    endpoints: list[Endpoint] = []
    seen: set[str] = set()
    for index, entry in enumerate(raw["relays"]):
        try:
            relay = RelayConfig.model_validate(entry)
        except Exception as exc:
            logger.error("Invalid relay entry #%d: %s — skipping", index, exc)
            continue
        if relay.name in seen:
            logger.error("Duplicate relay name '%s' — skipping", relay.name)
            continue
        seen.add(relay.name)
        endpoints.append(relay.to_endpoint())

    if not endpoints:
        logger.warning("Relay table at %s has no valid entries — using built-in relays", yaml_path)
        return default_endpoints()

    return endpoints
