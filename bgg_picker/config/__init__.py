"""Configuration module — settings and the relay table."""

from bgg_picker.config.relays import DEFAULT_RELAYS, RelayConfig, default_endpoints, load_relays
from bgg_picker.config.settings import PickerSettings

__all__ = [
    "DEFAULT_RELAYS",
    "PickerSettings",
    "RelayConfig",
    "default_endpoints",
    "load_relays",
]
