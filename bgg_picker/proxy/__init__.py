"""Relay routing package — endpoint table types, health tracking and failover."""

from bgg_picker.proxy.health_store import HealthStore, JsonFileHealthStore, MemoryHealthStore
from bgg_picker.proxy.router import BGG_API_BASE, ProxyRouter
from bgg_picker.proxy.types import Endpoint, EndpointHealth, ResponseShape

__all__ = [
    "BGG_API_BASE",
    "Endpoint",
    "EndpointHealth",
    "HealthStore",
    "JsonFileHealthStore",
    "MemoryHealthStore",
    "ProxyRouter",
    "ResponseShape",
]
