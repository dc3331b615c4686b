"""Pydantic Settings for the picker service.

All environment variables use the PICKER_ prefix.
Example: PICKER_PORT=8002, PICKER_CUSTOM_PROXY_URL=https://my-relay.example/?url=
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings


class PickerSettings(BaseSettings):
    """Picker service configuration validated from environment variables."""

    # Service
    port: int = 8002
    app_version: str = "2.0.0"
    log_level: str = "INFO"
    log_json: bool = True
    verbose: bool = False  # per-attempt relay chatter at INFO instead of DEBUG

    # Relays
    relays_path: str = str(Path(__file__).with_name("relays.yaml"))
    custom_proxy_url: str | None = None  # Always tried first when set
    health_store_path: str = ".cache/proxy-health.json"
    request_timeout_seconds: float = Field(default=30.0, gt=0)
    probe_timeout_seconds: float = Field(default=10.0, gt=0)
    max_passes: int = Field(default=3, ge=1)
    health_check_interval_seconds: int = Field(default=300, ge=1)
    probe_on_startup: bool = True  # first health check round runs before the first interval

    # Request scheduler
    max_concurrent_requests: int = Field(default=2, ge=1)

    # BGG client
    details_batch_size: int = Field(default=20, ge=1, le=20)  # BGG thing API limit

    # Collection cache
    collection_cache_ttl_seconds: int = Field(default=86400, ge=0)  # 24 hours
    play_cache_ttl_seconds: int = Field(default=604800, ge=0)  # 7 days

    model_config = {"env_prefix": "PICKER_"}
