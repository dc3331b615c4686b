"""Unit tests for PickerSettings and relay table loading."""

from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from bgg_picker.config.relays import DEFAULT_RELAYS, RelayConfig, default_endpoints, load_relays
from bgg_picker.config.settings import PickerSettings
from bgg_picker.proxy.types import ResponseShape


# ---------------------------------------------------------------------------
# PickerSettings
# ---------------------------------------------------------------------------


class TestPickerSettings:
    def test_defaults_are_correct(self):
        settings = PickerSettings()

        assert settings.port == 8002
        assert settings.log_level == "INFO"
        assert settings.custom_proxy_url is None
        assert settings.request_timeout_seconds == 30.0
        assert settings.probe_timeout_seconds == 10.0
        assert settings.max_passes == 3
        assert settings.health_check_interval_seconds == 300
        assert settings.probe_on_startup is True
        assert settings.max_concurrent_requests == 2
        assert settings.details_batch_size == 20
        assert settings.collection_cache_ttl_seconds == 86400
        assert settings.play_cache_ttl_seconds == 604800
        assert Path(settings.relays_path).name == "relays.yaml"

    def test_env_prefix(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("PICKER_CUSTOM_PROXY_URL", "https://mine.example/?url=")
        monkeypatch.setenv("PICKER_MAX_CONCURRENT_REQUESTS", "4")
        settings = PickerSettings()
        assert settings.custom_proxy_url == "https://mine.example/?url="
        assert settings.max_concurrent_requests == 4

    def test_batch_size_capped_at_bgg_limit(self):
        with pytest.raises(ValidationError):
            PickerSettings(details_batch_size=21)

    def test_rejects_zero_concurrency(self):
        with pytest.raises(ValidationError):
            PickerSettings(max_concurrent_requests=0)


# ---------------------------------------------------------------------------
# Relay table
# ---------------------------------------------------------------------------


def _write_yaml(tmp_path, data) -> str:
    path = tmp_path / "relays.yaml"
    path.write_text(yaml.safe_dump(data) if not isinstance(data, str) else data)
    return str(path)


class TestLoadRelays:
    def test_bundled_table_matches_defaults(self):
        endpoints = load_relays(PickerSettings().relays_path)
        assert endpoints == default_endpoints()
        assert len(endpoints) == 8

    def test_allorigins_is_json_wrapped_without_user_agent(self):
        allorigins = default_endpoints()[0]
        assert allorigins.identifier == "AllOrigins"
        assert allorigins.response_shape == ResponseShape.JSON_WRAPPED
        assert allorigins.sends_user_agent is False

    def test_path_style_relays_do_not_encode(self):
        raw = {r.name for r in DEFAULT_RELAYS if not r.encode}
        assert raw == {"ThingProxy", "CORS.sh", "Bridged", "CORS-Anywhere"}

    def test_loads_custom_table(self, tmp_path):
        path = _write_yaml(
            tmp_path,
            {
                "relays": [
                    {"name": "One", "url": "https://one/?u="},
                    {"name": "Two", "url": "https://two/", "encode": False, "response": "json_wrapped"},
                ]
            },
        )
        endpoints = load_relays(path)
        assert [e.identifier for e in endpoints] == ["One", "Two"]
        assert endpoints[1].encodes_target is False
        assert endpoints[1].response_shape == ResponseShape.JSON_WRAPPED

    def test_skips_invalid_and_duplicate_entries(self, tmp_path):
        path = _write_yaml(
            tmp_path,
            {
                "relays": [
                    {"name": "One", "url": "https://one/?u="},
                    {"name": "", "url": "https://blank/"},
                    {"name": "One", "url": "https://dupe/"},
                    {"url": "https://nameless/"},
                ]
            },
        )
        assert [e.identifier for e in load_relays(path)] == ["One"]

    @pytest.mark.parametrize(
        "content",
        ["relays: [unclosed", "just a string", "relays: {}", "relays:\n  - {name: ''}\n"],
    )
    def test_unusable_file_falls_back_to_defaults(self, tmp_path, content):
        assert load_relays(_write_yaml(tmp_path, content)) == default_endpoints()

    def test_missing_file_falls_back_to_defaults(self, tmp_path):
        assert load_relays(str(tmp_path / "missing.yaml")) == default_endpoints()
        assert load_relays(None) == default_endpoints()

    def test_relay_config_to_endpoint(self):
        ep = RelayConfig(name="X", url="https://x/?q=").to_endpoint()
        assert ep.build_url("a b") == "https://x/?q=a%20b"
