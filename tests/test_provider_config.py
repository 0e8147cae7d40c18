"""Tests for provider configuration."""

from __future__ import annotations

import json

import pytest

from roomsync.config import (
    default_provider_config,
    load_provider_config,
    serialize_provider_config,
    validate_provider_config,
)


class TestDefaultProviderConfig:
    """default_provider_config() returns a well-formed configuration dict."""

    def test_values(self) -> None:
        assert default_provider_config() == {
            "connect": True,
            "params": {},
            "resync_interval": -1,
            "max_backoff_time": 2.5,
            "disable_local_channel": False,
            "reconnect_timeout": 30.0,
        }

    def test_returns_fresh_copy(self) -> None:
        config = default_provider_config()
        config["params"]["token"] = "x"
        assert default_provider_config()["params"] == {}

    def test_defaults_validate(self) -> None:
        validate_provider_config(dict(default_provider_config()))


class TestValidateProviderConfig:
    def test_partial_config_is_valid(self) -> None:
        validate_provider_config({"resync_interval": 10})

    def test_unknown_key(self) -> None:
        with pytest.raises(ValueError, match="Unknown provider config key"):
            validate_provider_config({"maxBackoffTime": 1})

    @pytest.mark.parametrize("key", ["connect", "disable_local_channel"])
    def test_booleans(self, key: str) -> None:
        with pytest.raises(ValueError, match="boolean"):
            validate_provider_config({key: "yes"})

    @pytest.mark.parametrize("key", ["resync_interval", "max_backoff_time", "reconnect_timeout"])
    def test_numbers(self, key: str) -> None:
        with pytest.raises(ValueError, match="number"):
            validate_provider_config({key: "5"})

    def test_bool_is_not_a_number(self) -> None:
        with pytest.raises(ValueError, match="number"):
            validate_provider_config({"reconnect_timeout": True})

    @pytest.mark.parametrize("key", ["max_backoff_time", "reconnect_timeout"])
    def test_must_be_positive(self, key: str) -> None:
        with pytest.raises(ValueError, match="positive"):
            validate_provider_config({key: 0})

    def test_negative_resync_interval_disables(self) -> None:
        validate_provider_config({"resync_interval": -1})

    def test_params_must_be_strings(self) -> None:
        with pytest.raises(ValueError, match="params"):
            validate_provider_config({"params": {"page": 2}})


class TestLoadProviderConfig:
    def test_none_path(self) -> None:
        assert load_provider_config(None) == default_provider_config()

    def test_missing_file(self, tmp_path) -> None:
        assert load_provider_config(tmp_path / "missing.json") == default_provider_config()

    def test_merges_over_defaults(self, tmp_path) -> None:
        path = tmp_path / "provider.json"
        path.write_text(json.dumps({"resync_interval": 20, "params": {"token": "abc"}}))

        config = load_provider_config(path)

        assert config["resync_interval"] == 20
        assert config["params"] == {"token": "abc"}
        assert config["max_backoff_time"] == 2.5

    def test_invalid_json(self, tmp_path) -> None:
        path = tmp_path / "provider.json"
        path.write_text("{not json")
        with pytest.raises(ValueError, match="Invalid JSON"):
            load_provider_config(path)

    def test_not_an_object(self, tmp_path) -> None:
        path = tmp_path / "provider.json"
        path.write_text("[1, 2]")
        with pytest.raises(ValueError, match="JSON object"):
            load_provider_config(path)

    def test_invalid_values(self, tmp_path) -> None:
        path = tmp_path / "provider.json"
        path.write_text(json.dumps({"connect": "no"}))
        with pytest.raises(ValueError, match="boolean"):
            load_provider_config(path)


class TestSerializeProviderConfig:
    def test_canonical(self) -> None:
        text = serialize_provider_config(default_provider_config())
        assert text.endswith("\n")
        assert json.loads(text) == default_provider_config()
        assert text.index('"connect"') < text.index('"params"')

    def test_round_trips_through_load(self, tmp_path) -> None:
        config = default_provider_config()
        config["resync_interval"] = 7
        path = tmp_path / "provider.json"
        path.write_text(serialize_provider_config(config))
        assert load_provider_config(path) == config
