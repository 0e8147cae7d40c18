"""Provider configuration: defaults, validation, and JSON persistence."""

from __future__ import annotations

import json
from pathlib import Path
from typing import TypedDict

from roomsync.provider.liveness import DEFAULT_RECONNECT_TIMEOUT
from roomsync.provider.network import DEFAULT_MAX_BACKOFF_TIME


class ProviderConfig(TypedDict, total=False):
    connect: bool
    params: dict[str, str]
    resync_interval: float
    max_backoff_time: float
    disable_local_channel: bool
    reconnect_timeout: float


def default_provider_config() -> ProviderConfig:
    """Return the default provider configuration.

    ``resync_interval`` is in seconds; any value ``<= 0`` disables the
    periodic resync.
    """
    return {
        "connect": True,
        "params": {},
        "resync_interval": -1,
        "max_backoff_time": DEFAULT_MAX_BACKOFF_TIME,
        "disable_local_channel": False,
        "reconnect_timeout": DEFAULT_RECONNECT_TIMEOUT,
    }


def validate_provider_config(config: dict) -> None:
    """Raise ``ValueError`` describing the first invalid key in *config*."""
    known = set(ProviderConfig.__annotations__)
    unknown = set(config) - known
    if unknown:
        raise ValueError(f"Unknown provider config key(s): {', '.join(sorted(unknown))}")

    for key in ("connect", "disable_local_channel"):
        if key in config and not isinstance(config[key], bool):
            raise ValueError(f"'{key}' must be a boolean, got {config[key]!r}")

    for key in ("resync_interval", "max_backoff_time", "reconnect_timeout"):
        value = config.get(key)
        if value is None:
            continue
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"'{key}' must be a number, got {value!r}")

    if config.get("max_backoff_time", 1) <= 0:
        raise ValueError("'max_backoff_time' must be positive")
    if config.get("reconnect_timeout", 1) <= 0:
        raise ValueError("'reconnect_timeout' must be positive")

    params = config.get("params")
    if params is not None:
        if not isinstance(params, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in params.items()
        ):
            raise ValueError("'params' must map strings to strings")


def load_provider_config(path: Path | None) -> ProviderConfig:
    """Load a JSON config file merged over the defaults.

    A missing file (or ``path=None``) yields the defaults.

    Raises:
        ValueError: The file is not valid JSON or holds invalid values.
    """
    config = default_provider_config()
    if path is None or not path.exists():
        return config

    try:
        data = json.loads(path.read_text())
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain a JSON object")

    validate_provider_config(data)
    config.update(data)  # type: ignore[typeddict-item]
    return config


def serialize_provider_config(config: ProviderConfig) -> str:
    """Canonical JSON form: sorted keys, 2-space indent, trailing newline."""
    return json.dumps(config, sort_keys=True, indent=2) + "\n"
