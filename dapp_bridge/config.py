"""Shared configuration loader for dapp_bridge."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping
from urllib.parse import urlparse

import yaml


class ConfigurationError(RuntimeError):
    """Raised when configuration is invalid."""


DEFAULT_CONFIG_PATH = Path.home() / ".dapp-bridge.yaml"
DEFAULT_STORE_PATH = Path.home() / ".dapp-bridge" / "storage.sqlite"
_CONFIG_PATH_OVERRIDE: Path | None = None


@dataclass
class BridgeConfig:
    """Connection and polling settings for a bridge."""

    bridge_url: str
    dapp_name: str | None = None
    session_ttl_seconds: float = 24 * 60 * 60
    poll_interval_seconds: float = 1.0
    poll_timeout_seconds: float = 60.0
    request_timeout_seconds: float = 30.0
    store_path: Path = DEFAULT_STORE_PATH


def set_default_config_path(path: str | Path | None) -> None:
    """Remember a user-supplied config path for future loads."""

    global _CONFIG_PATH_OVERRIDE
    _CONFIG_PATH_OVERRIDE = Path(path).expanduser() if path else None


def _load_config_file(path: Path, *, required: bool) -> dict[str, Any]:
    if not path.exists():
        if required:
            raise ConfigurationError(f"Config file not found: {path}")
        return {}

    try:
        loaded = yaml.safe_load(path.read_text()) or {}
    except yaml.YAMLError as exc:  # pragma: no cover - delegated to PyYAML
        raise ConfigurationError(f"Invalid YAML in config file {path}: {exc}") from exc

    if not isinstance(loaded, dict):
        raise ConfigurationError(f"Expected {path} to contain a YAML object with a 'bridge' section")
    return loaded


def _coerce_seconds(raw: Any, *, source: str) -> float | None:
    if raw is None or raw == "":
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid duration in {source}: {raw}") from exc
    if value <= 0:
        raise ConfigurationError(f"Duration in {source} must be positive: {raw}")
    return value


def _first_value(*values: Any, default: Any = None) -> Any:
    for value in values:
        if value is not None:
            return value
    return default


def _validate_url(raw: str) -> str:
    parsed = urlparse(raw)
    if parsed.scheme not in {"http", "https"} or not parsed.hostname:
        raise ConfigurationError(f"Invalid bridge URL: {raw}")
    return raw.rstrip("/")


def load_bridge_config(
    *,
    config_path: str | Path | None = None,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> BridgeConfig:
    """Load bridge configuration from overrides, environment and optional YAML."""

    env_map = os.environ if env is None else env
    explicit_path = config_path is not None or _CONFIG_PATH_OVERRIDE is not None
    path = (
        Path(config_path).expanduser()
        if config_path is not None
        else _CONFIG_PATH_OVERRIDE or DEFAULT_CONFIG_PATH
    )

    file_config = _load_config_file(path, required=explicit_path)
    section = file_config.get("bridge", {})
    if not isinstance(section, dict):
        raise ConfigurationError(f"Expected 'bridge' to be a mapping in {path}")

    override_map = {key: value for key, value in (overrides or {}).items() if value is not None}

    resolved_url = _first_value(
        override_map.get("bridge_url"), env_map.get("DAPP_BRIDGE_URL"), section.get("url")
    )
    if not resolved_url:
        raise ConfigurationError(
            "A bridge URL must be provided via DAPP_BRIDGE_URL, --bridge-url or a config file"
        )

    def seconds(key: str, env_key: str, yaml_key: str, default: float) -> float:
        return _first_value(
            _coerce_seconds(override_map.get(key), source="overrides"),
            _coerce_seconds(env_map.get(env_key), source=env_key),
            _coerce_seconds(section.get(yaml_key), source=f"{path} bridge.{yaml_key}"),
            default,
        )

    store_path = _first_value(
        override_map.get("store_path"), env_map.get("DAPP_BRIDGE_STORE"), section.get("store")
    )

    return BridgeConfig(
        bridge_url=_validate_url(str(resolved_url)),
        dapp_name=_first_value(
            override_map.get("dapp_name"), env_map.get("DAPP_BRIDGE_NAME"), section.get("dapp_name")
        ),
        session_ttl_seconds=seconds(
            "session_ttl_seconds", "DAPP_BRIDGE_SESSION_TTL", "session_ttl", 24 * 60 * 60
        ),
        poll_interval_seconds=seconds(
            "poll_interval_seconds", "DAPP_BRIDGE_POLL_INTERVAL", "poll_interval", 1.0
        ),
        poll_timeout_seconds=seconds(
            "poll_timeout_seconds", "DAPP_BRIDGE_POLL_TIMEOUT", "poll_timeout", 60.0
        ),
        request_timeout_seconds=seconds(
            "request_timeout_seconds", "DAPP_BRIDGE_REQUEST_TIMEOUT", "request_timeout", 30.0
        ),
        store_path=Path(store_path).expanduser() if store_path else DEFAULT_STORE_PATH,
    )
