"""YAML configuration loader with environment variable overrides.

# ─── CONFIGURATION HIERARCHY ──────────────────────────────────────────
#
# Configuration is loaded in layers (later layers override earlier):
#
#   1. config/config.yaml  - Static defaults checked into the repo
#   2. .env file           - Local overrides (not committed)
#   3. Environment vars    - Set at deploy / invocation time
#
# ``load_config()`` returns the merged dictionary; ``load_settings()``
# turns the same layers into a validated :class:`Settings` instance, so
# the YAML file can carry any Settings field as a default.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml

from transcript_uploader.config.settings import Settings
from transcript_uploader.utils.errors import ConfigurationError

# YAML sections whose keys map one-to-one onto Settings fields.
_SECTION_FIELDS: dict[str, dict[str, str]] = {
    "service": {
        "url": "service_url",
        "username": "service_username",
        "password": "service_password",
        "timeout": "request_timeout_seconds",
    },
    "upload": {
        "batch_mode": "batch_mode",
        "generate_layers": "generate_layers",
        "poll_interval": "poll_interval_seconds",
        "poll_max_failures": "poll_max_failures",
        "cancel_stops_processing": "cancel_stops_processing",
        "existence_check_concurrency": "existence_check_concurrency",
    },
    "app": {
        "host": "app_host",
        "port": "app_port",
        "env": "app_env",
    },
    "logging": {
        "level": "log_level",
    },
}


def load_config(path: str = "config/config.yaml") -> dict:
    """Load YAML config and merge with environment-based Settings.

    Only values that were explicitly provided through the environment (or
    ``.env``) override YAML values; Settings defaults never do.

    Args:
        path: Path to the YAML configuration file.

    Returns:
        Fully resolved configuration dictionary.

    Raises:
        ConfigurationError: If the file exists but is not a YAML mapping.
    """
    config_path = Path(path)
    if config_path.exists():
        with open(config_path) as f:
            yaml_config = yaml.safe_load(f) or {}
        if not isinstance(yaml_config, dict):
            raise ConfigurationError(f"{path} must contain a mapping")
    else:
        yaml_config = {}

    settings = Settings()
    explicit = settings.model_fields_set
    env_overrides: dict[str, Any] = {}
    for section, fields in _SECTION_FIELDS.items():
        for key, field_name in fields.items():
            if field_name in explicit or field_name.upper() in os.environ:
                env_overrides.setdefault(section, {})[key] = getattr(settings, field_name)

    _deep_merge(yaml_config, env_overrides)
    return yaml_config


def load_settings(path: str = "config/config.yaml") -> Settings:
    """Build :class:`Settings` from the YAML file layered under the environment."""
    config = load_config(path)
    values: dict[str, Any] = {}
    for section, fields in _SECTION_FIELDS.items():
        section_values = config.get(section) or {}
        for key, field_name in fields.items():
            if key in section_values:
                values[field_name] = section_values[key]
    try:
        return Settings(**values)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid configuration in {path}: {exc}") from exc


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
