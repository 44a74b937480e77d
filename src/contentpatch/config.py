"""YAML configuration loading with defaults for every section."""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any, Dict, Mapping

import yaml

__all__ = [
    "ConfigError",
    "DEFAULT_CONFIG",
    "DEFAULT_CONFIG_NAME",
    "default_config",
    "deep_merge",
    "is_offline_model",
    "load_config",
]

DEFAULT_CONFIG_NAME = "contentpatch.yaml"

DEFAULT_CONFIG: Dict[str, Any] = {
    "github": {
        "token": "",
        "owner": "",
        "repo": "",
        "base_branch": "main",
        "root_path": "",
        "api_url": "https://api.github.com",
        "timeout": 30,
    },
    "models": {
        "default": "gpt-5-mini",
        "timeout": 120,
        "max_attempts": 1,
        "retry_delay": 0.5,
    },
    "analysis": {
        "strategy": "rules",
        "batch_size": 5,
        "batch_pause": 0.5,
        "max_files": 50,
    },
    "paths": {
        "db_path": "data/contentpatch.sqlite",
    },
}


class ConfigError(ValueError):
    """Raised when a configuration file is missing or malformed."""


def default_config() -> Dict[str, Any]:
    """Return a deep copy of the default configuration."""
    return copy.deepcopy(DEFAULT_CONFIG)


def deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    """Merge ``override`` into a copy of ``base``; nested mappings merge key by key."""
    merged: Dict[str, Any] = copy.deepcopy(dict(base))
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def load_config(config_path: Path) -> Dict[str, Any]:
    """Load YAML configuration from disk and fill missing keys from the defaults."""
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    try:
        with config_path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except yaml.YAMLError as error:
        raise ConfigError(f"Failed to parse config {config_path}: {error}") from error

    if not isinstance(data, dict):
        raise ConfigError("Configuration must be a mapping at the top level.")

    return deep_merge(DEFAULT_CONFIG, data)


def is_offline_model(model_name: str) -> bool:
    key = model_name.strip().lower()
    return key in {"offline", "gpt-5-offline"} or key.endswith("-offline")
