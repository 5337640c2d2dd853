"""Configuration manager for reposcope using TOML files."""

from __future__ import annotations

import logging
from typing import Any, Dict

import toml

from .config import (
    BASE_DIR,
    CONFIG_FILE,
    DEFAULT_BATCH_SIZE,
    DEFAULT_EVICTION_FRACTION,
    DEFAULT_MAX_CACHE_ENTRIES,
    DEFAULT_MAX_WORKERS,
    DEFAULT_PARSE_TIMEOUT,
    DEFAULT_RESOLUTION_SUFFIXES,
)

logger = logging.getLogger(__name__)


DEFAULT_ANALYSIS_CONFIG: Dict[str, Any] = {
    "max_cache_entries": DEFAULT_MAX_CACHE_ENTRIES,
    "eviction_fraction": DEFAULT_EVICTION_FRACTION,
    "batch_size": DEFAULT_BATCH_SIZE,
    "max_workers": DEFAULT_MAX_WORKERS,
    "parse_timeout": DEFAULT_PARSE_TIMEOUT,
    "resolution_suffixes": list(DEFAULT_RESOLUTION_SUFFIXES),
}

# Coercions applied to values coming from the CLI (`reposcope config set`).
_VALUE_TYPES = {
    "max_cache_entries": int,
    "eviction_fraction": float,
    "batch_size": int,
    "max_workers": int,
    "parse_timeout": float,
}


def load_full_config() -> Dict[str, Any]:
    """Load the entire TOML config (all sections)."""
    if not CONFIG_FILE.exists():
        return {}
    try:
        with open(CONFIG_FILE, "r", encoding="utf-8") as f:
            return toml.load(f)
    except (OSError, toml.TomlDecodeError) as exc:
        logger.warning("Ignoring unreadable config file %s: %s", CONFIG_FILE, exc)
        return {}


def load_analysis_config() -> Dict[str, Any]:
    """Load the ``[analysis]`` section merged over the defaults.

    Returns:
        Configuration dictionary. Unknown keys are dropped and values of
        the wrong type fall back to their defaults.
    """
    config = {
        key: (list(value) if isinstance(value, list) else value)
        for key, value in DEFAULT_ANALYSIS_CONFIG.items()
    }
    section = load_full_config().get("analysis", {})
    if not isinstance(section, dict):
        return config

    for key, value in section.items():
        if key not in config:
            logger.debug("Unknown analysis config key '%s' ignored", key)
            continue
        if key == "resolution_suffixes":
            if isinstance(value, list) and all(isinstance(v, str) for v in value):
                config[key] = value
            continue
        try:
            config[key] = _VALUE_TYPES[key](value)
        except (TypeError, ValueError):
            logger.warning("Invalid value %r for '%s'; using default", value, key)
    return config


def _save_full_config(config: Dict[str, Any]) -> bool:
    """Write entire config dict to TOML file, preserving all sections."""
    BASE_DIR.mkdir(parents=True, exist_ok=True)
    try:
        with open(CONFIG_FILE, "w", encoding="utf-8") as f:
            toml.dump(config, f)
        return True
    except OSError as exc:
        logger.warning("Could not write config file %s: %s", CONFIG_FILE, exc)
        return False


def set_analysis_value(key: str, raw_value: str) -> bool:
    """Set one ``[analysis]`` key from its string form and persist it.

    ``resolution_suffixes`` takes a comma-separated list.

    Raises:
        KeyError: If *key* is not a known analysis setting.
        ValueError: If *raw_value* cannot be converted.
    """
    if key not in DEFAULT_ANALYSIS_CONFIG:
        raise KeyError(key)

    value: Any
    if key == "resolution_suffixes":
        value = [part.strip() for part in raw_value.split(",") if part.strip()]
    else:
        value = _VALUE_TYPES[key](raw_value)

    config = load_full_config()
    section = config.setdefault("analysis", {})
    section[key] = value
    return _save_full_config(config)
