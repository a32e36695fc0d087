"""Application configuration loaded from YAML with environment variable overrides.

Lookup order for the file: ``$SCREENER_CONFIG``, ``config/config.yaml``,
then ``config/config.example.yaml``.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml

# Project root: two levels up from this file (src/app/config.py -> project root)
_PROJECT_ROOT = Path(__file__).resolve().parents[2]

_CONFIG_PATH = _PROJECT_ROOT / "config" / "config.yaml"
_CONFIG_EXAMPLE_PATH = _PROJECT_ROOT / "config" / "config.example.yaml"

# Environment variable -> (dotted config key, type).
_ENV_OVERRIDES: dict[str, tuple[str, type]] = {
    "SCREENER_LOG_LEVEL": ("log_level", str),
    "SCREENER_PRICE_PROVIDER": ("providers.price", str),
    "SCREENER_FUNDAMENTALS_PROVIDER": ("providers.fundamentals", str),
    "SCREENER_MACRO_PROVIDER": ("providers.macro", str),
    "SCREENER_OPTIONS_PROVIDER": ("providers.options", str),
    "SCREENER_MAX_CONCURRENCY": ("screener.max_concurrency", int),
    "FRED_API_KEY": ("providers.fred.api_key", str),
    "POLYGON_API_KEY": ("providers.polygon.api_key", str),
}

_instance: dict[str, Any] | None = None


def _config_path() -> Path:
    explicit = os.environ.get("SCREENER_CONFIG")
    if explicit:
        return Path(explicit)
    return _CONFIG_PATH if _CONFIG_PATH.exists() else _CONFIG_EXAMPLE_PATH


def _set_nested(data: dict[str, Any], dotted_key: str, value: Any) -> None:
    keys = dotted_key.split(".")
    current = data
    for key in keys[:-1]:
        current = current.setdefault(key, {})
    current[keys[-1]] = value


def _cast(value: str, target_type: type) -> Any:
    if target_type is bool:
        return value.lower() in ("1", "true", "yes", "on")
    return target_type(value)


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with open(path, "r") as f:
        return yaml.safe_load(f) or {}


def _apply_env_overrides(cfg: dict[str, Any]) -> None:
    for env_var, (dotted_key, target_type) in _ENV_OVERRIDES.items():
        value = os.environ.get(env_var)
        if value is not None:
            _set_nested(cfg, dotted_key, _cast(value, target_type))


def load_config(*, reload: bool = False) -> dict[str, Any]:
    """Load and return the application config (singleton).

    Args:
        reload: Force a fresh load, bypassing the cached instance.

    Returns:
        The merged configuration dictionary.
    """
    global _instance
    if _instance is not None and not reload:
        return _instance

    cfg = _load_yaml(_config_path())
    _apply_env_overrides(cfg)
    _instance = cfg
    return _instance


def get_config(section: str | None = None) -> dict[str, Any]:
    """Get the full config or a specific top-level section.

    Raises:
        KeyError: If the requested section does not exist.
    """
    cfg = load_config()
    if section is None:
        return cfg
    if section not in cfg:
        raise KeyError(f"Config section '{section}' not found")
    return cfg[section]


def get_value(dotted_key: str, default: Any = None) -> Any:
    """Look up ``a.b.c`` in the config, returning *default* when any part is missing."""
    current: Any = load_config()
    for key in dotted_key.split("."):
        if not isinstance(current, dict) or key not in current:
            return default
        current = current[key]
    return default if current is None else current
