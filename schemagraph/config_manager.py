"""Configuration manager for schemagraph using TOML files."""

from __future__ import annotations

import copy
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import toml

from .graph import DEFAULT_EDGE_WEIGHT

logger = logging.getLogger(__name__)


DEFAULT_CONFIG: Dict[str, Dict[str, Any]] = {
    "catalog": {
        "path": "",
    },
    "graph": {
        "default_edge_cost": DEFAULT_EDGE_WEIGHT,
    },
    "storage": {
        "database": "",
    },
    "logging": {
        "level": "WARNING",
    },
}


def _config_file(config_file: Optional[Path]) -> Path:
    if config_file is not None:
        return Path(config_file)
    from .config import CONFIG_FILE

    return CONFIG_FILE


def load_full_config(config_file: Optional[Path] = None) -> Dict[str, Any]:
    """Load the entire TOML config (all sections).

    Returns an empty dict when the file is missing or cannot be parsed.
    """
    path = _config_file(config_file)
    if not path.exists():
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            return toml.load(f)
    except (OSError, toml.TomlDecodeError) as exc:
        logger.warning("Ignoring unreadable config file %s: %s", path, exc)
        return {}


def load_effective_config(config_file: Optional[Path] = None) -> Dict[str, Dict[str, Any]]:
    """Defaults overlaid with whatever the config file sets."""
    merged = copy.deepcopy(DEFAULT_CONFIG)
    for section, values in load_full_config(config_file).items():
        if isinstance(values, dict):
            merged.setdefault(section, {}).update(values)
    return merged


def _save_full_config(config: Dict[str, Any], config_file: Optional[Path] = None) -> bool:
    """Write entire config dict to TOML file, preserving all sections."""
    path = _config_file(config_file)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            toml.dump(config, f)
        return True
    except OSError as exc:
        logger.error("Could not write config file %s: %s", path, exc)
        return False


# ------------------------------------------------------------------
# Single settings
# ------------------------------------------------------------------

def get_setting(section: str, key: str, config_file: Optional[Path] = None) -> Any:
    return load_effective_config(config_file).get(section, {}).get(key)


def save_setting(section: str, key: str, value: Any, config_file: Optional[Path] = None) -> bool:
    """Set ``[section] key = value`` and keep every other entry of the file.

    Values for keys with a known default are coerced to the default's type,
    so ``default_edge_cost = "5"`` is stored as the integer ``5``.
    """
    default = DEFAULT_CONFIG.get(section, {}).get(key)
    if default is not None and not isinstance(value, type(default)):
        value = type(default)(value)

    config = load_full_config(config_file)
    config.setdefault(section, {})[key] = value
    return _save_full_config(config, config_file)


def unset_setting(section: str, key: str, config_file: Optional[Path] = None) -> bool:
    """Remove ``[section] key``; drops the section once it is empty."""
    config = load_full_config(config_file)
    values = config.get(section)
    if not isinstance(values, dict) or key not in values:
        return False
    del values[key]
    if not values:
        del config[section]
    return _save_full_config(config, config_file)
