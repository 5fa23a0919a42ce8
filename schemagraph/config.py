"""Configuration paths and settings for schemagraph."""

from __future__ import annotations

import os
from pathlib import Path

from .config_manager import DEFAULT_CONFIG, load_full_config

BASE_DIR = Path(os.environ.get("SCHEMAGRAPH_HOME", str(Path.home() / ".schemagraph"))).expanduser()
CONFIG_FILE = BASE_DIR / "config.toml"

# Loaded from ~/.schemagraph/config.toml (set via `sg config set`)
_toml_config = load_full_config(CONFIG_FILE)
_catalog = _toml_config.get("catalog", {})
_graph = _toml_config.get("graph", {})
_storage = _toml_config.get("storage", {})
_logging = _toml_config.get("logging", {})

# Empty means the catalog bundled with the package
CATALOG_PATH = _catalog.get("path", DEFAULT_CONFIG["catalog"]["path"])
DEFAULT_EDGE_COST = _graph.get("default_edge_cost", DEFAULT_CONFIG["graph"]["default_edge_cost"])
DATABASE_PATH = Path(_storage.get("database") or BASE_DIR / "schemagraph.db").expanduser()
LOG_LEVEL = str(_logging.get("level", DEFAULT_CONFIG["logging"]["level"])).upper()


def ensure_base_dirs() -> None:
    """Create base directories for local storage if needed."""
    BASE_DIR.mkdir(parents=True, exist_ok=True)
    DATABASE_PATH.parent.mkdir(parents=True, exist_ok=True)
