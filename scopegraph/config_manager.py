"""Configuration manager for scopegraph using TOML files."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict

import toml

from . import config

logger = logging.getLogger(__name__)


def config_file() -> Path:
    return config.BASE_DIR / "config.toml"


def _read_toml(path: Path) -> Dict[str, Any]:
    if not path.is_file():
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            return toml.load(f)
    except (OSError, toml.TomlDecodeError) as exc:
        logger.warning("Ignoring unreadable config %s: %s", path, exc)
        return {}


def load_full_config() -> Dict[str, Any]:
    """Load the entire user TOML config (all sections)."""
    return _read_toml(config_file())


def load_scope_config() -> Dict[str, Any]:
    """Load the ``[scope]`` section of the user config.

    Returns:
        Mapping of setting name to value, or an empty dict when the file or
        section is missing.
    """
    return dict(load_full_config().get("scope", {}))


def load_project_config(root: Path) -> Dict[str, Any]:
    """Load ``[scope]`` from ``.scopegraph.toml`` at the top of *root*."""
    payload = _read_toml(Path(root) / config.PROJECT_CONFIG_NAME)
    return dict(payload.get("scope", {}))


def save_scope_config(values: Dict[str, Any]) -> bool:
    """Save settings into the ``[scope]`` section, preserving other sections.

    Returns:
        True if saved successfully, False otherwise.
    """
    full = load_full_config()
    section = dict(full.get("scope", {}))
    section.update({k: v for k, v in values.items() if v is not None})
    full["scope"] = section
    config.ensure_base_dirs()
    try:
        with open(config_file(), "w", encoding="utf-8") as f:
            toml.dump(full, f)
        return True
    except OSError as exc:
        logger.warning("Could not write %s: %s", config_file(), exc)
        return False


def clear_scope_config() -> bool:
    """Remove the ``[scope]`` section, resetting to defaults."""
    full = load_full_config()
    if "scope" not in full:
        return True
    full.pop("scope")
    try:
        with open(config_file(), "w", encoding="utf-8") as f:
            toml.dump(full, f)
        return True
    except OSError as exc:
        logger.warning("Could not write %s: %s", config_file(), exc)
        return False
