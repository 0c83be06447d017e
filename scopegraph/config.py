"""Configuration paths and defaults for scopegraph."""

from __future__ import annotations

import hashlib
import json
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

BASE_DIR = Path(os.environ.get("SCOPEGRAPH_HOME", str(Path.home() / ".scopegraph"))).expanduser()
CACHE_DB = BASE_DIR / "cache.db"
PROJECT_CONFIG_NAME = ".scopegraph.toml"

# Version-control metadata, build outputs, dependency caches, generated code.
DEFAULT_SKIP_DIRS: List[str] = [
    ".git", ".hg", ".svn",
    "node_modules", "bower_components", "vendor",
    "__pycache__", ".venv", "venv", "env", "site-packages", ".eggs", "*.egg-info",
    ".tox", ".nox", ".mypy_cache", ".pytest_cache", ".ruff_cache", "htmlcov",
    "build", "dist", "target", "out", "bin", "obj", ".gradle", ".idea", ".vscode",
    ".next", ".nuxt", "coverage",
    "generated", "gen", "generated-sources", ".scopegraph",
]

SAFETY_CAP = 10_000
DEFAULT_WORKERS = min(8, (os.cpu_count() or 1) + 4)
DEFAULT_DEPTH_DOWN = 2
DEFAULT_DEPTH_UP = 1


@dataclass
class ScopeSettings:
    skip_dirs: List[str] = field(default_factory=lambda: list(DEFAULT_SKIP_DIRS))
    workers: int = DEFAULT_WORKERS
    safety_cap: int = SAFETY_CAP
    default_depth_down: int = DEFAULT_DEPTH_DOWN
    default_depth_up: int = DEFAULT_DEPTH_UP
    cache: bool = True
    cache_path: Path = field(default_factory=lambda: CACHE_DB)

    def merged(self, overrides: Dict[str, Any]) -> "ScopeSettings":
        """Return a copy with every known, non-None key of *overrides* applied."""
        known = {f.name for f in fields(self)}
        values = {f.name: getattr(self, f.name) for f in fields(self)}
        for key, value in overrides.items():
            if key in known and value is not None:
                values[key] = Path(value).expanduser() if key == "cache_path" else value
        return ScopeSettings(**values)

    def fingerprint(self) -> str:
        """Short hash of the settings that shape a scope document."""
        key = json.dumps([
            self.default_depth_down,
            self.default_depth_up,
            self.safety_cap,
            sorted(self.skip_dirs),
        ])
        return hashlib.sha256(key.encode("utf-8")).hexdigest()[:16]


def ensure_base_dirs() -> None:
    """Create the base directory for local state if needed."""
    BASE_DIR.mkdir(parents=True, exist_ok=True)


def load_settings(root: Optional[Path] = None, **overrides: Any) -> ScopeSettings:
    """Merge defaults, ``~/.scopegraph/config.toml``, the project file and *overrides*."""
    from .config_manager import load_project_config, load_scope_config

    settings = ScopeSettings().merged(load_scope_config())
    if root is not None:
        settings = settings.merged(load_project_config(root))
    extra_skip = overrides.pop("extra_skip_dirs", None)
    settings = settings.merged(overrides)
    if extra_skip:
        settings.skip_dirs = list(settings.skip_dirs) + [d for d in extra_skip if d not in settings.skip_dirs]
    return settings
