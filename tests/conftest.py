"""Pytest configuration and fixtures for scopegraph tests."""

import shutil
import tempfile
from pathlib import Path
from typing import Callable, Dict, Generator

import pytest

from scopegraph.config import ScopeSettings
from scopegraph.orchestrator import ScopeOrchestrator

# The sample project contains test_*.py files of its own.
collect_ignore = ["fixtures"]


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture(autouse=True)
def _isolated_home(temp_dir: Path, monkeypatch) -> Path:
    """Keep user config and the result cache out of the real home directory."""
    home = temp_dir / ".scopegraph-home"
    monkeypatch.setattr("scopegraph.config.BASE_DIR", home)
    monkeypatch.setattr("scopegraph.config.CACHE_DB", home / "cache.db")
    return home


@pytest.fixture
def sample_project_path() -> Path:
    """Get path to the multi-language sample project."""
    return Path(__file__).parent / "fixtures" / "sample_project"


@pytest.fixture
def make_tree(temp_dir: Path) -> Callable[[Dict[str, str]], Path]:
    """Write ``{relative_path: content}`` under a fresh source root."""

    def _make(files: Dict[str, str], name: str = "src") -> Path:
        root = temp_dir / name
        root.mkdir(parents=True, exist_ok=True)
        for rel, content in files.items():
            path = root / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        return root

    return _make


@pytest.fixture
def no_cache_settings() -> ScopeSettings:
    return ScopeSettings(cache=False, workers=2)


@pytest.fixture
def sample_orchestrator(sample_project_path: Path, no_cache_settings: ScopeSettings) -> ScopeOrchestrator:
    """Orchestrator over the sample project with the graph already built."""
    orchestrator = ScopeOrchestrator(sample_project_path, settings=no_cache_settings)
    orchestrator.build()
    return orchestrator


@pytest.fixture
def chain_tree(make_tree) -> Path:
    """x imports y, y imports z."""
    return make_tree({
        "x.py": "import y\n",
        "y.py": "import z\n",
        "z.py": "VALUE = 1\n",
    })


@pytest.fixture
def callers_tree(make_tree) -> Path:
    """a and b import x; c imports a."""
    return make_tree({
        "x.py": "def handle():\n    return 1\n",
        "a.py": "import x\n",
        "b.py": "import x\n",
        "c.py": "import a\n",
    })
