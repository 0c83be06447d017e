"""Tests for the file indexer."""

import threading
from pathlib import Path

import pytest

from scopegraph.errors import PartialIndexError, StartupError
from scopegraph.indexer import FileIndexer, aggregate_hash, content_hash, detect_language


def test_content_hash_is_short_sha256_prefix():
    """Content hash is the first 8 hex digits of sha256."""
    digest = content_hash(b"hello")
    assert digest == "2cf24dba"
    assert len(digest) == 8


def test_detect_language():
    """Extensions map to languages."""
    assert detect_language("a/b.py") == "python"
    assert detect_language("Foo.JAVA") == "java"
    assert detect_language("app.tsx") == "typescript"
    assert detect_language("application.yml") == "yaml"
    assert detect_language("README.md") is None


def test_walk_skips_vcs_build_and_dependency_dirs(sample_project_path: Path):
    """Skipped directories are never walked."""
    result = FileIndexer(sample_project_path, workers=2).index()
    paths = [f.path for f in result.files]

    assert "app/services/order_service.py" in paths
    assert "billing/src/main/java/com/shop/billing/BillingService.java" in paths
    assert "config/application.yml" in paths
    assert not any(p.startswith("node_modules/") for p in paths)
    assert not any(p.startswith("build/") for p in paths)
    assert paths == sorted(paths)


def test_records_are_stable_across_runs(sample_project_path: Path):
    """Worker count does not change the records."""
    first = FileIndexer(sample_project_path, workers=1).index()
    second = FileIndexer(sample_project_path, workers=4).index()

    assert first.files == second.files
    assert aggregate_hash(first.files) == aggregate_hash(second.files)


def test_record_fields(make_tree):
    """Records carry path, hash, size and language."""
    root = make_tree({"pkg/mod.py": "print('x')\n"})
    result = FileIndexer(root).index()

    assert len(result.files) == 1
    record = result.files[0]
    assert record.path == "pkg/mod.py"
    assert record.size == len("print('x')\n")
    assert record.language == "python"
    assert record.directory == "pkg"
    assert record.stem == "mod"


def test_aggregate_hash_changes_with_content(make_tree):
    """Editing a file changes the tree hash."""
    root = make_tree({"a.py": "A = 1\n"})
    before = aggregate_hash(FileIndexer(root).index().files)
    (root / "a.py").write_text("A = 2\n", encoding="utf-8")
    after = aggregate_hash(FileIndexer(root).index().files)

    assert before != after


def test_custom_skip_patterns(make_tree):
    """Custom names and globs are skipped."""
    root = make_tree({"keep/a.py": "", "skipme/b.py": "", "cache_tmp/c.py": ""})
    result = FileIndexer(root, skip_dirs=["skipme", "*_tmp"]).index()

    assert [f.path for f in result.files] == ["keep/a.py"]


def test_missing_root_is_a_startup_error(temp_dir: Path):
    """A missing root raises StartupError."""
    with pytest.raises(StartupError):
        FileIndexer(temp_dir / "does-not-exist").index()


def test_file_as_root_is_a_startup_error(temp_dir: Path):
    """A file given as root raises StartupError."""
    target = temp_dir / "single.py"
    target.write_text("", encoding="utf-8")
    with pytest.raises(StartupError):
        FileIndexer(target).index()


def test_unreadable_file_is_recorded_and_skipped(make_tree, monkeypatch):
    """An unreadable file becomes a warning."""
    root = make_tree({"ok.py": "A = 1\n", "broken.py": "B = 1\n"})
    real_read = Path.read_bytes

    def _read_bytes(self):
        if self.name == "broken.py":
            raise PermissionError(13, "Permission denied")
        return real_read(self)

    monkeypatch.setattr(Path, "read_bytes", _read_bytes)
    result = FileIndexer(root).index()

    assert [f.path for f in result.files] == ["ok.py"]
    assert len(result.warnings) == 1
    assert result.warnings[0].kind == "IOError"
    assert result.warnings[0].path == "broken.py"


def test_literal_path_list(make_tree):
    """A literal path list is indexed; missing entries warn."""
    root = make_tree({"a.py": "", "b.py": "", "c.py": ""})
    result = FileIndexer(root).index(paths=["c.py", "a.py", "gone.py"])

    assert [f.path for f in result.files] == ["a.py", "c.py"]
    assert [w.path for w in result.warnings] == ["gone.py"]


def test_multiple_roots_are_prefixed(make_tree):
    """With several roots, file ids carry the root name."""
    first = make_tree({"a.py": ""}, name="service_a")
    second = make_tree({"b.py": ""}, name="service_b")
    result = FileIndexer([first, second]).index()

    assert [f.path for f in result.files] == ["service_a/a.py", "service_b/b.py"]
    assert result.absolute_path("service_b/b.py") == second / "b.py"


def test_cancelled_index_raises_partial_index_error(make_tree):
    """Cancelling raises PartialIndexError with counts."""
    root = make_tree({f"m{i}.py": "" for i in range(5)})
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(PartialIndexError) as exc_info:
        FileIndexer(root).index(cancel=cancel)
    assert exc_info.value.total == 5
    assert exc_info.value.indexed == 0


def test_project_config_file_is_not_indexed(make_tree):
    """.scopegraph.toml is not part of the tree."""
    root = make_tree({".scopegraph.toml": "[scope]\nworkers = 1\n", "a.py": ""})
    result = FileIndexer(root).index()

    assert [f.path for f in result.files] == ["a.py"]
