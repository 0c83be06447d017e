"""File indexer: walks source roots and produces immutable file records."""

from __future__ import annotations

import fnmatch
import hashlib
import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from .config import DEFAULT_SKIP_DIRS, DEFAULT_WORKERS, PROJECT_CONFIG_NAME
from .errors import PartialIndexError, StartupError, UnreadableFileError
from .models import FileRecord, ScopeWarning

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Language <-> file-extension mapping (extensible)
# ---------------------------------------------------------------------------
LANGUAGE_MAP: Dict[str, str] = {
    ".py": "python",
    ".java": "java",
    ".kt": "kotlin",
    ".kts": "kotlin",
    ".scala": "scala",
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".ts": "typescript",
    ".tsx": "typescript",
    ".yml": "yaml",
    ".yaml": "yaml",
    ".toml": "toml",
    ".json": "json",
    ".properties": "properties",
    ".ini": "ini",
    ".cfg": "ini",
    ".xml": "xml",
}

CONFIG_LANGUAGES = {"yaml", "toml", "json", "properties", "ini", "xml"}


def detect_language(path: str) -> Optional[str]:
    return LANGUAGE_MAP.get(os.path.splitext(path)[1].lower())


def content_hash(data: bytes) -> str:
    """Short digest used for staleness detection only."""
    return hashlib.sha256(data).hexdigest()[:8]


def aggregate_hash(files: Iterable[FileRecord]) -> str:
    """Hash of a whole tree snapshot: sorted ``path:content_hash`` pairs."""
    digest = hashlib.sha256()
    for record in sorted(files, key=lambda f: f.path):
        digest.update(f"{record.path}:{record.content_hash}\n".encode("utf-8"))
    return digest.hexdigest()[:16]


@dataclass
class IndexResult:
    files: List[FileRecord] = field(default_factory=list)
    warnings: List[ScopeWarning] = field(default_factory=list)
    roots: Dict[str, Path] = field(default_factory=dict)

    def absolute_path(self, file_id: str) -> Path:
        """Map a file id back to its location on disk."""
        if "" in self.roots:
            return self.roots[""] / file_id
        prefix, _, rest = file_id.partition("/")
        return self.roots[prefix] / rest


class FileIndexer:
    """Walk one or more roots under a skip-list of directory name patterns."""

    def __init__(
        self,
        roots: Union[Path, str, Sequence[Union[Path, str]]],
        skip_dirs: Optional[Sequence[str]] = None,
        workers: int = DEFAULT_WORKERS,
    ) -> None:
        if isinstance(roots, (str, Path)):
            roots = [roots]
        self.roots: List[Path] = [Path(r) for r in roots]
        self.skip_dirs: List[str] = list(DEFAULT_SKIP_DIRS if skip_dirs is None else skip_dirs)
        self.workers = max(1, workers)

    # ------------------------------------------------------------------
    # Walking
    # ------------------------------------------------------------------

    def _is_skipped(self, dirname: str) -> bool:
        return any(fnmatch.fnmatch(dirname, pattern) for pattern in self.skip_dirs)

    def _root_prefixes(self) -> Dict[str, Path]:
        if len(self.roots) == 1:
            return {"": self.roots[0]}
        prefixes: Dict[str, Path] = {}
        for root in self.roots:
            name = root.resolve().name or "root"
            candidate, n = name, 2
            while candidate in prefixes:
                candidate, n = f"{name}{n}", n + 1
            prefixes[candidate] = root
        return prefixes

    def _check_root(self, root: Path) -> None:
        if not root.exists():
            raise StartupError(f"Source root does not exist: {root}")
        if not root.is_dir():
            raise StartupError(f"Source root is not a directory: {root}")
        try:
            os.listdir(root)
        except OSError as exc:
            raise StartupError(f"Source root is unreadable: {root} ({exc})") from exc

    def walk(self) -> List[Tuple[str, Path]]:
        """Return ``(file_id, absolute_path)`` pairs in deterministic order."""
        found: List[Tuple[str, Path]] = []
        for prefix, root in self._root_prefixes().items():
            self._check_root(root)
            for dirpath, dirnames, filenames in os.walk(root):
                dirnames[:] = sorted(d for d in dirnames if not self._is_skipped(d))
                rel_dir = os.path.relpath(dirpath, root)
                rel_dir = "" if rel_dir == "." else rel_dir.replace(os.sep, "/")
                for name in sorted(filenames):
                    if name == PROJECT_CONFIG_NAME or detect_language(name) is None:
                        continue
                    rel = f"{rel_dir}/{name}" if rel_dir else name
                    file_id = f"{prefix}/{rel}" if prefix else rel
                    found.append((file_id, Path(dirpath) / name))
        found.sort(key=lambda item: item[0])
        return found

    def _listed(self, paths: Iterable[str]) -> List[Tuple[str, Path]]:
        prefixes = self._root_prefixes()
        for root in prefixes.values():
            self._check_root(root)
        listed: List[Tuple[str, Path]] = []
        for file_id in sorted(set(p.replace("\\", "/") for p in paths)):
            if "" in prefixes:
                listed.append((file_id, prefixes[""] / file_id))
                continue
            prefix, _, rest = file_id.partition("/")
            if prefix in prefixes:
                listed.append((file_id, prefixes[prefix] / rest))
            else:
                listed.append((file_id, Path(file_id)))
        return listed

    # ------------------------------------------------------------------
    # Indexing
    # ------------------------------------------------------------------

    @staticmethod
    def read_record(file_id: str, path: Path) -> FileRecord:
        try:
            data = path.read_bytes()
        except OSError as exc:
            raise UnreadableFileError(file_id, exc.strerror or str(exc)) from exc
        return FileRecord(
            path=file_id,
            content_hash=content_hash(data),
            size=len(data),
            language=detect_language(file_id) or "unknown",
        )

    def index(
        self,
        paths: Optional[Iterable[str]] = None,
        cancel: Optional[threading.Event] = None,
    ) -> IndexResult:
        """Index the roots, or only *paths* when a literal list is given.

        Raises:
            StartupError: a root is missing or unreadable.
            PartialIndexError: *cancel* was set before all files were read.
        """
        targets = self.walk() if paths is None else self._listed(paths)
        logger.info("Indexing %d files with %d workers", len(targets), self.workers)

        def _work(item: Tuple[str, Path]) -> Union[FileRecord, UnreadableFileError, None]:
            if cancel is not None and cancel.is_set():
                return None
            try:
                return self.read_record(*item)
            except UnreadableFileError as exc:
                return exc

        with ThreadPoolExecutor(max_workers=self.workers) as pool:
            outcomes = list(pool.map(_work, targets))

        if cancel is not None and cancel.is_set():
            done = sum(1 for o in outcomes if o is not None)
            raise PartialIndexError(indexed=done, total=len(targets))

        result = IndexResult(roots=self._root_prefixes())
        for outcome in outcomes:
            if isinstance(outcome, FileRecord):
                result.files.append(outcome)
            elif isinstance(outcome, UnreadableFileError):
                logger.warning("Skipping unreadable file %s: %s", outcome.path, outcome.reason)
                result.warnings.append(ScopeWarning(
                    kind="IOError", message=f"Unreadable file skipped: {outcome.reason}", path=outcome.path,
                ))
        logger.info("Indexed %d files (%d skipped)", len(result.files), len(result.warnings))
        return result
