"""Pipeline orchestrator: index, extract, build the graph, answer scope queries."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from .config import ScopeSettings, load_settings
from .errors import PartialIndexError
from .graph import GraphStore
from .indexer import FileIndexer, IndexResult
from .intent import IntentParser
from .models import FileExtraction, Intent, ScopeDocument, ScopeWarning
from .parser import EdgeExtractor
from .resolver import AnchorResolver, Resolution
from .scope import ScopeEngine
from .storage import ScopeCache
from .symbols import SymbolIndex

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class ScopeOrchestrator:
    """Coordinates the indexer, extractors, graph store and traversal.

    The graph is built once (lazily, on first query, under a lock) and then
    shared by every :meth:`scope` call; concurrent calls are safe.
    """

    def __init__(
        self,
        roots: Union[PathLike, Sequence[PathLike]],
        settings: Optional[ScopeSettings] = None,
        paths: Optional[Iterable[str]] = None,
        cache: Optional[ScopeCache] = None,
    ) -> None:
        self.roots: List[Path] = [Path(roots)] if isinstance(roots, (str, Path)) else [Path(r) for r in roots]
        self.settings = settings or load_settings(self.roots[0] if len(self.roots) == 1 else None)
        self.paths = sorted(set(paths)) if paths is not None else None
        self._owns_cache = cache is None and self.settings.cache
        self.cache = cache if cache is not None else (ScopeCache(self.settings.cache_path) if self.settings.cache else None)
        self.indexer = FileIndexer(self.roots, skip_dirs=self.settings.skip_dirs, workers=self.settings.workers)
        self.extractor = EdgeExtractor(workers=self.settings.workers)
        self.intent_parser = IntentParser(self.settings.default_depth_down, self.settings.default_depth_up)
        self._graph: Optional[GraphStore] = None
        self._build_lock = threading.Lock()
        self._warnings: List[ScopeWarning] = []

    @classmethod
    def from_document(
        cls,
        roots: Union[PathLike, Sequence[PathLike]],
        document: ScopeDocument,
        settings: Optional[ScopeSettings] = None,
    ) -> "ScopeOrchestrator":
        """Restrict the walk to the files a prior scope included."""
        return cls(roots, settings=settings, paths=document.included_paths())

    def close(self) -> None:
        if self.cache is not None and self._owns_cache:
            self.cache.close()

    def __enter__(self) -> "ScopeOrchestrator":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Build
    # ------------------------------------------------------------------

    @property
    def graph(self) -> GraphStore:
        if self._graph is None:
            with self._build_lock:
                if self._graph is None:
                    self._build_locked(None)
        assert self._graph is not None
        return self._graph

    @property
    def warnings(self) -> List[ScopeWarning]:
        return list(self._warnings)

    def _extract(self, index: IndexResult, cancel: Optional[threading.Event]) -> Dict[str, FileExtraction]:
        cached = self.cache.get_extractions(index.files) if self.cache is not None else {}
        pending = [record for record in index.files if record.path not in cached]

        def _loader(file_id: str):
            return lambda: index.absolute_path(file_id).read_text(encoding="utf-8", errors="replace")

        items = [(record, _loader(record.path)) for record in pending]
        stop = cancel.is_set if cancel is not None else None
        outcomes = self.extractor.extract_all(items, should_stop=stop)
        if cancel is not None and cancel.is_set():
            done = len(cached) + sum(1 for o in outcomes if o is not None)
            raise PartialIndexError(indexed=done, total=len(index.files))

        fresh = {o.path: o for o in outcomes if o is not None}
        if self.cache is not None and fresh:
            self.cache.put_extractions((r, fresh[r.path]) for r in pending if r.path in fresh)
        logger.info("Extracted %d files (%d from cache)", len(fresh), len(cached))
        return {**cached, **fresh}

    def build(self, cancel: Optional[threading.Event] = None) -> GraphStore:
        """Index the roots and build the immutable graph.

        Raises:
            StartupError: a root is missing or unreadable.
            PartialIndexError: *cancel* was set before the run finished.
        """
        with self._build_lock:
            return self._build_locked(cancel)

    def _build_locked(self, cancel: Optional[threading.Event]) -> GraphStore:
        index = self.indexer.index(paths=self.paths, cancel=cancel)
        extractions = self._extract(index, cancel)

        warnings = list(index.warnings)
        ordered: List[FileExtraction] = []
        for record in index.files:
            extraction = extractions[record.path]
            ordered.append(extraction)
            for message in extraction.warnings:
                logger.warning("%s: %s", record.path, message)
                warnings.append(ScopeWarning("ExtractionWarning", message, record.path))

        symbols = SymbolIndex(index.files, source_roots=[p for p in index.roots if p])
        for extraction in ordered:
            symbols.add(extraction)
        edges = symbols.resolve_all(ordered)

        self._graph = GraphStore(index.files, edges, extractions)
        self._warnings = warnings
        return self._graph

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def parse(self, query: str) -> Intent:
        return self.intent_parser.parse(query)

    def resolve(self, intent: Intent) -> Resolution:
        return AnchorResolver(self.graph).resolve(intent)

    def scope(self, query: str) -> ScopeDocument:
        """Answer one scope query.

        Raises:
            QueryError: the query has no recognisable anchor.
            AnchorNotFoundError: nothing in the tree matches the anchor.
        """
        graph = self.graph
        if self.cache is not None:
            cached = self.cache.get_document(query, graph.tree_hash, self.settings.fingerprint())
            if cached is not None:
                logger.info("Scope cache hit for %r", query)
                return cached

        intent = self.parse(query)
        resolution = self.resolve(intent)
        document = ScopeEngine(graph, safety_cap=self.settings.safety_cap).run(
            intent, resolution, warnings=self._warnings,
        )
        if self.cache is not None:
            self.cache.put_document(document, self.settings.fingerprint())
        return document

    def stats(self) -> Dict[str, int]:
        return self.graph.stats()


def build_scope(
    roots: Union[PathLike, Sequence[PathLike]],
    query: str,
    paths: Optional[Iterable[str]] = None,
    **overrides: Any,
) -> ScopeDocument:
    """One-shot helper: load settings, build the graph and answer *query*."""
    root_list = [roots] if isinstance(roots, (str, Path)) else list(roots)
    settings = load_settings(Path(root_list[0]) if len(root_list) == 1 else None, **overrides)
    with ScopeOrchestrator(root_list, settings=settings, paths=paths) as orchestrator:
        return orchestrator.scope(query)
