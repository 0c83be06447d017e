"""In-memory directed multigraph over indexed files."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from .indexer import aggregate_hash
from .models import Edge, ExternalRef, FileExtraction, FileRecord, target_key

logger = logging.getLogger(__name__)


def _outgoing_key(edge: Edge) -> Tuple[float, str, str, str]:
    return (-edge.confidence, edge.kind, target_key(edge.target), edge.evidence)


def _incoming_key(edge: Edge) -> Tuple[float, str, str, str]:
    return (-edge.confidence, edge.kind, edge.source, edge.evidence)


class GraphStore:
    """Files plus typed edges, indexed by source and by target.

    Built once by a single writer, then read-only: every query returns a
    fresh list, so concurrent traversals can share one instance.
    Adjacency is ordered by confidence (descending), then kind name,
    then the other endpoint and evidence.
    """

    def __init__(
        self,
        files: Iterable[FileRecord],
        edges: Iterable[Edge],
        extractions: Optional[Mapping[str, FileExtraction]] = None,
    ) -> None:
        self._files: Dict[str, FileRecord] = {f.path: f for f in sorted(files, key=lambda f: f.path)}
        self._symbols: Dict[str, Tuple[str, ...]] = {}
        for path, extraction in (extractions or {}).items():
            self._symbols[path] = tuple(sorted(set(extraction.symbols)))

        out: Dict[str, List[Edge]] = {}
        inc: Dict[str, List[Edge]] = {}
        all_edges: List[Edge] = []
        for edge in edges:
            if edge.source not in self._files:
                raise ValueError(f"Edge source is not an indexed file: {edge.source}")
            if not isinstance(edge.target, ExternalRef) and edge.target not in self._files:
                raise ValueError(f"Dangling edge {edge.source} -> {edge.target}")
            all_edges.append(edge)
            out.setdefault(edge.source, []).append(edge)
            if not isinstance(edge.target, ExternalRef):
                inc.setdefault(edge.target, []).append(edge)

        self._out: Dict[str, Tuple[Edge, ...]] = {k: tuple(sorted(v, key=_outgoing_key)) for k, v in out.items()}
        self._in: Dict[str, Tuple[Edge, ...]] = {k: tuple(sorted(v, key=_incoming_key)) for k, v in inc.items()}
        self._edges: Tuple[Edge, ...] = tuple(sorted(all_edges, key=lambda e: (e.source,) + _outgoing_key(e)))

        self._by_dir: Dict[str, List[str]] = {}
        for record in self._files.values():
            self._by_dir.setdefault(record.directory, []).append(record.path)
        self._tree_hash = aggregate_hash(self._files.values())
        logger.debug("Graph built: %d files, %d edges", len(self._files), len(self._edges))

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._files)

    def __contains__(self, path: object) -> bool:
        return path in self._files

    @property
    def files(self) -> List[FileRecord]:
        return list(self._files.values())

    @property
    def paths(self) -> List[str]:
        return list(self._files)

    def get_file(self, path: str) -> Optional[FileRecord]:
        return self._files.get(path)

    def symbols_for(self, path: str) -> List[str]:
        return list(self._symbols.get(path, ()))

    @property
    def tree_hash(self) -> str:
        return self._tree_hash

    # ------------------------------------------------------------------
    # Adjacency
    # ------------------------------------------------------------------

    @property
    def edges(self) -> List[Edge]:
        return list(self._edges)

    def outgoing(self, path: str) -> List[Edge]:
        return list(self._out.get(path, ()))

    def incoming(self, path: str) -> List[Edge]:
        return list(self._in.get(path, ()))

    def siblings(self, path: str) -> List[str]:
        record = self._files.get(path)
        if record is None:
            return []
        return [p for p in self._by_dir.get(record.directory, []) if p != path]

    def external_refs(self) -> List[str]:
        return sorted({e.target.name for e in self._edges if isinstance(e.target, ExternalRef)})

    def stats(self) -> Dict[str, int]:
        counts: Dict[str, int] = {
            "files": len(self._files),
            "edges": len(self._edges),
            "external": sum(1 for e in self._edges if e.is_external),
        }
        for edge in self._edges:
            counts[f"edges:{edge.kind}"] = counts.get(f"edges:{edge.kind}", 0) + 1
        return counts
