"""Depth-bounded, multi-source traversal that turns anchors into a scope."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Set, Tuple

from .config import SAFETY_CAP
from .graph import GraphStore
from .indexer import CONFIG_LANGUAGES
from .models import (
    ROLE_ORDER,
    Edge,
    ExcludedEntry,
    ExternalRef,
    Intent,
    ScopeDocument,
    ScopeEntry,
    ScopeWarning,
    target_key,
)
from .resolver import Resolution

logger = logging.getLogger(__name__)

VERBS: Dict[str, str] = {
    "import": "imports",
    "injection": "injects",
    "call": "calls",
    "annotation": "is annotated with",
    "inherits": "inherits from",
    "config-ref": "reads config from",
}

INFRASTRUCTURE_PREFIX = "infrastructure:"
CONFIG_PREFIX = "config:"

_TEST_DIRS = {"test", "tests", "__tests__", "spec", "specs", "testing"}
_TEST_NAME_RE = re.compile(r"^(?:test_.*|.*_test|.*Tests?|.*[a-z0-9]IT|conftest)$")
_CONFIG_DIRS = {"config", "configs", "conf", "settings", "resources"}


def is_test_path(path: str) -> bool:
    parts = path.split("/")
    if any(p in _TEST_DIRS for p in parts[:-1]):
        return True
    name = parts[-1]
    if ".spec." in name or ".test." in name:
        return True
    return bool(_TEST_NAME_RE.match(name.split(".", 1)[0]))


def is_config_path(path: str, language: str) -> bool:
    if language in CONFIG_LANGUAGES:
        return True
    return any(p in _CONFIG_DIRS for p in path.split("/")[:-1])


def describe_edge(edge: Edge) -> str:
    verb = VERBS.get(edge.kind, edge.kind)
    return f"{edge.source} {verb} {target_key(edge.target)} [{edge.kind} {edge.confidence:.2f}]"


def _edge_order(edge: Edge) -> Tuple[float, str, str, str, str]:
    return (-edge.confidence, edge.kind, edge.source, target_key(edge.target), edge.evidence)


def describe_edges(edges: Sequence[Edge]) -> str:
    ordered = sorted(edges, key=_edge_order)
    reason = describe_edge(ordered[0])
    if len(ordered) > 1:
        reason += f" (+{len(ordered) - 1} more)"
    return reason


@dataclass
class _Reach:
    depth: int
    edges: List[Edge] = field(default_factory=list)


@dataclass
class _Direction:
    name: str
    limit: Optional[int]
    neighbours: Callable[[str], List[Edge]]
    endpoint: Callable[[Edge], str]


class ScopeEngine:
    """Pure read over a :class:`~scopegraph.graph.GraphStore`.

    One breadth-first expansion per requested direction, seeded at every
    anchor.  A file keeps the depth it was first reached at, so cycles need
    no special handling.  ``inherits`` edges are lateral and never consume
    depth budget.
    """

    def __init__(self, graph: GraphStore, safety_cap: int = SAFETY_CAP) -> None:
        self.graph = graph
        self.safety_cap = max(1, safety_cap)

    # ------------------------------------------------------------------
    # Directions
    # ------------------------------------------------------------------

    def _downstream(self, limit: Optional[int]) -> _Direction:
        return _Direction("downstream", limit, self.graph.outgoing, lambda e: target_key(e.target))

    def _upstream(self, limit: Optional[int]) -> _Direction:
        return _Direction("upstream", limit, self.graph.incoming, lambda e: e.source)

    @staticmethod
    def _traversable(edge: Edge) -> bool:
        return edge.kind != "inherits" and not isinstance(edge.target, ExternalRef)

    # ------------------------------------------------------------------
    # Traversal
    # ------------------------------------------------------------------

    def _expand(
        self,
        direction: _Direction,
        anchors: List[str],
        recorded: Set[str],
        excluded: Dict[str, ExcludedEntry],
        warnings: List[ScopeWarning],
    ) -> Dict[str, _Reach]:
        reached: Dict[str, _Reach] = {}
        visited: Set[str] = set(anchors)
        frontier = list(anchors)
        depth = 0
        while frontier:
            if direction.limit is not None and depth >= direction.limit:
                self._exclude_past_limit(direction, frontier, visited, excluded, depth)
                break
            level: Dict[str, List[Edge]] = {}
            for node in frontier:
                for edge in direction.neighbours(node):
                    if not self._traversable(edge):
                        continue
                    other = direction.endpoint(edge)
                    if other in visited:
                        continue
                    level.setdefault(other, []).append(edge)
            depth += 1
            frontier = []
            for path in sorted(level):
                if path not in recorded and len(recorded) >= self.safety_cap:
                    self._cap_warning(warnings)
                    return reached
                visited.add(path)
                recorded.add(path)
                reached[path] = _Reach(depth, level[path])
                frontier.append(path)
        return reached

    def _exclude_past_limit(
        self,
        direction: _Direction,
        frontier: List[str],
        visited: Set[str],
        excluded: Dict[str, ExcludedEntry],
        depth: int,
    ) -> None:
        for node in frontier:
            for edge in direction.neighbours(node):
                if not self._traversable(edge):
                    continue
                other = direction.endpoint(edge)
                if other in visited or other in excluded:
                    continue
                excluded[other] = ExcludedEntry(
                    path=other,
                    reason=f"exceeds {direction.name} depth {direction.limit}: {describe_edge(edge)}",
                    role=direction.name,
                    depth=depth + 1,
                )

    def _exclude_unrequested(
        self,
        direction: _Direction,
        anchors: List[str],
        excluded: Dict[str, ExcludedEntry],
    ) -> None:
        for anchor in anchors:
            for edge in direction.neighbours(anchor):
                if not self._traversable(edge):
                    continue
                other = direction.endpoint(edge)
                if other in anchors or other in excluded:
                    continue
                excluded[other] = ExcludedEntry(
                    path=other,
                    reason=f"{direction.name} direction not requested: {describe_edge(edge)}",
                    role=direction.name,
                    depth=1,
                )

    def _cap_warning(self, warnings: List[ScopeWarning]) -> None:
        if any(w.kind == "SafetyCapWarning" for w in warnings):
            return
        message = f"Scope truncated at the safety cap of {self.safety_cap} files"
        logger.warning(message)
        warnings.append(ScopeWarning("SafetyCapWarning", message))

    def _lateral(
        self,
        anchors: List[str],
        entries: Dict[str, ScopeEntry],
        warnings: List[ScopeWarning],
    ) -> None:
        found: Dict[str, Tuple[str, List[str]]] = {}
        for anchor in anchors:
            record = self.graph.get_file(anchor)
            folder = (record.directory if record else "") or "."
            for sibling in self.graph.siblings(anchor):
                if sibling not in entries and sibling not in found:
                    found[sibling] = (f"sibling of {anchor} in {folder}/", [])

        bases = [p for p, e in entries.items() if e.role in ("anchor", "downstream")]
        for path in sorted(bases):
            for edge in self.graph.outgoing(path) + self.graph.incoming(path):
                if edge.kind != "inherits" or isinstance(edge.target, ExternalRef):
                    continue
                other = edge.source if edge.source != path else target_key(edge.target)
                if other in entries or other in found:
                    continue
                found[other] = (describe_edge(edge), [edge.evidence])

        for path in sorted(found):
            if len(entries) >= self.safety_cap:
                self._cap_warning(warnings)
                break
            reason, evidence = found[path]
            entries[path] = ScopeEntry(path, "lateral", 0, reason, roles=["lateral"], evidence=evidence)

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def run(
        self,
        intent: Intent,
        resolution: Resolution,
        warnings: Optional[List[ScopeWarning]] = None,
    ) -> ScopeDocument:
        """Build the scope document for *intent* seeded at *resolution*'s anchors."""
        doc_warnings: List[ScopeWarning] = list(warnings or []) + list(resolution.warnings)
        anchors = sorted({a.path for a in resolution.anchors})
        by_path = {}
        for anchor in resolution.anchors:
            by_path.setdefault(anchor.path, anchor)

        entries: Dict[str, ScopeEntry] = {}
        for path in anchors:
            anchor = by_path[path]
            reason = f"anchor: matched {anchor.matched!r} by {anchor.match_method} ({anchor.match_confidence:.2f})"
            entries[path] = ScopeEntry(path, "anchor", 0, reason, roles=["anchor"])

        excluded: Dict[str, ExcludedEntry] = {}
        recorded: Set[str] = set(anchors)
        requested: List[_Direction] = []
        skipped: List[_Direction] = []
        for direction in (self._downstream(intent.depth_down), self._upstream(intent.depth_up)):
            (requested if intent.wants(direction.name) else skipped).append(direction)

        reaches: Dict[str, Dict[str, _Reach]] = {}
        for direction in requested:
            reaches[direction.name] = self._expand(direction, anchors, recorded, excluded, doc_warnings)
        for direction in skipped:
            self._exclude_unrequested(direction, anchors, excluded)

        self._merge(entries, reaches)
        if intent.include_lateral:
            self._lateral(anchors, entries, doc_warnings)

        self._post_filter(intent, entries, excluded)
        for path in entries:
            excluded.pop(path, None)

        included = sorted(entries.values(), key=lambda e: (ROLE_ORDER[e.role], e.depth, e.path))
        sections, infrastructure, external = self._collect(included)
        excluded_list = [excluded[p] for p in sorted(excluded)]

        summary = {role: 0 for role in ROLE_ORDER}
        for entry in included:
            summary[entry.role] += 1
        summary["excluded"] = len(excluded_list)
        summary["warnings"] = len(doc_warnings)
        summary["external"] = len(external)

        logger.info(
            "Scope for %r: %d included, %d excluded, %d warnings",
            intent.query, len(included), len(excluded_list), len(doc_warnings),
        )
        return ScopeDocument(
            query=intent.query,
            intent=intent,
            anchors=[by_path[p] for p in anchors],
            included=included,
            excluded=excluded_list,
            config_sections=sections,
            infrastructure=infrastructure,
            external_refs=external,
            warnings=doc_warnings,
            summary=summary,
            tree_hash=self.graph.tree_hash,
        )

    @staticmethod
    def _merge(entries: Dict[str, ScopeEntry], reaches: Dict[str, Dict[str, _Reach]]) -> None:
        """Record each reached file once: smallest depth wins, downstream on ties."""
        paths = sorted({p for reach in reaches.values() for p in reach})
        for path in paths:
            if path in entries:
                continue
            hits = [(name, reaches[name][path]) for name in ("downstream", "upstream") if path in reaches.get(name, {})]
            role, reach = min(hits, key=lambda hit: (hit[1].depth, ROLE_ORDER[hit[0]]))
            entries[path] = ScopeEntry(
                path=path,
                role=role,
                depth=reach.depth,
                reason=describe_edges(reach.edges),
                roles=[name for name, _ in hits],
                evidence=sorted({e.evidence for e in reach.edges if e.evidence}),
            )

    def _post_filter(self, intent: Intent, entries: Dict[str, ScopeEntry], excluded: Dict[str, ExcludedEntry]) -> None:
        if not (intent.exclude_tests or intent.exclude_config):
            return
        for path in sorted(entries):
            entry = entries[path]
            if entry.role == "anchor":
                continue
            record = self.graph.get_file(path)
            language = record.language if record else ""
            reason = None
            if intent.exclude_tests and is_test_path(path):
                reason = "excluded by test filter"
            elif intent.exclude_config and is_config_path(path, language):
                reason = "excluded by config filter"
            if reason:
                del entries[path]
                excluded[path] = ExcludedEntry(path, f"{reason} ({entry.reason})", entry.role, entry.depth)

    def _collect(self, included: List[ScopeEntry]) -> Tuple[List[str], List[str], List[str]]:
        sections: Set[str] = set()
        infrastructure: Set[str] = set()
        external: Set[str] = set()
        for entry in included:
            for edge in self.graph.outgoing(entry.path):
                if edge.kind == "config-ref":
                    sections.add(edge.symbol or target_key(edge.target))
                elif isinstance(edge.target, ExternalRef):
                    name = edge.target.name
                    if name.startswith(INFRASTRUCTURE_PREFIX):
                        infrastructure.add(name[len(INFRASTRUCTURE_PREFIX):])
                    elif not name.startswith(CONFIG_PREFIX):
                        external.add(name)
        return sorted(sections), sorted(infrastructure), sorted(external)
