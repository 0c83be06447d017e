"""Core data models shared by indexing, extraction, resolution and traversal."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Literal, Optional, Tuple, Union

EdgeKind = Literal["import", "injection", "call", "annotation", "inherits", "config-ref"]
Direction = Literal["upstream", "downstream", "lateral", "both"]
Role = Literal["anchor", "upstream", "downstream", "lateral"]
MatchMethod = Literal["exact-path", "exact-name", "fuzzy-name", "concept-keyword"]

EDGE_KINDS: Tuple[str, ...] = ("import", "injection", "call", "annotation", "inherits", "config-ref")

# Default confidence per signal kind.
CONFIDENCE: Dict[str, float] = {
    "import": 1.0,
    "injection": 0.9,
    "call": 0.6,
    "annotation": 0.8,
    "inherits": 1.0,
    "config-ref": 0.7,
}

ROLE_ORDER: Dict[str, int] = {"anchor": 0, "downstream": 1, "upstream": 2, "lateral": 3}


@dataclass(frozen=True)
class FileRecord:
    path: str
    content_hash: str
    size: int
    language: str

    @property
    def name(self) -> str:
        return self.path.rsplit("/", 1)[-1]

    @property
    def stem(self) -> str:
        name = self.name
        return name.split(".", 1)[0] if not name.startswith(".") else name

    @property
    def directory(self) -> str:
        return self.path.rsplit("/", 1)[0] if "/" in self.path else ""


@dataclass(frozen=True)
class ExternalRef:
    """Target for a symbol referenced but not present in the indexed set."""

    name: str

    def __str__(self) -> str:
        return f"external:{self.name}"


Target = Union[str, ExternalRef]


def target_key(target: Target) -> str:
    return str(target) if isinstance(target, ExternalRef) else target


@dataclass(frozen=True)
class Edge:
    source: str
    target: Target
    kind: str
    confidence: float
    evidence: str = ""
    symbol: str = ""

    @property
    def is_external(self) -> bool:
        return isinstance(self.target, ExternalRef)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "target": target_key(self.target),
            "kind": self.kind,
            "confidence": self.confidence,
            "evidence": self.evidence,
            "symbol": self.symbol,
        }


@dataclass(frozen=True)
class Reference:
    """An unresolved dependency signal found in one file.

    ``lookup`` tells the symbol index how to resolve ``candidates``:
    ``module`` (dotted import names), ``symbol`` (exported names), ``path``
    (relative file ids), ``package`` (every file of a package), ``config``
    (top-level config section) or ``external`` (never resolved).
    """

    name: str
    kind: str
    confidence: float
    evidence: str
    lookup: str = "symbol"
    candidates: Tuple[str, ...] = ()


@dataclass
class FileExtraction:
    path: str
    modules: List[str] = field(default_factory=list)
    packages: List[str] = field(default_factory=list)
    symbols: List[str] = field(default_factory=list)
    config_sections: List[str] = field(default_factory=list)
    references: List[Reference] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "FileExtraction":
        refs = [
            Reference(**{**ref, "candidates": tuple(ref.get("candidates") or ())})
            for ref in payload.get("references", [])
        ]
        return cls(
            path=payload["path"],
            modules=list(payload.get("modules", [])),
            packages=list(payload.get("packages", [])),
            symbols=list(payload.get("symbols", [])),
            config_sections=list(payload.get("config_sections", [])),
            references=refs,
            warnings=list(payload.get("warnings", [])),
        )


@dataclass
class Intent:
    query: str
    anchor_hint: str
    anchor_kind: str
    keywords: List[str] = field(default_factory=list)
    direction: str = "both"
    depth_up: Optional[int] = 1
    depth_down: Optional[int] = 2
    include_lateral: bool = True
    exclude_tests: bool = False
    exclude_config: bool = False

    def wants(self, direction: str) -> bool:
        return self.direction in (direction, "both")


@dataclass(frozen=True)
class Anchor:
    path: str
    matched: str
    match_confidence: float
    match_method: str


@dataclass
class ScopeEntry:
    path: str
    role: str
    depth: int
    reason: str
    included: bool = True
    roles: List[str] = field(default_factory=list)
    evidence: List[str] = field(default_factory=list)


@dataclass
class ExcludedEntry:
    path: str
    reason: str
    role: str = ""
    depth: int = 0


@dataclass
class ScopeWarning:
    kind: str
    message: str
    path: Optional[str] = None


@dataclass
class ScopeDocument:
    """The complete, provenance-carrying result of one scope query."""

    query: str
    intent: Intent
    anchors: List[Anchor]
    included: List[ScopeEntry]
    excluded: List[ExcludedEntry] = field(default_factory=list)
    config_sections: List[str] = field(default_factory=list)
    infrastructure: List[str] = field(default_factory=list)
    external_refs: List[str] = field(default_factory=list)
    warnings: List[ScopeWarning] = field(default_factory=list)
    summary: Dict[str, int] = field(default_factory=dict)
    tree_hash: str = ""

    def included_paths(self) -> List[str]:
        return [entry.path for entry in self.included]

    def entry(self, path: str) -> Optional[ScopeEntry]:
        for item in self.included:
            if item.path == path:
                return item
        return None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_json(self, indent: Optional[int] = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, sort_keys=True)

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "ScopeDocument":
        return cls(
            query=payload["query"],
            intent=Intent(**payload["intent"]),
            anchors=[Anchor(**a) for a in payload.get("anchors", [])],
            included=[ScopeEntry(**e) for e in payload.get("included", [])],
            excluded=[ExcludedEntry(**e) for e in payload.get("excluded", [])],
            config_sections=list(payload.get("config_sections", [])),
            infrastructure=list(payload.get("infrastructure", [])),
            external_refs=list(payload.get("external_refs", [])),
            warnings=[ScopeWarning(**w) for w in payload.get("warnings", [])],
            summary=dict(payload.get("summary", {})),
            tree_hash=payload.get("tree_hash", ""),
        )

    @classmethod
    def from_json(cls, text: str) -> "ScopeDocument":
        return cls.from_dict(json.loads(text))
