"""Match an intent's anchor hint against the indexed files."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from difflib import SequenceMatcher
from typing import Dict, List, Optional, Set, Tuple

from .errors import AnchorNotFoundError
from .graph import GraphStore
from .intent import split_identifier
from .models import Anchor, FileRecord, Intent, ScopeWarning

logger = logging.getLogger(__name__)

EXACT_PATH = 1.0
EXACT_NAME = 0.95
FUZZY_SCALE = 0.9
CONCEPT_ALL = 0.8
CONCEPT_ANY = 0.5

MIN_CONFIDENCE = 0.3
TIE_WINDOW = 0.1
UNAMBIGUOUS = 0.9
MAX_SUGGESTIONS = 5
SUGGESTION_RATIO = 0.4


def normalise(name: str) -> str:
    return re.sub(r"[^a-z0-9]", "", name.lower())


def bounded_distance(a: str, b: str, limit: int) -> int:
    """Levenshtein distance, or ``limit + 1`` once it is known to exceed *limit*."""
    if abs(len(a) - len(b)) > limit:
        return limit + 1
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, 1):
        current = [i] + [0] * len(b)
        for j, cb in enumerate(b, 1):
            current[j] = min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + (ca != cb))
        if min(current) > limit:
            return limit + 1
        previous = current
    return previous[-1]


def _stem_token(token: str) -> str:
    return token[:-1] if len(token) > 3 and token.endswith("s") else token


@dataclass
class Resolution:
    """Anchors chosen for one intent plus every scored candidate."""

    anchors: List[Anchor]
    candidates: List[Anchor] = field(default_factory=list)
    warnings: List[ScopeWarning] = field(default_factory=list)

    @property
    def ambiguous(self) -> bool:
        return len(self.anchors) > 1

    @property
    def paths(self) -> List[str]:
        return [a.path for a in self.anchors]


class AnchorResolver:
    """Scores every file against a hint and applies the ambiguity policy.

    Precedence per file: exact path suffix, exact file or symbol name,
    fuzzy name (bounded edit distance or token overlap), then concept
    keywords.  The best score a file reaches is its candidate score.
    """

    def __init__(self, graph: GraphStore) -> None:
        self.graph = graph

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    @staticmethod
    def _path_score(hint: str, record: FileRecord) -> Optional[Tuple[float, str, str]]:
        hint = hint.replace("\\", "/")
        if hint.startswith("./"):
            hint = hint[2:]
        if record.path == hint or record.path.endswith("/" + hint):
            return EXACT_PATH, record.path, "exact-path"
        return None

    @staticmethod
    def _names(record: FileRecord, symbols: List[str]) -> List[str]:
        return [record.stem] + symbols

    @staticmethod
    def _fuzzy(hint: str, name: str) -> float:
        a, b = normalise(hint), normalise(name)
        if not a or not b:
            return 0.0
        best = 0.0
        limit = 1 if len(a) < 6 else 2
        distance = bounded_distance(a, b, limit)
        if 0 < distance <= limit:
            best = FUZZY_SCALE * (1.0 - distance / max(len(a), len(b)))
        hint_tokens = set(split_identifier(hint))
        name_tokens = set(split_identifier(name))
        if hint_tokens and name_tokens:
            overlap = len(hint_tokens & name_tokens) / max(len(hint_tokens), len(name_tokens))
            if overlap >= 0.6:
                best = max(best, FUZZY_SCALE * overlap)
        return best

    @staticmethod
    def _concept(keywords: List[str], record: FileRecord, symbols: List[str]) -> float:
        wanted = {_stem_token(k.lower()) for k in keywords if len(k) > 1}
        if not wanted:
            return 0.0
        haystack: Set[str] = set()
        for part in record.path.rsplit(".", 1)[0].split("/"):
            haystack.update(_stem_token(t) for t in split_identifier(part))
        for symbol in symbols:
            haystack.update(_stem_token(t) for t in split_identifier(symbol))
        matched = wanted & haystack
        if matched == wanted:
            return CONCEPT_ALL
        if matched:
            return CONCEPT_ANY
        return 0.0

    def score(self, intent: Intent, record: FileRecord) -> Optional[Anchor]:
        """Best candidate *record* yields for *intent*, or ``None``."""
        hint = intent.anchor_hint
        hit = self._path_score(hint, record)
        if hit:
            return Anchor(record.path, hit[1], hit[0], hit[2])

        symbols = self.graph.symbols_for(record.path)
        target = hint.rsplit("/", 1)[-1]
        if intent.anchor_kind == "file":
            target = target.split(".", 1)[0]
        key = normalise(target)
        best: Optional[Anchor] = None
        for name in self._names(record, symbols):
            if key and normalise(name) == key:
                return Anchor(record.path, name, EXACT_NAME, "exact-name")
        for name in self._names(record, symbols):
            similarity = self._fuzzy(target, name)
            if similarity and (best is None or similarity > best.match_confidence):
                best = Anchor(record.path, name, round(similarity, 4), "fuzzy-name")

        concept = self._concept(intent.keywords, record, symbols)
        if concept and (best is None or concept > best.match_confidence):
            best = Anchor(record.path, " ".join(intent.keywords), concept, "concept-keyword")
        return best

    # ------------------------------------------------------------------
    # Policy
    # ------------------------------------------------------------------

    def candidates(self, intent: Intent) -> List[Anchor]:
        scored = [a for a in (self.score(intent, r) for r in self.graph.files) if a is not None]
        return sorted(scored, key=lambda a: (-a.match_confidence, a.path))

    def suggestions(self, hint: str) -> List[str]:
        names: Dict[str, float] = {}
        key = normalise(hint)
        for record in self.graph.files:
            for name in [record.name, record.stem] + self.graph.symbols_for(record.path):
                ratio = SequenceMatcher(None, key, normalise(name)).ratio()
                if ratio >= SUGGESTION_RATIO and ratio > names.get(name, 0.0):
                    names[name] = ratio
        ranked = sorted(names.items(), key=lambda item: (-item[1], item[0]))
        return [name for name, _ in ranked[:MAX_SUGGESTIONS]]

    def resolve(self, intent: Intent) -> Resolution:
        """Apply the ambiguity policy.

        Raises:
            AnchorNotFoundError: no candidate scores above the minimum.
        """
        scored = self.candidates(intent)
        viable = [a for a in scored if a.match_confidence > MIN_CONFIDENCE]
        if not viable:
            raise AnchorNotFoundError(
                intent.anchor_hint,
                suggestions=self.suggestions(intent.anchor_hint),
                candidates=[(a.path, a.match_confidence) for a in scored],
            )

        top = viable[0].match_confidence
        tied = [a for a in viable if top - a.match_confidence <= TIE_WINDOW + 1e-9]
        resolution = Resolution(anchors=tied, candidates=scored)
        if len(tied) > 1:
            message = (
                f"{len(tied)} files match {intent.anchor_hint!r} within {TIE_WINDOW} "
                f"of the top score {top:.2f}: {', '.join(a.path for a in tied)}"
            )
            resolution.warnings.append(ScopeWarning("AmbiguousAnchorWarning", message))
            logger.warning(message)
        elif top < UNAMBIGUOUS:
            anchor = tied[0]
            message = (
                f"Best match for {intent.anchor_hint!r} is {anchor.path} "
                f"({anchor.match_method}, {anchor.match_confidence:.2f})"
            )
            resolution.warnings.append(ScopeWarning("LowConfidenceAnchorWarning", message, anchor.path))
            logger.warning(message)
        logger.info("Resolved %r to %s", intent.anchor_hint, ", ".join(resolution.paths))
        return resolution
