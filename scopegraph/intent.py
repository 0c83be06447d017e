"""Classify a free-form scope query into an :class:`~scopegraph.models.Intent`."""

from __future__ import annotations

import logging
import re
from typing import List, Optional, Tuple

from .config import DEFAULT_DEPTH_DOWN, DEFAULT_DEPTH_UP
from .errors import QueryError
from .indexer import LANGUAGE_MAP
from .models import Intent

logger = logging.getLogger(__name__)

_VERBS = r"(?:calls|uses|imports|depends\s+on|references|extends|injects|needs|requires|invokes)"

UPSTREAM_CUES = [
    re.compile(rf"\beverything\s+(?:that|which|who)\s+{_VERBS}\b"),
    re.compile(rf"\b(?:anything|anyone|whatever)\s+(?:that|which|who)\s+{_VERBS}\b"),
    re.compile(rf"\b(?:what|who)\s+(?:else\s+)?{_VERBS}\b"),
    re.compile(rf"\b(?:files|modules|classes|code|services)\s+(?:that|which)\s+{_VERBS}\b"),
    re.compile(r"\b(?:callers?|users?|consumers?|importers?|dependents|clients)\s+of\b"),
    re.compile(r"\bdependents\b"),
    re.compile(r"\b(?:calls?|uses?|imports?|needs?|references?)\s+(?:it|this|that|them)\b"),
    re.compile(r"\bdepend(?:s|ing)?\s+on\s+(?:it|this|that|them)\b"),
    re.compile(r"\brel(?:y|ies|ying)\s+on\s+(?:it|this|that)\b"),
    re.compile(r"\b(?:used|called|consumed|referenced|imported)\s+by\b"),
    re.compile(r"\bwhere\s+\S+\s+is\s+used\b"),
    re.compile(r"\b(?:upstream|reverse\s+dependencies|blast\s+radius)\b"),
]

DOWNSTREAM_CUES = [
    re.compile(r"\bdepends?\s+on\b"),
    re.compile(r"\b(?:dependencies|deps|downstream)\b"),
    re.compile(r"\b(?:uses|calls|imports|needs|requires|invokes)\b"),
    re.compile(r"\bwhat\s+\S+\s+(?:uses|calls|imports|needs)\b"),
]

LATERAL_CUES = [
    re.compile(r"\b(?:related\s+to|siblings?(?:\s+of)?|alongside|next\s+to|neighbou?rs?(?:\s+of)?|peers?(?:\s+of)?|similar\s+to)\b"),
]

JUST_RE = re.compile(r"\b(?:just|only)\b|\bnothing\s+else\b")
EVERYTHING_UPSTREAM_RE = re.compile(rf"\beverything\s+(?:that|which|who)\s+{_VERBS}\b")
UNBOUNDED_RE = re.compile(
    r"\btransitive(?:ly)?\b|\brecursive(?:ly)?\b|\bfull\s+closure\b|\bentire\s+(?:closure|graph|chain)\b"
    r"|\ball\s+(?:of\s+)?(?:its|the|their)\s+(?:transitive\s+)?"
    r"(?:dependencies|dependents|callers|users|deps|importers|consumers)\b"
)
UPPER_ALL_RE = re.compile(r"\bALL\b")
DEPTH_RE = re.compile(r"\b(?:depth\s+(\d+)|(\d+)\s+(?:levels?|hops?|layers?)(?:\s+deep)?)\b")

EXCLUDE_RE = re.compile(
    r"\b(?:but\s+not|excluding|exclude|without|except(?:\s+for)?|minus|ignoring|ignore|skip(?:ping)?|no)\b"
    r"((?:\s*(?:,|(?:the|any|and|or|nor|test\s+files|tests?|specs?|configuration|config\s+files|configs?|fixtures)\b))+)",
    re.IGNORECASE,
)

ENTITY_WORDS = ("table", "model", "entity", "schema", "record", "dto", "document", "aggregate")
SERVICE_WORDS = (
    "service", "module", "component", "controller", "repository", "handler", "client",
    "manager", "worker", "job", "gateway", "provider", "listener", "consumer", "producer",
)
SERVICE_SUFFIX_RE = re.compile(
    r"^[A-Z]\w*(?:" + "|".join(w.capitalize() for w in SERVICE_WORDS) + r")$"
)

STOPWORDS = {
    "a", "an", "the", "and", "or", "of", "to", "in", "on", "for", "with", "at", "by", "from",
    "into", "it", "its", "it's", "this", "that", "these", "those", "them", "their", "which",
    "who", "what", "where", "how", "does", "do", "is", "are", "be", "me", "my", "i", "we",
    "us", "you", "show", "find", "give", "list", "get", "see", "look", "please", "want", "need",
    "all", "everything", "anything", "anyone", "whatever", "else", "files", "file", "code",
    "just", "only", "nothing", "depends", "depend", "depending", "dependencies", "dependency",
    "deps", "dependents", "uses", "use", "used", "using", "users", "user's", "calls", "call",
    "called", "calling", "callers", "caller", "imports", "import", "imported", "importers",
    "needs", "requires", "invokes", "references", "referenced", "extends", "injects", "rely",
    "relies", "relying", "consumers", "consumed", "upstream", "downstream", "related",
    "siblings", "sibling", "alongside", "next", "neighbours", "neighbors", "peers", "similar",
    "transitively", "transitive", "recursively", "recursive", "full", "closure", "entire",
    "scope", "around", "about", "but", "not", "excluding", "exclude", "without", "except",
    "minus", "ignoring", "ignore", "skip", "skipping", "no", "tests", "test", "specs",
    "config", "configs", "configuration", "fixtures", "depth", "level", "levels", "hops",
    "hop", "layers", "deep", "reverse", "blast", "radius", "clients", "graph", "chain",
    "everything's", "up", "down",
}

_TOKEN_RE = re.compile(r"[A-Za-z_][\w'-]*")
_FILE_TOKEN_RE = re.compile(r"[\w.@~/\\-]+")


def split_identifier(name: str) -> List[str]:
    """``PaymentService`` / ``payment_service`` -> ``["payment", "service"]``."""
    name = re.sub(r"([a-z0-9])([A-Z])", r"\1 \2", name)
    name = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1 \2", name)
    return [p.lower() for p in re.split(r"[^A-Za-z0-9]+", name) if p]


def _file_token(text: str) -> Optional[str]:
    for raw in _FILE_TOKEN_RE.findall(text):
        token = raw.strip(".,;:!?'\"()[]").replace("\\", "/")
        if not token:
            continue
        dot = token.rfind(".")
        has_ext = dot > 0 and token[dot:].lower() in LANGUAGE_MAP
        if has_ext:
            return token
        segments = [s for s in token.lower().split("/") if s]
        if "/" in token and segments and segments[-1] not in STOPWORDS and re.search(r"[A-Za-z]", segments[-1]):
            return token
    return None


class IntentParser:
    """Rule-based query classifier.

    Direction cues for reversed phrasing ("everything that calls X",
    "depends on this") are checked before forward phrasing, since the
    latter is a substring of the former.
    """

    def __init__(self, depth_down: int = DEFAULT_DEPTH_DOWN, depth_up: int = DEFAULT_DEPTH_UP) -> None:
        self.depth_down = depth_down
        self.depth_up = depth_up

    def parse(self, query: str) -> Intent:
        text = " ".join(query.split())
        if not text:
            raise QueryError(query, "Empty query")

        anchor_text, exclude_tests, exclude_config = self._exclusions(text)
        lower = anchor_text.lower()
        direction = self._direction(lower)

        intent = Intent(
            query=query,
            anchor_hint="",
            anchor_kind="",
            direction=direction,
            depth_up=self.depth_up,
            depth_down=self.depth_down,
            include_lateral=direction in ("both", "lateral"),
            exclude_tests=exclude_tests,
            exclude_config=exclude_config,
        )
        self._depths(intent, anchor_text, lower)

        hint, kind, keywords = self._anchor(anchor_text)
        if not hint:
            raise QueryError(query)
        intent.anchor_hint, intent.anchor_kind, intent.keywords = hint, kind, keywords
        logger.debug(
            "Parsed %r -> anchor=%r (%s) direction=%s depth_down=%s depth_up=%s",
            query, hint, kind, intent.direction, intent.depth_down, intent.depth_up,
        )
        return intent

    # ------------------------------------------------------------------

    @staticmethod
    def _exclusions(text: str) -> Tuple[str, bool, bool]:
        exclude_tests = exclude_config = False
        remaining = text
        for m in list(EXCLUDE_RE.finditer(text)):
            words = m.group(1).lower()
            hit = False
            if re.search(r"\b(?:tests?|specs?|test\s+files|fixtures)\b", words):
                exclude_tests = hit = True
            if re.search(r"\b(?:configs?|configuration|config\s+files)\b", words):
                exclude_config = hit = True
            if hit:
                remaining = remaining.replace(m.group(0), " ")
        return remaining, exclude_tests, exclude_config

    @staticmethod
    def _direction(lower: str) -> str:
        upstream = any(cue.search(lower) for cue in UPSTREAM_CUES)
        residue = lower
        for cue in UPSTREAM_CUES:
            residue = cue.sub(" ", residue)
        downstream = any(cue.search(residue) for cue in DOWNSTREAM_CUES)
        if upstream and downstream:
            return "both"
        if upstream:
            return "upstream"
        if downstream:
            return "downstream"
        if any(cue.search(lower) for cue in LATERAL_CUES):
            return "lateral"
        return "both"

    @staticmethod
    def _depths(intent: Intent, text: str, lower: str) -> None:
        if JUST_RE.search(lower):
            intent.depth_down = intent.depth_up = 0
            intent.include_lateral = False
            return

        everything = re.search(r"\beverything\b", EVERYTHING_UPSTREAM_RE.sub(" ", lower)) is not None
        if UNBOUNDED_RE.search(lower) or UPPER_ALL_RE.search(text) or everything:
            if intent.wants("downstream"):
                intent.depth_down = None
            if intent.wants("upstream"):
                intent.depth_up = None
            return

        m = DEPTH_RE.search(lower)
        if m:
            depth = int(m.group(1) or m.group(2))
            if intent.wants("downstream"):
                intent.depth_down = depth
            if intent.wants("upstream"):
                intent.depth_up = depth

    @staticmethod
    def _anchor(text: str) -> Tuple[str, str, List[str]]:
        """Return ``(hint, kind, keywords)``; ``hint`` is empty when nothing qualifies."""
        token = _file_token(text)
        if token:
            stem = token.rsplit("/", 1)[-1].split(".", 1)[0]
            return token, "file", split_identifier(stem)

        words = _TOKEN_RE.findall(text)
        for i, word in enumerate(words):
            if SERVICE_SUFFIX_RE.match(word):
                return word, "service", split_identifier(word)
            lowered = word.lower()
            if lowered in SERVICE_WORDS:
                name = _capitalised_neighbour(words, i)
                if name:
                    hint = name if name.lower().endswith(lowered) else name + lowered.capitalize()
                    return hint, "service", split_identifier(hint)
            if lowered in ENTITY_WORDS or lowered.rstrip("s") in ENTITY_WORDS:
                name = _capitalised_neighbour(words, i)
                if name:
                    return name, "entity", split_identifier(name)

        content = [w for w in words if w.lower() not in STOPWORDS and len(w) > 1]
        if not content:
            return "", "", []
        if len(content) == 1:
            return content[0], "name", split_identifier(content[0]) or [content[0].lower()]
        keywords: List[str] = []
        for word in content:
            for part in split_identifier(word):
                if part not in keywords and part not in STOPWORDS:
                    keywords.append(part)
        return " ".join(content), "concept", keywords


def _capitalised_neighbour(words: List[str], index: int) -> Optional[str]:
    for j in (index - 1, index + 1):
        if 0 <= j < len(words):
            word = words[j]
            if word[:1].isupper() and word.lower() not in STOPWORDS:
                return word
    return None
