"""Error taxonomy for indexing and scope requests.

Run-level failures (``StartupError``, ``PartialIndexError``) abort a run.
Request-level failures (``QueryError``, ``AnchorNotFoundError``) abort one
query and carry enough detail to retry with a refined query.  File-level
problems never raise out of a run; they become ``ScopeWarning`` entries.
"""

from __future__ import annotations

from typing import List, Optional, Tuple


class ScopeGraphError(Exception):
    """Base class for all scopegraph errors."""


class StartupError(ScopeGraphError):
    """The source root cannot be read at all."""


class UnreadableFileError(ScopeGraphError):
    """A single file could not be read; recorded as an ``IOError`` warning."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


class PartialIndexError(ScopeGraphError):
    """Indexing was cancelled before every file was processed."""

    def __init__(self, indexed: int, total: int) -> None:
        super().__init__(f"Indexing cancelled after {indexed}/{total} files")
        self.indexed = indexed
        self.total = total


class QueryError(ScopeGraphError):
    """The query carries no recognisable anchor signal."""

    def __init__(self, query: str, message: Optional[str] = None) -> None:
        super().__init__(message or f"No anchor found in query: {query!r}")
        self.query = query


class AnchorNotFoundError(ScopeGraphError):
    """No file or symbol matches the anchor hint closely enough."""

    def __init__(
        self,
        hint: str,
        suggestions: Optional[List[str]] = None,
        candidates: Optional[List[Tuple[str, float]]] = None,
    ) -> None:
        self.hint = hint
        self.suggestions = list(suggestions or [])
        self.candidates = list(candidates or [])
        message = f"No anchor matches {hint!r}"
        if self.suggestions:
            message += f" (did you mean: {', '.join(self.suggestions)})"
        super().__init__(message)
