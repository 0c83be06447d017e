"""scopegraph: dependency-graph scoping for source trees."""

__version__ = "0.1.0"

from .errors import (  # noqa: E402
    AnchorNotFoundError,
    PartialIndexError,
    QueryError,
    ScopeGraphError,
    StartupError,
)
from .models import ScopeDocument  # noqa: E402
from .orchestrator import ScopeOrchestrator, build_scope  # noqa: E402

__all__ = [
    "__version__",
    "AnchorNotFoundError",
    "PartialIndexError",
    "QueryError",
    "ScopeDocument",
    "ScopeGraphError",
    "ScopeOrchestrator",
    "StartupError",
    "build_scope",
]
