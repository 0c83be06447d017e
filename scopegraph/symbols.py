"""Exported-symbol index: turns extractor references into typed edges."""

from __future__ import annotations

import logging
import posixpath
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from .models import Edge, ExternalRef, FileExtraction, FileRecord, Reference, Target, target_key

logger = logging.getLogger(__name__)

# Leading path components that are not part of an importable name.
SOURCE_ROOTS = {"src", "lib", "source", "python"}


class SymbolIndex:
    """Incrementally built lookup tables over every extracted file.

    Files register the module names they are importable as, the symbols
    they export, the packages they belong to and the configuration
    sections they define.  :meth:`resolve` then maps each
    :class:`~scopegraph.models.Reference` to one or more file ids, or to an
    :class:`~scopegraph.models.ExternalRef` when nothing matches.
    """

    def __init__(self, files: Iterable[FileRecord] = (), source_roots: Iterable[str] = ()) -> None:
        self.files: Dict[str, FileRecord] = {f.path: f for f in files}
        self.source_roots: Set[str] = set(SOURCE_ROOTS) | set(source_roots)
        self.modules: Dict[str, Set[str]] = {}
        self.module_suffixes: Dict[str, Set[str]] = {}
        self.symbols: Dict[str, Set[str]] = {}
        self.packages: Dict[str, Set[str]] = {}
        self.config_sections: Dict[str, Set[str]] = {}

    # ------------------------------------------------------------------
    # Building
    # ------------------------------------------------------------------

    def add(self, extraction: FileExtraction) -> None:
        path = extraction.path
        for module in extraction.modules:
            self.modules.setdefault(module, set()).add(path)
            parts = module.split(".")
            for i in range(1, len(parts)):
                suffix = parts[i:]
                if len(suffix) >= 2 or (i == 1 and parts[0] in self.source_roots):
                    self.module_suffixes.setdefault(".".join(suffix), set()).add(path)
        for symbol in extraction.symbols:
            self.symbols.setdefault(symbol, set()).add(path)
        for package in extraction.packages:
            self.packages.setdefault(package, set()).add(path)
        for section in extraction.config_sections:
            self.config_sections.setdefault(section, set()).add(path)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    @staticmethod
    def _nearest(source: str, paths: Set[str]) -> str:
        """Pick the candidate sharing the longest directory prefix with *source*."""
        source_dir = posixpath.dirname(source).split("/")

        def _shared(path: str) -> int:
            shared = 0
            for a, b in zip(source_dir, posixpath.dirname(path).split("/")):
                if a != b:
                    break
                shared += 1
            return shared

        return sorted(paths, key=lambda p: (-_shared(p), p))[0]

    def lookup_module(self, name: str, source: str) -> Optional[str]:
        paths = self.modules.get(name) or self.module_suffixes.get(name)
        if not paths:
            return None
        return self._nearest(source, paths)

    def lookup_symbol(self, name: str, source: str) -> Optional[str]:
        paths = self.symbols.get(name)
        if not paths:
            return None
        return self._nearest(source, paths)

    def lookup_config(self, section: str) -> List[str]:
        paths = self.config_sections.get(section)
        if not paths and "." in section:
            paths = self.config_sections.get(section.split(".", 1)[0])
        return sorted(paths or ())

    def symbols_for(self, path: str) -> List[str]:
        return sorted(name for name, paths in self.symbols.items() if path in paths)

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def resolve_reference(self, source: str, ref: Reference) -> List[Target]:
        """Every target *ref* resolves to; never empty."""
        if ref.lookup == "external":
            return [ExternalRef(ref.name)]

        if ref.lookup == "config":
            section = ref.candidates[0] if ref.candidates else ref.name.split(":", 1)[-1]
            found = self.lookup_config(section)
            return list(found) if found else [ExternalRef(ref.name)]

        if ref.lookup == "path":
            for candidate in ref.candidates:
                if candidate in self.files:
                    return [candidate]
            return [ExternalRef(ref.name)]

        if ref.lookup == "package":
            for candidate in ref.candidates:
                members = self.packages.get(candidate)
                if members:
                    return sorted(members)
                module = self.lookup_module(candidate, source)
                if module:
                    return [module]
            return [ExternalRef(ref.name)]

        if ref.lookup == "module":
            for candidate in ref.candidates or (ref.name,):
                found = self.lookup_module(candidate, source)
                if found:
                    return [found]
            if ref.kind != "import":
                found = self.lookup_symbol(ref.name.rsplit(".", 1)[-1], source)
                if found:
                    return [found]
            return [ExternalRef(ref.name)]

        for candidate in ref.candidates or (ref.name,):
            found = self.lookup_symbol(candidate, source) or self.lookup_module(candidate, source)
            if found:
                return [found]
        return [ExternalRef(ref.name)]

    def resolve(self, extraction: FileExtraction) -> List[Edge]:
        """Resolve every reference of one file into de-duplicated edges."""
        edges: List[Edge] = []
        seen: Set[Tuple[str, str, str]] = set()
        for ref in extraction.references:
            symbol = ref.name.split(":", 1)[1] if ref.lookup == "config" else ref.name
            for target in self.resolve_reference(extraction.path, ref):
                if ref.kind == "call" and target == extraction.path:
                    continue
                key = (target_key(target), ref.kind, ref.evidence)
                if key in seen:
                    continue
                seen.add(key)
                edges.append(Edge(
                    source=extraction.path,
                    target=target,
                    kind=ref.kind,
                    confidence=ref.confidence,
                    evidence=ref.evidence,
                    symbol=symbol,
                ))
        return edges

    def resolve_all(self, extractions: Sequence[FileExtraction]) -> List[Edge]:
        edges: List[Edge] = []
        for extraction in extractions:
            edges.extend(self.resolve(extraction))
        external = sum(1 for e in edges if e.is_external)
        logger.info("Resolved %d edges (%d external)", len(edges), external)
        return edges
