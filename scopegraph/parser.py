"""Dependency-signal extraction: one extractor per language family.

Every extractor exposes a single capability, "produce references for this
file" (:meth:`Extractor.extract`).  References are resolved into typed,
confidence-scored :class:`~scopegraph.models.Edge` objects by
:class:`~scopegraph.symbols.SymbolIndex` once every file has been seen.

Python uses Tree-sitter for error-tolerant parsing and falls back to the
built-in ``ast`` module when the grammar is unavailable.  JVM languages and
JavaScript/TypeScript are scanned with regular expressions, configuration
files are loaded with their format's parser.
"""

from __future__ import annotations

import ast
import builtins
import configparser
import json
import logging
import posixpath
import re
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Set, Tuple

import toml
import yaml

from .config import DEFAULT_WORKERS
from .models import CONFIDENCE, FileExtraction, FileRecord, Reference

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Shared vocabulary
# ---------------------------------------------------------------------------

# Normalised annotation/decorator name -> infrastructure kind.
INFRA_ANNOTATIONS: Dict[str, str] = {
    "scheduled": "scheduling",
    "schedule": "scheduling",
    "schedules": "scheduling",
    "cron": "scheduling",
    "interval": "scheduling",
    "timeout": "scheduling",
    "periodictask": "scheduling",
    "sharedtask": "scheduling",
    "task": "scheduling",
    "transactional": "transaction",
    "transaction": "transaction",
    "atomic": "transaction",
    "eventlistener": "event",
    "transactionaleventlistener": "event",
    "kafkalistener": "event",
    "rabbitlistener": "event",
    "jmslistener": "event",
    "sqslistener": "event",
    "streamlistener": "event",
    "onevent": "event",
    "eventpattern": "event",
    "messagepattern": "event",
    "eventhandler": "event",
    "subscribe": "event",
    "subscriber": "event",
    "receiver": "event",
    "listener": "event",
    "listensfor": "event",
    "async": "async",
    "cacheable": "cache",
    "cacheevict": "cache",
    "cacheput": "cache",
}

PYTHON_BUILTINS: Set[str] = set(dir(builtins))

# Names in annotations that never denote an injectable collaborator.
TYPING_NAMES: Set[str] = {
    "Any", "Optional", "Union", "List", "Dict", "Set", "FrozenSet", "Tuple", "Type",
    "Callable", "Iterable", "Iterator", "Sequence", "Mapping", "MutableMapping",
    "Generator", "AsyncIterator", "Awaitable", "Coroutine", "ClassVar", "Final",
    "Literal", "Annotated", "Protocol", "Generic", "TypeVar", "Self", "None",
    "Path", "Enum", "ABC", "NamedTuple", "TypedDict", "Logger", "Decimal",
}

PYTHON_IGNORED_BASES: Set[str] = {"object", "ABC", "Generic", "Protocol", "Enum", "IntEnum", "NamedTuple", "TypedDict"}

JVM_BUILTINS: Set[str] = {
    "String", "Object", "Integer", "Long", "Double", "Float", "Short", "Byte", "Boolean",
    "Character", "Math", "System", "Thread", "Runtime", "StringBuilder", "StringBuffer",
    "List", "ArrayList", "LinkedList", "Map", "HashMap", "LinkedHashMap", "TreeMap", "Set",
    "HashSet", "TreeSet", "Collections", "Arrays", "Objects", "Optional", "Stream",
    "Collectors", "Exception", "RuntimeException", "IllegalArgumentException",
    "IllegalStateException", "UnsupportedOperationException", "NullPointerException",
    "Override", "Deprecated", "SuppressWarnings", "FunctionalInterface", "LocalDate",
    "LocalDateTime", "Instant", "Duration", "UUID", "BigDecimal", "BigInteger", "Logger",
    "LoggerFactory", "Pattern", "Matcher", "Void", "Iterable", "Comparable", "Serializable",
    "Unit", "Any", "Int", "Array", "Seq", "Some", "None", "Future", "Try",
}

SCRIPT_BUILTINS: Set[str] = {
    "Object", "Array", "String", "Number", "Boolean", "Date", "Math", "JSON", "Promise",
    "Map", "Set", "WeakMap", "WeakSet", "Error", "TypeError", "RangeError", "RegExp",
    "Symbol", "Reflect", "Proxy", "Intl", "URL", "URLSearchParams", "Buffer", "console",
    "Record", "Partial", "Readonly", "Pick", "Omit", "Logger",
}


def infra_kind(annotation: str) -> Optional[str]:
    """Map a decorator/annotation name to an infrastructure kind, if any."""
    last = annotation.rsplit(".", 1)[-1]
    return INFRA_ANNOTATIONS.get(last.replace("_", "").lower())


def evidence(path: str, line: int, text: str) -> str:
    snippet = " ".join(text.strip().split())
    if len(snippet) > 80:
        snippet = snippet[:77] + "..."
    return f"{path}:{line}: {snippet}"


def line_at(lines: Sequence[str], line: int) -> str:
    if 1 <= line <= len(lines):
        return lines[line - 1]
    return ""


def config_section(key: str) -> str:
    """Section of a dotted configuration key: ``app.mail.host`` -> ``app.mail``."""
    key = key.strip().strip("$").strip("{}")
    key = key.split(":", 1)[0]
    parts = [p for p in key.split(".") if p]
    if len(parts) <= 1:
        return parts[0] if parts else key
    return ".".join(parts[:-1])


PLACEHOLDER_RE = re.compile(r"\$\{([\w.\-]+)(?::[^}]*)?\}")


# ===================================================================
# Abstract Extractor Interface
# ===================================================================

class Extractor(ABC):
    """Produce dependency references for one file."""

    languages: Set[str] = set()

    def supports_language(self, language: str) -> bool:
        return language in self.languages

    @abstractmethod
    def extract(self, record: FileRecord, source: str) -> FileExtraction:
        """Extract exported names and unresolved references from *source*."""
        ...


# ===================================================================
# Python
# ===================================================================

def python_module_name(path: str) -> str:
    """``pkg/sub/mod.py`` -> ``pkg.sub.mod``; ``pkg/__init__.py`` -> ``pkg``."""
    stem = path[:-3] if path.endswith(".py") else path
    parts = [p for p in stem.split("/") if p]
    if parts and parts[-1] == "__init__":
        parts = parts[:-1]
    return ".".join(parts)


class _PythonFacts:
    """Backend-neutral accumulator shared by the Tree-sitter and ``ast`` walkers."""

    def __init__(self, record: FileRecord, source: str) -> None:
        self.record = record
        self.lines = source.splitlines()
        self.module = python_module_name(record.path)
        self.is_package = record.path.endswith("__init__.py")
        self.imports: List[Tuple[str, Tuple[str, ...], int]] = []
        self.module_aliases: Dict[str, str] = {}
        self.from_names: Dict[str, Tuple[str, str]] = {}
        self.local_defs: Set[str] = set()
        self.symbols: List[str] = []
        self.calls: List[Tuple[str, int]] = []
        self.injections: List[Tuple[str, int]] = []
        self.decorators: List[Tuple[str, int]] = []
        self.bases: List[Tuple[str, int]] = []
        self.configs: List[Tuple[str, int]] = []
        self.warnings: List[str] = []

    # -- recording -------------------------------------------------------

    def absolute(self, level: int, module: str) -> str:
        if level == 0:
            return module
        package = self.module.split(".") if self.is_package else self.module.split(".")[:-1]
        if level > 1:
            package = package[: len(package) - (level - 1)] if level - 1 <= len(package) else []
        return ".".join([p for p in package if p] + ([module] if module else []))

    def add_import(self, module: str, alias: Optional[str], line: int) -> None:
        self.imports.append((module, (module,), line))
        if alias:
            self.module_aliases[alias] = module
        else:
            self.module_aliases[module.split(".")[0]] = module.split(".")[0]

    def add_import_from(self, level: int, module: str, names: List[Tuple[str, Optional[str]]], line: int) -> None:
        base = self.absolute(level, module)
        if not names:
            self.imports.append((base, (base,), line))
            return
        for name, alias in names:
            if name == "*":
                self.imports.append((base, (base,), line))
                continue
            full = f"{base}.{name}" if base else name
            self.imports.append((base or name, (full, base) if base else (full,), line))
            local = alias or name
            if base:
                self.from_names[local] = (base, name)
            else:
                self.module_aliases[local] = name

    def add_annotation_types(self, names: Iterable[str], line: int) -> None:
        for name in names:
            if name and name[0].isupper() and name not in TYPING_NAMES:
                self.injections.append((name, line))

    # -- finishing -------------------------------------------------------

    def _named_ref(self, name: str, kind: str, line: int) -> Optional[Reference]:
        ev = evidence(self.record.path, line, line_at(self.lines, line))
        confidence = CONFIDENCE[kind]
        if name in self.from_names:
            base, original = self.from_names[name]
            return Reference(original, kind, confidence, ev, "module", (f"{base}.{original}", base))
        if name in self.module_aliases:
            module = self.module_aliases[name]
            return Reference(module, kind, confidence, ev, "module", (module,))
        return Reference(name, kind, confidence, ev, "symbol", (name,))

    def _call_ref(self, dotted: str, line: int) -> Optional[Reference]:
        parts = dotted.split(".")
        root = parts[0]
        if root in ("self", "cls", "super") or root in self.local_defs:
            return None
        if len(parts) == 1:
            if root in self.from_names or root in self.module_aliases:
                return self._named_ref(root, "call", line)
            if root in PYTHON_BUILTINS or not root[:1].isupper():
                return None
            return self._named_ref(root, "call", line)
        if root in self.module_aliases and root not in self.from_names:
            module = self.module_aliases[root]
            ev = evidence(self.record.path, line, line_at(self.lines, line))
            # module.sub.func() may name a submodule; try the longest prefix first.
            dotted_mod = ".".join([module] + parts[1:-1])
            candidates = tuple(dict.fromkeys([f"{module}.{parts[1]}", dotted_mod, module]))
            return Reference(module, "call", CONFIDENCE["call"], ev, "module", candidates)
        if root in self.from_names or (root[:1].isupper() and root not in PYTHON_BUILTINS):
            return self._named_ref(root, "call", line)
        return None

    def finish(self) -> FileExtraction:
        refs: List[Reference] = []
        for name, candidates, line in self.imports:
            ev = evidence(self.record.path, line, line_at(self.lines, line))
            refs.append(Reference(name, "import", CONFIDENCE["import"], ev, "module", candidates))
        for name, line in self.injections:
            if name in self.local_defs:
                continue
            ref = self._named_ref(name, "injection", line)
            if ref:
                refs.append(ref)
        for name, line in self.bases:
            root = name.split(".")[0]
            if name in PYTHON_IGNORED_BASES or name in PYTHON_BUILTINS or root in self.local_defs:
                continue
            ref = self._named_ref(root if root in self.module_aliases else name.rsplit(".", 1)[-1], "inherits", line)
            if ref:
                refs.append(ref)
        for name, line in self.decorators:
            kind = infra_kind(name)
            if kind:
                ev = evidence(self.record.path, line, line_at(self.lines, line))
                refs.append(Reference(
                    f"infrastructure:{kind}", "annotation", CONFIDENCE["annotation"], ev, "external",
                ))
        for section, line in self.configs:
            ev = evidence(self.record.path, line, line_at(self.lines, line))
            refs.append(Reference(
                f"config:{section}", "config-ref", CONFIDENCE["config-ref"], ev, "config", (section,),
            ))
        for dotted, line in self.calls:
            ref = self._call_ref(dotted, line)
            if ref:
                refs.append(ref)
        return FileExtraction(
            path=self.record.path,
            modules=[self.module] if self.module else [],
            symbols=list(dict.fromkeys(self.symbols)),
            references=refs,
            warnings=self.warnings,
        )


_ENV_FUNCS = {"os.getenv", "getenv", "os.environ.get", "environ.get"}
_ENV_OBJECTS = {"os.environ", "environ"}
_SETTINGS_OBJECTS = {"settings", "config", "conf"}


class AstPythonExtractor(Extractor):
    """Pure-Python extractor using the built-in ``ast`` module.

    Used automatically when the Tree-sitter grammar is missing.
    """

    languages = {"python"}

    def extract(self, record: FileRecord, source: str) -> FileExtraction:
        facts = _PythonFacts(record, source)
        try:
            tree = ast.parse(source)
        except SyntaxError as exc:
            facts.warnings.append(f"SyntaxError at line {exc.lineno}: {exc.msg}")
            _scan_python_imports(facts)
            return facts.finish()
        for node in tree.body:
            if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
                facts.symbols.append(node.name)
        _AstWalker(facts).visit(tree)
        return facts.finish()


_IMPORT_LINE_RE = re.compile(r"^\s*(?:from\s+(\.*)([\w.]*)\s+import\s+([\w*,\s]+)|import\s+([\w.]+))")


def _scan_python_imports(facts: _PythonFacts) -> None:
    """Line-based import recovery for files that do not parse."""
    for lineno, line in enumerate(facts.lines, 1):
        m = _IMPORT_LINE_RE.match(line)
        if not m:
            continue
        if m.group(4):
            facts.add_import(m.group(4), None, lineno)
        else:
            names = [(n.strip(), None) for n in m.group(3).split(",") if n.strip()]
            facts.add_import_from(len(m.group(1)), m.group(2), names, lineno)


def _ast_dotted(expr: ast.AST) -> Optional[str]:
    if isinstance(expr, ast.Name):
        return expr.id
    if isinstance(expr, ast.Attribute):
        parts: List[str] = []
        current: ast.AST = expr
        while isinstance(current, ast.Attribute):
            parts.append(current.attr)
            current = current.value
        if isinstance(current, ast.Name):
            parts.append(current.id)
            return ".".join(reversed(parts))
        return None
    if isinstance(expr, ast.Call):
        return _ast_dotted(expr.func)
    return None


def _ast_type_names(expr: Optional[ast.AST]) -> List[str]:
    """Every class-like name mentioned in an annotation expression."""
    if expr is None:
        return []
    names: List[str] = []
    for node in ast.walk(expr):
        if isinstance(node, ast.Name):
            names.append(node.id)
        elif isinstance(node, ast.Attribute):
            names.append(node.attr)
        elif isinstance(node, ast.Constant) and isinstance(node.value, str):
            names.extend(re.findall(r"[A-Za-z_]\w*", node.value))
    return names


def _ast_str(expr: ast.AST) -> Optional[str]:
    if isinstance(expr, ast.Constant) and isinstance(expr.value, str):
        return expr.value
    return None


class _AstWalker(ast.NodeVisitor):
    def __init__(self, facts: _PythonFacts) -> None:
        self.facts = facts
        self.class_depth = 0

    def visit_Import(self, node: ast.Import) -> None:
        for alias in node.names:
            self.facts.add_import(alias.name, alias.asname, node.lineno)

    def visit_ImportFrom(self, node: ast.ImportFrom) -> None:
        names = [(a.name, a.asname) for a in node.names]
        self.facts.add_import_from(node.level or 0, node.module or "", names, node.lineno)

    def visit_ClassDef(self, node: ast.ClassDef) -> None:
        self.facts.local_defs.add(node.name)
        for base in node.bases:
            name = _ast_dotted(base) if not isinstance(base, ast.Subscript) else _ast_dotted(base.value)
            if name:
                self.facts.bases.append((name, node.lineno))
        self._decorators(node)
        self.class_depth += 1
        for stmt in node.body:
            if isinstance(stmt, ast.AnnAssign):
                self.facts.add_annotation_types(_ast_type_names(stmt.annotation), stmt.lineno)
        self.generic_visit(node)
        self.class_depth -= 1

    def visit_FunctionDef(self, node: ast.FunctionDef) -> None:
        self._function(node)

    def visit_AsyncFunctionDef(self, node: ast.AsyncFunctionDef) -> None:
        self._function(node)

    def _function(self, node: Any) -> None:
        self.facts.local_defs.add(node.name)
        self._decorators(node)
        if node.name == "__init__" and self.class_depth:
            args = node.args.posonlyargs + node.args.args + node.args.kwonlyargs
            for arg in args:
                self.facts.add_annotation_types(_ast_type_names(arg.annotation), arg.lineno)
        depth, self.class_depth = self.class_depth, 0
        self.generic_visit(node)
        self.class_depth = depth

    def _decorators(self, node: Any) -> None:
        for dec in node.decorator_list:
            name = _ast_dotted(dec)
            if name:
                self.facts.decorators.append((name, dec.lineno))

    def visit_Call(self, node: ast.Call) -> None:
        name = None if isinstance(node.func, ast.Call) else _ast_dotted(node.func)
        if name in _ENV_FUNCS and node.args:
            key = _ast_str(node.args[0])
            if key:
                self.facts.configs.append((key, node.lineno))
        elif name:
            self.facts.calls.append((name, node.lineno))
        self.generic_visit(node)

    def visit_Subscript(self, node: ast.Subscript) -> None:
        if _ast_dotted(node.value) in _ENV_OBJECTS:
            key = _ast_str(node.slice)
            if key:
                self.facts.configs.append((key, node.lineno))
        self.generic_visit(node)

    def visit_Attribute(self, node: ast.Attribute) -> None:
        if (
            isinstance(node.value, ast.Name)
            and node.value.id in _SETTINGS_OBJECTS
            and node.attr.isupper()
        ):
            self.facts.configs.append((node.attr, node.lineno))
        self.generic_visit(node)


# ===================================================================
# Tree-sitter Python extractor (primary)
# ===================================================================

_STRING_RE = re.compile(r"^[A-Za-z]*(\"\"\"|'''|\"|')(.*)\1$", re.DOTALL)


def _ts_text(node: Any) -> str:
    return node.text.decode("utf-8", errors="ignore")


def _ts_string(node: Any) -> Optional[str]:
    if node is None or node.type != "string":
        return None
    m = _STRING_RE.match(_ts_text(node))
    return m.group(2) if m else None


def _ts_dotted(node: Any) -> Optional[str]:
    """Resolve a Tree-sitter expression node to a dotted name string."""
    if node is None:
        return None
    if node.type == "identifier":
        return _ts_text(node)
    if node.type == "attribute":
        parts: List[str] = []
        current = node
        while current is not None and current.type == "attribute":
            attr = current.child_by_field_name("attribute")
            if attr is not None:
                parts.append(_ts_text(attr))
            current = current.child_by_field_name("object")
        if current is not None and current.type == "identifier":
            parts.append(_ts_text(current))
            return ".".join(reversed(parts))
        return None
    if node.type == "call":
        return _ts_dotted(node.child_by_field_name("function"))
    return None


def _ts_type_names(node: Any) -> List[str]:
    if node is None:
        return []
    names: List[str] = []
    stack = [node]
    while stack:
        current = stack.pop()
        if current.type == "identifier":
            names.append(_ts_text(current))
        elif current.type == "string":
            names.extend(re.findall(r"[A-Za-z_]\w*", _ts_string(current) or ""))
            continue
        elif current.type == "attribute":
            attr = current.child_by_field_name("attribute")
            if attr is not None:
                names.append(_ts_text(attr))
            continue
        stack.extend(reversed(current.children))
    return names


class TreeSitterPythonExtractor(Extractor):
    """Error-tolerant Python extractor built on Tree-sitter."""

    languages = {"python"}

    def __init__(self) -> None:
        self._parser: Any = None
        self._init_parser()

    def _init_parser(self) -> None:
        try:
            import tree_sitter  # type: ignore[import-untyped]  # noqa: F401
            import tree_sitter_python  # type: ignore[import-untyped]
        except ImportError:
            logger.warning(
                "tree-sitter grammar for Python is not installed -- using the ast extractor. "
                "Install with: pip install tree-sitter tree-sitter-python"
            )
            return
        from tree_sitter import Language, Parser as TSParser  # type: ignore[import-untyped]

        try:
            self._parser = TSParser(Language(tree_sitter_python.language()))
        except Exception as exc:
            logger.warning("Could not load tree-sitter grammar for python: %s", exc)
            self._parser = None

    @property
    def available(self) -> bool:
        return self._parser is not None

    def extract(self, record: FileRecord, source: str) -> FileExtraction:
        facts = _PythonFacts(record, source)
        tree = self._parser.parse(source.encode("utf-8"))
        root = tree.root_node
        if root.has_error:
            line = self._first_error_line(root)
            facts.warnings.append(f"Parse error near line {line}; edges after it may be missing")
        for child in root.children:
            definition = child
            if child.type == "decorated_definition":
                definition = child.child_by_field_name("definition") or child
            if definition.type in ("class_definition", "function_definition"):
                name = definition.child_by_field_name("name")
                if name is not None:
                    facts.symbols.append(_ts_text(name))
        self._walk(root, facts, in_class=False)
        return facts.finish()

    @staticmethod
    def _first_error_line(root: Any) -> int:
        stack = [root]
        while stack:
            node = stack.pop()
            if node.type == "ERROR" or node.is_missing:
                return node.start_point[0] + 1
            stack.extend(reversed(node.children))
        return root.start_point[0] + 1

    def _walk(self, node: Any, facts: _PythonFacts, in_class: bool) -> None:
        kind = node.type
        line = node.start_point[0] + 1

        if kind == "import_statement":
            for sub in node.children:
                if sub.type == "dotted_name":
                    facts.add_import(_ts_text(sub), None, line)
                elif sub.type == "aliased_import":
                    name_n = sub.child_by_field_name("name")
                    alias_n = sub.child_by_field_name("alias")
                    if name_n is not None:
                        facts.add_import(_ts_text(name_n), _ts_text(alias_n) if alias_n is not None else None, line)
            return

        if kind == "import_from_statement":
            self._import_from(node, facts, line)
            return

        if kind == "decorated_definition":
            for sub in node.children:
                if sub.type == "decorator":
                    expr = next((c for c in sub.children if c.type != "@"), None)
                    name = _ts_dotted(expr)
                    if name:
                        facts.decorators.append((name, sub.start_point[0] + 1))

        if kind == "class_definition":
            name_n = node.child_by_field_name("name")
            if name_n is not None:
                facts.local_defs.add(_ts_text(name_n))
            supers = node.child_by_field_name("superclasses")
            if supers is not None:
                for arg in supers.children:
                    if arg.type == "subscript":
                        arg = arg.child_by_field_name("value")
                    name = _ts_dotted(arg) if arg is not None and arg.type in ("identifier", "attribute") else None
                    if name:
                        facts.bases.append((name, line))
            body = node.child_by_field_name("body")
            if body is not None:
                for stmt in body.children:
                    if stmt.type != "expression_statement":
                        continue
                    for expr in stmt.children:
                        if expr.type == "assignment" and expr.child_by_field_name("type") is not None:
                            facts.add_annotation_types(
                                _ts_type_names(expr.child_by_field_name("type")), expr.start_point[0] + 1,
                            )
                for child in body.children:
                    self._walk(child, facts, in_class=True)
            return

        if kind == "function_definition":
            name_n = node.child_by_field_name("name")
            name = _ts_text(name_n) if name_n is not None else ""
            facts.local_defs.add(name)
            if name == "__init__" and in_class:
                params = node.child_by_field_name("parameters")
                for param in params.children if params is not None else []:
                    if param.type in ("typed_parameter", "typed_default_parameter"):
                        facts.add_annotation_types(
                            _ts_type_names(param.child_by_field_name("type")), param.start_point[0] + 1,
                        )
            body = node.child_by_field_name("body")
            if body is not None:
                for child in body.children:
                    self._walk(child, facts, in_class=False)
            return

        if kind == "call":
            func = node.child_by_field_name("function")
            name = _ts_dotted(func) if func is not None and func.type != "call" else None
            args = node.child_by_field_name("arguments")
            first = next((c for c in args.children if c.type not in ("(", ")", ",")), None) if args is not None else None
            if name in _ENV_FUNCS and _ts_string(first):
                facts.configs.append((_ts_string(first), line))
            elif name:
                facts.calls.append((name, line))

        elif kind == "subscript":
            value = node.child_by_field_name("value")
            key = _ts_string(node.child_by_field_name("subscript"))
            if _ts_dotted(value) in _ENV_OBJECTS and key:
                facts.configs.append((key, line))

        elif kind == "attribute":
            obj = node.child_by_field_name("object")
            attr = node.child_by_field_name("attribute")
            if (
                obj is not None and attr is not None and obj.type == "identifier"
                and _ts_text(obj) in _SETTINGS_OBJECTS and _ts_text(attr).isupper()
            ):
                facts.configs.append((_ts_text(attr), line))

        for child in node.children:
            self._walk(child, facts, in_class=in_class)

    @staticmethod
    def _import_from(node: Any, facts: _PythonFacts, line: int) -> None:
        mod_node = node.child_by_field_name("module_name")
        level, module = 0, ""
        if mod_node is not None and mod_node.type == "relative_import":
            for sub in mod_node.children:
                if sub.type == "import_prefix":
                    level = _ts_text(sub).count(".")
                elif sub.type == "dotted_name":
                    module = _ts_text(sub)
        elif mod_node is not None:
            module = _ts_text(mod_node)
        names: List[Tuple[str, Optional[str]]] = []
        for sub in node.children_by_field_name("name"):
            if sub.type == "dotted_name":
                names.append((_ts_text(sub), None))
            elif sub.type == "aliased_import":
                name_n = sub.child_by_field_name("name")
                alias_n = sub.child_by_field_name("alias")
                if name_n is not None:
                    names.append((_ts_text(name_n), _ts_text(alias_n) if alias_n is not None else None))
        if any(sub.type == "wildcard_import" for sub in node.children):
            names.append(("*", None))
        facts.add_import_from(level, module, names, line)


class PythonExtractor(Extractor):
    """Selects **TreeSitterPythonExtractor** when the grammar is available,
    otherwise falls back to the built-in ``ast`` extractor.
    """

    languages = {"python"}

    def __init__(self) -> None:
        ts = TreeSitterPythonExtractor()
        if ts.available:
            self._delegate: Extractor = ts
            logger.debug("Using Tree-sitter extractor for Python")
        else:
            self._delegate = AstPythonExtractor()
            logger.debug("Using ast extractor for Python")

    def extract(self, record: FileRecord, source: str) -> FileExtraction:
        return self._delegate.extract(record, source)


# ===================================================================
# JVM languages (Java / Kotlin / Scala)
# ===================================================================

_COMMENT_RE = re.compile(r"//[^\n]*|/\*.*?\*/", re.DOTALL)


def strip_comments(text: str) -> str:
    """Blank out ``//`` and ``/* */`` comments, keeping line numbers intact."""
    return _COMMENT_RE.sub(lambda m: re.sub(r"[^\n]", " ", m.group(0)), text)


def _line_of(text: str, offset: int) -> int:
    return text.count("\n", 0, offset) + 1


def _strip_balanced(text: str, open_ch: str, close_ch: str) -> str:
    out: List[str] = []
    level = 0
    for ch in text:
        if ch == open_ch:
            level += 1
        elif ch == close_ch and level:
            level -= 1
        elif level == 0:
            out.append(ch)
    return "".join(out)


def _first_balanced(text: str, open_ch: str = "(", close_ch: str = ")") -> Optional[str]:
    start = text.find(open_ch)
    if start < 0:
        return None
    level = 0
    for i in range(start, len(text)):
        if text[i] == open_ch:
            level += 1
        elif text[i] == close_ch:
            level -= 1
            if level == 0:
                return text[start + 1:i]
    return None


def _split_top(text: str) -> List[str]:
    """Split on commas that are not nested inside ``<>``, ``()`` or ``[]``."""
    parts, level, current = [], 0, []
    for ch in text:
        if ch in "<([":
            level += 1
        elif ch in ">)]" and level:
            level -= 1
        if ch == "," and level == 0:
            parts.append("".join(current))
            current = []
        else:
            current.append(ch)
    if "".join(current).strip():
        parts.append("".join(current))
    return [p.strip() for p in parts if p.strip()]


_TYPE_TOKEN_RE = re.compile(r"[A-Z][\w]*(?:\.[A-Z][\w]*)*|[a-z][\w]*(?:\.[\w]+)+")


def _param_type(param: str) -> Optional[str]:
    """Type named by one parameter, e.g. ``@Qualifier("x") final Repo repo``."""
    param = re.sub(r"@\w+(?:\([^)]*\))?", " ", param)
    param = re.sub(r"\b(?:final|private|protected|public|readonly|val|var|override|implicit)\b", " ", param)
    if ":" in param:
        type_part = param.split(":", 1)[1]
    else:
        tokens = _strip_balanced(param, "<", ">").split()
        type_part = " ".join(tokens[:-1]) if len(tokens) > 1 else ""
    type_part = _strip_balanced(type_part.split("=", 1)[0], "<", ">").strip().rstrip("?")
    m = re.match(r"[A-Za-z_][\w.]*", type_part)
    if not m:
        return None
    name = m.group(0)
    return name if name.rsplit(".", 1)[-1][:1].isupper() else None


class _RegexFacts:
    """Accumulator for the regex-based extractors."""

    def __init__(self, record: FileRecord, text: str) -> None:
        self.record = record
        self.text = text
        self.lines = text.splitlines()
        self.refs: List[Reference] = []
        self.warnings: List[str] = []

    def ev(self, line: int) -> str:
        return evidence(self.record.path, line, line_at(self.lines, line))

    def add(self, name: str, kind: str, line: int, lookup: str, candidates: Tuple[str, ...]) -> None:
        self.refs.append(Reference(name, kind, CONFIDENCE[kind], self.ev(line), lookup, candidates))

    def annotation(self, name: str, line: int) -> None:
        kind = infra_kind(name)
        if kind:
            self.refs.append(Reference(
                f"infrastructure:{kind}", "annotation", CONFIDENCE["annotation"], self.ev(line), "external",
            ))

    def config(self, key: str, line: int) -> None:
        section = config_section(key)
        if section:
            self.add(f"config:{section}", "config-ref", line, "config", (section,))


class JvmExtractor(Extractor):
    """Regex scanner for Java, Kotlin and Scala sources."""

    languages = {"java", "kotlin", "scala"}

    PACKAGE_RE = re.compile(r"^\s*package\s+([\w.]+)", re.MULTILINE)
    IMPORT_RE = re.compile(
        r"^\s*import\s+(static\s+)?([\w.]+?)(\.\*|\._|\.\{[^}]*\})?(?:\s+as\s+\w+)?\s*;?\s*$"
    )
    DECL_RE = re.compile(
        r"\b(class|interface|enum|record|object|trait)\s+([A-Z]\w*)([^{;=]*)"
    )
    FIELD_INJECT_RE = re.compile(
        r"@(?:Autowired|Inject|Resource)\b(?:\([^)]*\))?\s+"
        r"(?:(?:private|protected|public|final|static|lateinit|internal)\s+)*"
        r"(?:(?:var|val)\s+\w+\s*:\s*([A-Z][\w.]*)|([A-Z][\w.]*)(?:<[^;]*?>)?\s+\w+)"
    )
    LOMBOK_FIELD_RE = re.compile(r"\bprivate\s+final\s+([A-Z][\w.]*)(?:<[^;]*?>)?\s+\w+\s*;")
    ANNOTATION_RE = re.compile(r"@([A-Z][\w.]*)")
    NEW_RE = re.compile(r"\bnew\s+([A-Z]\w*)\s*[(<]")
    STATIC_CALL_RE = re.compile(r"(?<![\w.])([A-Z]\w*)\s*\.\s*[a-z]\w*\s*\(")
    CONFIG_PREFIX_RE = re.compile(
        r"@ConfigurationProperties\s*\(\s*(?:(?:prefix|value)\s*=\s*)?\"([\w.\-]+)\""
    )
    PROPERTY_CALL_RE = re.compile(r"\b(?:getProperty|getenv|getRequiredProperty)\s*\(\s*\"([\w.\-]+)\"")
    CTOR_PREFIX_RE = re.compile(
        r"^\s*(?:(?:@\w+(?:\([^)]*\))?|private|protected|internal|public)\s*)*(?:constructor\s*)?"
    )
    SECONDARY_CTOR_RE = re.compile(r"\bconstructor\s*\(([^)]*)\)")

    def extract(self, record: FileRecord, source: str) -> FileExtraction:
        text = strip_comments(source)
        facts = _RegexFacts(record, text)
        pkg_m = self.PACKAGE_RE.search(text)
        package = pkg_m.group(1) if pkg_m else ""

        imports: Dict[str, str] = {}
        for lineno, line in enumerate(facts.lines, 1):
            if not re.match(r"^\s*import\b", line):
                continue
            m = self.IMPORT_RE.match(line)
            if not m:
                facts.warnings.append(f"Unrecognised import at line {lineno}")
                continue
            target, wildcard = m.group(2), m.group(3)
            if wildcard or (m.group(1) and target.count(".") >= 1):
                if m.group(1) and not wildcard:
                    # import static a.b.C.member -> a.b.C
                    target = target.rsplit(".", 1)[0]
                    facts.add(target, "import", lineno, "module", (target,))
                    imports[target.rsplit(".", 1)[-1]] = target
                else:
                    facts.add(target, "import", lineno, "package", (target,))
                continue
            facts.add(target, "import", lineno, "module", (target,))
            imports[target.rsplit(".", 1)[-1]] = target

        declared: List[str] = []
        for m in self.DECL_RE.finditer(text):
            name, header = m.group(2), m.group(3)
            declared.append(name)
            line = _line_of(text, m.start())
            head = self.CTOR_PREFIX_RE.sub("", header, count=1)
            params = _first_balanced(head) if head.startswith(("(", "<")) else None
            if params:
                for param in _split_top(params):
                    type_name = _param_type(param)
                    if type_name:
                        self._typed(facts, "injection", type_name, line, imports, package)
            for base in self._supertypes(_strip_balanced(header, "(", ")"), record.language):
                self._typed(facts, "inherits", base, line, imports, package)

        local = set(declared)
        for line, params in self._constructors(text, declared, record.language):
            for param in _split_top(params):
                type_name = _param_type(param)
                if type_name:
                    self._typed(facts, "injection", type_name, line, imports, package, skip=local)

        for m in self.FIELD_INJECT_RE.finditer(text):
            self._typed(facts, "injection", m.group(1) or m.group(2), _line_of(text, m.start()), imports, package, skip=local)
        if "@RequiredArgsConstructor" in text:
            for m in self.LOMBOK_FIELD_RE.finditer(text):
                self._typed(facts, "injection", m.group(1), _line_of(text, m.start()), imports, package, skip=local)

        for m in self.ANNOTATION_RE.finditer(text):
            facts.annotation(m.group(1), _line_of(text, m.start()))
        for m in PLACEHOLDER_RE.finditer(text):
            facts.config(m.group(1), _line_of(text, m.start()))
        for m in self.CONFIG_PREFIX_RE.finditer(text):
            line = _line_of(text, m.start())
            facts.add(f"config:{m.group(1)}", "config-ref", line, "config", (m.group(1),))
        for m in self.PROPERTY_CALL_RE.finditer(text):
            facts.config(m.group(1), _line_of(text, m.start()))

        for regex in (self.NEW_RE, self.STATIC_CALL_RE):
            for m in regex.finditer(text):
                name = m.group(1)
                if name in local or name in JVM_BUILTINS:
                    continue
                self._typed(facts, "call", name, _line_of(text, m.start()), imports, package)

        modules = [f"{package}.{n}" if package else n for n in declared]
        stem_module = f"{package}.{record.stem}" if package else record.stem
        if stem_module not in modules:
            modules.append(stem_module)
        return FileExtraction(
            path=record.path,
            modules=list(dict.fromkeys(modules)),
            packages=[package] if package else [],
            symbols=list(dict.fromkeys(declared)),
            references=facts.refs,
            warnings=facts.warnings,
        )

    @classmethod
    def _constructors(cls, text: str, declared: List[str], language: str) -> List[Tuple[int, str]]:
        """(line, parameter list) of every explicit constructor."""
        if language != "java":
            return [(_line_of(text, m.start()), m.group(1)) for m in cls.SECONDARY_CTOR_RE.finditer(text)]
        found: List[Tuple[int, str]] = []
        for name in declared:
            ctor_re = re.compile(
                r"(?:\b(?:public|protected|private)\s+|^\s*)" + re.escape(name)
                + r"\s*\(([^)]*)\)\s*(?:throws[^{]*)?\{",
                re.MULTILINE,
            )
            found.extend((_line_of(text, m.start()), m.group(1)) for m in ctor_re.finditer(text))
        return found

    @staticmethod
    def _supertypes(header: str, language: str) -> List[str]:
        header = _strip_balanced(header, "<", ">")
        found: List[str] = []
        if language == "kotlin":
            if ":" in header:
                for part in header.split(":", 1)[1].split(","):
                    part = part.split(" by ", 1)[0].strip()
                    m = re.match(r"[A-Za-z_][\w.]*", part)
                    if m:
                        found.append(m.group(0))
            return found
        for keyword in ("extends", "implements", "with"):
            for m in re.finditer(rf"\b{keyword}\s+([\w.\s,]+?)(?=\b(?:extends|implements|with|permits)\b|$)", header):
                for part in m.group(1).split(","):
                    part = part.strip()
                    if re.match(r"^[A-Za-z_][\w.]*$", part):
                        found.append(part)
        return found

    @staticmethod
    def _typed(
        facts: _RegexFacts,
        kind: str,
        type_name: str,
        line: int,
        imports: Dict[str, str],
        package: str,
        skip: Optional[Set[str]] = None,
    ) -> None:
        simple = type_name.rsplit(".", 1)[-1]
        if simple in JVM_BUILTINS or (skip and simple in skip):
            return
        if "." in type_name and type_name[:1].islower():
            facts.add(type_name, kind, line, "module", (type_name,))
        elif simple in imports:
            facts.add(simple, kind, line, "module", (imports[simple],))
        elif package:
            facts.add(simple, kind, line, "module", (f"{package}.{simple}",))
        else:
            facts.add(simple, kind, line, "symbol", (simple,))


# ===================================================================
# JavaScript / TypeScript
# ===================================================================

SCRIPT_EXTENSIONS = ("", ".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs",
                     "/index.ts", "/index.tsx", "/index.js", "/index.jsx")


class ScriptExtractor(Extractor):
    """Regex scanner for JavaScript and TypeScript modules."""

    languages = {"javascript", "typescript"}

    IMPORT_RE = re.compile(
        r"""\bimport\s+(?:type\s+)?(?:([^;'"]*?)\s+from\s+)?['"]([^'"]+)['"]""", re.DOTALL,
    )
    EXPORT_FROM_RE = re.compile(r"""\bexport\s+[^;'"]*?\s+from\s+['"]([^'"]+)['"]""", re.DOTALL)
    REQUIRE_RE = re.compile(r"""\b(?:require|import)\s*\(\s*['"]([^'"]+)['"]\s*\)""")
    REQUIRE_BIND_RE = re.compile(
        r"""\b(?:const|let|var)\s+(\{[^}]*\}|[\w$]+)\s*=\s*require\s*\(\s*['"]([^'"]+)['"]\s*\)"""
    )
    CLASS_RE = re.compile(
        r"\bclass\s+([A-Z][\w$]*)\s*(?:<[^{]*?>)?\s*(?:extends\s+([\w$.]+)(?:<[^{]*?>)?)?\s*"
        r"(?:implements\s+([\w$.,\s<>]+?))?\s*\{"
    )
    INTERFACE_RE = re.compile(r"\binterface\s+([A-Z][\w$]*)\s*(?:<[^{]*?>)?\s*(?:extends\s+([\w$.,\s<>]+?))?\s*\{")
    EXPORT_RE = re.compile(
        r"\bexport\s+(?:default\s+)?(?:abstract\s+)?(?:async\s+)?"
        r"(?:class|function\*?|const|let|var|interface|type|enum)\s+([A-Za-z_$][\w$]*)"
    )
    DECL_RE = re.compile(r"\b(?:class|function\*?)\s+([A-Za-z_$][\w$]*)")
    CTOR_RE = re.compile(r"\bconstructor\s*\(([^)]*)\)")
    DECORATOR_RE = re.compile(r"@([A-Z]\w*)\s*\(")
    NEW_RE = re.compile(r"\bnew\s+([A-Z][\w$]*)\s*[(<]")
    STATIC_CALL_RE = re.compile(r"(?<![\w$.])([A-Z][\w$]*)\s*\.\s*[a-z][\w$]*\s*\(")
    ENV_RE = re.compile(r"""process\.env(?:\.([A-Za-z_][\w]*)|\[\s*['"]([^'"]+)['"]\s*\])""")
    CONFIG_GET_RE = re.compile(r"""\bconfig(?:Service)?\s*\.\s*get(?:<[^>]*>)?\s*\(\s*['"]([\w.\-]+)['"]""")

    def extract(self, record: FileRecord, source: str) -> FileExtraction:
        text = strip_comments(source)
        facts = _RegexFacts(record, text)
        bound: Dict[str, Tuple[str, Tuple[str, ...]]] = {}

        def _import(spec: str, clause: Optional[str], offset: int) -> None:
            lookup, candidates = self._spec_candidates(record.path, spec)
            facts.add(spec, "import", _line_of(text, offset), lookup, candidates)
            for name in self._bound_names(clause or ""):
                bound[name] = (lookup, candidates)

        for m in self.IMPORT_RE.finditer(text):
            _import(m.group(2), m.group(1), m.start())
        for m in self.EXPORT_FROM_RE.finditer(text):
            _import(m.group(1), None, m.start())
        for m in self.REQUIRE_BIND_RE.finditer(text):
            lookup, candidates = self._spec_candidates(record.path, m.group(2))
            for name in self._bound_names(m.group(1)):
                bound[name] = (lookup, candidates)
        for m in self.REQUIRE_RE.finditer(text):
            _import(m.group(1), None, m.start())

        declared = [m.group(1) for m in self.DECL_RE.finditer(text)]
        local = set(declared)

        def _typed(kind: str, name: str, offset: int) -> None:
            simple = name.split(".")[0] if name.split(".")[0] in bound else name.rsplit(".", 1)[-1]
            if simple in SCRIPT_BUILTINS or (kind != "inherits" and simple in local):
                return
            line = _line_of(text, offset)
            if simple in bound:
                lookup, candidates = bound[simple]
                facts.add(simple, kind, line, lookup, candidates)
            else:
                facts.add(simple, kind, line, "symbol", (simple,))

        for m in self.CLASS_RE.finditer(text):
            if m.group(2):
                _typed("inherits", m.group(2), m.start())
            for iface in _split_top(_strip_balanced(m.group(3) or "", "<", ">")):
                _typed("inherits", iface, m.start())
        for m in self.INTERFACE_RE.finditer(text):
            for iface in _split_top(_strip_balanced(m.group(2) or "", "<", ">")):
                _typed("inherits", iface, m.start())
        for m in self.CTOR_RE.finditer(text):
            for param in _split_top(m.group(1)):
                if ":" not in param:
                    continue
                type_name = _param_type(param)
                if type_name:
                    _typed("injection", type_name, m.start())
        for m in self.DECORATOR_RE.finditer(text):
            facts.annotation(m.group(1), _line_of(text, m.start()))
        for m in self.ENV_RE.finditer(text):
            facts.config(m.group(1) or m.group(2), _line_of(text, m.start()))
        for m in self.CONFIG_GET_RE.finditer(text):
            key = m.group(1)
            section = key.split(".")[0] if "." in key else key
            facts.add(f"config:{section}", "config-ref", _line_of(text, m.start()), "config", (section,))
        for regex in (self.NEW_RE, self.STATIC_CALL_RE):
            for m in regex.finditer(text):
                _typed("call", m.group(1), m.start())

        exported = [m.group(1) for m in self.EXPORT_RE.finditer(text)]
        return FileExtraction(
            path=record.path,
            modules=[],
            symbols=list(dict.fromkeys(exported + declared)),
            references=facts.refs,
            warnings=facts.warnings,
        )

    @staticmethod
    def _spec_candidates(path: str, spec: str) -> Tuple[str, Tuple[str, ...]]:
        if spec.startswith("."):
            base = posixpath.normpath(posixpath.join(posixpath.dirname(path), spec))
        elif spec.startswith(("@/", "~/")):
            base = posixpath.normpath("src/" + spec[2:])
        else:
            return "module", (spec,)
        if base.startswith(".."):
            return "module", (spec,)
        return "path", tuple(base + ext for ext in SCRIPT_EXTENSIONS)

    @staticmethod
    def _bound_names(clause: str) -> List[str]:
        clause = clause.strip()
        if not clause:
            return []
        names: List[str] = []
        braces = re.search(r"\{([^}]*)\}", clause)
        if braces:
            for part in braces.group(1).split(","):
                part = part.strip()
                if not part:
                    continue
                pieces = re.split(r"\s+as\s+|\s*:\s*", part)
                names.append(pieces[-1].strip().replace("type ", ""))
            clause = clause[: braces.start()] + clause[braces.end():]
        star = re.search(r"\*\s+as\s+([\w$]+)", clause)
        if star:
            names.append(star.group(1))
            clause = clause[: star.start()] + clause[star.end():]
        for part in clause.split(","):
            part = part.strip()
            if re.match(r"^[A-Za-z_$][\w$]*$", part):
                names.append(part)
        return [n for n in names if n]


# ===================================================================
# Configuration files
# ===================================================================

class ConfigExtractor(Extractor):
    """Records the top-level sections a configuration file defines."""

    languages = {"yaml", "toml", "json", "properties", "ini", "xml"}

    def extract(self, record: FileRecord, source: str) -> FileExtraction:
        result = FileExtraction(path=record.path)
        loader: Optional[Callable[[str], List[str]]] = {
            "yaml": self._yaml_sections,
            "toml": lambda s: list(toml.loads(s).keys()),
            "json": self._json_sections,
            "properties": self._properties_sections,
            "ini": self._ini_sections,
        }.get(record.language)
        if loader is None:
            return result
        try:
            sections = loader(source)
        except (yaml.YAMLError, toml.TomlDecodeError, json.JSONDecodeError, configparser.Error) as exc:
            result.warnings.append(f"Could not parse {record.language}: {str(exc).splitlines()[0]}")
            return result
        result.config_sections = sorted({str(s) for s in sections})
        return result

    @staticmethod
    def _yaml_sections(source: str) -> List[str]:
        sections: List[str] = []
        for doc in yaml.safe_load_all(source):
            if isinstance(doc, dict):
                sections.extend(str(k) for k in doc.keys())
        return sections

    @staticmethod
    def _json_sections(source: str) -> List[str]:
        payload = json.loads(source) if source.strip() else {}
        return list(payload.keys()) if isinstance(payload, dict) else []

    @staticmethod
    def _properties_sections(source: str) -> List[str]:
        sections: List[str] = []
        for line in source.splitlines():
            line = line.strip()
            if not line or line.startswith(("#", "!")):
                continue
            key = re.split(r"\s*[=:]\s*|\s+", line, maxsplit=1)[0]
            if key:
                sections.append(key.split(".")[0])
        return sections

    @staticmethod
    def _ini_sections(source: str) -> List[str]:
        parser = configparser.ConfigParser(interpolation=None, strict=False)
        parser.read_string(source)
        return parser.sections()


# ===================================================================
# Dispatcher
# ===================================================================

def default_extractors() -> List[Extractor]:
    return [PythonExtractor(), JvmExtractor(), ScriptExtractor(), ConfigExtractor()]


class EdgeExtractor:
    """Runs the per-language extractors over a file set in a worker pool.

    Extraction is best-effort: a failure inside one extractor becomes a
    warning on that file and never aborts the run.
    """

    def __init__(
        self,
        extractors: Optional[List[Extractor]] = None,
        workers: int = DEFAULT_WORKERS,
    ) -> None:
        self.extractors = extractors if extractors is not None else default_extractors()
        self.workers = max(1, workers)

    def extractor_for(self, language: str) -> Optional[Extractor]:
        for extractor in self.extractors:
            if extractor.supports_language(language):
                return extractor
        return None

    def extract_file(self, record: FileRecord, source: str) -> FileExtraction:
        extractor = self.extractor_for(record.language)
        if extractor is None:
            return FileExtraction(path=record.path)
        try:
            return extractor.extract(record, source)
        except (ValueError, TypeError, AttributeError, IndexError, KeyError, RecursionError) as exc:
            logger.warning("Extraction failed for %s: %s", record.path, exc)
            return FileExtraction(path=record.path, warnings=[f"Extraction failed: {exc}"])

    def extract_all(
        self,
        items: Sequence[Tuple[FileRecord, Callable[[], str]]],
        should_stop: Optional[Callable[[], bool]] = None,
    ) -> List[Optional[FileExtraction]]:
        """Extract every ``(record, load_source)`` pair, preserving order.

        Entries are ``None`` for files skipped because *should_stop* became
        true before they were processed.
        """

        def _work(item: Tuple[FileRecord, Callable[[], str]]) -> Optional[FileExtraction]:
            if should_stop is not None and should_stop():
                return None
            record, load = item
            try:
                source = load()
            except OSError as exc:
                return FileExtraction(path=record.path, warnings=[f"Could not read source: {exc}"])
            return self.extract_file(record, source)

        with ThreadPoolExecutor(max_workers=self.workers) as pool:
            return list(pool.map(_work, items))
