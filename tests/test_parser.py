"""Tests for the per-language dependency extractors."""

from pathlib import Path
from typing import List

import pytest

from scopegraph.models import FileExtraction, FileRecord
from scopegraph.parser import (
    AstPythonExtractor,
    ConfigExtractor,
    EdgeExtractor,
    Extractor,
    JvmExtractor,
    ScriptExtractor,
    TreeSitterPythonExtractor,
    config_section,
    infra_kind,
    python_module_name,
)


def _record(path: str, language: str, source: str = "") -> FileRecord:
    return FileRecord(path=path, content_hash="00000000", size=len(source), language=language)


def _names(extraction: FileExtraction, kind: str) -> List[str]:
    return [ref.name for ref in extraction.references if ref.kind == kind]


def _python_backends():
    backends = [pytest.param(AstPythonExtractor, id="ast")]
    backends.append(pytest.param(
        TreeSitterPythonExtractor,
        id="tree-sitter",
        marks=pytest.mark.skipif(
            not TreeSitterPythonExtractor().available, reason="tree-sitter-python not installed",
        ),
    ))
    return backends


PYTHON_SOURCE = '''\
import os
from typing import Optional

from app.models import Order
from .repo import OrderRepository
from celery import shared_task


class OrderService(BaseService):
    def __init__(self, repository: OrderRepository, notifier: Optional["Notifier"] = None):
        self.repository = repository
        self.queue = os.environ["ORDER_QUEUE"]

    def place(self):
        order = Order()
        return self.repository.save(order)


@shared_task
def nightly():
    return os.getenv("REPORT_DAY")
'''


class TestHelpers:
    def test_infra_kind_uses_last_segment(self):
        """Annotation names map to infrastructure kinds by their last segment."""
        assert infra_kind("org.springframework.scheduling.annotation.Scheduled") == "scheduling"
        assert infra_kind("shared_task") == "scheduling"
        assert infra_kind("Transactional") == "transaction"
        assert infra_kind("KafkaListener") == "event"
        assert infra_kind("Override") is None

    def test_config_section(self):
        """Config keys reduce to their section."""
        assert config_section("app.mail.host") == "app.mail"
        assert config_section("${billing.cron}") == "billing"
        assert config_section("billing.cron:0 0 * * *") == "billing"
        assert config_section("PORT") == "PORT"

    def test_python_module_name(self):
        """File paths become dotted module names."""
        assert python_module_name("pkg/sub/mod.py") == "pkg.sub.mod"
        assert python_module_name("pkg/__init__.py") == "pkg"


@pytest.mark.parametrize("backend", _python_backends())
class TestPythonExtraction:
    """Both Python backends must agree on the signals they report."""

    def _extract(self, backend, source: str = PYTHON_SOURCE) -> FileExtraction:
        path = "app/services/order_service.py"
        return backend().extract(_record(path, "python", source), source)

    def test_imports(self, backend):
        """Every import statement is reported."""
        extraction = self._extract(backend)
        assert set(_names(extraction, "import")) == {"os", "typing", "app.models", "app.services.repo", "celery"}

    def test_relative_import_candidates(self, backend):
        """Relative imports resolve against the file's package."""
        extraction = self._extract(backend)
        ref = next(r for r in extraction.references if r.kind == "import" and r.name == "app.services.repo")
        assert ref.candidates == ("app.services.repo.OrderRepository", "app.services.repo")
        assert ref.lookup == "module"
        assert ref.confidence == 1.0

    def test_constructor_injection(self, backend):
        """Typed constructor parameters are injections; typing helpers are not."""
        injections = _names(self._extract(backend), "injection")
        assert "OrderRepository" in injections
        assert "Notifier" in injections
        assert "Optional" not in injections

    def test_injection_resolves_through_from_import(self, backend):
        """Injected types resolve through the imported module."""
        extraction = self._extract(backend)
        ref = next(r for r in extraction.references if r.kind == "injection" and r.name == "OrderRepository")
        assert ref.lookup == "module"
        assert ref.candidates[0] == "app.services.repo.OrderRepository"
        assert ref.confidence == 0.9

    def test_inherits(self, backend):
        """Base classes are reported as inherits."""
        assert _names(self._extract(backend), "inherits") == ["BaseService"]

    def test_decorator_becomes_infrastructure(self, backend):
        """A task decorator becomes a scheduling infrastructure ref."""
        extraction = self._extract(backend)
        refs = [r for r in extraction.references if r.kind == "annotation"]
        assert [r.name for r in refs] == ["infrastructure:scheduling"]
        assert refs[0].lookup == "external"
        assert refs[0].confidence == 0.8

    def test_config_references(self, backend):
        """Env reads and settings constants are config refs."""
        assert set(_names(self._extract(backend), "config-ref")) == {"config:ORDER_QUEUE", "config:REPORT_DAY"}

    def test_calls_skip_self_and_builtins(self, backend):
        """Only calls to imported names are kept."""
        extraction = self._extract(backend)
        calls = [r for r in extraction.references if r.kind == "call"]
        assert [r.name for r in calls] == ["Order"]
        assert calls[0].candidates == ("app.models.Order", "app.models")
        assert calls[0].confidence == 0.6

    def test_symbols_and_module(self, backend):
        """Top-level symbols and the module name are recorded."""
        extraction = self._extract(backend)
        assert extraction.symbols == ["OrderService", "nightly"]
        assert extraction.modules == ["app.services.order_service"]
        assert extraction.warnings == []

    def test_evidence_points_at_line(self, backend):
        """Evidence is path, line number and source text."""
        extraction = self._extract(backend)
        ref = next(r for r in extraction.references if r.kind == "import" and r.name == "celery")
        assert ref.evidence == "app/services/order_service.py:6: from celery import shared_task"

    def test_syntax_error_is_a_warning_not_a_failure(self, backend):
        """Broken source still yields its imports plus a warning."""
        source = "import os\n\ndef broken(:\n    pass\n"
        extraction = self._extract(backend, source)
        assert extraction.warnings
        assert "os" in _names(extraction, "import")

    def test_settings_attribute_is_config(self, backend):
        """settings.X attribute reads are config refs."""
        source = "from django.conf import settings\n\nTIMEOUT = settings.PAYMENT_TIMEOUT\n"
        extraction = self._extract(backend, source)
        assert "config:PAYMENT_TIMEOUT" in _names(extraction, "config-ref")


class TestJvmExtraction:
    def test_java_service(self, sample_project_path: Path):
        """Java imports, injections and annotations are extracted."""
        rel = "billing/src/main/java/com/shop/billing/BillingService.java"
        source = (sample_project_path / rel).read_text(encoding="utf-8")
        extraction = JvmExtractor().extract(_record(rel, "java", source), source)

        assert extraction.packages == ["com.shop.billing"]
        assert extraction.modules == ["com.shop.billing.BillingService"]
        assert extraction.symbols == ["BillingService"]

        injection = next(r for r in extraction.references if r.kind == "injection")
        assert injection.name == "InvoiceRepository"
        assert injection.candidates == ("com.shop.billing.InvoiceRepository",)

        assert "com.shop.billing.model.Invoice" in _names(extraction, "import")
        call = next(r for r in extraction.references if r.kind == "call")
        assert call.candidates == ("com.shop.billing.model.Invoice",)

        assert set(_names(extraction, "annotation")) == {"infrastructure:scheduling", "infrastructure:transaction"}
        assert _names(extraction, "config-ref") == ["config:billing"]

    def test_java_interface_inherits(self, sample_project_path: Path):
        """An extended interface is an inherits ref."""
        rel = "billing/src/main/java/com/shop/billing/InvoiceRepository.java"
        source = (sample_project_path / rel).read_text(encoding="utf-8")
        extraction = JvmExtractor().extract(_record(rel, "java", source), source)

        inherits = [r for r in extraction.references if r.kind == "inherits"]
        assert [r.name for r in inherits] == ["JpaRepository"]
        assert inherits[0].candidates == ("org.springframework.data.jpa.repository.JpaRepository",)

    def test_comments_are_ignored(self):
        """Imports inside comments are not reported."""
        source = (
            "package a;\n"
            "// import b.Hidden;\n"
            "/* new Ghost() */\n"
            "public class Visible {}\n"
        )
        extraction = JvmExtractor().extract(_record("a/Visible.java", "java", source), source)
        assert extraction.references == []

    def test_kotlin_primary_constructor(self):
        """Kotlin primary constructor parameters are injections."""
        source = (
            "package com.shop\n"
            "\n"
            "class OrderController @Inject constructor(private val service: OrderService) : BaseController() {\n"
            "}\n"
        )
        extraction = JvmExtractor().extract(_record("com/shop/OrderController.kt", "kotlin", source), source)

        assert "OrderService" in _names(extraction, "injection")
        assert _names(extraction, "inherits") == ["BaseController"]

    def test_field_injection(self):
        """An @Autowired field is an injection."""
        source = (
            "package com.shop;\n"
            "public class Checkout {\n"
            "    @Autowired\n"
            "    private PaymentGateway gateway;\n"
            "}\n"
        )
        extraction = JvmExtractor().extract(_record("com/shop/Checkout.java", "java", source), source)
        assert _names(extraction, "injection") == ["PaymentGateway"]

    def test_wildcard_import_is_package_lookup(self):
        """A wildcard import looks up the package."""
        source = "package a;\nimport com.shop.model.*;\nclass A {}\n"
        extraction = JvmExtractor().extract(_record("a/A.java", "java", source), source)
        ref = next(r for r in extraction.references if r.kind == "import")
        assert ref.lookup == "package"
        assert ref.candidates == ("com.shop.model",)


class TestScriptExtraction:
    def test_relative_import_and_injection(self, sample_project_path: Path):
        """TS relative imports resolve to files; constructor params are injections."""
        source = (sample_project_path / "web/src/api.ts").read_text(encoding="utf-8")
        extraction = ScriptExtractor().extract(_record("web/src/api.ts", "typescript", source), source)

        imports = [r for r in extraction.references if r.kind == "import"]
        assert [r.name for r in imports] == ["./orderClient", "axios"]
        assert imports[0].lookup == "path"
        assert "web/src/orderClient.ts" in imports[0].candidates
        assert imports[1].lookup == "module"

        injection = next(r for r in extraction.references if r.kind == "injection")
        assert injection.name == "OrderClient"
        assert injection.lookup == "path"
        assert extraction.symbols == ["Api"]

    def test_env_access_is_config(self, sample_project_path: Path):
        """process.env reads are config refs."""
        source = (sample_project_path / "web/src/orderClient.ts").read_text(encoding="utf-8")
        extraction = ScriptExtractor().extract(_record("web/src/orderClient.ts", "typescript", source), source)

        assert _names(extraction, "config-ref") == ["config:API_URL"]
        assert extraction.symbols == ["OrderClient"]

    def test_require_and_extends(self):
        """require() is an import and extends is inherits."""
        source = (
            "const { Base } = require('./base');\n"
            "class Widget extends Base {\n"
            "  render() { return Helpers.format(this); }\n"
            "}\n"
            "module.exports = Widget;\n"
        )
        extraction = ScriptExtractor().extract(_record("ui/widget.js", "javascript", source), source)

        inherits = next(r for r in extraction.references if r.kind == "inherits")
        assert inherits.name == "Base"
        assert inherits.lookup == "path"
        assert inherits.candidates[1] == "ui/base.ts"
        assert _names(extraction, "call") == ["Helpers"]

    def test_escaping_relative_import_stays_a_module(self):
        """A relative import above the root stays a module lookup."""
        source = "import x from '../../outside';\n"
        extraction = ScriptExtractor().extract(_record("a.ts", "typescript", source), source)
        assert extraction.references[0].lookup == "module"


class TestConfigExtraction:
    @pytest.mark.parametrize("path,language,source,expected", [
        ("application.yml", "yaml", "billing:\n  cron: x\norders:\n  queue: q\n", ["billing", "orders"]),
        ("multi.yaml", "yaml", "a: 1\n---\nb: 2\n", ["a", "b"]),
        ("pyproject.toml", "toml", "[tool]\nx = 1\n[project]\nname = 'n'\n", ["project", "tool"]),
        ("settings.json", "json", '{"db": {}, "cache": 1}', ["cache", "db"]),
        ("app.properties", "properties", "# c\nserver.port=8080\nspring.datasource.url = x\n", ["server", "spring"]),
        ("setup.cfg", "ini", "[metadata]\nname = x\n[options]\n", ["metadata", "options"]),
    ])
    def test_sections(self, path, language, source, expected):
        """Each config format reports its top-level sections."""
        extraction = ConfigExtractor().extract(_record(path, language, source), source)
        assert extraction.config_sections == expected
        assert extraction.references == []

    def test_malformed_yaml_is_a_warning(self):
        """Unparseable YAML becomes a warning."""
        source = "a: [1, 2\n"
        extraction = ConfigExtractor().extract(_record("bad.yml", "yaml", source), source)
        assert extraction.config_sections == []
        assert extraction.warnings[0].startswith("Could not parse yaml")


class _Exploding(Extractor):
    languages = {"python"}

    def extract(self, record, source):
        raise ValueError("boom")


class TestEdgeExtractor:
    def test_unknown_language_yields_empty_extraction(self):
        """Files with no extractor produce an empty extraction."""
        extraction = EdgeExtractor().extract_file(_record("schema.xml", "xml"), "<a/>")
        assert extraction == FileExtraction(path="schema.xml")

    def test_extractor_failure_becomes_warning(self):
        """An exception inside an extractor is recorded as a warning."""
        extraction = EdgeExtractor([_Exploding()]).extract_file(_record("a.py", "python"), "x = 1\n")
        assert extraction.references == []
        assert extraction.warnings == ["Extraction failed: boom"]

    def test_extract_all_preserves_order(self):
        """Pooled extraction returns results in input order."""
        items = [
            (_record(f"m{i}.py", "python"), (lambda i=i: f"import dep{i}\n"))
            for i in range(6)
        ]
        results = EdgeExtractor(workers=3).extract_all(items)
        assert [r.path for r in results] == [f"m{i}.py" for i in range(6)]
        assert [_names(r, "import") for r in results] == [[f"dep{i}"] for i in range(6)]

    def test_unreadable_source_becomes_warning(self):
        """A loader OSError becomes a warning."""
        def _load():
            raise OSError("gone")

        [result] = EdgeExtractor().extract_all([(_record("a.py", "python"), _load)])
        assert result.warnings and result.warnings[0].startswith("Could not read source")

    def test_stop_skips_remaining_files(self):
        """should_stop halts the remaining work."""
        items = [(_record("a.py", "python"), lambda: "")]
        assert EdgeExtractor().extract_all(items, should_stop=lambda: True) == [None]
