"""Tests for anchor resolution and the ambiguity policy."""

import pytest

from scopegraph.errors import AnchorNotFoundError
from scopegraph.orchestrator import ScopeOrchestrator
from scopegraph.resolver import AnchorResolver, bounded_distance, normalise


def _resolve(root, query, settings):
    orchestrator = ScopeOrchestrator(root, settings=settings)
    return orchestrator.resolve(orchestrator.parse(query))


def test_normalise():
    """Case, separators and dots are dropped."""
    assert normalise("Order_Service.py") == "orderservicepy"


def test_bounded_distance():
    """Edit distance is capped at limit + 1."""
    assert bounded_distance("kitten", "sitting", 3) == 3
    assert bounded_distance("abc", "abcdef", 1) == 2
    assert bounded_distance("same", "same", 1) == 0


class TestExactMatches:
    def test_exact_path(self, chain_tree, no_cache_settings):
        """An exact path scores 1.0."""
        resolution = _resolve(chain_tree, "x.py", no_cache_settings)
        assert resolution.paths == ["x.py"]
        anchor = resolution.anchors[0]
        assert anchor.match_method == "exact-path"
        assert anchor.match_confidence == 1.0
        assert resolution.warnings == []

    def test_exact_file_name(self, sample_orchestrator):
        """A service name matches its snake_case file name at 0.95."""
        resolution = sample_orchestrator.resolve(sample_orchestrator.parse("OrderService"))
        assert resolution.paths == ["app/services/order_service.py"]
        assert resolution.anchors[0].match_method == "exact-name"
        assert resolution.anchors[0].match_confidence == 0.95
        assert not resolution.ambiguous
        assert resolution.warnings == []

    def test_exact_symbol_name(self, make_tree, no_cache_settings):
        """A class name matches the file that defines it."""
        root = make_tree({
            "core/handlers.py": "class RefundHandler:\n    pass\n",
            "core/models.py": "class Refund:\n    pass\n",
        })
        resolution = _resolve(root, "RefundHandler", no_cache_settings)
        assert resolution.paths == ["core/handlers.py"]
        assert resolution.anchors[0].matched == "RefundHandler"
        assert resolution.anchors[0].match_method == "exact-name"

    def test_java_class_name(self, sample_orchestrator):
        """A Java class name matches its source file."""
        resolution = sample_orchestrator.resolve(sample_orchestrator.parse("BillingService"))
        assert resolution.paths == ["billing/src/main/java/com/shop/billing/BillingService.java"]


class TestAmbiguity:
    def test_equal_scores_yield_every_anchor(self, make_tree, no_cache_settings):
        """Tied candidates all become anchors, with a warning."""
        root = make_tree({"a/user.py": "", "b/user.py": ""})
        resolution = _resolve(root, "user.py", no_cache_settings)

        assert resolution.paths == ["a/user.py", "b/user.py"]
        assert resolution.ambiguous
        assert [w.kind for w in resolution.warnings] == ["AmbiguousAnchorWarning"]
        assert "a/user.py" in resolution.warnings[0].message

    def test_low_confidence_match_warns(self, make_tree, no_cache_settings):
        """A fuzzy match below 0.9 warns."""
        root = make_tree({"invoice.py": "", "other.py": ""})
        resolution = _resolve(root, "Invoce", no_cache_settings)

        assert resolution.paths == ["invoice.py"]
        anchor = resolution.anchors[0]
        assert anchor.match_method == "fuzzy-name"
        assert anchor.match_confidence == pytest.approx(0.7714)
        assert [w.kind for w in resolution.warnings] == ["LowConfidenceAnchorWarning"]
        assert resolution.warnings[0].path == "invoice.py"

    def test_concept_keywords(self, make_tree, no_cache_settings):
        """Keywords match symbol tokens as a concept."""
        root = make_tree({
            "billing/retry_backoff.py": "def apply_logic():\n    pass\n",
            "billing/other.py": "",
        })
        resolution = _resolve(root, "retry backoff logic", no_cache_settings)

        assert resolution.paths == ["billing/retry_backoff.py"]
        assert resolution.anchors[0].match_method == "concept-keyword"


class TestNotFound:
    def test_unknown_name_raises(self, chain_tree, no_cache_settings):
        """Nothing above the floor raises AnchorNotFoundError."""
        with pytest.raises(AnchorNotFoundError) as exc_info:
            _resolve(chain_tree, "Foo", no_cache_settings)
        assert exc_info.value.hint == "Foo"
        assert "Foo" in str(exc_info.value)

    def test_suggestions(self, make_tree, no_cache_settings):
        """Suggestions come from close symbol names."""
        root = make_tree({"payments/gateway.py": "class PaymentGateway:\n    pass\n"})
        orchestrator = ScopeOrchestrator(root, settings=no_cache_settings)
        suggestions = AnchorResolver(orchestrator.graph).suggestions("PaymentGatewy")
        assert suggestions[0] == "PaymentGateway"

    def test_error_lists_suggestions(self, make_tree, no_cache_settings):
        """The error message carries the suggestions."""
        root = make_tree({"ledger.py": ""})
        with pytest.raises(AnchorNotFoundError) as exc_info:
            _resolve(root, "Ledgerbook", no_cache_settings)
        assert exc_info.value.suggestions == ["ledger", "ledger.py"]
        assert "did you mean" in str(exc_info.value)
