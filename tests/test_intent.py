"""Tests for the rule-based query classifier."""

import pytest

from scopegraph.errors import QueryError
from scopegraph.intent import IntentParser, split_identifier


@pytest.fixture
def parser() -> IntentParser:
    return IntentParser(depth_down=2, depth_up=1)


def test_split_identifier():
    """CamelCase and snake_case split into lower-case words."""
    assert split_identifier("PaymentService") == ["payment", "service"]
    assert split_identifier("payment_service") == ["payment", "service"]
    assert split_identifier("HTTPClient") == ["http", "client"]


class TestAnchor:
    def test_file_path(self, parser):
        """A path with a known extension is a file anchor."""
        intent = parser.parse("src/billing/invoice.py and its dependencies")
        assert intent.anchor_hint == "src/billing/invoice.py"
        assert intent.anchor_kind == "file"
        assert intent.keywords == ["invoice"]

    def test_slash_between_stopwords_is_not_a_path(self, parser):
        """The "and/or" in prose is not a file reference."""
        intent = parser.parse("callers and/or users of OrderService")
        assert intent.anchor_hint == "OrderService"
        assert intent.anchor_kind == "service"

    def test_extensionless_directory_path(self, parser):
        """A slash path whose last segment is a real name still anchors on the path."""
        intent = parser.parse("src/billing and its dependencies")
        assert intent.anchor_hint == "src/billing"

    def test_service_name(self, parser):
        """A *Service identifier is a service anchor."""
        intent = parser.parse("PaymentService and its dependencies")
        assert intent.anchor_hint == "PaymentService"
        assert intent.anchor_kind == "service"
        assert intent.keywords == ["payment", "service"]

    def test_service_word_with_neighbour(self, parser):
        """A capitalised word before service becomes PaymentService."""
        intent = parser.parse("the Payment service")
        assert intent.anchor_hint == "PaymentService"
        assert intent.anchor_kind == "service"

    def test_entity(self, parser):
        """A name before an entity word is an entity anchor."""
        intent = parser.parse("everything that touches the Invoice table")
        assert intent.anchor_hint == "Invoice"
        assert intent.anchor_kind == "entity"

    def test_single_name(self, parser):
        """A lone identifier is a name anchor."""
        intent = parser.parse("Foo")
        assert intent.anchor_hint == "Foo"
        assert intent.anchor_kind == "name"

    def test_concept(self, parser):
        """Plain words fall back to a concept anchor."""
        intent = parser.parse("retry backoff logic")
        assert intent.anchor_kind == "concept"
        assert intent.keywords == ["retry", "backoff", "logic"]

    @pytest.mark.parametrize("query", ["", "   ", "show me everything", "what uses it"])
    def test_no_anchor_is_a_query_error(self, parser, query):
        """Queries without an anchor raise QueryError."""
        with pytest.raises(QueryError):
            parser.parse(query)


class TestDirection:
    @pytest.mark.parametrize("query,direction", [
        ("x.py and its dependencies", "downstream"),
        ("what does x.py depend on", "downstream"),
        ("everything that calls x.py", "upstream"),
        ("callers of x.py", "upstream"),
        ("x.py and everything that depends on it", "upstream"),
        ("files related to x.py", "lateral"),
        ("x.py", "both"),
    ])
    def test_cues(self, parser, query, direction):
        """Direction cues set the traversal direction."""
        assert parser.parse(query).direction == direction

    def test_lateral_only_for_both_and_lateral(self, parser):
        """The lateral pass is on only for both and lateral."""
        assert parser.parse("x.py").include_lateral is True
        assert parser.parse("files related to x.py").include_lateral is True
        assert parser.parse("x.py and its dependencies").include_lateral is False


class TestDepth:
    def test_defaults(self, parser):
        """Without cues the configured depths apply."""
        intent = parser.parse("x.py")
        assert (intent.depth_down, intent.depth_up) == (2, 1)

    def test_everything_that_calls_keeps_default_upstream_depth(self, parser):
        """Everything that calls X keeps the default upstream depth."""
        intent = parser.parse("everything that calls x.py")
        assert intent.depth_up == 1

    def test_just(self, parser):
        """The word just limits both depths to zero."""
        intent = parser.parse("just x.py, nothing else")
        assert intent.anchor_hint == "x.py"
        assert (intent.depth_down, intent.depth_up) == (0, 0)
        assert intent.include_lateral is False

    @pytest.mark.parametrize("query", [
        "x.py and all its dependencies",
        "x.py and its transitive dependencies",
        "x.py and ALL dependencies",
        "x.py and everything it imports",
    ])
    def test_unbounded(self, parser, query):
        """Closure cues remove the depth limit."""
        intent = parser.parse(query)
        assert intent.direction == "downstream"
        assert intent.depth_down is None
        assert intent.depth_up == 1

    def test_explicit_levels(self, parser):
        """An explicit level count sets the depth."""
        intent = parser.parse("x.py dependencies 4 levels deep")
        assert intent.depth_down == 4
        assert intent.depth_up == 1


class TestExclusions:
    def test_exclude_tests(self, parser):
        """An exclusion clause sets the test filter and leaves the anchor."""
        intent = parser.parse("OrderService and its dependencies, excluding tests")
        assert intent.exclude_tests is True
        assert intent.exclude_config is False
        assert intent.anchor_hint == "OrderService"

    def test_exclude_config_case_insensitive(self, parser):
        """Config exclusion is case-insensitive."""
        intent = parser.parse("OrderService without Configuration")
        assert intent.exclude_config is True
        assert intent.anchor_hint == "OrderService"

    def test_exclude_both(self, parser):
        """Both filters can be set at once."""
        intent = parser.parse("x.py but not tests or config")
        assert intent.exclude_tests and intent.exclude_config
        assert intent.anchor_hint == "x.py"
