"""
Filter Compiler Tests (Unit)
============================

WHAT: Boundary parsing and per-field compilation of dashboard filter state.
WHY: The executor receives exactly what the compiler emits; an operator
     landing in the wrong shape silently returns wrong charts.

REFERENCES:
- backend/keylens/analytics/filters.py
- backend/keylens/analytics/compiler.py
- backend/keylens/analytics/predicates.py
"""

import logging
import time

import pytest

from keylens.analytics.compiler import compile_filters, compile_raw_filters
from keylens.analytics.errors import ErrorCategory, ErrorCode, QueryError
from keylens.analytics.filters import (
    DOMAINS,
    FieldTarget,
    FilterOperator,
    FilterValue,
    get_domain,
    parse_filter_groups,
)
from keylens.analytics.predicates import AllOf, AnyOf, PatternMatch, ValueIn, matches


def fv(operator, value):
    return FilterValue(operator=operator, value=value)


class TestCompileFilters:
    def test_exact_values_batch_into_one_value_in(self):
        compiled = compile_filters("logs", {"status": (fv("is", 404), fv("is", 500))})
        assert compiled.get("status") == (ValueIn(field="status", values=(404, 500)),)

    def test_patterns_are_one_predicate_each(self):
        compiled = compile_filters(
            "logs",
            {"paths": (fv("startsWith", "/v1/"), fv("endsWith", ".json"))},
        )
        assert compiled.get("paths") == (
            PatternMatch(field="paths", operator=FilterOperator.STARTS_WITH, value="/v1/"),
            PatternMatch(field="paths", operator=FilterOperator.ENDS_WITH, value=".json"),
        )

    def test_exact_and_pattern_shapes_differ(self):
        """Two `is` values give one node; two `contains` values give two."""
        exact = compile_filters("ratelimits", {"identifiers": (fv("is", "a"), fv("is", "b"))})
        pattern = compile_filters(
            "ratelimits", {"identifiers": (fv("contains", "a"), fv("contains", "b"))}
        )
        assert len(exact.get("identifiers")) == 1
        assert len(pattern.get("identifiers")) == 2

    def test_mixed_operators_keep_value_in_first(self):
        compiled = compile_filters(
            "logs",
            {"paths": (fv("contains", "users"), fv("is", "/v1/keys"), fv("is", "/v1/apis"))},
        )
        nodes = compiled.get("paths")
        assert nodes[0] == ValueIn(field="paths", values=("/v1/keys", "/v1/apis"))
        assert nodes[1] == PatternMatch(field="paths", operator=FilterOperator.CONTAINS, value="users")

    def test_duplicates_are_dropped(self):
        compiled = compile_filters(
            "logs",
            {
                "methods": (fv("is", "GET"), fv("is", "GET"), fv("is", "POST")),
                "paths": (fv("contains", "x"), fv("contains", "x")),
            },
        )
        assert compiled.get("methods") == (ValueIn(field="methods", values=("GET", "POST")),)
        assert len(compiled.get("paths")) == 1

    def test_large_field_compiles_quickly(self):
        values = tuple(fv("is", f"key_{i}") for i in range(50_000))
        patterns = tuple(fv("contains", f"k{i}") for i in range(5_000))

        started = time.perf_counter()
        compiled = compile_filters("keys", {"keyIds": values + values[:100] + patterns + patterns})
        elapsed = time.perf_counter() - started

        nodes = compiled.get("keyIds")
        assert len(nodes[0].values) == 50_000
        assert len(nodes) == 1 + 5_000
        assert elapsed < 2.0

    def test_type_mismatch_is_skipped(self):
        compiled = compile_filters("logs", {"status": (fv("is", "404"),), "methods": (fv("is", 1),)})
        assert compiled.is_empty
        assert "status" not in compiled

    def test_empty_fields_produce_nothing(self):
        compiled = compile_filters("keys", {"tags": ()})
        assert compiled.is_empty
        assert compiled.to_predicate() is None

    def test_field_order_follows_domain(self):
        compiled = compile_filters(
            "logs",
            {"paths": (fv("contains", "a"),), "status": (fv("is", 200),)},
        )
        assert compiled.field_names == ["status", "paths"]

    def test_to_predicate_ands_fields_and_ors_values(self):
        compiled = compile_filters(
            "logs",
            {
                "status": (fv("is", 404), fv("is", 500)),
                "paths": (fv("startsWith", "/v1/"), fv("endsWith", "/keys")),
            },
        )
        predicate = compiled.to_predicate()
        assert isinstance(predicate, AllOf)
        assert isinstance(predicate.children[1], AnyOf)

        assert matches(predicate, {"status": 404, "paths": "/v1/apis"})
        assert matches(predicate, {"status": 500, "paths": "/v2/keys"})
        assert not matches(predicate, {"status": 200, "paths": "/v1/apis"})
        assert not matches(predicate, {"status": 404, "paths": "/v2/apis"})

    def test_to_predicate_by_target(self):
        compiled = compile_filters(
            "keys",
            {
                "names": (fv("contains", "prod"),),
                "outcomes": (fv("is", "VALID"),),
                "keyIds": (fv("is", "key_1"),),
            },
        )
        executor_side = compiled.to_predicate(FieldTarget.EXECUTOR)
        resolver_side = compiled.to_predicate(FieldTarget.KEY_RESOLVER)

        executor_fields = {leaf.field for leaf in executor_side.children}
        resolver_fields = {leaf.field for leaf in resolver_side.children}
        assert executor_fields == {"keyIds", "outcomes"}
        assert resolver_fields == {"keyIds", "names"}

    def test_pattern_wildcards(self):
        assert PatternMatch("f", FilterOperator.CONTAINS, "x").pattern == "%x%"
        assert PatternMatch("f", FilterOperator.STARTS_WITH, "x").pattern == "x%"
        assert PatternMatch("f", FilterOperator.ENDS_WITH, "x").pattern == "%x"


class TestBoundaryParsing:
    def test_unknown_operator_falls_back_to_exact(self, caplog):
        domain = get_domain("logs")
        with caplog.at_level(logging.WARNING):
            groups = parse_filter_groups(domain, {"paths": [{"operator": "equals", "value": "/v1"}]})
        assert groups["paths"] == (fv(FilterOperator.IS, "/v1"),)
        assert "falling back to exact match" in caplog.text

    def test_unknown_operator_rejected_when_strict(self):
        domain = get_domain("logs")
        with pytest.raises(QueryError) as exc:
            parse_filter_groups(
                domain,
                {"paths": [{"operator": "equals", "value": "/v1"}]},
                strict_operators=True,
            )
        assert exc.value.code is ErrorCode.INVALID_FILTER
        assert exc.value.field_name == "paths"

    def test_disallowed_operator_rejected(self):
        with pytest.raises(QueryError) as exc:
            parse_filter_groups(get_domain("logs"), {"methods": [{"operator": "contains", "value": "GE"}]})
        assert exc.value.code is ErrorCode.INVALID_FILTER
        assert exc.value.category is ErrorCategory.SCHEMA

    @pytest.mark.parametrize("operator", ["startsWith", "endsWith"])
    def test_key_ids_allow_only_exact_and_contains(self, operator):
        domain = get_domain("verifications")
        with pytest.raises(QueryError) as exc:
            parse_filter_groups(domain, {"keyIds": [{"operator": operator, "value": "key_"}]})
        assert exc.value.code is ErrorCode.INVALID_FILTER
        assert exc.value.field_name == "keyIds"

        groups = parse_filter_groups(
            domain,
            {"keyIds": [{"operator": "is", "value": "key_1"}, {"operator": "contains", "value": "_2"}]},
        )
        assert len(groups["keyIds"]) == 2

    def test_unknown_field_rejected(self):
        with pytest.raises(QueryError) as exc:
            parse_filter_groups(get_domain("ratelimits"), {"paths": [{"operator": "is", "value": "/"}]})
        assert exc.value.code is ErrorCode.UNKNOWN_FIELD
        assert exc.value.field_name == "paths"

    def test_value_outside_vocabulary_rejected(self):
        with pytest.raises(QueryError) as exc:
            parse_filter_groups(get_domain("keys"), {"outcomes": [{"operator": "is", "value": "MAYBE"}]})
        assert exc.value.code is ErrorCode.INVALID_FILTER
        assert "VALID" in exc.value.suggestion

    @pytest.mark.parametrize("value", [True, None, ["a"], {"a": 1}])
    def test_non_scalar_values_rejected(self, value):
        with pytest.raises(QueryError) as exc:
            parse_filter_groups(get_domain("logs"), {"paths": [{"operator": "is", "value": value}]})
        assert exc.value.code is ErrorCode.INVALID_FILTER

    def test_null_and_empty_groups_dropped(self):
        groups = parse_filter_groups(get_domain("logs"), {"paths": None, "methods": []})
        assert groups == {}

    def test_unknown_domain(self):
        with pytest.raises(QueryError) as exc:
            get_domain("billing")
        assert exc.value.code is ErrorCode.UNKNOWN_DOMAIN

    def test_compile_raw_filters_returns_groups_and_compiled(self):
        groups, compiled = compile_raw_filters(
            "verifications",
            {"keyIds": [{"operator": "is", "value": "key_1"}], "tags": None},
        )
        assert groups == {"keyIds": (fv("is", "key_1"),)}
        assert compiled.get("keyIds") == (ValueIn(field="keyIds", values=("key_1",)),)

    def test_every_domain_field_has_operators(self):
        for domain in DOMAINS.values():
            for spec in domain.fields:
                assert spec.operators
                assert spec.executor_param
