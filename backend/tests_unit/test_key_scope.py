"""
Key Predicate Builder Tests (Unit)
==================================

WHAT: Identity dual-match and resolver-side predicate construction.
WHY: Keys created before identities existed only carry an owner ID. Both
     paths must match or those keys vanish from the dashboard.

REFERENCES:
- backend/keylens/analytics/key_scope.py
"""

from keylens.analytics.compiler import compile_filters
from keylens.analytics.filters import FilterOperator, FilterValue
from keylens.analytics.key_scope import (
    IDENTITY_EXTERNAL_ID_FIELD,
    KEY_ID_COLUMN_FIELD,
    KEY_NAME_FIELD,
    KEY_OWNER_FIELD,
    build_key_predicate,
    build_key_scope,
)
from keylens.analytics.predicates import AllOf, AnyOf, PatternMatch, ValueIn, iter_leaves, matches


def fv(operator, value):
    return FilterValue(operator=operator, value=value)


# Rows as the key resolver sees them
LINKED_KEY = {KEY_ID_COLUMN_FIELD: "key_1", IDENTITY_EXTERNAL_ID_FIELD: "user_123", KEY_OWNER_FIELD: None}
LEGACY_KEY = {KEY_ID_COLUMN_FIELD: "key_2", IDENTITY_EXTERNAL_ID_FIELD: None, KEY_OWNER_FIELD: "user_123"}
OTHER_KEY = {KEY_ID_COLUMN_FIELD: "key_3", IDENTITY_EXTERNAL_ID_FIELD: "user_999", KEY_OWNER_FIELD: "user_999"}


class TestBuildKeyScope:
    def test_dual_match_on_external_id_and_owner(self):
        scope = build_key_scope([fv("is", "user_123")])
        assert scope == AnyOf((
            ValueIn(field=IDENTITY_EXTERNAL_ID_FIELD, values=("user_123",)),
            ValueIn(field=KEY_OWNER_FIELD, values=("user_123",)),
        ))
        assert matches(scope, LINKED_KEY)
        assert matches(scope, LEGACY_KEY)
        assert not matches(scope, OTHER_KEY)

    def test_operator_applies_to_both_sides(self):
        scope = build_key_scope([fv("startsWith", "user_1")])
        leaves = list(iter_leaves(scope))
        assert {leaf.field for leaf in leaves} == {IDENTITY_EXTERNAL_ID_FIELD, KEY_OWNER_FIELD}
        assert all(isinstance(leaf, PatternMatch) for leaf in leaves)
        assert all(leaf.operator is FilterOperator.STARTS_WITH for leaf in leaves)
        assert matches(scope, LINKED_KEY)
        assert matches(scope, LEGACY_KEY)
        assert not matches(scope, OTHER_KEY)

    def test_multiple_values_are_ored(self):
        scope = build_key_scope([fv("is", "user_123"), fv("is", "user_999")])
        assert isinstance(scope, AnyOf)
        assert len(scope.children) == 2
        for row in (LINKED_KEY, LEGACY_KEY, OTHER_KEY):
            assert matches(scope, row)

    def test_non_string_values_skipped(self):
        assert build_key_scope([fv("is", 42)]) is None
        scope = build_key_scope([fv("is", 42), fv("is", "user_999")])
        assert matches(scope, OTHER_KEY)
        assert not matches(scope, LINKED_KEY)

    def test_no_values(self):
        assert build_key_scope(None) is None
        assert build_key_scope([]) is None


class TestBuildKeyPredicate:
    def test_no_resolver_filters(self):
        compiled = compile_filters("keys", {"outcomes": (fv("is", "VALID"),)})
        assert build_key_predicate(compiled) is None

    def test_key_ids_and_names_are_retargeted(self):
        compiled = compile_filters(
            "keys",
            {"keyIds": (fv("is", "key_1"), fv("contains", "_2")), "names": (fv("is", "prod"),)},
        )
        predicate = build_key_predicate(compiled)
        assert isinstance(predicate, AllOf)
        fields = {leaf.field for leaf in iter_leaves(predicate)}
        assert fields == {KEY_ID_COLUMN_FIELD, KEY_NAME_FIELD}

        assert matches(predicate, {KEY_ID_COLUMN_FIELD: "key_2", KEY_NAME_FIELD: "prod"})
        assert not matches(predicate, {KEY_ID_COLUMN_FIELD: "key_2", KEY_NAME_FIELD: "dev"})

    def test_identities_and_names_combine_with_and(self):
        compiled = compile_filters(
            "keys",
            {"identities": (fv("is", "user_123"),), "names": (fv("contains", "prod"),)},
        )
        predicate = build_key_predicate(compiled)
        legacy_prod = dict(LEGACY_KEY, **{KEY_NAME_FIELD: "prod-key"})
        legacy_dev = dict(LEGACY_KEY, **{KEY_NAME_FIELD: "dev-key"})
        assert matches(predicate, legacy_prod)
        assert not matches(predicate, legacy_dev)

    def test_batched_identity_values_each_get_dual_match(self):
        compiled = compile_filters(
            "verifications",
            {"identities": (fv("is", "user_123"), fv("is", "user_999"))},
        )
        predicate = build_key_predicate(compiled)
        for row in (LINKED_KEY, LEGACY_KEY, OTHER_KEY):
            assert matches(predicate, row)
        assert not matches(predicate, {IDENTITY_EXTERNAL_ID_FIELD: "user_5", KEY_OWNER_FIELD: "user_6"})

    def test_non_key_scoped_domain(self):
        compiled = compile_filters("logs", {"paths": (fv("contains", "/v1"),)})
        assert build_key_predicate(compiled) is None
