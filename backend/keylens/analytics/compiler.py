"""
Filter Compiler
===============

**Version**: 1.0.0
**Created**: 2026-10-02
**Status**: Active

Compiles typed filter groups into per-field predicate lists.

COMPILATION RULES
-----------------
For each field:

    1. Values whose type does not match the field are skipped.
    2. All `is` values become ONE ValueIn (batched equality), de-duplicated.
    3. Every contains / startsWith / endsWith value becomes its own
       PatternMatch, de-duplicated. They are not batched because each
       carries its own wildcard position.
    4. A field left with no values produces no predicate at all, so the
       AND across fields simply skips it.

The predicates of one field form a disjunction; fields are combined with AND.

The compiler never raises. Validation happened at the boundary
(filters.parse_filter_groups); anything that still looks wrong here is
dropped and logged at DEBUG.

EXAMPLE
-------
    groups = {
        "paths": (FilterValue(operator="startsWith", value="/v1/"),),
        "status": (FilterValue(operator="is", value=404),
                   FilterValue(operator="is", value=500)),
    }
    compiled = compile_filters("logs", groups)
    compiled.get("status")  # (ValueIn("status", (404, 500)),)
    compiled.get("paths")   # (PatternMatch("paths", startsWith, "/v1/"),)

RELATED FILES
-------------
- keylens/analytics/filters.py: Field tables and boundary parsing
- keylens/analytics/key_scope.py: Builds the key resolver predicate
- keylens/analytics/render.py: Renders executor parameters
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Set, Tuple, Union

from keylens.analytics.filters import (
    DomainSpec,
    FieldSpec,
    FieldTarget,
    FilterOperator,
    FilterValue,
    get_domain,
    parse_filter_groups,
)
from keylens.analytics.predicates import Leaf, PatternMatch, Predicate, ValueIn, all_of, any_of

logger = logging.getLogger(__name__)


# =============================================================================
# RESULT
# =============================================================================

@dataclass(frozen=True)
class CompiledFilterSet:
    """
    Compiled predicates for one request, grouped by field.

    WHAT: Ordered (field, predicates) pairs in domain field order. Only
    fields that produced at least one predicate are present.

    WHY: Keeping the per-field grouping (instead of a single tree) lets each
    renderer pick the fields meant for its collaborator and shape them the
    way that collaborator expects.
    """
    domain: DomainSpec
    fields: Tuple[Tuple[str, Tuple[Leaf, ...]], ...] = ()

    def __contains__(self, field_name: str) -> bool:
        return any(name == field_name for name, _ in self.fields)

    @property
    def is_empty(self) -> bool:
        return not self.fields

    @property
    def field_names(self) -> List[str]:
        return [name for name, _ in self.fields]

    def get(self, field_name: str) -> Tuple[Leaf, ...]:
        """Predicates for a field (disjunction), empty tuple when absent."""
        for name, predicates in self.fields:
            if name == field_name:
                return predicates
        return ()

    def field_predicate(self, field_name: str) -> Optional[Predicate]:
        """The field's predicates OR-ed together, or None when absent."""
        return any_of(self.get(field_name))

    def to_predicate(self, target: Optional[FieldTarget] = None) -> Optional[Predicate]:
        """
        AND of all field disjunctions.

        PARAMETERS:
            target: Restrict to fields sent to this collaborator
                (EXECUTOR or KEY_RESOLVER). None keeps every field.
        """
        groups = []
        for name, _ in self.fields:
            spec = self.domain.field(name)
            if target is FieldTarget.EXECUTOR and not spec.sent_to_executor:
                continue
            if target is FieldTarget.KEY_RESOLVER and not spec.sent_to_key_resolver:
                continue
            groups.append(self.field_predicate(name))
        return all_of(groups)


# =============================================================================
# COMPILATION
# =============================================================================

def compile_field(spec: FieldSpec, values: Sequence[FilterValue]) -> Tuple[Leaf, ...]:
    """
    Compile one field's filter values.

    RETURNS:
        () when nothing usable remains, otherwise an optional ValueIn for the
        exact matches followed by one PatternMatch per pattern value, in order
        of first appearance.
    """
    exact: List[Any] = []
    exact_seen: Set[Any] = set()
    patterns: List[PatternMatch] = []
    patterns_seen: Set[PatternMatch] = set()

    for item in values:
        if not spec.accepts_value_type(item.value):
            logger.debug(
                f"[COMPILER] Skipping {type(item.value).__name__} value on '{spec.name}'"
            )
            continue

        if item.operator is FilterOperator.IS:
            if item.value not in exact_seen:
                exact_seen.add(item.value)
                exact.append(item.value)
            continue

        pattern = PatternMatch(field=spec.name, operator=item.operator, value=str(item.value))
        if pattern not in patterns_seen:
            patterns_seen.add(pattern)
            patterns.append(pattern)

    compiled: List[Leaf] = []
    if exact:
        compiled.append(ValueIn(field=spec.name, values=tuple(exact)))
    compiled.extend(patterns)
    return tuple(compiled)


def compile_filters(
    domain: Union[DomainSpec, str],
    groups: Mapping[str, Sequence[FilterValue]],
) -> CompiledFilterSet:
    """
    Compile typed filter groups for a domain.

    PARAMETERS:
        domain: DomainSpec or domain name
        groups: Field name -> filter values (see filters.parse_filter_groups)

    RETURNS:
        CompiledFilterSet. Fields unknown to the domain are ignored.
    """
    spec_domain = get_domain(domain) if isinstance(domain, str) else domain

    compiled: List[Tuple[str, Tuple[Leaf, ...]]] = []
    for spec in spec_domain.fields:
        values = groups.get(spec.name)
        if not values:
            continue
        predicates = compile_field(spec, values)
        if predicates:
            compiled.append((spec.name, predicates))

    ignored = set(groups) - set(spec_domain.field_names)
    if ignored:
        logger.debug(f"[COMPILER] Ignoring fields not in domain '{spec_domain.name}': {sorted(ignored)}")

    logger.debug(
        f"[COMPILER] domain={spec_domain.name} fields={[name for name, _ in compiled]}"
    )
    return CompiledFilterSet(domain=spec_domain, fields=tuple(compiled))


def compile_raw_filters(
    domain: Union[DomainSpec, str],
    raw_filters: Optional[Mapping[str, Optional[Sequence[Mapping[str, Any]]]]],
    *,
    strict_operators: bool = False,
) -> Tuple[Dict[str, Tuple[FilterValue, ...]], CompiledFilterSet]:
    """
    Parse raw dashboard filter state and compile it in one step.

    RETURNS:
        (parsed groups, compiled set). The parsed groups are returned too
        because the explicit key filter is passed through to the executor
        unchanged.

    RAISES:
        QueryError from boundary parsing (unknown field, invalid filter)
    """
    spec_domain = get_domain(domain) if isinstance(domain, str) else domain
    groups = parse_filter_groups(spec_domain, raw_filters, strict_operators=strict_operators)
    return groups, compile_filters(spec_domain, groups)
