"""
Predicate Tree
==============

**Version**: 1.0.0
**Created**: 2026-10-02
**Status**: Active

Backend-neutral representation of "what to filter on".

WHY THIS FILE EXISTS
--------------------
Filters used to be expressed as SQL fragments built inline at each call
site. That mixes two questions:

    WHAT to filter on   -> this module (built once by the compiler)
    HOW to express it   -> renderers (render.py for the executor,
                           sql.py for the key resolver)

NODES
-----
    ValueIn(field, values)
        Batched equality. `values` empty means "matches nothing".

    PatternMatch(field, operator, value)
        One substring/prefix/suffix match.

    AnyOf(children) / AllOf(children)
        OR / AND. An empty AnyOf matches nothing, an empty AllOf matches
        everything; builders avoid producing either.

All nodes are frozen dataclasses holding tuples, so a compiled tree can be
shared between requests without copying.

IN-MEMORY EVALUATION
--------------------
`matches(predicate, row)` evaluates a tree against a plain mapping. It is the
reference semantics the SQL renderer must agree with, and it is what the
tests use to check identity dual-matching without a database.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterator, Mapping, Optional, Sequence, Tuple, Union

from keylens.analytics.filters import FilterOperator

Scalar = Union[str, int, float]


@dataclass(frozen=True)
class ValueIn:
    """`field IN (values)`."""
    field: str
    values: Tuple[Scalar, ...]

    @property
    def operator(self) -> FilterOperator:
        return FilterOperator.IS

    @property
    def matches_nothing(self) -> bool:
        return len(self.values) == 0


@dataclass(frozen=True)
class PatternMatch:
    """`field LIKE pattern` for contains / startsWith / endsWith."""
    field: str
    operator: FilterOperator
    value: str

    @property
    def pattern(self) -> str:
        """SQL-style wildcard pattern (values are not escaped here)."""
        if self.operator is FilterOperator.STARTS_WITH:
            return f"{self.value}%"
        if self.operator is FilterOperator.ENDS_WITH:
            return f"%{self.value}"
        return f"%{self.value}%"


@dataclass(frozen=True)
class AnyOf:
    children: Tuple["Predicate", ...]


@dataclass(frozen=True)
class AllOf:
    children: Tuple["Predicate", ...]


Predicate = Union[ValueIn, PatternMatch, AnyOf, AllOf]
Leaf = Union[ValueIn, PatternMatch]


def any_of(children: Sequence[Optional[Predicate]]) -> Optional[Predicate]:
    """OR the non-empty children; collapses single-child groups."""
    kept = tuple(child for child in children if child is not None)
    if not kept:
        return None
    if len(kept) == 1:
        return kept[0]
    return AnyOf(kept)


def all_of(children: Sequence[Optional[Predicate]]) -> Optional[Predicate]:
    """AND the non-empty children; collapses single-child groups."""
    kept = tuple(child for child in children if child is not None)
    if not kept:
        return None
    if len(kept) == 1:
        return kept[0]
    return AllOf(kept)


def leaf(field: str, operator: FilterOperator, value: Scalar) -> Leaf:
    """Build the leaf for a single operator/value pair."""
    if operator is FilterOperator.IS:
        return ValueIn(field=field, values=(value,))
    return PatternMatch(field=field, operator=operator, value=str(value))


def retarget(predicate: Predicate, field: str) -> Predicate:
    """Copy of `predicate` with every leaf pointed at `field`."""
    if isinstance(predicate, ValueIn):
        return ValueIn(field=field, values=predicate.values)
    if isinstance(predicate, PatternMatch):
        return PatternMatch(field=field, operator=predicate.operator, value=predicate.value)
    if isinstance(predicate, AnyOf):
        return AnyOf(tuple(retarget(child, field) for child in predicate.children))
    return AllOf(tuple(retarget(child, field) for child in predicate.children))


def iter_leaves(predicate: Predicate) -> Iterator[Leaf]:
    if isinstance(predicate, (AnyOf, AllOf)):
        for child in predicate.children:
            yield from iter_leaves(child)
    else:
        yield predicate


def _match_leaf(node: Leaf, candidate: Any) -> bool:
    if candidate is None:
        return False
    if isinstance(node, ValueIn):
        return candidate in node.values
    text = str(candidate)
    if node.operator is FilterOperator.STARTS_WITH:
        return text.startswith(node.value)
    if node.operator is FilterOperator.ENDS_WITH:
        return text.endswith(node.value)
    return node.value in text


def matches(predicate: Optional[Predicate], row: Mapping[str, Any]) -> bool:
    """
    Evaluate a predicate tree against one row.

    PARAMETERS:
        predicate: Tree to evaluate; None means "no filter" and matches
        row: Field name -> value. Missing fields and None values never match.

    RETURNS:
        True if the row satisfies the tree
    """
    if predicate is None:
        return True
    if isinstance(predicate, AnyOf):
        return any(matches(child, row) for child in predicate.children)
    if isinstance(predicate, AllOf):
        return all(matches(child, row) for child in predicate.children)
    return _match_leaf(predicate, row.get(predicate.field))
