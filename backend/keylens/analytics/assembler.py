"""
Query Assembler
===============

**Version**: 1.0.0
**Created**: 2026-10-02
**Status**: Active

Merges the resolved key scope, compiled filters and resolved time window into
one ExecutorRequest.

EFFECTIVE KEY FILTER
--------------------
    explicit keyIds filter present   -> passed through, non-string values dropped
    resolver returned key IDs        -> one `is` pair per ID
    resolver returned NO keys        -> empty filter, request matches nothing
    domain not key-scoped            -> no key filter at all

An empty key filter is never the same thing as "no filter". The request
carries `matches_nothing` so the pipeline can return zero rows without
calling the executor, and the renderer emits `[]` rather than null.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from keylens.analytics.compiler import CompiledFilterSet
from keylens.analytics.filters import KEY_ID_FIELD, DomainSpec, FilterOperator, FilterValue
from keylens.analytics.granularity import Granularity, GranularityResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExecutorRequest:
    """
    Everything the aggregation executor needs for one query.

    PARAMETERS:
        domain: Domain being queried
        workspace_id: Tenant
        keyspace_id: Resolved keyspace (key-scoped domains only)
        window: Resolved time window and granularity
        key_filter: Effective key filter, None when the domain is not key-scoped
        filters: Compiled filters (only executor-side fields are rendered)
        matches_nothing: True when the key resolver found no keys in scope
    """
    domain: DomainSpec
    workspace_id: str
    window: GranularityResult
    filters: CompiledFilterSet
    keyspace_id: Optional[str] = None
    key_filter: Optional[Tuple[FilterValue, ...]] = None
    matches_nothing: bool = False

    @property
    def granularity(self) -> Granularity:
        return self.window.granularity

    @property
    def start_time(self) -> int:
        return self.window.start_time

    @property
    def end_time(self) -> int:
        return self.window.end_time


def synthesize_key_filter(key_ids: Sequence[str]) -> Tuple[FilterValue, ...]:
    """One exact-match pair per resolved key ID, duplicates dropped."""
    return tuple(
        FilterValue(operator=FilterOperator.IS, value=key_id) for key_id in dict.fromkeys(key_ids)
    )


def _usable_key_filter(
    domain: DomainSpec, explicit_key_filter: Optional[Sequence[FilterValue]]
) -> Tuple[FilterValue, ...]:
    spec = domain.field(KEY_ID_FIELD)
    if not explicit_key_filter or spec is None:
        return ()
    usable = tuple(item for item in explicit_key_filter if spec.accepts_value_type(item.value))
    if len(usable) < len(explicit_key_filter):
        logger.debug(
            f"[ASSEMBLER] Dropped {len(explicit_key_filter) - len(usable)} non-string keyIds values"
        )
    return usable


def assemble(
    resolved_key_ids: Optional[Sequence[str]],
    explicit_key_filter: Optional[Sequence[FilterValue]],
    compiled_filters: CompiledFilterSet,
    granularity_result: GranularityResult,
    *,
    workspace_id: str,
    keyspace_id: Optional[str] = None,
) -> ExecutorRequest:
    """
    Build the executor request.

    PARAMETERS:
        resolved_key_ids: Keys found by the resolver; None when the domain is
            not key-scoped, empty when the resolver matched nothing
        explicit_key_filter: The caller's own keyIds filter values, if any
        compiled_filters: Output of compile_filters
        granularity_result: Output of resolve_granularity
        workspace_id: Tenant
        keyspace_id: Resolved keyspace for key-scoped domains

    RETURNS:
        ExecutorRequest
    """
    explicit = _usable_key_filter(compiled_filters.domain, explicit_key_filter)

    key_filter: Optional[Tuple[FilterValue, ...]] = None
    if explicit:
        key_filter = explicit
    elif resolved_key_ids is not None:
        key_filter = synthesize_key_filter(resolved_key_ids)

    matches_nothing = resolved_key_ids is not None and len(resolved_key_ids) == 0
    if matches_nothing:
        logger.info(
            f"[ASSEMBLER] No keys in scope for domain={compiled_filters.domain.name}, "
            f"query matches nothing"
        )

    return ExecutorRequest(
        domain=compiled_filters.domain,
        workspace_id=workspace_id,
        keyspace_id=keyspace_id,
        window=granularity_result,
        filters=compiled_filters,
        key_filter=key_filter,
        matches_nothing=matches_nothing,
    )
