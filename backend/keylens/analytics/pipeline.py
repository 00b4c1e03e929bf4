"""
Analytics Query Pipeline
========================

**Version**: 1.0.0
**Created**: 2026-10-03
**Status**: Active

Orchestrates one analytics query end to end.

FLOW
----
    AnalyticsQuery (raw dashboard state)
        │
        ├─ validation      get_domain, parse_filter_groups, resolve_time_window
        ├─ compilation     compile_filters, resolve_granularity
        ├─ key_resolution  build_key_predicate -> KeyResolver.resolve   (key-scoped only)
        ├─ assemble        ExecutorRequest
        └─ execution       render_executor_params -> AggregationExecutor.execute
                           (skipped when the request matches nothing)

Key resolution always completes before assembly. The executor is called at
most once per query.

COLLABORATORS
-------------
Both collaborators are async protocols so the pipeline can be tested with
in-memory fakes:

    KeyResolver.resolve(workspace_id, api_id, predicate) -> KeyResolution
    AggregationExecutor.execute(domain, params) -> rows

RELATED FILES
-------------
- keylens/analytics/sql.py: SqlKeyResolver
- keylens/analytics/executor.py: HttpAggregationExecutor
- keylens/routers/analytics.py: HTTP entry point
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field as dataclass_field
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence, Tuple

from keylens.analytics.assembler import ExecutorRequest, assemble
from keylens.analytics.compiler import compile_filters
from keylens.analytics.errors import ErrorCode, QueryError
from keylens.analytics.filters import KEY_ID_FIELD, get_domain, parse_filter_groups
from keylens.analytics.granularity import resolve_granularity
from keylens.analytics.key_scope import build_key_predicate
from keylens.analytics.predicates import Predicate
from keylens.analytics.render import render_executor_params
from keylens.analytics.sql import KeyResolution
from keylens.analytics.telemetry import QueryContext, Stage, TelemetryCollector, get_telemetry
from keylens.analytics.time_range import resolve_time_window

logger = logging.getLogger(__name__)


# =============================================================================
# COLLABORATOR PROTOCOLS
# =============================================================================

class KeyResolver(Protocol):
    async def resolve(
        self,
        workspace_id: str,
        api_id: str,
        predicate: Optional[Predicate] = None,
    ) -> KeyResolution:
        ...


class AggregationExecutor(Protocol):
    async def execute(self, domain: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        ...


# =============================================================================
# QUERY / RESULT
# =============================================================================

@dataclass(frozen=True)
class AnalyticsQuery:
    """
    One analytics request as received from the dashboard.

    PARAMETERS:
        domain: keys / verifications / logs / ratelimits
        workspace_id: Tenant
        api_id: API whose keyspace scopes the query (key-scoped domains)
        start_time / end_time: Window bounds in epoch ms (optional)
        since: Relative window shorthand such as "24h" (wins over bounds)
        filters: Raw filter state, field -> [{operator, value}]
    """
    domain: str
    workspace_id: str
    api_id: Optional[str] = None
    start_time: Optional[int] = None
    end_time: Optional[int] = None
    since: Optional[str] = None
    filters: Mapping[str, Optional[Sequence[Mapping[str, Any]]]] = dataclass_field(default_factory=dict)


@dataclass(frozen=True)
class AnalyticsResult:
    request: ExecutorRequest
    rows: Tuple[Dict[str, Any], ...] = ()

    @property
    def params(self) -> Dict[str, Any]:
        return render_executor_params(self.request)


# =============================================================================
# PIPELINE
# =============================================================================

async def _build_request(
    query: AnalyticsQuery,
    ctx: QueryContext,
    key_resolver: Optional[KeyResolver],
    now: Optional[int],
    strict_operators: bool,
) -> ExecutorRequest:
    with ctx.track_stage(Stage.VALIDATION):
        domain = get_domain(query.domain)
        groups = parse_filter_groups(domain, query.filters, strict_operators=strict_operators)
        start_time, end_time = resolve_time_window(
            query.start_time, query.end_time, query.since, now=now
        )
        if domain.key_scoped and not query.api_id:
            raise QueryError.create(
                ErrorCode.MISSING_SCOPE,
                f"Domain '{domain.name}' requires an apiId",
                field_name="apiId",
            )

    with ctx.track_stage(Stage.COMPILATION):
        compiled = compile_filters(domain, groups)
        window = resolve_granularity(domain.context, start_time, end_time, now=now)

    resolved_key_ids: Optional[Tuple[str, ...]] = None
    keyspace_id: Optional[str] = None
    if domain.key_scoped:
        if key_resolver is None:
            raise QueryError.create(
                ErrorCode.EXECUTOR_NOT_CONFIGURED,
                "Key resolver is not configured",
            )
        with ctx.track_stage(Stage.KEY_RESOLUTION):
            resolution = await key_resolver.resolve(
                query.workspace_id, query.api_id, build_key_predicate(compiled)
            )
        resolved_key_ids = resolution.key_ids
        keyspace_id = resolution.keyspace_id

    return assemble(
        resolved_key_ids,
        groups.get(KEY_ID_FIELD),
        compiled,
        window,
        workspace_id=query.workspace_id,
        keyspace_id=keyspace_id,
    )


async def compile_analytics_query(
    query: AnalyticsQuery,
    *,
    key_resolver: Optional[KeyResolver] = None,
    telemetry: Optional[TelemetryCollector] = None,
    now: Optional[int] = None,
    strict_operators: bool = False,
) -> ExecutorRequest:
    """
    Dry run: everything up to (not including) the executor call.

    The key resolver is still consulted for key-scoped domains, because the
    effective key filter depends on it.

    RAISES:
        QueryError: validation, scope lookup, or configuration failures
    """
    collector = telemetry or get_telemetry()
    with collector.track_query(query.workspace_id, query.domain) as ctx:
        request = await _build_request(query, ctx, key_resolver, now, strict_operators)
        ctx.set_result(
            granularity=request.granularity.value,
            matches_nothing=request.matches_nothing,
        )
        return request


async def run_analytics_query(
    query: AnalyticsQuery,
    *,
    executor: Optional[AggregationExecutor],
    key_resolver: Optional[KeyResolver] = None,
    telemetry: Optional[TelemetryCollector] = None,
    now: Optional[int] = None,
    strict_operators: bool = False,
) -> AnalyticsResult:
    """
    Run one analytics query.

    WHAT: Validates, compiles, resolves the key scope, assembles and
    executes the query.

    WHY: Single entry point shared by the router and in-process callers.

    RETURNS:
        AnalyticsResult(request, rows). When the key scope is empty the rows
        are empty and the executor is never called.

    RAISES:
        QueryError: validation, scope lookup, configuration, or executor
        failures (never retried)
    """
    collector = telemetry or get_telemetry()
    with collector.track_query(query.workspace_id, query.domain) as ctx:
        request = await _build_request(query, ctx, key_resolver, now, strict_operators)

        if request.matches_nothing:
            logger.info(f"[PIPELINE] Skipping executor for domain={request.domain.name}: no keys in scope")
            ctx.set_result(granularity=request.granularity.value, matches_nothing=True)
            return AnalyticsResult(request=request)

        if executor is None:
            raise QueryError.create(
                ErrorCode.EXECUTOR_NOT_CONFIGURED,
                "Aggregation executor is not configured",
            )

        with ctx.track_stage(Stage.EXECUTION):
            rows = await executor.execute(request.domain.name, render_executor_params(request))

        ctx.set_result(granularity=request.granularity.value, row_count=len(rows))
        return AnalyticsResult(request=request, rows=tuple(rows))
