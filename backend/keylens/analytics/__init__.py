"""
Analytics Query Compiler
========================

**Version**: 1.0.0
**Created**: 2026-10-02
**Status**: Active

Translates dashboard filter state into aggregation executor requests.

ARCHITECTURE OVERVIEW
---------------------
```
Dashboard filter state {field: [{operator, value}]}
    |
    v
Boundary parsing (analytics/filters.py)
    |   unknown fields / disallowed operators rejected
    |
    v
FilterCompiler (analytics/compiler.py)        GranularityResolver (analytics/granularity.py)
    |   per-field predicates                      |   window + bucket size
    |                                             |
    +--> KeyPredicateBuilder (analytics/key_scope.py)
    |       |
    |       v
    |    KeyResolver (analytics/sql.py) -> key IDs
    |                                             |
    v                                             v
QueryAssembler (analytics/assembler.py) <---------+
    |
    v
render_executor_params (analytics/render.py) -> AggregationExecutor (analytics/executor.py)
```

The compiler, resolver and assembler are pure and synchronous. I/O happens
only in the two collaborator adapters, orchestrated by analytics/pipeline.py.

DOMAINS
-------
- keys:          API keys overview (key-scoped, forRegular)
- verifications: Key verifications per API (key-scoped, forVerifications)
- logs:          Request logs (forRegular)
- ratelimits:    Namespace ratelimit logs (forRegular)
"""

from keylens.analytics.granularity import (
    Granularity,
    GranularityContext,
    GranularityResult,
    resolve_granularity,
    select_granularity,
)

from keylens.analytics.time_range import (
    parse_relative_time,
    resolve_time_window,
)

from keylens.analytics.errors import (
    QueryError,
    ErrorCategory,
    ErrorSeverity,
    ErrorCode,
)

from keylens.analytics.filters import (
    FilterOperator,
    FilterValue,
    FieldSpec,
    DomainSpec,
    DOMAINS,
    get_domain,
    parse_filter_groups,
)

from keylens.analytics.predicates import (
    ValueIn,
    PatternMatch,
    AnyOf,
    AllOf,
    matches,
)

from keylens.analytics.compiler import (
    CompiledFilterSet,
    compile_filters,
    compile_raw_filters,
)

from keylens.analytics.key_scope import (
    build_key_scope,
    build_key_predicate,
)

from keylens.analytics.assembler import (
    ExecutorRequest,
    assemble,
)

from keylens.analytics.render import render_executor_params

from keylens.analytics.sql import (
    KeyResolution,
    SqlKeyResolver,
    render_sql,
)

from keylens.analytics.executor import HttpAggregationExecutor

from keylens.analytics.telemetry import (
    TelemetryCollector,
    get_telemetry,
    set_telemetry,
)

from keylens.analytics.pipeline import (
    AnalyticsQuery,
    AnalyticsResult,
    AggregationExecutor,
    KeyResolver,
    compile_analytics_query,
    run_analytics_query,
)

__all__ = [
    # Granularity (granularity.py, time_range.py)
    "Granularity",
    "GranularityContext",
    "GranularityResult",
    "resolve_granularity",
    "select_granularity",
    "parse_relative_time",
    "resolve_time_window",
    # Errors (errors.py)
    "QueryError",
    "ErrorCategory",
    "ErrorSeverity",
    "ErrorCode",
    # Filters (filters.py, predicates.py, compiler.py)
    "FilterOperator",
    "FilterValue",
    "FieldSpec",
    "DomainSpec",
    "DOMAINS",
    "get_domain",
    "parse_filter_groups",
    "ValueIn",
    "PatternMatch",
    "AnyOf",
    "AllOf",
    "matches",
    "CompiledFilterSet",
    "compile_filters",
    "compile_raw_filters",
    # Key scope (key_scope.py)
    "build_key_scope",
    "build_key_predicate",
    # Assembly and rendering (assembler.py, render.py)
    "ExecutorRequest",
    "assemble",
    "render_executor_params",
    # Collaborators (sql.py, executor.py)
    "KeyResolution",
    "SqlKeyResolver",
    "render_sql",
    "HttpAggregationExecutor",
    # Telemetry (telemetry.py)
    "TelemetryCollector",
    "get_telemetry",
    "set_telemetry",
    # Pipeline (pipeline.py)
    "AnalyticsQuery",
    "AnalyticsResult",
    "AggregationExecutor",
    "KeyResolver",
    "compile_analytics_query",
    "run_analytics_query",
]
