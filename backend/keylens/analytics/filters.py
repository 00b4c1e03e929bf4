"""
Filter Vocabulary and Boundary Parsing
======================================

**Version**: 1.0.0
**Created**: 2026-10-02
**Status**: Active

Closed operator set, strict filter values, and the per-domain field tables.

WHY THIS FILE EXISTS
--------------------
Filter state arrives from the dashboard as loosely typed JSON:

    {"paths": [{"operator": "startsWith", "value": "/v1/"}],
     "status": [{"operator": "is", "value": 404}]}

Everything downstream (compiler, key scope builder, renderers) works on
typed values only. This module is the boundary: it knows which fields exist
for each domain, which operators each field accepts, and how each field is
shaped in the executor request.

UNKNOWN OPERATOR POLICY
-----------------------
An operator string outside {is, contains, startsWith, endsWith} is treated
as `is` and logged at WARNING. Older dashboard builds send operators this
service does not know about and still expect exact-match results. Set
`strict_operators=True` (STRICT_FILTER_OPERATORS) to reject them instead.

A KNOWN operator that a field does not allow (e.g. `contains` on `methods`)
is always rejected.

RELATED FILES
-------------
- keylens/analytics/compiler.py: Consumes parsed filter groups
- keylens/analytics/render.py: Uses FieldSpec.param / FieldSpec.shape
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict, StrictFloat, StrictInt, StrictStr, ValidationError

from keylens.analytics.errors import ErrorCode, QueryError
from keylens.analytics.granularity import GranularityContext

logger = logging.getLogger(__name__)


# =============================================================================
# OPERATORS AND VALUES
# =============================================================================

class FilterOperator(str, Enum):
    """
    Closed set of filter operators.

    is:         exact match
    contains:   substring match   (%v%)
    startsWith: prefix match      (v%)
    endsWith:   suffix match      (%v)
    """
    IS = "is"
    CONTAINS = "contains"
    STARTS_WITH = "startsWith"
    ENDS_WITH = "endsWith"


STRING_OPERATORS: FrozenSet[FilterOperator] = frozenset(FilterOperator)
EXACT_ONLY: FrozenSet[FilterOperator] = frozenset({FilterOperator.IS})

FilterScalar = Union[StrictStr, StrictInt, StrictFloat]


class FilterValue(BaseModel):
    """One operator/value pair for a single field. Immutable."""

    model_config = ConfigDict(frozen=True)

    operator: FilterOperator
    value: FilterScalar

    def to_dict(self) -> Dict[str, Any]:
        return {"operator": self.operator.value, "value": self.value}


# =============================================================================
# FIELD / DOMAIN TABLES
# =============================================================================

class ValueType(Enum):
    STRING = "string"
    NUMBER = "number"


class ExecutorShape(Enum):
    """
    How a field is shaped in the executor request.

    VALUES: flat array of exact values, e.g. "statusCodes": [404, 500]
    PAIRS:  list of operator/value pairs, e.g. "paths": [{"operator": ..., "value": ...}]
    """
    VALUES = "values"
    PAIRS = "pairs"


class FieldTarget(Enum):
    """Which collaborator a field's predicates are sent to."""
    EXECUTOR = "executor"
    KEY_RESOLVER = "key_resolver"
    BOTH = "both"


@dataclass(frozen=True)
class FieldSpec:
    """
    Declaration of one filterable field.

    PARAMETERS:
        name: Field name as sent by the dashboard
        value_type: Expected scalar type; mismatching values are skipped
        operators: Operators this field accepts
        shape: Executor request shape
        param: Executor parameter name (defaults to `name`)
        target: Executor, key resolver, or both
        allowed_values: Fixed vocabulary, or None for free text
    """
    name: str
    value_type: ValueType = ValueType.STRING
    operators: FrozenSet[FilterOperator] = STRING_OPERATORS
    shape: ExecutorShape = ExecutorShape.PAIRS
    param: Optional[str] = None
    target: FieldTarget = FieldTarget.EXECUTOR
    allowed_values: Optional[FrozenSet[Any]] = None

    @property
    def executor_param(self) -> str:
        return self.param or self.name

    @property
    def sent_to_executor(self) -> bool:
        return self.target in (FieldTarget.EXECUTOR, FieldTarget.BOTH)

    @property
    def sent_to_key_resolver(self) -> bool:
        return self.target in (FieldTarget.KEY_RESOLVER, FieldTarget.BOTH)

    def accepts_value_type(self, value: Any) -> bool:
        if self.value_type is ValueType.STRING:
            return isinstance(value, str)
        return isinstance(value, (int, float)) and not isinstance(value, bool)


@dataclass(frozen=True)
class DomainSpec:
    """One analytics surface: context, key scoping and its field table."""
    name: str
    context: GranularityContext
    key_scoped: bool
    fields: Tuple[FieldSpec, ...]

    def field(self, name: str) -> Optional[FieldSpec]:
        for spec in self.fields:
            if spec.name == name:
                return spec
        return None

    @property
    def field_names(self) -> List[str]:
        return [spec.name for spec in self.fields]


KEY_ID_FIELD = "keyIds"
NAME_FIELD = "names"
IDENTITY_FIELD = "identities"

KEY_VERIFICATION_OUTCOMES: FrozenSet[str] = frozenset({
    "VALID",
    "RATE_LIMITED",
    "INSUFFICIENT_PERMISSIONS",
    "FORBIDDEN",
    "DISABLED",
    "EXPIRED",
    "USAGE_EXCEEDED",
    "NOT_FOUND",
})

RATELIMIT_STATUSES: FrozenSet[str] = frozenset({"blocked", "passed"})

_KEY_IDS = FieldSpec(
    name=KEY_ID_FIELD,
    operators=frozenset({FilterOperator.IS, FilterOperator.CONTAINS}),
    target=FieldTarget.BOTH,
)
_IDENTITIES = FieldSpec(name=IDENTITY_FIELD, target=FieldTarget.KEY_RESOLVER)
_OUTCOMES = FieldSpec(
    name="outcomes",
    operators=EXACT_ONLY,
    allowed_values=KEY_VERIFICATION_OUTCOMES,
)
_TAGS = FieldSpec(name="tags")

DOMAINS: Dict[str, DomainSpec] = {
    "keys": DomainSpec(
        name="keys",
        context=GranularityContext.FOR_REGULAR,
        key_scoped=True,
        fields=(
            _KEY_IDS,
            FieldSpec(name=NAME_FIELD, target=FieldTarget.KEY_RESOLVER),
            _IDENTITIES,
            _OUTCOMES,
            _TAGS,
        ),
    ),
    "verifications": DomainSpec(
        name="verifications",
        context=GranularityContext.FOR_VERIFICATIONS,
        key_scoped=True,
        fields=(_KEY_IDS, _IDENTITIES, _OUTCOMES, _TAGS),
    ),
    "logs": DomainSpec(
        name="logs",
        context=GranularityContext.FOR_REGULAR,
        key_scoped=False,
        fields=(
            FieldSpec(
                name="status",
                value_type=ValueType.NUMBER,
                operators=EXACT_ONLY,
                shape=ExecutorShape.VALUES,
                param="statusCodes",
            ),
            FieldSpec(name="methods", operators=EXACT_ONLY, shape=ExecutorShape.VALUES),
            FieldSpec(name="paths"),
            FieldSpec(name="host", operators=EXACT_ONLY, shape=ExecutorShape.VALUES, param="hosts"),
            FieldSpec(name="requestId", operators=EXACT_ONLY, shape=ExecutorShape.VALUES, param="requestIds"),
        ),
    ),
    "ratelimits": DomainSpec(
        name="ratelimits",
        context=GranularityContext.FOR_REGULAR,
        key_scoped=False,
        fields=(
            FieldSpec(name="identifiers"),
            FieldSpec(name="status", operators=EXACT_ONLY, allowed_values=RATELIMIT_STATUSES),
        ),
    ),
}


def get_domain(name: str) -> DomainSpec:
    """Look up a domain, raising UNKNOWN_DOMAIN for anything else."""
    domain = DOMAINS.get(name)
    if domain is None:
        raise QueryError.create(
            ErrorCode.UNKNOWN_DOMAIN,
            f"Unknown analytics domain '{name}'",
            suggestion=f"Valid domains are: {', '.join(sorted(DOMAINS))}",
        )
    return domain


# =============================================================================
# BOUNDARY PARSING
# =============================================================================

FilterGroups = Dict[str, Tuple[FilterValue, ...]]


def _coerce_operator(raw: Any, spec: FieldSpec, strict_operators: bool) -> FilterOperator:
    try:
        operator = FilterOperator(raw)
    except ValueError:
        if strict_operators:
            raise QueryError.create(
                ErrorCode.INVALID_FILTER,
                f"Unknown operator '{raw}'",
                field_name=spec.name,
                suggestion=f"Valid operators are: {', '.join(sorted(o.value for o in spec.operators))}",
            )
        logger.warning(
            f"[FILTERS] Unknown operator {raw!r} on field '{spec.name}', falling back to exact match"
        )
        return FilterOperator.IS

    if operator not in spec.operators:
        raise QueryError.create(
            ErrorCode.INVALID_FILTER,
            f"Operator '{operator.value}' is not supported",
            field_name=spec.name,
            suggestion=f"Valid operators are: {', '.join(sorted(o.value for o in spec.operators))}",
        )
    return operator


def parse_filter_value(
    spec: FieldSpec,
    raw: Mapping[str, Any],
    *,
    strict_operators: bool = False,
) -> FilterValue:
    """
    Validate one raw `{operator, value}` pair for a field.

    RAISES:
        QueryError(INVALID_FILTER): disallowed operator, bad value type,
        or a value outside the field's fixed vocabulary
    """
    operator = _coerce_operator(raw.get("operator"), spec, strict_operators)

    try:
        value = FilterValue(operator=operator, value=raw.get("value"))
    except ValidationError as e:
        raise QueryError.create(
            ErrorCode.INVALID_FILTER,
            "Filter value must be a string or a number",
            field_name=spec.name,
            details={"errors": e.errors(include_url=False)},
        )

    if spec.allowed_values is not None and value.value not in spec.allowed_values:
        raise QueryError.create(
            ErrorCode.INVALID_FILTER,
            f"Unsupported value '{value.value}'",
            field_name=spec.name,
            suggestion=f"Valid values are: {', '.join(sorted(str(v) for v in spec.allowed_values))}",
        )
    return value


def parse_filter_groups(
    domain: DomainSpec,
    raw_filters: Optional[Mapping[str, Optional[Sequence[Mapping[str, Any]]]]],
    *,
    strict_operators: bool = False,
) -> FilterGroups:
    """
    Parse raw dashboard filter state into typed filter groups.

    WHAT: Field name -> tuple of FilterValue, for known fields only.

    WHY: The only place loosely typed input is accepted. Empty or null
    groups are dropped so they never turn into predicates.

    RAISES:
        QueryError(UNKNOWN_FIELD): field not declared for the domain
        QueryError(INVALID_FILTER): see parse_filter_value
    """
    groups: FilterGroups = {}
    for name, raw_values in (raw_filters or {}).items():
        spec = domain.field(name)
        if spec is None:
            raise QueryError.create(
                ErrorCode.UNKNOWN_FIELD,
                f"Unknown filter field for domain '{domain.name}'",
                field_name=name,
                suggestion=f"Valid fields are: {', '.join(domain.field_names)}",
            )
        if not raw_values:
            continue
        groups[name] = tuple(
            parse_filter_value(spec, raw, strict_operators=strict_operators)
            for raw in raw_values
        )
    return groups
