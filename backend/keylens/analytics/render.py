"""Render an ExecutorRequest into the aggregation executor's parameter dict.

Shape:

    {
        "workspaceId": "ws_1",
        "keyspaceId": "ks_1",            # key-scoped domains only
        "startTime": 1700000000000,
        "endTime": 1700003600000,
        "granularity": "perMinute",
        "keyIds": [{"operator": "is", "value": "key_1"}],
        "outcomes": [{"operator": "is", "value": "VALID"}],
        "statusCodes": [404, 500],        # `values` shaped field
        ...
    }

Every executor-side field of the domain is present; fields without filters
render as None. An empty key filter renders as [].
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from keylens.analytics.assembler import ExecutorRequest
from keylens.analytics.filters import KEY_ID_FIELD, ExecutorShape, FieldSpec
from keylens.analytics.predicates import Leaf, ValueIn


def render_field(spec: FieldSpec, predicates: Sequence[Leaf]) -> Optional[List[Any]]:
    """Render one field's compiled predicates in the field's executor shape."""
    if not predicates:
        return None

    rendered: List[Any] = []
    for node in predicates:
        if isinstance(node, ValueIn):
            if spec.shape is ExecutorShape.VALUES:
                rendered.extend(node.values)
            else:
                rendered.extend({"operator": node.operator.value, "value": v} for v in node.values)
        elif spec.shape is ExecutorShape.PAIRS:
            rendered.append({"operator": node.operator.value, "value": node.value})
    return rendered or None


def render_executor_params(request: ExecutorRequest) -> Dict[str, Any]:
    params: Dict[str, Any] = {"workspaceId": request.workspace_id}
    if request.domain.key_scoped:
        params["keyspaceId"] = request.keyspace_id

    params["startTime"] = request.start_time
    params["endTime"] = request.end_time
    params["granularity"] = request.granularity.value

    for spec in request.domain.fields:
        if not spec.sent_to_executor:
            continue
        if spec.name == KEY_ID_FIELD:
            params[spec.executor_param] = (
                None if request.key_filter is None
                else [item.to_dict() for item in request.key_filter]
            )
            continue
        params[spec.executor_param] = render_field(spec, request.filters.get(spec.name))

    return params
