"""
Analytics router
----------------
Purpose:
- Expose the analytics query pipeline over HTTP for the dashboard charts.
- `timeseries` runs the query; `compile` returns the executor params without
  executing (useful when debugging why a chart is empty).
Design choices:
- All query failures are QueryError; they are mapped to a status code here,
  in one place.
- Collaborators come from deps.py so tests swap them with dependency_overrides.
"""

import logging
from typing import Any, Dict, NoReturn, Optional

from fastapi import APIRouter, Depends, HTTPException

from keylens.analytics.errors import ErrorCategory, ErrorCode, QueryError
from keylens.analytics.pipeline import (
    AggregationExecutor,
    AnalyticsQuery,
    KeyResolver,
    compile_analytics_query,
    run_analytics_query,
)
from keylens.analytics.render import render_executor_params
from keylens.analytics.telemetry import TelemetryCollector
from keylens.deps import (
    Settings,
    get_aggregation_executor,
    get_key_resolver,
    get_settings,
    get_telemetry_collector,
)
from keylens.schemas import AnalyticsQueryRequest, ErrorResponse, TimeseriesResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/analytics", tags=["analytics"])

_ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Invalid domain, field, operator or value"},
    404: {"model": ErrorResponse, "description": "API not found or without key authentication"},
    500: {"model": ErrorResponse, "description": "Aggregation query failed"},
    503: {"model": ErrorResponse, "description": "Collaborator not configured"},
}


def status_for(error: QueryError) -> int:
    """HTTP status for a classified query error."""
    if error.code is ErrorCode.SCOPE_NOT_FOUND:
        return 404
    if error.code is ErrorCode.EXECUTOR_NOT_CONFIGURED:
        return 503
    if error.category is ErrorCategory.SCHEMA:
        return 400
    return 500


def _raise_http(error: QueryError) -> NoReturn:
    status_code = status_for(error)
    if status_code >= 500:
        logger.error(f"[ANALYTICS_API] {error} details={error.details}")
    else:
        logger.info(f"[ANALYTICS_API] Rejected query: {error}")
    raise HTTPException(status_code=status_code, detail=error.to_dict()) from error


def _to_query(domain: str, body: AnalyticsQueryRequest) -> AnalyticsQuery:
    return AnalyticsQuery(
        domain=domain,
        workspace_id=body.workspace_id,
        api_id=body.api_id,
        start_time=body.start_time,
        end_time=body.end_time,
        since=body.since,
        filters=body.raw_filters(),
    )


@router.post(
    "/{domain}/timeseries",
    response_model=TimeseriesResponse,
    response_model_by_alias=True,
    responses=_ERROR_RESPONSES,
)
async def get_timeseries(
    domain: str,
    body: AnalyticsQueryRequest,
    settings: Settings = Depends(get_settings),
    key_resolver: Optional[KeyResolver] = Depends(get_key_resolver),
    executor: Optional[AggregationExecutor] = Depends(get_aggregation_executor),
    telemetry: TelemetryCollector = Depends(get_telemetry_collector),
):
    """
    Run an analytics timeseries query.

    The granularity is picked from the window length unless the caller's
    window is absent, in which case the domain's default window applies.
    Key-scoped domains (keys, verifications) require `apiId`.
    """
    try:
        result = await run_analytics_query(
            _to_query(domain, body),
            executor=executor,
            key_resolver=key_resolver,
            telemetry=telemetry,
            strict_operators=settings.STRICT_FILTER_OPERATORS,
        )
    except QueryError as e:
        _raise_http(e)

    return TimeseriesResponse(
        granularity=result.request.granularity.value,
        start_time=result.request.start_time,
        end_time=result.request.end_time,
        data=list(result.rows),
    )


@router.post(
    "/{domain}/compile",
    responses=_ERROR_RESPONSES,
)
async def compile_query(
    domain: str,
    body: AnalyticsQueryRequest,
    settings: Settings = Depends(get_settings),
    key_resolver: Optional[KeyResolver] = Depends(get_key_resolver),
    telemetry: TelemetryCollector = Depends(get_telemetry_collector),
) -> Dict[str, Any]:
    """Return the executor params a timeseries query would send, without executing it."""
    try:
        request = await compile_analytics_query(
            _to_query(domain, body),
            key_resolver=key_resolver,
            telemetry=telemetry,
            strict_operators=settings.STRICT_FILTER_OPERATORS,
        )
    except QueryError as e:
        _raise_http(e)

    return {
        "params": render_executor_params(request),
        "matchesNothing": request.matches_nothing,
    }
