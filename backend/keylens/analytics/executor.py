"""
Aggregation Executor Client
===========================

**Version**: 1.0.0
**Created**: 2026-10-03
**Status**: Active

HTTP client for the aggregation executor (the columnar store's query API).

WHAT: POSTs rendered executor params to `{base_url}/v1/{domain}/timeseries`
and returns the rows.

WHY: Keeps transport concerns (timeouts, status codes, body parsing) out of
the pipeline. Every failure is mapped to QueryError(EXECUTOR_ERROR).

RETRIES
-------
None. Aggregation queries can be expensive and the executor makes no
idempotency promise.

RESPONSE BODY
-------------
Either a JSON list of rows or an object with the rows under "data":

    [{"time": 1700000000000, "count": 12}, ...]
    {"data": [{"time": 1700000000000, "count": 12}, ...]}
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from keylens.analytics.errors import executor_failed

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0


class HttpAggregationExecutor:
    """
    Aggregation executor reached over HTTP.

    PARAMETERS:
        base_url: Executor root URL
        timeout: Per-request timeout in seconds
        transport: Optional httpx transport (tests pass httpx.MockTransport)
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    def url_for(self, domain: str) -> str:
        return f"{self.base_url}/v1/{domain}/timeseries"

    async def execute(self, domain: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        """
        Run one aggregation query.

        RETURNS:
            List of row dicts

        RAISES:
            QueryError(EXECUTOR_ERROR): timeout, transport error, non-2xx
            status, or a body that is not a row list
        """
        url = self.url_for(domain)
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                response = await client.post(url, json=params)
                response.raise_for_status()
            except httpx.TimeoutException:
                logger.warning(f"[EXECUTOR] Timeout querying {url}")
                raise executor_failed("Aggregation query timed out", url=url)
            except httpx.HTTPStatusError as e:
                logger.error(f"[EXECUTOR] {url} returned {e.response.status_code}")
                raise executor_failed(
                    "Aggregation query failed",
                    url=url,
                    status_code=e.response.status_code,
                )
            except httpx.RequestError as e:
                logger.error(f"[EXECUTOR] Error querying {url}: {e}")
                raise executor_failed("Aggregation executor unreachable", url=url)

        try:
            body = response.json()
        except ValueError:
            raise executor_failed("Aggregation executor returned invalid JSON", url=url)

        rows = body.get("data") if isinstance(body, dict) else body
        if not isinstance(rows, list):
            raise executor_failed("Aggregation executor returned an unexpected body", url=url)

        logger.debug(f"[EXECUTOR] {url} returned {len(rows)} rows")
        return rows
