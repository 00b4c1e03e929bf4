"""
Analytics Query Telemetry
=========================

**Version**: 1.0.0
**Created**: 2026-10-03
**Status**: Active

Observability for the analytics query pipeline.
Tracks every stage from request receipt to executor response.

TELEMETRY EVENTS
----------------
1. query.started - Query received
   - query_id: Unique identifier for tracing
   - domain: keys / verifications / logs / ratelimits

2. stage.started / stage.completed
   - stage: validation, key_resolution, compilation, execution
   - duration_ms, success

3. query.completed
   - total duration, granularity, row_count, matches_nothing

4. query.failed
   - error_code, error_category, error_message

Each event is logged as one structured line:

    [ANALYTICS] event=stage.completed | query_id=aq_1a2b3c | domain=logs | stage=execution | duration_ms=41.20

USAGE
-----
```python
telemetry = get_telemetry()

with telemetry.track_query(workspace_id, "logs") as ctx:
    with ctx.track_stage(Stage.COMPILATION):
        compiled = compile_filters(domain, groups)
    ctx.set_result(granularity="perMinute", row_count=len(rows))
```

RELATED FILES
-------------
- keylens/analytics/pipeline.py: Instruments every stage
- keylens/deps.py: TELEMETRY_ENABLED setting
"""

from __future__ import annotations

import logging
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field as dataclass_field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Generator, List, Optional, Union

from keylens.analytics.errors import QueryError

logger = logging.getLogger(__name__)


# =============================================================================
# ENUMS
# =============================================================================

class EventType(Enum):
    """Types of telemetry events."""
    QUERY_STARTED = "query.started"
    QUERY_COMPLETED = "query.completed"
    QUERY_FAILED = "query.failed"
    STAGE_STARTED = "stage.started"
    STAGE_COMPLETED = "stage.completed"


class Stage(Enum):
    """Pipeline stages for tracking."""
    VALIDATION = "validation"
    KEY_RESOLUTION = "key_resolution"
    COMPILATION = "compilation"
    EXECUTION = "execution"


# =============================================================================
# DATA STRUCTURES
# =============================================================================

@dataclass
class TelemetryEvent:
    """
    Single telemetry event.

    PARAMETERS:
        event_type: Category of event
        timestamp: When it happened (ISO format, UTC)
        query_id: Unique query identifier for tracing
        workspace_id: Tenant
        domain: Analytics domain
        stage: Which pipeline stage
        duration_ms: How long the operation took
        success: Whether operation succeeded
        data: Additional structured data
    """
    event_type: EventType
    timestamp: str
    query_id: str
    workspace_id: Optional[str] = None
    domain: Optional[str] = None
    stage: Optional[str] = None
    duration_ms: Optional[float] = None
    success: bool = True
    data: Dict[str, Any] = dataclass_field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_type": self.event_type.value,
            "timestamp": self.timestamp,
            "query_id": self.query_id,
            "workspace_id": self.workspace_id,
            "domain": self.domain,
            "stage": self.stage,
            "duration_ms": self.duration_ms,
            "success": self.success,
            "data": self.data,
        }

    def to_log_line(self) -> str:
        """Format as structured log line."""
        parts = [
            f"event={self.event_type.value}",
            f"query_id={self.query_id}",
        ]

        if self.domain:
            parts.append(f"domain={self.domain}")

        if self.stage:
            parts.append(f"stage={self.stage}")

        if self.duration_ms is not None:
            parts.append(f"duration_ms={self.duration_ms:.2f}")

        if not self.success:
            parts.append("success=false")

        for key in ["granularity", "row_count", "error_code", "error_category"]:
            if key in self.data:
                parts.append(f"{key}={self.data[key]}")

        return " | ".join(parts)


@dataclass
class QueryMetrics:
    """Aggregated metrics for a single query."""
    query_id: str
    start_time: float
    domain: Optional[str] = None
    end_time: Optional[float] = None
    stages: Dict[str, float] = dataclass_field(default_factory=dict)
    granularity: Optional[str] = None
    row_count: int = 0
    matches_nothing: bool = False
    success: bool = True

    @property
    def total_duration_ms(self) -> Optional[float]:
        if self.end_time is None:
            return None
        return (self.end_time - self.start_time) * 1000

    def to_dict(self) -> Dict[str, Any]:
        return {
            "query_id": self.query_id,
            "domain": self.domain,
            "total_duration_ms": self.total_duration_ms,
            "stages": self.stages,
            "granularity": self.granularity,
            "row_count": self.row_count,
            "matches_nothing": self.matches_nothing,
            "success": self.success,
        }


# =============================================================================
# QUERY CONTEXT
# =============================================================================

class QueryContext:
    """
    Context manager for tracking a single query.

    WHAT: Tracks timing and events for one query through the pipeline.

    USAGE:
        with telemetry.track_query(workspace_id, "keys") as ctx:
            with ctx.track_stage(Stage.KEY_RESOLUTION):
                resolution = await resolver.resolve(...)
    """

    def __init__(
        self,
        collector: 'TelemetryCollector',
        query_id: str,
        workspace_id: str,
        domain: Optional[str] = None,
    ):
        self.collector = collector
        self.query_id = query_id
        self.workspace_id = workspace_id
        self.domain = domain
        self.metrics = QueryMetrics(query_id=query_id, start_time=time.time(), domain=domain)
        self._failed = False
        self._failure_data: Dict[str, Any] = {}

    def emit(self, event_type: EventType, **kwargs) -> None:
        event = TelemetryEvent(
            event_type=event_type,
            timestamp=datetime.now(timezone.utc).isoformat(),
            query_id=self.query_id,
            workspace_id=self.workspace_id,
            domain=self.domain,
            **kwargs,
        )
        self.collector.record(event)

    @contextmanager
    def track_stage(self, stage: Union[Stage, str]) -> Generator[None, None, None]:
        """
        Context manager for tracking a pipeline stage.

        PARAMETERS:
            stage: Stage member or free-form stage name
        """
        name = stage.value if isinstance(stage, Stage) else stage
        started = time.time()
        self.emit(EventType.STAGE_STARTED, stage=name)

        try:
            yield
        except Exception as e:
            duration_ms = (time.time() - started) * 1000
            self.metrics.stages[name] = duration_ms
            self.emit(
                EventType.STAGE_COMPLETED,
                stage=name,
                duration_ms=duration_ms,
                success=False,
                data={"error": str(e)},
            )
            raise

        duration_ms = (time.time() - started) * 1000
        self.metrics.stages[name] = duration_ms
        self.emit(EventType.STAGE_COMPLETED, stage=name, duration_ms=duration_ms, success=True)

    def set_result(
        self,
        granularity: Optional[str] = None,
        row_count: int = 0,
        matches_nothing: bool = False,
    ) -> None:
        self.metrics.granularity = granularity
        self.metrics.row_count = row_count
        self.metrics.matches_nothing = matches_nothing

    def fail(self, error: QueryError) -> None:
        """Mark query as failed with a classified error."""
        self._failed = True
        self.metrics.success = False
        self._failure_data = {
            "error_code": error.code.value,
            "error_category": error.category.value,
            "error_message": error.message,
        }

    def __enter__(self) -> 'QueryContext':
        self.emit(EventType.QUERY_STARTED)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.metrics.end_time = time.time()
        duration_ms = self.metrics.total_duration_ms

        if exc_type is not None:
            if isinstance(exc_val, QueryError):
                self.fail(exc_val)
            else:
                self._failed = True
                self.metrics.success = False
                self._failure_data = {
                    "error_type": exc_type.__name__,
                    "error_message": str(exc_val),
                }

        if self._failed:
            self.emit(
                EventType.QUERY_FAILED,
                duration_ms=duration_ms,
                success=False,
                data=self._failure_data,
            )
        else:
            self.emit(
                EventType.QUERY_COMPLETED,
                duration_ms=duration_ms,
                success=True,
                data={
                    "granularity": self.metrics.granularity,
                    "row_count": self.metrics.row_count,
                    "matches_nothing": self.metrics.matches_nothing,
                },
            )

        self.collector.record_metrics(self.metrics)

        # Don't suppress exceptions
        return False


# =============================================================================
# TELEMETRY COLLECTOR
# =============================================================================

class TelemetryCollector:
    """
    Central telemetry collection for analytics queries.

    WHAT: Collects, logs, and buffers telemetry events and per-query metrics.

    USAGE:
        telemetry = TelemetryCollector()
        with telemetry.track_query(workspace_id, "logs") as ctx:
            ...
        telemetry.get_stats()
    """

    def __init__(self, enabled: bool = True, buffer_size: int = 1000):
        """
        PARAMETERS:
            enabled: Whether to collect telemetry
            buffer_size: Number of events/metrics to keep in memory
        """
        self.enabled = enabled
        self.buffer_size = buffer_size

        self._events: List[TelemetryEvent] = []
        self._metrics: List[QueryMetrics] = []

        self._query_count = 0
        self._error_count = 0
        self._total_duration_ms = 0.0

    def track_query(self, workspace_id: str, domain: Optional[str] = None) -> QueryContext:
        """Create a tracking context for one query."""
        return QueryContext(
            collector=self,
            query_id=self._generate_query_id(),
            workspace_id=workspace_id,
            domain=domain,
        )

    def record(self, event: TelemetryEvent) -> None:
        if not self.enabled:
            return

        log_line = f"[ANALYTICS] {event.to_log_line()}"
        if event.success:
            logger.info(log_line)
        else:
            logger.warning(log_line)

        self._events.append(event)
        if len(self._events) > self.buffer_size:
            self._events.pop(0)

        if event.event_type == EventType.QUERY_COMPLETED:
            self._query_count += 1
            if event.duration_ms:
                self._total_duration_ms += event.duration_ms

        if event.event_type == EventType.QUERY_FAILED:
            self._query_count += 1
            self._error_count += 1

    def record_metrics(self, metrics: QueryMetrics) -> None:
        if not self.enabled:
            return

        self._metrics.append(metrics)
        if len(self._metrics) > self.buffer_size:
            self._metrics.pop(0)

    def get_recent_events(self, limit: int = 100) -> List[Dict[str, Any]]:
        """Recent events, most recent first."""
        return [e.to_dict() for e in self._events[-limit:][::-1]]

    def get_recent_metrics(self, limit: int = 100) -> List[Dict[str, Any]]:
        """Recent per-query metrics, most recent first."""
        return [m.to_dict() for m in self._metrics[-limit:][::-1]]

    def get_stats(self) -> Dict[str, Any]:
        """
        Aggregated statistics.

        RETURNS:
            Dict with query count, error rate, avg duration and how often
            each granularity was chosen
        """
        avg_duration = 0.0
        error_rate = 0.0
        if self._query_count > 0:
            avg_duration = self._total_duration_ms / self._query_count
            error_rate = self._error_count / self._query_count

        granularity_counts: Dict[str, int] = {}
        for m in self._metrics:
            if m.granularity:
                granularity_counts[m.granularity] = granularity_counts.get(m.granularity, 0) + 1

        return {
            "query_count": self._query_count,
            "error_count": self._error_count,
            "error_rate": error_rate,
            "avg_duration_ms": avg_duration,
            "granularity_distribution": granularity_counts,
        }

    def reset(self) -> None:
        """Reset all telemetry data (for testing)."""
        self._events.clear()
        self._metrics.clear()
        self._query_count = 0
        self._error_count = 0
        self._total_duration_ms = 0.0

    def _generate_query_id(self) -> str:
        return f"aq_{uuid.uuid4().hex[:12]}"


# =============================================================================
# CONVENIENCE INSTANCES
# =============================================================================

_default_collector: Optional[TelemetryCollector] = None


def get_telemetry() -> TelemetryCollector:
    """Return the process-wide collector, creating it on first use."""
    global _default_collector
    if _default_collector is None:
        _default_collector = TelemetryCollector()
    return _default_collector


def set_telemetry(collector: TelemetryCollector) -> None:
    """Replace the process-wide collector (tests, custom configuration)."""
    global _default_collector
    _default_collector = collector
