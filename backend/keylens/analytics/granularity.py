"""
Timeseries Granularity Resolver
===============================

**Version**: 1.0.0
**Created**: 2026-10-02
**Status**: Active

Picks the bucket size for a time-bucketed aggregation and normalizes the
requested time window.

WHY THIS FILE EXISTS
--------------------
Every chart endpoint needs the same answer to "how wide is one data point?".
When each router computes it on its own, the thresholds drift apart and the
same time range renders with different bucket sizes depending on which page
asked. This module is the single source of truth.

CONTEXTS
--------
Two contexts exist, each with its own defaults and its own ladder:

    forRegular:
        Logs, ratelimits, keys overview. Minute-to-day buckets.
        Default window: 1 hour, default granularity: perMinute.

    forVerifications:
        Key verification charts. Hour-to-quarter buckets.
        Default window: 1 day, default granularity: perHour.

The ladders are two separate constant tables. They share no
thresholds and are tested independently.

LADDER RULE
-----------
Walk the ladder from coarsest to finest and take the FIRST threshold the
range meets or exceeds. If none match, use the finest granularity of the
context.

RELATED FILES
-------------
- keylens/analytics/time_range.py: Resolves `since` before this module runs
- keylens/analytics/assembler.py: Merges the result into the executor request
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple

logger = logging.getLogger(__name__)


# =============================================================================
# TIME CONSTANTS (milliseconds)
# =============================================================================

MINUTE_MS = 60 * 1000
HOUR_MS = 60 * MINUTE_MS
DAY_MS = 24 * HOUR_MS
WEEK_MS = 7 * DAY_MS
MONTH_MS = 30 * DAY_MS
QUARTER_MS = 90 * DAY_MS
YEAR_MS = 365 * DAY_MS


# =============================================================================
# ENUMS
# =============================================================================

class GranularityContext(Enum):
    """Selects which threshold table and defaults apply."""
    FOR_REGULAR = "forRegular"
    FOR_VERIFICATIONS = "forVerifications"


class Granularity(Enum):
    """
    Bucket sizes, declared from finest to coarsest.

    WHAT: The time span represented by one point of an aggregated timeseries.

    WHY: Declaration order doubles as the coarseness order, so callers can
    compare two granularities with `rank` instead of string matching.

    NOTE: Month and quarter are nominal (30 and 90 days). The executor
    aligns them to calendar boundaries on its side.
    """
    PER_MINUTE = "perMinute"
    PER_5_MINUTES = "per5Minutes"
    PER_15_MINUTES = "per15Minutes"
    PER_30_MINUTES = "per30Minutes"
    PER_HOUR = "perHour"
    PER_2_HOURS = "per2Hours"
    PER_4_HOURS = "per4Hours"
    PER_6_HOURS = "per6Hours"
    PER_12_HOURS = "per12Hours"
    PER_DAY = "perDay"
    PER_3_DAYS = "per3Days"
    PER_WEEK = "perWeek"
    PER_MONTH = "perMonth"
    PER_QUARTER = "perQuarter"

    @property
    def rank(self) -> int:
        """Position in the finest → coarsest order."""
        return _GRANULARITY_ORDER.index(self)

    @property
    def bucket_ms(self) -> int:
        """Nominal bucket width in milliseconds."""
        return _BUCKET_MS[self]


_GRANULARITY_ORDER: Tuple[Granularity, ...] = tuple(Granularity)

_BUCKET_MS: Dict[Granularity, int] = {
    Granularity.PER_MINUTE: MINUTE_MS,
    Granularity.PER_5_MINUTES: 5 * MINUTE_MS,
    Granularity.PER_15_MINUTES: 15 * MINUTE_MS,
    Granularity.PER_30_MINUTES: 30 * MINUTE_MS,
    Granularity.PER_HOUR: HOUR_MS,
    Granularity.PER_2_HOURS: 2 * HOUR_MS,
    Granularity.PER_4_HOURS: 4 * HOUR_MS,
    Granularity.PER_6_HOURS: 6 * HOUR_MS,
    Granularity.PER_12_HOURS: 12 * HOUR_MS,
    Granularity.PER_DAY: DAY_MS,
    Granularity.PER_3_DAYS: 3 * DAY_MS,
    Granularity.PER_WEEK: WEEK_MS,
    Granularity.PER_MONTH: MONTH_MS,
    Granularity.PER_QUARTER: QUARTER_MS,
}


# =============================================================================
# THRESHOLD TABLES
# =============================================================================

# (minimum range in ms, granularity), ordered coarsest → finest.
REGULAR_LADDER: Tuple[Tuple[int, Granularity], ...] = (
    (WEEK_MS, Granularity.PER_DAY),
    (3 * DAY_MS, Granularity.PER_6_HOURS),
    (DAY_MS, Granularity.PER_4_HOURS),
    (16 * HOUR_MS, Granularity.PER_2_HOURS),
    (12 * HOUR_MS, Granularity.PER_HOUR),
    (8 * HOUR_MS, Granularity.PER_30_MINUTES),
    (4 * HOUR_MS, Granularity.PER_15_MINUTES),
    (2 * HOUR_MS, Granularity.PER_5_MINUTES),
)
REGULAR_FINEST = Granularity.PER_MINUTE

VERIFICATIONS_LADDER: Tuple[Tuple[int, Granularity], ...] = (
    (YEAR_MS, Granularity.PER_QUARTER),
    (QUARTER_MS, Granularity.PER_MONTH),
    (MONTH_MS, Granularity.PER_WEEK),
    (14 * DAY_MS, Granularity.PER_3_DAYS),
    (WEEK_MS, Granularity.PER_DAY),
    (3 * DAY_MS, Granularity.PER_12_HOURS),
    (2 * DAY_MS, Granularity.PER_6_HOURS),
    (36 * HOUR_MS, Granularity.PER_2_HOURS),
)
VERIFICATIONS_FINEST = Granularity.PER_HOUR


@dataclass(frozen=True)
class ContextDefaults:
    """Default window and bucket used when the caller gives no bounds."""
    duration_ms: int
    granularity: Granularity
    ladder: Tuple[Tuple[int, Granularity], ...]
    finest: Granularity


CONTEXT_DEFAULTS: Dict[GranularityContext, ContextDefaults] = {
    GranularityContext.FOR_REGULAR: ContextDefaults(
        duration_ms=HOUR_MS,
        granularity=Granularity.PER_MINUTE,
        ladder=REGULAR_LADDER,
        finest=REGULAR_FINEST,
    ),
    GranularityContext.FOR_VERIFICATIONS: ContextDefaults(
        duration_ms=DAY_MS,
        granularity=Granularity.PER_HOUR,
        ladder=VERIFICATIONS_LADDER,
        finest=VERIFICATIONS_FINEST,
    ),
}


# =============================================================================
# RESULT
# =============================================================================

@dataclass(frozen=True)
class GranularityResult:
    """
    Resolved bucket size plus the normalized window.

    PARAMETERS:
        granularity: Bucket size for the aggregation
        start_time: Window start in epoch ms (always set)
        end_time: Window end in epoch ms (always set)
        context: Context the ladder was taken from
    """
    granularity: Granularity
    start_time: int
    end_time: int
    context: GranularityContext

    @property
    def time_range_ms(self) -> int:
        return self.end_time - self.start_time

    def to_dict(self) -> Dict:
        return {
            "granularity": self.granularity.value,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "context": self.context.value,
        }


# =============================================================================
# RESOLVER
# =============================================================================

def now_ms() -> int:
    """Current wall clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def select_granularity(context: GranularityContext, time_range_ms: int) -> Granularity:
    """
    Pick a bucket size for a range using the context's ladder.

    WHAT: First threshold met or exceeded, scanning coarsest → finest.

    RETURNS:
        The matching granularity, or the context's finest one when the range
        is below every threshold (this includes zero and negative ranges).
    """
    defaults = CONTEXT_DEFAULTS[context]
    for threshold_ms, granularity in defaults.ladder:
        if time_range_ms >= threshold_ms:
            return granularity
    return defaults.finest


def resolve_granularity(
    context: GranularityContext,
    start_time: Optional[int] = None,
    end_time: Optional[int] = None,
    *,
    now: Optional[int] = None,
) -> GranularityResult:
    """
    Resolve granularity and fill in missing window bounds.

    WHAT: The single entry point every chart query goes through.

    WHY: Keeps defaults and thresholds identical for every caller. The
    function is total: negative, zero and huge ranges all produce a result.

    PARAMETERS:
        context: Which ladder and defaults to use
        start_time: Window start in epoch ms, or None
        end_time: Window end in epoch ms, or None
        now: Reference "now" in epoch ms (defaults to the wall clock)

    RETURNS:
        GranularityResult with both bounds set

    EXAMPLE:
        result = resolve_granularity(
            GranularityContext.FOR_REGULAR,
            start_time=now - 3 * HOUR_MS,
            end_time=now,
        )
        result.granularity  # Granularity.PER_5_MINUTES
    """
    reference = now if now is not None else now_ms()
    defaults = CONTEXT_DEFAULTS[context]

    if start_time is None and end_time is None:
        return GranularityResult(
            granularity=defaults.granularity,
            start_time=reference - defaults.duration_ms,
            end_time=reference,
            context=context,
        )

    effective_end = end_time if end_time is not None else reference
    effective_start = start_time if start_time is not None else effective_end - defaults.duration_ms

    granularity = select_granularity(context, effective_end - effective_start)
    logger.debug(
        f"[GRANULARITY] context={context.value} range_ms={effective_end - effective_start} "
        f"granularity={granularity.value}"
    )

    return GranularityResult(
        granularity=granularity,
        start_time=effective_start,
        end_time=effective_end,
        context=context,
    )
