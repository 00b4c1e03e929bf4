"""Relative time shorthand ("since") resolution.

WHAT: Turns `since` values such as "30m", "6h", "7d", "2w" or "1h30m" into an
absolute window ending at `now`.
WHY: Dashboards send either explicit bounds or a relative shorthand. The
granularity resolver only understands absolute bounds, so `since` is resolved
here first.
"""

from __future__ import annotations

import logging
import re
from typing import Optional, Tuple

from keylens.analytics.granularity import DAY_MS, HOUR_MS, MINUTE_MS, WEEK_MS, now_ms

logger = logging.getLogger(__name__)

UNIT_MS = {
    "m": MINUTE_MS,
    "h": HOUR_MS,
    "d": DAY_MS,
    "w": WEEK_MS,
}

_SEGMENT = re.compile(r"(\d+)([mhdw])")
_FULL = re.compile(r"^(?:\d+[mhdw])+$")


def parse_relative_time(since: Optional[str]) -> Optional[int]:
    """Parse a `since` shorthand into a duration in milliseconds.

    Returns None for empty, malformed or zero-length input. Never raises.
    """
    if not since:
        return None

    value = since.strip().lower()
    if not _FULL.match(value):
        logger.debug(f"[TIME_RANGE] Ignoring unparseable since={since!r}")
        return None

    total = sum(int(amount) * UNIT_MS[unit] for amount, unit in _SEGMENT.findall(value))
    return total or None


def resolve_time_window(
    start_time: Optional[int],
    end_time: Optional[int],
    since: Optional[str] = None,
    *,
    now: Optional[int] = None,
) -> Tuple[Optional[int], Optional[int]]:
    """Resolve `since` against explicit bounds.

    A parseable `since` wins over explicit bounds and yields (now - duration, now).
    Otherwise the explicit bounds are returned unchanged, possibly None, so
    that the granularity resolver applies its own defaults.
    """
    duration = parse_relative_time(since)
    if duration is None:
        return start_time, end_time

    reference = now if now is not None else now_ms()
    return reference - duration, reference
