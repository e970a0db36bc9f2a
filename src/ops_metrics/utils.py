"""Shared utilities for the ops_metrics pipelines.

This module provides the date helpers shared by the aggregation and
reconciliation modules:

- Date parsing: strict ISO parsing of run arguments
- Windowing: splitting a requested range into bounded chunks
- Interval bookkeeping: merging covered windows
- Slugs: filesystem-safe subject identifiers

Examples:
    >>> from datetime import date
    >>> from ops_metrics.utils import iter_chunks
    >>> list(iter_chunks(date(2024, 6, 1), date(2024, 6, 3), max_days=2))
    [(datetime.date(2024, 6, 1), datetime.date(2024, 6, 2)), (datetime.date(2024, 6, 3), datetime.date(2024, 6, 3))]
"""

from __future__ import annotations

import re
import unicodedata
from collections.abc import Iterable
from datetime import date, datetime, timedelta


def parse_date(s: str | date) -> date:
    """Parse a date string in YYYY-MM-DD format.

    Dates (and datetimes) pass through unchanged, truncated to the day.

    Raises:
        ValueError: If the date string is not in YYYY-MM-DD format.

    Examples:
        >>> parse_date("2024-06-01")
        datetime.date(2024, 6, 1)
    """
    if isinstance(s, datetime):
        return s.date()
    if isinstance(s, date):
        return s
    return datetime.strptime(s, "%Y-%m-%d").date()


def format_duration(seconds: float) -> str:
    """Format a duration in seconds as "1m 30.5s" or "45.2s"."""
    mins, secs = divmod(seconds, 60.0)
    if mins >= 1:
        return f"{int(mins)}m {secs:04.1f}s"
    return f"{secs:.1f}s"


def iter_chunks(start: date, end: date, max_days: int = 31) -> Iterable[tuple[date, date]]:
    """Yield date windows covering a range, each at most max_days long.

    Windows are inclusive on both ends, do not overlap, and the last one
    may be shorter.

    Args:
        start: First day of the range.
        end: Last day of the range.
        max_days: Maximum number of days per window.

    Yields:
        (window_start, window_end) tuples in chronological order.

    Raises:
        ValueError: If max_days is not positive.
    """
    if max_days < 1:
        raise ValueError(f"max_days must be positive, got {max_days}")
    cur = start
    step = timedelta(days=max_days)
    while cur <= end:
        chunk_end = min(cur + step - timedelta(days=1), end)
        yield cur, chunk_end
        cur = chunk_end + timedelta(days=1)


def count_chunks(start: date, end: date, max_days: int = 31) -> int:
    """Number of windows iter_chunks will yield for the same arguments."""
    if end < start:
        return 0
    days = (end - start).days + 1
    return -(-days // max_days)


def merge_intervals(intervals: list[tuple[date, date]]) -> list[tuple[date, date]]:
    """Merge overlapping or touching date intervals into a sorted list.

    Examples:
        >>> from datetime import date
        >>> merge_intervals([(date(2024, 6, 8), date(2024, 6, 9)),
        ...                  (date(2024, 6, 1), date(2024, 6, 7))])
        [(datetime.date(2024, 6, 1), datetime.date(2024, 6, 9))]
    """
    if not intervals:
        return []
    ordered = sorted(intervals, key=lambda x: x[0])
    merged: list[tuple[date, date]] = []
    cur_start, cur_end = ordered[0]
    for s, e in ordered[1:]:
        if s <= cur_end + timedelta(days=1):
            cur_end = max(cur_end, e)
        else:
            merged.append((cur_start, cur_end))
            cur_start, cur_end = s, e
    merged.append((cur_start, cur_end))
    return merged


def slugify(value: str) -> str:
    """Convert a subject identifier into a filesystem-safe slug.

    Examples:
        >>> slugify("location:Bar Bea")
        'location-bar-bea'
        >>> slugify("product:Café au lait")
        'product-cafe-au-lait'
    """
    value = unicodedata.normalize("NFKD", value)
    value = "".join(ch for ch in value if not unicodedata.combining(ch))
    value = re.sub(r"[^\w\s:-]", "", value.lower(), flags=re.U)
    value = re.sub(r"[:\-\s]+", "-", value, flags=re.U).strip("-_")
    return value or "unknown"
