"""Period keys for time bucketing.

Every aggregate and share is bucketed by a string key whose lexical order
is its chronological order within one granularity:

    year   2024
    month  2024-06
    week   2024-W22      (ISO-8601: Monday weeks, ISO week-numbering year)
    day    2024-06-01
    hour   2024-06-01T14

Week keys use the ISO year, which differs from the calendar year around
New Year: 2021-01-01 belongs to 2020-W53 and 2024-12-30 to 2025-W01.

Timestamps are bucketed by their own wall clock. Timezone-aware values
keep their local time; nothing is converted to UTC.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Any

import pandas as pd

PERIOD_TYPES = ("year", "month", "week", "day", "hour")

# Collections persisted in a HierarchicalAggregate, coarse to fine
HIERARCHY_PERIODS = ("year", "month", "week", "day")


def _check_period_type(period_type: str) -> None:
    if period_type not in PERIOD_TYPES:
        raise ValueError(f"Unknown period_type '{period_type}'. Expected one of {PERIOD_TYPES}")


def to_datetime(ts: Any) -> datetime:
    """Coerce a date, datetime, pandas Timestamp or ISO string to datetime.

    Raises:
        ValueError: If the value cannot be interpreted as a timestamp.
    """
    if isinstance(ts, pd.Timestamp):
        if pd.isna(ts):
            raise ValueError("Cannot bucket NaT")
        return ts.to_pydatetime()
    if isinstance(ts, datetime):
        return ts
    if isinstance(ts, date):
        return datetime(ts.year, ts.month, ts.day)
    if isinstance(ts, str):
        try:
            return datetime.fromisoformat(ts.strip().replace("Z", "+00:00"))
        except ValueError:
            parsed = pd.to_datetime(ts, errors="coerce")
            if pd.isna(parsed):
                raise ValueError(f"Cannot parse timestamp {ts!r}") from None
            return parsed.to_pydatetime()
    raise ValueError(f"Unsupported timestamp type: {type(ts).__name__}")


def period_key(ts: Any, period_type: str) -> str:
    """Return the bucket key of a timestamp at the given granularity.

    Args:
        ts: date, datetime, pandas Timestamp or ISO string.
        period_type: One of "year", "month", "week", "day", "hour".

    Returns:
        Period key string.

    Raises:
        ValueError: If period_type is unknown or ts is not a timestamp.

    Examples:
        >>> period_key("2024-06-01T14:30:00", "week")
        '2024-W22'
        >>> period_key(date(2021, 1, 1), "week")
        '2020-W53'
        >>> period_key(date(2024, 12, 30), "week")
        '2025-W01'
        >>> period_key("2024-06-01T09:05:00", "hour")
        '2024-06-01T09'
    """
    _check_period_type(period_type)
    dt = to_datetime(ts)
    if period_type == "year":
        return f"{dt.year:04d}"
    if period_type == "month":
        return f"{dt.year:04d}-{dt.month:02d}"
    if period_type == "week":
        iso_year, iso_week, _ = dt.isocalendar()
        return f"{iso_year:04d}-W{iso_week:02d}"
    if period_type == "day":
        return f"{dt.year:04d}-{dt.month:02d}-{dt.day:02d}"
    return f"{dt.year:04d}-{dt.month:02d}-{dt.day:02d}T{dt.hour:02d}"


def period_start(key: str, period_type: str) -> date:
    """Return the first calendar day covered by a period key.

    Examples:
        >>> period_start("2020-W53", "week")
        datetime.date(2020, 12, 28)
        >>> period_start("2024-06", "month")
        datetime.date(2024, 6, 1)
    """
    _check_period_type(period_type)
    if period_type == "year":
        return date(int(key), 1, 1)
    if period_type == "month":
        year, month = key.split("-")
        return date(int(year), int(month), 1)
    if period_type == "week":
        year, week = key.split("-W")
        return date.fromisocalendar(int(year), int(week), 1)
    return date.fromisoformat(key[:10])


def period_end(key: str, period_type: str) -> date:
    """Return the last calendar day covered by a period key."""
    start = period_start(key, period_type)
    if period_type == "year":
        return date(start.year, 12, 31)
    if period_type == "month":
        nxt = date(start.year + (start.month == 12), start.month % 12 + 1, 1)
        return nxt - timedelta(days=1)
    if period_type == "week":
        return start + timedelta(days=6)
    return start


def add_period_column(
    df: pd.DataFrame,
    date_col: str,
    period_type: str,
    out_col: str = "period",
) -> pd.DataFrame:
    """Return a copy of df with a period key column derived from date_col.

    Vectorised equivalent of applying period_key row by row.
    """
    _check_period_type(period_type)
    out = df.copy()
    if out.empty:
        out[out_col] = pd.Series(dtype="object")
        return out
    ts = pd.to_datetime(out[date_col])
    if period_type == "year":
        out[out_col] = ts.dt.strftime("%Y")
    elif period_type == "month":
        out[out_col] = ts.dt.strftime("%Y-%m")
    elif period_type == "week":
        iso = ts.dt.isocalendar()
        out[out_col] = (
            iso["year"].astype(int).map("{:04d}".format)
            + "-W"
            + iso["week"].astype(int).map("{:02d}".format)
        )
    elif period_type == "day":
        out[out_col] = ts.dt.strftime("%Y-%m-%d")
    else:
        out[out_col] = ts.dt.strftime("%Y-%m-%dT%H")
    return out
