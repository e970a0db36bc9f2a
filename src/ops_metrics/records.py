"""Raw record types, their DataFrame form and freshness precedence.

The labor platform and the POS both re-send snapshots of the same business
day. Every snapshot is kept as a separate record; the most recently created
one per (location, calendar day) is authoritative. pick_freshest is the one
primitive implementing that rule for every record kind.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional, Sequence

import pandas as pd

logger = logging.getLogger(__name__)

LABOR_COLUMNS = [
    "record_id",
    "location_id",
    "date",
    "day",
    "created_at",
    "hours",
    "wage_cost",
    "revenue",
    "team_cost",
    "by_team",
    "by_worker",
]

SALES_COLUMNS = [
    "record_id",
    "location_id",
    "date",
    "day",
    "created_at",
    "revenue",
    "transaction_count",
    "products",
]

FRESHNESS_KEYS = ["location_id", "day"]


@dataclass(frozen=True)
class SubEntityStat:
    """Hours and cost of one team or worker inside a labor record."""

    entity_id: str
    name: str
    hours: float = 0.0
    cost: float = 0.0
    team_name: Optional[str] = None


@dataclass(frozen=True)
class ProductLine:
    """Sales of one product inside a sales record."""

    product_name: str
    quantity: float = 0.0
    revenue: float = 0.0
    transaction_count: int = 0


@dataclass(frozen=True)
class RawLaborRecord:
    """One labor snapshot for a location and business day.

    Attributes:
        location_id: Location the snapshot belongs to.
        date: Business day (time of day allowed).
        created_at: When the snapshot was produced; decides freshness.
        hours: Total hours worked.
        wage_cost: Total wage cost; 0 means "not provided".
        revenue: Revenue imported onto the labor snapshot (may be 0).
        by_team: Per-team breakdown, possibly empty.
        by_worker: Per-worker breakdown, possibly empty.
        record_id: Source identifier, used in error messages only.
    """

    location_id: str
    date: datetime
    created_at: Optional[datetime] = None
    hours: float = 0.0
    wage_cost: float = 0.0
    revenue: float = 0.0
    by_team: tuple[SubEntityStat, ...] = ()
    by_worker: tuple[SubEntityStat, ...] = ()
    record_id: Optional[str] = None


@dataclass(frozen=True)
class RawSalesRecord:
    """One sales snapshot for a location and business day."""

    location_id: str
    date: datetime
    created_at: Optional[datetime] = None
    revenue: float = 0.0
    transaction_count: int = 0
    products: tuple[ProductLine, ...] = ()
    record_id: Optional[str] = None


def _describe(record: RawLaborRecord | RawSalesRecord) -> str:
    return record.record_id or f"{record.location_id or '?'}@{record.date or '?'}"


def split_valid(
    records: Iterable[RawLaborRecord | RawSalesRecord],
    kind: str,
) -> tuple[list, list[str]]:
    """Separate structurally valid records from those missing location or date.

    Returns:
        (valid_records, error_messages)
    """
    valid = []
    errors: list[str] = []
    for record in records:
        if not record.location_id:
            errors.append(f"{kind} record {_describe(record)}: missing location")
        elif record.date is None or pd.isna(record.date):
            errors.append(f"{kind} record {_describe(record)}: missing date")
        else:
            valid.append(record)
    if errors:
        logger.warning("Skipped %d structurally invalid %s records", len(errors), kind)
    return valid, errors


def _naive(series: pd.Series) -> pd.Series:
    """Parse to datetime64 and drop tz info, keeping the local wall clock."""
    parsed = pd.to_datetime(series, errors="coerce")
    if getattr(parsed.dt, "tz", None) is not None:
        parsed = parsed.dt.tz_localize(None)
    return parsed


def _mixed_naive(values: Sequence) -> pd.Series:
    """Wall-clock datetimes from a list that may mix aware and naive values."""
    cleaned = [
        v.replace(tzinfo=None) if isinstance(v, datetime) and v.tzinfo is not None else v
        for v in values
    ]
    return _naive(pd.Series(cleaned, dtype="object"))


def labor_frame(records: Sequence[RawLaborRecord]) -> pd.DataFrame:
    """Convert labor records into a DataFrame with LABOR_COLUMNS.

    team_cost holds the sum of per-team costs, used as the wage cost
    fallback when the record-level wage cost is 0.
    """
    if not records:
        return pd.DataFrame({col: pd.Series(dtype="object") for col in LABOR_COLUMNS})
    df = pd.DataFrame(
        {
            "record_id": [r.record_id for r in records],
            "location_id": [r.location_id for r in records],
            "date": _mixed_naive([r.date for r in records]),
            "created_at": _mixed_naive([r.created_at for r in records]),
            "hours": [float(r.hours or 0.0) for r in records],
            "wage_cost": [float(r.wage_cost or 0.0) for r in records],
            "revenue": [float(r.revenue or 0.0) for r in records],
            "team_cost": [sum(float(t.cost or 0.0) for t in r.by_team) for r in records],
            "by_team": [tuple(r.by_team) for r in records],
            "by_worker": [tuple(r.by_worker) for r in records],
        }
    )
    df["day"] = df["date"].dt.normalize()
    return df[LABOR_COLUMNS]


def sales_frame(records: Sequence[RawSalesRecord]) -> pd.DataFrame:
    """Convert sales records into a DataFrame with SALES_COLUMNS."""
    if not records:
        return pd.DataFrame({col: pd.Series(dtype="object") for col in SALES_COLUMNS})
    df = pd.DataFrame(
        {
            "record_id": [r.record_id for r in records],
            "location_id": [r.location_id for r in records],
            "date": _mixed_naive([r.date for r in records]),
            "created_at": _mixed_naive([r.created_at for r in records]),
            "revenue": [float(r.revenue or 0.0) for r in records],
            "transaction_count": [int(r.transaction_count or 0) for r in records],
            "products": [tuple(r.products) for r in records],
        }
    )
    df["day"] = df["date"].dt.normalize()
    return df[SALES_COLUMNS]


def pick_freshest(
    df: pd.DataFrame,
    keys: Sequence[str] = FRESHNESS_KEYS,
    order_by: str = "created_at",
) -> pd.DataFrame:
    """Keep only the most recently created row per key.

    Rows without a creation timestamp lose against any timestamped row.
    Among equal timestamps the row appearing last in the input wins.

    Args:
        df: Records frame.
        keys: Columns identifying one logical record.
        order_by: Timestamp column deciding precedence.

    Returns:
        A new frame with one row per key, index reset.

    Examples:
        >>> df = pd.DataFrame({
        ...     "location_id": ["bea", "bea"],
        ...     "day": pd.to_datetime(["2024-06-01", "2024-06-01"]),
        ...     "created_at": pd.to_datetime(["2024-06-01 09:00", "2024-06-01 14:00"]),
        ...     "hours": [8.0, 9.0],
        ... })
        >>> pick_freshest(df)["hours"].tolist()
        [9.0]
    """
    if df.empty:
        return df.copy()
    missing = [col for col in [*keys, order_by] if col not in df.columns]
    if missing:
        raise KeyError(f"pick_freshest: missing columns {missing}")
    ordered = df.sort_values(order_by, kind="mergesort", na_position="first")
    winners = ordered.drop_duplicates(subset=list(keys), keep="last")
    dropped = len(df) - len(winners)
    if dropped:
        logger.debug("Freshness: kept %d of %d rows (%d superseded)", len(winners), len(df), dropped)
    return winners.sort_values(list(keys), kind="mergesort").reset_index(drop=True)


def as_labor_frame(records: Iterable[RawLaborRecord] | pd.DataFrame) -> pd.DataFrame:
    """Accept labor records or an already built labor frame."""
    if isinstance(records, pd.DataFrame):
        return records
    return labor_frame(list(records))


def as_sales_frame(records: Iterable[RawSalesRecord] | pd.DataFrame | None) -> pd.DataFrame:
    """Accept sales records, a sales frame or None (no sales source)."""
    if records is None:
        return sales_frame([])
    if isinstance(records, pd.DataFrame):
        return records
    return sales_frame(list(records))
