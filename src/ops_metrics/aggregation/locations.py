"""Location-level productivity aggregation.

Turns raw labor and sales snapshots into one row per (period, location):

1. pick the freshest labor and sales record per (location, calendar day)
2. take hours and wage cost from the winning labor record, falling back to
   the sum of per-team costs when the record-level cost is 0
3. take revenue from the labor record when non-zero, else from the sales
   record of the same day (sales-only days still produce a row)
4. sum the day winners into the requested period
5. recompute revenue per hour, labor cost percentage and goal status
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

import numpy as np
import pandas as pd

from ops_metrics.directory import LocationDirectory
from ops_metrics.metrics import add_derived_metrics
from ops_metrics.periods import add_period_column
from ops_metrics.records import (
    RawLaborRecord,
    RawSalesRecord,
    as_labor_frame,
    as_sales_frame,
    pick_freshest,
)

logger = logging.getLogger(__name__)

DAY_COLUMNS = [
    "location_id",
    "location_name",
    "day",
    "total_hours",
    "total_wage_cost",
    "total_revenue",
    "labor_revenue",
    "sales_revenue",
    "transaction_count",
    "record_count",
]

LOCATION_COLUMNS = [
    "period",
    "period_type",
    "location_id",
    "location_name",
    "total_hours",
    "total_wage_cost",
    "total_revenue",
    "revenue_per_hour",
    "labor_cost_percentage",
    "goal_status",
    "record_count",
    "transaction_count",
]


def _empty(columns: list[str]) -> pd.DataFrame:
    return pd.DataFrame({col: pd.Series(dtype="object") for col in columns})


def labor_winners(labor: Iterable[RawLaborRecord] | pd.DataFrame) -> pd.DataFrame:
    """Freshest labor record per (location, day) with the wage cost fallback applied."""
    df = pick_freshest(as_labor_frame(labor))
    if df.empty:
        return df
    df = df.copy()
    fallback = (df["wage_cost"] == 0) & (df["team_cost"] > 0)
    if fallback.any():
        logger.debug("Using per-team cost for %d records without wage cost", int(fallback.sum()))
    df["wage_cost"] = np.where(fallback, df["team_cost"], df["wage_cost"])
    return df


def location_days(
    labor: Iterable[RawLaborRecord] | pd.DataFrame,
    sales: Iterable[RawSalesRecord] | pd.DataFrame | None,
    directory: LocationDirectory,
) -> pd.DataFrame:
    """One row per (location, calendar day) built from the freshest records.

    Args:
        labor: Labor records or a labor frame.
        sales: Sales records, a sales frame, or None.
        directory: Location snapshot used for display names.

    Returns:
        DataFrame with DAY_COLUMNS, sorted by location and day.
    """
    labor_df = labor_winners(labor)
    sales_df = pick_freshest(as_sales_frame(sales))

    if labor_df.empty and sales_df.empty:
        return _empty(DAY_COLUMNS)

    left = pd.DataFrame(
        {
            "location_id": labor_df.get("location_id", pd.Series(dtype="object")),
            "day": labor_df.get("day", pd.Series(dtype="datetime64[ns]")),
            "total_hours": labor_df.get("hours", pd.Series(dtype="float64")),
            "total_wage_cost": labor_df.get("wage_cost", pd.Series(dtype="float64")),
            "labor_revenue": labor_df.get("revenue", pd.Series(dtype="float64")),
        }
    )
    right = pd.DataFrame(
        {
            "location_id": sales_df.get("location_id", pd.Series(dtype="object")),
            "day": sales_df.get("day", pd.Series(dtype="datetime64[ns]")),
            "sales_revenue": sales_df.get("revenue", pd.Series(dtype="float64")),
            "transaction_count": sales_df.get("transaction_count", pd.Series(dtype="int64")),
        }
    )
    left["day"] = pd.to_datetime(left["day"])
    right["day"] = pd.to_datetime(right["day"])

    days = left.merge(right, on=["location_id", "day"], how="outer")
    for col in ["total_hours", "total_wage_cost", "labor_revenue", "sales_revenue"]:
        days[col] = days[col].astype(float).fillna(0.0)
    days["transaction_count"] = days["transaction_count"].fillna(0).astype(int)

    # Labor-carried revenue wins; sales only fill a day without it
    days["total_revenue"] = np.where(
        days["labor_revenue"] != 0, days["labor_revenue"], days["sales_revenue"]
    )
    days["record_count"] = 1
    days["location_name"] = [directory.name_for(loc) for loc in days["location_id"]]

    days = days.sort_values(["location_id", "day"], kind="mergesort").reset_index(drop=True)
    logger.debug(
        "Built %d location-days from %d labor and %d sales winners",
        len(days),
        len(labor_df),
        len(sales_df),
    )
    return days[DAY_COLUMNS]


def _warn_missing_cost(df: pd.DataFrame) -> None:
    suspicious = df[(df["total_wage_cost"] == 0) & (df["total_hours"] > 0)]
    for row in suspicious.itertuples(index=False):
        logger.warning(
            "Location %s (%s) has %.2f hours but no wage cost in %s",
            row.location_name,
            row.location_id,
            row.total_hours,
            row.period,
        )


def rollup_location_days(days: pd.DataFrame, period_type: str) -> pd.DataFrame:
    """Sum location-day rows into period buckets and recompute derived metrics."""
    if days.empty:
        return _empty(LOCATION_COLUMNS)
    df = add_period_column(days, "day", period_type)
    grouped = (
        df.groupby(["period", "location_id", "location_name"], as_index=False)
        .agg(
            total_hours=("total_hours", "sum"),
            total_wage_cost=("total_wage_cost", "sum"),
            total_revenue=("total_revenue", "sum"),
            record_count=("record_count", "sum"),
            transaction_count=("transaction_count", "sum"),
        )
    )
    grouped["period_type"] = period_type
    grouped = add_derived_metrics(grouped)
    _warn_missing_cost(grouped)
    grouped = grouped.sort_values(
        ["period", "location_name"], ascending=[False, True], kind="mergesort"
    ).reset_index(drop=True)
    return grouped[LOCATION_COLUMNS]


def aggregate_locations(
    labor: Iterable[RawLaborRecord] | pd.DataFrame,
    sales: Iterable[RawSalesRecord] | pd.DataFrame | None,
    directory: LocationDirectory,
    period_type: str = "day",
    locations: Optional[Iterable[str]] = None,
) -> pd.DataFrame:
    """Aggregate labor and sales records per (period, location).

    Args:
        labor: Labor records or a labor frame.
        sales: Sales records, a sales frame, or None.
        directory: Location snapshot.
        period_type: "year", "month", "week", "day" or "hour".
        locations: Optional location ids to keep.

    Returns:
        DataFrame with LOCATION_COLUMNS, newest period first.

    Examples:
        >>> rows = aggregate_locations(labor_records, None, directory, "week")
        >>> rows[["period", "location_name", "total_hours"]].head()
    """
    days = location_days(labor, sales, directory)
    if locations is not None:
        wanted = set(locations)
        days = days[days["location_id"].isin(wanted)]
    if period_type == "hour":
        # Hour buckets use the record timestamp instead of the calendar day
        days = _hour_days(labor, directory, days)
    return rollup_location_days(days, period_type)


def _hour_days(
    labor: Iterable[RawLaborRecord] | pd.DataFrame,
    directory: LocationDirectory,
    days: pd.DataFrame,
) -> pd.DataFrame:
    """Re-key location-day rows on the winning labor record's timestamp."""
    winners = labor_winners(labor)
    if winners.empty or days.empty:
        return days
    stamps = winners[["location_id", "day", "date"]]
    out = days.merge(stamps, on=["location_id", "day"], how="left")
    out["day"] = out["date"].fillna(out["day"])
    return out.drop(columns=["date"])
