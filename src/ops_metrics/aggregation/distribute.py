"""Division, team and worker revenue distribution.

Location revenue is not recorded per team, so it is allocated by hours:

    share = bucket_hours / total_hours * location_revenue

The computation is a pipeline of pure stages over immutable frames:

    explode_sub_entities  ->  one row per team/worker entry of a winning record
    categorize_entities   ->  add sub_team, team_category and division
    sum_bucket_hours      ->  hours and cost per (location, day, bucket)
    allocate_revenue      ->  revenue share per bucket

Allocation happens per location-day and the shares are then summed into
the requested period, so a busy Saturday's revenue follows Saturday's
hours. A day without a breakdown produces one "All" row carrying the
location totals, which keeps the sum of shares equal to the location
revenue.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

import numpy as np
import pandas as pd

from ops_metrics.aggregation.locations import labor_winners
from ops_metrics.categories import (
    ALL,
    DIVISION_BY_CATEGORY,
    DIVISION_ORDER,
    TeamCatalog,
    classify_team,
)
from ops_metrics.directory import LocationDirectory, WorkerDirectory
from ops_metrics.metrics import add_derived_metrics
from ops_metrics.periods import add_period_column
from ops_metrics.records import RawLaborRecord

logger = logging.getLogger(__name__)

ENTITY_COLUMNS = ["location_id", "day", "entity_id", "entity_name", "hours", "cost", "team_name"]

SHARE_COLUMNS = [
    "period",
    "period_type",
    "location_id",
    "location_name",
    "division",
    "team_category",
    "sub_team",
    "total_hours",
    "total_wage_cost",
    "total_revenue",
    "revenue_per_hour",
    "labor_cost_percentage",
    "goal_status",
]

WORKER_SHARE_COLUMNS = SHARE_COLUMNS[:4] + ["worker_id", "worker_name"] + SHARE_COLUMNS[4:]

MISSING_WAGE_COLUMNS = ["worker_id", "worker_name", "location_id", "location_name", "hours"]

_DIVISION_RANK = {name: i for i, name in enumerate(DIVISION_ORDER)}
_CATEGORY_BY_DIVISION = {division: category for category, division in DIVISION_BY_CATEGORY.items()}


@dataclass
class WorkerDistribution:
    """Result of the worker-level distribution.

    Attributes:
        workers: One row per (period, location, worker, sub-team).
        missing_wages: Workers excluded because no positive hourly wage
            could be resolved, one row per (worker, location).
    """

    workers: pd.DataFrame
    missing_wages: pd.DataFrame


def _empty(columns: Sequence[str]) -> pd.DataFrame:
    return pd.DataFrame({col: pd.Series(dtype="object") for col in columns})


# --------------------------------------------------------------------------- #
# Pipeline stages
# --------------------------------------------------------------------------- #


def explode_sub_entities(winners: pd.DataFrame, kind: str = "team") -> pd.DataFrame:
    """Flatten the per-team or per-worker breakdown of winning labor records.

    Args:
        winners: Freshest labor records (see locations.labor_winners).
        kind: "team" or "worker".

    Returns:
        DataFrame with ENTITY_COLUMNS; records without a breakdown
        contribute no rows.
    """
    if kind not in ("team", "worker"):
        raise ValueError(f"kind must be 'team' or 'worker', got {kind!r}")
    column = "by_team" if kind == "team" else "by_worker"
    rows = []
    if not winners.empty:
        for rec in winners[["location_id", "day", column]].itertuples(index=False):
            for stat in rec[2] or ():
                rows.append(
                    {
                        "location_id": rec[0],
                        "day": rec[1],
                        "entity_id": stat.entity_id,
                        "entity_name": stat.name,
                        "hours": float(stat.hours or 0.0),
                        "cost": float(stat.cost or 0.0),
                        "team_name": stat.team_name if kind == "worker" else stat.name,
                    }
                )
    if not rows:
        return _empty(ENTITY_COLUMNS)
    return pd.DataFrame(rows, columns=ENTITY_COLUMNS)


def categorize_entities(
    entities: pd.DataFrame,
    catalog: Optional[TeamCatalog] = None,
) -> pd.DataFrame:
    """Add sub_team, team_category and division from each row's team_name."""
    out = entities.copy()
    if out.empty:
        for col in ["sub_team", "team_category", "division"]:
            out[col] = pd.Series(dtype="object")
        return out
    cache: dict = {}
    classified = []
    for team in out["team_name"]:
        if team not in cache:
            cache[team] = classify_team(team, catalog)
        classified.append(cache[team])
    out["sub_team"] = [c.normalized_name for c in classified]
    out["team_category"] = [c.category for c in classified]
    out["division"] = [c.division for c in classified]
    return out


def sum_bucket_hours(categorized: pd.DataFrame, bucket_cols: Sequence[str]) -> pd.DataFrame:
    """Sum hours and cost per (location, day, bucket) and attach the day total.

    Adds day_hours (all buckets of that location-day) and day_cost columns.
    """
    keys = ["location_id", "day", *bucket_cols]
    if categorized.empty:
        return _empty([*keys, "hours", "cost", "day_hours", "day_cost"])
    buckets = categorized.groupby(keys, as_index=False, dropna=False).agg(
        hours=("hours", "sum"), cost=("cost", "sum")
    )
    per_day = buckets.groupby(["location_id", "day"])
    buckets["day_hours"] = per_day["hours"].transform("sum")
    buckets["day_cost"] = per_day["cost"].transform("sum")
    return buckets


def allocate_revenue(buckets: pd.DataFrame, days: pd.DataFrame) -> pd.DataFrame:
    """Allocate each location-day's revenue over its buckets by hours.

    When a day's breakdown carries no cost at all, the record-level wage
    cost is spread by hours the same way.

    Args:
        buckets: Output of sum_bucket_hours (only days with day_hours > 0).
        days: Location-day rows (locations.location_days).

    Returns:
        buckets with total_hours, total_wage_cost and total_revenue columns.
    """
    if buckets.empty:
        out = buckets.copy()
        for col in ["total_hours", "total_wage_cost", "total_revenue"]:
            out[col] = pd.Series(dtype="float64")
        return out
    totals = days[["location_id", "day", "total_revenue", "total_wage_cost"]].rename(
        columns={"total_revenue": "day_revenue", "total_wage_cost": "day_wage_cost"}
    )
    out = buckets.merge(totals, on=["location_id", "day"], how="left")
    out["day_revenue"] = out["day_revenue"].fillna(0.0)
    out["day_wage_cost"] = out["day_wage_cost"].fillna(0.0)

    weight = out["hours"] / out["day_hours"]
    out["total_hours"] = out["hours"]
    out["total_revenue"] = weight * out["day_revenue"]
    out["total_wage_cost"] = np.where(out["day_cost"] > 0, out["cost"], weight * out["day_wage_cost"])
    return out.drop(columns=["day_revenue", "day_wage_cost"])


# --------------------------------------------------------------------------- #
# Period rollup
# --------------------------------------------------------------------------- #


def _unallocated_days(days: pd.DataFrame, allocated: pd.DataFrame) -> pd.DataFrame:
    """Location-days without usable breakdown, emitted as one "All" share each."""
    if days.empty:
        return _empty(["location_id", "day", "total_hours", "total_wage_cost", "total_revenue"])
    covered = set(zip(allocated["location_id"], allocated["day"])) if not allocated.empty else set()
    mask = [(loc, day) not in covered for loc, day in zip(days["location_id"], days["day"])]
    rest = days.loc[mask, ["location_id", "day", "total_hours", "total_wage_cost", "total_revenue"]].copy()
    rest["division"] = ALL
    rest["team_category"] = ALL
    rest["sub_team"] = ALL
    return rest


def _sort_shares(df: pd.DataFrame, extra: Sequence[str] = ()) -> pd.DataFrame:
    if df.empty:
        return df
    df = df.assign(_rank=df["division"].map(_DIVISION_RANK).fillna(len(_DIVISION_RANK)))
    # period descending, then location name, division order, sub-team
    df = df.sort_values([*extra, "sub_team"], kind="mergesort") if extra else df.sort_values(
        "sub_team", kind="mergesort"
    )
    df = df.sort_values("_rank", kind="mergesort")
    df = df.sort_values("location_name", kind="mergesort")
    df = df.sort_values("period", ascending=False, kind="mergesort")
    return df.drop(columns=["_rank"]).reset_index(drop=True)


def _rollup(
    shares: pd.DataFrame,
    directory: LocationDirectory,
    period_type: str,
    bucket_cols: Sequence[str],
    columns: Sequence[str],
) -> pd.DataFrame:
    if shares.empty:
        return _empty(columns)
    df = add_period_column(shares, "day", period_type)
    keys = ["period", "location_id", *bucket_cols]
    grouped = df.groupby(keys, as_index=False, dropna=False).agg(
        total_hours=("total_hours", "sum"),
        total_wage_cost=("total_wage_cost", "sum"),
        total_revenue=("total_revenue", "sum"),
    )
    grouped["period_type"] = period_type
    grouped["location_name"] = [directory.name_for(loc) for loc in grouped["location_id"]]
    grouped = add_derived_metrics(grouped)
    extra = [c for c in bucket_cols if c not in ("division", "team_category", "sub_team")]
    return _sort_shares(grouped, extra)[list(columns)]


def _team_shares(
    winners: pd.DataFrame,
    days: pd.DataFrame,
    catalog: Optional[TeamCatalog],
    bucket_cols: Sequence[str],
) -> pd.DataFrame:
    categorized = categorize_entities(explode_sub_entities(winners, "team"), catalog)
    buckets = sum_bucket_hours(categorized, bucket_cols)
    buckets = buckets[buckets["day_hours"] > 0] if not buckets.empty else buckets
    allocated = allocate_revenue(buckets, days)
    rest = _unallocated_days(days, allocated)
    parts = [p for p in (allocated, rest) if not p.empty]
    if not parts:
        return _empty(["location_id", "day", *bucket_cols, "total_hours", "total_wage_cost", "total_revenue"])
    return pd.concat(parts, ignore_index=True)


def distribute_by_division(
    labor: Iterable[RawLaborRecord] | pd.DataFrame,
    days: pd.DataFrame,
    directory: LocationDirectory,
    period_type: str = "day",
    catalog: Optional[TeamCatalog] = None,
) -> pd.DataFrame:
    """Allocate location revenue over Food, Beverage, Management and Other.

    Args:
        labor: Labor records or frame (freshness is applied here).
        days: Location-day rows from locations.location_days for the same records.
        directory: Location snapshot.
        period_type: Bucket granularity of the output.
        catalog: Optional team-name overrides.

    Returns:
        DataFrame with SHARE_COLUMNS; team_category is the category behind
        the division and sub_team is "All".
    """
    winners = labor_winners(labor)
    shares = _team_shares(winners, days, catalog, ["division"])
    if not shares.empty:
        shares["team_category"] = shares["division"].map(_CATEGORY_BY_DIVISION).fillna(ALL)
        shares["sub_team"] = ALL
    result = _rollup(shares, directory, period_type, ["division", "team_category", "sub_team"], SHARE_COLUMNS)
    logger.info("Division distribution: %d shares at %s level", len(result), period_type)
    return result


def distribute_by_team(
    labor: Iterable[RawLaborRecord] | pd.DataFrame,
    days: pd.DataFrame,
    directory: LocationDirectory,
    period_type: str = "day",
    catalog: Optional[TeamCatalog] = None,
) -> pd.DataFrame:
    """Allocate location revenue over team categories and normalized sub-teams."""
    winners = labor_winners(labor)
    shares = _team_shares(winners, days, catalog, ["division", "team_category", "sub_team"])
    result = _rollup(shares, directory, period_type, ["division", "team_category", "sub_team"], SHARE_COLUMNS)
    logger.info("Team distribution: %d shares at %s level", len(result), period_type)
    return result


def _resolve_wages(entities: pd.DataFrame, workers: WorkerDirectory) -> pd.Series:
    """Hourly wage per row: directory wage, else implied by recorded cost."""
    wages = []
    for worker_id, hours, cost in zip(entities["entity_id"], entities["hours"], entities["cost"]):
        wage = workers.hourly_wage(worker_id)
        if wage is None and cost > 0 and hours > 0:
            wage = cost / hours
        wages.append(wage if wage is not None else np.nan)
    return pd.Series(wages, index=entities.index, dtype="float64")


def distribute_by_worker(
    labor: Iterable[RawLaborRecord] | pd.DataFrame,
    days: pd.DataFrame,
    directory: LocationDirectory,
    workers: WorkerDirectory,
    period_type: str = "day",
    catalog: Optional[TeamCatalog] = None,
) -> WorkerDistribution:
    """Allocate location revenue over individual workers.

    Worker cost is hours times hourly wage. Workers without a positive
    wage are left out of both the numerator and the denominator of the
    allocation and reported in missing_wages instead. Entries with 0
    hours are skipped.
    """
    winners = labor_winners(labor)
    entities = explode_sub_entities(winners, "worker")
    if not entities.empty:
        entities = entities[entities["hours"] > 0].copy()
    if entities.empty:
        return WorkerDistribution(_empty(WORKER_SHARE_COLUMNS), _empty(MISSING_WAGE_COLUMNS))

    # worker team from the breakdown, else from the directory
    entities["team_name"] = [
        team if team else (workers.get(wid).team if workers.get(wid) is not None else None)
        for wid, team in zip(entities["entity_id"], entities["team_name"])
    ]
    entities["wage"] = _resolve_wages(entities, workers)

    missing = entities[entities["wage"].isna() | (entities["wage"] <= 0)]
    known = entities.drop(missing.index)

    missing_wages = _empty(MISSING_WAGE_COLUMNS)
    if not missing.empty:
        missing_wages = (
            missing.groupby(["entity_id", "location_id"], as_index=False)
            .agg(worker_name=("entity_name", "first"), hours=("hours", "sum"))
            .rename(columns={"entity_id": "worker_id"})
        )
        missing_wages["location_name"] = [directory.name_for(loc) for loc in missing_wages["location_id"]]
        missing_wages = missing_wages[MISSING_WAGE_COLUMNS]
        logger.warning(
            "%d workers without hourly wage excluded from worker distribution",
            len(missing_wages),
        )

    if known.empty:
        return WorkerDistribution(_empty(WORKER_SHARE_COLUMNS), missing_wages)

    known = known.assign(cost=known["hours"] * known["wage"])
    categorized = categorize_entities(known, catalog).rename(
        columns={"entity_id": "worker_id", "entity_name": "worker_name"}
    )
    bucket_cols = ["worker_id", "worker_name", "division", "team_category", "sub_team"]
    buckets = sum_bucket_hours(categorized, bucket_cols)
    allocated = allocate_revenue(buckets, days)
    result = _rollup(allocated, directory, period_type, bucket_cols, WORKER_SHARE_COLUMNS)
    logger.info(
        "Worker distribution: %d shares, %d workers missing wages",
        len(result),
        len(missing_wages),
    )
    return WorkerDistribution(result, missing_wages)
