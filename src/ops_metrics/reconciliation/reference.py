"""Reference rows: location resolution and aggregation.

Reference extracts may split one location-day over several rows or files
(for example one row per shift, or a correction file next to the original
export). They are summed per (location, date) before anything is compared,
so a split day is never reported as a mismatch against a single computed
value.
"""

from __future__ import annotations

import logging

import pandas as pd

from ops_metrics.categories import normalize_team_name
from ops_metrics.cleaning import name_key
from ops_metrics.directory import LocationDirectory
from ops_metrics.reconciliation.compare import MAJOR, MISSING_LOCATION

logger = logging.getLogger(__name__)

REFERENCE_DAY_COLUMNS = [
    "location_id",
    "location",
    "date",
    "revenue",
    "hours",
    "wage_cost",
    "row_count",
    "source_files",
]

REFERENCE_WORKER_COLUMNS = [
    "location_id",
    "location",
    "date",
    "worker",
    "team",
    "worker_key",
    "team_key",
    "hours",
    "row_count",
]


def team_key(team) -> str:
    """Lookup key of a team name; empty when no team is given."""
    if team is None or (isinstance(team, float) and pd.isna(team)) or not str(team).strip():
        return ""
    return name_key(normalize_team_name(team))


def resolve_locations(
    rows: pd.DataFrame,
    directory: LocationDirectory,
) -> tuple[pd.DataFrame, list[dict]]:
    """Attach location_id to reference rows.

    Returns:
        (resolved_rows, discrepancies): rows whose location resolved, and
        one missing_location discrepancy per row that did not.
    """
    out = rows.copy()
    out["location_id"] = [directory.resolve(name) for name in out["location"]]
    unresolved = out[out["location_id"].isna()]
    discrepancies = []
    for row in unresolved.itertuples(index=False):
        discrepancies.append(
            {
                "type": MISSING_LOCATION,
                "location": row.location,
                "location_id": None,
                "date": row.date,
                "severity": MAJOR,
                "message": f"Location '{row.location}' not found in directory "
                f"({row.source_file} row {row.row_number})",
            }
        )
    if discrepancies:
        names = sorted(set(unresolved["location"]))
        logger.warning("Unresolved reference locations: %s", ", ".join(names))
    return out[out["location_id"].notna()].reset_index(drop=True), discrepancies


def aggregate_reference_days(resolved: pd.DataFrame) -> pd.DataFrame:
    """Sum resolved reference rows per (location_id, date).

    A metric stays NaN when no row of the group carries it, so "not in the
    extract" is not confused with 0.
    """
    if resolved.empty:
        return pd.DataFrame({col: pd.Series(dtype="object") for col in REFERENCE_DAY_COLUMNS})
    grouped = resolved.groupby(["location_id", "date"], as_index=False).agg(
        location=("location", "first"),
        revenue=("revenue", lambda s: s.sum(min_count=1)),
        hours=("hours", lambda s: s.sum(min_count=1)),
        wage_cost=("wage_cost", lambda s: s.sum(min_count=1)),
        row_count=("location", "size"),
        source_files=("source_file", lambda s: ", ".join(sorted(set(s)))),
    )
    split = grouped[grouped["row_count"] > 1]
    if not split.empty:
        logger.debug("Summed %d reference location-days spread over several rows", len(split))
    return grouped[REFERENCE_DAY_COLUMNS]


def reference_workers(resolved: pd.DataFrame) -> pd.DataFrame:
    """Per-worker reference hours keyed by (location, date, worker, team).

    Duplicate rows for the same key are the same shift exported twice, so
    the maximum is kept instead of the sum.
    """
    if resolved.empty or "worker" not in resolved.columns:
        return pd.DataFrame({col: pd.Series(dtype="object") for col in REFERENCE_WORKER_COLUMNS})
    named = resolved[resolved["worker"].notna() & (resolved["worker"] != "")]
    rows = named[named["hours"].notna()].copy()
    if len(rows) < len(named):
        logger.warning("Skipped %d reference worker rows without hours", len(named) - len(rows))
    if rows.empty:
        return pd.DataFrame({col: pd.Series(dtype="object") for col in REFERENCE_WORKER_COLUMNS})
    rows["worker_key"] = rows["worker"].map(name_key)
    rows["team_key"] = rows["team"].map(team_key)
    grouped = rows.groupby(["location_id", "date", "worker_key", "team_key"], as_index=False).agg(
        location=("location", "first"),
        worker=("worker", "first"),
        team=("team", "first"),
        hours=("hours", "max"),
        row_count=("worker", "size"),
    )
    dupes = int((grouped["row_count"] > 1).sum())
    if dupes:
        logger.warning("%d duplicate reference worker rows; kept the largest hours", dupes)
    return grouped[REFERENCE_WORKER_COLUMNS]
