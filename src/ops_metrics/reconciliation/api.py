"""Public API for cross-source reconciliation.

Reference extracts (spreadsheets curated by hand) are compared with the
persisted day-level aggregates and with per-worker hours recomputed from
the raw labor snapshots. Every reference entry yields verifications; every
disagreement yields a classified discrepancy. Nothing is written.

The in-memory building blocks (reconcile_days, reconcile_workers,
summarize) work on DataFrames only, without reading or writing files.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import TYPE_CHECKING, Iterable, Optional, Union

import numpy as np
import pandas as pd

from ops_metrics.aggregation.distribute import explode_sub_entities
from ops_metrics.aggregation.hierarchy import LOCATION_SUBJECT, subject_id_for
from ops_metrics.aggregation.locations import labor_winners
from ops_metrics.cleaning import name_key
from ops_metrics.directory import LocationDirectory, WorkerDirectory
from ops_metrics.exceptions import StoreError, StoreUnavailableError
from ops_metrics.metrics import labor_cost_percentage, revenue_per_hour
from ops_metrics.reconciliation.compare import (
    MAJOR,
    MISMATCH_TYPE_BY_CHECK,
    MISSING_DATA,
    WORKER_NOT_FOUND,
    compare,
    has_value,
)
from ops_metrics.reconciliation.config import DEFAULT_TOLERANCES, Tolerances
from ops_metrics.reconciliation.reference import (
    aggregate_reference_days,
    reference_workers,
    resolve_locations,
    team_key,
)
from ops_metrics.records import split_valid
from ops_metrics.sources import FileRawEventReader, load_reference_rows
from ops_metrics.store import AggregateStore, JsonFileStore

if TYPE_CHECKING:
    from ops_metrics.config import DataPaths
    from ops_metrics.records import RawLaborRecord

logger = logging.getLogger(__name__)

DATE_FILTERS = ("all", "this-week", "this-month", "last-month", "this-year", "last-year")

VERIFICATION_COLUMNS = [
    "check",
    "location",
    "location_id",
    "date",
    "worker",
    "team",
    "reference_value",
    "computed_value",
    "difference",
    "percent_diff",
    "is_match",
    "severity",
    "found",
]

DISCREPANCY_COLUMNS = [
    "type",
    "location",
    "location_id",
    "date",
    "worker",
    "team",
    "reference_value",
    "computed_value",
    "difference",
    "percent_diff",
    "excel_hours",
    "db_hours",
    "severity",
    "message",
]

COMPUTED_DAY_COLUMNS = ["location_id", "date", "revenue", "hours", "wage_cost"]
COMPUTED_WORKER_COLUMNS = ["location_id", "date", "worker_key", "team_key", "worker", "team", "hours"]


@dataclass
class ReconciliationResult:
    """Result of a reconciliation run.

    Attributes:
        verifications: One row per checked metric (see VERIFICATION_COLUMNS).
        discrepancies: One row per classified disagreement.
        summary: Counts derived from the verifications.
        by_date: Per-date verification counts.
        errors: Reference rows or files that could not be used, and
            stored documents that could not be read.
    """

    verifications: pd.DataFrame
    discrepancies: pd.DataFrame
    summary: dict
    by_date: pd.DataFrame
    errors: list[str] = field(default_factory=list)


# --------------------------------------------------------------------------- #
# Date filters
# --------------------------------------------------------------------------- #


def resolve_date_filter(
    date_filter: Union[str, tuple[date, date]],
    today: Optional[date] = None,
) -> Optional[tuple[date, date]]:
    """Turn a named filter into an inclusive (start, end) range.

    Returns None for "all". Weeks start on Monday.

    Examples:
        >>> resolve_date_filter("last-month", date(2024, 3, 15))
        (datetime.date(2024, 2, 1), datetime.date(2024, 2, 29))

    Raises:
        ValueError: If the filter name is unknown.
    """
    if isinstance(date_filter, tuple):
        return date_filter
    today = today or date.today()
    if date_filter == "all":
        return None
    if date_filter == "this-week":
        start = today - timedelta(days=today.weekday())
        return start, start + timedelta(days=6)
    if date_filter == "this-month":
        start = today.replace(day=1)
        nxt = date(start.year + (start.month == 12), start.month % 12 + 1, 1)
        return start, nxt - timedelta(days=1)
    if date_filter == "last-month":
        end = today.replace(day=1) - timedelta(days=1)
        return end.replace(day=1), end
    if date_filter == "this-year":
        return date(today.year, 1, 1), date(today.year, 12, 31)
    if date_filter == "last-year":
        return date(today.year - 1, 1, 1), date(today.year - 1, 12, 31)
    raise ValueError(f"Unknown date filter '{date_filter}'. Must be one of {DATE_FILTERS}.")


def filter_rows(rows: pd.DataFrame, window: Optional[tuple[date, date]]) -> pd.DataFrame:
    if window is None or rows.empty:
        return rows
    start, end = (pd.Timestamp(d) for d in window)
    dates = pd.to_datetime(rows["date"])
    return rows[(dates >= start) & (dates <= end)].reset_index(drop=True)


# --------------------------------------------------------------------------- #
# Computed side
# --------------------------------------------------------------------------- #


def computed_days_from_store(
    store: AggregateStore,
    location_ids: Iterable[str],
    start: date,
    end: date,
    errors: Optional[list[str]] = None,
) -> pd.DataFrame:
    """Load day entries of the given locations within [start, end] in one pass.

    A corrupt subject document is logged, appended to errors and skipped;
    StoreUnavailableError propagates.
    """
    subject_ids = [subject_id_for(LOCATION_SUBJECT, loc) for loc in sorted(set(location_ids))]
    docs = {}
    for subject_id in subject_ids:
        try:
            doc = store.get(subject_id)
        except StoreUnavailableError:
            raise
        except StoreError as e:
            logger.error("Skipping %s: %s", subject_id, e)
            if errors is not None:
                errors.append(f"{subject_id}: {e}")
            continue
        if doc is not None:
            docs[subject_id] = doc
    lo, hi = start.isoformat(), end.isoformat()
    rows = []
    for doc in docs.values():
        for key, entry in doc.by_day.items():
            if not (lo <= key <= hi):
                continue
            for loc in entry.by_location.values():
                rows.append(
                    {
                        "location_id": loc.location_id,
                        "date": pd.Timestamp(key),
                        "revenue": loc.revenue,
                        "hours": loc.quantity,
                        "wage_cost": loc.cost,
                    }
                )
    logger.debug("Loaded %d computed day entries for %d subjects", len(rows), len(docs))
    if not rows:
        return pd.DataFrame({col: pd.Series(dtype="object") for col in COMPUTED_DAY_COLUMNS})
    return pd.DataFrame(rows, columns=COMPUTED_DAY_COLUMNS)


def computed_worker_days(
    labor: Iterable[RawLaborRecord] | pd.DataFrame,
    workers: Optional[WorkerDirectory] = None,
) -> pd.DataFrame:
    """Per-worker hours per (location, day) from the freshest labor records."""
    entities = explode_sub_entities(labor_winners(labor), "worker")
    if entities.empty:
        return pd.DataFrame({col: pd.Series(dtype="object") for col in COMPUTED_WORKER_COLUMNS})
    workers = workers or WorkerDirectory()
    names = []
    teams = []
    for wid, name, team in zip(entities["entity_id"], entities["entity_name"], entities["team_name"]):
        known = workers.get(wid)
        # breakdowns that carry only an id fall back to name == id
        if known is not None and (not name or name == wid):
            name = known.name
        if not team and known is not None:
            team = known.team
        names.append(name)
        teams.append(team)
    out = pd.DataFrame(
        {
            "location_id": entities["location_id"],
            "date": pd.to_datetime(entities["day"]),
            "worker_key": [name_key(n) for n in names],
            "team_key": [team_key(t) for t in teams],
            "worker": names,
            "team": teams,
            "hours": entities["hours"].astype(float),
        }
    )
    return out.groupby(
        ["location_id", "date", "worker_key", "team_key"], as_index=False, dropna=False
    ).agg(worker=("worker", "first"), team=("team", "first"), hours=("hours", "sum"))[
        COMPUTED_WORKER_COLUMNS
    ]


# --------------------------------------------------------------------------- #
# Comparison
# --------------------------------------------------------------------------- #


def _verification(check: str, ref, **values) -> dict:
    row = {
        "check": check,
        "location": ref.location,
        "location_id": ref.location_id,
        "date": ref.date,
        "worker": None,
        "team": None,
        "found": True,
    }
    row.update(values)
    return row


def _reference_metrics(ref) -> dict[str, float]:
    """Metrics present in one aggregated reference entry."""
    metrics = {}
    if has_value(ref.revenue):
        metrics["revenue"] = float(ref.revenue)
    if has_value(ref.hours):
        metrics["hours"] = float(ref.hours)
    if has_value(ref.revenue) and has_value(ref.hours) and ref.hours > 0:
        metrics["productivity"] = revenue_per_hour(ref.revenue, ref.hours)
    if has_value(ref.revenue) and has_value(ref.wage_cost) and ref.revenue and ref.wage_cost:
        metrics["labor_cost"] = labor_cost_percentage(ref.wage_cost, ref.revenue)
    return metrics


def _computed_metrics(comp: dict) -> dict[str, float]:
    return {
        "revenue": comp["revenue"],
        "hours": comp["hours"],
        "productivity": revenue_per_hour(comp["revenue"], comp["hours"]),
        "labor_cost": labor_cost_percentage(comp["wage_cost"], comp["revenue"]),
    }


def reconcile_days(
    reference_days: pd.DataFrame,
    computed_days: pd.DataFrame,
    tolerances: Tolerances = DEFAULT_TOLERANCES,
) -> tuple[pd.DataFrame, pd.DataFrame]:
    """Compare aggregated reference days with computed day entries.

    Args:
        reference_days: Output of aggregate_reference_days.
        computed_days: COMPUTED_DAY_COLUMNS rows.
        tolerances: Match rules per metric.

    Returns:
        (verifications, discrepancies) DataFrames.
    """
    index: dict[tuple[str, pd.Timestamp], dict] = {}
    for row in computed_days.itertuples(index=False):
        key = (row.location_id, pd.Timestamp(row.date).normalize())
        acc = index.setdefault(key, {"revenue": 0.0, "hours": 0.0, "wage_cost": 0.0})
        acc["revenue"] += float(row.revenue)
        acc["hours"] += float(row.hours)
        acc["wage_cost"] += float(row.wage_cost)

    verifications: list[dict] = []
    discrepancies: list[dict] = []
    for ref in reference_days.itertuples(index=False):
        key = (ref.location_id, pd.Timestamp(ref.date).normalize())
        ref_metrics = _reference_metrics(ref)
        comp = index.get(key)
        if comp is None:
            for check, value in ref_metrics.items():
                verifications.append(
                    _verification(
                        check,
                        ref,
                        reference_value=value,
                        computed_value=np.nan,
                        difference=np.nan,
                        percent_diff=np.nan,
                        is_match=False,
                        severity=MAJOR,
                        found=False,
                    )
                )
            discrepancies.append(
                {
                    "type": MISSING_DATA,
                    "location": ref.location,
                    "location_id": ref.location_id,
                    "date": ref.date,
                    "reference_value": ref_metrics.get("revenue", np.nan),
                    "severity": MAJOR,
                    "message": f"No computed data for {ref.location} on {pd.Timestamp(ref.date).date()}",
                }
            )
            continue

        comp_metrics = _computed_metrics(comp)
        for check, value in ref_metrics.items():
            result = compare(value, comp_metrics[check], getattr(tolerances, check))
            verifications.append(
                _verification(
                    check,
                    ref,
                    reference_value=result.reference_value,
                    computed_value=result.computed_value,
                    difference=result.difference,
                    percent_diff=result.percent_diff,
                    is_match=result.is_match,
                    severity=result.severity,
                )
            )
            if not result.is_match:
                discrepancies.append(
                    {
                        "type": MISMATCH_TYPE_BY_CHECK[check],
                        "location": ref.location,
                        "location_id": ref.location_id,
                        "date": ref.date,
                        "reference_value": result.reference_value,
                        "computed_value": result.computed_value,
                        "difference": result.difference,
                        "percent_diff": result.percent_diff,
                        "severity": result.severity,
                        "message": f"{check} differs by {result.difference:.2f} "
                        f"({result.percent_diff:.1f}%) for {ref.location} on "
                        f"{pd.Timestamp(ref.date).date()}",
                    }
                )
    return _frame(verifications, VERIFICATION_COLUMNS), _frame(discrepancies, DISCREPANCY_COLUMNS)


def reconcile_workers(
    reference: pd.DataFrame,
    computed: pd.DataFrame,
    tolerances: Tolerances = DEFAULT_TOLERANCES,
) -> tuple[pd.DataFrame, pd.DataFrame]:
    """Compare per-worker reference hours with computed worker hours.

    Every reference worker appears in the verifications: matched, with a
    worker_hours_mismatch, or as worker_not_found (computed hours 0).
    Reference rows without a team match the worker's hours over all teams.
    """
    by_key: dict[tuple, float] = {}
    by_worker: dict[tuple, float] = {}
    for row in computed.itertuples(index=False):
        day = pd.Timestamp(row.date).normalize()
        by_key[(row.location_id, day, row.worker_key, row.team_key)] = float(row.hours)
        wkey = (row.location_id, day, row.worker_key)
        by_worker[wkey] = by_worker.get(wkey, 0.0) + float(row.hours)

    verifications: list[dict] = []
    discrepancies: list[dict] = []
    for ref in reference.itertuples(index=False):
        day = pd.Timestamp(ref.date).normalize()
        if ref.team_key:
            db_hours = by_key.get((ref.location_id, day, ref.worker_key, ref.team_key))
        else:
            db_hours = by_worker.get((ref.location_id, day, ref.worker_key))
        team = ref.team if pd.notna(ref.team) and ref.team else "no team"
        label = f"{ref.worker} ({team}) at {ref.location} on {day.date()}"

        if db_hours is None:
            verifications.append(
                _verification(
                    "worker_hours",
                    ref,
                    worker=ref.worker,
                    team=ref.team,
                    reference_value=float(ref.hours),
                    computed_value=0.0,
                    difference=float(ref.hours),
                    percent_diff=100.0,
                    is_match=False,
                    severity=MAJOR,
                    found=False,
                )
            )
            discrepancies.append(
                {
                    "type": WORKER_NOT_FOUND,
                    "location": ref.location,
                    "location_id": ref.location_id,
                    "date": ref.date,
                    "worker": ref.worker,
                    "team": ref.team,
                    "reference_value": float(ref.hours),
                    "computed_value": 0.0,
                    "excel_hours": float(ref.hours),
                    "db_hours": 0.0,
                    "severity": MAJOR,
                    "message": f"No computed hours for {label}",
                }
            )
            continue

        result = compare(float(ref.hours), db_hours, tolerances.worker_hours)
        verifications.append(
            _verification(
                "worker_hours",
                ref,
                worker=ref.worker,
                team=ref.team,
                reference_value=result.reference_value,
                computed_value=result.computed_value,
                difference=result.difference,
                percent_diff=result.percent_diff,
                is_match=result.is_match,
                severity=result.severity,
            )
        )
        if not result.is_match:
            discrepancies.append(
                {
                    "type": MISMATCH_TYPE_BY_CHECK["worker_hours"],
                    "location": ref.location,
                    "location_id": ref.location_id,
                    "date": ref.date,
                    "worker": ref.worker,
                    "team": ref.team,
                    "reference_value": result.reference_value,
                    "computed_value": result.computed_value,
                    "difference": result.difference,
                    "percent_diff": result.percent_diff,
                    "excel_hours": result.reference_value,
                    "db_hours": result.computed_value,
                    "severity": result.severity,
                    "message": f"Hours differ by {result.difference:.2f} for {label}",
                }
            )
    return _frame(verifications, VERIFICATION_COLUMNS), _frame(discrepancies, DISCREPANCY_COLUMNS)


def _frame(rows: list[dict], columns: list[str]) -> pd.DataFrame:
    if not rows:
        return pd.DataFrame({col: pd.Series(dtype="object") for col in columns})
    return pd.DataFrame(rows).reindex(columns=columns)


# --------------------------------------------------------------------------- #
# Summaries
# --------------------------------------------------------------------------- #


def summarize(verifications: pd.DataFrame, discrepancies: pd.DataFrame) -> dict:
    """Counts derived from the verification list.

    discrepancy_count is reported next to them but never feeds the
    match counts.
    """
    total = len(verifications)
    if total:
        is_match = verifications["is_match"].astype(bool)
        found = verifications["found"].astype(bool)
        match_count = int(is_match.sum())
        not_found_count = int((~found).sum())
        mismatch_count = int((~is_match & found).sum())
        checks = verifications["check"].value_counts().to_dict()
    else:
        match_count = not_found_count = mismatch_count = 0
        checks = {}
    by_type = discrepancies["type"].value_counts().to_dict() if not discrepancies.empty else {}
    return {
        "total_verified": total,
        "match_count": match_count,
        "mismatch_count": mismatch_count,
        "not_found_count": not_found_count,
        "discrepancy_count": len(discrepancies),
        "match_rate": round(100.0 * match_count / total, 2) if total else 100.0,
        "checks": {str(k): int(v) for k, v in checks.items()},
        "discrepancies_by_type": {str(k): int(v) for k, v in by_type.items()},
    }


def summarize_by_date(verifications: pd.DataFrame) -> pd.DataFrame:
    """Per-date verification counts, newest first."""
    columns = ["date", "total_verified", "match_count", "mismatch_count"]
    if verifications.empty:
        return pd.DataFrame({col: pd.Series(dtype="object") for col in columns})
    df = verifications.assign(
        _match=verifications["is_match"].astype(bool),
        date=pd.to_datetime(verifications["date"]),
    )
    grouped = df.groupby("date", as_index=False).agg(
        total_verified=("check", "size"),
        match_count=("_match", "sum"),
    )
    grouped["match_count"] = grouped["match_count"].astype(int)
    grouped["mismatch_count"] = grouped["total_verified"] - grouped["match_count"]
    return grouped.sort_values("date", ascending=False).reset_index(drop=True)[columns]


# --------------------------------------------------------------------------- #
# Entry points
# --------------------------------------------------------------------------- #


def reconcile_frames(
    reference_rows: pd.DataFrame,
    directory: LocationDirectory,
    computed_days: pd.DataFrame,
    computed_workers: Optional[pd.DataFrame] = None,
    tolerances: Tolerances = DEFAULT_TOLERANCES,
) -> ReconciliationResult:
    """Reconcile normalized reference rows against computed frames in memory.

    This function does NOT read or write any files.

    Args:
        reference_rows: Rows with sources.REFERENCE_COLUMNS.
        directory: Location snapshot used to resolve reference names.
        computed_days: COMPUTED_DAY_COLUMNS rows.
        computed_workers: COMPUTED_WORKER_COLUMNS rows, or None to skip
            the worker check.
        tolerances: Match rules per metric.
    """
    resolved, location_discrepancies = resolve_locations(reference_rows, directory)
    ref_days = aggregate_reference_days(resolved)
    day_verifications, day_discrepancies = reconcile_days(ref_days, computed_days, tolerances)

    parts_v = [day_verifications]
    parts_d = [_frame(location_discrepancies, DISCREPANCY_COLUMNS), day_discrepancies]
    if computed_workers is not None:
        ref_workers = reference_workers(resolved)
        if not ref_workers.empty:
            worker_verifications, worker_discrepancies = reconcile_workers(
                ref_workers, computed_workers, tolerances
            )
            parts_v.append(worker_verifications)
            parts_d.append(worker_discrepancies)

    verifications = _concat(parts_v, VERIFICATION_COLUMNS)
    discrepancies = _concat(parts_d, DISCREPANCY_COLUMNS)
    summary = summarize(verifications, discrepancies)
    logger.info(
        "Reconciliation: %d verified, %d matched, %d discrepancies",
        summary["total_verified"],
        summary["match_count"],
        summary["discrepancy_count"],
    )
    return ReconciliationResult(
        verifications=verifications,
        discrepancies=discrepancies,
        summary=summary,
        by_date=summarize_by_date(verifications),
    )


def _concat(parts: list[pd.DataFrame], columns: list[str]) -> pd.DataFrame:
    parts = [p for p in parts if not p.empty]
    if not parts:
        return _frame([], columns)
    return pd.concat(parts, ignore_index=True).reindex(columns=columns)


def reconcile(
    paths: DataPaths,
    date_filter: Union[str, tuple[date, date]] = "all",
    *,
    store: Optional[AggregateStore] = None,
    reference: Union[None, pd.DataFrame, Iterable] = None,
    reader: Optional[FileRawEventReader] = None,
    directory: Optional[LocationDirectory] = None,
    workers: Optional[WorkerDirectory] = None,
    today: Optional[date] = None,
    tolerances: Tolerances = DEFAULT_TOLERANCES,
    check_workers: bool = True,
) -> ReconciliationResult:
    """Reconcile reference extracts against the computed aggregates.

    Args:
        paths: DataPaths configuration.
        date_filter: "all", "this-week", "this-month", "last-month",
            "this-year", "last-year", or an explicit (start, end) tuple.
        store: Aggregate store; defaults to a JsonFileStore under paths.aggregates.
        reference: Reference rows (DataFrame) or files; defaults to paths.reference.
        reader: Raw event reader for the worker check.
        directory: Location snapshot; defaults to paths.locations_json.
        workers: Worker snapshot; defaults to paths.workers_json.
        today: Reference day for relative filters (default: today).
        tolerances: Match rules per metric.
        check_workers: Whether to run the per-worker hours check.

    Returns:
        ReconciliationResult.

    Raises:
        ValueError: If the date filter is unknown.
        StoreUnavailableError: If the store cannot be reached.

    Examples:
        >>> from ops_metrics import DataPaths
        >>> paths = DataPaths.from_root("data", "config/locations.json")
        >>> result = reconcile(paths, "last-month")
        >>> result.summary["match_rate"]
    """
    window = resolve_date_filter(date_filter, today)
    directory = directory or LocationDirectory.from_json(paths.locations_json)
    store = store if store is not None else JsonFileStore(paths.aggregates)

    rows, errors = load_reference_rows(reference if reference is not None else paths.reference)
    rows = filter_rows(rows, window)
    if rows.empty:
        logger.warning("No reference rows to reconcile for filter %s", date_filter)
        empty = reconcile_frames(rows, directory, _frame([], COMPUTED_DAY_COLUMNS))
        empty.errors = errors
        empty.summary["error_count"] = len(errors)
        return empty

    dates = pd.to_datetime(rows["date"])
    start, end = dates.min().date(), dates.max().date()
    resolved_ids = {directory.resolve(name) for name in rows["location"]} - {None}
    computed = computed_days_from_store(store, resolved_ids, start, end, errors)

    computed_workers = None
    if check_workers and rows["worker"].notna().any():
        reader = reader or FileRawEventReader.from_paths(paths)
        workers = workers if workers is not None else WorkerDirectory.from_json(paths.workers_json)
        batch = reader.read_window(start, end, sorted(resolved_ids))
        labor, labor_errors = split_valid(batch.labor, "labor")
        errors.extend(batch.errors + labor_errors)
        computed_workers = computed_worker_days(labor, workers)

    result = reconcile_frames(rows, directory, computed, computed_workers, tolerances)
    result.errors = errors
    result.summary["error_count"] = len(errors)
    return result
