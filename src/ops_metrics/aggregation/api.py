"""Public API for the aggregation pipeline.

aggregate() is the write path: it turns raw snapshots into persisted
hierarchical aggregates. compute_productivity() is the read-only path
behind productivity reports: location, division, team and worker shares
for one period granularity, recomputed on every call.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import TYPE_CHECKING, Iterable, Optional

import pandas as pd

from ops_metrics.aggregation.distribute import (
    distribute_by_division,
    distribute_by_team,
    distribute_by_worker,
)
from ops_metrics.aggregation.hierarchy import (
    PRODUCT_SUBJECT,
    HierarchicalAggregate,
    location_fragments,
    product_fragments,
    retired_fragment,
    touch,
)
from ops_metrics.aggregation.locations import (
    aggregate_locations,
    location_days,
    rollup_location_days,
)
from ops_metrics.categories import TeamCatalog
from ops_metrics.directory import LocationDirectory, WorkerDirectory
from ops_metrics.exceptions import AggregationError, StoreError, StoreUnavailableError
from ops_metrics.metadata import RunMetadata, write_metadata
from ops_metrics.periods import PERIOD_TYPES, period_key
from ops_metrics.records import as_sales_frame, pick_freshest, split_valid
from ops_metrics.sources import FileRawEventReader
from ops_metrics.store import AggregateStore, JsonFileStore
from ops_metrics.utils import count_chunks, format_duration, iter_chunks, parse_date

if TYPE_CHECKING:
    from ops_metrics.config import DataPaths
    from ops_metrics.records import RawLaborRecord, RawSalesRecord

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_DAYS = 31


@dataclass
class AggregationRunResult:
    """Outcome of an aggregation run.

    Attributes:
        updated: Number of distinct subjects merged into the store.
        subjects: Their ids, sorted.
        errors: Structural record problems and per-subject failures.
        metadata: What was written to the run log.
    """

    updated: int
    subjects: list[str]
    errors: list[str]
    metadata: Optional[RunMetadata] = None


@dataclass
class ProductivityResult:
    """Productivity tables for one period granularity.

    Attributes:
        locations: One row per (period, location).
        divisions: Revenue allocated over Food, Beverage, Management, Other
            (plus "All" for days without a team breakdown).
        teams: Revenue allocated over team categories and sub-teams.
        workers: Revenue allocated over individual workers.
        missing_wages: Workers left out for lack of an hourly wage.
        errors: Structural record problems met while reading.
    """

    locations: pd.DataFrame
    divisions: pd.DataFrame
    teams: pd.DataFrame
    workers: pd.DataFrame
    missing_wages: pd.DataFrame
    errors: list[str] = field(default_factory=list)


def build_fragments(
    labor: list[RawLaborRecord],
    sales: list[RawSalesRecord],
    directory: LocationDirectory,
    window: Optional[tuple[date, date]] = None,
) -> dict[str, HierarchicalAggregate]:
    """Location and product fragments for one window of valid records."""
    days = location_days(labor, sales, directory)
    fragments = location_fragments(days, window)
    names = {loc: directory.name_for(loc) for loc in directory.ids()}
    sales_winners = pick_freshest(as_sales_frame(sales))
    fragments.update(product_fragments(sales_winners, names, window))
    return fragments


def retire_dropped_products(
    store: AggregateStore,
    product_ids: Iterable[str],
    fragments: dict[str, HierarchicalAggregate],
    sales: list[RawSalesRecord],
    errors: list[str],
    window: Optional[tuple[date, date]] = None,
) -> dict[str, HierarchicalAggregate]:
    """Zero fragments for stored products missing from fresher sales snapshots.

    Only (location, day) pairs with a sales record in this window are
    touched; other history of the product stays as it is.
    """
    covered = {(rec.location_id, period_key(rec.date, "day")) for rec in sales}
    stale = [s for s in product_ids if s not in fragments]
    if not covered or not stale:
        return {}
    retired: dict[str, HierarchicalAggregate] = {}
    for subject_id in stale:
        try:
            persisted = store.get(subject_id)
        except StoreUnavailableError:
            raise
        except StoreError as e:
            logger.error("Cannot read %s: %s", subject_id, e)
            errors.append(f"{subject_id}: {e}")
            continue
        if persisted is None:
            continue
        fragment = retired_fragment(persisted, covered, window)
        if fragment is not None:
            retired[subject_id] = fragment
    if retired:
        logger.info("Zeroing %d product(s) dropped from fresher sales snapshots", len(retired))
    return retired


def _merge_fragments(
    store: AggregateStore,
    fragments: dict[str, HierarchicalAggregate],
    updated: set[str],
    errors: list[str],
) -> None:
    for subject_id, fragment in fragments.items():
        touch(fragment)
        try:
            store.merge_and_put(fragment)
        except StoreUnavailableError:
            raise
        except (StoreError, AggregationError, ValueError) as e:
            logger.error("Failed to merge %s: %s", subject_id, e)
            errors.append(f"{subject_id}: {e}")
            continue
        updated.add(subject_id)


def aggregate(
    paths: DataPaths,
    start_date: str | date,
    end_date: str | date,
    locations: Optional[Iterable[str]] = None,
    *,
    store: Optional[AggregateStore] = None,
    reader: Optional[FileRawEventReader] = None,
    directory: Optional[LocationDirectory] = None,
    chunk_days: int = DEFAULT_CHUNK_DAYS,
) -> AggregationRunResult:
    """Aggregate raw snapshots in a date range into the store.

    The range is processed in windows of at most chunk_days. For each
    window the freshest record per (location, day) is selected, location
    and product fragments are built and merged into the store one subject
    at a time. Re-running the same range leaves the store unchanged.

    Args:
        paths: DataPaths configuration.
        start_date: First day (YYYY-MM-DD or date), inclusive.
        end_date: Last day (YYYY-MM-DD or date), inclusive.
        locations: Optional location ids to restrict the run to.
        store: Aggregate store; defaults to a JsonFileStore under paths.aggregates.
        reader: Raw event reader; defaults to the JSON-lines reader under paths.
        directory: Location snapshot; defaults to paths.locations_json.
        chunk_days: Window size in days.

    Returns:
        AggregationRunResult with the updated subject count and errors.

    Raises:
        ValueError: If the dates are invalid or end before start.
        StoreUnavailableError: If the store cannot be reached.
        ConfigError: If the location directory cannot be loaded.

    Examples:
        >>> from ops_metrics import DataPaths
        >>> paths = DataPaths.from_root("data", "config/locations.json")
        >>> result = aggregate(paths, "2024-06-01", "2024-06-30")
        >>> result.updated, len(result.errors)
    """
    start = parse_date(start_date)
    end = parse_date(end_date)
    if end < start:
        raise ValueError(f"end_date {end} is before start_date {start}")

    directory = directory or LocationDirectory.from_json(paths.locations_json)
    store = store if store is not None else JsonFileStore(paths.aggregates)
    reader = reader or FileRawEventReader.from_paths(paths)
    wanted = sorted(set(locations)) if locations is not None else None

    total = count_chunks(start, end, chunk_days)
    logger.info(
        "Aggregating %s..%s in %d window(s) for %s",
        start,
        end,
        total,
        ", ".join(wanted) if wanted else "all locations",
    )

    t0 = time.perf_counter()
    updated: set[str] = set()
    errors: list[str] = []
    product_ids = [s for s in store.subjects() if s.startswith(f"{PRODUCT_SUBJECT}:")]

    for i, (chunk_start, chunk_end) in enumerate(iter_chunks(start, end, chunk_days), start=1):
        batch = reader.read_window(chunk_start, chunk_end, wanted)
        errors.extend(batch.errors)
        labor, labor_errors = split_valid(batch.labor, "labor")
        sales, sales_errors = split_valid(batch.sales, "sales")
        errors.extend(labor_errors + sales_errors)

        try:
            fragments = build_fragments(labor, sales, directory, (chunk_start, chunk_end))
        except (KeyError, ValueError) as e:
            logger.error("Window %s..%s failed: %s", chunk_start, chunk_end, e)
            errors.append(f"{chunk_start}..{chunk_end}: {e}")
            continue
        fragments.update(
            retire_dropped_products(store, product_ids, fragments, sales, errors, (chunk_start, chunk_end))
        )

        _merge_fragments(store, fragments, updated, errors)
        logger.info(
            "[%d/%d] %s..%s: %d labor, %d sales records, %d subjects (%.0f%%)",
            i,
            total,
            chunk_start,
            chunk_end,
            len(labor),
            len(sales),
            len(fragments),
            100.0 * i / total,
        )

    # imported here to avoid a circular import with the package root
    from ops_metrics import __version__

    # undated payloads are reported by every window
    errors = list(dict.fromkeys(errors))
    status = "ok" if not errors else "partial"

    metadata = RunMetadata(
        start_date=start.isoformat(),
        end_date=end.isoformat(),
        locations=wanted or [],
        version=__version__,
        last_run=datetime.now().isoformat(timespec="seconds"),
        status=status,
        updated=len(updated),
        error_count=len(errors),
        errors=errors[:100],
    )
    if isinstance(store, JsonFileStore):
        write_metadata(store.root, metadata)

    logger.info(
        "Aggregation finished in %s: %d subjects updated, %d errors",
        format_duration(time.perf_counter() - t0),
        len(updated),
        len(errors),
    )
    return AggregationRunResult(
        updated=len(updated),
        subjects=sorted(updated),
        errors=errors,
        metadata=metadata,
    )


def compute_productivity(
    paths: DataPaths,
    start_date: str | date,
    end_date: str | date,
    period_type: str = "day",
    locations: Optional[Iterable[str]] = None,
    *,
    reader: Optional[FileRawEventReader] = None,
    directory: Optional[LocationDirectory] = None,
    workers: Optional[WorkerDirectory] = None,
    catalog: Optional[TeamCatalog] = None,
) -> ProductivityResult:
    """Compute location, division, team and worker productivity for a range.

    Nothing is written. Distribution shares are recomputed on every call.

    Raises:
        ValueError: If period_type is unknown or the dates are invalid.
    """
    if period_type not in PERIOD_TYPES:
        raise ValueError(f"Invalid period_type '{period_type}'. Must be one of {PERIOD_TYPES}.")
    start = parse_date(start_date)
    end = parse_date(end_date)
    if end < start:
        raise ValueError(f"end_date {end} is before start_date {start}")

    directory = directory or LocationDirectory.from_json(paths.locations_json)
    workers = workers if workers is not None else WorkerDirectory.from_json(paths.workers_json)
    reader = reader or FileRawEventReader.from_paths(paths)

    batch = reader.read_window(start, end, locations)
    labor, labor_errors = split_valid(batch.labor, "labor")
    sales, sales_errors = split_valid(batch.sales, "sales")
    errors = [*batch.errors, *labor_errors, *sales_errors]

    days = location_days(labor, sales, directory)
    if period_type == "hour":
        location_rows = aggregate_locations(labor, sales, directory, "hour")
    else:
        location_rows = rollup_location_days(days, period_type)

    divisions = distribute_by_division(labor, days, directory, period_type, catalog)
    teams = distribute_by_team(labor, days, directory, period_type, catalog)
    worker_result = distribute_by_worker(labor, days, directory, workers, period_type, catalog)

    logger.info(
        "Productivity %s..%s by %s: %d location rows, %d division rows, %d worker rows",
        start,
        end,
        period_type,
        len(location_rows),
        len(divisions),
        len(worker_result.workers),
    )
    return ProductivityResult(
        locations=location_rows,
        divisions=divisions,
        teams=teams,
        workers=worker_result.workers,
        missing_wages=worker_result.missing_wages,
        errors=errors,
    )
