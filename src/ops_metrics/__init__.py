"""ops_metrics - hierarchical productivity aggregation and reconciliation.

This package turns raw operational snapshots (labor hours and wage cost
per location-day, POS sales per location-day and product) into
pre-computed metrics, and checks those metrics against hand-curated
reference extracts.

Module Structure:
    ops_metrics.aggregation: location totals, division/team/worker shares,
        hierarchical aggregates and their incremental merge
    ops_metrics.reconciliation: reference vs computed comparison
    ops_metrics.store: aggregate document stores
    ops_metrics.sources: raw event and reference readers
    ops_metrics.periods: period keys (year, month, ISO week, day, hour)
    ops_metrics.categories: team and division categorization
    ops_metrics.config: DataPaths configuration

Quick Start:
    >>> from ops_metrics import DataPaths, aggregate, compute_productivity, reconcile
    >>>
    >>> paths = DataPaths.from_root("data", "config/locations.json", "config/workers.json")
    >>>
    >>> # Write path: merge June into the persisted aggregates
    >>> run = aggregate(paths, "2024-06-01", "2024-06-30")
    >>> print(run.updated, run.errors[:3])
    >>>
    >>> # Read path: weekly productivity per division
    >>> report = compute_productivity(paths, "2024-06-01", "2024-06-30", "week")
    >>> print(report.divisions.head())
    >>>
    >>> # Check last month against the reference exports
    >>> result = reconcile(paths, "last-month")
    >>> print(result.summary)

Grain Reference:
    aggregates: one document per subject (location:<id>, product:<name>)
        with by_year / by_month / by_week / by_day collections, each
        period broken down by location
    productivity: one row per (period, location[, division | team | worker])
    reconciliation: one verification per (location, date, metric) and per
        (location, date, worker, team)
"""

__version__ = "0.1.0"

from ops_metrics.aggregation.api import (
    AggregationRunResult,
    ProductivityResult,
    aggregate,
    compute_productivity,
)
from ops_metrics.config import DataPaths
from ops_metrics.exceptions import (
    AggregationError,
    ConfigError,
    DataQualityError,
    OpsMetricsError,
    StoreError,
    StoreUnavailableError,
)
from ops_metrics.reconciliation.api import ReconciliationResult, reconcile

__all__ = [
    "AggregationError",
    "AggregationRunResult",
    "ConfigError",
    "DataPaths",
    "DataQualityError",
    "OpsMetricsError",
    "ProductivityResult",
    "ReconciliationResult",
    "StoreError",
    "StoreUnavailableError",
    "__version__",
    "aggregate",
    "compute_productivity",
    "reconcile",
]
