"""Cross-source reconciliation of computed metrics against reference extracts."""

from ops_metrics.reconciliation.api import (
    DATE_FILTERS,
    ReconciliationResult,
    reconcile,
    reconcile_days,
    reconcile_frames,
    reconcile_workers,
    resolve_date_filter,
    summarize,
    summarize_by_date,
)
from ops_metrics.reconciliation.config import DEFAULT_TOLERANCES, Tolerance, Tolerances

__all__ = [
    "DATE_FILTERS",
    "DEFAULT_TOLERANCES",
    "ReconciliationResult",
    "Tolerance",
    "Tolerances",
    "reconcile",
    "reconcile_days",
    "reconcile_frames",
    "reconcile_workers",
    "resolve_date_filter",
    "summarize",
    "summarize_by_date",
]
