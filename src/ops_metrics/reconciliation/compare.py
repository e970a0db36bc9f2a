"""Metric comparison, tolerance matching and severity tiers."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional

from ops_metrics.reconciliation.config import EXACT_EPSILON, Tolerance

EXACT = "exact"
MINOR = "minor"
MAJOR = "major"

# Discrepancy types
MISSING_LOCATION = "missing_location"
MISSING_DATA = "missing_data"
REVENUE_MISMATCH = "revenue_mismatch"
HOURS_MISMATCH = "hours_mismatch"
PRODUCTIVITY_MISMATCH = "productivity_mismatch"
LABOR_COST_MISMATCH = "labor_cost_mismatch"
WORKER_NOT_FOUND = "worker_not_found"
WORKER_HOURS_MISMATCH = "worker_hours_mismatch"

DISCREPANCY_TYPES = (
    MISSING_LOCATION,
    MISSING_DATA,
    REVENUE_MISMATCH,
    HOURS_MISMATCH,
    PRODUCTIVITY_MISMATCH,
    LABOR_COST_MISMATCH,
    WORKER_NOT_FOUND,
    WORKER_HOURS_MISMATCH,
)

MISMATCH_TYPE_BY_CHECK = {
    "revenue": REVENUE_MISMATCH,
    "hours": HOURS_MISMATCH,
    "productivity": PRODUCTIVITY_MISMATCH,
    "labor_cost": LABOR_COST_MISMATCH,
    "worker_hours": WORKER_HOURS_MISMATCH,
}


@dataclass(frozen=True)
class Comparison:
    """One reference value checked against its computed counterpart."""

    reference_value: float
    computed_value: float
    difference: float
    percent_diff: float
    is_match: bool
    severity: str


def percent_diff(reference: float, computed: float) -> float:
    """Absolute difference as a percentage of the computed value.

    Returns 100 when the computed value is 0 and the reference is not,
    0 when both are 0.

    Examples:
        >>> percent_diff(1005.0, 1000.0)
        0.5
        >>> percent_diff(10.0, 0.0)
        100.0
    """
    difference = abs(reference - computed)
    if computed == 0:
        return 0.0 if difference == 0 else 100.0
    return difference / abs(computed) * 100.0


def severity(difference: float, is_match: bool) -> str:
    """exact below EXACT_EPSILON, minor within tolerance, major outside it."""
    if difference < EXACT_EPSILON:
        return EXACT
    return MINOR if is_match else MAJOR


def compare(reference: float, computed: float, tolerance: Tolerance) -> Comparison:
    """Compare two values under a tolerance.

    Examples:
        >>> from ops_metrics.reconciliation.config import Tolerance
        >>> compare(1050.0, 1000.0, Tolerance(1.0, 1.0)).is_match
        False
    """
    difference = abs(reference - computed)
    pct = percent_diff(reference, computed)
    is_match = tolerance.matches(difference, pct)
    return Comparison(
        reference_value=reference,
        computed_value=computed,
        difference=difference,
        percent_diff=pct,
        is_match=is_match,
        severity=severity(difference, is_match),
    )


def has_value(value: Optional[float]) -> bool:
    return value is not None and not (isinstance(value, float) and math.isnan(value))
