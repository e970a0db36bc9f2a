"""Tolerance configuration for reconciliation.

A metric matches when the absolute difference is below its floor OR the
relative difference (against the computed value) is below its percentage.
The floor keeps small days from failing on cents; the percentage keeps
big days from failing on rounding.
"""

from __future__ import annotations

from dataclasses import dataclass

# Revenue
REVENUE_ABS_FLOOR = 1.0
REVENUE_PCT = 1.0

# Hours
HOURS_ABS_FLOOR = 1.0
HOURS_PCT = 1.0

# Revenue per hour
PRODUCTIVITY_ABS_FLOOR = 1.0
PRODUCTIVITY_PCT = 2.5

# Labor cost percentage (floor in percentage points)
LABOR_COST_ABS_FLOOR = 1.0
LABOR_COST_PCT = 2.5

# Per-worker hours
WORKER_HOURS_ABS_FLOOR = 0.1
WORKER_HOURS_PCT = 1.0

# Below this absolute difference a comparison is an exact match
EXACT_EPSILON = 0.005


@dataclass(frozen=True)
class Tolerance:
    """Match rule for one metric."""

    abs_floor: float
    pct: float

    def matches(self, difference: float, percent_diff: float) -> bool:
        return difference < self.abs_floor or percent_diff < self.pct


@dataclass(frozen=True)
class Tolerances:
    """Tolerances for every reconciled metric."""

    revenue: Tolerance = Tolerance(REVENUE_ABS_FLOOR, REVENUE_PCT)
    hours: Tolerance = Tolerance(HOURS_ABS_FLOOR, HOURS_PCT)
    productivity: Tolerance = Tolerance(PRODUCTIVITY_ABS_FLOOR, PRODUCTIVITY_PCT)
    labor_cost: Tolerance = Tolerance(LABOR_COST_ABS_FLOOR, LABOR_COST_PCT)
    worker_hours: Tolerance = Tolerance(WORKER_HOURS_ABS_FLOOR, WORKER_HOURS_PCT)


DEFAULT_TOLERANCES = Tolerances()
