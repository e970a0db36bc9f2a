"""Derived productivity metrics and goal status.

Derived metrics are never stored as inputs. They are recomputed from the
summed totals of a bucket every time the bucket changes.
"""

from __future__ import annotations

import numpy as np
import pandas as pd

GREAT = "great"
OK = "ok"
NOT_GREAT = "not_great"
BAD = "bad"

# Worst first; the combined goal status is the worse of the two metric tiers
STATUS_RANK = {BAD: 0, NOT_GREAT: 1, OK: 2, GREAT: 3}

# Revenue per hour tiers (lower bound inclusive)
REVENUE_PER_HOUR_TIERS = ((65.0, GREAT), (55.0, OK), (45.0, NOT_GREAT))

# Labor cost percentage tiers (upper bound)
LABOR_COST_GREAT_BELOW = 30.0
LABOR_COST_OK_UP_TO = 32.5


def revenue_per_hour(revenue: float, hours: float) -> float:
    """Revenue divided by hours, 0 when no hours were worked."""
    if not hours:
        return 0.0
    return float(revenue) / float(hours)


def labor_cost_percentage(cost: float, revenue: float) -> float:
    """Wage cost as a percentage of revenue, 0 when either side is 0."""
    if not revenue or not cost:
        return 0.0
    return 100.0 * float(cost) / float(revenue)


def revenue_per_hour_status(value: float) -> str:
    for lower, status in REVENUE_PER_HOUR_TIERS:
        if value >= lower:
            return status
    return BAD


def labor_cost_status(value: float) -> str:
    if value < LABOR_COST_GREAT_BELOW:
        return GREAT
    if value <= LABOR_COST_OK_UP_TO:
        return OK
    return BAD


def goal_status(rph: float, lcp: float) -> str:
    """Combine the revenue-per-hour and labor-cost tiers into one status.

    A labor cost percentage of 0 means "not measurable" (no revenue or no
    cost) and does not affect the result.

    Examples:
        >>> goal_status(70.0, 25.0)
        'great'
        >>> goal_status(70.0, 35.0)
        'bad'
        >>> goal_status(50.0, 0.0)
        'not_great'
    """
    status = revenue_per_hour_status(rph)
    if lcp:
        lcp_status = labor_cost_status(lcp)
        if STATUS_RANK[lcp_status] < STATUS_RANK[status]:
            status = lcp_status
    return status


def add_derived_metrics(
    df: pd.DataFrame,
    hours_col: str = "total_hours",
    cost_col: str = "total_wage_cost",
    revenue_col: str = "total_revenue",
) -> pd.DataFrame:
    """Return a copy of df with revenue_per_hour, labor_cost_percentage and goal_status."""
    out = df.copy()
    if out.empty:
        out["revenue_per_hour"] = pd.Series(dtype="float64")
        out["labor_cost_percentage"] = pd.Series(dtype="float64")
        out["goal_status"] = pd.Series(dtype="object")
        return out

    hours = out[hours_col].astype(float)
    cost = out[cost_col].astype(float)
    revenue = out[revenue_col].astype(float)

    with np.errstate(divide="ignore", invalid="ignore"):
        rph = np.where(hours != 0, revenue / hours.where(hours != 0, 1.0), 0.0)
        lcp = np.where(
            (revenue != 0) & (cost != 0),
            100.0 * cost / revenue.where(revenue != 0, 1.0),
            0.0,
        )
    out["revenue_per_hour"] = rph
    out["labor_cost_percentage"] = lcp
    out["goal_status"] = [goal_status(r, c) for r, c in zip(rph, lcp)]
    return out
