"""Incremental merge of hierarchical aggregates.

Runs are re-executed over overlapping windows, so merging must replace
recomputed values instead of adding them twice, while keeping every period
the new run did not touch:

- by_day: each (day, location) in the fresh fragment replaces the
  persisted entry; other persisted entries stay.
- by_week / by_month / by_year: every replaced day contributes
  (fresh - previously persisted) to its coarse period, so a coarse period
  spanning several runs keeps the days outside the fresh window.
- coarse periods in the fragment with no backing days replace their
  per-location entries directly.
- all period totals are recomputed from by_location afterwards.

Merging an aggregate with itself returns it unchanged, and merging
fragments of disjoint windows adds them up.
"""

from __future__ import annotations

import logging
from typing import Optional

from ops_metrics.aggregation.hierarchy import (
    HierarchicalAggregate,
    LocationTotals,
    add_window,
)
from ops_metrics.periods import period_key

logger = logging.getLogger(__name__)

COARSE_PERIODS = ("week", "month", "year")

# float residue below this after subtracting a replaced day is snapped to 0
_EPSILON = 1e-9


def clone_aggregate(agg: HierarchicalAggregate) -> HierarchicalAggregate:
    """Deep copy through the document form."""
    return HierarchicalAggregate.from_dict(agg.to_dict())


def _snap(totals: LocationTotals) -> None:
    for attr in ("quantity", "cost", "revenue"):
        if abs(getattr(totals, attr)) < _EPSILON:
            setattr(totals, attr, 0.0)


def merge_aggregates(
    persisted: Optional[HierarchicalAggregate],
    fresh: HierarchicalAggregate,
) -> HierarchicalAggregate:
    """Merge a freshly computed fragment into the persisted aggregate.

    Neither input is modified.

    Args:
        persisted: Stored aggregate, or None on the first run.
        fresh: Fragment computed for the current window.

    Returns:
        The merged aggregate.

    Raises:
        ValueError: If the two aggregates belong to different subjects.
    """
    if persisted is None:
        return clone_aggregate(fresh)
    if persisted.subject_id != fresh.subject_id:
        raise ValueError(
            f"Cannot merge {fresh.subject_id!r} into {persisted.subject_id!r}"
        )

    result = clone_aggregate(persisted)
    deltas: list[tuple[str, LocationTotals]] = []

    for day_key, fresh_entry in fresh.by_day.items():
        target = result.entry("day", day_key)
        for location_id, fresh_loc in fresh_entry.by_location.items():
            delta = fresh_loc.copy()
            old = target.by_location.get(location_id)
            if old is not None:
                delta.add(old, sign=-1)
                delta.location_name = fresh_loc.location_name or old.location_name
            target.by_location[location_id] = fresh_loc.copy()
            deltas.append((day_key, delta))

    for period_type in COARSE_PERIODS:
        covered = {period_key(day_key, period_type) for day_key in fresh.by_day}
        for day_key, delta in deltas:
            entry = result.entry(period_type, period_key(day_key, period_type))
            loc = entry.location(delta.location_id, delta.location_name)
            loc.add(delta)
            _snap(loc)
        for key, fresh_entry in fresh.collection(period_type).items():
            if key in covered:
                continue
            entry = result.entry(period_type, key)
            for location_id, fresh_loc in fresh_entry.by_location.items():
                entry.by_location[location_id] = fresh_loc.copy()

    result.recompute()
    result.subject_name = fresh.subject_name or persisted.subject_name
    result.updated_at = fresh.updated_at or persisted.updated_at
    add_window(result, fresh.windows)
    logger.debug(
        "Merged %s: %d day entries replaced, %d days total",
        fresh.subject_id,
        len(deltas),
        len(result.by_day),
    )
    return result
