"""Aggregation pipeline: location totals, revenue distribution and hierarchies.

Module Structure:
    ops_metrics.aggregation.locations: freshest records -> location buckets
    ops_metrics.aggregation.distribute: division / team / worker shares
    ops_metrics.aggregation.hierarchy: HierarchicalAggregate documents
    ops_metrics.aggregation.merge: incremental merge of documents
    ops_metrics.aggregation.api: aggregate() and compute_productivity()
"""

from ops_metrics.aggregation.distribute import (
    WorkerDistribution,
    distribute_by_division,
    distribute_by_team,
    distribute_by_worker,
)
from ops_metrics.aggregation.hierarchy import HierarchicalAggregate, LocationTotals, PeriodEntry
from ops_metrics.aggregation.locations import aggregate_locations, location_days
from ops_metrics.aggregation.merge import merge_aggregates

__all__ = [
    "HierarchicalAggregate",
    "LocationTotals",
    "PeriodEntry",
    "WorkerDistribution",
    "aggregate_locations",
    "distribute_by_division",
    "distribute_by_team",
    "distribute_by_worker",
    "location_days",
    "merge_aggregates",
]
