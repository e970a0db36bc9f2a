"""Example: Aggregate a month and print weekly productivity

This example demonstrates the write path and the read path:
1. Merge raw labor and sales snapshots into the persisted aggregates
2. Recompute weekly location, division and worker productivity

Prerequisites:
- Raw snapshots under data/a_raw/labor/*.jsonl and data/a_raw/sales/*.jsonl
- config/locations.json (and optionally config/workers.json)
"""

from pathlib import Path

from ops_metrics import DataPaths, aggregate, compute_productivity

paths = DataPaths.from_root(Path("data"), Path("config/locations.json"), Path("config/workers.json"))

start_date = "2024-06-01"  # MODIFY AS NEEDED
end_date = "2024-06-30"  # MODIFY AS NEEDED

print(f"Aggregating {start_date} to {end_date}...")
run = aggregate(paths, start_date, end_date)
print(f"  - Subjects updated: {run.updated}")
print(f"  - Errors: {len(run.errors)}")
for err in run.errors[:5]:
    print(f"    {err}")

# Re-running the same range is safe: day entries are replaced, not added
aggregate(paths, start_date, end_date)

print("\nWeekly productivity...")
report = compute_productivity(paths, start_date, end_date, period_type="week")

print("\nLocations:")
print(report.locations[["period", "location_name", "total_hours", "total_revenue", "goal_status"]])

print("\nDivisions:")
print(report.divisions[["period", "location_name", "division", "total_revenue", "revenue_per_hour"]])

if not report.missing_wages.empty:
    print("\nWorkers without an hourly wage (left out of the worker shares):")
    print(report.missing_wages)

print(f"\nAggregates stored under: {paths.aggregates}")
