"""Example: Reconcile reference exports against the computed aggregates

Reference exports are CSV or Excel files dropped in data/a_raw/reference/.
Headers such as "Datum", "Vestiging", "Omzet", "Uren" or "Medewerker" are
recognized automatically.

Prerequisites:
- Aggregates written by examples/aggregate_month.py
- config/locations.json with the location names used in the exports
"""

from pathlib import Path

from ops_metrics import DataPaths, reconcile
from ops_metrics.reconciliation import Tolerance, Tolerances

paths = DataPaths.from_root(Path("data"), Path("config/locations.json"), Path("config/workers.json"))

# Default tolerances, last calendar month
result = reconcile(paths, "last-month")

print("Summary:")
for key in ("total_verified", "match_count", "mismatch_count", "not_found_count", "match_rate"):
    print(f"  - {key}: {result.summary[key]}")

print("\nDiscrepancies by type:")
for kind, count in result.summary["discrepancies_by_type"].items():
    print(f"  - {kind}: {count}")

if not result.discrepancies.empty:
    print("\nMajor discrepancies:")
    major = result.discrepancies[result.discrepancies["severity"] == "major"]
    print(major[["type", "location", "date", "reference_value", "computed_value", "message"]].head(20))

# Looser revenue tolerance for a month with known rounding in the exports
loose = Tolerances(revenue=Tolerance(abs_floor=5.0, pct=2.0))
relaxed = reconcile(paths, "last-month", tolerances=loose, check_workers=False)
print(f"\nMatch rate with loose revenue tolerance: {relaxed.summary['match_rate']}%")

if result.errors:
    print(f"\n{len(result.errors)} reference rows could not be used, e.g. {result.errors[0]}")
