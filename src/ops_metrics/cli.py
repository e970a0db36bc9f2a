"""Command-line entry point.

Usage (from repo root):

    python -m ops_metrics.cli aggregate \
        --data-root data --locations config/locations.json \
        --start 2024-06-01 --end 2024-06-30

    python -m ops_metrics.cli productivity \
        --data-root data --locations config/locations.json \
        --workers config/workers.json \
        --start 2024-06-01 --end 2024-06-30 --period week

    python -m ops_metrics.cli reconcile \
        --data-root data --locations config/locations.json --filter last-month

Exit code is 1 when a run fails fatally (configuration or store errors)
and 2 when reconciliation found discrepancies and --strict was given.
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Optional, Sequence

import pandas as pd

from ops_metrics.aggregation.api import aggregate, compute_productivity
from ops_metrics.config import DataPaths
from ops_metrics.exceptions import OpsMetricsError
from ops_metrics.periods import PERIOD_TYPES
from ops_metrics.reconciliation.api import DATE_FILTERS, reconcile

logger = logging.getLogger(__name__)


def _paths(args: argparse.Namespace) -> DataPaths:
    return DataPaths.from_root(args.data_root, args.locations, args.workers)


def _run_aggregate(args: argparse.Namespace) -> int:
    result = aggregate(
        _paths(args),
        args.start,
        args.end,
        locations=args.location or None,
        chunk_days=args.chunk_days,
    )
    print(f"Updated subjects: {result.updated}")
    print(f"Errors          : {len(result.errors)}")
    for err in result.errors[:20]:
        print("  [ERROR]", err)
    if len(result.errors) > 20:
        print(f"  ... {len(result.errors) - 20} more")
    return 0


def _run_productivity(args: argparse.Namespace) -> int:
    result = compute_productivity(
        _paths(args),
        args.start,
        args.end,
        args.period,
        locations=args.location or None,
    )
    with pd.option_context("display.width", 160, "display.max_columns", 20):
        print("\nLocations")
        print(result.locations.to_string(index=False) if not result.locations.empty else "  (none)")
        print("\nDivisions")
        print(result.divisions.to_string(index=False) if not result.divisions.empty else "  (none)")
    if not result.missing_wages.empty:
        print(f"\n{len(result.missing_wages)} worker(s) without hourly wage:")
        print(result.missing_wages.to_string(index=False))
    if args.out:
        out = Path(args.out)
        out.mkdir(parents=True, exist_ok=True)
        for name in ("locations", "divisions", "teams", "workers", "missing_wages"):
            getattr(result, name).to_csv(out / f"productivity_{args.period}_{name}.csv", index=False)
        print(f"\nCSV files written to {out}")
    return 0


def _run_reconcile(args: argparse.Namespace) -> int:
    result = reconcile(
        _paths(args),
        args.filter,
        reference=Path(args.reference) if args.reference else None,
        check_workers=not args.skip_workers,
    )
    summary = result.summary
    print(f"Verified     : {summary['total_verified']}")
    print(f"Matched      : {summary['match_count']} ({summary['match_rate']}%)")
    print(f"Discrepancies: {summary['discrepancy_count']}")
    for kind, count in sorted(summary["discrepancies_by_type"].items()):
        print(f"  {kind:<24} {count}")
    for err in result.errors[:20]:
        print("  [WARN ]", err)
    if args.out:
        out = Path(args.out)
        out.mkdir(parents=True, exist_ok=True)
        result.verifications.to_csv(out / "verifications.csv", index=False)
        result.discrepancies.to_csv(out / "discrepancies.csv", index=False)
        print(f"CSV files written to {out}")
    if args.strict and summary["discrepancy_count"]:
        return 2
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ops-metrics",
        description="Aggregate productivity metrics and reconcile them against reference extracts.",
    )
    parser.add_argument("--data-root", default="data", help="Root data directory (default: 'data').")
    parser.add_argument(
        "--locations",
        default="config/locations.json",
        help="Location directory JSON (default: config/locations.json).",
    )
    parser.add_argument("--workers", default=None, help="Optional worker directory JSON.")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging.")

    sub = parser.add_subparsers(dest="command", required=True)

    agg = sub.add_parser("aggregate", help="Merge a date range into the persisted aggregates.")
    agg.add_argument("--start", required=True, help="First day, YYYY-MM-DD.")
    agg.add_argument("--end", required=True, help="Last day, YYYY-MM-DD.")
    agg.add_argument("--location", action="append", help="Restrict to a location id (repeatable).")
    agg.add_argument("--chunk-days", type=int, default=31, help="Window size in days (default: 31).")
    agg.set_defaults(func=_run_aggregate)

    prod = sub.add_parser("productivity", help="Print productivity tables for a range.")
    prod.add_argument("--start", required=True, help="First day, YYYY-MM-DD.")
    prod.add_argument("--end", required=True, help="Last day, YYYY-MM-DD.")
    prod.add_argument("--period", default="day", choices=PERIOD_TYPES, help="Bucket size (default: day).")
    prod.add_argument("--location", action="append", help="Restrict to a location id (repeatable).")
    prod.add_argument("--out", default=None, help="Directory to write CSV tables to.")
    prod.set_defaults(func=_run_productivity)

    rec = sub.add_parser("reconcile", help="Compare reference extracts with computed aggregates.")
    rec.add_argument("--filter", default="all", choices=DATE_FILTERS, help="Date filter (default: all).")
    rec.add_argument(
        "--reference",
        default=None,
        help="Reference file or directory (default: <data-root>/a_raw/reference).",
    )
    rec.add_argument("--skip-workers", action="store_true", help="Skip the per-worker hours check.")
    rec.add_argument("--out", default=None, help="Directory to write verifications/discrepancies CSV to.")
    rec.add_argument("--strict", action="store_true", help="Exit with code 2 when discrepancies are found.")
    rec.set_defaults(func=_run_reconcile)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """CLI entry point; returns the process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
    )
    try:
        return args.func(args)
    except (OpsMetricsError, ValueError) as e:
        logger.error("%s: %s", type(e).__name__, e)
        print(f"\nFATAL: {e}")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
