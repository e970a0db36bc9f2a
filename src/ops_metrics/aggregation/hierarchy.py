"""Persisted hierarchical aggregates.

A HierarchicalAggregate holds the totals of one subject (a location or a
product) at four granularities at once, each period broken down by
location:

    by_year  {"2024":       PeriodEntry}
    by_month {"2024-06":    PeriodEntry}
    by_week  {"2024-W22":   PeriodEntry}
    by_day   {"2024-06-01": PeriodEntry}

Collections are dicts keyed by period key, so a period cannot appear twice.
A period's totals are always the sum of its by_location entries; they are
recomputed, never trusted from storage.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Iterable, Optional

import pandas as pd

from ops_metrics.periods import HIERARCHY_PERIODS, period_key, period_start
from ops_metrics.utils import merge_intervals, parse_date

logger = logging.getLogger(__name__)

LOCATION_SUBJECT = "location"
PRODUCT_SUBJECT = "product"

TOTAL_FIELDS = ("quantity", "cost", "revenue", "record_count")

FRAGMENT_COLUMNS = ["day", "location_id", "location_name", "quantity", "cost", "revenue", "record_count"]


def subject_id_for(subject_type: str, key: str) -> str:
    """Subject identifier used as the store key, e.g. "location:loc-bea"."""
    return f"{subject_type}:{key}"


@dataclass
class LocationTotals:
    """Totals of one location inside a period entry.

    For location subjects quantity is hours and cost is wage cost; for
    product subjects quantity is units sold and cost is 0.
    """

    location_id: str
    location_name: str
    quantity: float = 0.0
    cost: float = 0.0
    revenue: float = 0.0
    record_count: int = 0

    def add(self, other: LocationTotals, sign: int = 1) -> None:
        self.quantity += sign * other.quantity
        self.cost += sign * other.cost
        self.revenue += sign * other.revenue
        self.record_count += sign * other.record_count
        if other.location_name:
            self.location_name = other.location_name

    def copy(self) -> LocationTotals:
        return LocationTotals(
            self.location_id,
            self.location_name,
            self.quantity,
            self.cost,
            self.revenue,
            self.record_count,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "location_id": self.location_id,
            "location_name": self.location_name,
            "quantity": self.quantity,
            "cost": self.cost,
            "revenue": self.revenue,
            "record_count": self.record_count,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LocationTotals:
        return cls(
            location_id=str(data["location_id"]),
            location_name=str(data.get("location_name") or ""),
            quantity=float(data.get("quantity", 0.0)),
            cost=float(data.get("cost", 0.0)),
            revenue=float(data.get("revenue", 0.0)),
            record_count=int(data.get("record_count", 0)),
        )


@dataclass
class PeriodEntry:
    """One period of a collection with its per-location breakdown."""

    period: str
    period_type: str
    by_location: dict[str, LocationTotals] = field(default_factory=dict)
    quantity: float = 0.0
    cost: float = 0.0
    revenue: float = 0.0
    record_count: int = 0

    def recompute(self) -> None:
        """Set the period totals to the sum of the by_location entries."""
        self.quantity = sum(loc.quantity for loc in self.by_location.values())
        self.cost = sum(loc.cost for loc in self.by_location.values())
        self.revenue = sum(loc.revenue for loc in self.by_location.values())
        self.record_count = sum(loc.record_count for loc in self.by_location.values())

    def location(self, location_id: str, location_name: str = "") -> LocationTotals:
        """Get or create the breakdown entry of a location."""
        entry = self.by_location.get(location_id)
        if entry is None:
            entry = LocationTotals(location_id, location_name)
            self.by_location[location_id] = entry
        return entry

    def copy(self) -> PeriodEntry:
        clone = PeriodEntry(self.period, self.period_type)
        clone.by_location = {k: v.copy() for k, v in self.by_location.items()}
        clone.recompute()
        return clone

    def to_dict(self) -> dict[str, Any]:
        start = period_start(self.period, self.period_type)
        data: dict[str, Any] = {"period": self.period, "year": start.year}
        if self.period_type == "month":
            data["month"] = start.month
        elif self.period_type == "week":
            data["year"] = int(self.period[:4])
            data["week"] = int(self.period.split("-W")[1])
        elif self.period_type == "day":
            data["month"] = start.month
            data["date"] = self.period
        data.update(
            quantity=self.quantity,
            cost=self.cost,
            revenue=self.revenue,
            record_count=self.record_count,
            by_location=[self.by_location[k].to_dict() for k in sorted(self.by_location)],
        )
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any], period_type: str) -> PeriodEntry:
        entry = cls(period=str(data["period"]), period_type=period_type)
        for raw in data.get("by_location", []):
            loc = LocationTotals.from_dict(raw)
            if loc.location_id in entry.by_location:
                # a stored document with a repeated location is folded, not dropped
                entry.by_location[loc.location_id].add(loc)
            else:
                entry.by_location[loc.location_id] = loc
        entry.recompute()
        return entry


@dataclass
class HierarchicalAggregate:
    """Pre-computed totals of one subject at year, month, week and day level.

    Attributes:
        subject_id: Store key, e.g. "location:loc-bea" or "product:Latte".
        subject_type: "location" or "product".
        subject_name: Display name of the subject.
        by_year, by_month, by_week, by_day: Period key -> PeriodEntry.
        windows: Merged date ranges that have been aggregated into this subject.
        updated_at: ISO timestamp of the last merge.
    """

    subject_id: str
    subject_type: str
    subject_name: str = ""
    by_year: dict[str, PeriodEntry] = field(default_factory=dict)
    by_month: dict[str, PeriodEntry] = field(default_factory=dict)
    by_week: dict[str, PeriodEntry] = field(default_factory=dict)
    by_day: dict[str, PeriodEntry] = field(default_factory=dict)
    windows: list[tuple[date, date]] = field(default_factory=list)
    updated_at: Optional[str] = None

    def collection(self, period_type: str) -> dict[str, PeriodEntry]:
        if period_type not in HIERARCHY_PERIODS:
            raise ValueError(f"No {period_type!r} collection; expected one of {HIERARCHY_PERIODS}")
        return getattr(self, f"by_{period_type}")

    def entry(self, period_type: str, key: str) -> PeriodEntry:
        """Get or create the entry for a period key."""
        coll = self.collection(period_type)
        entry = coll.get(key)
        if entry is None:
            entry = PeriodEntry(key, period_type)
            coll[key] = entry
        return entry

    def recompute(self) -> None:
        for period_type in HIERARCHY_PERIODS:
            for entry in self.collection(period_type).values():
                entry.recompute()

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "subject_id": self.subject_id,
            "subject_type": self.subject_type,
            "subject_name": self.subject_name,
            "updated_at": self.updated_at,
            "windows": [[s.isoformat(), e.isoformat()] for s, e in self.windows],
        }
        for period_type in HIERARCHY_PERIODS:
            coll = self.collection(period_type)
            data[f"by_{period_type}"] = [coll[k].to_dict() for k in sorted(coll)]
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HierarchicalAggregate:
        agg = cls(
            subject_id=str(data["subject_id"]),
            subject_type=str(data.get("subject_type", LOCATION_SUBJECT)),
            subject_name=str(data.get("subject_name") or ""),
            updated_at=data.get("updated_at"),
            windows=[(parse_date(s), parse_date(e)) for s, e in data.get("windows", [])],
        )
        for period_type in HIERARCHY_PERIODS:
            coll = agg.collection(period_type)
            for raw in data.get(f"by_{period_type}", []):
                entry = PeriodEntry.from_dict(raw, period_type)
                if entry.period in coll:
                    for loc in entry.by_location.values():
                        coll[entry.period].location(loc.location_id, loc.location_name).add(loc)
                    coll[entry.period].recompute()
                else:
                    coll[entry.period] = entry
        return agg

    def day_frame(self) -> pd.DataFrame:
        """by_day flattened to one row per (day, location), as FRAGMENT_COLUMNS."""
        rows = [
            {
                "day": pd.Timestamp(key),
                "location_id": loc.location_id,
                "location_name": loc.location_name,
                "quantity": loc.quantity,
                "cost": loc.cost,
                "revenue": loc.revenue,
                "record_count": loc.record_count,
            }
            for key, entry in sorted(self.by_day.items())
            for loc in entry.by_location.values()
        ]
        if not rows:
            return pd.DataFrame({col: pd.Series(dtype="object") for col in FRAGMENT_COLUMNS})
        return pd.DataFrame(rows, columns=FRAGMENT_COLUMNS)


def build_aggregate(
    subject_id: str,
    subject_type: str,
    rows: pd.DataFrame,
    subject_name: str = "",
    window: Optional[tuple[date, date]] = None,
) -> HierarchicalAggregate:
    """Build a fresh aggregate fragment from day-level rows.

    Args:
        subject_id: Store key of the subject.
        subject_type: "location" or "product".
        rows: Day-level rows with FRAGMENT_COLUMNS. Several rows for the
            same (day, location) are summed.
        subject_name: Display name.
        window: Date range the rows were computed for.

    Returns:
        HierarchicalAggregate with all four collections filled.
    """
    missing = [col for col in FRAGMENT_COLUMNS if col not in rows.columns]
    if missing:
        raise KeyError(f"build_aggregate: missing columns {missing}")
    agg = HierarchicalAggregate(subject_id=subject_id, subject_type=subject_type, subject_name=subject_name)
    for row in rows.itertuples(index=False):
        totals = LocationTotals(
            location_id=str(row.location_id),
            location_name=str(row.location_name or ""),
            quantity=float(row.quantity),
            cost=float(row.cost),
            revenue=float(row.revenue),
            record_count=int(row.record_count),
        )
        for period_type in HIERARCHY_PERIODS:
            key = period_key(row.day, period_type)
            agg.entry(period_type, key).location(totals.location_id, totals.location_name).add(totals)
    agg.recompute()
    if window is not None:
        agg.windows = [window]
    return agg


def location_fragments(
    days: pd.DataFrame,
    window: Optional[tuple[date, date]] = None,
) -> dict[str, HierarchicalAggregate]:
    """One aggregate fragment per location from location-day rows.

    Quantity is hours, cost is wage cost, record_count counts days.
    """
    fragments: dict[str, HierarchicalAggregate] = {}
    if days.empty:
        return fragments
    rows = days.rename(
        columns={"total_hours": "quantity", "total_wage_cost": "cost", "total_revenue": "revenue"}
    )
    for location_id, part in rows.groupby("location_id", sort=True):
        subject = subject_id_for(LOCATION_SUBJECT, str(location_id))
        fragments[subject] = build_aggregate(
            subject,
            LOCATION_SUBJECT,
            part[FRAGMENT_COLUMNS],
            subject_name=str(part["location_name"].iloc[0]),
            window=window,
        )
    return fragments


def explode_products(sales_winners: pd.DataFrame, location_names: dict[str, str]) -> pd.DataFrame:
    """Flatten product lines of the freshest sales records."""
    rows = []
    if not sales_winners.empty:
        for rec in sales_winners[["location_id", "day", "products"]].itertuples(index=False):
            for line in rec.products or ():
                rows.append(
                    {
                        "product_name": line.product_name,
                        "day": rec.day,
                        "location_id": rec.location_id,
                        "location_name": location_names.get(rec.location_id, ""),
                        "quantity": float(line.quantity or 0.0),
                        "cost": 0.0,
                        "revenue": float(line.revenue or 0.0),
                        "record_count": int(line.transaction_count or 0),
                    }
                )
    return pd.DataFrame(rows, columns=["product_name", *FRAGMENT_COLUMNS])


def product_fragments(
    sales_winners: pd.DataFrame,
    location_names: dict[str, str],
    window: Optional[tuple[date, date]] = None,
) -> dict[str, HierarchicalAggregate]:
    """One aggregate fragment per product; record_count counts transactions."""
    lines = explode_products(sales_winners, location_names)
    fragments: dict[str, HierarchicalAggregate] = {}
    if lines.empty:
        return fragments
    for name, part in lines.groupby("product_name", sort=True):
        subject = subject_id_for(PRODUCT_SUBJECT, str(name))
        fragments[subject] = build_aggregate(
            subject, PRODUCT_SUBJECT, part[FRAGMENT_COLUMNS], subject_name=str(name), window=window
        )
    return fragments


def retired_fragment(
    persisted: HierarchicalAggregate,
    covered: set[tuple[str, str]],
    window: Optional[tuple[date, date]] = None,
) -> Optional[HierarchicalAggregate]:
    """Zero fragment for the (location, day) pairs a fresher snapshot no longer carries.

    A product left out of the freshest sales record of a covered
    (location_id, day key) pair still has its old by_day entry in the
    store. Merging this fragment replaces those entries with zeros and
    subtracts them from the coarse periods, so the result matches a run
    from an empty store.

    Returns:
        The fragment, or None when no persisted entry falls in covered.
    """
    rows = [
        {
            "day": pd.Timestamp(key),
            "location_id": loc.location_id,
            "location_name": loc.location_name,
            "quantity": 0.0,
            "cost": 0.0,
            "revenue": 0.0,
            "record_count": 0,
        }
        for key, entry in sorted(persisted.by_day.items())
        for loc in entry.by_location.values()
        if (loc.location_id, key) in covered
        and (loc.quantity or loc.cost or loc.revenue or loc.record_count)
    ]
    if not rows:
        return None
    return build_aggregate(
        persisted.subject_id,
        persisted.subject_type,
        pd.DataFrame(rows, columns=FRAGMENT_COLUMNS),
        subject_name=persisted.subject_name,
        window=window,
    )


def add_window(agg: HierarchicalAggregate, windows: Iterable[tuple[date, date]]) -> None:
    agg.windows = merge_intervals([*agg.windows, *windows])


def touch(agg: HierarchicalAggregate, now: Optional[datetime] = None) -> None:
    agg.updated_at = (now or datetime.now()).isoformat(timespec="seconds")
