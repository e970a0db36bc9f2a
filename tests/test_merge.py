"""Tests for hierarchical aggregates and their incremental merge.

Re-running a window must replace, never double count. Windows that do not
overlap must add up. Periods outside the fresh window must survive.
"""

from datetime import date

import pandas as pd
import pytest

from ops_metrics.aggregation.hierarchy import (
    LOCATION_SUBJECT,
    HierarchicalAggregate,
    build_aggregate,
    location_fragments,
    retired_fragment,
    subject_id_for,
)
from ops_metrics.aggregation.merge import merge_aggregates

SUBJECT = subject_id_for(LOCATION_SUBJECT, "loc-bea")


def fragment(rows, subject_id: str = SUBJECT, window=None) -> HierarchicalAggregate:
    """Build a fragment from (day, location_id, hours, cost, revenue) tuples."""
    df = pd.DataFrame(
        [
            {
                "day": pd.Timestamp(day),
                "location_id": loc,
                "location_name": loc.upper(),
                "quantity": hours,
                "cost": cost,
                "revenue": revenue,
                "record_count": 1,
            }
            for day, loc, hours, cost, revenue in rows
        ]
    )
    return build_aggregate(subject_id, LOCATION_SUBJECT, df, subject_name="Bar Bea", window=window)


def totals(agg: HierarchicalAggregate, period_type: str, key: str) -> tuple[float, float, float]:
    entry = agg.collection(period_type)[key]
    return entry.quantity, entry.cost, entry.revenue


def assert_consistent(agg: HierarchicalAggregate) -> None:
    """Every period total equals the sum of its locations."""
    for period_type in ("year", "month", "week", "day"):
        for entry in agg.collection(period_type).values():
            assert entry.quantity == pytest.approx(sum(loc.quantity for loc in entry.by_location.values()))
            assert entry.revenue == pytest.approx(sum(loc.revenue for loc in entry.by_location.values()))


class TestBuildAggregate:
    def test_fills_all_collections(self) -> None:
        agg = fragment([("2024-06-03", "loc-bea", 8.0, 80.0, 800.0)])

        assert list(agg.by_day) == ["2024-06-03"]
        assert list(agg.by_week) == ["2024-W23"]
        assert list(agg.by_month) == ["2024-06"]
        assert list(agg.by_year) == ["2024"]
        assert totals(agg, "year", "2024") == (8.0, 80.0, 800.0)

    def test_week_spanning_new_year(self) -> None:
        agg = fragment(
            [("2020-12-31", "loc-bea", 1.0, 0.0, 10.0), ("2021-01-01", "loc-bea", 2.0, 0.0, 20.0)]
        )
        assert list(agg.by_week) == ["2020-W53"]
        assert totals(agg, "week", "2020-W53")[2] == pytest.approx(30.0)
        assert sorted(agg.by_year) == ["2020", "2021"]

    def test_document_round_trip(self) -> None:
        agg = fragment(
            [("2024-06-03", "loc-bea", 8.0, 80.0, 800.0), ("2024-06-03", "loc-lam", 2.0, 20.0, 150.0)],
            window=(date(2024, 6, 1), date(2024, 6, 30)),
        )
        doc = agg.to_dict()
        week = doc["by_week"][0]

        assert week["year"] == 2024 and week["week"] == 23
        assert doc["by_day"][0]["date"] == "2024-06-03"
        assert [loc["location_id"] for loc in doc["by_day"][0]["by_location"]] == ["loc-bea", "loc-lam"]
        assert HierarchicalAggregate.from_dict(doc).to_dict() == doc

    def test_location_fragments_one_per_location(self) -> None:
        days = pd.DataFrame(
            {
                "location_id": ["loc-bea", "loc-lam"],
                "location_name": ["Bar Bea", "Lamour"],
                "day": pd.to_datetime(["2024-06-03", "2024-06-03"]),
                "total_hours": [8.0, 4.0],
                "total_wage_cost": [80.0, 40.0],
                "total_revenue": [800.0, 300.0],
                "record_count": [1, 1],
            }
        )
        fragments = location_fragments(days)
        assert sorted(fragments) == ["location:loc-bea", "location:loc-lam"]
        assert fragments["location:loc-lam"].subject_name == "Lamour"


class TestMerge:
    def test_first_merge_copies_fragment(self) -> None:
        fresh = fragment([("2024-06-03", "loc-bea", 8.0, 80.0, 800.0)])
        merged = merge_aggregates(None, fresh)
        assert merged.to_dict() == fresh.to_dict()
        assert merged is not fresh

    def test_idempotent(self) -> None:
        fresh = fragment(
            [("2024-06-03", "loc-bea", 8.0, 80.0, 800.0), ("2024-06-04", "loc-bea", 7.5, 75.0, 612.4)]
        )
        once = merge_aggregates(None, fresh)
        twice = merge_aggregates(once, fresh)
        assert twice.to_dict() == once.to_dict()

    def test_merge_with_itself(self) -> None:
        agg = fragment([("2024-06-03", "loc-bea", 8.0, 80.0, 800.0)])
        assert merge_aggregates(agg, agg).to_dict() == agg.to_dict()

    def test_rerun_replaces_instead_of_adding(self) -> None:
        first = merge_aggregates(None, fragment([("2024-06-03", "loc-bea", 8.0, 80.0, 800.0)]))
        merged = merge_aggregates(first, fragment([("2024-06-03", "loc-bea", 9.0, 90.0, 900.0)]))

        for period_type, key in [("day", "2024-06-03"), ("week", "2024-W23"), ("month", "2024-06"), ("year", "2024")]:
            assert totals(merged, period_type, key) == pytest.approx((9.0, 90.0, 900.0))

    def test_disjoint_windows_add_up(self) -> None:
        a = fragment([("2024-06-30", "loc-bea", 8.0, 80.0, 800.0)])
        b = fragment([("2024-07-01", "loc-bea", 5.0, 50.0, 400.0)])
        merged = merge_aggregates(merge_aggregates(None, a), b)

        assert sorted(merged.by_day) == ["2024-06-30", "2024-07-01"]
        assert totals(merged, "month", "2024-06") == pytest.approx((8.0, 80.0, 800.0))
        assert totals(merged, "month", "2024-07") == pytest.approx((5.0, 50.0, 400.0))
        # 2024-06-30 is a Sunday, so the two days fall in different ISO weeks
        assert sorted(merged.by_week) == ["2024-W26", "2024-W27"]
        assert totals(merged, "year", "2024") == pytest.approx((13.0, 130.0, 1200.0))

    def test_merge_order_does_not_matter_for_disjoint_windows(self) -> None:
        a = fragment([("2024-06-03", "loc-bea", 8.0, 80.0, 800.0)])
        b = fragment([("2024-06-05", "loc-bea", 5.0, 50.0, 400.0)])
        ab = merge_aggregates(merge_aggregates(None, a), b)
        ba = merge_aggregates(merge_aggregates(None, b), a)
        assert totals(ab, "week", "2024-W23") == pytest.approx(totals(ba, "week", "2024-W23"))
        assert totals(ab, "week", "2024-W23") == pytest.approx((13.0, 130.0, 1200.0))

    def test_untouched_locations_and_days_survive(self) -> None:
        persisted = merge_aggregates(
            None,
            fragment(
                [
                    ("2024-06-03", "loc-bea", 8.0, 80.0, 800.0),
                    ("2024-06-03", "loc-lam", 4.0, 40.0, 300.0),
                    ("2024-06-04", "loc-bea", 6.0, 60.0, 500.0),
                ]
            ),
        )
        merged = merge_aggregates(persisted, fragment([("2024-06-03", "loc-bea", 10.0, 100.0, 1000.0)]))

        assert merged.by_day["2024-06-03"].by_location["loc-lam"].revenue == 300.0
        assert merged.by_day["2024-06-04"].revenue == 500.0
        assert totals(merged, "week", "2024-W23") == pytest.approx((20.0, 200.0, 1800.0))
        assert merged.by_week["2024-W23"].by_location["loc-lam"].quantity == pytest.approx(4.0)
        assert_consistent(merged)

    def test_coarse_only_fragment_replaces_its_periods(self) -> None:
        persisted = merge_aggregates(None, fragment([("2024-06-03", "loc-bea", 8.0, 80.0, 800.0)]))
        fresh = HierarchicalAggregate(subject_id=SUBJECT, subject_type=LOCATION_SUBJECT)
        entry = fresh.entry("month", "2023-01")
        entry.location("loc-bea", "Bar Bea").revenue = 5000.0
        entry.recompute()

        merged = merge_aggregates(persisted, fresh)
        assert merged.by_month["2023-01"].revenue == 5000.0
        assert merged.by_month["2024-06"].revenue == 800.0

    def test_windows_are_merged(self) -> None:
        a = fragment([("2024-06-03", "loc-bea", 1.0, 0.0, 1.0)], window=(date(2024, 6, 1), date(2024, 6, 7)))
        b = fragment([("2024-06-10", "loc-bea", 1.0, 0.0, 1.0)], window=(date(2024, 6, 8), date(2024, 6, 14)))
        merged = merge_aggregates(merge_aggregates(None, a), b)
        assert merged.windows == [(date(2024, 6, 1), date(2024, 6, 14))]

    def test_inputs_are_not_modified(self) -> None:
        persisted = fragment([("2024-06-03", "loc-bea", 8.0, 80.0, 800.0)])
        before = persisted.to_dict()
        merge_aggregates(persisted, fragment([("2024-06-03", "loc-bea", 1.0, 1.0, 1.0)]))
        assert persisted.to_dict() == before

    def test_different_subjects_raise(self) -> None:
        a = fragment([("2024-06-03", "loc-bea", 1.0, 0.0, 1.0)])
        b = fragment([("2024-06-03", "loc-bea", 1.0, 0.0, 1.0)], subject_id="location:other")
        with pytest.raises(ValueError):
            merge_aggregates(a, b)


class TestRetiredFragment:
    def test_zeroes_only_covered_pairs(self) -> None:
        persisted = fragment(
            [
                ("2024-06-03", "loc-bea", 8.0, 80.0, 800.0),
                ("2024-06-04", "loc-bea", 4.0, 40.0, 400.0),
                ("2024-06-03", "loc-lam", 2.0, 20.0, 200.0),
            ]
        )
        retired = retired_fragment(persisted, {("loc-bea", "2024-06-03")})

        merged = merge_aggregates(persisted, retired)

        assert totals(merged, "day", "2024-06-03") == (2.0, 20.0, 200.0)
        assert merged.by_day["2024-06-03"].by_location["loc-bea"].revenue == 0.0
        assert totals(merged, "month", "2024-06") == (6.0, 60.0, 600.0)
        assert_consistent(merged)

    def test_nothing_to_retire(self) -> None:
        persisted = fragment([("2024-06-03", "loc-bea", 8.0, 80.0, 800.0)])
        assert retired_fragment(persisted, {("loc-bea", "2024-06-04")}) is None
        assert retired_fragment(persisted, {("loc-lam", "2024-06-03")}) is None

    def test_already_zeroed_entries_are_skipped(self) -> None:
        persisted = fragment([("2024-06-03", "loc-bea", 8.0, 80.0, 800.0)])
        covered = {("loc-bea", "2024-06-03")}
        merged = merge_aggregates(persisted, retired_fragment(persisted, covered))
        assert retired_fragment(merged, covered) is None
