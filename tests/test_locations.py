"""Tests for location-level aggregation.

Covers the freshest-record rule, the wage cost fallback, revenue
precedence between labor and sales snapshots, and period rollups.
"""

import logging
from datetime import datetime

import pytest

from ops_metrics.aggregation.locations import aggregate_locations, location_days
from ops_metrics.directory import LocationDirectory
from ops_metrics.records import RawLaborRecord, RawSalesRecord, SubEntityStat, labor_frame, pick_freshest


def labor(loc, day, created=None, hours=0.0, cost=0.0, revenue=0.0, by_team=()):
    return RawLaborRecord(
        location_id=loc,
        date=day,
        created_at=created,
        hours=hours,
        wage_cost=cost,
        revenue=revenue,
        by_team=tuple(by_team),
    )


def sales(loc, day, created=None, revenue=0.0, transactions=0):
    return RawSalesRecord(
        location_id=loc, date=day, created_at=created, revenue=revenue, transaction_count=transactions
    )


@pytest.fixture
def directory() -> LocationDirectory:
    return LocationDirectory.from_mapping({"loc-bea": "Bar Bea", "loc-lam": "Lamour"})


class TestFreshness:
    """The most recently created snapshot per (location, day) wins."""

    def test_bar_bea_later_snapshot_wins(self, directory: LocationDirectory) -> None:
        records = [
            labor("loc-bea", datetime(2024, 6, 1), datetime(2024, 6, 1, 9), hours=8.0, cost=80.0),
            labor("loc-bea", datetime(2024, 6, 1), datetime(2024, 6, 1, 14), hours=9.0, cost=90.0),
        ]
        days = location_days(records, None, directory)

        assert len(days) == 1
        assert days.loc[0, "total_hours"] == 9.0
        assert days.loc[0, "total_wage_cost"] == 90.0

    def test_input_order_does_not_matter(self, directory: LocationDirectory) -> None:
        records = [
            labor("loc-bea", datetime(2024, 6, 1), datetime(2024, 6, 1, 14), hours=9.0, cost=90.0),
            labor("loc-bea", datetime(2024, 6, 1), datetime(2024, 6, 1, 9), hours=8.0, cost=80.0),
        ]
        days = location_days(records, None, directory)
        assert days["total_hours"].tolist() == [9.0]

    def test_missing_timestamp_loses(self, directory: LocationDirectory) -> None:
        records = [
            labor("loc-bea", datetime(2024, 6, 1), None, hours=10.0),
            labor("loc-bea", datetime(2024, 6, 1), datetime(2024, 6, 1, 8), hours=7.0),
        ]
        days = location_days(records, None, directory)
        assert days["total_hours"].tolist() == [7.0]

    def test_pick_freshest_keeps_one_row_per_key(self) -> None:
        df = labor_frame(
            [
                labor("loc-bea", datetime(2024, 6, 1, 10), datetime(2024, 6, 1, 9), hours=1.0),
                labor("loc-bea", datetime(2024, 6, 1, 18), datetime(2024, 6, 1, 20), hours=2.0),
                labor("loc-lam", datetime(2024, 6, 1), datetime(2024, 6, 1, 7), hours=3.0),
            ]
        )
        winners = pick_freshest(df)
        assert len(winners) == 2
        assert winners.set_index("location_id")["hours"].to_dict() == {"loc-bea": 2.0, "loc-lam": 3.0}


class TestLocationDays:
    def test_wage_cost_falls_back_to_team_costs(self, directory: LocationDirectory) -> None:
        teams = [
            SubEntityStat("t1", "Keuken", hours=5.0, cost=40.0),
            SubEntityStat("t2", "Bar", hours=3.0, cost=60.0),
        ]
        records = [labor("loc-bea", datetime(2024, 6, 1), datetime(2024, 6, 2), hours=8.0, by_team=teams)]
        days = location_days(records, None, directory)
        assert days.loc[0, "total_wage_cost"] == pytest.approx(100.0)

    def test_labor_revenue_takes_precedence(self, directory: LocationDirectory) -> None:
        day = datetime(2024, 6, 1)
        days = location_days(
            [labor("loc-bea", day, day, hours=10.0, cost=200.0, revenue=500.0)],
            [sales("loc-bea", day, day, revenue=700.0, transactions=40)],
            directory,
        )
        assert days.loc[0, "total_revenue"] == 500.0
        assert days.loc[0, "transaction_count"] == 40

    def test_sales_revenue_fills_zero_labor_revenue(self, directory: LocationDirectory) -> None:
        day = datetime(2024, 6, 1)
        days = location_days(
            [labor("loc-bea", day, day, hours=10.0, cost=200.0)],
            [sales("loc-bea", day, day, revenue=700.0)],
            directory,
        )
        assert days.loc[0, "total_revenue"] == 700.0

    def test_sales_only_day_still_produces_a_row(self, directory: LocationDirectory) -> None:
        day = datetime(2024, 6, 1)
        days = location_days([], [sales("loc-lam", day, day, revenue=300.0)], directory)
        assert len(days) == 1
        row = days.iloc[0]
        assert row["location_name"] == "Lamour"
        assert row["total_hours"] == 0.0
        assert row["total_revenue"] == 300.0

    def test_unknown_location_gets_placeholder_name(self, directory: LocationDirectory) -> None:
        day = datetime(2024, 6, 1)
        days = location_days([labor("loc-new", day, day, hours=1.0, cost=10.0)], None, directory)
        assert days.loc[0, "location_name"] == "Unknown Location"

    def test_empty_input(self, directory: LocationDirectory) -> None:
        assert location_days([], None, directory).empty


class TestAggregateLocations:
    @pytest.fixture
    def week_records(self) -> list:
        return [
            labor("loc-bea", datetime(2024, 6, 3), datetime(2024, 6, 3, 23), hours=10.0, cost=300.0, revenue=1000.0),
            labor("loc-bea", datetime(2024, 6, 4), datetime(2024, 6, 4, 23), hours=10.0, cost=300.0, revenue=1000.0),
            labor("loc-lam", datetime(2024, 6, 10), datetime(2024, 6, 10, 23), hours=4.0, cost=100.0, revenue=200.0),
        ]

    def test_weekly_rollup_sums_days(self, directory: LocationDirectory, week_records: list) -> None:
        rows = aggregate_locations(week_records, None, directory, "week")
        bea = rows[rows["location_id"] == "loc-bea"].iloc[0]

        assert bea["period"] == "2024-W23"
        assert bea["total_hours"] == pytest.approx(20.0)
        assert bea["total_wage_cost"] == pytest.approx(600.0)
        assert bea["total_revenue"] == pytest.approx(2000.0)
        assert bea["revenue_per_hour"] == pytest.approx(100.0)
        assert bea["labor_cost_percentage"] == pytest.approx(30.0)
        assert bea["goal_status"] == "ok"
        assert bea["record_count"] == 2

    def test_newest_period_first(self, directory: LocationDirectory, week_records: list) -> None:
        rows = aggregate_locations(week_records, None, directory, "week")
        assert rows["period"].tolist() == ["2024-W24", "2024-W23"]

    def test_location_filter(self, directory: LocationDirectory, week_records: list) -> None:
        rows = aggregate_locations(week_records, None, directory, "month", locations=["loc-lam"])
        assert rows["location_id"].tolist() == ["loc-lam"]
        assert rows["period"].tolist() == ["2024-06"]

    def test_hour_buckets_use_record_timestamp(self, directory: LocationDirectory) -> None:
        records = [labor("loc-bea", datetime(2024, 6, 1, 14, 30), datetime(2024, 6, 1, 15), hours=2.0, cost=30.0)]
        rows = aggregate_locations(records, None, directory, "hour")
        assert rows["period"].tolist() == ["2024-06-01T14"]

    def test_hours_without_cost_are_logged(self, directory: LocationDirectory, caplog) -> None:
        """A location with hours but no wage cost is kept and reported."""
        caplog.set_level(logging.WARNING)
        records = [labor("loc-bea", datetime(2024, 6, 1), datetime(2024, 6, 1), hours=8.0, revenue=400.0)]
        rows = aggregate_locations(records, None, directory, "day")

        assert len(rows) == 1
        assert rows.loc[0, "labor_cost_percentage"] == 0.0
        assert "no wage cost" in caplog.text
        assert "Bar Bea" in caplog.text

    def test_empty_frame_has_columns(self, directory: LocationDirectory) -> None:
        rows = aggregate_locations([], None, directory)
        assert rows.empty
        assert "goal_status" in rows.columns
