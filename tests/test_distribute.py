"""Tests for revenue distribution over divisions, teams and workers.

Revenue is allocated per location-day by hours. The shares of a location
must always add back up to the location revenue.
"""

from datetime import datetime

import pytest

from ops_metrics.aggregation.distribute import (
    distribute_by_division,
    distribute_by_team,
    distribute_by_worker,
    explode_sub_entities,
)
from ops_metrics.aggregation.locations import labor_winners, location_days
from ops_metrics.categories import TeamCatalog
from ops_metrics.directory import LocationDirectory, WorkerDirectory
from ops_metrics.records import RawLaborRecord, SubEntityStat


@pytest.fixture
def directory() -> LocationDirectory:
    return LocationDirectory.from_mapping({"loc-bea": "Bar Bea"})


@pytest.fixture
def records() -> list[RawLaborRecord]:
    """Monday with a team breakdown, Tuesday without one."""
    return [
        RawLaborRecord(
            location_id="loc-bea",
            date=datetime(2024, 6, 3),
            created_at=datetime(2024, 6, 3, 23),
            hours=10.0,
            wage_cost=200.0,
            revenue=1000.0,
            by_team=(
                SubEntityStat("t-k", "Keuken", hours=6.0, cost=120.0),
                SubEntityStat("t-b", "Bediening", hours=4.0, cost=80.0),
            ),
            by_worker=(
                SubEntityStat("w1", "Jane Doe", hours=6.0, team_name="Keuken"),
                SubEntityStat("w2", "Piet", hours=4.0, team_name="Bar"),
                SubEntityStat("w3", "Kim", hours=0.0, team_name="Bar"),
            ),
        ),
        RawLaborRecord(
            location_id="loc-bea",
            date=datetime(2024, 6, 4),
            created_at=datetime(2024, 6, 4, 23),
            hours=5.0,
            wage_cost=100.0,
            revenue=500.0,
        ),
    ]


class TestDivisionDistribution:
    def test_day_level_shares(self, records, directory) -> None:
        days = location_days(records, None, directory)
        shares = distribute_by_division(records, days, directory, "day")
        monday = shares[shares["period"] == "2024-06-03"].set_index("division")

        assert monday.loc["Food", "total_revenue"] == pytest.approx(600.0)
        assert monday.loc["Beverage", "total_revenue"] == pytest.approx(400.0)
        assert monday.loc["Food", "total_hours"] == pytest.approx(6.0)
        assert monday.loc["Food", "total_wage_cost"] == pytest.approx(120.0)
        assert monday.loc["Food", "team_category"] == "Kitchen"
        assert monday.loc["Beverage", "sub_team"] == "All"

    def test_day_without_breakdown_becomes_all(self, records, directory) -> None:
        days = location_days(records, None, directory)
        shares = distribute_by_division(records, days, directory, "day")
        tuesday = shares[shares["period"] == "2024-06-04"]

        assert tuesday["division"].tolist() == ["All"]
        assert tuesday.iloc[0]["total_revenue"] == pytest.approx(500.0)
        assert tuesday.iloc[0]["total_hours"] == pytest.approx(5.0)

    def test_weekly_order_and_conservation(self, records, directory) -> None:
        """Shares sum to the location revenue; divisions follow reporting order."""
        days = location_days(records, None, directory)
        shares = distribute_by_division(records, days, directory, "week")

        assert shares["division"].tolist() == ["Food", "Beverage", "All"]
        assert shares["total_revenue"].sum() == pytest.approx(days["total_revenue"].sum())
        assert shares["total_hours"].sum() == pytest.approx(days["total_hours"].sum())

    def test_zero_hour_breakdown_is_treated_as_missing(self, directory) -> None:
        records = [
            RawLaborRecord(
                location_id="loc-bea",
                date=datetime(2024, 6, 3),
                created_at=datetime(2024, 6, 3),
                hours=8.0,
                wage_cost=160.0,
                revenue=800.0,
                by_team=(SubEntityStat("t-k", "Keuken", hours=0.0),),
            )
        ]
        days = location_days(records, None, directory)
        shares = distribute_by_division(records, days, directory, "day")
        assert shares["division"].tolist() == ["All"]
        assert shares["total_revenue"].sum() == pytest.approx(800.0)

    def test_catalog_override(self, records, directory) -> None:
        days = location_days(records, None, directory)
        catalog = TeamCatalog({"Bediening": "Management"})
        shares = distribute_by_division(records, days, directory, "week", catalog)
        assert "Management" in shares["division"].tolist()
        assert "Beverage" not in shares["division"].tolist()

    def test_empty_input(self, directory) -> None:
        days = location_days([], None, directory)
        assert distribute_by_division([], days, directory).empty


class TestTeamDistribution:
    def test_sub_teams_within_a_category(self, directory) -> None:
        records = [
            RawLaborRecord(
                location_id="loc-bea",
                date=datetime(2024, 6, 3),
                created_at=datetime(2024, 6, 3),
                hours=10.0,
                revenue=1000.0,
                by_team=(
                    SubEntityStat("t-k", "Keuken", hours=3.0, cost=60.0),
                    SubEntityStat("t-a", "Afwas", hours=3.0, cost=45.0),
                    SubEntityStat("t-b", "Bediening", hours=4.0, cost=80.0),
                ),
            )
        ]
        days = location_days(records, None, directory)
        shares = distribute_by_team(records, days, directory, "day")

        assert list(zip(shares["team_category"], shares["sub_team"])) == [
            ("Kitchen", "Afwas"),
            ("Kitchen", "Keuken"),
            ("Service", "Bediening"),
        ]
        assert shares["total_revenue"].tolist() == pytest.approx([300.0, 300.0, 400.0])
        # cost comes from the breakdown, not from the record-level fallback
        assert shares["total_wage_cost"].sum() == pytest.approx(185.0)


class TestWorkerDistribution:
    def test_workers_without_wage_are_excluded(self, records, directory) -> None:
        workers = WorkerDirectory.from_mapping({"w1": {"name": "Jane Doe", "hourly_wage": 15}})
        days = location_days(records, None, directory)
        result = distribute_by_worker(records, days, directory, workers, "day")

        assert result.workers["worker_name"].tolist() == ["Jane Doe"]
        jane = result.workers.iloc[0]
        # Piet is out of the denominator, so Jane carries the whole day
        assert jane["total_revenue"] == pytest.approx(1000.0)
        assert jane["total_wage_cost"] == pytest.approx(90.0)
        assert jane["division"] == "Food"

        assert result.missing_wages["worker_id"].tolist() == ["w2"]
        assert result.missing_wages.iloc[0]["hours"] == pytest.approx(4.0)
        assert result.missing_wages.iloc[0]["location_name"] == "Bar Bea"

    def test_wage_implied_by_recorded_cost(self, directory) -> None:
        records = [
            RawLaborRecord(
                location_id="loc-bea",
                date=datetime(2024, 6, 3),
                created_at=datetime(2024, 6, 3),
                hours=8.0,
                revenue=800.0,
                by_worker=(
                    SubEntityStat("w4", "Sam", hours=4.0, cost=60.0, team_name="Bar"),
                    SubEntityStat("w5", "Lou", hours=4.0, cost=60.0, team_name="Keuken"),
                ),
            )
        ]
        days = location_days(records, None, directory)
        result = distribute_by_worker(records, days, directory, WorkerDirectory(), "day")

        assert result.missing_wages.empty
        assert result.workers["total_revenue"].tolist() == pytest.approx([400.0, 400.0])
        assert result.workers["total_wage_cost"].sum() == pytest.approx(120.0)

    def test_missing_wage_reported_once_per_worker_and_location(self, directory) -> None:
        records = [
            RawLaborRecord(
                location_id="loc-bea",
                date=datetime(2024, 6, day),
                created_at=datetime(2024, 6, day),
                hours=4.0,
                revenue=400.0,
                by_worker=(SubEntityStat("w2", "Piet", hours=4.0, team_name="Bar"),),
            )
            for day in (3, 4)
        ]
        days = location_days(records, None, directory)
        result = distribute_by_worker(records, days, directory, WorkerDirectory(), "week")

        assert result.workers.empty
        assert len(result.missing_wages) == 1
        assert result.missing_wages.iloc[0]["hours"] == pytest.approx(8.0)


def test_explode_rejects_unknown_kind(records) -> None:
    with pytest.raises(ValueError):
        explode_sub_entities(labor_winners(records), "product")
