"""Tests for derived metrics and goal tiers."""

import pandas as pd
import pytest

from ops_metrics.metrics import (
    add_derived_metrics,
    goal_status,
    labor_cost_percentage,
    labor_cost_status,
    revenue_per_hour,
    revenue_per_hour_status,
)


class TestRatios:
    def test_zero_denominators(self) -> None:
        assert revenue_per_hour(500.0, 0.0) == 0.0
        assert labor_cost_percentage(100.0, 0.0) == 0.0
        assert labor_cost_percentage(0.0, 500.0) == 0.0

    def test_values(self) -> None:
        assert revenue_per_hour(1000.0, 8.0) == pytest.approx(125.0)
        assert labor_cost_percentage(280.0, 1000.0) == pytest.approx(28.0)


class TestGoalStatus:
    @pytest.mark.parametrize(
        "rph, expected",
        [(44.99, "bad"), (45.0, "not_great"), (54.99, "not_great"), (55.0, "ok"), (65.0, "great")],
    )
    def test_revenue_per_hour_tiers(self, rph: float, expected: str) -> None:
        assert revenue_per_hour_status(rph) == expected

    @pytest.mark.parametrize(
        "lcp, expected",
        [(29.99, "great"), (30.0, "ok"), (32.5, "ok"), (32.51, "bad")],
    )
    def test_labor_cost_tiers(self, lcp: float, expected: str) -> None:
        assert labor_cost_status(lcp) == expected

    def test_combined_status_is_the_worse_tier(self) -> None:
        assert goal_status(70.0, 25.0) == "great"
        assert goal_status(70.0, 31.0) == "ok"
        assert goal_status(70.0, 35.0) == "bad"
        assert goal_status(50.0, 25.0) == "not_great"

    def test_unmeasurable_labor_cost_is_ignored(self) -> None:
        assert goal_status(50.0, 0.0) == "not_great"


class TestAddDerivedMetrics:
    def test_adds_columns_without_modifying_input(self) -> None:
        df = pd.DataFrame(
            {"total_hours": [10.0, 0.0], "total_wage_cost": [250.0, 0.0], "total_revenue": [1000.0, 300.0]}
        )
        out = add_derived_metrics(df)

        assert "revenue_per_hour" not in df.columns
        assert out["revenue_per_hour"].tolist() == pytest.approx([100.0, 0.0])
        assert out["labor_cost_percentage"].tolist() == pytest.approx([25.0, 0.0])
        assert out["goal_status"].tolist() == ["great", "bad"]
