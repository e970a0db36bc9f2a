"""Tests for directories, DataPaths and the command-line entry point."""

import json
from pathlib import Path
from tempfile import TemporaryDirectory

import pytest

from ops_metrics.cli import main
from ops_metrics.config import DataPaths
from ops_metrics.directory import LocationDirectory, WorkerDirectory
from ops_metrics.exceptions import ConfigError


class TestDirectories:
    def test_location_resolution(self) -> None:
        directory = LocationDirectory.from_mapping(
            {"loc-bea": {"name": "Bar Bea", "aliases": ["BarBea"]}, "loc-lam": "Lamour"}
        )
        assert directory.resolve("  bar BEA ") == "loc-bea"
        assert directory.resolve("barbea") == "loc-bea"
        assert directory.resolve("loc-lam") == "loc-lam"
        assert directory.resolve("Elsewhere") is None
        assert directory.name_for("loc-x") == "Unknown Location"
        assert directory.ids() == ["loc-bea", "loc-lam"]
        assert "loc-bea" in directory and len(directory) == 2

    def test_ambiguous_alias_keeps_first(self) -> None:
        directory = LocationDirectory.from_mapping(
            {"loc-a": {"name": "Centrum"}, "loc-b": {"name": "Noord", "aliases": ["centrum"]}}
        )
        assert directory.resolve("Centrum") == "loc-a"

    def test_from_json_list_layout(self) -> None:
        with TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "locations.json"
            path.write_text(json.dumps([{"id": "loc-bea", "name": "Bar Bea"}]), encoding="utf-8")
            assert LocationDirectory.from_json(path).name_for("loc-bea") == "Bar Bea"

    def test_missing_or_invalid_file(self) -> None:
        with TemporaryDirectory() as tmpdir:
            with pytest.raises(ConfigError):
                LocationDirectory.from_json(Path(tmpdir) / "nope.json")
            bad = Path(tmpdir) / "bad.json"
            bad.write_text("{", encoding="utf-8")
            with pytest.raises(ConfigError):
                WorkerDirectory.from_json(bad)

    def test_worker_wages(self) -> None:
        workers = WorkerDirectory.from_mapping(
            {"w1": {"name": "Jane Doe", "hourly_wage": "15,50"}, "w2": {"name": "Piet", "hourly_wage": 0}}
        )
        assert workers.hourly_wage("w1") == pytest.approx(15.5)
        assert workers.hourly_wage("w2") is None
        assert workers.hourly_wage("w3") is None
        assert len(WorkerDirectory.from_json(None)) == 0


def test_data_paths_layout() -> None:
    paths = DataPaths.from_root("data", "config/locations.json")
    assert paths.raw_labor == Path("data/a_raw/labor")
    assert paths.raw_sales == Path("data/a_raw/sales")
    assert paths.reference == Path("data/a_raw/reference")
    assert paths.aggregates == Path("data/c_processed/aggregates")
    assert paths.workers_json is None


class TestCli:
    @pytest.fixture
    def root(self):
        with TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            (root / "locations.json").write_text(json.dumps({"loc-bea": "Bar Bea"}), encoding="utf-8")
            labor = root / "data" / "a_raw" / "labor"
            labor.mkdir(parents=True)
            (labor / "june.jsonl").write_text(
                json.dumps({"location_id": "loc-bea", "date": "2024-06-01", "hours": 8, "wage_cost": 80, "revenue": 1000})
                + "\n",
                encoding="utf-8",
            )
            reference = root / "data" / "a_raw" / "reference"
            reference.mkdir(parents=True)
            (reference / "june.csv").write_text("Datum,Vestiging,Omzet\n01/06/2024,Bar Bea,1500\n", encoding="utf-8")
            yield root

    def base_args(self, root: Path) -> list[str]:
        return ["--data-root", str(root / "data"), "--locations", str(root / "locations.json")]

    def test_aggregate_then_reconcile(self, root: Path, capsys) -> None:
        assert main([*self.base_args(root), "aggregate", "--start", "2024-06-01", "--end", "2024-06-30"]) == 0
        assert "Updated subjects: 1" in capsys.readouterr().out

        assert main([*self.base_args(root), "reconcile"]) == 0
        out = capsys.readouterr().out
        assert "revenue_mismatch" in out

        assert main([*self.base_args(root), "reconcile", "--strict"]) == 2

    def test_productivity_writes_csv(self, root: Path) -> None:
        out_dir = root / "out"
        code = main(
            [*self.base_args(root), "productivity", "--start", "2024-06-01", "--end", "2024-06-30",
             "--period", "week", "--out", str(out_dir)]
        )
        assert code == 0
        assert (out_dir / "productivity_week_locations.csv").exists()
        assert (out_dir / "productivity_week_divisions.csv").exists()

    def test_fatal_errors_exit_with_1(self, root: Path) -> None:
        assert main([*self.base_args(root), "aggregate", "--start", "2024-06-30", "--end", "2024-06-01"]) == 1
        args = ["--data-root", str(root / "data"), "--locations", str(root / "missing.json")]
        assert main([*args, "aggregate", "--start", "2024-06-01", "--end", "2024-06-02"]) == 1
