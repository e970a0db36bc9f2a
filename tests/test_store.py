"""Tests for the aggregate stores."""

import json
from pathlib import Path
from tempfile import TemporaryDirectory

import pandas as pd
import pytest

from ops_metrics.aggregation.hierarchy import LOCATION_SUBJECT, build_aggregate
from ops_metrics.exceptions import StoreError, StoreUnavailableError
from ops_metrics.metadata import META_DIR, RunMetadata, read_metadata, write_metadata
from ops_metrics.store import InMemoryStore, JsonFileStore


def make_fragment(subject_id: str, day: str, hours: float, revenue: float):
    df = pd.DataFrame(
        {
            "day": [pd.Timestamp(day)],
            "location_id": ["loc-bea"],
            "location_name": ["Bar Bea"],
            "quantity": [hours],
            "cost": [hours * 10],
            "revenue": [revenue],
            "record_count": [1],
        }
    )
    return build_aggregate(subject_id, LOCATION_SUBJECT, df, subject_name="Bar Bea")


class TestInMemoryStore:
    def test_merge_and_get(self) -> None:
        store = InMemoryStore()
        store.merge_and_put(make_fragment("location:loc-bea", "2024-06-03", 8.0, 800.0))
        store.merge_and_put(make_fragment("location:loc-bea", "2024-06-04", 6.0, 500.0))

        doc = store.get("location:loc-bea")
        assert sorted(doc.by_day) == ["2024-06-03", "2024-06-04"]
        assert doc.by_week["2024-W23"].revenue == pytest.approx(1300.0)
        assert store.subjects() == ["location:loc-bea"]

    def test_get_returns_a_copy(self) -> None:
        store = InMemoryStore()
        store.put(make_fragment("location:loc-bea", "2024-06-03", 8.0, 800.0))
        doc = store.get("location:loc-bea")
        doc.by_day.clear()
        assert "2024-06-03" in store.get("location:loc-bea").by_day

    def test_get_many_skips_unknown(self) -> None:
        store = InMemoryStore()
        store.put(make_fragment("location:loc-bea", "2024-06-03", 8.0, 800.0))
        assert list(store.get_many(["location:loc-bea", "location:nope"])) == ["location:loc-bea"]


class TestJsonFileStore:
    def test_round_trip_and_rerun(self) -> None:
        with TemporaryDirectory() as tmpdir:
            store = JsonFileStore(Path(tmpdir) / "aggregates")
            fragment = make_fragment("location:loc-bea", "2024-06-03", 8.0, 800.0)
            store.merge_and_put(fragment)
            first = store.get("location:loc-bea").to_dict()

            store.merge_and_put(fragment)
            assert store.get("location:loc-bea").to_dict() == first

            files = list((Path(tmpdir) / "aggregates").iterdir())
            assert len(files) == 1
            assert not files[0].name.startswith(".tmp-")
            assert json.loads(files[0].read_text(encoding="utf-8"))["subject_id"] == "location:loc-bea"

    def test_similar_ids_get_distinct_files(self) -> None:
        with TemporaryDirectory() as tmpdir:
            store = JsonFileStore(Path(tmpdir))
            store.put(make_fragment("product:Café", "2024-06-03", 1.0, 4.0))
            store.put(make_fragment("product:Cafe", "2024-06-03", 2.0, 8.0))

            assert store.subjects() == ["product:Cafe", "product:Café"]
            assert store.get("product:Café").by_day["2024-06-03"].revenue == 4.0

    def test_missing_document_is_none(self) -> None:
        with TemporaryDirectory() as tmpdir:
            assert JsonFileStore(Path(tmpdir)).get("location:nope") is None

    def test_corrupt_document_raises(self) -> None:
        with TemporaryDirectory() as tmpdir:
            store = JsonFileStore(Path(tmpdir))
            store.put(make_fragment("location:loc-bea", "2024-06-03", 8.0, 800.0))
            path = next(Path(tmpdir).glob("*.json"))
            path.write_text("{not json", encoding="utf-8")

            with pytest.raises(StoreError):
                store.get("location:loc-bea")

    def test_unusable_root_is_unavailable(self) -> None:
        with TemporaryDirectory() as tmpdir:
            blocker = Path(tmpdir) / "file"
            blocker.write_text("x", encoding="utf-8")
            with pytest.raises(StoreUnavailableError):
                JsonFileStore(blocker)


class TestRunMetadata:
    def make(self) -> RunMetadata:
        return RunMetadata(
            start_date="2024-06-01",
            end_date="2024-06-30",
            locations=[],
            version="0.1.0",
            last_run="2024-07-01T06:00:00",
            status="ok",
        )

    def test_round_trip(self) -> None:
        with TemporaryDirectory() as tmpdir:
            write_metadata(Path(tmpdir), self.make())
            meta = read_metadata(Path(tmpdir), "2024-06-01", "2024-06-30")
            assert meta == self.make()

    def test_unwritable_directory_is_unavailable(self) -> None:
        with TemporaryDirectory() as tmpdir:
            (Path(tmpdir) / META_DIR).write_text("not a directory", encoding="utf-8")
            with pytest.raises(StoreUnavailableError):
                write_metadata(Path(tmpdir), self.make())
