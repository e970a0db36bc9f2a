"""Unified configuration for ops_metrics.

This module provides the single configuration class used across the
aggregation and reconciliation pipelines.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional


@dataclass
class DataPaths:
    """All filesystem paths used by the pipelines.

    Attributes:
        data_root: Root directory for all data layers.
        locations_json: Path to the location directory JSON file.
        workers_json: Optional path to the worker directory JSON file
            (hourly wages and team assignments).

    Directory Structure:
        data_root/
        ├── a_raw/                 # raw events and reference extracts
        │   ├── labor/             # *.jsonl labor snapshots
        │   ├── sales/             # *.jsonl sales snapshots
        │   └── reference/         # *.csv / *.xlsx reference exports
        └── c_processed/
            └── aggregates/        # one JSON document per subject
    """

    data_root: Path
    locations_json: Path
    workers_json: Optional[Path] = None

    @classmethod
    def from_root(
        cls,
        data_root: str | Path,
        locations_json: str | Path,
        workers_json: str | Path | None = None,
    ) -> DataPaths:
        """Create DataPaths from a root directory and directory files.

        Args:
            data_root: Root directory for data.
            locations_json: Path to locations.json.
            workers_json: Optional path to workers.json.

        Returns:
            DataPaths instance.

        Examples:
            >>> paths = DataPaths.from_root("data", "config/locations.json")
            >>> paths.aggregates
            PosixPath('data/c_processed/aggregates')
        """
        return cls(
            data_root=Path(data_root),
            locations_json=Path(locations_json),
            workers_json=Path(workers_json) if workers_json is not None else None,
        )

    @property
    def raw_labor(self) -> Path:
        """Raw labor snapshots (JSON lines)."""
        return self.data_root / "a_raw" / "labor"

    @property
    def raw_sales(self) -> Path:
        """Raw sales snapshots (JSON lines)."""
        return self.data_root / "a_raw" / "sales"

    @property
    def reference(self) -> Path:
        """Human-curated reference extracts (CSV / Excel)."""
        return self.data_root / "a_raw" / "reference"

    @property
    def aggregates(self) -> Path:
        """Persisted hierarchical aggregates."""
        return self.data_root / "c_processed" / "aggregates"

    def ensure_dirs(self) -> None:
        """Create all directories in the data structure."""
        for path in [
            self.raw_labor,
            self.raw_sales,
            self.reference,
            self.aggregates,
        ]:
            path.mkdir(parents=True, exist_ok=True)
