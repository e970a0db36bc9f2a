"""Run metadata for aggregation windows.

Every aggregation run records what it covered and how it ended, next to
the aggregates it wrote. Runs are idempotent, so the metadata is a log for
operators rather than a gate: re-running a window is always allowed.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Optional

from ops_metrics.exceptions import StoreUnavailableError

logger = logging.getLogger(__name__)

META_DIR = "_meta"


@dataclass
class RunMetadata:
    """Metadata for a completed aggregation run.

    Attributes:
        start_date: First day of the processed range (YYYY-MM-DD).
        end_date: Last day of the processed range (YYYY-MM-DD).
        locations: Location ids requested, empty for all.
        version: Package version that produced the aggregates.
        last_run: ISO timestamp of when the run finished.
        status: "ok" or "partial" (some records or subjects failed).
        updated: Number of subjects merged into the store.
        error_count: Number of collected errors.
    """

    start_date: str
    end_date: str
    locations: list[str]
    version: str
    last_run: str
    status: str
    updated: int = 0
    error_count: int = 0
    errors: list[str] = field(default_factory=list)


def _meta_path(store_dir: Path, start_date: str, end_date: str) -> Path:
    meta_dir = store_dir / META_DIR
    meta_dir.mkdir(parents=True, exist_ok=True)
    return meta_dir / f"{start_date}_{end_date}.json"


def write_metadata(store_dir: Path, metadata: RunMetadata) -> Path:
    """Write metadata for a run, replacing earlier runs over the same range.

    Raises:
        StoreUnavailableError: If the metadata file cannot be written.
    """
    try:
        path = _meta_path(store_dir, metadata.start_date, metadata.end_date)
        path.write_text(json.dumps(asdict(metadata), indent=2))
    except OSError as e:
        raise StoreUnavailableError(f"Cannot write run metadata under {store_dir}: {e}") from e
    logger.debug("Wrote run metadata: %s", path)
    return path


def read_metadata(store_dir: Path, start_date: str, end_date: str) -> Optional[RunMetadata]:
    """Read run metadata for a date range, if any."""
    path = _meta_path(store_dir, start_date, end_date)
    if not path.exists():
        return None
    try:
        return RunMetadata(**json.loads(path.read_text()))
    except (OSError, ValueError, TypeError) as e:
        logger.warning("Error reading metadata %s: %s", path, e)
        return None
