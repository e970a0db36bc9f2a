"""Location and worker directories.

Directories are immutable snapshots loaded once per run and passed to the
pipelines explicitly. They answer two questions: "which location does this
name refer to" and "what does this worker cost per hour".

locations.json::

    {
      "loc-bea": {"name": "Bar Bea", "aliases": ["Bea", "BarBea"]},
      "loc-lam": {"name": "Lamour"}
    }

workers.json::

    {
      "w-17": {"name": "Jane Doe", "hourly_wage": 15.5, "team": "Keuken"}
    }
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional

from ops_metrics.cleaning import name_key, to_float
from ops_metrics.exceptions import ConfigError

logger = logging.getLogger(__name__)

UNKNOWN_LOCATION = "Unknown Location"


@dataclass(frozen=True)
class Location:
    """A location known to the directory.

    Attributes:
        location_id: Stable identifier used by raw records and aggregates.
        name: Display name.
        aliases: Other spellings found in reference extracts.
    """

    location_id: str
    name: str
    aliases: tuple[str, ...] = ()


@dataclass(frozen=True)
class Worker:
    """A worker known to the directory.

    Attributes:
        worker_id: Stable identifier used by per-worker breakdowns.
        name: Display name.
        hourly_wage: Hourly wage, or None when unknown.
        team: Default team name when a breakdown carries none.
    """

    worker_id: str
    name: str
    hourly_wage: Optional[float] = None
    team: Optional[str] = None


def _read_json(path: Path) -> Any:
    try:
        return json.loads(Path(path).read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise ConfigError(f"Directory file not found: {path}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {path}: {e}") from e


def _iter_entries(data: Any, path: Path) -> Iterable[tuple[str, Mapping[str, Any]]]:
    """Accept both {"id": {...}} and [{"id": ..., ...}] layouts."""
    if isinstance(data, dict):
        for key, rec in data.items():
            if isinstance(rec, str):
                rec = {"name": rec}
            yield str(key), rec
    elif isinstance(data, list):
        for rec in data:
            if "id" not in rec:
                raise ConfigError(f"Entry without 'id' in {path}: {rec}")
            yield str(rec["id"]), rec
    else:
        raise ConfigError(f"Unsupported directory layout in {path}")


class LocationDirectory:
    """Snapshot of known locations with name resolution.

    Example:
        >>> directory = LocationDirectory.from_mapping({"loc-bea": "Bar Bea"})
        >>> directory.resolve("  bar BEA ")
        'loc-bea'
        >>> directory.name_for("loc-bea")
        'Bar Bea'
    """

    def __init__(self, locations: Iterable[Location]) -> None:
        self._by_id: dict[str, Location] = {}
        self._by_key: dict[str, str] = {}
        for loc in locations:
            self._by_id[loc.location_id] = loc
            for spelling in (loc.name, loc.location_id, *loc.aliases):
                key = name_key(spelling)
                if not key:
                    continue
                existing = self._by_key.get(key)
                if existing is not None and existing != loc.location_id:
                    logger.warning(
                        "Ambiguous location name '%s' (%s, %s); keeping %s",
                        spelling,
                        existing,
                        loc.location_id,
                        existing,
                    )
                    continue
                self._by_key[key] = loc.location_id

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> LocationDirectory:
        """Build a directory from {id: name} or {id: {"name": ..., "aliases": [...]}}."""
        return cls(_locations_from_entries(_iter_entries(dict(mapping), Path("<mapping>"))))

    @classmethod
    def from_json(cls, path: Path) -> LocationDirectory:
        """Load locations.json.

        Raises:
            ConfigError: If the file is missing or malformed.
        """
        data = _read_json(path)
        locations = _locations_from_entries(_iter_entries(data, path))
        logger.debug("Loaded %d locations from %s", len(locations), path)
        return cls(locations)

    def __contains__(self, location_id: object) -> bool:
        return location_id in self._by_id

    def __len__(self) -> int:
        return len(self._by_id)

    def ids(self) -> list[str]:
        return sorted(self._by_id)

    def name_for(self, location_id: str) -> str:
        """Display name of a location, "Unknown Location" when not in the snapshot."""
        loc = self._by_id.get(location_id)
        return loc.name if loc is not None else UNKNOWN_LOCATION

    def resolve(self, name: Any) -> Optional[str]:
        """Resolve a free-text location name to its id, or None.

        Matching is case, whitespace and accent insensitive and also
        accepts configured aliases and the id itself.
        """
        return self._by_key.get(name_key(name))


class WorkerDirectory:
    """Snapshot of workers with their hourly wages."""

    def __init__(self, workers: Iterable[Worker] = ()) -> None:
        self._by_id: dict[str, Worker] = {w.worker_id: w for w in workers}

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> WorkerDirectory:
        return cls(_workers_from_entries(_iter_entries(dict(mapping), Path("<mapping>"))))

    @classmethod
    def from_json(cls, path: Optional[Path]) -> WorkerDirectory:
        """Load workers.json; a missing path yields an empty directory."""
        if path is None:
            return cls()
        data = _read_json(path)
        directory = cls(_workers_from_entries(_iter_entries(data, path)))
        logger.debug("Loaded %d workers from %s", len(directory), path)
        return directory

    def __len__(self) -> int:
        return len(self._by_id)

    def get(self, worker_id: str) -> Optional[Worker]:
        return self._by_id.get(worker_id)

    def hourly_wage(self, worker_id: str) -> Optional[float]:
        """Positive hourly wage of a worker, or None when unknown or not positive."""
        worker = self._by_id.get(worker_id)
        if worker is None or worker.hourly_wage is None or worker.hourly_wage <= 0:
            return None
        return worker.hourly_wage


def _workers_from_entries(entries: Iterable[tuple[str, Mapping[str, Any]]]) -> list[Worker]:
    workers = []
    for worker_id, rec in entries:
        workers.append(
            Worker(
                worker_id=worker_id,
                name=str(rec.get("name") or worker_id),
                hourly_wage=to_float(rec.get("hourly_wage")),
                team=rec.get("team"),
            )
        )
    return workers


def _locations_from_entries(entries: Iterable[tuple[str, Mapping[str, Any]]]) -> list[Location]:
    return [
        Location(
            location_id=loc_id,
            name=str(rec.get("name") or loc_id),
            aliases=tuple(rec.get("aliases") or ()),
        )
        for loc_id, rec in entries
    ]
