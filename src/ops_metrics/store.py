"""Document store for hierarchical aggregates.

One document per subject. merge_and_put reads the stored document, merges
the fresh fragment into it and writes the result back as one atomic step
per subject: the JSON file store writes to a temporary file and renames it
over the old document, so readers see either the old or the new version.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Callable, Iterable, Optional, Protocol

from ops_metrics.aggregation.hierarchy import HierarchicalAggregate
from ops_metrics.aggregation.merge import clone_aggregate, merge_aggregates
from ops_metrics.exceptions import StoreError, StoreUnavailableError
from ops_metrics.utils import slugify

logger = logging.getLogger(__name__)

MergeFn = Callable[[Optional[HierarchicalAggregate], HierarchicalAggregate], HierarchicalAggregate]


class AggregateStore(Protocol):
    """Minimal interface the pipelines need from a store."""

    def get(self, subject_id: str) -> Optional[HierarchicalAggregate]: ...

    def get_many(self, subject_ids: Iterable[str]) -> dict[str, HierarchicalAggregate]: ...

    def put(self, aggregate: HierarchicalAggregate) -> None: ...

    def merge_and_put(
        self,
        fragment: HierarchicalAggregate,
        merge: MergeFn = merge_aggregates,
    ) -> HierarchicalAggregate: ...

    def subjects(self) -> list[str]: ...


class InMemoryStore:
    """Dict-backed store for tests and embedding."""

    def __init__(self) -> None:
        self._docs: dict[str, HierarchicalAggregate] = {}
        self._lock = threading.Lock()

    def get(self, subject_id: str) -> Optional[HierarchicalAggregate]:
        doc = self._docs.get(subject_id)
        return clone_aggregate(doc) if doc is not None else None

    def get_many(self, subject_ids: Iterable[str]) -> dict[str, HierarchicalAggregate]:
        found = {}
        for subject_id in subject_ids:
            doc = self.get(subject_id)
            if doc is not None:
                found[subject_id] = doc
        return found

    def put(self, aggregate: HierarchicalAggregate) -> None:
        self._docs[aggregate.subject_id] = clone_aggregate(aggregate)

    def merge_and_put(
        self,
        fragment: HierarchicalAggregate,
        merge: MergeFn = merge_aggregates,
    ) -> HierarchicalAggregate:
        with self._lock:
            merged = merge(self._docs.get(fragment.subject_id), fragment)
            self._docs[fragment.subject_id] = merged
            return clone_aggregate(merged)

    def subjects(self) -> list[str]:
        return sorted(self._docs)


class JsonFileStore:
    """One JSON document per subject under a directory.

    File names are a readable slug plus a short hash of the subject id, so
    distinct ids never share a file.

    Raises:
        StoreUnavailableError: When the directory cannot be created or
            written (fatal for a run).
        StoreError: When a single document is corrupt.
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root)
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreUnavailableError(f"Aggregate store at {self.root} is unavailable: {e}") from e

    def _path(self, subject_id: str) -> Path:
        digest = hashlib.sha1(subject_id.encode("utf-8")).hexdigest()[:10]
        return self.root / f"{slugify(subject_id)}-{digest}.json"

    def _lock_for(self, subject_id: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(subject_id, threading.Lock())

    def get(self, subject_id: str) -> Optional[HierarchicalAggregate]:
        path = self._path(subject_id)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StoreUnavailableError(f"Cannot read {path}: {e}") from e
        try:
            return HierarchicalAggregate.from_dict(json.loads(text))
        except (ValueError, KeyError, TypeError) as e:
            raise StoreError(f"Corrupt aggregate document {path}: {e}") from e

    def get_many(self, subject_ids: Iterable[str]) -> dict[str, HierarchicalAggregate]:
        found = {}
        for subject_id in subject_ids:
            doc = self.get(subject_id)
            if doc is not None:
                found[subject_id] = doc
        return found

    def put(self, aggregate: HierarchicalAggregate) -> None:
        path = self._path(aggregate.subject_id)
        payload = json.dumps(aggregate.to_dict(), indent=2, ensure_ascii=False)
        try:
            fd, tmp_name = tempfile.mkstemp(prefix=".tmp-", suffix=".json", dir=self.root)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    fh.write(payload)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise StoreUnavailableError(f"Cannot write {path}: {e}") from e
        logger.debug("Wrote aggregate %s -> %s", aggregate.subject_id, path)

    def merge_and_put(
        self,
        fragment: HierarchicalAggregate,
        merge: MergeFn = merge_aggregates,
    ) -> HierarchicalAggregate:
        with self._lock_for(fragment.subject_id):
            merged = merge(self.get(fragment.subject_id), fragment)
            self.put(merged)
            return merged

    def subjects(self) -> list[str]:
        ids = []
        try:
            paths = sorted(self.root.glob("*.json"))
        except OSError as e:
            raise StoreUnavailableError(f"Cannot list {self.root}: {e}") from e
        for path in paths:
            if path.name.startswith(".tmp-"):
                continue
            try:
                ids.append(json.loads(path.read_text(encoding="utf-8"))["subject_id"])
            except (OSError, ValueError, KeyError) as e:
                logger.warning("Skipping unreadable aggregate %s: %s", path, e)
        return sorted(ids)
