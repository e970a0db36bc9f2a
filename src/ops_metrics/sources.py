"""Readers for raw events and reference extracts.

Raw events are JSON-lines snapshots written by the platform importers::

    a_raw/labor/2024-06.jsonl   {"locationId": "loc-bea", "date": "2024-06-01", ...}
    a_raw/sales/2024-06.jsonl   {"location_id": "loc-bea", "date": "2024-06-01", ...}

Reference extracts are CSV or Excel exports curated by hand. Their headers
vary per export, so columns are matched through the rules in
ops_metrics.fields and values are normalized with ops_metrics.cleaning.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any, Iterable, Iterator, Mapping, Optional, Union

import pandas as pd

from ops_metrics import fields
from ops_metrics.cleaning import strip_invisibles, to_date, to_float
from ops_metrics.config import DataPaths
from ops_metrics.exceptions import DataQualityError
from ops_metrics.periods import to_datetime
from ops_metrics.records import ProductLine, RawLaborRecord, RawSalesRecord, SubEntityStat

logger = logging.getLogger(__name__)

REFERENCE_COLUMNS = [
    "source_file",
    "row_number",
    "location",
    "date",
    "revenue",
    "hours",
    "wage_cost",
    "worker",
    "team",
]

REFERENCE_SUFFIXES = (".csv", ".xlsx", ".xls")


# --------------------------------------------------------------------------- #
# Raw payload conversion
# --------------------------------------------------------------------------- #


def _number(payload: Mapping[str, Any], rule: fields.FieldRule) -> float:
    value = to_float(fields.extract(payload, rule))
    return value if value is not None else 0.0


def _optional_ts(value: Any):
    if value is None or value == "":
        return None
    return to_datetime(value)


def _sub_entities(items: Any, with_team: bool) -> tuple[SubEntityStat, ...]:
    # platforms send either a list of dicts or a dict keyed by id
    if isinstance(items, Mapping):
        items = [{"id": key, **(value or {})} for key, value in items.items()]
    stats = []
    for item in items or ():
        entity_id = fields.extract(item, fields.ENTITY_ID)
        name = fields.extract(item, fields.ENTITY_NAME)
        stats.append(
            SubEntityStat(
                entity_id=str(entity_id if entity_id is not None else name),
                name=str(name if name is not None else entity_id),
                hours=_number(item, fields.ENTITY_HOURS),
                cost=_number(item, fields.ENTITY_COST),
                team_name=fields.extract(item, fields.ENTITY_TEAM) if with_team else None,
            )
        )
    return tuple(stats)


def _required(payload: Mapping[str, Any]) -> tuple[str, Any]:
    location_id = fields.extract(payload, fields.LOCATION_ID)
    if location_id in (None, ""):
        raise ValueError("missing location")
    raw_date = fields.extract(payload, fields.DATE)
    if raw_date in (None, ""):
        raise ValueError("missing date")
    return str(location_id), to_datetime(raw_date)


def labor_record_from_payload(payload: Mapping[str, Any]) -> RawLaborRecord:
    """Convert one raw labor payload into a RawLaborRecord.

    Raises:
        ValueError: If the location or date is missing or unparsable.
    """
    location_id, day = _required(payload)
    record_id = fields.extract(payload, fields.RECORD_ID)
    return RawLaborRecord(
        location_id=location_id,
        date=day,
        created_at=_optional_ts(fields.extract(payload, fields.CREATED_AT)),
        hours=_number(payload, fields.HOURS),
        wage_cost=_number(payload, fields.WAGE_COST),
        revenue=_number(payload, fields.REVENUE),
        by_team=_sub_entities(fields.extract(payload, fields.TEAM_STATS), with_team=False),
        by_worker=_sub_entities(fields.extract(payload, fields.WORKER_STATS), with_team=True),
        record_id=str(record_id) if record_id is not None else None,
    )


def sales_record_from_payload(payload: Mapping[str, Any]) -> RawSalesRecord:
    """Convert one raw sales payload into a RawSalesRecord.

    Raises:
        ValueError: If the location or date is missing or unparsable.
    """
    location_id, day = _required(payload)
    record_id = fields.extract(payload, fields.RECORD_ID)
    products = []
    for item in fields.extract(payload, fields.PRODUCTS, ()) or ():
        name = strip_invisibles(fields.extract(item, fields.PRODUCT_NAME))
        if not name:
            continue
        products.append(
            ProductLine(
                product_name=name,
                quantity=_number(item, fields.PRODUCT_QUANTITY),
                revenue=_number(item, fields.REVENUE),
                transaction_count=int(_number(item, fields.TRANSACTIONS)),
            )
        )
    return RawSalesRecord(
        location_id=location_id,
        date=day,
        created_at=_optional_ts(fields.extract(payload, fields.CREATED_AT)),
        revenue=_number(payload, fields.REVENUE),
        transaction_count=int(_number(payload, fields.TRANSACTIONS)),
        products=tuple(products),
        record_id=str(record_id) if record_id is not None else None,
    )


# --------------------------------------------------------------------------- #
# Raw event reader
# --------------------------------------------------------------------------- #


def _outside_window(payload: Mapping[str, Any], start: date, end: date) -> bool:
    """True when a payload's date parses and lies outside [start, end]."""
    raw_date = fields.extract(payload, fields.DATE)
    if raw_date in (None, ""):
        return False
    try:
        day = to_datetime(raw_date).date()
    except ValueError:
        return False
    return not (start <= day <= end)


_STEM_DATE = re.compile(r"^(\d{4})-(\d{2})(?:-(\d{2}))?(?!\d)")


def files_for_window(directory: Optional[Path], start: date, end: date) -> list[Path]:
    """JSON-lines files that may hold records for [start, end].

    Files named after a month (2024-06.jsonl) or a day (2024-06-01.jsonl)
    are skipped when that month or day lies outside the window; other
    names are always read.
    """
    if directory is None or not directory.exists():
        return []
    selected = []
    for path in sorted(directory.glob("*.jsonl")):
        m = _STEM_DATE.match(path.stem)
        if m:
            year, month, day = int(m.group(1)), int(m.group(2)), m.group(3)
            if day is not None:
                try:
                    if not (start <= date(year, month, int(day)) <= end):
                        continue
                except ValueError:
                    pass
            elif not ((start.year, start.month) <= (year, month) <= (end.year, end.month)):
                continue
        selected.append(path)
    return selected


@dataclass
class RawBatch:
    """Records of one window plus the structural errors met while reading."""

    labor: list[RawLaborRecord] = field(default_factory=list)
    sales: list[RawSalesRecord] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


class FileRawEventReader:
    """Read raw labor and sales snapshots from JSON-lines files.

    Files are streamed line by line for each requested window; only the
    records falling inside the window (and the requested locations) are
    kept in memory.
    """

    def __init__(self, labor_dir: Path, sales_dir: Optional[Path] = None) -> None:
        self.labor_dir = Path(labor_dir)
        self.sales_dir = Path(sales_dir) if sales_dir is not None else None

    @classmethod
    def from_paths(cls, paths: DataPaths) -> FileRawEventReader:
        return cls(paths.raw_labor, paths.raw_sales)

    @staticmethod
    def _iter_payloads(
        directory: Optional[Path], start: date, end: date, errors: list[str]
    ) -> Iterator[tuple[str, dict]]:
        for path in files_for_window(directory, start, end):
            with path.open(encoding="utf-8") as fh:
                for lineno, line in enumerate(fh, start=1):
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        payload = json.loads(line)
                    except json.JSONDecodeError as e:
                        errors.append(f"{path.name}:{lineno}: invalid JSON ({e.msg})")
                        continue
                    yield f"{path.name}:{lineno}", payload

    def _read(self, directory, convert, start, end, locations, errors) -> list:
        wanted = set(locations) if locations is not None else None
        records = []
        for where, payload in self._iter_payloads(directory, start, end, errors):
            try:
                record = convert(payload)
            except ValueError as e:
                if _outside_window(payload, start, end):
                    continue
                errors.append(f"{where}: {e}")
                continue
            if not (start <= record.date.date() <= end):
                continue
            if wanted is not None and record.location_id not in wanted:
                continue
            records.append(record)
        return records

    def read_window(
        self,
        start: date,
        end: date,
        locations: Optional[Iterable[str]] = None,
    ) -> RawBatch:
        """Read all labor and sales records whose business day lies in [start, end]."""
        batch = RawBatch()
        locations = list(locations) if locations is not None else None
        batch.labor = self._read(
            self.labor_dir, labor_record_from_payload, start, end, locations, batch.errors
        )
        batch.sales = self._read(
            self.sales_dir, sales_record_from_payload, start, end, locations, batch.errors
        )
        logger.debug(
            "Read %d labor and %d sales records for %s..%s (%d errors)",
            len(batch.labor),
            len(batch.sales),
            start,
            end,
            len(batch.errors),
        )
        return batch


# --------------------------------------------------------------------------- #
# Reference extracts
# --------------------------------------------------------------------------- #


def _read_table(path: Path) -> pd.DataFrame:
    if path.suffix.lower() == ".csv":
        # sep=None sniffs "," vs ";" exports
        return pd.read_csv(path, sep=None, engine="python", dtype=str, encoding="utf-8-sig")
    return pd.read_excel(path, dtype=object)


def normalize_reference_frame(df: pd.DataFrame, source: str = "<frame>") -> tuple[pd.DataFrame, list[str]]:
    """Map a raw reference table onto REFERENCE_COLUMNS.

    Rows with an unparsable date or an empty location are dropped and
    reported. Numeric cells that cannot be parsed count as missing.

    Raises:
        DataQualityError: If no date or location column can be found.
    """
    mapping = fields.map_columns(df.columns)
    found = set(mapping.values())
    for required in ("date", "location"):
        if required not in found:
            raise DataQualityError(
                f"{source}: no {required} column among {list(df.columns)}"
            )
    renamed = df.rename(columns=mapping)[list(mapping.values())]

    out = pd.DataFrame(index=renamed.index)
    out["source_file"] = source
    # spreadsheet row number: header is row 1
    out["row_number"] = renamed.index + 2
    out["location"] = renamed["location"].map(strip_invisibles)
    out["date"] = pd.to_datetime(renamed["date"].map(to_date))
    for col in ("revenue", "hours", "wage_cost"):
        out[col] = renamed[col].map(to_float).astype(float) if col in renamed else float("nan")
    for col in ("worker", "team"):
        out[col] = renamed[col].map(strip_invisibles) if col in renamed else None

    errors = []
    bad_date = out["date"].isna()
    bad_location = out["location"].isna() | (out["location"] == "")
    for row in out[bad_date | bad_location].itertuples(index=False):
        reason = "unparsable date" if pd.isna(row.date) else "missing location"
        errors.append(f"{source} row {row.row_number}: {reason}")
    out = out[~(bad_date | bad_location)]
    if errors:
        logger.warning("%s: skipped %d reference rows", source, len(errors))
    return out[REFERENCE_COLUMNS].reset_index(drop=True), errors


def reference_files(source: Union[Path, Iterable[Path]]) -> list[Path]:
    """Expand a directory or list of paths into reference files."""
    if isinstance(source, (str, Path)):
        source = Path(source)
        if source.is_dir():
            return sorted(
                p for p in source.iterdir() if p.suffix.lower() in REFERENCE_SUFFIXES and not p.name.startswith("~$")
            )
        return [source]
    return [Path(p) for p in source]


def load_reference_rows(source: Union[Path, Iterable[Path], pd.DataFrame]) -> tuple[pd.DataFrame, list[str]]:
    """Load and normalize reference rows from files or an in-memory frame.

    Args:
        source: A directory, a file, a list of files, or a DataFrame.

    Returns:
        (rows, errors): rows with REFERENCE_COLUMNS concatenated across all
        files, and one message per skipped row or unreadable file.
    """
    if isinstance(source, pd.DataFrame):
        return normalize_reference_frame(source)

    frames = []
    errors: list[str] = []
    for path in reference_files(source):
        try:
            raw = _read_table(path)
            rows, row_errors = normalize_reference_frame(raw, path.name)
        except (OSError, ValueError, DataQualityError) as e:
            logger.error("Cannot read reference file %s: %s", path, e)
            errors.append(f"{path.name}: {e}")
            continue
        logger.info("Loaded %d reference rows from %s", len(rows), path.name)
        frames.append(rows)
        errors.extend(row_errors)

    if not frames:
        return pd.DataFrame({col: pd.Series(dtype="object") for col in REFERENCE_COLUMNS}), errors
    return pd.concat(frames, ignore_index=True), errors
