"""Field extraction rules for heterogeneous payloads and headers.

The labor platform, the POS and the reference spreadsheets all name the
same logical value differently. Each logical field has exactly one rule
listing its candidate names in priority order; readers go through these
rules instead of carrying ad-hoc fallbacks.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional

from ops_metrics.cleaning import to_snake


@dataclass(frozen=True)
class FieldRule:
    """Prioritized candidate names for one logical field.

    Attributes:
        name: Logical field name.
        candidates: Payload keys (exact) or header patterns (regex on the
            snake_cased header), first match wins.
    """

    name: str
    candidates: tuple[str, ...]


# --------------------------------------------------------------------------- #
# Raw payload rules
# --------------------------------------------------------------------------- #

LOCATION_ID = FieldRule("location_id", ("location_id", "locationId", "environment_id", "environmentId"))
DATE = FieldRule("date", ("date", "day", "datum", "business_date", "businessDate"))
CREATED_AT = FieldRule("created_at", ("created_at", "createdAt", "updated_at", "updatedAt", "synced_at"))
RECORD_ID = FieldRule("record_id", ("id", "_id", "record_id"))
HOURS = FieldRule("hours", ("total_hours_worked", "totalHoursWorked", "hours", "total_hours", "uren"))
WAGE_COST = FieldRule("wage_cost", ("total_wage_cost", "totalWageCost", "wage_cost", "loonkosten"))
REVENUE = FieldRule("revenue", ("total_revenue", "totalRevenue", "revenue", "omzet", "totaal"))
TEAM_STATS = FieldRule("by_team", ("team_stats", "teamStats", "by_team", "teams"))
WORKER_STATS = FieldRule("by_worker", ("worker_stats", "workerStats", "by_worker", "workers"))
TRANSACTIONS = FieldRule("transaction_count", ("transaction_count", "transactionCount", "tickets", "count"))
PRODUCTS = FieldRule("products", ("products", "product_lines", "productLines", "items"))

# Sub-entity (team / worker / product line) fields
ENTITY_ID = FieldRule("entity_id", ("id", "team_id", "teamId", "worker_id", "workerId", "user_id", "userId"))
ENTITY_NAME = FieldRule("name", ("name", "team_name", "teamName", "worker_name", "workerName", "full_name"))
ENTITY_HOURS = FieldRule("hours", ("hours", "total_hours", "totalHours", "hours_worked", "uren"))
ENTITY_COST = FieldRule("cost", ("cost", "wage_cost", "wageCost", "total_cost", "totalCost"))
ENTITY_TEAM = FieldRule("team_name", ("team_name", "teamName", "team"))
PRODUCT_NAME = FieldRule("product_name", ("product_name", "productName", "name", "product"))
PRODUCT_QUANTITY = FieldRule("quantity", ("quantity", "qty", "aantal", "units"))

# --------------------------------------------------------------------------- #
# Reference header rules (regex on snake_cased headers)
# --------------------------------------------------------------------------- #

REF_DATE = FieldRule("date", (r"^date$", r"^datum$", r"^dag$", r"^day$", r"date"))
REF_LOCATION = FieldRule(
    "location",
    (r"^location(_name)?$", r"^vestiging$", r"^locatie$", r"^environment$", r"^omgeving$", r"^restaurant$"),
)
REF_REVENUE = FieldRule(
    "revenue",
    (r"^revenue$", r"^omzet$", r"^totaal_omzet$", r"^total_revenue$", r"omzet", r"^totaal$", r"revenue"),
)
REF_HOURS = FieldRule("hours", (r"^hours$", r"^uren$", r"^gewerkte_uren$", r"^total_hours$", r"uren", r"hours"))
REF_WAGE_COST = FieldRule(
    "wage_cost",
    (r"^wage_cost$", r"^loonkosten$", r"^labor_cost$", r"^labour_cost$", r"loonkosten", r"wage"),
)
REF_WORKER = FieldRule(
    "worker",
    (r"^worker(_name)?$", r"^medewerker$", r"^naam$", r"^employee$", r"^name$", r"medewerker"),
)
REF_TEAM = FieldRule("team", (r"^team(_name)?$", r"^afdeling$", r"^department$", r"team"))

REFERENCE_RULES = (REF_DATE, REF_LOCATION, REF_REVENUE, REF_HOURS, REF_WAGE_COST, REF_WORKER, REF_TEAM)


def extract(payload: Mapping[str, Any], rule: FieldRule, default: Any = None) -> Any:
    """Return the value of the first candidate key present (and not None).

    Examples:
        >>> extract({"totalRevenue": 1200}, REVENUE)
        1200
        >>> extract({}, REVENUE, 0.0)
        0.0
    """
    for key in rule.candidates:
        value = payload.get(key)
        if value is not None:
            return value
    return default


def match_column(columns: Iterable[Any], rule: FieldRule) -> Optional[Any]:
    """Find the header matching a rule, trying candidates in priority order.

    Examples:
        >>> match_column(["Datum", "Vestiging", "Totaal Omzet"], REF_REVENUE)
        'Totaal Omzet'
    """
    snake = [(col, to_snake(col)) for col in columns]
    for pattern in rule.candidates:
        rx = re.compile(pattern)
        for original, header in snake:
            if rx.search(header):
                return original
    return None


def map_columns(columns: Iterable[Any], rules: Iterable[FieldRule] = REFERENCE_RULES) -> dict[Any, str]:
    """Map original headers to logical field names.

    Each header is claimed by at most one rule; rules are applied in order.
    """
    remaining = list(columns)
    mapping: dict[Any, str] = {}
    for rule in rules:
        col = match_column(remaining, rule)
        if col is not None:
            mapping[col] = rule.name
            remaining.remove(col)
    return mapping
