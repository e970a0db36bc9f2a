"""Team and division categorization.

Maps free-text team names coming from the labor platform onto a fixed set
of team categories and the reporting divisions derived from them:

    Kitchen     -> Food
    Service     -> Beverage
    Management  -> Management
    Other       -> Other

Categorization is keyword based on the accent-free, lowercase team name.
Site-specific exceptions are passed in explicitly as a TeamCatalog
snapshot; there is no module-level mutable registry. Unknown names fall
into Other, nothing raises and nothing is dropped.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Mapping, Optional

from ops_metrics.cleaning import name_key, strip_invisibles

KITCHEN = "Kitchen"
SERVICE = "Service"
MANAGEMENT = "Management"
OTHER = "Other"

TEAM_CATEGORIES = (KITCHEN, SERVICE, MANAGEMENT, OTHER)

FOOD = "Food"
BEVERAGE = "Beverage"
ALL = "All"

DIVISION_BY_CATEGORY = {
    KITCHEN: FOOD,
    SERVICE: BEVERAGE,
    MANAGEMENT: MANAGEMENT,
    OTHER: OTHER,
}

# Reporting order; "All" holds records without a per-team breakdown
DIVISION_ORDER = (FOOD, BEVERAGE, MANAGEMENT, OTHER, ALL)

# Checked in this order; the first category with a matching keyword wins.
# Management comes first so "Keuken leiding" counts as management.
CATEGORY_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    (
        MANAGEMENT,
        (
            "management", "manager", "leiding", "leidinggevende",
            "bedrijfsleider", "mgmt", "office", "admin",
        ),
    ),
    (
        KITCHEN,
        ("keuken", "kitchen", "kok", "chef", "cook", "afwas", "dish", "prep"),
    ),
    (
        SERVICE,
        (
            "bediening", "service", "bar", "bartender", "zaal", "floor",
            "runner", "host", "hostess", "gastheer", "gastvrouw", "barista",
        ),
    ),
)

_TRAILING_TEAM_RE = re.compile(r"\s+team$", re.IGNORECASE)


@dataclass(frozen=True)
class TeamCatalog:
    """Explicit team-name overrides for a site.

    Attributes:
        overrides: Mapping of team name to category. Names are matched on
            their lookup key, so "KEUKEN 2" and "keuken 2" are the same.
    """

    overrides: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        bad = {cat for cat in self.overrides.values() if cat not in TEAM_CATEGORIES}
        if bad:
            raise ValueError(f"Unknown team categories in overrides: {sorted(bad)}")
        object.__setattr__(
            self, "overrides", {name_key(k): v for k, v in self.overrides.items()}
        )

    def lookup(self, team_name: str) -> Optional[str]:
        return self.overrides.get(name_key(team_name))


@dataclass(frozen=True)
class TeamClassification:
    """Result of classifying one team name."""

    normalized_name: str
    category: str
    division: str


def normalize_team_name(name: Optional[str]) -> str:
    """Return the display form of a team name.

    Examples:
        >>> normalize_team_name("  KITCHEN   TEAM ")
        'Kitchen'
        >>> normalize_team_name("bediening")
        'Bediening'
        >>> normalize_team_name(None)
        'Unknown'
    """
    cleaned = strip_invisibles(name)
    if not cleaned:
        return "Unknown"
    cleaned = _TRAILING_TEAM_RE.sub("", cleaned) or cleaned
    return cleaned[:1].upper() + cleaned[1:].lower()


def categorize_team(name: Optional[str], catalog: Optional[TeamCatalog] = None) -> str:
    """Map a team name to Kitchen, Service, Management or Other.

    Examples:
        >>> categorize_team("Keuken")
        'Kitchen'
        >>> categorize_team("Bar")
        'Service'
        >>> categorize_team("Schoonmaak")
        'Other'
    """
    if catalog is not None and name:
        override = catalog.lookup(name)
        if override is not None:
            return override
    key = name_key(name)
    if not key:
        return OTHER
    words = set(re.split(r"[^a-z0-9]+", key))
    for category, keywords in CATEGORY_KEYWORDS:
        for keyword in keywords:
            # short keywords ("kok", "bar") must be whole words
            if keyword in words or (len(keyword) > 4 and keyword in key):
                return category
    return OTHER


def division_for(category: str) -> str:
    """Return the reporting division of a team category (Other when unknown)."""
    return DIVISION_BY_CATEGORY.get(category, OTHER)


def classify_team(name: Optional[str], catalog: Optional[TeamCatalog] = None) -> TeamClassification:
    """Normalize, categorize and assign the division of a team name in one call."""
    category = categorize_team(name, catalog)
    return TeamClassification(
        normalized_name=normalize_team_name(name),
        category=category,
        division=division_for(category),
    )
