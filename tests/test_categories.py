"""Tests for team categorization and division mapping."""

import pytest

from ops_metrics.categories import (
    BEVERAGE,
    FOOD,
    KITCHEN,
    MANAGEMENT,
    OTHER,
    SERVICE,
    TeamCatalog,
    categorize_team,
    classify_team,
    division_for,
    normalize_team_name,
)


class TestCategorizeTeam:
    """Keyword rules."""

    @pytest.mark.parametrize(
        "name, expected",
        [
            ("Keuken", KITCHEN),
            ("kitchen", KITCHEN),
            ("Chef de partie", KITCHEN),
            ("Afwas", KITCHEN),
            ("Bediening", SERVICE),
            ("Bar", SERVICE),
            ("Floor", SERVICE),
            ("Barista", SERVICE),
            ("Management", MANAGEMENT),
            ("Bedrijfsleider", MANAGEMENT),
            ("Keuken leiding", MANAGEMENT),
            ("Schoonmaak", OTHER),
        ],
    )
    def test_known_names(self, name: str, expected: str) -> None:
        assert categorize_team(name) == expected

    def test_short_keywords_need_whole_words(self) -> None:
        """'bar' must not match inside an unrelated word."""
        assert categorize_team("Barbecue") == OTHER

    def test_case_and_accents_are_ignored(self) -> None:
        assert categorize_team("  KEUKEN ") == KITCHEN
        assert categorize_team("Bédiening") == SERVICE

    @pytest.mark.parametrize("name", [None, "", "   ", "Team 7"])
    def test_unknown_or_empty_is_other(self, name) -> None:
        """Unknown names never raise and fall into Other."""
        assert categorize_team(name) == OTHER

    def test_catalog_override_wins(self) -> None:
        catalog = TeamCatalog({"Schoonmaak": SERVICE, "BAR": KITCHEN})
        assert categorize_team("schoonmaak", catalog) == SERVICE
        assert categorize_team("Bar", catalog) == KITCHEN
        assert categorize_team("Keuken", catalog) == KITCHEN

    def test_catalog_rejects_unknown_categories(self) -> None:
        with pytest.raises(ValueError):
            TeamCatalog({"Schoonmaak": "Cleaning"})


class TestDivisions:
    def test_division_mapping(self) -> None:
        assert division_for(KITCHEN) == FOOD
        assert division_for(SERVICE) == BEVERAGE
        assert division_for(MANAGEMENT) == MANAGEMENT
        assert division_for(OTHER) == OTHER
        assert division_for("Nonsense") == OTHER

    def test_classify_team(self) -> None:
        result = classify_team("keuken team")
        assert result.normalized_name == "Keuken"
        assert result.category == KITCHEN
        assert result.division == FOOD


class TestNormalizeTeamName:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("  KITCHEN   TEAM ", "Kitchen"),
            ("bediening", "Bediening"),
            ("Team", "Team"),
            (None, "Unknown"),
        ],
    )
    def test_normalize(self, raw, expected: str) -> None:
        assert normalize_team_name(raw) == expected
