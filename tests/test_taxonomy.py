"""
Unit tests for category groups and Swiss service areas.
"""
import pytest

from leadmarket.core.taxonomy import (
    SWISS_CANTONS,
    area_matches,
    category_matches,
    covers_nationwide,
    get_category_group,
)


def test_exact_category_matches():
    assert category_matches("elektriker", ["elektriker"])


def test_fine_category_matches_sibling_in_same_group():
    """A provider tagged with any category of the lead's group is a match."""
    assert category_matches("elektro_wallbox", ["elektro_hausinstallationen"])


def test_coarse_tags_match_from_both_sides():
    assert category_matches("elektroinstallationen", ["elektriker"])
    assert category_matches("elektriker", ["elektroinstallationen"])


def test_different_groups_do_not_match():
    assert not category_matches("elektriker", ["sanitaer"])
    assert not category_matches("badumbau", ["parkett_laminat"])


def test_unknown_category_only_matches_exactly():
    assert category_matches("drohnenfotografie", ["drohnenfotografie"])
    assert not category_matches("drohnenfotografie", ["elektriker"])


def test_category_matching_ignores_case_and_whitespace():
    assert category_matches(" Elektriker ", ["ELEKTRIKER"])


def test_every_category_has_exactly_one_group():
    assert get_category_group("sanitaer") == "sanitaer"
    assert get_category_group("badumbau") == "sanitaer"
    assert get_category_group("photovoltaik") == "heizung_klima_solar"
    assert get_category_group("unbekannt") is None


def test_area_matches_canton():
    assert area_matches(["ZH"], "ZH", "8001")


def test_area_matches_exact_postal_code():
    assert area_matches(["8001"], "ZH", "8001")
    assert not area_matches(["8002"], "ZH", "8001")


def test_area_matches_nationwide():
    """All 26 cantons means the provider serves every lead."""
    assert covers_nationwide(SWISS_CANTONS)
    assert area_matches(list(SWISS_CANTONS), "TI", "6900")


def test_25_cantons_is_not_nationwide():
    areas = [c for c in SWISS_CANTONS if c != "TI"]
    assert not covers_nationwide(areas)
    assert not area_matches(areas, "TI", "6900")


@pytest.mark.parametrize("areas", [[], None, ["  "]])
def test_empty_service_area_never_matches(areas):
    assert not area_matches(areas, "ZH", "8001")
