"""
Trade categories and Swiss geography.

Every fine-grained category belongs to exactly one coarse group. The group
id itself is also accepted as a category, so leads or providers tagged only
at the coarse level still match.
"""
from typing import Dict, FrozenSet, Iterable, Optional, Tuple

SWISS_CANTONS: Tuple[str, ...] = (
    "AG", "AI", "AR", "BE", "BL", "BS", "FR", "GE", "GL", "GR", "JU", "LU", "NE",
    "NW", "OW", "SG", "SH", "SO", "SZ", "TG", "TI", "UR", "VD", "VS", "ZG", "ZH",
)
CANTON_CODES: FrozenSet[str] = frozenset(SWISS_CANTONS)

# A service-area set covering at least this many cantons means nationwide
NATIONWIDE_CANTON_COUNT = 26

CATEGORY_GROUPS: Dict[str, Tuple[str, ...]] = {
    "bau_renovation": (
        "metallbau", "holzbau", "mauerarbeit", "betonarbeiten", "fundament",
        "kernbohrungen", "abbruch_durchbruch", "renovierung_sonstige",
        "garage_carport", "aussenarbeiten_sonstige", "maurer", "zimmermann",
        "dachdecker", "fassadenbauer",
    ),
    "bodenbelaege": (
        "parkett_laminat", "teppich_pvc_linoleum", "bodenfliese", "bodenleger",
        "plattenleger", "bodenbelag_sonstige",
    ),
    "elektroinstallationen": (
        "elektro_hausinstallationen", "elektro_unterverteilung",
        "elektro_stoerung_notfall", "elektro_beleuchtung",
        "elektro_geraete_anschliessen", "elektro_netzwerk_multimedia",
        "elektro_sprechanlage", "elektro_smart_home", "elektro_wallbox",
        "elektro_bauprovisorium", "elektro_erdung_blitzschutz",
        "elektro_sicherheitsnachweis", "elektro_zaehler_anmeldung",
        "elektro_notstrom", "elektro_kleinauftraege", "elektriker",
    ),
    "heizung_klima_solar": (
        "heizung", "fussbodenheizung", "boiler", "klimaanlage_lueftung",
        "klimatechnik", "waermepumpen", "cheminee_kamin_ofen", "solarheizung",
        "photovoltaik", "batteriespeicher", "heizung_sonstige",
    ),
    # The group id doubles as a fine-grained category here
    "sanitaer": (
        "sanitaer", "badezimmer", "badewanne_dusche", "klempnerarbeiten",
        "badumbau", "sanitaer_sonstige",
    ),
    "kueche": (
        "kuechenbau", "kuechenplanung", "kuechengeraete", "arbeitsplatten",
        "kueche_sonstige",
    ),
    "innenausbau_schreiner": (
        "schreiner", "moebelbau", "moebelrestauration", "holzarbeiten_innen",
        "metallarbeiten_innen", "treppen", "innenausbau_sonstige",
        "fenster_tueren", "maler", "gipser",
    ),
    "raeumung_entsorgung": (
        "umzug", "reinigung", "aufloesung_entsorgung", "individuelle_anfrage",
    ),
}


def _build_group_index() -> Dict[str, str]:
    index: Dict[str, str] = {}
    for group, categories in CATEGORY_GROUPS.items():
        index[group] = group
        for category in categories:
            if index.get(category, group) != group:
                raise ValueError(f"Category {category!r} belongs to more than one group")
            index[category] = group
    return index


CATEGORY_TO_GROUP: Dict[str, str] = _build_group_index()


def normalize_category(category: Optional[str]) -> str:
    return (category or "").strip().lower()


def get_category_group(category: Optional[str]) -> Optional[str]:
    """Coarse group for a category (or the group itself), None if unknown."""
    return CATEGORY_TO_GROUP.get(normalize_category(category))


def category_matches(lead_category: str, provider_categories: Iterable[str]) -> bool:
    """
    True if a provider's category set covers the lead's category.

    Matches on the exact category, or on any provider category that shares the
    lead's coarse group. Groups are resolved for both sides so a coarse tag on
    either the lead or the provider matches the fine-grained tags beneath it.
    """
    wanted = normalize_category(lead_category)
    if not wanted:
        return False
    offered = {normalize_category(c) for c in provider_categories or ()}
    if wanted in offered:
        return True

    lead_group = get_category_group(wanted)
    if lead_group is None:
        return False
    return any(get_category_group(c) == lead_group for c in offered)


def is_canton_code(value: str) -> bool:
    return (value or "").strip().upper() in CANTON_CODES


def is_postal_code(value: str) -> bool:
    value = (value or "").strip()
    return len(value) == 4 and value.isdigit()


def covers_nationwide(service_areas: Iterable[str]) -> bool:
    cantons = {a.strip().upper() for a in service_areas or () if is_canton_code(a)}
    return len(cantons) >= NATIONWIDE_CANTON_COUNT


def area_matches(service_areas: Iterable[str], canton: Optional[str], postal_code: Optional[str]) -> bool:
    """Provider covers the lead's canton, its exact postal code, or all of Switzerland."""
    areas = [a.strip() for a in service_areas or () if a and a.strip()]
    if not areas:
        return False
    area_set = {a.upper() for a in areas}
    if canton and canton.strip().upper() in area_set:
        return True
    if postal_code and postal_code.strip() in area_set:
        return True
    return covers_nationwide(areas)
