"""Keyword classification of location names into coarse entity types."""

from __future__ import annotations

import re

from querymap.models import EntityType

# First match wins; country and major-city checks below override these
_TYPE_PATTERNS: list[tuple[EntityType, re.Pattern]] = [
    (EntityType.NATURAL_FEATURE, re.compile(
        r"\b(mount|mt\.|lake|river|mountains?|ocean|sea|forest|desert|canyon|valley|peak|island|"
        r"peninsula|bay|gulf|waterfall|plateau|volcano|cliff|glacier|reef|delta|spring|basin|"
        r"falls|rapids|strait|hill|dune|plains?)\b", re.IGNORECASE)),
    (EntityType.HISTORICAL_SITE, re.compile(
        r"\b(ancient|historical|historic|ruins|castle|palace|temple|monument|memorial|fort|"
        r"fortress|cathedral|basilica|colosseum|acropolis|pyramids?|tomb|shrine|wall|tower|"
        r"battlefield|amphitheater|altar|mosque|abbey|citadel)\b", re.IGNORECASE)),
    (EntityType.ADMINISTRATIVE_AREA, re.compile(
        r"\b(county|district|region|state|province|territory|oblast|prefecture|canton|republic|"
        r"kingdom|empire|commonwealth|principality|duchy|federation|borough|precinct|colony)\b",
        re.IGNORECASE)),
    (EntityType.POINT_OF_INTEREST, re.compile(
        r"\b(museum|park|garden|zoo|stadium|mall|restaurant|hotel|airport|station|theater|cinema|"
        r"library|university|college|school|hospital|plaza|square|market|store|shop|center|"
        r"gallery|hall|arena|complex|resort|manor|villa)\b", re.IGNORECASE)),
    (EntityType.URBAN_AREA, re.compile(
        r"\b(city|town|village|metropolis|suburb|downtown|neighborhood|quarter|block|street|"
        r"avenue|boulevard|lane|urban|metropolitan|municipalit\w*)\b", re.IGNORECASE)),
]

_COUNTRY_RE = re.compile(
    r"\b(united states|usa|us|uk|united kingdom|canada|australia|germany|france|italy|spain|"
    r"china|japan|india|brazil|russia|mexico|egypt|turkey|greece|portugal|ireland|scotland|"
    r"wales|denmark|sweden|norway|finland|belgium|netherlands|switzerland|austria|poland|"
    r"ukraine|israel|saudi arabia|iran|iraq|nigeria|south africa|kenya|argentina|chile|peru|"
    r"colombia)\b",
    re.IGNORECASE,
)

_MAJOR_CITY_RE = re.compile(
    r"\b(new york|los angeles|chicago|houston|phoenix|paris|london|tokyo|beijing|shanghai|delhi|"
    r"mumbai|cairo|moscow|istanbul|rome|berlin|madrid|seoul|mexico city|toronto|hong kong|"
    r"singapore|sydney|são paulo|sao paulo|rio de janeiro)\b",
    re.IGNORECASE,
)


def classify_entity(name: str) -> EntityType:
    entity_type = EntityType.PLACE
    for candidate, pattern in _TYPE_PATTERNS:
        if pattern.search(name):
            entity_type = candidate
            break
    if _COUNTRY_RE.search(name):
        entity_type = EntityType.COUNTRY
    if _MAJOR_CITY_RE.search(name):
        entity_type = EntityType.MAJOR_CITY
    return entity_type
