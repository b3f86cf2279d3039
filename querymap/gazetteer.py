"""
Static gazetteer of major cities and historical / approximate regions.

Used three ways:
  - resolve a name to (lon, lat) without a network call (exact, single-word
    partial and 5-character fuzzy-prefix lookups, in that order of strictness);
  - scrape known place names out of free text in the order they appear;
  - decide whether a short name is a well-known city (clarification heuristic).

Coordinates are stored as (lon, lat), the order map clients expect.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class GazetteerEntry:
    canonical_name: str        # "New York" or "Mediterranean"
    location_type: str         # city, region, country
    longitude: float
    latitude: float

    @property
    def coordinates(self) -> tuple[float, float]:
        return (self.longitude, self.latitude)


# ══════════════════════════════════════════════════════════════════════
# GAZETTEER DATA
# ══════════════════════════════════════════════════════════════════════

# Lowercase surface form -> entry. Several surface forms may share an entry.
_RAW_GAZETTEER: dict[str, GazetteerEntry] = {}


def _add(surface_forms: list[str], canonical: str, loc_type: str, lon: float, lat: float):
    entry = GazetteerEntry(canonical, loc_type, lon, lat)
    for form in surface_forms:
        _RAW_GAZETTEER[form.lower()] = entry


# ── Major cities ──────────────────────────────────────────────────────

_add(["paris"], "Paris", "city", 2.3522, 48.8566)
_add(["london"], "London", "city", -0.1278, 51.5074)
_add(["rome", "ancient rome"], "Rome", "city", 12.4964, 41.9028)
_add(["new york", "new york city", "nyc"], "New York", "city", -74.0060, 40.7128)
_add(["los angeles"], "Los Angeles", "city", -118.2437, 34.0522)
_add(["chicago"], "Chicago", "city", -87.6298, 41.8781)
_add(["seattle"], "Seattle", "city", -122.3321, 47.6062)
_add(["boston"], "Boston", "city", -71.0589, 42.3601)
_add(["miami"], "Miami", "city", -80.1918, 25.7617)
_add(["san francisco"], "San Francisco", "city", -122.4194, 37.7749)
_add(["washington dc", "washington d.c.", "washington, d.c."], "Washington DC", "city", -77.0369, 38.9072)
_add(["tokyo"], "Tokyo", "city", 139.6917, 35.6895)
_add(["berlin"], "Berlin", "city", 13.4050, 52.5200)
_add(["madrid"], "Madrid", "city", -3.7038, 40.4168)
_add(["sydney"], "Sydney", "city", 151.2093, -33.8688)
_add(["beijing"], "Beijing", "city", 116.4074, 39.9042)
_add(["toronto"], "Toronto", "city", -79.3832, 43.6532)
_add(["dubai"], "Dubai", "city", 55.2708, 25.2048)
_add(["amsterdam"], "Amsterdam", "city", 4.9041, 52.3676)
_add(["bangkok"], "Bangkok", "city", 100.5018, 13.7563)
_add(["singapore"], "Singapore", "city", 103.8198, 1.3521)
_add(["houston"], "Houston", "city", -95.3698, 29.7604)
_add(["moscow"], "Moscow", "city", 37.6173, 55.7558)
_add(["cairo"], "Cairo", "city", 31.2357, 30.0444)
_add(["rio de janeiro"], "Rio de Janeiro", "city", -43.1729, -22.9068)
_add(["istanbul"], "Istanbul", "city", 28.9784, 41.0082)
_add(["seoul"], "Seoul", "city", 126.9780, 37.5665)
_add(["delhi", "new delhi"], "Delhi", "city", 77.1025, 28.7041)
_add(["athens"], "Athens", "city", 23.7275, 37.9838)
_add(["vienna"], "Vienna", "city", 16.3738, 48.2082)
_add(["lisbon"], "Lisbon", "city", -9.1393, 38.7223)
_add(["mexico city"], "Mexico City", "city", -99.1332, 19.4326)
_add(["philadelphia"], "Philadelphia", "city", -75.1652, 39.9526)
_add(["phoenix"], "Phoenix", "city", -112.0740, 33.4484)
_add(["dallas"], "Dallas", "city", -96.7970, 32.7767)
_add(["denver"], "Denver", "city", -104.9903, 39.7392)
_add(["las vegas"], "Las Vegas", "city", -115.1398, 36.1699)
_add(["san diego"], "San Diego", "city", -117.1611, 32.7157)
_add(["detroit"], "Detroit", "city", -83.0458, 42.3314)
_add(["austin"], "Austin", "city", -97.7431, 30.2672)
_add(["nashville"], "Nashville", "city", -86.7816, 36.1627)
_add(["mumbai"], "Mumbai", "city", 72.8777, 19.0760)
_add(["hong kong"], "Hong Kong", "city", 114.1694, 22.3193)

# ── Landmarks ─────────────────────────────────────────────────────────

_add(["eiffel tower"], "Eiffel Tower", "landmark", 2.2945, 48.8584)
_add(["statue of liberty"], "Statue of Liberty", "landmark", -74.0445, 40.6892)
_add(["golden gate bridge"], "Golden Gate Bridge", "landmark", -122.4783, 37.8199)
_add(["grand canyon"], "Grand Canyon", "landmark", -112.1401, 36.0544)
_add(["mount everest"], "Mount Everest", "landmark", 86.9250, 27.9881)
_add(["mount rushmore"], "Mount Rushmore", "landmark", -103.4591, 43.8791)
_add(["great wall", "great wall of china"], "Great Wall of China", "landmark", 116.5704, 40.4319)
_add(["colosseum"], "Colosseum", "landmark", 12.4922, 41.8902)
_add(["louvre", "the louvre"], "Louvre", "landmark", 2.3376, 48.8606)

# ── Historical and approximate regions ────────────────────────────────

_add(["mediterranean", "the mediterranean"], "Mediterranean", "region", 14.5528, 37.6489)
_add(["sub-saharan africa"], "sub-Saharan Africa", "region", 17.5707, 3.3578)
_add(["constantinople"], "Constantinople", "city", 28.9784, 41.0082)
_add(["mesopotamia"], "Mesopotamia", "region", 44.4009, 33.2232)
_add(["byzantine empire"], "Byzantine Empire", "region", 29.9792, 40.7313)
_add(["ottoman empire"], "Ottoman Empire", "region", 35.2433, 38.9637)
_add(["ancient greece"], "Ancient Greece", "region", 23.7275, 37.9838)
_add(["persia"], "Persia", "region", 53.6880, 32.4279)
_add(["carthage"], "Carthage", "city", 10.3236, 36.8585)
_add(["gaul"], "Gaul", "region", 2.2137, 46.2276)
_add(["dacia"], "Dacia", "region", 24.9668, 45.9443)
_add(["western europe"], "Western Europe", "region", 3.9, 47.0)
_add(["eastern europe"], "Eastern Europe", "region", 25.0, 50.0)
_add(["north africa"], "North Africa", "region", 20.0, 28.0)
_add(["middle east"], "Middle East", "region", 40.0, 32.0)
_add(["asia minor"], "Asia Minor", "region", 32.8597, 39.9334)
_add(["far east"], "Far East", "region", 100.0, 35.0)
_add(["new world"], "New World", "region", -80.0, 40.0)
_add(["silk road"], "Silk Road", "region", 80.0, 40.0)
_add(["red sea"], "Red Sea", "region", 36.0, 20.0)
_add(["black sea"], "Black Sea", "region", 34.0, 43.0)
_add(["caspian sea"], "Caspian Sea", "region", 50.0, 42.0)
_add(["persian gulf"], "Persian Gulf", "region", 52.0, 27.0)
_add(["great plains"], "Great Plains", "region", -100.0, 40.0)
_add(["rocky mountains", "rockies"], "Rocky Mountains", "region", -106.0, 42.0)
_add(["appalachian mountains", "appalachians"], "Appalachian Mountains", "region", -80.0, 38.0)
_add(["atlantic ocean"], "Atlantic Ocean", "region", -30.0, 40.0)
_add(["pacific ocean"], "Pacific Ocean", "region", -150.0, 25.0)
_add(["indian ocean"], "Indian Ocean", "region", 75.0, 0.0)

# ── Countries ─────────────────────────────────────────────────────────

_add(["italy"], "Italy", "country", 12.5674, 41.8719)
_add(["egypt", "ancient egypt"], "Egypt", "country", 30.8025, 26.8206)
_add(["greece"], "Greece", "country", 23.7275, 37.9838)
_add(["britain", "great britain"], "Britain", "country", -1.5491, 52.3555)
_add(["china"], "China", "country", 104.1954, 35.8617)
_add(["france"], "France", "country", 2.2137, 46.2276)
_add(["spain"], "Spain", "country", -3.7492, 40.4637)
_add(["japan"], "Japan", "country", 138.2529, 36.2048)
_add(["india"], "India", "country", 78.9629, 20.5937)


# Well-known cities that never need a disambiguation prompt
COMMON_CITIES: frozenset[str] = frozenset({
    "new york", "los angeles", "chicago", "houston", "paris", "london", "berlin",
    "tokyo", "sydney", "toronto", "rome", "madrid", "beijing", "moscow", "cairo",
    "rio", "dubai", "istanbul", "seoul", "bangkok", "delhi", "singapore",
})


FUZZY_PREFIX_LEN = 5


def normalize_key(name: str) -> str:
    """Cache / lookup key: lower-cased, trimmed, whitespace collapsed."""
    return re.sub(r"\s+", " ", name.strip().lower())


# ── Lookups ───────────────────────────────────────────────────────────

def _city_items() -> list[tuple[str, GazetteerEntry]]:
    return [(k, e) for k, e in _RAW_GAZETTEER.items() if e.location_type == "city"]


def lookup_exact(name: str) -> Optional[GazetteerEntry]:
    return _RAW_GAZETTEER.get(normalize_key(name))


def lookup_partial_word(name: str) -> Optional[GazetteerEntry]:
    """
    Match a city sharing a whole word (longer than 3 chars) with the query,
    so "Greater London" resolves to London but "New" never matches New York.
    """
    words = [w for w in normalize_key(name).split() if len(w) > 3]
    if not words:
        return None
    for surface, entry in _city_items():
        surface_words = surface.split()
        if any(w in surface_words for w in words):
            return entry
    return None


def lookup_fuzzy_prefix(name: str) -> Optional[GazetteerEntry]:
    """
    Last-resort match on a shared 5-character prefix in either direction.
    Both names need at least 5 characters so the match never degrades into a
    plain substring check ("ur" inside "edinburgh").
    """
    key = normalize_key(name)
    if len(key) < FUZZY_PREFIX_LEN:
        return None
    for surface, entry in _city_items():
        if len(surface) < FUZZY_PREFIX_LEN:
            continue
        if key[:FUZZY_PREFIX_LEN] in surface or surface[:FUZZY_PREFIX_LEN] in key:
            return entry
    return None


# ── Proper noun extractor ─────────────────────────────────────────────
# Catches capitalized names introduced by a location preposition that are
# not in the gazetteer ("near Timbuktu", "visit Kyoto").

_NON_LOCATION_WORDS = {
    "the", "this", "that", "these", "those", "there", "here",
    "hello", "hi", "hey", "thanks", "thank", "ok", "okay", "yes", "no",
    "and", "also", "then", "but", "and then", "also show", "add", "include",
    "i", "we", "you", "they", "he", "she", "it", "me", "my", "our",
    "what", "how", "when", "where", "who", "why", "which",
    "show", "find", "get", "display", "map", "route", "directions",
    "please", "can", "could", "would", "should", "will",
    "january", "february", "march", "april", "may", "june",
    "july", "august", "september", "october", "november", "december",
    "monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday",
    "ad", "bc", "bce", "ce", "century", "empire", "the empire",
    "emperor", "king", "queen", "prince", "general",
}

_PREPOSITION_NAME_RE = re.compile(
    r"\b(?:in|at|near|around|through|across|via|visit|visiting|toward|towards)\s+"
    r"((?:[A-Z][\w'\-]*)(?:\s+(?:of\s+|de\s+)?[A-Z][\w'\-]*)*)"
)


def extract_proper_nouns(text: str) -> list[tuple[int, str]]:
    """
    Capitalized names following a location preposition, with their offset.
    Filters known non-location words; de-duplicates case-insensitively.
    """
    results = []
    seen = set()
    for m in _PREPOSITION_NAME_RE.finditer(text):
        name = m.group(1).strip()
        words = name.lower().split()
        if all(w in _NON_LOCATION_WORDS for w in words):
            continue
        if len(name) < 3:
            continue
        key = name.lower()
        if key in seen:
            continue
        seen.add(key)
        results.append((m.start(1), name))
    return results


# Capitalized runs anywhere in the text; only used when nothing better is found
_PROPER_NOUN_RE = re.compile(
    r"\b("
    r"[A-Z][a-z'\-]+(?:\s+[A-Z][a-z'\-]+)*"  # "Portland", "Santa Fe", "Rio Grande"
    r")\b"
)


def extract_capitalized_names(text: str) -> list[tuple[int, str]]:
    results = []
    seen = set()
    for m in _PROPER_NOUN_RE.finditer(text):
        name = m.group(1)
        words = name.lower().split()
        if all(w in _NON_LOCATION_WORDS for w in words):
            continue
        # Drop a leading sentence-start word such as "Show" or "Where"
        if words[0] in _NON_LOCATION_WORDS:
            name = " ".join(name.split()[1:])
        if len(name) < 3 or name.lower() in seen:
            continue
        seen.add(name.lower())
        results.append((m.start(1) + len(m.group(1)) - len(name), name))
    return results


class GazetteerMatcher:
    """
    Word-boundary matcher over the gazetteer.

    One alternation regex with surface forms sorted longest-first, so
    "New York City" wins over "New York" and "Ancient Greece" over "Greece".
    finditer gives non-overlapping matches in textual order.
    """

    def __init__(self):
        surfaces = sorted(_RAW_GAZETTEER, key=len, reverse=True)
        self._pattern = re.compile(
            r"(?<![\w-])(" + "|".join(re.escape(s) for s in surfaces) + r")(?![\w-])",
            re.IGNORECASE,
        )

    def find_all(self, text: str) -> list[tuple[int, str, GazetteerEntry]]:
        """
        All gazetteer matches as (offset, matched_text, entry), in textual order,
        de-duplicated by canonical name (first mention kept).
        """
        results = []
        seen: set[str] = set()
        for m in self._pattern.finditer(text):
            entry = _RAW_GAZETTEER[m.group(1).lower()]
            if entry.canonical_name in seen:
                continue
            seen.add(entry.canonical_name)
            results.append((m.start(1), m.group(1), entry))
        return results

    def find_unknown_proper_nouns(self, text: str) -> list[tuple[int, str]]:
        """Preposition-introduced names that the gazetteer does not already cover."""
        known_spans = [(start, start + len(surface)) for start, surface, _ in self.find_all(text)]
        unknown = []
        for start, name in extract_proper_nouns(text):
            end = start + len(name)
            if any(s < end and start < e for s, e in known_spans):
                continue
            if normalize_key(name) in _RAW_GAZETTEER:
                continue
            unknown.append((start, name))
        return unknown


# Singleton matcher instance
_matcher: Optional[GazetteerMatcher] = None


def get_matcher() -> GazetteerMatcher:
    global _matcher
    if _matcher is None:
        _matcher = GazetteerMatcher()
    return _matcher
