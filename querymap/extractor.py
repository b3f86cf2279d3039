"""
Rule-based intent extraction.

One declarative table of ``ExtractionRule`` entries, evaluated in priority
order; the first rule that matches produces the result:

  1. intercontinental_pair  "NYC to Paris" style hard-coded city pairs
  2. from_to_chain          "From A to B to C" (text starts with "from")
  3. route_from_to          "... route from A to B"
  4. bare_to                the whole text is "A to B" (short inputs only)
  5. show_me_list           "Show me A, B and C", order kept, never clarified
  6. informational          "Historical sites in X", "Things to do in X", ...

``catch_all`` is the last tier: "between A and B", "from A to B" anywhere,
then gazetteer-assisted scraping of place names, and finally a hard-coded
default so the caller always has something to draw.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Optional

from querymap.config import ExtractionConfig, get_settings
from querymap.entities import classify_entity
from querymap.gazetteer import extract_capitalized_names, get_matcher, lookup_exact
from querymap.models import (
    ExtractionSource,
    IntentResult,
    IntentType,
    Location,
    TravelMode,
    VisualizationType,
)
from querymap.timecontext import find_time_context

logger = logging.getLogger(__name__)

DEFAULT_MESSAGE = "Couldn't find specific locations. Showing some major US cities instead."
DEFAULT_LOCATIONS = ("New York", "Los Angeles", "Chicago")


# ── Travel mode and preferences ───────────────────────────────────────

_MODE_PATTERNS: list[tuple[TravelMode, re.Pattern]] = [
    (TravelMode.WALKING, re.compile(r"\b(?:walk|walking|on foot)\b", re.IGNORECASE)),
    (TravelMode.CYCLING, re.compile(r"\b(?:cycl\w*|bike|biking|bicycle)\b", re.IGNORECASE)),
    (TravelMode.TRANSIT, re.compile(
        r"\b(?:transit|by bus|by train|by subway|by metro|public transport\w*)\b", re.IGNORECASE)),
]

_PREFERENCE_PATTERNS: list[tuple[str, re.Pattern]] = [
    ("avoid highways", re.compile(
        r"\b(?:avoid(?:ing)?|no|without)\s+(?:the\s+)?(?:highways?|freeways?|interstates?|expressways?)\b",
        re.IGNORECASE)),
    ("avoid tolls", re.compile(
        r"\b(?:avoid(?:ing)?|no|without)\s+(?:the\s+)?tolls?(?:\s+roads?)?\b", re.IGNORECASE)),
    ("avoid ferries", re.compile(
        r"\b(?:avoid(?:ing)?|no|without)\s+(?:the\s+)?ferr(?:y|ies)\b", re.IGNORECASE)),
    ("scenic route", re.compile(
        r"\b(?:scenic|beautiful|picturesque)\s+(?:route|path|way|drive)\b", re.IGNORECASE)),
    ("fastest route", re.compile(
        r"\b(?:fastest|quickest|shortest)\s+(?:route|path|way)\b", re.IGNORECASE)),
]


def detect_travel_mode(text: str) -> TravelMode:
    for mode, pattern in _MODE_PATTERNS:
        if pattern.search(text):
            return mode
    return TravelMode.DRIVING


def detect_preferences(text: str) -> list[str]:
    return [label for label, pattern in _PREFERENCE_PATTERNS if pattern.search(text)]


# ── Waypoint cleanup ──────────────────────────────────────────────────

_NOISE_PATTERNS = [p for _, p in _PREFERENCE_PATTERNS] + [
    re.compile(r"\b(?:by\s+(?:car|bike|bicycle|foot|bus|train|subway|metro|transit|public transport\w*)"
               r"|on foot|walking|driving|cycling|biking)\b", re.IGNORECASE),
]
_LEADING_NOISE_RE = re.compile(
    r"^(?:please\s+)?(?:"
    r"(?:drive|walk|cycle|bike|go|going|travel|fly|head|navigate|route)(?:\s+me)?"
    r"|take me|get me|directions|how (?:do i|to|can i) get|i want to go|from"
    r")\b\s*",
    re.IGNORECASE,
)
_TRAILING_WORDS = {"please", "today", "tonight", "now", "then", "and", "also", "via", "with", "but"}
_TO_SPLIT_RE = re.compile(r"\s+to\s+", re.IGNORECASE)

_NAME_ALIASES = {
    "nyc": "New York",
    "newyork": "New York",
    "la": "Los Angeles",
    "losangeles": "Los Angeles",
}
_LOWER_PARTICLES = {"of", "de", "the", "and", "la", "del", "da", "upon"}


def normalize_text(text: str) -> str:
    """Trim, collapse whitespace and drop trailing sentence punctuation."""
    text = re.sub(r"\s+", " ", text or "").strip()
    return re.sub(r"[.!?]+$", "", text).strip()


def clean_waypoint(raw: str) -> str:
    """Strip travel-mode / preference phrases and filler around a place name."""
    name = raw
    for pattern in _NOISE_PATTERNS:
        name = pattern.sub(" ", name)
    name = re.sub(r"\s+", " ", name).strip(" ,;:.!?")
    prev = None
    while prev != name:
        prev = name
        name = _LEADING_NOISE_RE.sub("", name).strip(" ,;:.!?")
        words = name.split()
        while words and words[-1].lower().strip(",.") in _TRAILING_WORDS:
            words.pop()
        name = " ".join(words).strip(" ,;:.!?")
    return name


def display_name(name: str) -> str:
    """Title-case lower-case words ("ancient Rome" -> "Ancient Rome")."""
    words = name.split()
    out = []
    for i, word in enumerate(words):
        if word.islower() and (i == 0 or word not in _LOWER_PARTICLES):
            word = word[0].upper() + word[1:]
        out.append(word)
    return " ".join(out)


def canonical_name(name: str) -> str:
    """Resolve aliases and gazetteer spellings ("nyc" -> "New York")."""
    key = re.sub(r"\s+", " ", name.strip().lower())
    if key in _NAME_ALIASES:
        return _NAME_ALIASES[key]
    if key.replace(" ", "") in _NAME_ALIASES:
        return _NAME_ALIASES[key.replace(" ", "")]
    entry = lookup_exact(key)
    if entry is not None and entry.location_type == "city":
        return entry.canonical_name
    return display_name(name.strip())


def _plausible_name(name: str, max_words: int = 6) -> bool:
    return bool(name) and name[0].isalpha() and len(name.split()) <= max_words


# ── Rule table ────────────────────────────────────────────────────────

@dataclass
class RuleMatch:
    intent_type: IntentType
    names: list[str]
    message: str
    visualization_type: VisualizationType = VisualizationType.BOTH
    time_contexts: list[str] = field(default_factory=list)
    coordinates: list[Optional[tuple[float, float]]] = field(default_factory=list)
    skip_clarification: bool = False


@dataclass(frozen=True)
class ExtractionRule:
    name: str
    priority: int
    handler: Callable[[str, ExtractionConfig], Optional[RuleMatch]]


def _route(names: list[str], message: Optional[str] = None) -> RuleMatch:
    return RuleMatch(
        intent_type=IntentType.ROUTE,
        names=names,
        message=message or f"Showing route from {names[0]} to {names[-1]}",
    )


_US_EAST = r"new\s*york|nyc"
_US_WEST = r"los\s*angeles|la"
_OVERSEAS = r"paris|london|tokyo|beijing|sydney|rome"
_PACIFIC_EUROPE = r"tokyo|sydney|paris|london|rome"
_INTERCONTINENTAL_PAIRS = [
    (re.compile(a, re.IGNORECASE), re.compile(b, re.IGNORECASE))
    for a, b in [
        (_US_EAST, _OVERSEAS),
        (_OVERSEAS, _US_EAST),
        (_US_WEST, _PACIFIC_EUROPE),
        (_PACIFIC_EUROPE, _US_WEST),
        (r"chicago", _PACIFIC_EUROPE),
        (_PACIFIC_EUROPE, r"chicago"),
    ]
]


def _intercontinental_pair(text: str, config: ExtractionConfig) -> Optional[RuleMatch]:
    # Only a whole "A to B" query; longer chains belong to the generic rules
    parts = _TO_SPLIT_RE.split(text)
    if len(parts) != 2:
        return None
    origin, destination = (clean_waypoint(p) for p in parts)
    for origin_re, destination_re in _INTERCONTINENTAL_PAIRS:
        if origin_re.fullmatch(origin) and destination_re.fullmatch(destination):
            names = [canonical_name(origin), canonical_name(destination)]
            return _route(names, f"Showing intercontinental route from {names[0]} to {names[1]}")
    return None


def _from_to_chain(text: str, config: ExtractionConfig) -> Optional[RuleMatch]:
    if not text.lower().startswith("from "):
        return None
    names = [n for n in (clean_waypoint(p) for p in _TO_SPLIT_RE.split(text[5:])) if n]
    if len(names) < 2 or not all(_plausible_name(n) for n in names):
        return None
    return _route(names)


_ROUTE_FROM_TO_RE = re.compile(r"\broute\s+from\s+(.+?)\s+to\s+(.+)$", re.IGNORECASE)


def _route_from_to(text: str, config: ExtractionConfig) -> Optional[RuleMatch]:
    m = _ROUTE_FROM_TO_RE.search(text)
    if not m:
        return None
    parts = [m.group(1)] + _TO_SPLIT_RE.split(m.group(2))
    names = [n for n in (clean_waypoint(p) for p in parts) if n]
    if len(names) < 2 or not all(_plausible_name(n) for n in names):
        return None
    return _route(names)


_THINGS_TO_RE = re.compile(r"^(?:things|what)\s+to\s+(?:see|do|visit)\b", re.IGNORECASE)
_SENTENCE_BREAK_RE = re.compile(r"[!?;]|\.\s+[A-Z]")


def _bare_to(text: str, config: ExtractionConfig) -> Optional[RuleMatch]:
    if _THINGS_TO_RE.match(text) or _SENTENCE_BREAK_RE.search(text):
        return None
    if len(text.split()) > config.bare_route_max_words:
        return None
    parts = _TO_SPLIT_RE.split(text)
    if len(parts) != 2:
        return None
    names = [clean_waypoint(p) for p in parts]
    if not all(_plausible_name(n) for n in names):
        return None
    return _route(names)


_SHOW_ME_RE = re.compile(r"\bshow\s+me\s+(.*)$", re.IGNORECASE)
_SHOW_ME_DECLINE_RE = re.compile(
    r"^(?:how|where|what|when|why)\b|^(?:a|an|the)?\s*(?:route|directions|way|path)\b|\bfrom\b.+\bto\b",
    re.IGNORECASE,
)


def _show_me_list(text: str, config: ExtractionConfig) -> Optional[RuleMatch]:
    m = _SHOW_ME_RE.search(text)
    if not m:
        return None
    rest = m.group(1).strip()
    if not rest or _SHOW_ME_DECLINE_RE.search(rest) or informational_target(rest):
        return None

    rest = re.sub(r"\s+and\s+", ", ", rest, flags=re.IGNORECASE)
    names = [n for n in (clean_waypoint(p) for p in rest.split(",")) if n]
    if not names or not all(_plausible_name(n) for n in names):
        return None

    if len(names) == 1:
        match = RuleMatch(IntentType.LOCATIONS, names, f"Showing location: {names[0]}")
    else:
        # Tagged as a route so the connecting line follows the stated order
        match = _route(names, f"Showing route following sequence: {' → '.join(names)}")
    match.skip_clarification = True
    return match


_INFO_PATTERNS = [
    re.compile(r"\b(?:historical|famous|popular|tourist|interesting)\s+"
               r"(?:sites|places|locations|spots|attractions|destinations)\s+"
               r"(?:in|of|around|near)\s+([A-Za-z][A-Za-z\s'-]*)", re.IGNORECASE),
    re.compile(r"\b(?:sites|places|locations|spots|attractions|destinations)\s+"
               r"(?:in|of|around|near)\s+([A-Za-z][A-Za-z\s'-]*)", re.IGNORECASE),
    re.compile(r"\b(?:things|what)\s+to\s+(?:see|do|visit)\s+(?:in|around|near)\s+"
               r"([A-Za-z][A-Za-z\s'-]*)", re.IGNORECASE),
    re.compile(r"\b(?:visit|explore|discover)\s+([A-Za-z][A-Za-z\s'-]*)", re.IGNORECASE),
    re.compile(r"\b(?:information|info|facts|history)\s+(?:about|on|of)\s+([A-Za-z][A-Za-z\s'-]*)",
               re.IGNORECASE),
]
_ANCIENT_RE = re.compile(r"\bancient\s+(rome|greece|egypt)\b", re.IGNORECASE)
_MULTI_NAME_RE = re.compile(r"\s+and\s+|,", re.IGNORECASE)


def informational_target(text: str) -> Optional[str]:
    """The single place an informational query is about, or None."""
    if len(text.split()) > 20:
        return None
    for pattern in _INFO_PATTERNS:
        m = pattern.search(text)
        if m:
            # "Visit Paris and Rome" is a list, not one subject
            if _MULTI_NAME_RE.search(text[m.start(1):]):
                return None
            name = clean_waypoint(m.group(1))
            return display_name(name) if name else None
    m = _ANCIENT_RE.search(text)
    if m:
        return f"Ancient {m.group(1).capitalize()}"
    return None


def _informational(text: str, config: ExtractionConfig) -> Optional[RuleMatch]:
    name = informational_target(text)
    if not name:
        return None
    return RuleMatch(IntentType.LOCATIONS, [name], f"Showing information about: {name}")


RULES: list[ExtractionRule] = sorted([
    ExtractionRule("intercontinental_pair", 10, _intercontinental_pair),
    ExtractionRule("from_to_chain", 20, _from_to_chain),
    ExtractionRule("route_from_to", 30, _route_from_to),
    ExtractionRule("bare_to", 40, _bare_to),
    ExtractionRule("show_me_list", 50, _show_me_list),
    ExtractionRule("informational", 60, _informational),
], key=lambda r: r.priority)


# ── Catch-all helpers ─────────────────────────────────────────────────

_HISTORICAL_RE = re.compile(r"historical|ancient|century|period|empire|civilization", re.IGNORECASE)
_EXPLICIT_ROUTE_RE = re.compile(
    r"^from\s|\broute\s+from\b|\bdirections\s+(?:to|from)\b|\bshow\s+me\b", re.IGNORECASE
)
_CLAUSE_END = r"(?=[,;:!?]|\.\s|$)"
_BETWEEN_RE = re.compile(r"\bbetween\s+(.+?)\s+and\s+(.+?)" + _CLAUSE_END, re.IGNORECASE)
_FROM_TO_ANYWHERE_RE = re.compile(r"\bfrom\s+(.+?)\s+to\s+(.+?)" + _CLAUSE_END, re.IGNORECASE)


def _sentence_count(text: str) -> int:
    return len([s for s in re.split(r"[.!?]+", text) if s.strip()])


# ══════════════════════════════════════════════════════════════════════
# EXTRACTOR
# ══════════════════════════════════════════════════════════════════════

class PatternExtractor:
    """Fast-path rules plus catch-all scraping; see module docstring."""

    def __init__(self, config: Optional[ExtractionConfig] = None,
                 rules: Optional[list[ExtractionRule]] = None):
        self.config = config or get_settings().extraction
        self.rules = sorted(rules if rules is not None else RULES, key=lambda r: r.priority)
        self.matcher = get_matcher()

    def extract(self, text: str) -> IntentResult:
        return self.match_fast(text) or self.catch_all(text)

    def match_fast(self, text: str) -> Optional[IntentResult]:
        """First matching rule's result, or None when no fast rule applies."""
        norm = normalize_text(text)
        if not norm:
            return None
        for rule in self.rules:
            match = rule.handler(norm, self.config)
            if match is not None:
                logger.debug("Rule '%s' matched %r -> %s", rule.name, norm, match.names)
                return self._build(match, norm, rule.name)
        return None

    def is_paragraph(self, text: str) -> bool:
        """Descriptive prose that mentions places rather than asking for a route."""
        return (
            len(text) > self.config.paragraph_min_chars
            and (bool(_HISTORICAL_RE.search(text)) or _sentence_count(text) >= 3)
            and not _EXPLICIT_ROUTE_RE.search(text)
        )

    def catch_all(self, text: str) -> IntentResult:
        norm = normalize_text(text)
        if not norm:
            return self.default_result()
        paragraph = self.is_paragraph(norm)

        if not paragraph:
            for name, pattern in (("between", _BETWEEN_RE), ("from_to_anywhere", _FROM_TO_ANYWHERE_RE)):
                m = pattern.search(norm)
                if not m:
                    continue
                tail = [m.group(2)] if name == "between" else _TO_SPLIT_RE.split(m.group(2))
                names = [n for n in (clean_waypoint(p) for p in [m.group(1)] + tail) if n]
                if len(names) >= 2 and all(_plausible_name(n) for n in names):
                    return self._build(_route(names), norm, name)

        scraped = self.scrape_locations(norm)
        if not scraped:
            logger.info("No locations found in %r, using default locations", norm)
            return self.default_result()

        names = [n for n, _, _ in scraped]
        match = RuleMatch(
            intent_type=IntentType.LOCATIONS,
            names=names,
            message=f"Showing location: {names[0]}",
            time_contexts=[tc for _, tc, _ in scraped],
            coordinates=[c for _, _, c in scraped],
        )
        if len(names) >= 2:
            if paragraph:
                dated = sum(1 for tc in match.time_contexts if tc)
                if dated >= 2:
                    match.visualization_type = VisualizationType.TIMELINE
                elif len(names) >= 3:
                    match.visualization_type = VisualizationType.REGION
                else:
                    match.visualization_type = VisualizationType.SEQUENCE
                match.message = f"Found several locations in this text: {', '.join(names)}"
            else:
                match.intent_type = IntentType.ROUTE
                match.message = f"Showing route between {' → '.join(names)}"
        return self._build(match, norm, "scrape")

    def scrape_locations(self, text: str) -> list[tuple[str, str, Optional[tuple[float, float]]]]:
        """
        Known gazetteer names plus preposition-introduced proper nouns, in
        textual order, as (name, time_context, coordinates_or_None).
        """
        found: list[tuple[int, str, Optional[tuple[float, float]]]] = []
        for offset, _surface, entry in self.matcher.find_all(text):
            found.append((offset, entry.canonical_name, entry.coordinates))
        for offset, name in self.matcher.find_unknown_proper_nouns(text):
            found.append((offset, name, None))
        if not found:
            found = [(offset, name, None) for offset, name in extract_capitalized_names(text)]
        found.sort(key=lambda f: f[0])

        out = []
        seen: set[str] = set()
        for offset, name, coords in found:
            if name.lower() in seen:
                continue
            seen.add(name.lower())
            out.append((name, find_time_context(text, offset), coords))
        return out

    def default_result(self) -> IntentResult:
        names = list(DEFAULT_LOCATIONS)
        return IntentResult(
            intent_type=IntentType.LOCATIONS,
            locations=[Location(name=n, entity_type=classify_entity(n)) for n in names],
            visualization_type=VisualizationType.BOTH,
            travel_mode=TravelMode.DRIVING,
            message=DEFAULT_MESSAGE,
            suggested_sequence=names,
            source=ExtractionSource.DEFAULT,
            matched_rule="default",
        )

    def _build(self, match: RuleMatch, text: str, rule_name: str) -> IntentResult:
        locations = []
        for i, name in enumerate(match.names):
            time_context = match.time_contexts[i] if i < len(match.time_contexts) else ""
            coords = match.coordinates[i] if i < len(match.coordinates) else None
            locations.append(Location(
                name=name,
                time_context=time_context,
                coordinates=coords,
                entity_type=classify_entity(name),
            ))
        return IntentResult(
            intent_type=match.intent_type,
            locations=locations,
            visualization_type=match.visualization_type,
            travel_mode=detect_travel_mode(text),
            preferences=detect_preferences(text),
            message=match.message,
            suggested_sequence=list(match.names),
            source=ExtractionSource.PATTERN,
            matched_rule=rule_name,
            skip_clarification=match.skip_clarification,
        )


# Singleton extractor instance
_extractor: Optional[PatternExtractor] = None


def get_extractor() -> PatternExtractor:
    global _extractor
    if _extractor is None:
        _extractor = PatternExtractor()
    return _extractor
