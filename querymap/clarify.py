"""
Decide whether a parsed query should be confirmed with the user before it is
drawn, and attach the question plus suggested alternatives.
"""

from __future__ import annotations

import re

from querymap.gazetteer import COMMON_CITIES
from querymap.models import Clarification, ClarificationType, IntentResult

CONFIDENT = 0.95
UNSURE = 0.7

AMBIGUOUS_NAMES = frozenset({
    "springfield", "washington", "portland", "franklin", "manchester",
    "york", "san jose", "san juan", "georgetown",
})

ALTERNATIVES: dict[str, list[str]] = {
    "portland": ["Portland, Oregon, USA", "Portland, Maine, USA"],
    "springfield": ["Springfield, Illinois, USA", "Springfield, Massachusetts, USA",
                    "Springfield, Missouri, USA"],
    "manchester": ["Manchester, UK", "Manchester, New Hampshire, USA"],
    "york": ["York, UK", "New York, USA", "York, Pennsylvania, USA"],
    "washington": ["Washington, D.C., USA", "Washington State, USA"],
    "columbia": ["Columbia, South Carolina, USA", "Columbia, Missouri, USA",
                 "District of Columbia, USA"],
    "san jose": ["San Jose, California, USA", "San José, Costa Rica"],
    "san juan": ["San Juan, Puerto Rico", "San Juan, Argentina"],
    "georgetown": ["Georgetown, Washington, D.C., USA", "Georgetown, Guyana",
                   "Georgetown, Malaysia"],
    "franklin": ["Franklin, Tennessee, USA", "Franklin, Massachusetts, USA"],
}

INTENT_OPTIONS = ["Show as route", "Show as separate locations"]

_SHOW_ME_RE = re.compile(r"^show\s+me\s+[^?]+", re.IGNORECASE)
_GENERIC_VERB_RE = re.compile(r"^(?:display|find|get)\b", re.IGNORECASE)


def is_ambiguous_location(name: str) -> bool:
    key = name.strip().lower()
    if key in AMBIGUOUS_NAMES:
        return True
    # Short names are ambiguous unless they are part of a well-known city name
    return len(key) < 4 and not any(key in city for city in COMMON_CITIES)


def alternatives_for(name: str) -> list[str]:
    key = name.strip().lower()
    alternatives = list(ALTERNATIVES.get(key, []))
    if len(key) < 4:
        alternatives += [f"{name} City", f"{name}, USA", f"{name}, Europe"]
    if not alternatives:
        alternatives = [f"{name}, USA", f"{name}, Europe", f"{name} (the city)", f"{name} (the landmark)"]
    return alternatives


def is_ambiguous_intent(text: str, location_count: int) -> bool:
    stripped = text.strip()
    if _SHOW_ME_RE.match(stripped):
        return False
    return len(stripped) < 10 or bool(_GENERIC_VERB_RE.match(stripped)) or location_count > 3


def annotate(result: IntentResult, text: str) -> IntentResult:
    """Return a copy of ``result`` with confidence and any clarification filled in."""
    if result.skip_clarification:
        return result.model_copy(update={
            "needs_clarification": False,
            "clarification": None,
            "confidence": CONFIDENT,
        })

    names = result.location_names
    ambiguous = [n for n in names if is_ambiguous_location(n)]

    clarification = None
    if ambiguous:
        clarification = Clarification(
            type=ClarificationType.AMBIGUOUS_LOCATIONS,
            message=f"I found these locations: {', '.join(names)}. Did you mean something else?",
            ambiguous_locations=ambiguous,
            alternatives=alternatives_for(ambiguous[0]),
        )
    elif len(names) >= 2 and is_ambiguous_intent(text, len(names)):
        clarification = Clarification(
            type=ClarificationType.AMBIGUOUS_INTENT,
            message="Should I show these as separate locations or create a route between them?",
            options=list(INTENT_OPTIONS),
        )

    return result.model_copy(update={
        "needs_clarification": clarification is not None,
        "clarification": clarification,
        "confidence": UNSURE if clarification is not None else CONFIDENT,
    })
