"""
Per-session conversation state and follow-up query handling.

A follow-up ("and Chicago", "then to Denver", "what about there?") is rewritten
against the previous turn before extraction, and a follow-up to a route can be
merged back into that route afterwards.
"""

from __future__ import annotations

import logging
import re
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Optional

from querymap.models import ExtractionSource, IntentResult, IntentType, Location, TravelMode

logger = logging.getLogger(__name__)

# Checked in this order; the first match names the follow-up kind
FOLLOW_UP_PATTERNS: dict[str, re.Pattern] = {
    "addition": re.compile(r"^(?:and|also|add|include|with|plus)\b", re.IGNORECASE),
    "continuation": re.compile(r"^(?:then|next|after that|from there)\b", re.IGNORECASE),
    "question": re.compile(r"^(?:what about|how about|what is|where is|show me)\b", re.IGNORECASE),
    "refinement": re.compile(r"^(?:but|instead|actually|rather)\b", re.IGNORECASE),
    "reference": re.compile(r"\b(?:there|it|that|this|those|these|the area|the city|the route)\b",
                            re.IGNORECASE),
}
_REFERENCE_RE = FOLLOW_UP_PATTERNS["reference"]
_LEADING_ADDITION_RE = re.compile(r"^(?:(?:and|also|add|include|with|plus|then)\b[\s,]*)+", re.IGNORECASE)


@dataclass
class SessionContext:
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    last_query: Optional[str] = None
    last_locations: list[Location] = field(default_factory=list)
    last_intent: Optional[IntentType] = None
    turn_count: int = 0

    @classmethod
    def create(cls, session_id: Optional[str] = None) -> "SessionContext":
        return cls(session_id=session_id) if session_id else cls()

    def reset(self) -> None:
        self.last_query = None
        self.last_locations = []
        self.last_intent = None
        self.turn_count = 0

    def record(self, text: str, result: IntentResult) -> None:
        self.last_query = text
        self.last_locations = list(result.locations)
        self.last_intent = result.intent_type
        self.turn_count += 1

    @property
    def last_names(self) -> list[str]:
        return [loc.name for loc in self.last_locations]


def classify_follow_up(text: str) -> Optional[str]:
    stripped = text.strip()
    for kind, pattern in FOLLOW_UP_PATTERNS.items():
        if pattern.search(stripped):
            return kind
    return None


def rewrite_follow_up(text: str, context: SessionContext) -> tuple[str, Optional[str]]:
    """
    Returns (text_to_extract, follow_up_kind). Text is unchanged when this is
    not a follow-up or there is no previous turn to refer to.
    """
    kind = classify_follow_up(text)
    if kind is None or not context.last_query:
        return text, None

    names = context.last_names
    stripped = text.strip()
    if kind == "addition" and names:
        # Only the new places are extracted; merge_follow_up appends them to the route
        rewritten = _LEADING_ADDITION_RE.sub("", stripped) or stripped
    elif kind == "continuation":
        last = names[-1] if names else "the last location"
        rewritten = f"from {last} {stripped}"
    elif _REFERENCE_RE.search(stripped) and names:
        rewritten = _REFERENCE_RE.sub(" and ".join(names), stripped)
    else:
        rewritten = stripped

    if rewritten != stripped:
        logger.debug("Follow-up (%s) rewritten: %r -> %r", kind, stripped, rewritten)
    return rewritten, kind


def merge_follow_up(result: IntentResult, kind: Optional[str], context: SessionContext) -> IntentResult:
    """
    Extend the previous route with the new locations when the user is adding
    to it, continuing it, or follows it up with a plain list of places.
    """
    if kind is None or context.last_intent != IntentType.ROUTE or not context.last_locations:
        return result
    if result.source == ExtractionSource.DEFAULT:
        return result
    if result.intent_type != IntentType.LOCATIONS and kind not in ("addition", "continuation"):
        return result

    merged = list(context.last_locations)
    known = {loc.name.lower() for loc in merged}
    added = []
    for loc in result.locations:
        if loc.name.lower() not in known:
            known.add(loc.name.lower())
            merged.append(loc)
            added.append(loc.name)
    if not added:
        return result

    return IntentResult(
        intent_type=IntentType.ROUTE,
        locations=merged,
        visualization_type=result.visualization_type,
        travel_mode=result.travel_mode or TravelMode.DRIVING,
        preferences=result.preferences,
        message=f"Continuing route with {' and '.join(added)}",
        suggested_sequence=[loc.name for loc in merged],
        source=ExtractionSource.CONTEXT,
        matched_rule=f"follow_up:{kind}",
    )


class SessionStore:
    """Bounded map of session id -> SessionContext; least recently used is dropped."""

    def __init__(self, max_sessions: int = 1000):
        self._max = max_sessions
        self._sessions: OrderedDict[str, SessionContext] = OrderedDict()

    def get(self, session_id: str) -> SessionContext:
        ctx = self._sessions.get(session_id)
        if ctx is None:
            ctx = SessionContext.create(session_id)
            self._sessions[session_id] = ctx
            while len(self._sessions) > self._max:
                dropped, _ = self._sessions.popitem(last=False)
                logger.debug("Session store full, dropped session %s", dropped)
        else:
            self._sessions.move_to_end(session_id)
        return ctx

    def reset(self, session_id: str) -> bool:
        ctx = self._sessions.get(session_id)
        if ctx is None:
            return False
        ctx.reset()
        return True

    def __len__(self) -> int:
        return len(self._sessions)
