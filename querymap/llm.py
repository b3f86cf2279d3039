"""
Optional Gemini fallback for queries the regex rules are unlikely to handle
well (long prose, touristic / historical phrasing, questions).

The remote answer is never trusted as-is: it must decode to the expected JSON
shape, and every location it names has to share a word with the user's text.
The second check rejects answers that merely echo the worked examples in the
prompt. Any failure raises a ``RemoteClassifierError``; callers fall back to
pattern extraction.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import Optional

import httpx
from pydantic import BaseModel, Field, ValidationError, field_validator

from querymap.config import LLMConfig, get_settings
from querymap.entities import classify_entity
from querymap.models import (
    ExtractionSource,
    IntentResult,
    IntentType,
    Location,
    TravelMode,
    VisualizationType,
)

logger = logging.getLogger(__name__)


class RemoteClassifierError(Exception):
    """Base class for remote classification failures."""


class ClassifierTimeout(RemoteClassifierError):
    pass


class ClassifierHTTPError(RemoteClassifierError):
    pass


class ClassifierResponseError(RemoteClassifierError):
    """Answer was not valid JSON, had the wrong shape, or was implausible."""


# ── Complexity gate ───────────────────────────────────────────────────

_COMPLEX_VOCAB_RE = re.compile(
    r"historical|ancient|culture|civilization|empire|kingdom|region|famous|landmarks|"
    r"attractions|itinerary|journey|tour|travel|visit",
    re.IGNORECASE,
)
_SIMPLE_ROUTE_RE = re.compile(r"\b(?:route|from|to|between|and)\b", re.IGNORECASE)


def is_complex_query(text: str, min_words: int = 8) -> bool:
    """
    Worth a remote call: long, touristic/historical vocabulary, or a question.
    Short inputs with an obvious route keyword never are.
    """
    words = text.split()
    if _SIMPLE_ROUTE_RE.search(text) and len(words) < 10:
        return False
    return len(words) >= min_words or bool(_COMPLEX_VOCAB_RE.search(text)) or "?" in text


# ── Prompt ────────────────────────────────────────────────────────────

PROMPT_TEMPLATE = """You are a location and route information extraction system for a map application.

TASK: Analyze this text and extract any location information, whether it's a route request or just mentions places.

INPUT: "{text}"

INSTRUCTIONS:
1. Determine if this is a request for directions/route between locations OR text that simply mentions geographical places.
2. Extract ALL geographical locations mentioned in the text, including cities, countries, regions, landmarks, etc.
3. For route requests, determine the order of travel between locations.
4. For non-route texts that mention multiple locations, identify a logical sequence for these locations (chronological if time is mentioned, geographical proximity, or the order they appear in text).
5. Identify the mode of transportation if specified (driving, walking, cycling, transit).
6. Extract any routing preferences (avoid highways, scenic route, fastest route, etc.).
7. For historical or descriptive texts, identify time periods or historical eras mentioned with locations (e.g., "Constantinople in 1453").

Return a valid JSON object with the following structure:
{{
  "intentType": "route" or "locations",
  "locations": [{{"name": "Location1", "timeContext": "optional time period or year if mentioned"}}],
  "visualizationType": "both", "route", "sequence", "region" or "timeline",
  "travelMode": "driving|walking|cycling|transit",
  "preferences": ["avoid highways", "scenic route", etc.],
  "message": "A user-friendly message providing guidance based on the input type",
  "suggestedSequence": ["Location1", "Location2", ...]
}}

EXAMPLES:
Input: "Show me how to get from Boston to New York"
Output: {{
  "intentType": "route",
  "locations": [{{"name": "Boston", "timeContext": ""}}, {{"name": "New York", "timeContext": ""}}],
  "visualizationType": "both",
  "travelMode": "driving",
  "preferences": [],
  "message": "Creating a driving route from Boston to New York.",
  "suggestedSequence": ["Boston", "New York"]
}}

Input: "Gibbon's canvas is large geographically and chronologically. One expects a sharp focus on the Mediterranean, but Gibbon ranges from sub-Saharan Africa to China. And although he ostensibly covers the period from the Antonines in the second century after Christ until the final collapse of Constantinople in 1453, even this broad range does not contain our author."
Output: {{
  "intentType": "locations",
  "locations": [
    {{"name": "Mediterranean", "timeContext": ""}},
    {{"name": "sub-Saharan Africa", "timeContext": ""}},
    {{"name": "China", "timeContext": ""}},
    {{"name": "Constantinople", "timeContext": "1453"}}
  ],
  "visualizationType": "region",
  "travelMode": "driving",
  "preferences": [],
  "message": "I found several geographical locations mentioned in this historical text.",
  "suggestedSequence": ["Mediterranean", "sub-Saharan Africa", "China", "Constantinople"]
}}

If travel mode is not specified, default to "driving".
If preferences are not specified, return an empty array.
Return ONLY the JSON object, no additional text.
"""


def build_prompt(text: str) -> str:
    return PROMPT_TEMPLATE.format(text=text.replace('"', "'"))


# ── Response schema ───────────────────────────────────────────────────

class LLMLocation(BaseModel):
    name: str = Field(..., min_length=1)
    time_context: str = Field("", alias="timeContext")

    model_config = {"populate_by_name": True, "extra": "ignore"}

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("time_context", mode="before")
    @classmethod
    def none_to_empty(cls, v):
        return v or ""


class LLMPayload(BaseModel):
    intent_type: Optional[IntentType] = Field(None, alias="intentType")
    is_route_request: Optional[bool] = Field(None, alias="isRouteRequest")
    locations: list[LLMLocation] = Field(..., min_length=1)
    visualization_type: Optional[VisualizationType] = Field(None, alias="visualizationType")
    travel_mode: Optional[TravelMode] = Field(None, alias="travelMode")
    preferences: list[str] = Field(default_factory=list)
    message: str = ""
    suggested_sequence: Optional[list[str]] = Field(None, alias="suggestedSequence")

    model_config = {"populate_by_name": True, "extra": "ignore"}

    @field_validator("travel_mode", mode="before")
    @classmethod
    def unknown_mode_is_none(cls, v):
        """Models sometimes answer "flying" or "train"; treat as unspecified."""
        if isinstance(v, str) and v.lower() in {m.value for m in TravelMode}:
            return v.lower()
        return None

    @field_validator("visualization_type", mode="before")
    @classmethod
    def unknown_visualization_is_none(cls, v):
        if isinstance(v, str) and v.lower() in {t.value for t in VisualizationType}:
            return v.lower()
        return None

    @field_validator("preferences", mode="before")
    @classmethod
    def none_to_list(cls, v):
        return v or []


_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)


def parse_response_text(raw: str) -> LLMPayload:
    """Strip markdown fences, decode the first JSON object and validate it."""
    cleaned = _FENCE_RE.sub("", raw or "").strip()
    start = cleaned.find("{")
    if start < 0:
        raise ClassifierResponseError("No JSON object in classifier answer")
    try:
        data, _ = json.JSONDecoder().raw_decode(cleaned[start:])
    except json.JSONDecodeError as e:
        raise ClassifierResponseError(f"Classifier answer is not valid JSON: {e}") from e
    try:
        return LLMPayload.model_validate(data)
    except ValidationError as e:
        raise ClassifierResponseError(f"Classifier answer has the wrong shape: {e}") from e


_TOKEN_RE = re.compile(r"[a-z]{3,}")
# Too common in place names to prove anything ("New York" vs "a new idea")
_WEAK_TOKENS = {"new", "the", "san", "saint", "city", "north", "south", "east", "west",
                "upper", "lower", "great", "old", "and"}


def check_plausible(payload: LLMPayload, text: str) -> None:
    """Every returned location must share a distinctive word (3+ letters) with the input."""
    input_tokens = set(_TOKEN_RE.findall(text.lower()))
    for loc in payload.locations:
        tokens = [t for t in _TOKEN_RE.findall(loc.name.lower()) if t not in _WEAK_TOKENS]
        if not tokens:
            continue
        if not any(t in input_tokens for t in tokens):
            raise ClassifierResponseError(
                f"Classifier returned '{loc.name}', which does not appear in the query"
            )


def to_intent_result(payload: LLMPayload, text: str) -> IntentResult:
    """Build the result, reporting any model validation failure as a bad answer."""
    try:
        return _build_result(payload, text)
    except ValidationError as e:
        raise ClassifierResponseError(f"Classifier answer does not fit the result model: {e}") from e


def _build_result(payload: LLMPayload, text: str) -> IntentResult:
    if payload.intent_type is not None:
        intent = payload.intent_type
    elif payload.is_route_request is not None:
        intent = IntentType.ROUTE if payload.is_route_request else IntentType.LOCATIONS
    else:
        intent = IntentType.LOCATIONS

    locations = [
        Location(name=loc.name, time_context=loc.time_context, entity_type=classify_entity(loc.name))
        for loc in payload.locations
    ]
    return IntentResult(
        intent_type=intent,
        locations=locations,
        visualization_type=payload.visualization_type or VisualizationType.BOTH,
        travel_mode=payload.travel_mode or TravelMode.DRIVING,
        preferences=payload.preferences,
        message=payload.message or f"Processed query: {text}",
        suggested_sequence=payload.suggested_sequence or [loc.name for loc in locations],
        source=ExtractionSource.LLM,
        matched_rule="gemini",
    )


# ── Client ────────────────────────────────────────────────────────────

class GeminiIntentClassifier:
    """Gemini ``generateContent`` client that returns an ``IntentResult``."""

    def __init__(self, config: Optional[LLMConfig] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = config or get_settings().llm
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return self.settings.active

    async def classify(self, text: str) -> IntentResult:
        if not self.enabled:
            raise RemoteClassifierError("Remote classifier is disabled")

        loop = asyncio.get_running_loop()
        started = loop.time()
        try:
            raw = await asyncio.wait_for(self._generate(build_prompt(text)), timeout=self.settings.timeout)
        except asyncio.TimeoutError as e:
            raise ClassifierTimeout(f"Gemini did not answer within {self.settings.timeout:.1f}s") from e

        payload = parse_response_text(raw)
        check_plausible(payload, text)
        result = to_intent_result(payload, text)
        logger.info("Gemini classified query in %.0fms: %s %s",
                    (loop.time() - started) * 1000, result.intent_type.value, result.location_names)
        return result

    async def _generate(self, prompt: str) -> str:
        url = f"{self.settings.base_url}/models/{self.settings.model}:generateContent"
        body = {"contents": [{"role": "user", "parts": [{"text": prompt}]}]}
        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                resp = await client.post(
                    url,
                    params={"key": self.settings.api_key},
                    json=body,
                    timeout=self.settings.timeout,
                )
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPStatusError as e:
            raise ClassifierHTTPError(f"Gemini returned {e.response.status_code}") from e
        except httpx.TimeoutException as e:
            raise ClassifierTimeout(f"Gemini request timed out: {e}") from e
        except httpx.RequestError as e:
            raise ClassifierHTTPError(f"Gemini request failed: {e}") from e
        except ValueError as e:
            raise ClassifierResponseError(f"Gemini response is not JSON: {e}") from e

        try:
            return data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError) as e:
            raise ClassifierResponseError("Gemini response has no candidate text") from e
