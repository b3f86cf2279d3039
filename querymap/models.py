"""
Pydantic models shared by the extractor, pipeline, geocoder and renderer.
Field aliases keep the camelCase wire names used by map clients
(``timeContext``, ``intentType``, ``suggestedSequence`` ...).
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


# ── Enums ──────────────────────────────────────────────────────────────

class IntentType(str, Enum):
    ROUTE = "route"
    LOCATIONS = "locations"


class VisualizationType(str, Enum):
    BOTH = "both"
    ROUTE = "route"
    SEQUENCE = "sequence"
    LOCATIONS = "locations"
    REGION = "region"
    TIMELINE = "timeline"


class TravelMode(str, Enum):
    DRIVING = "driving"
    WALKING = "walking"
    CYCLING = "cycling"
    TRANSIT = "transit"


class ExtractionSource(str, Enum):
    PATTERN = "pattern"
    LLM = "llm"
    CONTEXT = "context"
    DEFAULT = "default"


class ClarificationType(str, Enum):
    AMBIGUOUS_LOCATIONS = "ambiguousLocations"
    AMBIGUOUS_INTENT = "ambiguousIntent"


class EntityType(str, Enum):
    NATURAL_FEATURE = "naturalFeature"
    HISTORICAL_SITE = "historicalSite"
    ADMINISTRATIVE_AREA = "administrativeArea"
    POINT_OF_INTEREST = "pointOfInterest"
    URBAN_AREA = "urbanArea"
    COUNTRY = "country"
    MAJOR_CITY = "majorCity"
    PLACE = "place"


class RenderMode(str, Enum):
    ROUTE = "route"
    AIR = "air"
    SEA = "sea"
    SEQUENCE = "sequence"
    TIMELINE = "timeline"
    REGION = "region"
    POINTS = "points"
    EMPTY = "empty"


# ── Locations ─────────────────────────────────────────────────────────

class Location(BaseModel):
    """A named place mentioned in a query; coordinates are (lon, lat)."""
    name: str = Field(..., min_length=1)
    time_context: str = Field("", alias="timeContext")
    coordinates: Optional[tuple[float, float]] = None
    historical_context: Optional[str] = Field(None, alias="historicalContext")
    descriptive_context: Optional[str] = Field(None, alias="descriptiveContext")
    relationship_context: Optional[str] = Field(None, alias="relationshipContext")
    entity_type: EntityType = Field(EntityType.PLACE, alias="entityType")

    model_config = {"populate_by_name": True, "frozen": True}

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("coordinates")
    @classmethod
    def check_range(cls, v):
        if v is None:
            return v
        lon, lat = v
        if not (-180.0 <= lon <= 180.0 and -90.0 <= lat <= 90.0):
            raise ValueError(f"coordinates out of range: {v!r}")
        return v

    def with_coordinates(self, coordinates: tuple[float, float]) -> "Location":
        return self.model_copy(update={"coordinates": (float(coordinates[0]), float(coordinates[1]))})


# ── Intent results ────────────────────────────────────────────────────

class Clarification(BaseModel):
    type: ClarificationType
    message: str
    ambiguous_locations: list[str] = Field(default_factory=list, alias="ambiguousLocations")
    alternatives: list[str] = Field(default_factory=list)
    options: list[str] = Field(default_factory=list)

    model_config = {"populate_by_name": True}


class IntentResult(BaseModel):
    """Structured interpretation of one free-text query."""
    intent_type: IntentType = Field(..., alias="intentType")
    locations: list[Location] = Field(..., min_length=1)
    visualization_type: VisualizationType = Field(VisualizationType.LOCATIONS, alias="visualizationType")
    travel_mode: Optional[TravelMode] = Field(None, alias="travelMode")
    preferences: list[str] = Field(default_factory=list)
    message: str = ""
    suggested_sequence: Optional[list[str]] = Field(None, alias="suggestedSequence")
    confidence: float = Field(0.95, ge=0.0, le=1.0)
    needs_clarification: bool = Field(False, alias="needsClarification")
    clarification: Optional[Clarification] = None
    source: ExtractionSource = ExtractionSource.PATTERN
    matched_rule: Optional[str] = Field(None, alias="matchedRule")
    # Set by rules whose phrasing is explicit enough to never ask back
    skip_clarification: bool = Field(False, alias="skipClarification", exclude=True)

    model_config = {"populate_by_name": True, "frozen": True}

    @field_validator("preferences")
    @classmethod
    def dedupe_preferences(cls, v: list[str]) -> list[str]:
        """Preferences behave as a set: first spelling wins, order kept."""
        seen: set[str] = set()
        out = []
        for pref in v:
            key = pref.strip().lower()
            if key and key not in seen:
                seen.add(key)
                out.append(pref.strip())
        return out

    @property
    def location_names(self) -> list[str]:
        return [loc.name for loc in self.locations]

    def ordered_locations(self) -> list[Location]:
        """Locations in suggested order when one was given, else as extracted."""
        if not self.suggested_sequence:
            return list(self.locations)
        by_name = {loc.name.lower(): loc for loc in self.locations}
        ordered = [by_name[n.lower()] for n in self.suggested_sequence if n.lower() in by_name]
        used = {loc.name.lower() for loc in ordered}
        ordered.extend(loc for loc in self.locations if loc.name.lower() not in used)
        return ordered


# ── Rendering ─────────────────────────────────────────────────────────

class RenderOutcome(BaseModel):
    mode: RenderMode
    line_color: Optional[str] = Field(None, alias="lineColor")
    message: Optional[str] = None
    rendered: list[Location] = Field(default_factory=list)
    dropped: list[str] = Field(default_factory=list)
    # ((min_lon, min_lat), (max_lon, max_lat))
    bounds: Optional[tuple[tuple[float, float], tuple[float, float]]] = None

    model_config = {"populate_by_name": True}


# ── API models ────────────────────────────────────────────────────────

class QueryRequest(BaseModel):
    text: str = Field(..., min_length=1, max_length=5000)
    session_id: Optional[str] = Field(None, alias="sessionId")
    render: bool = True

    model_config = {"populate_by_name": True}


class QueryResponse(BaseModel):
    result: IntentResult
    render: Optional[RenderOutcome] = None
    sources: dict[str, dict] = Field(default_factory=dict)


class GeocodeResponse(BaseModel):
    query: str
    coordinates: Optional[tuple[float, float]] = None
    found: bool = False


class HistoryResponse(BaseModel):
    queries: list[str]
    total: int


class HealthResponse(BaseModel):
    status: str = "ok"
    llm_enabled: bool = False
    geocoder_provider: str = "mapbox"
    cache_size: int = 0
    sessions: int = 0
