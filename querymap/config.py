"""
Central configuration loaded from environment variables with sensible defaults.
All secrets (Mapbox token, Gemini key) come from env vars; nothing is hardcoded.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Optional


def _optional_float(name: str) -> Optional[float]:
    raw = os.getenv(name, "").strip()
    return float(raw) if raw else None


@dataclass(frozen=True)
class GeocodingConfig:
    provider: str = os.getenv("GEOCODER_PROVIDER", "mapbox")  # mapbox | proxy
    mapbox_url: str = os.getenv(
        "MAPBOX_GEOCODING_URL", "https://api.mapbox.com/geocoding/v5/mapbox.places"
    )
    mapbox_token: str = os.getenv("MAPBOX_TOKEN", "")
    proxy_url: str = os.getenv("GEOCODER_PROXY_URL", "http://localhost:3000/api/geocode")
    timeout: float = float(os.getenv("GEOCODER_TIMEOUT", "4.0"))
    cache_capacity: int = int(os.getenv("GEOCODER_CACHE_CAPACITY", "1024"))
    # None = entries never expire
    cache_ttl_seconds: Optional[float] = _optional_float("GEOCODER_CACHE_TTL_SECONDS")


@dataclass(frozen=True)
class DirectionsConfig:
    base_url: str = os.getenv(
        "MAPBOX_DIRECTIONS_URL", "https://api.mapbox.com/directions/v5/mapbox"
    )
    mapbox_token: str = os.getenv("MAPBOX_TOKEN", "")
    timeout: float = float(os.getenv("DIRECTIONS_TIMEOUT", "10.0"))


@dataclass(frozen=True)
class LLMConfig:
    enabled: bool = os.getenv("LLM_ENABLED", "false").lower() == "true"
    api_key: str = os.getenv("GEMINI_API_KEY", "")
    model: str = os.getenv("GEMINI_MODEL", "gemini-pro")
    base_url: str = os.getenv(
        "GEMINI_API_URL", "https://generativelanguage.googleapis.com/v1beta"
    )
    timeout: float = float(os.getenv("LLM_TIMEOUT", "5.0"))

    @property
    def active(self) -> bool:
        return self.enabled and bool(self.api_key)


@dataclass(frozen=True)
class ExtractionConfig:
    # "X to Y" only fires on short inputs so prose isn't read as a route
    bare_route_max_words: int = int(os.getenv("EXTRACT_BARE_ROUTE_MAX_WORDS", "12"))
    # Descriptive paragraph threshold for the catch-all
    paragraph_min_chars: int = int(os.getenv("EXTRACT_PARAGRAPH_MIN_CHARS", "100"))
    # Inputs with at least this many words are handed to the remote classifier
    complex_min_words: int = int(os.getenv("EXTRACT_COMPLEX_MIN_WORDS", "8"))


@dataclass(frozen=True)
class VisualizationConfig:
    long_haul_km: float = float(os.getenv("VIZ_LONG_HAUL_KM", "5000"))
    region_buffer_deg: float = float(os.getenv("VIZ_REGION_BUFFER_DEG", "0.5"))
    map_load_timeout: float = float(os.getenv("VIZ_MAP_LOAD_TIMEOUT", "10.0"))
    points_padding: int = 100
    points_max_zoom: int = 13
    route_padding: int = 50


@dataclass(frozen=True)
class HistoryConfig:
    path: str = os.getenv("SEARCH_HISTORY_PATH", "")  # empty = in-memory only
    max_entries: int = int(os.getenv("SEARCH_HISTORY_MAX", "20"))


@dataclass(frozen=True)
class APIConfig:
    host: str = os.getenv("API_HOST", "0.0.0.0")
    port: int = int(os.getenv("API_PORT", "8000"))
    max_sessions: int = int(os.getenv("API_MAX_SESSIONS", "1000"))


@dataclass(frozen=True)
class Settings:
    geocoding: GeocodingConfig = field(default_factory=GeocodingConfig)
    directions: DirectionsConfig = field(default_factory=DirectionsConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    extraction: ExtractionConfig = field(default_factory=ExtractionConfig)
    visualization: VisualizationConfig = field(default_factory=VisualizationConfig)
    history: HistoryConfig = field(default_factory=HistoryConfig)
    api: APIConfig = field(default_factory=APIConfig)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    env: str = os.getenv("APP_ENV", "development")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Singleton settings instance."""
    return Settings()
