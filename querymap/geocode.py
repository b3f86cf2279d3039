"""
Geocoding with an in-process cache and a gazetteer safety net.

Strategy for ``Geocoder.geocode(name)``:
  1. Normalize the name (lowercase, trim, collapse whitespace)
  2. Check the bounded LRU/TTL cache
  3. Exact, then single-word partial gazetteer match
  4. Remote geocoder (Mapbox Geocoding v5 or a same-origin proxy), 4s timeout
  5. 5-character fuzzy-prefix gazetteer match
  6. None

Every non-null answer is cached. Concurrent lookups of the same name share
one in-flight remote request.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import OrderedDict
from typing import Callable, Optional, Sequence
from urllib.parse import quote

import httpx

from querymap.config import GeocodingConfig, get_settings
from querymap.gazetteer import (
    lookup_exact,
    lookup_fuzzy_prefix,
    lookup_partial_word,
    normalize_key,
)
from querymap.models import Location

logger = logging.getLogger(__name__)

Point = tuple[float, float]


class GeocodingError(Exception):
    """Remote geocoder failed (transport error, bad status or malformed body)."""


# ── Cache ─────────────────────────────────────────────────────────────

class BoundedTTLCache:
    """LRU cache with a capacity bound and an optional per-entry TTL."""

    def __init__(self, capacity: int = 1024, ttl_seconds: Optional[float] = None,
                 clock: Callable[[], float] = time.monotonic):
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self._capacity = capacity
        self._ttl = ttl_seconds
        self._clock = clock
        self._data: OrderedDict[str, tuple[float, Point]] = OrderedDict()

    def get(self, key: str) -> Optional[Point]:
        item = self._data.get(key)
        if item is None:
            return None
        stored_at, value = item
        if self._ttl is not None and self._clock() - stored_at > self._ttl:
            del self._data[key]
            return None
        self._data.move_to_end(key)
        return value

    def set(self, key: str, value: Point) -> None:
        self._data[key] = (self._clock(), value)
        self._data.move_to_end(key)
        while len(self._data) > self._capacity:
            evicted, _ = self._data.popitem(last=False)
            logger.debug("Geocode cache evicted '%s'", evicted)

    def clear(self) -> None:
        self._data.clear()

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        return len(self._data)


# ── Remote geocoders ──────────────────────────────────────────────────

def _parse_point(raw) -> Optional[Point]:
    if not isinstance(raw, (list, tuple)) or len(raw) < 2:
        return None
    try:
        lon, lat = float(raw[0]), float(raw[1])
    except (TypeError, ValueError):
        return None
    if not (-180.0 <= lon <= 180.0 and -90.0 <= lat <= 90.0):
        return None
    return (lon, lat)


class MapboxGeocoder:
    """Mapbox Geocoding v5 forward lookup, first feature only."""

    name = "mapbox"

    def __init__(self, config: Optional[GeocodingConfig] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = config or get_settings().geocoding
        self._transport = transport

    async def geocode(self, query: str) -> Optional[Point]:
        if not self.settings.mapbox_token:
            raise GeocodingError("Mapbox token not configured")

        url = f"{self.settings.mapbox_url}/{quote(query)}.json"
        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                resp = await client.get(
                    url,
                    params={"access_token": self.settings.mapbox_token, "limit": 1},
                    timeout=self.settings.timeout,
                )
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPStatusError as e:
            raise GeocodingError(f"Mapbox geocoding returned {e.response.status_code}") from e
        except (httpx.RequestError, ValueError) as e:
            raise GeocodingError(f"Mapbox geocoding request failed: {e}") from e

        features = data.get("features") or []
        if not features:
            logger.debug("Mapbox: no results for '%s'", query)
            return None
        top = features[0]
        return _parse_point(top.get("center") or (top.get("geometry") or {}).get("coordinates"))


class ProxyGeocoder:
    """Same-origin proxy: POST {"location": ...} -> {"coordinates": [lon, lat]}."""

    name = "proxy"

    def __init__(self, config: Optional[GeocodingConfig] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = config or get_settings().geocoding
        self._transport = transport

    async def geocode(self, query: str) -> Optional[Point]:
        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                resp = await client.post(
                    self.settings.proxy_url,
                    json={"location": query},
                    timeout=self.settings.timeout,
                )
                if resp.status_code == 404:
                    return None
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPStatusError as e:
            raise GeocodingError(f"Geocoding proxy returned {e.response.status_code}") from e
        except (httpx.RequestError, ValueError) as e:
            raise GeocodingError(f"Geocoding proxy request failed: {e}") from e

        return _parse_point(data.get("coordinates"))


def get_remote_geocoder(config: Optional[GeocodingConfig] = None,
                        transport: Optional[httpx.AsyncBaseTransport] = None):
    """Factory: return the configured remote geocoder instance."""
    config = config or get_settings().geocoding
    if config.provider == "proxy":
        return ProxyGeocoder(config, transport)
    return MapboxGeocoder(config, transport)


# ── Geocoding Orchestrator ─────────────────────────────────────────────

class Geocoder:
    """Cache-first resolver of place names to (lon, lat)."""

    def __init__(self, config: Optional[GeocodingConfig] = None, remote=None,
                 cache: Optional[BoundedTTLCache] = None):
        self.settings = config or get_settings().geocoding
        self.remote = remote if remote is not None else get_remote_geocoder(self.settings)
        self.cache = cache or BoundedTTLCache(
            self.settings.cache_capacity, self.settings.cache_ttl_seconds
        )
        self.remote_calls = 0
        self._inflight: dict[str, asyncio.Future] = {}

    async def geocode(self, name: str) -> Optional[Point]:
        key = normalize_key(name)
        if not key:
            return None

        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("Geocode cache HIT: '%s'", key)
            return cached

        entry = lookup_exact(key) or lookup_partial_word(key)
        if entry is not None:
            logger.debug("Gazetteer match for '%s' -> %s", name, entry.canonical_name)
            self.cache.set(key, entry.coordinates)
            return entry.coordinates

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._resolve_remote(name.strip(), key))
            self._inflight[key] = task
            task.add_done_callback(lambda _t, k=key: self._inflight.pop(k, None))
        # A cancelled waiter must not cancel the lookup other callers share
        return await asyncio.shield(task)

    async def _resolve_remote(self, query: str, key: str) -> Optional[Point]:
        point: Optional[Point] = None
        self.remote_calls += 1
        try:
            point = await asyncio.wait_for(self.remote.geocode(query), timeout=self.settings.timeout)
        except asyncio.TimeoutError:
            logger.warning("Geocoding '%s' timed out after %.1fs", query, self.settings.timeout)
        except GeocodingError as e:
            logger.warning("Geocoding '%s' failed: %s", query, e)

        if point is None:
            entry = lookup_fuzzy_prefix(key)
            if entry is not None:
                logger.info("Fuzzy gazetteer match for '%s' -> %s", query, entry.canonical_name)
                point = entry.coordinates

        if point is not None:
            self.cache.set(key, point)
        else:
            logger.info("Could not geocode '%s'", query)
        return point

    async def geocode_location(self, location: Location) -> Optional[Location]:
        """Attach coordinates to a copy of ``location``; supplied coordinates are kept."""
        if location.coordinates is not None:
            return location
        point = await self.geocode(location.name)
        if point is None:
            return None
        return location.with_coordinates(point)

    async def geocode_all(self, locations: Sequence[Location]) -> tuple[list[Location], list[str]]:
        """
        Resolve all locations concurrently. Returns (resolved, dropped_names);
        one failing lookup never affects the others.
        """
        results = await asyncio.gather(
            *(self.geocode_location(loc) for loc in locations), return_exceptions=True
        )
        resolved: list[Location] = []
        dropped: list[str] = []
        for loc, res in zip(locations, results):
            if isinstance(res, BaseException):
                logger.error("Unexpected error geocoding '%s': %s", loc.name, res)
                dropped.append(loc.name)
            elif res is None:
                dropped.append(loc.name)
            else:
                resolved.append(res)
        if dropped:
            logger.info("Dropped %d unresolvable location(s): %s", len(dropped), dropped)
        return resolved, dropped


# Singleton geocoder instance
_geocoder: Optional[Geocoder] = None


def get_geocoder() -> Geocoder:
    global _geocoder
    if _geocoder is None:
        _geocoder = Geocoder()
    return _geocoder
