"""Mapbox Directions client for driving / walking / cycling routes."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import httpx

from querymap.config import DirectionsConfig, get_settings
from querymap.models import TravelMode

logger = logging.getLogger(__name__)


class DirectionsError(Exception):
    """No usable route came back (transport error, bad status, empty routes)."""


# Mapbox has no public transit profile; transit requests fall back to driving
PROFILES = {
    TravelMode.DRIVING: "driving",
    TravelMode.WALKING: "walking",
    TravelMode.CYCLING: "cycling",
    TravelMode.TRANSIT: "driving",
}

# Preference keyword -> Mapbox `exclude` class
_EXCLUSIONS = (
    ("highway", "motorway"),
    ("freeway", "motorway"),
    ("interstate", "motorway"),
    ("expressway", "motorway"),
    ("toll", "toll"),
    ("ferr", "ferry"),
)


def exclusions_for(preferences: Sequence[str]) -> list[str]:
    """Map "avoid highways" style preferences to Mapbox exclude classes."""
    out: list[str] = []
    for pref in preferences:
        low = pref.lower()
        if not any(w in low for w in ("avoid", "no ", "without")):
            continue
        for keyword, cls in _EXCLUSIONS:
            if keyword in low and cls not in out:
                out.append(cls)
    return out


@dataclass(frozen=True)
class DirectionsRoute:
    geometry: dict          # GeoJSON LineString
    distance: float         # metres
    duration: float         # seconds

    @property
    def coordinates(self) -> list[tuple[float, float]]:
        return [tuple(c) for c in self.geometry.get("coordinates", [])]


def parse_directions_response(data: dict) -> DirectionsRoute:
    """Accept both the raw Mapbox shape ({routes: [...]}) and the proxy shape ({route: {...}})."""
    if isinstance(data.get("routes"), list):
        if not data["routes"]:
            raise DirectionsError("No route found")
        route = data["routes"][0]
    elif isinstance(data.get("route"), dict):
        route = data["route"]
    else:
        raise DirectionsError("Directions response has no route")

    geometry = route.get("geometry")
    if not isinstance(geometry, dict) or not geometry.get("coordinates"):
        raise DirectionsError("Route has no geometry")
    return DirectionsRoute(
        geometry=geometry,
        distance=float(route.get("distance") or 0.0),
        duration=float(route.get("duration") or 0.0),
    )


class MapboxDirectionsClient:
    def __init__(self, config: Optional[DirectionsConfig] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = config or get_settings().directions
        self._transport = transport

    async def route(self, points: Sequence[tuple[float, float]],
                    mode: TravelMode = TravelMode.DRIVING,
                    preferences: Sequence[str] = ()) -> DirectionsRoute:
        if len(points) < 2:
            raise DirectionsError("At least two coordinates are required")
        if not self.settings.mapbox_token:
            raise DirectionsError("Mapbox token not configured")

        profile = PROFILES.get(mode, "driving")
        coords = ";".join(f"{lon},{lat}" for lon, lat in points)
        params = {
            "access_token": self.settings.mapbox_token,
            "geometries": "geojson",
            "overview": "full",
            "steps": "true",
        }
        exclude = exclusions_for(preferences)
        if exclude:
            params["exclude"] = ",".join(exclude)

        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                resp = await client.get(
                    f"{self.settings.base_url}/{profile}/{coords}",
                    params=params,
                    timeout=self.settings.timeout,
                )
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPStatusError as e:
            raise DirectionsError(f"Directions API returned {e.response.status_code}") from e
        except (httpx.RequestError, ValueError) as e:
            raise DirectionsError(f"Directions request failed: {e}") from e

        route = parse_directions_response(data)
        logger.info("Route found: %.0f m, %.0f s (%s, %d waypoints)",
                    route.distance, route.duration, profile, len(points))
        return route
