"""
Rendering an ``IntentResult`` onto a map handle.

The map handle is anything exposing the small Mapbox-GL-like surface in
``MapHandle`` (sources, layers, paint properties, fitBounds, a load signal).
``GeoJSONMap`` is the in-memory implementation used by the API, the CLI and
tests; its sources can be serialized straight to GeoJSON for a browser client.

Strategies:
  route     driving / walking / cycling directions, or a synthetic air arc
            or sea line when the waypoints are implausible for driving
  sequence  straight line in suggested order
  region    padded convex hull around 3+ points
  timeline  line through dated locations in chronological order
  points    markers only, viewport fitted
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Protocol, Sequence

from querymap.config import VisualizationConfig, get_settings
from querymap.directions import DirectionsError, MapboxDirectionsClient
from querymap.geocode import Geocoder, get_geocoder
from querymap.geometry import (
    air_path,
    bounding_box,
    buffer_polygon,
    close_ring,
    convex_hull,
    is_long_haul,
    prefers_air,
    sea_path,
)
from querymap.models import (
    IntentResult,
    IntentType,
    Location,
    RenderMode,
    RenderOutcome,
    TravelMode,
    VisualizationType,
)
from querymap.timecontext import parse_time_context

logger = logging.getLogger(__name__)

# ── Styling ───────────────────────────────────────────────────────────

DRIVING_COLOR = "#3887be"
AIR_COLOR = "#e91e63"
SEA_COLOR = "#009688"
SEQUENCE_COLOR = "#33aa33"
TIMELINE_COLOR = "#fbb03b"
REGION_COLOR = "#3bb2d0"
SOLID = [1]
DASHED = [2, 1]

LOCATIONS_SOURCE = "locations"
ROUTE_SOURCE = "route"
REGION_SOURCE = "region"


class VisualizationError(Exception):
    """Nothing can be rendered: no map, or the map never finished loading."""


class MapHandle(Protocol):
    def add_source(self, source_id: str, data: dict) -> None: ...
    def get_source(self, source_id: str) -> Optional[dict]: ...
    def set_data(self, source_id: str, data: dict) -> None: ...
    def add_layer(self, layer: dict) -> None: ...
    def get_layer(self, layer_id: str) -> Optional[dict]: ...
    def set_paint_property(self, layer_id: str, name: str, value) -> None: ...
    def fit_bounds(self, bounds, padding: int = 50, max_zoom: Optional[int] = None) -> None: ...
    async def wait_until_loaded(self) -> None: ...


# ── In-memory map ─────────────────────────────────────────────────────

def empty_collection() -> dict:
    return {"type": "FeatureCollection", "features": []}


def empty_line() -> dict:
    return {"type": "Feature", "properties": {}, "geometry": {"type": "LineString", "coordinates": []}}


class GeoJSONMap:
    """Map handle that keeps sources and layers in dicts."""

    def __init__(self, loaded: bool = True):
        self.sources: dict[str, dict] = {}
        self.layers: dict[str, dict] = {}
        self.viewport: Optional[dict] = None
        self._loaded = asyncio.Event()
        if loaded:
            self._loaded.set()

    def mark_loaded(self) -> None:
        self._loaded.set()

    async def wait_until_loaded(self) -> None:
        await self._loaded.wait()

    def add_source(self, source_id: str, data: dict) -> None:
        if source_id in self.sources:
            raise ValueError(f"Source '{source_id}' already exists")
        self.sources[source_id] = data

    def get_source(self, source_id: str) -> Optional[dict]:
        return self.sources.get(source_id)

    def set_data(self, source_id: str, data: dict) -> None:
        if source_id not in self.sources:
            raise KeyError(source_id)
        self.sources[source_id] = data

    def add_layer(self, layer: dict) -> None:
        if layer["id"] in self.layers:
            raise ValueError(f"Layer '{layer['id']}' already exists")
        if layer.get("source") not in self.sources:
            raise KeyError(f"Layer '{layer['id']}' refers to missing source '{layer.get('source')}'")
        self.layers[layer["id"]] = {"paint": {}, "layout": {}, **layer}

    def get_layer(self, layer_id: str) -> Optional[dict]:
        return self.layers.get(layer_id)

    def remove_layer(self, layer_id: str) -> None:
        self.layers.pop(layer_id, None)

    def set_paint_property(self, layer_id: str, name: str, value) -> None:
        if layer_id not in self.layers:
            raise KeyError(layer_id)
        self.layers[layer_id]["paint"][name] = value

    def fit_bounds(self, bounds, padding: int = 50, max_zoom: Optional[int] = None) -> None:
        self.viewport = {"bounds": bounds, "padding": padding, "maxZoom": max_zoom}

    def to_dict(self) -> dict:
        return {"sources": self.sources, "layers": self.layers, "viewport": self.viewport}


# ── Dispatcher ────────────────────────────────────────────────────────

def _point_feature(loc: Location, index: int) -> dict:
    return {
        "type": "Feature",
        "geometry": {"type": "Point", "coordinates": list(loc.coordinates)},
        "properties": {
            "title": loc.name,
            "order": index,
            "timeContext": loc.time_context,
            "entityType": loc.entity_type.value,
            "historicalContext": loc.historical_context or "",
            "descriptiveContext": loc.descriptive_context or "",
            "relationshipContext": loc.relationship_context or "",
        },
    }


def _line_feature(coords: Sequence[tuple[float, float]], **properties) -> dict:
    return {
        "type": "Feature",
        "properties": properties,
        "geometry": {"type": "LineString", "coordinates": [list(c) for c in coords]},
    }


class VisualizationDispatcher:
    def __init__(self, geocoder: Optional[Geocoder] = None,
                 directions: Optional[MapboxDirectionsClient] = None,
                 config: Optional[VisualizationConfig] = None):
        self.geocoder = geocoder or get_geocoder()
        self.directions = directions or MapboxDirectionsClient()
        self.settings = config or get_settings().visualization

    async def apply(self, result: IntentResult, map_handle: Optional[MapHandle]) -> RenderOutcome:
        if map_handle is None:
            raise VisualizationError("No map to render on")

        try:
            await asyncio.wait_for(map_handle.wait_until_loaded(), timeout=self.settings.map_load_timeout)
        except asyncio.TimeoutError as e:
            raise VisualizationError(
                f"Map did not finish loading within {self.settings.map_load_timeout:.0f}s"
            ) from e

        self._ensure_base_layers(map_handle)
        self._clear(map_handle)

        resolved, dropped = await self.geocoder.geocode_all(result.ordered_locations())
        if not resolved:
            return RenderOutcome(
                mode=RenderMode.EMPTY,
                message="Could not find any of the requested locations on the map.",
                dropped=dropped,
            )

        map_handle.set_data(LOCATIONS_SOURCE, {
            "type": "FeatureCollection",
            "features": [_point_feature(loc, i) for i, loc in enumerate(resolved)],
        })

        viz = result.visualization_type
        if viz == VisualizationType.SEQUENCE:
            outcome = self._render_sequence(map_handle, resolved)
        elif viz == VisualizationType.REGION:
            outcome = self._render_region(map_handle, resolved)
        elif viz == VisualizationType.TIMELINE:
            outcome = self._render_timeline(map_handle, resolved)
        elif result.intent_type == IntentType.ROUTE:
            outcome = await self._render_route(map_handle, resolved, result)
        else:
            outcome = self._render_points(map_handle, resolved)

        if dropped:
            note = f"Could not find: {', '.join(dropped)}."
            outcome = outcome.model_copy(update={
                "dropped": dropped,
                "message": f"{outcome.message} {note}" if outcome.message else note,
            })
        logger.info("Rendered %d location(s) as %s (dropped %d)",
                    len(resolved), outcome.mode.value, len(dropped))
        return outcome

    # ── Map plumbing ──────────────────────────────────────────────────

    def _ensure_base_layers(self, map_handle: MapHandle) -> None:
        """Recreate the locations / route sources and layers if anything removed them."""
        if map_handle.get_source(LOCATIONS_SOURCE) is None:
            logger.debug("Creating missing '%s' source", LOCATIONS_SOURCE)
            map_handle.add_source(LOCATIONS_SOURCE, empty_collection())
        if map_handle.get_layer(LOCATIONS_SOURCE) is None:
            map_handle.add_layer({
                "id": LOCATIONS_SOURCE,
                "type": "circle",
                "source": LOCATIONS_SOURCE,
                "paint": {"circle-radius": 8, "circle-color": "#B42222"},
            })
        if map_handle.get_source(ROUTE_SOURCE) is None:
            logger.debug("Creating missing '%s' source", ROUTE_SOURCE)
            map_handle.add_source(ROUTE_SOURCE, empty_line())
        if map_handle.get_layer(ROUTE_SOURCE) is None:
            map_handle.add_layer({
                "id": ROUTE_SOURCE,
                "type": "line",
                "source": ROUTE_SOURCE,
                "layout": {"line-join": "round", "line-cap": "round"},
                "paint": {"line-color": DRIVING_COLOR, "line-width": 5, "line-opacity": 0.75},
            })

    def _ensure_region_layers(self, map_handle: MapHandle) -> None:
        if map_handle.get_source(REGION_SOURCE) is None:
            map_handle.add_source(REGION_SOURCE, empty_collection())
        if map_handle.get_layer("region-fill") is None:
            map_handle.add_layer({
                "id": "region-fill",
                "type": "fill",
                "source": REGION_SOURCE,
                "paint": {"fill-color": REGION_COLOR, "fill-opacity": 0.2},
            })
        if map_handle.get_layer("region-outline") is None:
            map_handle.add_layer({
                "id": "region-outline",
                "type": "line",
                "source": REGION_SOURCE,
                "paint": {"line-color": REGION_COLOR, "line-width": 2},
            })

    def _clear(self, map_handle: MapHandle) -> None:
        map_handle.set_data(LOCATIONS_SOURCE, empty_collection())
        map_handle.set_data(ROUTE_SOURCE, empty_line())
        if map_handle.get_source(REGION_SOURCE) is not None:
            map_handle.set_data(REGION_SOURCE, empty_collection())

    def _draw_line(self, map_handle: MapHandle, coords, color: str, dash: list, **properties) -> None:
        map_handle.set_data(ROUTE_SOURCE, _line_feature(coords, **properties))
        map_handle.set_paint_property(ROUTE_SOURCE, "line-color", color)
        map_handle.set_paint_property(ROUTE_SOURCE, "line-dasharray", dash)

    def _fit(self, map_handle: MapHandle, points, padding: int, max_zoom: Optional[int] = None):
        bounds = bounding_box(points)
        map_handle.fit_bounds(bounds, padding=padding, max_zoom=max_zoom)
        return bounds

    # ── Strategies ────────────────────────────────────────────────────

    async def _render_route(self, map_handle: MapHandle, locations: list[Location],
                            result: IntentResult) -> RenderOutcome:
        if len(locations) < 2:
            outcome = self._render_points(map_handle, locations)
            return outcome.model_copy(update={
                "message": f"Only found {locations[0].name}; a route needs at least two places."
            })

        points = [loc.coordinates for loc in locations]
        start, end = locations[0].name, locations[-1].name

        if is_long_haul(points, self.settings.long_haul_km):
            if prefers_air(points, self.settings.long_haul_km):
                mode, color, dash, path = RenderMode.AIR, AIR_COLOR, DASHED, air_path(points)
            else:
                mode, color, dash, path = RenderMode.SEA, SEA_COLOR, SOLID, sea_path(points)
            self._draw_line(map_handle, path, color, dash, mode=mode.value)
            bounds = self._fit(map_handle, path, self.settings.route_padding)
            return RenderOutcome(
                mode=mode,
                line_color=color,
                message=f"Showing {mode.value} route from {start} to {end}",
                rendered=locations,
                bounds=bounds,
            )

        travel_mode = result.travel_mode or TravelMode.DRIVING
        try:
            route = await self.directions.route(points, travel_mode, result.preferences)
        except DirectionsError as e:
            logger.warning("Directions failed for %s -> %s: %s", start, end, e)
            outcome = self._render_points(map_handle, locations)
            return outcome.model_copy(update={
                "message": f"Could not calculate a route ({e}). Showing the locations instead."
            })

        self._draw_line(map_handle, route.coordinates, DRIVING_COLOR, SOLID,
                        mode=travel_mode.value, distance=route.distance, duration=route.duration)
        bounds = self._fit(map_handle, route.coordinates or points, self.settings.route_padding)
        return RenderOutcome(
            mode=RenderMode.ROUTE,
            line_color=DRIVING_COLOR,
            message=(f"Showing {travel_mode.value} route from {start} to {end} "
                     f"({route.distance / 1000:.0f} km, {route.duration / 60:.0f} min)"),
            rendered=locations,
            bounds=bounds,
        )

    def _render_sequence(self, map_handle: MapHandle, locations: list[Location]) -> RenderOutcome:
        points = [loc.coordinates for loc in locations]
        if len(points) >= 2:
            self._draw_line(map_handle, points, SEQUENCE_COLOR, SOLID, mode="sequence")
        bounds = self._fit(map_handle, points, self.settings.points_padding, self.settings.points_max_zoom)
        return RenderOutcome(
            mode=RenderMode.SEQUENCE,
            line_color=SEQUENCE_COLOR,
            message=f"Showing sequence: {' → '.join(loc.name for loc in locations)}",
            rendered=locations,
            bounds=bounds,
        )

    def _render_region(self, map_handle: MapHandle, locations: list[Location]) -> RenderOutcome:
        points = [loc.coordinates for loc in locations]
        if len(points) < 3:
            outcome = self._render_points(map_handle, locations)
            return outcome.model_copy(update={"message": "Too few locations to outline a region; showing markers."})

        ring = close_ring(buffer_polygon(convex_hull(points), self.settings.region_buffer_deg))
        self._ensure_region_layers(map_handle)
        map_handle.set_data(REGION_SOURCE, {
            "type": "FeatureCollection",
            "features": [{
                "type": "Feature",
                "properties": {"names": [loc.name for loc in locations]},
                "geometry": {"type": "Polygon", "coordinates": [[list(p) for p in ring]]},
            }],
        })
        bounds = self._fit(map_handle, ring, self.settings.points_padding, self.settings.points_max_zoom)
        return RenderOutcome(
            mode=RenderMode.REGION,
            line_color=REGION_COLOR,
            message=f"Showing the region spanning {', '.join(loc.name for loc in locations)}",
            rendered=locations,
            bounds=bounds,
        )

    def _render_timeline(self, map_handle: MapHandle, locations: list[Location]) -> RenderOutcome:
        dated = [loc for loc in locations if loc.time_context]
        if len(dated) < 2:
            return self._render_sequence(map_handle, locations)

        # Stable sort: unparsable contexts sit at year 0 in their original order
        ordered = sorted(dated, key=lambda loc: parse_time_context(loc.time_context))
        points = [loc.coordinates for loc in ordered]
        self._draw_line(map_handle, points, TIMELINE_COLOR, DASHED, mode="timeline")
        bounds = self._fit(map_handle, points, self.settings.points_padding, self.settings.points_max_zoom)
        return RenderOutcome(
            mode=RenderMode.TIMELINE,
            line_color=TIMELINE_COLOR,
            message="Showing timeline: " + " → ".join(f"{loc.name} ({loc.time_context})" for loc in ordered),
            rendered=ordered,
            bounds=bounds,
        )

    def _render_points(self, map_handle: MapHandle, locations: list[Location]) -> RenderOutcome:
        points = [loc.coordinates for loc in locations]
        bounds = self._fit(map_handle, points, self.settings.points_padding, self.settings.points_max_zoom)
        names = ", ".join(loc.name for loc in locations)
        return RenderOutcome(
            mode=RenderMode.POINTS,
            message=f"Showing {len(locations)} location{'s' if len(locations) != 1 else ''}: {names}",
            rendered=locations,
            bounds=bounds,
        )
