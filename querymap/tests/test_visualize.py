"""
Tests for the visualization dispatcher against the in-memory GeoJSON map.
Geocoding and directions are stubbed; no network.
"""

from __future__ import annotations

import asyncio

import pytest

from querymap.config import GeocodingConfig, VisualizationConfig
from querymap.directions import DirectionsError, DirectionsRoute
from querymap.geocode import Geocoder
from querymap.geometry import point_in_polygon
from querymap.models import (
    IntentResult,
    IntentType,
    Location,
    RenderMode,
    TravelMode,
    VisualizationType,
)
from querymap.visualize import (
    AIR_COLOR,
    DRIVING_COLOR,
    REGION_COLOR,
    SEA_COLOR,
    SEQUENCE_COLOR,
    TIMELINE_COLOR,
    GeoJSONMap,
    VisualizationDispatcher,
    VisualizationError,
)

PARIS = (2.3522, 48.8566)
LONDON = (-0.1278, 51.5074)


class FakeRemote:
    def __init__(self, answers=None):
        self.answers = answers or {}
        self.calls: list[str] = []

    async def geocode(self, query: str):
        self.calls.append(query)
        return self.answers.get(query)


class StubDirections:
    def __init__(self, error: Exception = None):
        self.error = error
        self.calls = []

    async def route(self, points, mode=TravelMode.DRIVING, preferences=()):
        self.calls.append((list(points), mode, list(preferences)))
        if self.error is not None:
            raise self.error
        coords = [list(points[0]), [1.0, 50.0], list(points[-1])]
        return DirectionsRoute({"type": "LineString", "coordinates": coords}, 460000.0, 18000.0)


def _dispatcher(remote: FakeRemote = None, directions: StubDirections = None, **config):
    geocoder = Geocoder(GeocodingConfig(), remote=remote or FakeRemote())
    return VisualizationDispatcher(geocoder, directions or StubDirections(), VisualizationConfig(**config))


def _result(names, intent=IntentType.ROUTE, viz=VisualizationType.BOTH, **kwargs) -> IntentResult:
    locations = [name if isinstance(name, Location) else Location(name=name) for name in names]
    return IntentResult(intent_type=intent, locations=locations, visualization_type=viz, **kwargs)


def _render(dispatcher, result, map_handle=None):
    map_handle = map_handle or GeoJSONMap()
    outcome = asyncio.run(dispatcher.apply(result, map_handle))
    return outcome, map_handle


class TestGeoJSONMap:
    def test_layer_needs_source(self):
        m = GeoJSONMap()
        with pytest.raises(KeyError):
            m.add_layer({"id": "route", "type": "line", "source": "route"})

    def test_duplicate_source(self):
        m = GeoJSONMap()
        m.add_source("a", {})
        with pytest.raises(ValueError):
            m.add_source("a", {})

    def test_paint_property(self):
        m = GeoJSONMap()
        m.add_source("a", {})
        m.add_layer({"id": "a", "type": "line", "source": "a"})
        m.set_paint_property("a", "line-color", "#fff")
        assert m.get_layer("a")["paint"] == {"line-color": "#fff"}


class TestRoutes:
    def test_driving_route(self):
        directions = StubDirections()
        result = _result(["Paris", "London"], travel_mode=TravelMode.WALKING, preferences=["avoid tolls"])
        outcome, m = _render(_dispatcher(directions=directions), result)

        assert outcome.mode == RenderMode.ROUTE
        assert outcome.line_color == DRIVING_COLOR
        assert directions.calls == [([PARIS, LONDON], TravelMode.WALKING, ["avoid tolls"])]
        assert m.sources["route"]["geometry"]["coordinates"][1] == [1.0, 50.0]
        assert m.layers["route"]["paint"]["line-color"] == DRIVING_COLOR
        assert m.viewport["padding"] == 50
        assert [f["properties"]["title"] for f in m.sources["locations"]["features"]] == ["Paris", "London"]

    def test_suggested_order_is_used(self):
        directions = StubDirections()
        result = _result(["Paris", "London"], suggested_sequence=["London", "Paris"])
        _render(_dispatcher(directions=directions), result)
        assert directions.calls[0][0] == [LONDON, PARIS]

    def test_intercontinental_is_air(self):
        directions = StubDirections()
        outcome, m = _render(_dispatcher(directions=directions), _result(["New York", "Paris"]))
        assert outcome.mode == RenderMode.AIR
        assert outcome.line_color == AIR_COLOR
        assert m.layers["route"]["paint"]["line-dasharray"] == [2, 1]
        assert directions.calls == []

    def test_long_leg_same_continent_is_sea(self):
        outcome, m = _render(_dispatcher(), _result(["Delhi", "Tokyo"]))
        assert outcome.mode == RenderMode.SEA
        assert m.layers["route"]["paint"]["line-color"] == SEA_COLOR

    def test_directions_failure_degrades_to_points(self):
        directions = StubDirections(error=DirectionsError("No route found"))
        outcome, m = _render(_dispatcher(directions=directions), _result(["Paris", "London"]))
        assert outcome.mode == RenderMode.POINTS
        assert "Could not calculate a route" in outcome.message
        assert m.viewport["padding"] == 100
        assert m.viewport["maxZoom"] == 13
        assert m.sources["route"]["geometry"]["coordinates"] == []

    def test_single_waypoint(self):
        outcome, _ = _render(_dispatcher(), _result(["Paris", "Xyzzyplace"]))
        assert outcome.mode == RenderMode.POINTS
        assert outcome.dropped == ["Xyzzyplace"]
        assert "Xyzzyplace" in outcome.message


class TestOtherModes:
    def test_sequence(self):
        result = _result(["Paris", "London", "Berlin"], viz=VisualizationType.SEQUENCE)
        outcome, m = _render(_dispatcher(), result)
        assert outcome.mode == RenderMode.SEQUENCE
        assert outcome.line_color == SEQUENCE_COLOR
        assert len(m.sources["route"]["geometry"]["coordinates"]) == 3

    def test_region_contains_every_point(self):
        names = ["Paris", "Berlin", "Rome", "Madrid", "Vienna"]
        result = _result(names, intent=IntentType.LOCATIONS, viz=VisualizationType.REGION)
        outcome, m = _render(_dispatcher(), result)

        assert outcome.mode == RenderMode.REGION
        assert outcome.line_color == REGION_COLOR
        ring = [tuple(p) for p in m.sources["region"]["features"][0]["geometry"]["coordinates"][0]]
        assert ring[0] == ring[-1]
        assert all(point_in_polygon(loc.coordinates, ring) for loc in outcome.rendered)
        assert m.layers["region-fill"]["paint"]["fill-opacity"] == 0.2

    def test_region_needs_three_points(self):
        result = _result(["Paris", "Berlin"], intent=IntentType.LOCATIONS, viz=VisualizationType.REGION)
        outcome, m = _render(_dispatcher(), result)
        assert outcome.mode == RenderMode.POINTS
        assert "region" not in m.sources

    def test_timeline_sorted_chronologically(self):
        locations = [
            Location(name="Constantinople", time_context="3rd century"),
            Location(name="Rome", time_context="100 BCE"),
            Location(name="Athens", time_context="50 CE"),
        ]
        result = _result(locations, intent=IntentType.LOCATIONS, viz=VisualizationType.TIMELINE)
        outcome, m = _render(_dispatcher(), result)
        assert outcome.mode == RenderMode.TIMELINE
        assert outcome.line_color == TIMELINE_COLOR
        assert [loc.name for loc in outcome.rendered] == ["Rome", "Athens", "Constantinople"]
        assert m.layers["route"]["paint"]["line-dasharray"] == [2, 1]

    def test_timeline_without_dates_is_sequence(self):
        locations = [Location(name="Rome", time_context="100 BCE"), Location(name="Athens")]
        result = _result(locations, intent=IntentType.LOCATIONS, viz=VisualizationType.TIMELINE)
        outcome, _ = _render(_dispatcher(), result)
        assert outcome.mode == RenderMode.SEQUENCE

    def test_points(self):
        result = _result(["Tokyo"], intent=IntentType.LOCATIONS)
        outcome, m = _render(_dispatcher(), result)
        assert outcome.mode == RenderMode.POINTS
        assert outcome.message == "Showing 1 location: Tokyo"
        assert m.viewport["maxZoom"] == 13


class TestDispatcherPlumbing:
    def test_supplied_coordinates_bypass_geocoding(self):
        remote = FakeRemote()
        loc = Location(name="Camp", coordinates=(10.0, 45.0))
        outcome, _ = _render(_dispatcher(remote), _result([loc], intent=IntentType.LOCATIONS))
        assert remote.calls == []
        assert outcome.rendered[0].coordinates == (10.0, 45.0)

    def test_remote_geocoding_used(self):
        remote = FakeRemote({"Kyoto": (135.7681, 35.0116)})
        outcome, _ = _render(_dispatcher(remote), _result(["Kyoto"], intent=IntentType.LOCATIONS))
        assert remote.calls == ["Kyoto"]
        assert outcome.rendered[0].coordinates == (135.7681, 35.0116)

    def test_nothing_found(self):
        outcome, m = _render(_dispatcher(), _result(["Xyzzyplace"], intent=IntentType.LOCATIONS))
        assert outcome.mode == RenderMode.EMPTY
        assert outcome.dropped == ["Xyzzyplace"]
        assert m.sources["locations"]["features"] == []

    def test_missing_map(self):
        with pytest.raises(VisualizationError):
            asyncio.run(_dispatcher().apply(_result(["Paris"]), None))

    def test_map_never_loads(self):
        with pytest.raises(VisualizationError):
            _render(_dispatcher(map_load_timeout=0.05), _result(["Paris"]), GeoJSONMap(loaded=False))

    def test_waits_for_load(self):
        dispatcher = _dispatcher(map_load_timeout=1.0)

        async def scenario():
            m = GeoJSONMap(loaded=False)
            asyncio.get_running_loop().call_later(0.02, m.mark_loaded)
            return await dispatcher.apply(_result(["Tokyo"], intent=IntentType.LOCATIONS), m)

        assert asyncio.run(scenario()).mode == RenderMode.POINTS

    def test_clears_previous_render(self):
        dispatcher = _dispatcher()
        m = GeoJSONMap()
        _render(dispatcher, _result(["Paris", "Berlin", "Rome"], intent=IntentType.LOCATIONS,
                                    viz=VisualizationType.REGION), m)
        _render(dispatcher, _result(["Tokyo"], intent=IntentType.LOCATIONS), m)
        assert m.sources["region"]["features"] == []
        assert len(m.sources["locations"]["features"]) == 1

    def test_recreates_removed_layers(self):
        dispatcher = _dispatcher()
        m = GeoJSONMap()
        _render(dispatcher, _result(["Tokyo"], intent=IntentType.LOCATIONS), m)
        m.remove_layer("route")
        _render(dispatcher, _result(["Paris", "London"]), m)
        assert m.get_layer("route")["type"] == "line"
