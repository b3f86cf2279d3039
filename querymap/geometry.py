"""
Planar / spherical helpers for rendering: great-circle distance, rough
continent membership, long-haul detection, synthetic air and sea paths,
convex hulls and bounding boxes. All points are (lon, lat).
"""

from __future__ import annotations

import math
from typing import Sequence

import numpy as np

EARTH_RADIUS_KM = 6371.0

Point = tuple[float, float]

# (min_lon, max_lon, min_lat, max_lat); boxes overlap on purpose, e.g. Istanbul
# is in both Europe and Asia
CONTINENT_BOXES: dict[str, tuple[float, float, float, float]] = {
    "north_america": (-170.0, -50.0, 15.0, 85.0),
    "south_america": (-85.0, -30.0, -60.0, 15.0),
    "europe": (-25.0, 40.0, 35.0, 75.0),
    "africa": (-20.0, 55.0, -40.0, 40.0),
    "asia": (25.0, 180.0, 0.0, 80.0),
    "australia": (110.0, 155.0, -45.0, -10.0),
}


def haversine_km(a: Point, b: Point) -> float:
    lon1, lat1 = np.radians(a)
    lon2, lat2 = np.radians(b)
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    h = np.sin(dlat / 2) ** 2 + np.cos(lat1) * np.cos(lat2) * np.sin(dlon / 2) ** 2
    return float(2 * EARTH_RADIUS_KM * np.arctan2(np.sqrt(h), np.sqrt(1 - h)))


def continents_of(point: Point) -> set[str]:
    lon, lat = point
    return {
        name
        for name, (min_lon, max_lon, min_lat, max_lat) in CONTINENT_BOXES.items()
        if min_lon <= lon <= max_lon and min_lat <= lat <= max_lat
    }


def crosses_continent(a: Point, b: Point) -> bool:
    """True when some continent box holds ``a`` but not ``b``."""
    return bool(continents_of(a) - continents_of(b))


def is_long_haul(points: Sequence[Point], threshold_km: float = 5000.0) -> bool:
    """
    Driving directions are implausible when the first and last waypoint sit
    on different continents, or any single leg exceeds ``threshold_km``.
    """
    if len(points) < 2:
        return False
    if crosses_continent(points[0], points[-1]):
        return True
    return any(
        haversine_km(points[i], points[i + 1]) > threshold_km
        for i in range(len(points) - 1)
    )


def prefers_air(points: Sequence[Point], threshold_km: float = 5000.0) -> bool:
    """
    Choose an air arc over a sea line for a long-haul route.
    Intra-North-America routes only fly when very long; otherwise fly when
    crossing continents or when either end lies outside every continent box.
    """
    if len(points) < 2:
        return True
    first, last = points[0], points[-1]
    first_on = continents_of(first)
    last_on = continents_of(last)

    if "north_america" in first_on and "north_america" in last_on:
        return haversine_km(first, last) > threshold_km

    if not first_on or not last_on:
        return True
    return crosses_continent(first, last)


# ── Synthetic paths ───────────────────────────────────────────────────

def air_path(points: Sequence[Point]) -> list[Point]:
    """
    Quadratic Bezier arc per leg, bowed north: control point sits above the
    midpoint by half the latitude span plus 0.1 degrees.
    """
    if len(points) < 2:
        return [tuple(p) for p in points]

    out: list[Point] = []
    for i in range(len(points) - 1):
        p0 = np.asarray(points[i], dtype=float)
        p2 = np.asarray(points[i + 1], dtype=float)
        out.append((float(p0[0]), float(p0[1])))

        n = min(math.ceil(haversine_km(points[i], points[i + 1]) / 300), 30)
        mid = (p0 + p2) / 2
        control = np.array([mid[0], mid[1] + abs(p2[1] - p0[1]) * 0.5 + 0.1])
        if n > 1:
            t = np.arange(1, n)[:, None] / n
            curve = (1 - t) ** 2 * p0 + 2 * (1 - t) * t * control + t ** 2 * p2
            out.extend((float(x), float(y)) for x, y in curve)

    last = points[-1]
    out.append((float(last[0]), float(last[1])))
    return out


def sea_path(points: Sequence[Point]) -> list[Point]:
    """Straight legs densified with up to 20 evenly spaced points each."""
    if len(points) < 2:
        return [tuple(p) for p in points]

    out: list[Point] = []
    for i in range(len(points) - 1):
        p0 = np.asarray(points[i], dtype=float)
        p1 = np.asarray(points[i + 1], dtype=float)
        out.append((float(p0[0]), float(p0[1])))

        n = min(math.ceil(haversine_km(points[i], points[i + 1]) / 500), 20)
        if n > 0:
            fractions = np.arange(1, n + 1)[:, None] / (n + 1)
            out.extend((float(x), float(y)) for x, y in p0 + fractions * (p1 - p0))

    last = points[-1]
    out.append((float(last[0]), float(last[1])))
    return out


# ── Hulls and bounds ──────────────────────────────────────────────────

def _cross(o: Point, a: Point, b: Point) -> float:
    return (a[0] - o[0]) * (b[1] - o[1]) - (a[1] - o[1]) * (b[0] - o[0])


def convex_hull(points: Sequence[Point]) -> list[Point]:
    """
    Graham scan. Starts from the lowest (then leftmost) point, sorts the rest
    by polar angle and pops any vertex that does not make a strict left turn.
    Three or fewer points are returned unchanged.
    """
    pts = [(float(p[0]), float(p[1])) for p in points]
    if len(pts) <= 3:
        return pts

    start = min(pts, key=lambda p: (p[1], p[0]))
    rest = [p for p in pts if p != start]
    rest.sort(key=lambda p: (
        math.atan2(p[1] - start[1], p[0] - start[0]),
        (p[0] - start[0]) ** 2 + (p[1] - start[1]) ** 2,
    ))

    hull = [start]
    for p in rest:
        while len(hull) >= 2 and _cross(hull[-2], hull[-1], p) <= 0:
            hull.pop()
        hull.append(p)
    return hull


def centroid(points: Sequence[Point]) -> Point:
    arr = np.asarray(points, dtype=float)
    c = arr.mean(axis=0)
    return (float(c[0]), float(c[1]))


def buffer_polygon(points: Sequence[Point], buffer_deg: float = 0.5) -> list[Point]:
    """Push every vertex ``buffer_deg`` further from the centroid."""
    if len(points) < 3:
        return [tuple(p) for p in points]
    arr = np.asarray(points, dtype=float)
    center = np.asarray(centroid(points))
    offsets = arr - center
    dist = np.linalg.norm(offsets, axis=1)
    scale = np.where(dist > 0, buffer_deg / np.where(dist > 0, dist, 1.0), 0.0)
    buffered = arr + offsets * scale[:, None]
    return [(float(x), float(y)) for x, y in buffered]


def close_ring(ring: Sequence[Point]) -> list[Point]:
    out = [tuple(p) for p in ring]
    if out and out[0] != out[-1]:
        out.append(out[0])
    return out


def bounding_box(points: Sequence[Point]) -> tuple[Point, Point]:
    """((min_lon, min_lat), (max_lon, max_lat))"""
    arr = np.asarray(points, dtype=float)
    lo = arr.min(axis=0)
    hi = arr.max(axis=0)
    return ((float(lo[0]), float(lo[1])), (float(hi[0]), float(hi[1])))


def point_in_polygon(point: Point, ring: Sequence[Point]) -> bool:
    """Ray casting; points on an edge count as inside."""
    x, y = point
    n = len(ring)
    inside = False
    for i in range(n):
        x1, y1 = ring[i]
        x2, y2 = ring[(i + 1) % n]
        if abs(_cross((x1, y1), (x2, y2), (x, y))) < 1e-9 and \
                min(x1, x2) - 1e-9 <= x <= max(x1, x2) + 1e-9 and \
                min(y1, y2) - 1e-9 <= y <= max(y1, y2) + 1e-9:
            return True
        if (y1 > y) != (y2 > y):
            x_cross = x1 + (y - y1) * (x2 - x1) / (y2 - y1)
            if x < x_cross:
                inside = not inside
    return inside
