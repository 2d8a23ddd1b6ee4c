"""
Polygon Geometry Module
=======================

Pure functions over (lat, lon) rings - NO state, NO side effects.

Design:
- Ray casting for point-in-polygon, vectorised over many query points
- Rings may be open or closed (a repeated first vertex is harmless)
- Containment treats coordinates as planar degrees (run-scale approximation)
- Areas use shapely geometry projected with pyproj into an equal-area CRS
"""

from dataclasses import dataclass
from typing import List, Sequence

import numpy as np
import pyproj
from shapely.geometry import Polygon
from shapely.ops import transform
from shapely.validation import make_valid

from hexclaim_territory.geometry.points import (
    GeoPoint,
    coordinates_array,
    haversine_m,
)

# Rings whose ends are closer than this are considered closed
CLOSURE_EPSILON_M = 1.0

WGS84 = pyproj.CRS("EPSG:4326")


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned bounds in degrees."""

    min_lat: float
    max_lat: float
    min_lon: float
    max_lon: float

    def contains(self, point: GeoPoint) -> bool:
        return (
            self.min_lat <= point.latitude <= self.max_lat
            and self.min_lon <= point.longitude <= self.max_lon
        )

    def to_ring(self) -> List[GeoPoint]:
        """Closed 5-vertex ring, counter-clockwise from the south-west corner."""
        return [
            GeoPoint(self.min_lat, self.min_lon),
            GeoPoint(self.min_lat, self.max_lon),
            GeoPoint(self.max_lat, self.max_lon),
            GeoPoint(self.max_lat, self.min_lon),
            GeoPoint(self.min_lat, self.min_lon),
        ]


def bounding_box(points: Sequence[GeoPoint]) -> BoundingBox:
    """
    Bounds of a point sequence.

    Raises:
        ValueError: If ``points`` is empty
    """
    if not points:
        raise ValueError("Cannot compute bounding box of an empty point sequence")
    coords = coordinates_array(points)
    return BoundingBox(
        min_lat=float(coords[:, 0].min()),
        max_lat=float(coords[:, 0].max()),
        min_lon=float(coords[:, 1].min()),
        max_lon=float(coords[:, 1].max()),
    )


def points_in_polygon(queries: np.ndarray, polygon: Sequence[GeoPoint]) -> np.ndarray:
    """
    Ray-casting containment test for many points at once.

    Args:
        queries: Mx2 array of (lat, lon)
        polygon: Ring vertices (open or closed)

    Returns:
        Boolean mask of shape (M,), True = inside. Polygons with fewer
        than 3 vertices contain nothing.
    """
    queries = np.asarray(queries, dtype=float).reshape(-1, 2)
    inside = np.zeros(len(queries), dtype=bool)
    if len(polygon) < 3 or len(queries) == 0:
        return inside

    ring = coordinates_array(polygon)
    qy, qx = queries[:, 0], queries[:, 1]

    j = len(ring) - 1
    for i in range(len(ring)):
        yi, xi = ring[i]
        yj, xj = ring[j]
        straddles = (yi > qy) != (yj > qy)
        if yj != yi:
            x_cross = (xj - xi) * (qy - yi) / (yj - yi) + xi
            inside ^= straddles & (qx < x_cross)
        j = i

    return inside


def point_in_polygon(point: GeoPoint, polygon: Sequence[GeoPoint]) -> bool:
    """Single-point ray-casting test."""
    query = np.array([[point.latitude, point.longitude]])
    return bool(points_in_polygon(query, polygon)[0])


def to_shapely_polygon(polygon: Sequence[GeoPoint]) -> Polygon:
    """Shapely polygon in (lon, lat) axis order."""
    return Polygon([(p.longitude, p.latitude) for p in polygon])


def _local_equal_area(lat: float, lon: float) -> pyproj.Transformer:
    """WGS84 -> Lambert azimuthal equal-area centred on (lat, lon), meters."""
    local = pyproj.CRS.from_proj4(
        f"+proj=laea +lat_0={lat} +lon_0={lon} +datum=WGS84 +units=m +no_defs"
    )
    return pyproj.Transformer.from_crs(WGS84, local, always_xy=True)


def polygon_area_m2(polygon: Sequence[GeoPoint]) -> float:
    """
    Enclosed area in square meters.

    The ring is projected into an equal-area CRS centred on its bounds.
    Self-intersecting rings (a run crossing its own path) are repaired
    with ``make_valid`` first, so figure-eights count both lobes.
    """
    if len(polygon) < 3:
        return 0.0

    shape = to_shapely_polygon(polygon)
    if not shape.is_valid:
        shape = make_valid(shape)
    if shape.is_empty or shape.area == 0.0:
        return 0.0

    min_lon, min_lat, max_lon, max_lat = shape.bounds
    transformer = _local_equal_area((min_lat + max_lat) / 2.0, (min_lon + max_lon) / 2.0)
    return float(transform(transformer.transform, shape).area)


def path_to_polygon(path: Sequence[GeoPoint]) -> List[GeoPoint]:
    """
    Close an open run path into a ring.

    Appends the first point when the ends are more than
    ``CLOSURE_EPSILON_M`` apart. Paths under 3 points are returned as-is.
    """
    polygon = list(path)
    if len(polygon) < 3:
        return polygon
    if haversine_m(polygon[0], polygon[-1]) > CLOSURE_EPSILON_M:
        polygon.append(polygon[0])
    return polygon
