"""
Geometry Layer
==============

Bounded Context: Coordinates, distances, polygons and the hex grid.

Responsibilities:
- GPS fix representation (immutable)
- Great-circle distances and planar projections
- Point-in-polygon tests and polygon area
- Coordinate <-> cell mapping, rasterization, adjacency
- NO state, NO claims, NO logging
"""

from hexclaim_territory.geometry.points import (
    GeoPoint,
    haversine_m,
    path_distance_m,
    segment_distances_m,
    segment_speeds_mps,
    duration_s,
    point_to_segment_distance_m,
)
from hexclaim_territory.geometry.polygon import (
    BoundingBox,
    bounding_box,
    point_in_polygon,
    points_in_polygon,
    polygon_area_m2,
    path_to_polygon,
    to_shapely_polygon,
)
from hexclaim_territory.geometry.hexgrid import (
    CellId,
    CellIdError,
    HexGrid,
    DEFAULT_RESOLUTION,
    parse_cell_ids,
)

__all__ = [
    "GeoPoint",
    "haversine_m",
    "path_distance_m",
    "segment_distances_m",
    "segment_speeds_mps",
    "duration_s",
    "point_to_segment_distance_m",
    "BoundingBox",
    "bounding_box",
    "point_in_polygon",
    "points_in_polygon",
    "polygon_area_m2",
    "path_to_polygon",
    "to_shapely_polygon",
    "CellId",
    "CellIdError",
    "HexGrid",
    "DEFAULT_RESOLUTION",
    "parse_cell_ids",
]
