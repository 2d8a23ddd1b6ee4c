"""
Path Simplification Module
==========================

Douglas-Peucker reduction of GPS paths.

Dense fixes (several per second) otherwise rasterize into jagged
micro-polygons. Distances are measured in meters in a local planar
projection, so the tolerance is meaningful regardless of latitude.

Design:
- Explicit stack instead of recursion (long runs would hit the
  interpreter's recursion limit)
- Keep-mask over the input; first and last points always kept
- Pure function, returns a new list
"""

from typing import List, Sequence

import numpy as np

from hexclaim_territory.geometry.points import GeoPoint, coordinates_array, project_to_meters


def _segment_distances(xy: np.ndarray, start: int, end: int) -> np.ndarray:
    """Distances of xy[start+1:end] to the chord xy[start]-xy[end], clamped."""
    a, b = xy[start], xy[end]
    inner = xy[start + 1:end]
    ab = b - a
    length_sq = float(ab @ ab)
    if length_sq == 0.0:
        return np.linalg.norm(inner - a, axis=1)
    t = np.clip(((inner - a) @ ab) / length_sq, 0.0, 1.0)
    projections = a + t[:, None] * ab
    return np.linalg.norm(inner - projections, axis=1)


def douglas_peucker(points: Sequence[GeoPoint], tolerance_m: float) -> List[GeoPoint]:
    """
    Simplify a path, keeping shape within ``tolerance_m`` meters.

    For each span, the point farthest from the chord between the span's
    endpoints is kept when its distance exceeds the tolerance and both
    halves are processed; otherwise the span collapses to its endpoints.

    Args:
        points: Path vertices in order
        tolerance_m: Maximum allowed deviation in meters. Zero or less
            returns the path unchanged.

    Returns:
        Simplified path; first and last points are the input's own objects
    """
    points = list(points)
    if len(points) <= 2 or tolerance_m <= 0:
        return points

    coords = coordinates_array(points)
    xy = project_to_meters(coords, origin_lat=float(coords[:, 0].mean()))

    keep = np.zeros(len(points), dtype=bool)
    keep[0] = keep[-1] = True

    stack = [(0, len(points) - 1)]
    while stack:
        start, end = stack.pop()
        if end - start < 2:
            continue

        distances = _segment_distances(xy, start, end)
        offset = int(np.argmax(distances))
        if distances[offset] > tolerance_m:
            split = start + 1 + offset
            keep[split] = True
            stack.append((start, split))
            stack.append((split, end))

    return [point for point, kept in zip(points, keep) if kept]
