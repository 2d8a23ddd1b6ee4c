"""
Geographic Points Module
========================

Immutable GPS fixes and great-circle distance helpers.

Design:
- GeoPoint is a frozen dataclass (value object, hashable)
- Distances vectorised with numpy over whole traces
- Planar projections are local equirectangular (valid at run scale)
"""

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Sequence, Tuple

import numpy as np

EARTH_RADIUS_M = 6371000.0
METERS_PER_DEGREE = 111320.0


@dataclass(frozen=True)
class GeoPoint:
    """
    Immutable geographic fix.

    Attributes:
        latitude: Degrees north
        longitude: Degrees east
        timestamp: POSIX seconds (None when the source has no clock)
        accuracy_m: Reported horizontal accuracy in meters (None if unknown)
    """

    latitude: float
    longitude: float
    timestamp: Optional[float] = None
    accuracy_m: Optional[float] = None

    @property
    def is_finite(self) -> bool:
        return math.isfinite(self.latitude) and math.isfinite(self.longitude)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        data: Dict[str, Any] = {'lat': self.latitude, 'lng': self.longitude}
        if self.timestamp is not None:
            data['timestamp'] = self.timestamp
        if self.accuracy_m is not None:
            data['accuracy'] = self.accuracy_m
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'GeoPoint':
        """
        Deserialize from dict.

        Accepts ``lat``/``latitude``, ``lng``/``lon``/``longitude``,
        ``timestamp`` (number or ISO 8601 string) and
        ``accuracy``/``horizontal_accuracy``.

        Raises:
            ValueError: If coordinates are missing or not numeric
        """
        lat = _first_present(data, ('lat', 'latitude'))
        lon = _first_present(data, ('lng', 'lon', 'longitude'))
        if lat is None or lon is None:
            raise ValueError(f"GeoPoint requires latitude and longitude, got keys {sorted(data)}")

        accuracy = _first_present(data, ('accuracy', 'horizontal_accuracy', 'accuracy_m'))
        try:
            return cls(
                latitude=float(lat),
                longitude=float(lon),
                timestamp=_parse_timestamp(data.get('timestamp')),
                accuracy_m=float(accuracy) if accuracy is not None else None,
            )
        except (TypeError, ValueError) as e:
            raise ValueError(f"Invalid GeoPoint data: {e}") from e

    @classmethod
    def from_tuple(cls, record: Sequence[Any]) -> 'GeoPoint':
        """Build from a ``(lat, lon[, timestamp[, accuracy]])`` record."""
        if len(record) < 2:
            raise ValueError(f"GeoPoint record needs at least (lat, lon), got {record!r}")
        padded = list(record) + [None] * (4 - len(record))
        lat, lon, timestamp, accuracy = padded[:4]
        return cls(
            latitude=float(lat),
            longitude=float(lon),
            timestamp=_parse_timestamp(timestamp),
            accuracy_m=float(accuracy) if accuracy is not None else None,
        )


def _first_present(data: Dict[str, Any], keys: Tuple[str, ...]) -> Any:
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return None


def _parse_timestamp(value: Any) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if isinstance(value, datetime):
        # Naive times are UTC, never host-local
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.timestamp()
    return float(value)


def haversine_m(a: GeoPoint, b: GeoPoint) -> float:
    """Great-circle distance between two points in meters."""
    lat1, lat2 = math.radians(a.latitude), math.radians(b.latitude)
    dlat = lat2 - lat1
    dlon = math.radians(b.longitude - a.longitude)
    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(h)))


def coordinates_array(points: Sequence[GeoPoint]) -> np.ndarray:
    """Nx2 array of (lat, lon)."""
    if not points:
        return np.empty((0, 2), dtype=float)
    return np.array([(p.latitude, p.longitude) for p in points], dtype=float)


def segment_distances_m(points: Sequence[GeoPoint]) -> np.ndarray:
    """
    Great-circle length of each consecutive segment.

    Returns:
        Array of shape (N-1,), empty for fewer than two points
    """
    if len(points) < 2:
        return np.array([], dtype=float)

    coords = np.radians(coordinates_array(points))
    lat1, lat2 = coords[:-1, 0], coords[1:, 0]
    dlat = lat2 - lat1
    dlon = coords[1:, 1] - coords[:-1, 1]
    h = np.sin(dlat / 2) ** 2 + np.cos(lat1) * np.cos(lat2) * np.sin(dlon / 2) ** 2
    return 2 * EARTH_RADIUS_M * np.arcsin(np.minimum(1.0, np.sqrt(h)))


def path_distance_m(points: Sequence[GeoPoint]) -> float:
    """Total great-circle length of a path in meters."""
    return float(segment_distances_m(points).sum())


def segment_speeds_mps(points: Sequence[GeoPoint]) -> np.ndarray:
    """
    Implied speed of each consecutive segment.

    Segments with a missing timestamp or non-positive elapsed time
    yield NaN (speed undefined).
    """
    if len(points) < 2:
        return np.array([], dtype=float)

    distances = segment_distances_m(points)
    times = np.array(
        [np.nan if p.timestamp is None else p.timestamp for p in points],
        dtype=float,
    )
    elapsed = np.diff(times)
    speeds = np.full(len(distances), np.nan)
    moving = elapsed > 0
    speeds[moving] = distances[moving] / elapsed[moving]
    return speeds


def duration_s(points: Sequence[GeoPoint]) -> float:
    """Elapsed seconds between first and last timestamped point."""
    stamps = [p.timestamp for p in points if p.timestamp is not None]
    if len(stamps) < 2:
        return 0.0
    return float(stamps[-1] - stamps[0])


def project_to_meters(coords: np.ndarray, origin_lat: float) -> np.ndarray:
    """
    Project (lat, lon) degrees to local planar (x, y) meters.

    Equirectangular around ``origin_lat``; x is east, y is north.
    """
    scale_x = METERS_PER_DEGREE * math.cos(math.radians(origin_lat))
    return np.column_stack((coords[:, 1] * scale_x, coords[:, 0] * METERS_PER_DEGREE))


def point_to_segment_distance_m(point: GeoPoint, start: GeoPoint, end: GeoPoint) -> float:
    """
    Distance in meters from ``point`` to the segment ``start``-``end``.

    The projection parameter is clamped to the segment, so points beyond
    either end measure to the nearest endpoint.
    """
    coords = coordinates_array([point, start, end])
    p, a, b = project_to_meters(coords, origin_lat=start.latitude)
    ab = b - a
    length_sq = float(ab @ ab)
    if length_sq == 0.0:
        return haversine_m(point, start)
    t = min(1.0, max(0.0, float((p - a) @ ab) / length_sq))
    return float(np.linalg.norm(p - (a + t * ab)))
