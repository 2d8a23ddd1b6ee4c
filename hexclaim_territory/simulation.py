"""
Synthetic run traces for demos and tests.

Patterns mimic common running routes: a loop around a block, an
out-and-back, a square, a circle and a zigzag. Shapes are laid out in
meters around a center point, then timestamped at a constant pace.
"""

import math
from typing import Callable, Dict, List, Optional

import numpy as np

from hexclaim_territory.geometry.points import GeoPoint, METERS_PER_DEGREE

DEFAULT_START_TIME = 1_700_000_000.0


def _loop(size_m: float, count: int, rng: np.random.Generator) -> np.ndarray:
    angles = np.linspace(0.0, 2 * np.pi, count + 1)
    radii = size_m * (1 + rng.uniform(-0.1, 0.1, size=count + 1))
    radii[-1] = radii[0]
    return np.column_stack((radii * np.sin(angles), radii * np.cos(angles)))


def _circle(size_m: float, count: int, rng: np.random.Generator) -> np.ndarray:
    angles = np.linspace(0.0, 2 * np.pi, count + 1)
    return np.column_stack((size_m * np.sin(angles), size_m * np.cos(angles)))


def _out_and_back(size_m: float, count: int, rng: np.random.Generator) -> np.ndarray:
    half = max(count // 2, 1)
    heading = rng.uniform(0.0, 2 * np.pi)
    progress = np.concatenate((np.linspace(0, 1, half + 1), np.linspace(1, 0, half + 1)[1:]))
    # Return leg runs on the other side of the road
    side = np.concatenate((np.full(half + 1, 5.0), np.full(half, -5.0)))
    along = progress * size_m * 2
    x = along * math.cos(heading) - side * math.sin(heading)
    y = along * math.sin(heading) + side * math.cos(heading)
    return np.column_stack((x, y))


def _square(size_m: float, count: int, rng: np.random.Generator) -> np.ndarray:
    per_side = max(count // 4, 1)
    corners = np.array([[-1, -1], [1, -1], [1, 1], [-1, 1], [-1, -1]], dtype=float) * size_m
    legs = [
        np.linspace(corners[i], corners[i + 1], per_side, endpoint=False)
        for i in range(4)
    ]
    return np.vstack(legs + [corners[-1:]])


def _zigzag(size_m: float, count: int, rng: np.random.Generator) -> np.ndarray:
    t = np.linspace(0.0, 1.0, count + 1)
    x = (t - 0.5) * size_m * 4
    y = size_m * np.abs(((t * 8) % 2) - 1) - size_m / 2
    return np.column_stack((x, y))


PATTERNS: Dict[str, Callable[[float, int, np.random.Generator], np.ndarray]] = {
    "loop": _loop,
    "out_and_back": _out_and_back,
    "square": _square,
    "circle": _circle,
    "zigzag": _zigzag,
}


def offsets_to_points(
    center: GeoPoint,
    offsets_m: np.ndarray,
    pace_mps: float,
    start_time: float,
    accuracy_m: float,
) -> List[GeoPoint]:
    """Place (east, north) meter offsets around ``center`` and timestamp them."""
    lat = center.latitude + offsets_m[:, 1] / METERS_PER_DEGREE
    lon = center.longitude + offsets_m[:, 0] / (
        METERS_PER_DEGREE * math.cos(math.radians(center.latitude))
    )
    steps = np.linalg.norm(np.diff(offsets_m, axis=0), axis=1)
    elapsed = np.concatenate(([0.0], np.cumsum(steps) / pace_mps))

    return [
        GeoPoint(float(la), float(lo), start_time + float(t), accuracy_m)
        for la, lo, t in zip(lat, lon, elapsed)
    ]


def generate_trace(
    center: GeoPoint,
    pattern: str = "loop",
    size_m: float = 200.0,
    point_count: int = 40,
    pace_mps: float = 3.0,
    start_time: float = DEFAULT_START_TIME,
    accuracy_m: float = 8.0,
    jitter_m: float = 0.0,
    seed: Optional[int] = None,
) -> List[GeoPoint]:
    """
    Build a synthetic run trace.

    Args:
        center: Route center
        pattern: One of ``PATTERNS``
        size_m: Characteristic size (radius / half side / leg length)
        point_count: Approximate number of fixes
        pace_mps: Constant running speed used for timestamps
        start_time: POSIX seconds of the first fix
        accuracy_m: Reported horizontal accuracy of every fix
        jitter_m: Gaussian position noise (std dev, meters)
        seed: Seed for reproducible shapes

    Raises:
        ValueError: On an unknown pattern or non-positive sizes
    """
    if pattern not in PATTERNS:
        raise ValueError(f"Unknown pattern: {pattern}. Must be one of {sorted(PATTERNS)}")
    if size_m <= 0 or pace_mps <= 0 or point_count < 2:
        raise ValueError("size_m and pace_mps must be > 0 and point_count >= 2")

    rng = np.random.default_rng(seed)
    offsets = PATTERNS[pattern](size_m, point_count, rng)
    if jitter_m > 0:
        offsets = offsets + rng.normal(0.0, jitter_m, size=offsets.shape)
    return offsets_to_points(center, offsets, pace_mps, start_time, accuracy_m)


def inject_glitches(
    trace: List[GeoPoint],
    teleports: int = 1,
    poor_fixes: int = 1,
    teleport_m: float = 1000.0,
    poor_accuracy_m: float = 120.0,
    seed: Optional[int] = None,
) -> List[GeoPoint]:
    """
    Insert GPS glitches between existing fixes.

    Teleports jump ``teleport_m`` north one second after the preceding fix;
    poor fixes repeat a neighbour's position with a large accuracy value.
    """
    if len(trace) < 3:
        return list(trace)

    rng = np.random.default_rng(seed)
    glitched = list(trace)
    kinds = ["teleport"] * teleports + ["poor"] * poor_fixes
    for kind in kinds:
        index = int(rng.integers(1, len(glitched) - 1))
        before = glitched[index - 1]
        timestamp = before.timestamp + 1.0 if before.timestamp is not None else None
        if kind == "teleport":
            glitch = GeoPoint(
                before.latitude + teleport_m / METERS_PER_DEGREE,
                before.longitude,
                timestamp,
                before.accuracy_m,
            )
        else:
            glitch = GeoPoint(before.latitude, before.longitude, timestamp, poor_accuracy_m)
        glitched.insert(index, glitch)
    return glitched
