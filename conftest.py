"""
Pytest configuration shared by the root-level test modules.

Trace fixtures are built from meter offsets around a fixed center so
expected distances are easy to reason about.
"""

import math

import pytest

from hexclaim_territory.geometry.points import GeoPoint, METERS_PER_DEGREE

CENTER_LAT = 37.7749
CENTER_LON = -122.4194


def offset_point(east_m, north_m, timestamp=None, accuracy_m=None, lat=CENTER_LAT, lon=CENTER_LON):
    """GeoPoint ``east_m`` / ``north_m`` meters away from (lat, lon)."""
    return GeoPoint(
        lat + north_m / METERS_PER_DEGREE,
        lon + east_m / (METERS_PER_DEGREE * math.cos(math.radians(lat))),
        timestamp,
        accuracy_m,
    )


def closing_loop(count=15, spacing_m=20.0, span_s=60.0, accuracy_m=10.0, start=1_700_000_000.0):
    """
    ``count`` fixes evenly spaced on a circle, one step short of closing.

    The gap between the last and first fix is one spacing, so the loop
    closes within ``spacing_m`` meters.
    """
    radius = spacing_m / (2 * math.sin(math.pi / count))
    step_s = span_s / (count - 1)
    return [
        offset_point(
            radius * math.sin(2 * math.pi * i / count),
            radius * math.cos(2 * math.pi * i / count),
            start + i * step_s,
            accuracy_m,
        )
        for i in range(count)
    ]


def straight_line(count=15, spacing_m=20.0, span_s=60.0, accuracy_m=10.0, start=1_700_000_000.0):
    """``count`` fixes heading due east."""
    step_s = span_s / (count - 1)
    return [
        offset_point(i * spacing_m, 0.0, start + i * step_s, accuracy_m)
        for i in range(count)
    ]


@pytest.fixture
def loop_trace():
    """15 fixes, ~20 m apart, over 60 s, 10 m accuracy, closing within 30 m."""
    return closing_loop()


@pytest.fixture
def line_trace():
    """15 fixes, 20 m apart, over 60 s, ending 280 m from the start."""
    return straight_line()


@pytest.fixture
def short_trace():
    """Eleven fixes covering 50 m in total."""
    return straight_line(count=11, spacing_m=5.0, span_s=60.0)
