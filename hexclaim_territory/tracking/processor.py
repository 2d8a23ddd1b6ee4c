"""
Path Processor Module
=====================

Turns a raw, noisy GPS trace into a clean geometric shape.

Stages:
1. Non-finite filter (NaN/inf coordinates)
2. Accuracy filter (coarse fixes above the ceiling)
3. Teleport/speed filter against the last kept fix
4. Douglas-Peucker simplification

Design:
- Stateless transform: same input + config, same output
- Drops are counted per reason for diagnostics
- Validation is NOT done here (see RunValidator)
"""

from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from hexclaim_territory.config import PathConfig
from hexclaim_territory.geometry.points import GeoPoint, haversine_m, path_distance_m
from hexclaim_territory.logging import LogEvent, StructuredLogger
from hexclaim_territory.tracking.simplify import douglas_peucker


class DropReason(str, Enum):
    """Why a fix was removed from the trace."""
    NON_FINITE = "non-finite"
    POOR_ACCURACY = "poor-accuracy"
    TELEPORT = "teleport"
    SPEED = "speed"


@dataclass(frozen=True)
class ProcessedTrace:
    """
    Immutable result of processing one trace.

    Attributes:
        raw_count: Number of input fixes
        filtered: Fixes that survived filtering, in order
        simplified: Douglas-Peucker reduction of ``filtered``
        dropped: Count of removed fixes per reason
    """

    raw_count: int
    filtered: Tuple[GeoPoint, ...]
    simplified: Tuple[GeoPoint, ...]
    dropped: Dict[DropReason, int] = field(default_factory=dict)

    @property
    def distance_m(self) -> float:
        """Great-circle length of the filtered trace."""
        return path_distance_m(self.filtered)

    @property
    def dropped_count(self) -> int:
        return sum(self.dropped.values())

    @property
    def is_empty(self) -> bool:
        return not self.filtered


class PathProcessor:
    """
    Filters and simplifies GPS traces.

    Usage:
        processor = PathProcessor(PathConfig(simplification_tolerance_m=10))
        processed = processor.process(raw_points)
        processed.filtered     # cleaned fixes (for validation)
        processed.simplified   # reduced shape (for rasterization)
    """

    def __init__(
        self,
        config: Optional[PathConfig] = None,
        logger: Optional[StructuredLogger] = None,
    ):
        self.config = config or PathConfig()
        self.logger = logger

    def _rejection(self, previous: GeoPoint, point: GeoPoint) -> Optional[DropReason]:
        """Teleport/speed check of ``point`` against the last kept fix."""
        distance = haversine_m(previous, point)
        if previous.timestamp is None or point.timestamp is None:
            # No clock: only an outright jump can be judged
            if distance > self.config.max_teleport_m:
                return DropReason.TELEPORT
            return None

        elapsed = point.timestamp - previous.timestamp
        if distance > self.config.max_teleport_m and elapsed < self.config.teleport_min_gap_s:
            return DropReason.TELEPORT
        if elapsed > 0 and distance / elapsed > self.config.max_speed_mps:
            return DropReason.SPEED
        return None

    def filter(self, trace: Sequence[GeoPoint]) -> Tuple[List[GeoPoint], Dict[DropReason, int]]:
        """
        Remove anomalous fixes.

        Returns:
            Tuple of (kept fixes, drop counts per reason)
        """
        kept: List[GeoPoint] = []
        dropped: Counter = Counter()

        for point in trace:
            if not point.is_finite:
                dropped[DropReason.NON_FINITE] += 1
                continue
            if point.accuracy_m is not None and point.accuracy_m > self.config.max_accuracy_m:
                dropped[DropReason.POOR_ACCURACY] += 1
                continue
            if kept:
                reason = self._rejection(kept[-1], point)
                if reason is not None:
                    dropped[reason] += 1
                    continue
            kept.append(point)

        return kept, dict(dropped)

    def simplify(self, trace: Sequence[GeoPoint]) -> List[GeoPoint]:
        """Douglas-Peucker with the configured tolerance."""
        return douglas_peucker(trace, self.config.simplification_tolerance_m)

    def process(self, trace: Sequence[GeoPoint]) -> ProcessedTrace:
        """
        Filter then simplify a raw trace.

        Args:
            trace: Chronological raw fixes

        Returns:
            ProcessedTrace with both the filtered and simplified shapes
        """
        trace = list(trace)
        filtered, dropped = self.filter(trace)
        simplified = self.simplify(filtered)

        if self.logger is not None:
            self.logger.info(
                event=LogEvent.TRACE_FILTERED,
                message=f"Kept {len(filtered)} of {len(trace)} fixes",
                metadata={
                    'raw_count': len(trace),
                    'kept_count': len(filtered),
                    'dropped': {reason.value: count for reason, count in dropped.items()},
                },
            )
            self.logger.debug(
                event=LogEvent.TRACE_SIMPLIFIED,
                message=f"Simplified path from {len(filtered)} to {len(simplified)} points",
                metadata={'tolerance_m': self.config.simplification_tolerance_m},
            )

        return ProcessedTrace(
            raw_count=len(trace),
            filtered=tuple(filtered),
            simplified=tuple(simplified),
            dropped=dropped,
        )
