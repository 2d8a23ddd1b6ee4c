"""
Run Validator Module
====================

Accept/reject policy over a processed trace.

Design:
- Rejections are expected outcomes, returned as a typed result,
  never raised
- Check order is fixed: distance, duration, points, speed, loop closure
- Deterministic given the same trace and configuration
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Sequence

import numpy as np

from hexclaim_territory.config import ValidationConfig
from hexclaim_territory.geometry.points import (
    GeoPoint,
    duration_s as trace_duration_s,
    haversine_m,
    path_distance_m,
    segment_speeds_mps,
)


class InvalidReason(str, Enum):
    """Why a run cannot claim territory."""
    TOO_SHORT_DISTANCE = "too-short-distance"
    TOO_SHORT_DURATION = "too-short-duration"
    TOO_FEW_POINTS = "too-few-points"
    SPEED_ANOMALY = "speed-anomaly"
    NOT_A_LOOP = "not-a-loop"

    @property
    def message(self) -> str:
        return _REASON_MESSAGES[self]


_REASON_MESSAGES = {
    InvalidReason.TOO_SHORT_DISTANCE: "Run distance too short",
    InvalidReason.TOO_SHORT_DURATION: "Run duration too short",
    InvalidReason.TOO_FEW_POINTS: "Not enough GPS data points",
    InvalidReason.SPEED_ANOMALY: "Unrealistic speed detected",
    InvalidReason.NOT_A_LOOP: "Run did not form a closed loop",
}


@dataclass(frozen=True)
class ValidationResult:
    """
    Tagged verdict: valid, or invalid with a reason.

    Example:
        >>> result = validator.validate(trace)
        >>> if not result.is_valid:
        ...     print(result.reason.message)
    """

    is_valid: bool
    reason: Optional[InvalidReason] = None

    def __post_init__(self):
        if self.is_valid and self.reason is not None:
            raise ValueError("A valid result cannot carry a reason")
        if not self.is_valid and self.reason is None:
            raise ValueError("An invalid result requires a reason")

    @classmethod
    def valid(cls) -> 'ValidationResult':
        return cls(is_valid=True)

    @classmethod
    def invalid(cls, reason: InvalidReason) -> 'ValidationResult':
        return cls(is_valid=False, reason=reason)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        return {
            'valid': self.is_valid,
            'reason': self.reason.value if self.reason else None,
            'message': self.reason.message if self.reason else None,
        }


class RunValidator:
    """
    Applies the configured policy to a filtered trace.

    Usage:
        validator = RunValidator(ValidationConfig(require_loop_closure=True))
        result = validator.validate(processed.filtered)
    """

    def __init__(self, config: Optional[ValidationConfig] = None):
        self.config = config or ValidationConfig()

    def validate(
        self,
        trace: Sequence[GeoPoint],
        distance_m: Optional[float] = None,
        duration_s: Optional[float] = None,
    ) -> ValidationResult:
        """
        Judge a filtered trace.

        Args:
            trace: Filtered fixes in chronological order
            distance_m: Run distance; defaults to the trace's path length
            duration_s: Run duration; defaults to the trace's time span
                (a session clock may be passed instead)

        Returns:
            ValidationResult
        """
        trace = list(trace)
        config = self.config

        if distance_m is None:
            distance_m = path_distance_m(trace)
        if distance_m < config.min_distance_m:
            return ValidationResult.invalid(InvalidReason.TOO_SHORT_DISTANCE)

        if duration_s is None:
            duration_s = trace_duration_s(trace)
        if duration_s < config.min_duration_s:
            return ValidationResult.invalid(InvalidReason.TOO_SHORT_DURATION)

        if len(trace) < config.min_points:
            return ValidationResult.invalid(InvalidReason.TOO_FEW_POINTS)

        if self.max_segment_speed(trace) > config.speed_ceiling_mps:
            return ValidationResult.invalid(InvalidReason.SPEED_ANOMALY)

        if config.require_loop_closure and not self.is_closed_loop(trace):
            return ValidationResult.invalid(InvalidReason.NOT_A_LOOP)

        return ValidationResult.valid()

    @staticmethod
    def max_segment_speed(trace: Sequence[GeoPoint]) -> float:
        """Highest implied speed between consecutive fixes (0 if undefined)."""
        speeds = segment_speeds_mps(trace)
        if speeds.size == 0 or np.all(np.isnan(speeds)):
            return 0.0
        return float(np.nanmax(speeds))

    def is_closed_loop(self, trace: Sequence[GeoPoint]) -> bool:
        """End point within the closure threshold of the start point."""
        if len(trace) < 2:
            return False
        return haversine_m(trace[0], trace[-1]) <= self.config.loop_closure_threshold_m
