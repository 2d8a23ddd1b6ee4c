"""
Validation Layer
================

Bounded Context: Run acceptance policy.

Responsibilities:
- Distance, duration, point count and speed thresholds
- Optional loop-closure rule
- Typed verdicts (no exceptions for policy failures)
"""

from hexclaim_territory.validation.validator import (
    RunValidator,
    ValidationResult,
    InvalidReason,
)

__all__ = [
    "RunValidator",
    "ValidationResult",
    "InvalidReason",
]
