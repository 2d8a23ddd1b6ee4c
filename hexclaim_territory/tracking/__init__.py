"""
Tracking Layer
==============

Bounded Context: Cleaning raw GPS traces.

Responsibilities:
- Drop inaccurate, teleporting and over-speed fixes
- Simplify the surviving path (Douglas-Peucker)
- NO validation policy, NO claims
"""

from hexclaim_territory.tracking.simplify import douglas_peucker
from hexclaim_territory.tracking.processor import PathProcessor, ProcessedTrace, DropReason

__all__ = [
    "douglas_peucker",
    "PathProcessor",
    "ProcessedTrace",
    "DropReason",
]
