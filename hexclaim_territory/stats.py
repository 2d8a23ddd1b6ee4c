"""
Run Statistics Module
=====================

Per-runner totals over completed runs: valid run count, distance and the
ground enclosed by each run loop.

Design:
- Immutable snapshots; add_run() returns a new UserStats
- Only valid runs count, rejected runs leave the totals untouched
- Area is the enclosed area of the simplified loop, independent of who
  owns the covered cells later
"""

from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any, Dict, Iterable

from hexclaim_territory.geometry.polygon import path_to_polygon, polygon_area_m2

if TYPE_CHECKING:
    from hexclaim_territory.engine import Run


def run_area_m2(run: "Run") -> float:
    """Area enclosed by a run's simplified path, closed into a ring."""
    return polygon_area_m2(path_to_polygon(run.simplified_path))


@dataclass(frozen=True)
class UserStats:
    """
    Lifetime totals for one runner.

    Attributes:
        user_id: Runner
        total_runs: Valid runs recorded
        total_distance_m: Summed distance of those runs
        total_area_m2: Summed enclosed loop area
        total_cells_claimed: Cells written by those runs (steals included)
    """

    user_id: str
    total_runs: int = 0
    total_distance_m: float = 0.0
    total_area_m2: float = 0.0
    total_cells_claimed: int = 0

    def __post_init__(self):
        if not self.user_id:
            raise ValueError("user_id must be non-empty")
        for name in ('total_runs', 'total_distance_m', 'total_area_m2', 'total_cells_claimed'):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0, got {getattr(self, name)}")

    @property
    def total_distance_km(self) -> float:
        return self.total_distance_m / 1000.0

    @property
    def total_area_km2(self) -> float:
        return self.total_area_m2 / 1_000_000.0

    def add_run(self, run: "Run") -> "UserStats":
        """
        Totals including ``run``.

        Raises:
            ValueError: If the run belongs to another runner
        """
        if run.user_id != self.user_id:
            raise ValueError(
                f"Run {run.id} belongs to {run.user_id!r}, not {self.user_id!r}"
            )
        if not run.is_valid:
            return self
        return replace(
            self,
            total_runs=self.total_runs + 1,
            total_distance_m=self.total_distance_m + run.distance_m,
            total_area_m2=self.total_area_m2 + run_area_m2(run),
            total_cells_claimed=self.total_cells_claimed + len(run.claimed_cell_ids),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        return {
            'user_id': self.user_id,
            'total_runs': self.total_runs,
            'total_distance_m': self.total_distance_m,
            'total_distance_km': self.total_distance_km,
            'total_area_m2': self.total_area_m2,
            'total_area_km2': self.total_area_km2,
            'total_cells_claimed': self.total_cells_claimed,
        }


def summarize_runs(runs: Iterable["Run"]) -> Dict[str, UserStats]:
    """Per-runner totals; runners with only rejected runs get zero totals."""
    stats: Dict[str, UserStats] = {}
    for run in runs:
        current = stats.get(run.user_id) or UserStats(run.user_id)
        stats[run.user_id] = current.add_run(run)
    return stats
