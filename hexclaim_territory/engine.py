"""
Territory Engine Module
=======================

Bounded Context: Orchestration of the claim flow.

Flow:
    raw trace -> PathProcessor -> RunValidator -> (valid) HexGrid.polygon_to_cells
              -> TerritoryStore.set_batch
    ledger snapshot -> TerritoryGrouper (on read, independent of claiming)

Design:
- All services injected (no process-wide singletons)
- process_run() is pure: it never touches the store
- claim() overwrites whatever owned the cells before (last valid run wins)
- Store errors are logged and re-raised untouched, never retried
- Runner stats (UserStats) advance only after a claim batch is stored
- Callers serialize runs; the store makes each batch visible atomically
"""

import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from hexclaim_territory.config import EngineConfig
from hexclaim_territory.geometry.hexgrid import CellId, HexGrid
from hexclaim_territory.geometry.points import GeoPoint, duration_s as trace_duration_s
from hexclaim_territory.geometry.polygon import path_to_polygon
from hexclaim_territory.ledger.grouper import Region, TerritoryGrouper
from hexclaim_territory.ledger.store import Claim, InMemoryTerritoryStore, StoreError, TerritoryStore
from hexclaim_territory.logging import LogEvent, StructuredLogger, create_logger
from hexclaim_territory.stats import UserStats
from hexclaim_territory.tracking.processor import PathProcessor, ProcessedTrace
from hexclaim_territory.validation.validator import InvalidReason, RunValidator, ValidationResult


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Run:
    """
    One completed tracking session. Immutable after creation.

    Attributes:
        id: Run identifier
        user_id: Runner
        trace: Filtered fixes
        simplified_path: Douglas-Peucker reduction used for rasterization
        distance_m: Length of the filtered trace
        duration_s: Session clock (or trace span when no clock was given)
        validation: Verdict
        claimed_cell_ids: Cells covered by the run (empty when invalid)
        started_at: Session start (UTC)
        ended_at: Session end (UTC)
        raw_point_count: Fixes received before filtering
    """

    id: str
    user_id: str
    trace: Tuple[GeoPoint, ...]
    simplified_path: Tuple[GeoPoint, ...]
    distance_m: float
    duration_s: float
    validation: ValidationResult
    claimed_cell_ids: Tuple[CellId, ...]
    started_at: datetime
    ended_at: datetime
    raw_point_count: int = 0

    @property
    def is_valid(self) -> bool:
        return self.validation.is_valid

    @property
    def invalid_reason(self) -> Optional[InvalidReason]:
        return self.validation.reason

    @property
    def distance_km(self) -> float:
        return self.distance_m / 1000.0

    @property
    def formatted_duration(self) -> str:
        """``MM:SS``, or ``H:MM:SS`` from one hour up."""
        total = int(self.duration_s)
        hours, remainder = divmod(total, 3600)
        minutes, seconds = divmod(remainder, 60)
        if hours > 0:
            return f"{hours}:{minutes:02d}:{seconds:02d}"
        return f"{minutes:02d}:{seconds:02d}"

    @property
    def average_pace_per_km(self) -> str:
        """``M:SS /km``, or ``--:--`` without distance."""
        if self.distance_m <= 0:
            return "--:--"
        pace = int(self.duration_s / self.distance_km)
        return f"{pace // 60}:{pace % 60:02d} /km"

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        return {
            'id': self.id,
            'user_id': self.user_id,
            'started_at': self.started_at.isoformat(),
            'ended_at': self.ended_at.isoformat(),
            'distance_m': self.distance_m,
            'duration_s': self.duration_s,
            'formatted_duration': self.formatted_duration,
            'average_pace_per_km': self.average_pace_per_km,
            'raw_point_count': self.raw_point_count,
            'point_count': len(self.trace),
            'simplified_point_count': len(self.simplified_path),
            'validation': self.validation.to_dict(),
            'claimed_cell_ids': [str(cell) for cell in self.claimed_cell_ids],
        }


class TerritoryEngine:
    """
    Runs the claim flow over injected services.

    Usage:
        engine = TerritoryEngine(EngineConfig(), store=InMemoryTerritoryStore())
        run = engine.submit_run(user_id="u-1", trace=points)
        regions = engine.regions()
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        store: Optional[TerritoryStore] = None,
        grid: Optional[HexGrid] = None,
        processor: Optional[PathProcessor] = None,
        validator: Optional[RunValidator] = None,
        grouper: Optional[TerritoryGrouper] = None,
        logger: Optional[StructuredLogger] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.config = config or EngineConfig()
        self.logger = logger or create_logger("engine")
        self.store = store if store is not None else InMemoryTerritoryStore()
        self.grid = grid or HexGrid(self.config.grid.resolution)
        self.processor = processor or PathProcessor(self.config.path, logger=self.logger)
        self.validator = validator or RunValidator(self.config.validation)
        self.grouper = grouper or TerritoryGrouper(
            self.grid, boundary_mode=self.config.grouping.boundary_mode, logger=self.logger
        )
        self.clock = clock
        self._stats: Dict[str, UserStats] = {}

    def rasterize(self, path: Sequence[GeoPoint]) -> List[CellId]:
        """Cells covered by a run path, closed into a ring, sorted."""
        polygon = path_to_polygon(path)
        cells = sorted(self.grid.polygon_to_cells(polygon))
        self.logger.debug(
            event=LogEvent.TERRITORY_RASTERIZED,
            message=f"Rasterized {len(polygon)}-vertex polygon",
            metadata={'cell_count': len(cells), 'resolution': self.grid.resolution},
        )
        return cells

    def process_run(
        self,
        user_id: str,
        trace: Iterable[GeoPoint],
        run_id: Optional[str] = None,
        started_at: Optional[datetime] = None,
        ended_at: Optional[datetime] = None,
    ) -> Run:
        """
        Filter, validate and rasterize a trace without claiming anything.

        Args:
            user_id: Runner
            trace: Raw fixes in chronological order
            run_id: Identifier (generated when omitted)
            started_at: Session start; with ``ended_at`` sets the duration
            ended_at: Session end

        Returns:
            Immutable Run; ``claimed_cell_ids`` is empty when invalid
        """
        run_id = run_id or str(uuid.uuid4())
        processed: ProcessedTrace = self.processor.process(list(trace))

        if started_at is not None and ended_at is not None:
            duration = max(0.0, (ended_at - started_at).total_seconds())
        else:
            duration = trace_duration_s(processed.filtered)

        distance = processed.distance_m
        verdict = self.validator.validate(processed.filtered, distance_m=distance, duration_s=duration)

        cells: List[CellId] = []
        metadata = {
            'run_id': run_id,
            'user_id': user_id,
            'distance_m': round(distance, 1),
            'duration_s': round(duration, 1),
            'point_count': len(processed.filtered),
        }
        if verdict.is_valid:
            cells = self.rasterize(processed.simplified)
            self.logger.info(
                event=LogEvent.RUN_VALIDATED,
                message=f"Run accepted covering {len(cells)} cells",
                metadata={**metadata, 'cell_count': len(cells)},
            )
        else:
            self.logger.info(
                event=LogEvent.RUN_REJECTED,
                message=verdict.reason.message,
                metadata={**metadata, 'reason': verdict.reason.value},
            )

        ended = ended_at or self.clock()
        started = started_at or _start_from_trace(processed.filtered, ended, duration)
        return Run(
            id=run_id,
            user_id=user_id,
            trace=processed.filtered,
            simplified_path=processed.simplified,
            distance_m=distance,
            duration_s=duration,
            validation=verdict,
            claimed_cell_ids=tuple(cells),
            started_at=started,
            ended_at=ended,
            raw_point_count=processed.raw_count,
        )

    def build_claims(
        self,
        run: Run,
        owner_name: Optional[str] = None,
        claimed_at: Optional[datetime] = None,
    ) -> List[Claim]:
        """One claim per covered cell, owned by the run's user."""
        if not run.is_valid:
            return []
        claimed_at = claimed_at or self.clock()
        return [
            Claim(
                cell_id=cell,
                owner_id=run.user_id,
                source_run_id=run.id,
                claimed_at=claimed_at,
                source_distance_m=run.distance_m,
                owner_name=owner_name,
            )
            for cell in run.claimed_cell_ids
        ]

    def claim(self, run: Run, owner_name: Optional[str] = None) -> List[Claim]:
        """
        Write a valid run's claims to the store in one batch.

        Previous owners are overwritten without any check.

        Raises:
            StoreError: Propagated from the store as-is
        """
        claims = self.build_claims(run, owner_name=owner_name)
        if not claims:
            return []

        try:
            self.store.set_batch(claims)
        except StoreError as e:
            self.logger.error(
                event=LogEvent.STORE_ERROR,
                message="Failed to write claim batch",
                metadata={'run_id': run.id, 'cell_count': len(claims)},
                exc_info=e,
            )
            raise

        self.logger.info(
            event=LogEvent.TERRITORY_CLAIMED,
            message=f"Claimed {len(claims)} cells",
            metadata={'run_id': run.id, 'owner_id': run.user_id, 'cell_count': len(claims)},
        )
        return claims

    def submit_run(
        self,
        user_id: str,
        trace: Iterable[GeoPoint],
        run_id: Optional[str] = None,
        started_at: Optional[datetime] = None,
        ended_at: Optional[datetime] = None,
        owner_name: Optional[str] = None,
    ) -> Run:
        """
        process_run() followed by claim() when the run is valid.

        The runner's stats are updated only after the claim batch is stored.
        """
        run = self.process_run(
            user_id, trace, run_id=run_id, started_at=started_at, ended_at=ended_at
        )
        self.claim(run, owner_name=owner_name)
        self._stats[user_id] = self.user_stats(user_id).add_run(run)
        return run

    def regions(self, claims: Optional[Iterable[Claim]] = None) -> List[Region]:
        """
        Group a ledger snapshot into regions.

        Args:
            claims: Claims to group; defaults to the store's ``snapshot()``

        Raises:
            TypeError: If no claims are given and the store has no snapshot()
        """
        if claims is None:
            snapshot = getattr(self.store, "snapshot", None)
            if snapshot is None:
                raise TypeError(
                    f"{type(self.store).__name__} has no snapshot(); pass claims explicitly"
                )
            claims = snapshot()
        return self.grouper.group(claims)

    def user_stats(self, user_id: str) -> UserStats:
        """Totals of runs submitted through this engine (zero when none)."""
        return self._stats.get(user_id) or UserStats(user_id)


def _start_from_trace(trace: Sequence[GeoPoint], ended: datetime, duration: float) -> datetime:
    if trace and trace[0].timestamp is not None:
        return datetime.fromtimestamp(trace[0].timestamp, tz=timezone.utc)
    return datetime.fromtimestamp(ended.timestamp() - duration, tz=timezone.utc)


class EngineBuilder:
    """
    Fluent builder for TerritoryEngine.

    Usage:
        engine = (
            EngineBuilder()
            .with_config_file("config/engine.yaml")
            .with_resolution(10)
            .require_loop_closure(True)
            .with_store(my_store)
            .build()
        )
    """

    def __init__(self):
        self._config: EngineConfig = EngineConfig()
        self._store: Optional[TerritoryStore] = None
        self._logger: Optional[StructuredLogger] = None
        self._clock: Callable[[], datetime] = utc_now
        self._config_source: Optional[str] = None

    def with_config(self, config: EngineConfig) -> "EngineBuilder":
        self._config = config
        return self

    def with_config_file(self, yaml_path: "str | Path") -> "EngineBuilder":
        """Load configuration from YAML."""
        self._config = EngineConfig.from_yaml(Path(yaml_path))
        self._config_source = str(yaml_path)
        return self

    def with_resolution(self, resolution: int) -> "EngineBuilder":
        self._config = self._config.with_resolution(resolution)
        return self

    def require_loop_closure(self, required: bool = True) -> "EngineBuilder":
        """Toggle the loop-closure rule (explicit product policy)."""
        validation = replace(self._config.validation, require_loop_closure=required)
        self._config = replace(self._config, validation=validation)
        return self

    def with_store(self, store: TerritoryStore) -> "EngineBuilder":
        self._store = store
        return self

    def with_logger(self, logger: StructuredLogger) -> "EngineBuilder":
        self._logger = logger
        return self

    def with_clock(self, clock: Callable[[], datetime]) -> "EngineBuilder":
        """Inject the time source used for claims and run end times."""
        self._clock = clock
        return self

    def build(self) -> TerritoryEngine:
        logger = self._logger or create_logger("engine")
        if self._config_source is not None:
            logger.info(
                event=LogEvent.CONFIG_LOADED,
                message=f"Loaded config from {self._config_source}",
                metadata={
                    'resolution': self._config.grid.resolution,
                    'require_loop_closure': self._config.validation.require_loop_closure,
                    'boundary_mode': self._config.grouping.boundary_mode,
                },
            )

        return TerritoryEngine(
            config=self._config,
            store=self._store,
            logger=logger,
            clock=self._clock,
        )
