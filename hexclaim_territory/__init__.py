"""
hexclaim Territory Engine
=========================

Bounded Context: Claiming map territory by running around it.

A completed GPS trace is cleaned, validated against a fitness policy,
closed into a polygon and rasterized onto a hexagonal grid. Covered cells
are written to an ownership ledger (last valid run wins), and the ledger
is grouped into contiguous same-owner regions for display.

Design Philosophy:
- Separation of Concerns: geometry, tracking, validation, ledger separated
- Pure core: no I/O, no timers, services injected (no singletons)
- Policy failures are values, infrastructure failures are exceptions

Architecture:

    hexclaim_territory/
    ├── geometry/          # Pure geometry (immutable, stateless)
    │   ├── points.py      # GeoPoint, haversine, projections
    │   ├── polygon.py     # Ray casting, bounding boxes, areas
    │   └── hexgrid.py     # HexGrid, CellId
    │
    ├── tracking/          # Trace cleaning
    │   ├── simplify.py    # Douglas-Peucker
    │   └── processor.py   # PathProcessor
    │
    ├── validation/        # Accept/reject policy
    │   └── validator.py   # RunValidator, ValidationResult
    │
    ├── ledger/            # Ownership
    │   ├── store.py       # Claim, TerritoryStore, InMemoryTerritoryStore
    │   └── grouper.py     # TerritoryGrouper, Region
    │
    ├── logging/           # Structured JSON logs
    ├── config.py          # EngineConfig (YAML)
    ├── simulation.py      # Synthetic traces
    ├── stats.py           # Per-runner totals (UserStats)
    └── engine.py          # Orchestration

Usage:

    # 1. Grid (stateless)
    from hexclaim_territory import HexGrid, GeoPoint

    grid = HexGrid(resolution=9)
    cell = grid.coordinate_to_cell(GeoPoint(37.7749, -122.4194))
    neighbours = grid.adjacent_cells(cell)

    # 2. Clean and judge a trace
    from hexclaim_territory import PathProcessor, RunValidator

    processed = PathProcessor().process(raw_points)
    verdict = RunValidator().validate(processed.filtered)

    # 3. Or use the engine (high-level orchestration)
    from hexclaim_territory import EngineBuilder

    engine = (
        EngineBuilder()
        .with_config_file("config/engine.yaml")
        .require_loop_closure(False)
        .build()
    )
    run = engine.submit_run(user_id="runner-1", trace=raw_points)
    regions = engine.regions()
"""

# Geometry Layer (immutable, stateless)
from hexclaim_territory.geometry.points import GeoPoint
from hexclaim_territory.geometry.hexgrid import CellId, CellIdError, HexGrid

# Tracking & Validation
from hexclaim_territory.tracking.processor import PathProcessor, ProcessedTrace
from hexclaim_territory.validation.validator import (
    InvalidReason,
    RunValidator,
    ValidationResult,
)

# Ledger
from hexclaim_territory.ledger.store import (
    Claim,
    InMemoryTerritoryStore,
    StoreError,
    TerritoryStore,
)
from hexclaim_territory.ledger.grouper import Region, TerritoryGrouper, summarize_owners

# Configuration & Orchestration
from hexclaim_territory.config import EngineConfig
from hexclaim_territory.engine import EngineBuilder, Run, TerritoryEngine
from hexclaim_territory.stats import UserStats, summarize_runs

__all__ = [
    # Geometry
    "GeoPoint",
    "CellId",
    "CellIdError",
    "HexGrid",
    # Tracking & Validation
    "PathProcessor",
    "ProcessedTrace",
    "RunValidator",
    "ValidationResult",
    "InvalidReason",
    # Ledger
    "Claim",
    "TerritoryStore",
    "InMemoryTerritoryStore",
    "StoreError",
    "Region",
    "TerritoryGrouper",
    "summarize_owners",
    # Orchestration
    "EngineConfig",
    "TerritoryEngine",
    "EngineBuilder",
    "Run",
    "UserStats",
    "summarize_runs",
]

__version__ = "1.0.0"
