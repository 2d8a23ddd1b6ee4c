"""
Territory Engine Tests
======================

End-to-end claim flow, store error propagation, runner stats, builder,
configuration loading and structured log output.

Usage:
    pytest test_engine.py -v
"""

import json
import logging
import math
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from conftest import offset_point
from hexclaim_territory import (
    EngineBuilder,
    EngineConfig,
    InMemoryTerritoryStore,
    InvalidReason,
    Run,
    StoreError,
    TerritoryEngine,
    ValidationResult,
)
from hexclaim_territory.config import GridConfig, PathConfig, ValidationConfig
from hexclaim_territory.logging import LogEvent, StructuredLogger
from hexclaim_territory.simulation import generate_trace
from hexclaim_territory.stats import UserStats, run_area_m2, summarize_runs

FIXED_NOW = datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)


class RecordingStore:
    """Store double that records batches and exposes no snapshot()."""

    def __init__(self, fail=False):
        self.batches = []
        self.fail = fail

    def get(self, cell_id):
        return None

    def set_batch(self, claims):
        if self.fail:
            raise StoreError("ledger unavailable")
        self.batches.append(list(claims))


@pytest.fixture
def engine():
    return EngineBuilder().with_clock(lambda: FIXED_NOW).build()


@pytest.fixture
def big_loop():
    return generate_trace(offset_point(0, 0), pattern="circle", size_m=300, point_count=60, seed=1)


# ============================================================================
# Claim flow
# ============================================================================

def test_valid_run_claims_its_cells(engine, big_loop):
    run = engine.submit_run("alice", big_loop, run_id="run-1", owner_name="Alice")

    assert run.is_valid
    assert run.claimed_cell_ids
    assert len(engine.store) == len(run.claimed_cell_ids)
    for cell in run.claimed_cell_ids:
        claim = engine.store.get(cell)
        assert claim.owner_id == "alice"
        assert claim.owner_name == "Alice"
        assert claim.source_run_id == "run-1"
        assert claim.claimed_at == FIXED_NOW
        assert claim.source_distance_m == pytest.approx(run.distance_m)


def test_center_of_loop_is_claimed(engine, big_loop):
    run = engine.process_run("alice", big_loop)
    assert engine.grid.coordinate_to_cell(offset_point(0, 0)) in run.claimed_cell_ids


def test_small_loop_claims_at_least_its_vertex_cells(engine, loop_trace):
    run = engine.submit_run("alice", loop_trace)
    assert run.is_valid
    first_cell = engine.grid.coordinate_to_cell(run.simplified_path[0])
    assert first_cell in run.claimed_cell_ids


def test_process_run_never_touches_the_store(big_loop):
    store = RecordingStore()
    engine = TerritoryEngine(store=store)
    run = engine.process_run("alice", big_loop)
    assert run.is_valid
    assert store.batches == []


def test_invalid_run_makes_no_store_call(short_trace):
    store = RecordingStore()
    engine = TerritoryEngine(store=store)

    run = engine.submit_run("alice", short_trace)

    assert not run.is_valid
    assert run.invalid_reason is InvalidReason.TOO_SHORT_DISTANCE
    assert run.claimed_cell_ids == ()
    assert store.batches == []


def test_one_batch_per_run(big_loop):
    store = RecordingStore()
    engine = TerritoryEngine(store=store)
    run = engine.submit_run("alice", big_loop)
    assert len(store.batches) == 1
    assert [claim.cell_id for claim in store.batches[0]] == list(run.claimed_cell_ids)


def test_store_error_propagates(big_loop):
    engine = TerritoryEngine(store=RecordingStore(fail=True))
    run = engine.process_run("alice", big_loop)
    with pytest.raises(StoreError, match="ledger unavailable"):
        engine.claim(run)


def test_later_run_steals_overlapping_cells(engine, big_loop):
    first = engine.submit_run("alice", big_loop, run_id="run-a")
    second = engine.submit_run("bob", big_loop, run_id="run-b")

    assert set(first.claimed_cell_ids) == set(second.claimed_cell_ids)
    assert {claim.owner_id for claim in engine.store.snapshot()} == {"bob"}

    regions = engine.regions()
    assert {region.owner_id for region in regions} == {"bob"}


def test_regions_from_store_snapshot(engine, big_loop):
    engine.submit_run("alice", big_loop)
    far_away = generate_trace(offset_point(5000, 5000), pattern="circle", size_m=300, point_count=60, seed=2)
    engine.submit_run("alice", far_away)

    regions = engine.regions()
    assert len(regions) >= 2
    assert sum(region.cell_count for region in regions) == len(engine.store)

    near = engine.grid.coordinate_to_cell(offset_point(0, 0))
    far = engine.grid.coordinate_to_cell(offset_point(5000, 5000))
    home, = [region for region in regions if near in region.cell_ids]
    assert far not in home.cell_ids


def test_regions_need_snapshot_or_explicit_claims(big_loop):
    engine = TerritoryEngine(store=RecordingStore())
    with pytest.raises(TypeError):
        engine.regions()

    run = engine.process_run("alice", big_loop)
    claims = engine.build_claims(run, claimed_at=FIXED_NOW)
    regions = engine.regions(claims)
    assert sum(region.cell_count for region in regions) == len(claims)


def test_build_claims_for_invalid_run_is_empty(engine, short_trace):
    run = engine.process_run("alice", short_trace)
    assert engine.build_claims(run) == []
    assert engine.claim(run) == []


def test_run_carries_trace_details(engine, big_loop):
    run = engine.process_run("alice", big_loop, run_id="run-7")
    assert run.id == "run-7"
    assert run.user_id == "alice"
    assert run.raw_point_count == len(big_loop)
    assert list(run.trace) == big_loop
    assert len(run.simplified_path) <= len(run.trace)
    assert run.duration_s == pytest.approx(big_loop[-1].timestamp - big_loop[0].timestamp)
    assert run.started_at == datetime.fromtimestamp(big_loop[0].timestamp, tz=timezone.utc)
    assert run.ended_at == FIXED_NOW


def test_session_clock_sets_duration(engine, big_loop):
    started = datetime(2026, 10, 19, 7, 0, tzinfo=timezone.utc)
    ended = started + timedelta(minutes=12)
    run = engine.process_run("alice", big_loop, started_at=started, ended_at=ended)
    assert run.duration_s == 720.0
    assert run.started_at == started
    assert run.ended_at == ended


def test_run_ids_are_generated(engine, short_trace):
    a = engine.process_run("alice", short_trace)
    b = engine.process_run("alice", short_trace)
    assert a.id and b.id and a.id != b.id


# ============================================================================
# Run display values
# ============================================================================

def make_run(distance_m, duration_s):
    return Run(
        id="r",
        user_id="u",
        trace=(),
        simplified_path=(),
        distance_m=distance_m,
        duration_s=duration_s,
        validation=ValidationResult.valid(),
        claimed_cell_ids=(),
        started_at=FIXED_NOW,
        ended_at=FIXED_NOW,
    )


@pytest.mark.parametrize("duration_s,expected", [
    (0, "00:00"),
    (125, "02:05"),
    (3599, "59:59"),
    (3725, "1:02:05"),
])
def test_formatted_duration(duration_s, expected):
    assert make_run(1000.0, duration_s).formatted_duration == expected


def test_average_pace():
    assert make_run(1000.0, 300.0).average_pace_per_km == "5:00 /km"
    assert make_run(5000.0, 1650.0).average_pace_per_km == "5:30 /km"
    assert make_run(0.0, 300.0).average_pace_per_km == "--:--"
    assert make_run(2500.0, 0.0).distance_km == 2.5


def test_run_serialization(engine, big_loop):
    data = engine.process_run("alice", big_loop, run_id="run-9").to_dict()
    assert data['id'] == "run-9"
    assert data['validation']['valid'] is True
    assert all(isinstance(cell, str) for cell in data['claimed_cell_ids'])
    json.dumps(data)


# ============================================================================
# Runner stats
# ============================================================================

def test_submitted_runs_accumulate_user_stats(engine, big_loop, short_trace):
    first = engine.submit_run("alice", big_loop, run_id="run-1")
    engine.submit_run("alice", short_trace, run_id="run-2")
    second = engine.submit_run("alice", big_loop, run_id="run-3")

    stats = engine.user_stats("alice")
    assert stats.total_runs == 2
    assert stats.total_distance_m == pytest.approx(first.distance_m + second.distance_m)
    assert stats.total_distance_km == pytest.approx(stats.total_distance_m / 1000.0)
    assert stats.total_cells_claimed == 2 * len(first.claimed_cell_ids)
    assert stats.total_area_m2 == pytest.approx(2 * run_area_m2(first))
    # Two laps of a 300 m radius circle
    assert stats.total_area_km2 == pytest.approx(2 * math.pi * 0.3 ** 2, rel=0.1)


def test_rejected_runs_leave_stats_at_zero(engine, short_trace):
    engine.submit_run("bob", short_trace)
    assert engine.user_stats("bob") == UserStats("bob")
    assert engine.user_stats("nobody").total_runs == 0


def test_stats_unchanged_when_store_fails(big_loop):
    engine = TerritoryEngine(store=RecordingStore(fail=True))
    with pytest.raises(StoreError):
        engine.submit_run("alice", big_loop)
    assert engine.user_stats("alice").total_runs == 0


def test_summarize_runs_groups_by_runner(engine, big_loop, short_trace):
    runs = [
        engine.process_run("alice", big_loop),
        engine.process_run("bob", short_trace),
        engine.process_run("alice", short_trace),
    ]
    stats = summarize_runs(runs)

    assert set(stats) == {"alice", "bob"}
    assert stats["alice"].total_runs == 1
    assert stats["alice"].total_distance_m == pytest.approx(runs[0].distance_m)
    assert stats["bob"] == UserStats("bob")

    data = stats["alice"].to_dict()
    assert data['total_runs'] == 1
    assert data['total_area_km2'] == pytest.approx(data['total_area_m2'] / 1_000_000)


def test_user_stats_rejects_foreign_runs_and_negative_totals(engine, big_loop):
    run = engine.process_run("alice", big_loop)
    with pytest.raises(ValueError):
        UserStats("bob").add_run(run)
    with pytest.raises(ValueError):
        UserStats("bob", total_runs=-1)


# ============================================================================
# Builder & configuration
# ============================================================================

def test_builder_overrides(line_trace):
    engine = EngineBuilder().with_resolution(10).require_loop_closure(True).build()

    assert engine.grid.resolution == 10
    assert engine.config.validation.require_loop_closure is True
    run = engine.process_run("alice", line_trace)
    assert run.invalid_reason is InvalidReason.NOT_A_LOOP
    assert all(cell.resolution == 10 for cell in run.claimed_cell_ids)


def test_builder_uses_given_store():
    store = InMemoryTerritoryStore()
    assert EngineBuilder().with_store(store).build().store is store


def test_builder_loads_yaml(tmp_path):
    path = tmp_path / "engine.yaml"
    path.write_text(
        "grid:\n"
        "  resolution: 8\n"
        "validation:\n"
        "  min_distance_m: 250\n"
        "  require_loop_closure: true\n"
        "grouping:\n"
        "  boundary_mode: outline\n"
    )
    engine = EngineBuilder().with_config_file(path).build()

    assert engine.grid.resolution == 8
    assert engine.config.validation.min_distance_m == 250
    assert engine.config.validation.require_loop_closure is True
    assert engine.config.path == PathConfig()
    assert engine.grouper.boundary_mode == "outline"


def test_config_defaults():
    config = EngineConfig()
    assert config.grid.resolution == 9
    assert config.path.simplification_tolerance_m == 10.0
    assert config.path.max_accuracy_m == 50.0
    assert config.path.max_teleport_m == 200.0
    assert config.validation.min_points == 10
    assert config.validation.speed_ceiling_mps == pytest.approx(18.0)
    assert config.validation.require_loop_closure is False
    assert config.grouping.boundary_mode == "bbox"


@pytest.mark.parametrize("data", [
    {"grid": {"resolution": 20}},
    {"path": {"max_accuracy_m": 0}},
    {"validation": {"require_loop_closure": "yes"}},
    {"validation": {"min_points": 1}},
    {"grouping": {"boundary_mode": "hull"}},
    {"grid": {"resolution": 9, "cell_size": 3}},
    {"storage": {}},
])
def test_invalid_config_rejected(data):
    with pytest.raises(ValueError):
        EngineConfig.from_dict(data)


def test_config_file_errors(tmp_path):
    with pytest.raises(FileNotFoundError):
        EngineConfig.from_yaml(tmp_path / "missing.yaml")

    broken = tmp_path / "broken.yaml"
    broken.write_text("grid: [unclosed\n")
    with pytest.raises(ValueError):
        EngineConfig.from_yaml(broken)

    scalar = tmp_path / "scalar.yaml"
    scalar.write_text("just a string\n")
    with pytest.raises(ValueError):
        EngineConfig.from_yaml(scalar)


def test_with_resolution_keeps_other_sections():
    config = EngineConfig(validation=ValidationConfig(min_points=20)).with_resolution(11)
    assert config.grid == GridConfig(resolution=11)
    assert config.validation.min_points == 20
    with pytest.raises(ValueError):
        config.with_resolution(99)


def test_loop_closure_toggle_keeps_other_policy_settings():
    custom = EngineConfig(
        path=PathConfig(simplification_tolerance_m=5.0),
        validation=ValidationConfig(min_points=20, speed_margin=2.0, loop_closure_threshold_m=80.0),
    )
    engine = EngineBuilder().with_config(custom).require_loop_closure().build()

    assert engine.config.validation == replace(custom.validation, require_loop_closure=True)
    assert engine.config.path == custom.path
    assert engine.config.grid == custom.grid


# ============================================================================
# Structured logging
# ============================================================================

def read_events(caplog, logger_name):
    return [
        json.loads(record.getMessage())
        for record in caplog.records
        if record.name == logger_name
    ]


def test_structured_logger_emits_json(caplog):
    logger = StructuredLogger(component="test")
    with caplog.at_level(logging.INFO, logger="hexclaim.test"):
        logger.info(
            event=LogEvent.RUN_VALIDATED,
            message="Run accepted",
            metadata={'run_id': 'r-1'},
        )

    entry, = read_events(caplog, "hexclaim.test")
    assert entry['event'] == "run.validated"
    assert entry['component'] == "test"
    assert entry['level'] == "INFO"
    assert entry['metadata'] == {'run_id': 'r-1'}


def test_structured_logger_level_can_change(caplog):
    logger = StructuredLogger(component="quiet", level=logging.WARNING)
    with caplog.at_level(logging.DEBUG):
        logger.set_level(logging.WARNING)
        logger.info(event=LogEvent.RUN_VALIDATED, message="hidden")
        logger.set_level(logging.INFO)
        logger.info(event=LogEvent.RUN_REJECTED, message="shown")

    events = [entry['event'] for entry in read_events(caplog, "hexclaim.quiet")]
    assert events == ["run.rejected"]


def test_engine_logs_claim_flow(caplog, big_loop, short_trace):
    engine = EngineBuilder().with_logger(StructuredLogger(component="flow")).build()
    with caplog.at_level(logging.DEBUG, logger="hexclaim.flow"):
        engine.submit_run("alice", big_loop, run_id="run-ok")
        engine.submit_run("alice", short_trace, run_id="run-short")

    events = [entry['event'] for entry in read_events(caplog, "hexclaim.flow")]
    assert "trace.filtered" in events
    assert "territory.rasterized" in events
    assert "run.validated" in events
    assert "territory.claimed" in events
    assert "run.rejected" in events


def test_engine_logs_store_error(caplog, big_loop):
    engine = TerritoryEngine(
        store=RecordingStore(fail=True),
        logger=StructuredLogger(component="failing"),
    )
    with caplog.at_level(logging.INFO, logger="hexclaim.failing"):
        with pytest.raises(StoreError):
            engine.submit_run("alice", big_loop)

    entries = read_events(caplog, "hexclaim.failing")
    errors = [entry for entry in entries if entry['event'] == "error.store"]
    assert len(errors) == 1
    assert errors[0]['exception']['type'] == "StoreError"


if __name__ == "__main__":
    raise SystemExit(pytest.main([__file__, "-v"]))
