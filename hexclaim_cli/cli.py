"""
hexclaim CLI - Main entry point.

Command-line front end for the territory engine: inspect grid cells,
process run traces, total runner stats and group ownership ledgers
stored as YAML or JSON.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from hexclaim_territory.config import BOUNDARY_MODES, EngineConfig, GroupingConfig
from hexclaim_territory.engine import EngineBuilder, TerritoryEngine
from hexclaim_territory.geometry.hexgrid import CellId, HexGrid
from hexclaim_territory.geometry.points import GeoPoint
from hexclaim_territory.ledger.grouper import TerritoryGrouper, summarize_owners
from hexclaim_territory.ledger.store import Claim, InMemoryTerritoryStore
from hexclaim_territory.logging import create_logger
from hexclaim_territory.simulation import PATTERNS, generate_trace, inject_glitches
from hexclaim_territory.stats import run_area_m2


def load_yaml_file(file_path: str) -> Any:
    """
    Load a YAML (or JSON) document.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the document is invalid
    """
    path = Path(file_path)

    if not path.exists():
        raise FileNotFoundError(f"File not found: {file_path}")

    try:
        with open(path) as f:
            return yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {file_path}: {e}")


def load_trace(file_path: str) -> Dict[str, Any]:
    """
    Load a run trace.

    Accepted layouts:
        - a list of points
        - a mapping with ``points`` and optional ``user_id`` / ``run_id``

    Points are mappings (``lat``, ``lng``, ``timestamp``, ``accuracy``) or
    ``[lat, lon, timestamp, accuracy]`` lists.
    """
    data = load_yaml_file(file_path)
    if isinstance(data, list):
        data = {'points': data}
    if not isinstance(data, dict) or not isinstance(data.get('points'), list):
        raise ValueError(f"{file_path}: expected a list of points or a 'points' list")

    points = [
        GeoPoint.from_dict(record) if isinstance(record, dict) else GeoPoint.from_tuple(record)
        for record in data['points']
    ]
    return {
        'user_id': data.get('user_id'),
        'run_id': data.get('run_id'),
        'points': points,
    }


def load_ledger(file_path: str) -> List[Claim]:
    """Load claims from a list or a mapping with a ``claims`` list."""
    data = load_yaml_file(file_path)
    if isinstance(data, dict):
        data = data.get('claims')
    if not isinstance(data, list):
        raise ValueError(f"{file_path}: expected a list of claims or a 'claims' list")
    return [Claim.from_dict(record) for record in data]


def build_engine(args: argparse.Namespace, config: EngineConfig) -> TerritoryEngine:
    return (
        EngineBuilder()
        .with_config(config)
        .with_logger(create_logger("engine", level=getattr(logging, args.log_level)))
        .build()
    )


def print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, default=str))


def cmd_cell(args: argparse.Namespace, config: EngineConfig) -> None:
    grid = HexGrid(config.grid.resolution)
    cell = grid.coordinate_to_cell(GeoPoint(args.lat, args.lon))
    center = grid.cell_to_center(cell)
    print_json({
        'cell_id': str(cell),
        'center': [center.latitude, center.longitude],
        'boundary': [[p.latitude, p.longitude] for p in grid.cell_boundary(cell)],
        'area_km2': grid.cell_area_km2(cell.resolution),
    })


def cmd_neighbors(args: argparse.Namespace, config: EngineConfig) -> None:
    cell = CellId.parse(args.cell_id)
    grid = HexGrid(cell.resolution)
    print_json({
        'cell_id': str(cell),
        'neighbors': [str(n) for n in grid.adjacent_cells(cell)],
    })


def cmd_process(args: argparse.Namespace, config: EngineConfig) -> None:
    trace = load_trace(args.trace_file)
    engine = build_engine(args, config)
    user_id = args.user_id or trace['user_id'] or "anonymous"
    run = engine.process_run(user_id, trace['points'], run_id=trace['run_id'])

    report = run.to_dict()
    report['distance_km'] = round(run.distance_km, 3)
    report['claimed_area_km2'] = engine.grid.total_area_km2(len(run.claimed_cell_ids))
    report['enclosed_area_m2'] = round(run_area_m2(run), 1)
    print_json(report)


def cmd_group(args: argparse.Namespace, config: EngineConfig) -> None:
    claims = load_ledger(args.ledger_file)
    grouping = config.grouping
    if args.boundary_mode:
        grouping = GroupingConfig(boundary_mode=args.boundary_mode)

    grouper = TerritoryGrouper(
        HexGrid(config.grid.resolution),
        boundary_mode=grouping.boundary_mode,
        logger=create_logger("grouper", level=getattr(logging, args.log_level)),
    )
    regions = grouper.group(InMemoryTerritoryStore(claims).snapshot())
    summaries = summarize_owners(regions)
    print_json({
        'regions': [region.to_dict() for region in regions],
        'owners': {
            owner_id: {
                'region_count': summary.region_count,
                'cell_count': summary.cell_count,
                'area_km2': summary.area_km2,
                'largest_region_cells': summary.largest_region_cells,
            }
            for owner_id, summary in sorted(summaries.items())
        },
    })


def cmd_stats(args: argparse.Namespace, config: EngineConfig) -> None:
    engine = build_engine(args, config)
    runs = []
    for trace_file in args.trace_files:
        trace = load_trace(trace_file)
        user_id = trace['user_id'] or "anonymous"
        runs.append(engine.submit_run(user_id, trace['points'], run_id=trace['run_id']))

    owners = summarize_owners(engine.regions())
    print_json({
        'runs': [
            {'id': run.id, 'user_id': run.user_id, 'valid': run.is_valid,
             'claimed_cell_count': len(run.claimed_cell_ids)}
            for run in runs
        ],
        'users': {
            user_id: {
                **engine.user_stats(user_id).to_dict(),
                'owned_cell_count': owners[user_id].cell_count if user_id in owners else 0,
            }
            for user_id in sorted({run.user_id for run in runs})
        },
    })


def cmd_simulate(args: argparse.Namespace, config: EngineConfig) -> None:
    points = generate_trace(
        GeoPoint(args.lat, args.lon),
        pattern=args.pattern,
        size_m=args.size,
        point_count=args.points,
        pace_mps=args.pace,
        jitter_m=args.jitter,
        seed=args.seed,
    )
    if args.glitches:
        points = inject_glitches(
            points, teleports=args.glitches, poor_fixes=args.glitches, seed=args.seed
        )

    document = {'user_id': args.user_id, 'points': [p.to_dict() for p in points]}
    if args.output:
        with open(args.output, 'w') as f:
            json.dump(document, f, indent=2)
        print(f"Wrote {len(points)} points to {args.output}", file=sys.stderr)
    else:
        print_json(document)


COMMANDS = {
    'cell': cmd_cell,
    'neighbors': cmd_neighbors,
    'process': cmd_process,
    'group': cmd_group,
    'stats': cmd_stats,
    'simulate': cmd_simulate,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hexclaim",
        description="hexclaim CLI - Hex grid territory claiming from run traces",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Cell containing a coordinate
  hexclaim cell 37.7749 -122.4194

  # Adjacent cells
  hexclaim neighbors 9_52341_-151011

  # Filter, validate and rasterize a trace
  hexclaim --config config/engine.yaml process run.json

  # Group an ownership ledger into regions
  hexclaim group ledger.yaml --boundary-mode outline

  # Replay traces in order, claiming territory, and total per runner
  hexclaim stats alice-1.json bob-1.json alice-2.json

  # Synthetic loop around a point
  hexclaim simulate --lat 37.7749 --lon -122.4194 --pattern loop -o run.json
"""
    )

    # Global arguments
    parser.add_argument(
        "--config",
        help="Engine config YAML (default: built-in defaults)"
    )
    parser.add_argument(
        "--resolution",
        type=int,
        help="Grid resolution override (default: from config, 9)"
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="WARNING",
        help="Log level for engine events on stderr (default: WARNING)"
    )

    # Subcommands
    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    cell = subparsers.add_parser('cell', help='Cell containing a coordinate')
    cell.add_argument('lat', type=float, help='Latitude (degrees)')
    cell.add_argument('lon', type=float, help='Longitude (degrees)')

    neighbors = subparsers.add_parser('neighbors', help='Six adjacent cells of a cell')
    neighbors.add_argument('cell_id', help='Cell id "{resolution}_{row}_{col}"')

    process = subparsers.add_parser('process', help='Process a run trace (no claiming)')
    process.add_argument('trace_file', help='Trace YAML/JSON')
    process.add_argument('--user-id', help='Runner id (default: from file)')

    group = subparsers.add_parser('group', help='Group a ledger into regions')
    group.add_argument('ledger_file', help='Ledger YAML/JSON')
    group.add_argument(
        '--boundary-mode',
        choices=sorted(BOUNDARY_MODES),
        help='Region boundary (default: from config)'
    )

    stats = subparsers.add_parser('stats', help='Claim traces in order and total per runner')
    stats.add_argument('trace_files', nargs='+', help='Trace YAML/JSON files, oldest first')

    simulate = subparsers.add_parser('simulate', help='Generate a synthetic trace')
    simulate.add_argument('--lat', type=float, default=37.7749, help='Route center latitude')
    simulate.add_argument('--lon', type=float, default=-122.4194, help='Route center longitude')
    simulate.add_argument('--pattern', choices=sorted(PATTERNS), default='loop')
    simulate.add_argument('--size', type=float, default=200.0, help='Route size in meters')
    simulate.add_argument('--points', type=int, default=40, help='Number of fixes')
    simulate.add_argument('--pace', type=float, default=3.0, help='Speed in m/s')
    simulate.add_argument('--jitter', type=float, default=0.0, help='Position noise in meters')
    simulate.add_argument('--glitches', type=int, default=0, help='Teleports and poor fixes to inject')
    simulate.add_argument('--seed', type=int, help='Random seed')
    simulate.add_argument('--user-id', default='simulated', help='Runner id written to the file')
    simulate.add_argument('-o', '--output', help='Output file (default: stdout)')

    return parser


def main(argv: Optional[List[str]] = None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    # Execute command
    try:
        config = EngineConfig.from_yaml(Path(args.config)) if args.config else EngineConfig()
        if args.resolution is not None:
            config = config.with_resolution(args.resolution)
        COMMANDS[args.command](args, config)

    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == '__main__':
    main()
