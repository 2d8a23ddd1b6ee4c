"""
Territory Grouper Module
========================

Partitions the ownership ledger into renderable regions.

Algorithm:
1. Group claims by owner
2. Per owner, flood fill over hex adjacency with an explicit stack;
   each connected component becomes one Region
3. Derive a boundary per region:
   - "bbox": axis-aligned bounding ring of all cell vertices
   - "outline": shapely union of the cell hexagons (outer ring plus holes)

Design:
- Recomputed from scratch on every call, never patched incrementally
- Read-only over its input; pass a stable snapshot for consistency
- O(N) traversal per owner, every cell visited once
"""

from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Sequence, Set, Tuple

from shapely.geometry import Polygon
from shapely.geometry.polygon import orient
from shapely.ops import unary_union

from hexclaim_territory.geometry.hexgrid import CellId, HexGrid
from hexclaim_territory.geometry.points import GeoPoint
from hexclaim_territory.geometry.polygon import bounding_box
from hexclaim_territory.ledger.store import Claim
from hexclaim_territory.logging import LogEvent, StructuredLogger


@dataclass(frozen=True)
class Region:
    """
    Maximal connected set of one owner's cells.

    Attributes:
        owner_id: Owner of every cell in the region
        cell_ids: Member cells
        boundary: Closed ring (first vertex repeated last)
        holes: Closed rings of enclosed unowned areas ("outline" mode only)
        area_km2: Nominal area of the member cells
        owner_name: Display name snapshot, if the claims carried one
    """

    owner_id: str
    cell_ids: FrozenSet[CellId]
    boundary: Tuple[GeoPoint, ...]
    holes: Tuple[Tuple[GeoPoint, ...], ...] = ()
    area_km2: float = 0.0
    owner_name: Optional[str] = None

    @property
    def cell_count(self) -> int:
        return len(self.cell_ids)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        return {
            'owner_id': self.owner_id,
            'owner_name': self.owner_name,
            'cell_ids': sorted(str(cell) for cell in self.cell_ids),
            'cell_count': self.cell_count,
            'area_km2': self.area_km2,
            'boundary': [[p.latitude, p.longitude] for p in self.boundary],
            'holes': [[[p.latitude, p.longitude] for p in ring] for ring in self.holes],
        }


@dataclass(frozen=True)
class OwnerSummary:
    """Aggregate territory figures for one owner."""

    owner_id: str
    region_count: int = 0
    cell_count: int = 0
    area_km2: float = 0.0
    largest_region_cells: int = 0


class TerritoryGrouper:
    """
    Stateless region builder.

    Usage:
        grouper = TerritoryGrouper(HexGrid(), boundary_mode="bbox")
        regions = grouper.group(store.snapshot())
    """

    def __init__(
        self,
        grid: Optional[HexGrid] = None,
        boundary_mode: str = "bbox",
        logger: Optional[StructuredLogger] = None,
    ):
        if boundary_mode not in ("bbox", "outline"):
            raise ValueError(
                f"Invalid boundary_mode: {boundary_mode}. Must be 'bbox' or 'outline'"
            )
        self.grid = grid or HexGrid()
        self.boundary_mode = boundary_mode
        self.logger = logger

    def group(self, claims: Iterable[Claim]) -> List[Region]:
        """
        Partition claims into regions.

        Args:
            claims: Current claims (one per cell); a snapshot, not a live view

        Returns:
            Regions ordered by owner, then by each region's smallest cell
        """
        cells_by_owner: Dict[str, Set[CellId]] = defaultdict(set)
        names: Dict[str, str] = {}
        for claim in list(claims):
            cells_by_owner[claim.owner_id].add(claim.cell_id)
            if claim.owner_name is not None:
                names[claim.owner_id] = claim.owner_name

        regions: List[Region] = []
        for owner_id in sorted(cells_by_owner):
            for component in self.connected_components(cells_by_owner[owner_id]):
                regions.append(self._build_region(owner_id, component, names.get(owner_id)))

        if self.logger is not None:
            self.logger.info(
                event=LogEvent.GROUPING_COMPLETED,
                message=f"Grouped ledger into {len(regions)} regions",
                metadata={
                    'owner_count': len(cells_by_owner),
                    'region_count': len(regions),
                    'boundary_mode': self.boundary_mode,
                },
            )
        return regions

    def group_owner(self, owner_id: str, claims: Iterable[Claim]) -> List[Region]:
        """Regions of a single owner (other owners' claims are ignored)."""
        return self.group(claim for claim in claims if claim.owner_id == owner_id)

    def connected_components(self, cells: Iterable[CellId]) -> List[FrozenSet[CellId]]:
        """
        Flood fill a cell set into its connected components.

        Each cell is removed from the unprocessed pool the moment it is
        pushed, so nothing is scanned twice.
        """
        cells = set(cells)
        unprocessed = set(cells)
        components: List[FrozenSet[CellId]] = []

        for start in sorted(cells):
            if start not in unprocessed:
                continue
            unprocessed.discard(start)
            component = set()
            stack = [start]
            while stack:
                cell = stack.pop()
                component.add(cell)
                for neighbour in self.grid.adjacent_cells(cell):
                    if neighbour in unprocessed:
                        unprocessed.discard(neighbour)
                        stack.append(neighbour)
            components.append(frozenset(component))

        return components

    def _build_region(
        self,
        owner_id: str,
        cells: FrozenSet[CellId],
        owner_name: Optional[str],
    ) -> Region:
        if self.boundary_mode == "outline":
            boundary, holes = self.trace_outline(cells)
        else:
            boundary, holes = self.bounding_ring(cells), ()

        area = sum(self.grid.cell_area_km2(cell.resolution) for cell in cells)
        return Region(
            owner_id=owner_id,
            cell_ids=cells,
            boundary=boundary,
            holes=holes,
            area_km2=area,
            owner_name=owner_name,
        )

    def bounding_ring(self, cells: Iterable[CellId]) -> Tuple[GeoPoint, ...]:
        """Closed bounding-box ring around every vertex of ``cells``."""
        vertices = [v for cell in cells for v in self.grid.cell_boundary(cell)]
        if not vertices:
            return ()
        return tuple(bounding_box(vertices).to_ring())

    def trace_outline(
        self, cells: Iterable[CellId]
    ) -> Tuple[Tuple[GeoPoint, ...], Tuple[Tuple[GeoPoint, ...], ...]]:
        """
        Exact outline of a connected cell set.

        The cell hexagons are merged with ``unary_union`` in integer
        lattice coordinates, where neighbours share vertices exactly, so
        the union leaves no slivers. The exterior ring is the boundary
        and every interior ring is a hole.

        Returns:
            Tuple of (outer ring, hole rings), rings closed, outer ring
            counter-clockwise
        """
        cells = sorted(cells)
        if not cells:
            return (), ()
        resolution = cells[0].resolution

        merged = unary_union([Polygon(self.grid.cell_lattice_vertices(cell)) for cell in cells])
        if merged.geom_type == "MultiPolygon":
            # Only reachable for cell sets that are not edge-connected
            merged = max(merged.geoms, key=lambda part: part.area)
        merged = orient(merged, sign=1.0)

        outer = self._ring_to_points(merged.exterior.coords, resolution)
        holes = tuple(self._ring_to_points(ring.coords, resolution) for ring in merged.interiors)
        return outer, holes

    def _ring_to_points(
        self, coords: Sequence[Tuple[float, float]], resolution: int
    ) -> Tuple[GeoPoint, ...]:
        return tuple(self.grid.lattice_to_point((x, y), resolution) for x, y in coords)


def summarize_owners(regions: Iterable[Region]) -> Dict[str, OwnerSummary]:
    """Per-owner totals across regions."""
    totals: Dict[str, Dict[str, Any]] = defaultdict(
        lambda: {'region_count': 0, 'cell_count': 0, 'area_km2': 0.0, 'largest_region_cells': 0}
    )
    for region in regions:
        entry = totals[region.owner_id]
        entry['region_count'] += 1
        entry['cell_count'] += region.cell_count
        entry['area_km2'] += region.area_km2
        entry['largest_region_cells'] = max(entry['largest_region_cells'], region.cell_count)

    return {
        owner_id: OwnerSummary(owner_id=owner_id, **entry)
        for owner_id, entry in totals.items()
    }
