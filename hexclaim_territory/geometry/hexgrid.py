"""
Hex Grid Module
===============

Deterministic mapping between coordinates and hexagonal cell identifiers.

Layout:
- Pointy-top hexagons on an offset-row lattice ("odd rows shifted")
- Column width ``s`` degrees, row height ``s * sqrt(3) / 2``
- Odd rows are offset by ``s / 2`` so rows interlock
- ``s`` is 0.0009 degrees at resolution 9 and scales by 3 per step

Identifiers are ``"{resolution}_{row}_{col}"`` strings, kept verbatim for
compatibility with existing ledgers.

Design:
- Pure arithmetic, no lookup tables, no hidden state
- Every method takes an explicit resolution (instance default otherwise)
- Vertex lattice in integer units so neighbouring cells share vertices exactly
"""

import math
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Set, Tuple

import numpy as np

from hexclaim_territory.geometry.points import GeoPoint
from hexclaim_territory.geometry.polygon import bounding_box, points_in_polygon

DEFAULT_RESOLUTION = 9
MIN_RESOLUTION = 0
MAX_RESOLUTION = 15

# Column width at the reference resolution (~100 m at the equator)
BASE_CELL_SIZE_DEGREES = 0.0009
# Nominal area per cell at the reference resolution
BASE_CELL_AREA_KM2 = 0.1052
RESOLUTION_SCALE = 3.0
ROW_HEIGHT_RATIO = math.sqrt(3.0) / 2.0

_CELL_ID_PATTERN = re.compile(r"(-?\d+)_(-?\d+)_(-?\d+)", re.ASCII)

# Vertex offsets in lattice units (x: s/2, y: R/4), counter-clockwise from 30 degrees
_LATTICE_VERTEX_OFFSETS = ((1, 2), (0, 4), (-1, 2), (-1, -2), (0, -4), (1, -2))


class CellIdError(ValueError):
    """Raised when a cell identifier cannot be decoded."""
    pass


@dataclass(frozen=True, order=True)
class CellId:
    """
    Immutable cell address.

    Attributes:
        resolution: Grid density level
        row: Latitude band index
        col: Column index within the row (offset for odd rows)

    Example:
        >>> cell = CellId.parse("9_61823_-85021")
        >>> str(cell)
        '9_61823_-85021'
    """

    resolution: int
    row: int
    col: int

    def __str__(self) -> str:
        return f"{self.resolution}_{self.row}_{self.col}"

    @property
    def is_even_row(self) -> bool:
        return self.row % 2 == 0

    @classmethod
    def parse(cls, value: str) -> 'CellId':
        """
        Decode a ``"{resolution}_{row}_{col}"`` string.

        Raises:
            CellIdError: If the string is malformed, not in canonical form
                (leading zeros, "-0") or the resolution is out of range
        """
        if not isinstance(value, str):
            raise CellIdError(f"Cell id must be a string, got {type(value).__name__}")
        match = _CELL_ID_PATTERN.fullmatch(value)
        if match is None:
            raise CellIdError(f"Malformed cell id: {value!r}")
        resolution, row, col = (int(part) for part in match.groups())
        cell = cls(resolution=resolution, row=row, col=col)
        if str(cell) != value:
            raise CellIdError(f"Non-canonical cell id: {value!r} (expected {str(cell)!r})")
        if not MIN_RESOLUTION <= resolution <= MAX_RESOLUTION:
            raise CellIdError(
                f"Cell id {value!r} has resolution {resolution}, "
                f"expected [{MIN_RESOLUTION}, {MAX_RESOLUTION}]"
            )
        return cell

    @classmethod
    def coerce(cls, value: 'CellId | str') -> 'CellId':
        """Accept either a CellId or its string form."""
        if isinstance(value, CellId):
            return value
        return cls.parse(value)


def validate_resolution(resolution: int) -> int:
    if isinstance(resolution, bool) or not isinstance(resolution, int):
        raise ValueError(f"resolution must be an int, got {resolution!r}")
    if not MIN_RESOLUTION <= resolution <= MAX_RESOLUTION:
        raise ValueError(
            f"resolution must be in [{MIN_RESOLUTION}, {MAX_RESOLUTION}], got {resolution}"
        )
    return resolution


class HexGrid:
    """
    Stateless hex grid service.

    The instance only carries the default resolution used when a method
    is called without one.

    Usage:
        grid = HexGrid(resolution=9)
        cell = grid.coordinate_to_cell(GeoPoint(37.7749, -122.4194))
        center = grid.cell_to_center(cell)
        neighbours = grid.adjacent_cells(cell)
    """

    def __init__(self, resolution: int = DEFAULT_RESOLUTION):
        self.resolution = validate_resolution(resolution)

    def __repr__(self) -> str:
        return f"HexGrid(resolution={self.resolution})"

    def _resolve(self, resolution: Optional[int]) -> int:
        if resolution is None:
            return self.resolution
        return validate_resolution(resolution)

    # ------------------------------------------------------------------
    # Sizes
    # ------------------------------------------------------------------

    @staticmethod
    def cell_size_degrees(resolution: int) -> float:
        """Column width in degrees at ``resolution``."""
        return BASE_CELL_SIZE_DEGREES * RESOLUTION_SCALE ** (DEFAULT_RESOLUTION - resolution)

    @classmethod
    def row_height_degrees(cls, resolution: int) -> float:
        return cls.cell_size_degrees(resolution) * ROW_HEIGHT_RATIO

    @staticmethod
    def cell_area_km2(resolution: int) -> float:
        """Nominal area of one cell (0.1052 km2 at resolution 9)."""
        return BASE_CELL_AREA_KM2 * RESOLUTION_SCALE ** (2 * (DEFAULT_RESOLUTION - resolution))

    def total_area_km2(self, cell_count: int, resolution: Optional[int] = None) -> float:
        return cell_count * self.cell_area_km2(self._resolve(resolution))

    # ------------------------------------------------------------------
    # Coordinate <-> cell
    # ------------------------------------------------------------------

    def coordinate_to_cell(self, point: GeoPoint, resolution: Optional[int] = None) -> CellId:
        """
        Bucket a coordinate into its cell.

        Raises:
            ValueError: If the coordinate is not finite
        """
        resolution = self._resolve(resolution)
        if not point.is_finite:
            raise ValueError(f"Cannot bucket non-finite coordinate {point}")

        size = self.cell_size_degrees(resolution)
        row = math.floor(point.latitude / (size * ROW_HEIGHT_RATIO))
        col_offset = 0.0 if row % 2 == 0 else size / 2.0
        col = math.floor((point.longitude + col_offset) / size)
        return CellId(resolution, row, col)

    def cell_to_center(self, cell: 'CellId | str') -> GeoPoint:
        """Exact inverse of the bucketing arithmetic."""
        cell = CellId.coerce(cell)
        size = self.cell_size_degrees(cell.resolution)
        col_offset = 0.0 if cell.is_even_row else size / 2.0
        latitude = (cell.row + 0.5) * size * ROW_HEIGHT_RATIO
        longitude = (cell.col + 0.5) * size - col_offset
        return GeoPoint(latitude, longitude)

    def cell_boundary(self, cell: 'CellId | str') -> List[GeoPoint]:
        """
        Six vertices of the cell, counter-clockwise from 30 degrees.

        Circumradius is ``s / sqrt(3)`` so the apothem equals half the
        column width and neighbouring hexagons tile without gaps.
        """
        cell = CellId.coerce(cell)
        center = self.cell_to_center(cell)
        radius = self.cell_size_degrees(cell.resolution) / math.sqrt(3.0)

        vertices = []
        for i in range(6):
            angle = math.pi / 6.0 + i * math.pi / 3.0
            vertices.append(GeoPoint(
                center.latitude + radius * math.sin(angle),
                center.longitude + radius * math.cos(angle),
            ))
        return vertices

    # ------------------------------------------------------------------
    # Adjacency
    # ------------------------------------------------------------------

    def adjacent_cells(self, cell: 'CellId | str') -> List[CellId]:
        """
        The six touching cells.

        Even rows sit half a column right of odd rows, so an even cell
        touches columns ``c`` and ``c + 1`` in the rows above and below,
        and an odd cell touches ``c - 1`` and ``c``.
        """
        cell = CellId.coerce(cell)
        res, row, col = cell.resolution, cell.row, cell.col
        left = col if cell.is_even_row else col - 1

        return [
            CellId(res, row - 1, left),
            CellId(res, row - 1, left + 1),
            CellId(res, row, col - 1),
            CellId(res, row, col + 1),
            CellId(res, row + 1, left),
            CellId(res, row + 1, left + 1),
        ]

    def are_adjacent(self, a: 'CellId | str', b: 'CellId | str') -> bool:
        return CellId.coerce(b) in self.adjacent_cells(a)

    # ------------------------------------------------------------------
    # Rasterization
    # ------------------------------------------------------------------

    def _candidate_centers(
        self,
        min_lat: float,
        max_lat: float,
        min_lon: float,
        max_lon: float,
        resolution: int,
    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Rows, columns and (lat, lon) centers of every cell overlapping a box.

        Candidates are lattice cells, so the sampling step is one cell.
        """
        size = self.cell_size_degrees(resolution)
        row_height = size * ROW_HEIGHT_RATIO

        row_values = np.arange(
            math.floor(min_lat / row_height), math.floor(max_lat / row_height) + 1
        )
        col_values = np.arange(
            math.floor(min_lon / size), math.floor((max_lon + size / 2.0) / size) + 1
        )
        rows, cols = np.meshgrid(row_values, col_values, indexing='ij')
        rows, cols = rows.ravel(), cols.ravel()

        offsets = np.where(rows % 2 == 0, 0.0, size / 2.0)
        centers = np.column_stack((
            (rows + 0.5) * row_height,
            (cols + 0.5) * size - offsets,
        ))
        return rows, cols, centers

    def polygon_to_cells(
        self,
        polygon: Sequence[GeoPoint],
        resolution: Optional[int] = None,
    ) -> Set[CellId]:
        """
        Rasterize a closed or open ring into cells.

        Returns every cell whose center is inside the ring (ray casting)
        plus every cell holding a ring vertex, so thin shapes still claim
        the cells they pass through. Rings with fewer than 3 vertices
        yield only their vertex cells.

        This is an approximation, not exact coverage: a cell crossed by
        an edge but whose center is outside is not included unless it
        holds a vertex.
        """
        resolution = self._resolve(resolution)
        vertices = [p for p in polygon if p.is_finite]
        cells = {self.coordinate_to_cell(v, resolution) for v in vertices}
        if len(vertices) < 3:
            return cells

        bbox = bounding_box(vertices)
        rows, cols, centers = self._candidate_centers(
            bbox.min_lat, bbox.max_lat, bbox.min_lon, bbox.max_lon, resolution
        )
        inside = points_in_polygon(centers, vertices)
        cells.update(
            CellId(resolution, int(row), int(col))
            for row, col in zip(rows[inside], cols[inside])
        )
        return cells

    def bbox_to_cells(
        self,
        min_lat: float,
        max_lat: float,
        min_lon: float,
        max_lon: float,
        resolution: Optional[int] = None,
    ) -> Set[CellId]:
        """All cells whose center lies inside a viewport rectangle."""
        resolution = self._resolve(resolution)
        if min_lat > max_lat or min_lon > max_lon:
            raise ValueError(
                f"Invalid viewport: lat [{min_lat}, {max_lat}], lon [{min_lon}, {max_lon}]"
            )

        rows, cols, centers = self._candidate_centers(
            min_lat, max_lat, min_lon, max_lon, resolution
        )
        inside = (
            (centers[:, 0] >= min_lat) & (centers[:, 0] <= max_lat)
            & (centers[:, 1] >= min_lon) & (centers[:, 1] <= max_lon)
        )
        return {
            CellId(resolution, int(row), int(col))
            for row, col in zip(rows[inside], cols[inside])
        }

    # ------------------------------------------------------------------
    # Vertex lattice (exact shared vertices for outline tracing)
    # ------------------------------------------------------------------

    @staticmethod
    def cell_lattice_vertices(cell: 'CellId | str') -> List[Tuple[int, int]]:
        """
        Integer vertex keys of a cell, same order as ``cell_boundary``.

        Units are ``s / 2`` along longitude and ``R / 4`` along latitude,
        so two cells sharing an edge share the exact same keys.
        """
        cell = CellId.coerce(cell)
        cx = 2 * cell.col + (1 if cell.is_even_row else 0)
        cy = 6 * cell.row + 3
        return [(cx + dx, cy + dy) for dx, dy in _LATTICE_VERTEX_OFFSETS]

    def lattice_to_point(self, key: Tuple[float, float], resolution: int) -> GeoPoint:
        """Geographic position of a lattice vertex key."""
        size = self.cell_size_degrees(resolution)
        radius = size / math.sqrt(3.0)
        return GeoPoint(key[1] * radius / 4.0, key[0] * size / 2.0)


def parse_cell_ids(values: Iterable['CellId | str']) -> List[CellId]:
    """Decode many identifiers, failing on the first malformed one."""
    return [CellId.coerce(value) for value in values]
