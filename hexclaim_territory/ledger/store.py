"""
Territory Store Module
======================

Ownership ledger contract keyed by cell id.

Contract:
- get(cell_id) -> Optional[Claim]
- set_batch(claims) -> None, raising StoreError on failure
- Each claim in a batch is an independent upsert; last write wins per
  cell; there is no merge and no check against the previous owner

Ownership transfer ("stealing") is simply a later batch over owned
cells. The store, not the engine, decides how a batch becomes visible:
the in-memory store applies it under one lock so readers never see a
run half-claimed. No retries happen in this package.
"""

import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Protocol

from hexclaim_territory.geometry.hexgrid import CellId, HexGrid
from hexclaim_territory.geometry.polygon import BoundingBox


class StoreError(Exception):
    """Raised by a store when a batch cannot be applied."""
    pass


@dataclass(frozen=True)
class Claim:
    """
    Current owner record for one cell.

    Attributes:
        cell_id: Claimed cell
        owner_id: User that owns the cell
        source_run_id: Run that produced the claim
        claimed_at: UTC time of the claim
        source_distance_m: Distance of the claiming run
        owner_name: Display name snapshot (optional)
    """

    cell_id: CellId
    owner_id: str
    source_run_id: str
    claimed_at: datetime
    source_distance_m: float
    owner_name: Optional[str] = None

    def __post_init__(self):
        if not self.owner_id:
            raise ValueError("owner_id cannot be empty")
        if self.source_distance_m < 0:
            raise ValueError(
                f"source_distance_m must be >= 0, got {self.source_distance_m}"
            )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        data = {
            'cell_id': str(self.cell_id),
            'owner_id': self.owner_id,
            'source_run_id': self.source_run_id,
            'claimed_at': self.claimed_at.isoformat(),
            'source_distance_m': self.source_distance_m,
        }
        if self.owner_name is not None:
            data['owner_name'] = self.owner_name
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Claim':
        """
        Deserialize from dict.

        Raises:
            CellIdError: If the cell id is malformed
            ValueError: If required fields are missing or invalid
        """
        cell_id = CellId.parse(data.get('cell_id'))
        try:
            claimed_at = data.get('claimed_at')
            if claimed_at is None:
                claimed_at = datetime.fromtimestamp(0, tz=timezone.utc)
            elif not isinstance(claimed_at, datetime):
                claimed_at = datetime.fromisoformat(str(claimed_at))
            if claimed_at.tzinfo is None:
                claimed_at = claimed_at.replace(tzinfo=timezone.utc)
            return cls(
                cell_id=cell_id,
                owner_id=str(data['owner_id']),
                source_run_id=str(data.get('source_run_id', '')),
                claimed_at=claimed_at,
                source_distance_m=float(data.get('source_distance_m', 0.0)),
                owner_name=data.get('owner_name'),
            )
        except KeyError as e:
            raise ValueError(f"Missing required Claim field: {e}") from e
        except (TypeError, ValueError) as e:
            raise ValueError(f"Invalid Claim data: {e}") from e


class TerritoryStore(Protocol):
    """Minimal ledger interface required by the engine."""

    def get(self, cell_id: CellId) -> Optional[Claim]:
        """Current claim for a cell, or None if unowned."""
        ...

    def set_batch(self, claims: List[Claim]) -> None:
        """
        Upsert claims, one per cell, last write wins.

        Raises:
            StoreError: If the batch cannot be applied
        """
        ...


class InMemoryTerritoryStore:
    """
    Thread-safe in-memory ledger.

    Thread Safety:
    - set_batch(), clear(): write under the lock; a whole batch is
      applied before the lock is released
    - Reads copy under the lock (snapshot pattern)

    Usage:
        store = InMemoryTerritoryStore()
        store.set_batch(claims)
        claims = store.snapshot()   # stable copy for grouping
    """

    def __init__(self, claims: Optional[Iterable[Claim]] = None):
        self._claims: Dict[CellId, Claim] = {}
        self._lock = threading.Lock()
        if claims is not None:
            self.set_batch(list(claims))

    def get(self, cell_id: 'CellId | str') -> Optional[Claim]:
        cell_id = CellId.coerce(cell_id)
        with self._lock:
            return self._claims.get(cell_id)

    def set_batch(self, claims: List[Claim]) -> None:
        """
        Apply claims atomically.

        Raises:
            StoreError: If any entry is not a Claim (nothing is written)
        """
        claims = list(claims)
        for claim in claims:
            if not isinstance(claim, Claim):
                raise StoreError(f"Expected Claim, got {type(claim).__name__}")

        with self._lock:
            for claim in claims:
                self._claims[claim.cell_id] = claim

    def snapshot(self) -> List[Claim]:
        """Copy of all current claims."""
        with self._lock:
            return list(self._claims.values())

    def claims_for_owner(self, owner_id: str) -> List[Claim]:
        return [claim for claim in self.snapshot() if claim.owner_id == owner_id]

    def claims_for_cells(self, cell_ids: Iterable['CellId | str']) -> List[Claim]:
        wanted = {CellId.coerce(cell_id) for cell_id in cell_ids}
        with self._lock:
            return [self._claims[cell] for cell in wanted if cell in self._claims]

    def claims_in_viewport(
        self,
        grid: HexGrid,
        min_lat: float,
        max_lat: float,
        min_lon: float,
        max_lon: float,
    ) -> List[Claim]:
        """Claims whose cell center lies inside the viewport."""
        viewport = BoundingBox(min_lat, max_lat, min_lon, max_lon)
        return [
            claim for claim in self.snapshot()
            if viewport.contains(grid.cell_to_center(claim.cell_id))
        ]

    def clear(self) -> None:
        with self._lock:
            self._claims.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._claims)

    def __contains__(self, cell_id: object) -> bool:
        if not isinstance(cell_id, (CellId, str)):
            return False
        return self.get(cell_id) is not None

    def __repr__(self) -> str:
        return f"InMemoryTerritoryStore(claims={len(self)})"
