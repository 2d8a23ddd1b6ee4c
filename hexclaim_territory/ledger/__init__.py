"""
Ledger Layer
============

Bounded Context: Cell ownership and region grouping.

Responsibilities:
- Claim records (current owner only, no history)
- Store contract (get / set_batch) and an in-memory implementation
- Regrouping the ledger into contiguous same-owner regions

Design Philosophy:
- Last valid run over a cell wins; no cooldown, no contest window
- Regions are derived on read and never persisted
"""

from hexclaim_territory.ledger.store import (
    Claim,
    StoreError,
    TerritoryStore,
    InMemoryTerritoryStore,
)
from hexclaim_territory.ledger.grouper import (
    Region,
    OwnerSummary,
    TerritoryGrouper,
    summarize_owners,
)

__all__ = [
    "Claim",
    "StoreError",
    "TerritoryStore",
    "InMemoryTerritoryStore",
    "Region",
    "OwnerSummary",
    "TerritoryGrouper",
    "summarize_owners",
]
