"""
Territory Ledger Tests
======================

Claim store semantics (last writer wins, atomic batches) and region
grouping (flood fill, bounding ring and outline boundaries).

Usage:
    pytest test_territory_ledger.py -v
"""

from datetime import datetime, timezone

import pytest

from hexclaim_territory.geometry import CellId, CellIdError, HexGrid
from hexclaim_territory.ledger import (
    Claim,
    InMemoryTerritoryStore,
    StoreError,
    TerritoryGrouper,
    summarize_owners,
)

CLAIMED_AT = datetime(2026, 10, 19, 8, 30, tzinfo=timezone.utc)


def make_claim(cell, owner_id, run_id="run-1", distance_m=1200.0, owner_name=None):
    return Claim(
        cell_id=CellId.coerce(cell),
        owner_id=owner_id,
        source_run_id=run_id,
        claimed_at=CLAIMED_AT,
        source_distance_m=distance_m,
        owner_name=owner_name,
    )


@pytest.fixture
def grid():
    return HexGrid(9)


@pytest.fixture
def flower(grid):
    """A cell and its six neighbours."""
    center = CellId(9, 100, 200)
    return [center] + grid.adjacent_cells(center)


# ============================================================================
# Store
# ============================================================================

def test_get_returns_none_for_unowned_cell():
    store = InMemoryTerritoryStore()
    assert store.get(CellId(9, 1, 1)) is None
    assert len(store) == 0


def test_last_writer_wins():
    store = InMemoryTerritoryStore()
    cell = CellId(9, 5, 5)
    store.set_batch([make_claim(cell, "alice", run_id="r-a")])
    store.set_batch([make_claim(cell, "bob", run_id="r-b")])

    claim = store.get(cell)
    assert claim.owner_id == "bob"
    assert claim.source_run_id == "r-b"
    assert len(store) == 1


def test_get_accepts_string_ids():
    store = InMemoryTerritoryStore([make_claim("9_5_5", "alice")])
    assert store.get("9_5_5").owner_id == "alice"
    assert "9_5_5" in store
    assert CellId(9, 5, 6) not in store
    with pytest.raises(CellIdError):
        store.get("not-a-cell")


def test_invalid_batch_writes_nothing():
    store = InMemoryTerritoryStore()
    with pytest.raises(StoreError):
        store.set_batch([make_claim("9_1_1", "alice"), {"cell_id": "9_1_2"}])
    assert len(store) == 0


def test_owner_and_cell_queries():
    store = InMemoryTerritoryStore([
        make_claim("9_1_1", "alice"),
        make_claim("9_1_2", "alice"),
        make_claim("9_4_4", "bob"),
    ])
    assert {str(c.cell_id) for c in store.claims_for_owner("alice")} == {"9_1_1", "9_1_2"}
    assert [c.owner_id for c in store.claims_for_cells(["9_4_4", "9_9_9"])] == ["bob"]

    store.clear()
    assert store.snapshot() == []


def test_claims_in_viewport(grid):
    inside = grid.coordinate_to_cell(grid.cell_to_center(CellId(9, 48500, -136000)))
    store = InMemoryTerritoryStore([
        make_claim(inside, "alice"),
        make_claim(CellId(9, 0, 0), "bob"),
    ])
    center = grid.cell_to_center(inside)
    visible = store.claims_in_viewport(
        grid,
        center.latitude - 0.001, center.latitude + 0.001,
        center.longitude - 0.001, center.longitude + 0.001,
    )
    assert [c.owner_id for c in visible] == ["alice"]


def test_claim_serialization():
    claim = make_claim("9_10_-20", "alice", owner_name="Alice")
    data = claim.to_dict()
    assert data['cell_id'] == "9_10_-20"
    assert data['claimed_at'] == "2026-10-19T08:30:00+00:00"
    assert Claim.from_dict(data) == claim


def test_claim_without_timezone_is_utc():
    claim = Claim.from_dict({'cell_id': "9_1_1", 'owner_id': "alice", 'claimed_at': "2026-10-19T08:30:00"})
    assert claim.claimed_at == CLAIMED_AT


def test_claim_from_dict_rejects_bad_input():
    with pytest.raises(CellIdError):
        Claim.from_dict({'cell_id': "9-10-20", 'owner_id': "alice"})
    with pytest.raises(ValueError):
        Claim.from_dict({'cell_id': "9_10_20"})
    with pytest.raises(ValueError):
        make_claim("9_1_1", "")


# ============================================================================
# Grouping
# ============================================================================

def test_cluster_and_singletons_make_four_regions(grid, flower):
    singletons = [CellId(9, 120, 200), CellId(9, 140, 200), CellId(9, 160, 200)]
    claims = [make_claim(cell, "alice") for cell in flower + singletons]

    regions = TerritoryGrouper(grid).group(claims)

    assert len(regions) == 4
    assert sorted(region.cell_count for region in regions) == [1, 1, 1, 7]
    cluster = max(regions, key=lambda region: region.cell_count)
    assert cluster.cell_ids == frozenset(flower)
    assert all(region.owner_id == "alice" for region in regions)


def test_regions_are_split_by_owner(grid, flower):
    claims = [make_claim(cell, "alice") for cell in flower[:4]]
    claims += [make_claim(cell, "bob") for cell in flower[4:]]

    regions = TerritoryGrouper(grid).group(claims)
    owners = {region.owner_id for region in regions}

    assert owners == {"alice", "bob"}
    for region in regions:
        for cell in region.cell_ids:
            assert cell in (flower[:4] if region.owner_id == "alice" else flower[4:])


def test_overwrite_moves_cell_between_owners_on_regroup(grid):
    row = [CellId(9, 50, col) for col in range(5)]
    store = InMemoryTerritoryStore([make_claim(cell, "alice") for cell in row])
    grouper = TerritoryGrouper(grid)

    before = grouper.group(store.snapshot())
    assert [region.cell_count for region in before] == [5]

    # Bob takes the middle cell, splitting Alice's strip in two
    store.set_batch([make_claim(row[2], "bob", run_id="run-2")])
    assert store.get(row[2]).owner_id == "bob"

    after = grouper.group(store.snapshot())
    alice = [region for region in after if region.owner_id == "alice"]
    bob = [region for region in after if region.owner_id == "bob"]

    assert sorted(region.cell_count for region in alice) == [2, 2]
    assert all(row[2] not in region.cell_ids for region in alice)
    assert [region.cell_ids for region in bob] == [frozenset({row[2]})]


def test_group_empty_ledger(grid):
    assert TerritoryGrouper(grid).group([]) == []


def test_group_owner_ignores_other_owners(grid, flower):
    claims = [make_claim(cell, "alice") for cell in flower[:3]]
    claims += [make_claim(cell, "bob") for cell in flower[3:]]

    regions = TerritoryGrouper(grid).group_owner("alice", claims)
    assert {region.owner_id for region in regions} == {"alice"}
    assert sum(region.cell_count for region in regions) == 3
    assert TerritoryGrouper(grid).group_owner("carol", claims) == []


def test_large_contiguous_block_is_one_region(grid):
    block = [CellId(9, row, col) for row in range(250) for col in range(250)]
    regions = TerritoryGrouper(grid).group(make_claim(cell, "alice") for cell in block)

    assert len(regions) == 1
    assert regions[0].cell_count == 62_500


def test_outline_of_block_has_no_holes(grid):
    rows, cols = 40, 30
    block = [CellId(9, row, col) for row in range(rows) for col in range(cols)]
    region, = TerritoryGrouper(grid, boundary_mode="outline").group(
        make_claim(cell, "alice") for cell in block
    )

    assert region.holes == ()
    assert region.boundary[0] == region.boundary[-1]
    # 2 * cols + 1 vertices along top and bottom, 2 per extra row on each side
    assert len(region.boundary) - 1 == 4 * cols + 4 * rows - 2


def test_grouping_is_deterministic(grid, flower):
    claims = [make_claim(cell, owner) for cell, owner in zip(flower, "ababab" + "a")]
    grouper = TerritoryGrouper(grid)
    assert grouper.group(claims) == grouper.group(list(reversed(claims)))


def test_bbox_boundary_encloses_all_vertices(grid, flower):
    region, = TerritoryGrouper(grid, boundary_mode="bbox").group(
        [make_claim(cell, "alice") for cell in flower]
    )
    assert len(region.boundary) == 5
    assert region.boundary[0] == region.boundary[-1]

    lats = [p.latitude for p in region.boundary]
    lons = [p.longitude for p in region.boundary]
    for cell in flower:
        for vertex in grid.cell_boundary(cell):
            assert min(lats) <= vertex.latitude <= max(lats)
            assert min(lons) <= vertex.longitude <= max(lons)
    assert region.holes == ()


def test_outline_of_single_cell_is_its_hexagon(grid):
    cell = CellId(9, 30, 40)
    region, = TerritoryGrouper(grid, boundary_mode="outline").group([make_claim(cell, "alice")])

    assert len(region.boundary) == 7
    assert region.boundary[0] == region.boundary[-1]
    expected = {(round(p.latitude, 9), round(p.longitude, 9)) for p in grid.cell_boundary(cell)}
    traced = {(round(p.latitude, 9), round(p.longitude, 9)) for p in region.boundary}
    assert traced == expected


def test_outline_of_flower_has_eighteen_vertices(grid, flower):
    region, = TerritoryGrouper(grid, boundary_mode="outline").group(
        [make_claim(cell, "alice") for cell in flower]
    )
    assert len(region.boundary) == 19
    assert region.holes == ()


def test_outline_of_ring_has_a_hole(grid, flower):
    ring = flower[1:]
    region, = TerritoryGrouper(grid, boundary_mode="outline").group(
        [make_claim(cell, "alice") for cell in ring]
    )
    assert region.cell_count == 6
    assert len(region.boundary) == 19
    assert len(region.holes) == 1
    assert len(region.holes[0]) == 7


def test_invalid_boundary_mode():
    with pytest.raises(ValueError):
        TerritoryGrouper(boundary_mode="convex")


def test_region_area_and_owner_summary(grid, flower):
    claims = [make_claim(cell, "alice", owner_name="Alice") for cell in flower]
    claims.append(make_claim(CellId(9, 150, 150), "alice", owner_name="Alice"))
    claims.append(make_claim(CellId(9, 0, 0), "bob"))

    regions = TerritoryGrouper(grid).group(claims)
    summaries = summarize_owners(regions)

    assert summaries["alice"].region_count == 2
    assert summaries["alice"].cell_count == 8
    assert summaries["alice"].largest_region_cells == 7
    assert summaries["alice"].area_km2 == pytest.approx(8 * grid.cell_area_km2(9))
    assert summaries["bob"].region_count == 1
    assert {region.owner_name for region in regions if region.owner_id == "alice"} == {"Alice"}


def test_region_serialization(grid, flower):
    region, = TerritoryGrouper(grid).group([make_claim(cell, "alice") for cell in flower])
    data = region.to_dict()
    assert data['owner_id'] == "alice"
    assert data['cell_count'] == 7
    assert data['cell_ids'] == sorted(str(cell) for cell in flower)
    assert len(data['boundary']) == 5


if __name__ == "__main__":
    raise SystemExit(pytest.main([__file__, "-v"]))
