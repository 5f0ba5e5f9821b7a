"""Tests for cozytown.models: tile state, the town map and wallets."""

from __future__ import annotations

import pytest

from cozytown.errors import InsufficientBalance, InvalidAmount
from cozytown.models.board import TownMap, grid_order
from cozytown.models.tile import Tile
from cozytown.models.wallet import Wallet


# ---------------------------------------------------------------------------
# Tile
# ---------------------------------------------------------------------------

class TestTile:
    def test_cap_is_half_rounded_down(self):
        assert Tile(id="a", x=0, y=0, unlock_cost=100).cap == 50
        assert Tile(id="b", x=0, y=1, unlock_cost=101).cap == 50
        assert Tile(id="c", x=0, y=2, unlock_cost=1).cap == 0

    def test_unlock_needs_both_slots_at_cap(self):
        t = Tile(id="a", x=0, y=0, unlock_cost=100, slot_a=50, slot_b=40)
        assert not t.is_unlocked
        assert t.remaining == 10
        assert Tile(id="a", x=0, y=0, unlock_cost=100, slot_a=50, slot_b=50).is_unlocked

    def test_odd_cost_unlocks_at_cap(self):
        t = Tile(id="a", x=0, y=0, unlock_cost=101, slot_a=50, slot_b=50)
        assert t.is_unlocked
        assert t.remaining == 1

    def test_asset_index(self):
        assert Tile(id="a", x=0, y=0, unlock_cost=10).asset_index == 1
        assert Tile(id="a", x=2, y=3, unlock_cost=10).asset_index == 16

    def test_slot_over_cap_rejected(self):
        with pytest.raises(ValueError):
            Tile(id="a", x=0, y=0, unlock_cost=100, slot_a=51)

    def test_negative_slot_rejected(self):
        with pytest.raises(ValueError):
            Tile(id="a", x=0, y=0, unlock_cost=100, slot_b=-1)

    def test_cost_must_be_positive(self):
        with pytest.raises(ValueError):
            Tile(id="a", x=0, y=0, unlock_cost=0)

    def test_progress(self):
        assert Tile(id="a", x=0, y=0, unlock_cost=100, slot_a=40).progress == 40.0

    def test_from_row_recomputes_unlock(self):
        row = {
            "id": "t", "position_x": 1, "position_y": 2, "unlock_cost": 100,
            "user1_contribution": 50, "user2_contribution": 10, "is_unlocked": True,
        }
        t = Tile.from_row(row)
        assert (t.x, t.y, t.slot_a, t.slot_b) == (1, 2, 50, 10)
        assert not t.is_unlocked

    def test_row_roundtrip_keeps_contributors(self):
        t = Tile(id="t", x=1, y=2, unlock_cost=80, slot_a=10, contributor_a_id="u1")
        assert Tile.from_row(t.to_row()) == t

    def test_to_front(self):
        front = Tile(id="t", x=1, y=0, unlock_cost=100, slot_a=50, slot_b=50).to_front()
        assert front["isUnlocked"] is True
        assert front["assetIndex"] == 7
        assert front["remaining"] == 0


# ---------------------------------------------------------------------------
# TownMap
# ---------------------------------------------------------------------------

class TestTownMap:
    def _tiles(self):
        return [
            Tile(id="c", x=0, y=1, unlock_cost=10, slot_a=5, slot_b=5),
            Tile(id="b", x=1, y=0, unlock_cost=10),
            Tile(id="a", x=0, y=0, unlock_cost=10, slot_a=5, slot_b=5),
        ]

    def test_grid_order_row_then_column(self):
        assert [t.id for t in grid_order(self._tiles())] == ["a", "b", "c"]

    def test_progress(self):
        town = TownMap(self._tiles())
        assert town.total_tiles == 3
        assert town.unlocked_tiles == 2
        assert town.progress == 67
        assert town.status == "in-progress"

    def test_fully_unlocked(self):
        town = TownMap([Tile(id="a", x=0, y=0, unlock_cost=2, slot_a=1, slot_b=1)])
        assert town.status == "unlocked"
        assert town.progress_dict()["progress"] == 100

    def test_empty_map(self):
        town = TownMap([])
        assert town.progress == 0
        assert town.status == "in-progress"

    def test_duplicate_coordinates_rejected(self):
        with pytest.raises(ValueError):
            TownMap([Tile(id="a", x=0, y=0, unlock_cost=2), Tile(id="b", x=0, y=0, unlock_cost=2)])


class TestWallet:
    def test_debit_returns_new_wallet(self):
        wallet = Wallet(60)
        assert wallet.debit(40).coins == 20
        assert wallet.coins == 60

    def test_cannot_overdraw(self):
        with pytest.raises(InsufficientBalance):
            Wallet(10).debit(11)

    def test_amounts_must_be_positive(self):
        with pytest.raises(InvalidAmount):
            Wallet(10).debit(0)
        with pytest.raises(InvalidAmount):
            Wallet(10).credit(-5)

    def test_never_negative(self):
        with pytest.raises(ValueError):
            Wallet(-1)
