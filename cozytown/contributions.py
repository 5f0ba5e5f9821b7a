# cozytown/contributions.py
"""
Slot assignment, validation and suggested amounts for tile contributions.

Everything here is pure: it works on a snapshot of the tile and the
contributor's balance and never touches storage. The commit service in
``transactions.py`` turns a plan into a compare-and-swap write.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Literal, Optional

from .errors import CapExceeded, InsufficientBalance, InvalidAmount, SlotTaken
from .models.tile import Tile

Slot = Literal["a", "b"]
SlotPolicy = Literal["bound", "legacy"]

SLOT_POLICIES = ("bound", "legacy")


# ---------------- slot assignment ----------------

def legacy_slot(tile: Tile) -> Slot:
    # A while A is empty, or while B has started and A is still short of the cap
    if tile.slot_a == 0 or (tile.slot_b > 0 and tile.slot_a < tile.cap):
        return "a"
    return "b"


def bound_slot(tile: Tile, user_id: str) -> Slot:
    if tile.contributor_a_id == user_id:
        return "a"
    if tile.contributor_b_id == user_id:
        return "b"
    if tile.contributor_a_id is None:
        return "a"
    if tile.contributor_b_id is None:
        return "b"
    raise SlotTaken("Both contribution slots on this tile belong to other users")


def assign_slot(tile: Tile, user_id: str, policy: SlotPolicy = "bound") -> Slot:
    if policy == "legacy":
        return legacy_slot(tile)
    if policy == "bound":
        return bound_slot(tile, user_id)
    raise ValueError(f"unknown slot policy: {policy}")


def slot_total(tile: Tile, slot: Slot) -> int:
    return tile.slot_a if slot == "a" else tile.slot_b


# ---------------- suggestion ----------------

def suggest_amount(tile: Tile, user_id: str, balance: int, policy: SlotPolicy = "bound") -> int:
    """Default amount for the contribution dialog. Never authoritative."""
    if tile.is_unlocked:
        return 0
    try:
        slot = assign_slot(tile, user_id, policy)
    except SlotTaken:
        return 0
    cap_left = tile.cap - slot_total(tile, slot)
    return max(0, min(cap_left, tile.remaining, balance))


# ---------------- planning ----------------

@dataclass(frozen=True)
class CommitRequest:
    """
    The transactional write for one contribution.

    ``expected_*`` is the state the plan was validated against; the store
    must refuse the write (StaleWrite) if the stored state differs.
    """
    request_id: str
    tile_id: str
    user_id: str
    slot: Slot
    amount: int

    expected_slot_a: int
    expected_slot_b: int
    expected_contributor_a_id: Optional[str]
    expected_contributor_b_id: Optional[str]
    expected_balance: int

    new_slot_a: int
    new_slot_b: int
    new_contributor_a_id: Optional[str]
    new_contributor_b_id: Optional[str]
    new_balance: int

    def matches(self, tile: Tile, balance: int) -> bool:
        return (
            tile.slot_a == self.expected_slot_a
            and tile.slot_b == self.expected_slot_b
            and tile.contributor_a_id == self.expected_contributor_a_id
            and tile.contributor_b_id == self.expected_contributor_b_id
            and balance == self.expected_balance
        )

    def to_params(self) -> Dict[str, Any]:
        return {
            "p_request_id": self.request_id,
            "p_tile_id": self.tile_id,
            "p_user_id": self.user_id,
            "p_slot": self.slot,
            "p_amount": self.amount,
            "p_expected_slot_a": self.expected_slot_a,
            "p_expected_slot_b": self.expected_slot_b,
            "p_expected_user1_id": self.expected_contributor_a_id,
            "p_expected_user2_id": self.expected_contributor_b_id,
            "p_expected_coins": self.expected_balance,
            "p_new_slot_a": self.new_slot_a,
            "p_new_slot_b": self.new_slot_b,
            "p_new_user1_id": self.new_contributor_a_id,
            "p_new_user2_id": self.new_contributor_b_id,
            "p_new_coins": self.new_balance,
        }


def plan_contribution(
    tile: Tile,
    user_id: str,
    balance: int,
    amount: int,
    request_id: str,
    policy: SlotPolicy = "bound",
) -> CommitRequest:
    """Validate a contribution against a snapshot and build the write for it.

    Raises InvalidAmount, CapExceeded, SlotTaken or InsufficientBalance
    before anything is written.
    """
    if amount <= 0:
        raise InvalidAmount("Please enter a valid contribution amount")
    if tile.is_unlocked:
        raise CapExceeded("This tile is already unlocked")

    slot = assign_slot(tile, user_id, policy)

    if amount > balance:
        raise InsufficientBalance(f"You don't have enough coins ({balance} available)")

    current = slot_total(tile, slot)
    if current + amount > tile.cap:
        raise CapExceeded(
            f"You can only contribute up to {tile.cap - current} more coins "
            f"(50% of unlock cost is {tile.cap})"
        )

    new_a, new_b = tile.slot_a, tile.slot_b
    user_a, user_b = tile.contributor_a_id, tile.contributor_b_id
    if slot == "a":
        new_a += amount
        if policy == "bound":
            user_a = user_id
    else:
        new_b += amount
        if policy == "bound":
            user_b = user_id

    return CommitRequest(
        request_id=request_id,
        tile_id=tile.id,
        user_id=user_id,
        slot=slot,
        amount=amount,
        expected_slot_a=tile.slot_a,
        expected_slot_b=tile.slot_b,
        expected_contributor_a_id=tile.contributor_a_id,
        expected_contributor_b_id=tile.contributor_b_id,
        expected_balance=balance,
        new_slot_a=new_a,
        new_slot_b=new_b,
        new_contributor_a_id=user_a,
        new_contributor_b_id=user_b,
        new_balance=balance - amount,
    )


# ---------------- results ----------------

@dataclass(frozen=True)
class CommitResult:
    tile: Tile
    balance: int
    replayed: bool = False

    @property
    def unlocked(self) -> bool:
        return self.tile.is_unlocked

    def message(self) -> str:
        if self.unlocked:
            return "Tile unlocked! The cozy town is growing!"
        return f"Contribution successful! {self.tile.remaining} coins still needed to unlock this tile."

    def to_front(self) -> Dict[str, Any]:
        return {
            "status": "unlocked" if self.unlocked else "partial",
            "remaining": self.tile.remaining,
            "message": self.message(),
            "tile": self.tile.to_front(),
            "coins": self.balance,
            "replayed": self.replayed,
        }
