from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Dict, Optional

GRID_COLS = 6

TILE_TYPES = ("road", "house", "shop", "forest", "park", "building")


@dataclass(frozen=True)
class Tile:
    """
    One grid cell of the town map.

    Unlocking takes two contributors, each funding half of ``unlock_cost``.
    ``is_unlocked`` is always derived from the slot totals and never stored.
    """
    id: str
    x: int
    y: int
    unlock_cost: int
    tile_type: str = "house"
    slot_a: int = 0
    slot_b: int = 0
    contributor_a_id: Optional[str] = None
    contributor_b_id: Optional[str] = None
    image_url: Optional[str] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if self.unlock_cost <= 0:
            raise ValueError("unlock_cost must be > 0")
        if not (0 <= self.slot_a <= self.cap and 0 <= self.slot_b <= self.cap):
            raise ValueError(f"slot totals out of range for tile {self.id}")

    @property
    def cap(self) -> int:
        return self.unlock_cost // 2

    @property
    def contributed(self) -> int:
        return self.slot_a + self.slot_b

    @property
    def remaining(self) -> int:
        return max(self.unlock_cost - self.contributed, 0)

    @property
    def is_unlocked(self) -> bool:
        return self.slot_a >= self.cap and self.slot_b >= self.cap

    @property
    def asset_index(self) -> int:
        return self.x * GRID_COLS + self.y + 1

    @property
    def progress(self) -> float:
        return round(100.0 * min(self.contributed, self.unlock_cost) / self.unlock_cost, 1)

    def with_slots(self, slot_a: int, slot_b: int, contributor_a_id: Optional[str],
                   contributor_b_id: Optional[str], updated_at: Optional[datetime] = None) -> "Tile":
        return replace(
            self,
            slot_a=slot_a,
            slot_b=slot_b,
            contributor_a_id=contributor_a_id,
            contributor_b_id=contributor_b_id,
            updated_at=updated_at or self.updated_at,
        )

    def to_front(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "x": self.x,
            "y": self.y,
            "tileType": self.tile_type,
            "assetIndex": self.asset_index,
            "unlockCost": self.unlock_cost,
            "cap": self.cap,
            "slotA": self.slot_a,
            "slotB": self.slot_b,
            "contributorA": self.contributor_a_id,
            "contributorB": self.contributor_b_id,
            "remaining": self.remaining,
            "progress": self.progress,
            "isUnlocked": self.is_unlocked,
            "imageUrl": self.image_url,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }

    def to_row(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "position_x": self.x,
            "position_y": self.y,
            "tile_type": self.tile_type,
            "unlock_cost": self.unlock_cost,
            "user1_contribution": self.slot_a,
            "user2_contribution": self.slot_b,
            "user1_id": self.contributor_a_id,
            "user2_id": self.contributor_b_id,
            "image_url": self.image_url,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Tile":
        # is_unlocked in the row (if any) is ignored; it is recomputed from the slots
        updated = row.get("updated_at")
        return cls(
            id=str(row["id"]),
            x=int(row["position_x"]),
            y=int(row["position_y"]),
            tile_type=row.get("tile_type") or "house",
            unlock_cost=int(row["unlock_cost"]),
            slot_a=int(row.get("user1_contribution") or 0),
            slot_b=int(row.get("user2_contribution") or 0),
            contributor_a_id=row.get("user1_id"),
            contributor_b_id=row.get("user2_id"),
            image_url=row.get("image_url"),
            updated_at=datetime.fromisoformat(updated) if isinstance(updated, str) else updated,
        )
