from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List

from .tile import Tile


def grid_order(tiles: Iterable[Tile]) -> List[Tile]:
    """Row (y) first, then column (x), the order the map is rendered in."""
    return sorted(tiles, key=lambda t: (t.y, t.x))


@dataclass
class TownMap:
    tiles: List[Tile]

    def __post_init__(self):
        self.tiles = grid_order(self.tiles)
        coords = [(t.x, t.y) for t in self.tiles]
        if len(coords) != len(set(coords)):
            raise ValueError("tile coordinates must be unique")

    @property
    def total_tiles(self) -> int:
        return len(self.tiles)

    @property
    def unlocked_tiles(self) -> int:
        return sum(1 for t in self.tiles if t.is_unlocked)

    @property
    def progress(self) -> int:
        if not self.tiles:
            return 0
        return round(100 * self.unlocked_tiles / self.total_tiles)

    @property
    def status(self) -> str:
        return "unlocked" if self.tiles and self.unlocked_tiles == self.total_tiles else "in-progress"

    def progress_dict(self) -> Dict[str, Any]:
        return {
            "totalTiles": self.total_tiles,
            "unlockedTiles": self.unlocked_tiles,
            "progress": self.progress,
            "status": self.status,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {"tiles": [t.to_front() for t in self.tiles], **self.progress_dict()}
