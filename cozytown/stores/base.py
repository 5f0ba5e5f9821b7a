from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol

from ..contributions import CommitRequest, CommitResult
from ..models.feed import FeedItem, PushSubscription
from ..models.profile import Profile
from ..models.tile import Tile

PROFILE_FIELDS = ("display_name", "workouts_per_week", "fitness_goal", "experience_level", "onboarding_completed")


@dataclass(frozen=True)
class Contribution:
    """One applied contribution, keyed by the request id that produced it."""
    request_id: str
    tile_id: str
    user_id: str
    slot: str
    amount: int
    created_at: datetime

    def to_front(self) -> Dict[str, Any]:
        return {
            "requestId": self.request_id,
            "tileId": self.tile_id,
            "userId": self.user_id,
            "slot": self.slot,
            "amount": self.amount,
            "createdAt": self.created_at.isoformat(),
        }

    def to_row(self) -> Dict[str, Any]:
        return {
            "request_id": self.request_id,
            "tile_id": self.tile_id,
            "user_id": self.user_id,
            "slot": self.slot,
            "amount": self.amount,
            "created_at": self.created_at.isoformat(),
        }

    def same_request(self, tile_id: str, user_id: str, amount: int) -> bool:
        return (self.tile_id, self.user_id, self.amount) == (tile_id, user_id, amount)

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Contribution":
        created = row["created_at"]
        return cls(
            request_id=str(row["request_id"]),
            tile_id=str(row["tile_id"]),
            user_id=str(row["user_id"]),
            slot=row["slot"],
            amount=int(row["amount"]),
            created_at=datetime.fromisoformat(created) if isinstance(created, str) else created,
        )


class Store(Protocol):
    """
    Everything the services need from persistence.

    commit_contribution is the only multi-record write and must be
    all-or-nothing: raise StaleWrite when the stored tile/balance no longer
    match the request's expected values, StorageError on any fault, and
    return the already-applied result when request_id was seen before.
    """

    # tiles
    def list_tiles(self) -> List[Tile]: ...
    def get_tile(self, tile_id: str) -> Tile: ...
    def get_balance(self, user_id: str) -> int: ...
    def commit_contribution(self, req: CommitRequest) -> CommitResult: ...
    def contributions_for_tile(self, tile_id: str) -> List[Contribution]: ...
    def get_contribution(self, request_id: str) -> Optional[Contribution]: ...

    # profiles
    def create_profile(self, user_id: str, display_name: str, coins: int) -> Profile: ...
    def get_profile(self, user_id: str) -> Profile: ...
    def update_profile(self, user_id: str, fields: Dict[str, Any]) -> Profile: ...

    # feed
    def add_feed_item(self, item: FeedItem) -> FeedItem: ...
    def list_feed(self, limit: int, user_id: Optional[str] = None) -> List[FeedItem]: ...

    # push
    def upsert_subscription(self, user_id: str, endpoint: str, subscription: Dict[str, Any]) -> bool: ...
    def active_subscriptions(self, user_id: str) -> List[PushSubscription]: ...
    def deactivate_subscription(self, subscription_id: str) -> None: ...
