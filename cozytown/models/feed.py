from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Literal, Optional

FeedKind = Literal["post", "activity", "challenge"]


@dataclass
class FeedItem:
    id: str
    kind: FeedKind
    user_id: str
    created_at: datetime
    data: Dict[str, Any] = field(default_factory=dict)
    photo_url: Optional[str] = None

    def to_front(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind,
            "userId": self.user_id,
            "createdAt": self.created_at.isoformat(),
            "photoUrl": self.photo_url,
            **self.data,
        }

    def to_row(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind,
            "user_id": self.user_id,
            "created_at": self.created_at.isoformat(),
            "data": self.data,
            "photo_url": self.photo_url,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "FeedItem":
        created = row["created_at"]
        return cls(
            id=str(row["id"]),
            kind=row["kind"],
            user_id=str(row["user_id"]),
            created_at=datetime.fromisoformat(created) if isinstance(created, str) else created,
            data=dict(row.get("data") or {}),
            photo_url=row.get("photo_url"),
        )


@dataclass
class PushSubscription:
    id: str
    user_id: str
    endpoint: str
    subscription: Dict[str, Any]
    active: bool = True

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "PushSubscription":
        return cls(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            endpoint=row["endpoint"],
            subscription=dict(row.get("subscription") or {}),
            active=bool(row.get("active", True)),
        )
