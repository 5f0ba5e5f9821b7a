from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict


@dataclass(frozen=True)
class Account:
    """Email/password login for the local backend. ``password_hash`` is werkzeug's encoded hash."""
    id: str
    email: str
    password_hash: str
    created_at: datetime

    def to_front(self) -> Dict[str, Any]:
        return {"id": self.id, "email": self.email, "createdAt": self.created_at.isoformat()}

    def to_row(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "password_hash": self.password_hash,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Account":
        return cls(
            id=str(row["id"]),
            email=row["email"],
            password_hash=row["password_hash"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )
