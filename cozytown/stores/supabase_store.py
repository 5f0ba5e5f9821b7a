# cozytown/stores/supabase_store.py
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx
from postgrest.exceptions import APIError
from supabase import Client, create_client

from ..contributions import CommitRequest, CommitResult
from ..errors import NotFound, RequestIdReused, StaleWrite, StorageError, TileNotFound, ValidationFailed
from ..models.feed import FeedItem, PushSubscription
from ..models.profile import Profile
from ..models.tile import Tile
from .base import PROFILE_FIELDS, Contribution

log = logging.getLogger(__name__)

COMMIT_FUNCTION = "contribute_to_tile"


class SupabaseStore:
    """
    Store backed by Supabase tables (service-role client).

    The contribution commit runs inside the ``contribute_to_tile`` Postgres
    function (see supabase/migrations), which locks the tile and profile
    rows, compares them with the expected values and writes both in one
    transaction.
    """

    def __init__(self, url: str, key: str, client: Optional[Client] = None):
        if client is None:
            if not url or not key:
                raise ValueError("Missing SUPABASE_URL / SUPABASE_SERVICE_ROLE_KEY")
            client = create_client(url, key)
        self.client = client

    def _rows(self, query) -> List[Dict[str, Any]]:
        try:
            return query.execute().data or []
        except (APIError, httpx.HTTPError) as e:
            log.error("supabase query failed: %s", e)
            raise StorageError(str(e)) from e

    # ---------------- tiles ----------------

    def list_tiles(self) -> List[Tile]:
        rows = self._rows(
            self.client.table("tiles").select("*").order("position_y").order("position_x")
        )
        return [Tile.from_row(r) for r in rows]

    def get_tile(self, tile_id: str) -> Tile:
        rows = self._rows(self.client.table("tiles").select("*").eq("id", tile_id).limit(1))
        if not rows:
            raise TileNotFound(f"Tile {tile_id} not found")
        return Tile.from_row(rows[0])

    def get_balance(self, user_id: str) -> int:
        rows = self._rows(self.client.table("profiles").select("coins").eq("id", user_id).limit(1))
        if not rows:
            raise NotFound(f"Profile {user_id} not found")
        return int(rows[0].get("coins") or 0)

    def commit_contribution(self, req: CommitRequest) -> CommitResult:
        try:
            data = self.client.rpc(COMMIT_FUNCTION, req.to_params()).execute().data
        except (APIError, httpx.HTTPError) as e:
            log.warning("commit rpc failed for tile %s: %s", req.tile_id, e)
            raise StorageError(str(e)) from e

        if isinstance(data, list):
            data = data[0] if data else None
        if not data:
            raise StorageError("empty response from commit function")

        status = data.get("status")
        if status == "conflict":
            raise RequestIdReused(f"Request {req.request_id} was already used for another contribution")
        if status == "stale":
            raise StaleWrite(f"tile {req.tile_id} changed since it was read")
        if status not in ("ok", "replayed"):
            raise StorageError(f"unexpected commit status: {status!r}")

        return CommitResult(
            tile=Tile.from_row(data["tile"]),
            balance=int(data["coins"]),
            replayed=status == "replayed",
        )

    def contributions_for_tile(self, tile_id: str) -> List[Contribution]:
        self.get_tile(tile_id)
        rows = self._rows(
            self.client.table("tile_contributions").select("*").eq("tile_id", tile_id).order("created_at")
        )
        return [Contribution.from_row(r) for r in rows]

    def get_contribution(self, request_id: str) -> Optional[Contribution]:
        rows = self._rows(
            self.client.table("tile_contributions").select("*").eq("request_id", request_id).limit(1)
        )
        return Contribution.from_row(rows[0]) if rows else None

    # ---------------- profiles ----------------

    def create_profile(self, user_id: str, display_name: str, coins: int) -> Profile:
        row = {"id": user_id, "display_name": display_name, "coins": coins}
        # ignore_duplicates keeps an existing balance intact
        self._rows(self.client.table("profiles").upsert(row, on_conflict="id", ignore_duplicates=True))
        return self.get_profile(user_id)

    def get_profile(self, user_id: str) -> Profile:
        rows = self._rows(self.client.table("profiles").select("*").eq("id", user_id).limit(1))
        if not rows:
            raise NotFound(f"Profile {user_id} not found")
        return Profile.from_row(rows[0])

    def update_profile(self, user_id: str, fields: Dict[str, Any]) -> Profile:
        unknown = set(fields) - set(PROFILE_FIELDS)
        if unknown:
            raise ValidationFailed(f"Cannot update profile fields: {', '.join(sorted(unknown))}")
        payload = dict(fields, updated_at=datetime.now(timezone.utc).isoformat())
        rows = self._rows(self.client.table("profiles").update(payload).eq("id", user_id))
        if not rows:
            raise NotFound(f"Profile {user_id} not found")
        return Profile.from_row(rows[0])

    # ---------------- feed ----------------

    def add_feed_item(self, item: FeedItem) -> FeedItem:
        self._rows(self.client.table("feed_items").insert(item.to_row()))
        return item

    def list_feed(self, limit: int, user_id: Optional[str] = None) -> List[FeedItem]:
        query = self.client.table("feed_items").select("*")
        if user_id is not None:
            query = query.eq("user_id", user_id)
        rows = self._rows(query.order("created_at", desc=True).limit(limit))
        return [FeedItem.from_row(r) for r in rows]

    # ---------------- push subscriptions ----------------

    def upsert_subscription(self, user_id: str, endpoint: str, subscription: Dict[str, Any]) -> bool:
        table = self.client.table("push_subscriptions")
        existing = self._rows(table.select("id").eq("user_id", user_id).eq("endpoint", endpoint).limit(1))
        now = datetime.now(timezone.utc).isoformat()
        if existing:
            self._rows(
                self.client.table("push_subscriptions")
                .update({"subscription": subscription, "active": True, "updated_at": now})
                .eq("id", existing[0]["id"])
            )
            return False

        self._rows(self.client.table("push_subscriptions").insert({
            "id": str(uuid.uuid4()),
            "user_id": user_id,
            "endpoint": endpoint,
            "subscription": subscription,
            "active": True,
        }))
        return True

    def active_subscriptions(self, user_id: str) -> List[PushSubscription]:
        rows = self._rows(
            self.client.table("push_subscriptions").select("*").eq("user_id", user_id).eq("active", True)
        )
        return [PushSubscription.from_row(r) for r in rows]

    def deactivate_subscription(self, subscription_id: str) -> None:
        self._rows(self.client.table("push_subscriptions").update({"active": False}).eq("id", subscription_id))
