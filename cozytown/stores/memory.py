# cozytown/stores/memory.py
from __future__ import annotations

import copy
import logging
import threading
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..contributions import CommitRequest, CommitResult
from ..errors import NotFound, RequestIdReused, StaleWrite, TileNotFound, ValidationFailed
from ..models.account import Account
from ..models.feed import FeedItem, PushSubscription
from ..models.profile import Profile
from ..models.tile import TILE_TYPES, Tile
from ..models.wallet import Wallet
from ..storage import load_state, save_state
from .base import PROFILE_FIELDS, Contribution

log = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class MemoryStore:
    """
    In-process store for local runs and tests.

    One lock guards all state, so commits are serialized across tiles too.
    With a state_file every write is snapshotted to JSON before it becomes
    visible; a failed snapshot leaves memory untouched.
    """

    def __init__(self, state_file: Optional[str] = None):
        self.state_file = state_file
        self._lock = threading.RLock()

        self._tiles: Dict[str, Tile] = {}
        self._profiles: Dict[str, Profile] = {}
        self._ledger: List[Contribution] = []
        self._feed: List[FeedItem] = []
        self._subs: Dict[str, PushSubscription] = {}
        self._accounts: Dict[str, Account] = {}   # email -> account

        if state_file:
            data = load_state(state_file)
            if data:
                self._load(data)
                log.info("loaded %d tiles and %d profiles from %s", len(self._tiles), len(self._profiles), state_file)

    # ---------------- snapshot ----------------

    def _dump(self, tiles=None, profiles=None, ledger=None, feed=None, subs=None, accounts=None) -> Dict[str, Any]:
        tiles = self._tiles if tiles is None else tiles
        profiles = self._profiles if profiles is None else profiles
        ledger = self._ledger if ledger is None else ledger
        feed = self._feed if feed is None else feed
        subs = self._subs if subs is None else subs
        accounts = self._accounts if accounts is None else accounts
        return {
            "tiles": [t.to_row() for t in tiles.values()],
            "profiles": [p.to_row() for p in profiles.values()],
            "contributions": [c.to_row() for c in ledger],
            "feed": [f.to_row() for f in feed],
            "pushSubscriptions": [
                {"id": s.id, "user_id": s.user_id, "endpoint": s.endpoint,
                 "subscription": s.subscription, "active": s.active}
                for s in subs.values()
            ],
            "accounts": [a.to_row() for a in accounts.values()],
        }

    def _load(self, data: Dict[str, Any]) -> None:
        self._tiles = {t.id: t for t in (Tile.from_row(r) for r in data.get("tiles", []))}
        self._profiles = {p.user_id: p for p in (Profile.from_row(r) for r in data.get("profiles", []))}
        self._ledger = [Contribution.from_row(r) for r in data.get("contributions", [])]
        self._feed = [FeedItem.from_row(r) for r in data.get("feed", [])]
        self._subs = {s.id: s for s in (PushSubscription.from_row(r) for r in data.get("pushSubscriptions", []))}
        self._accounts = {a.email: a for a in (Account.from_row(r) for r in data.get("accounts", []))}

    def _persist(self, snapshot: Dict[str, Any]) -> None:
        if self.state_file:
            save_state(snapshot, self.state_file)

    # ---------------- seeding (dev/tests) ----------------

    def add_tile(self, tile: Tile) -> Tile:
        with self._lock:
            if any((t.x, t.y) == (tile.x, tile.y) for t in self._tiles.values()):
                raise ValueError(f"tile already exists at ({tile.x}, {tile.y})")
            tiles = dict(self._tiles)
            tiles[tile.id] = tile
            self._persist(self._dump(tiles=tiles))
            self._tiles = tiles
            return tile

    def seed_grid(self, cols: int, rows: int, unlock_cost: int) -> List[Tile]:
        with self._lock:
            if self._tiles:
                return []
            created = []
            for y in range(rows):
                for x in range(cols):
                    tile_type = TILE_TYPES[(x * cols + y) % len(TILE_TYPES)]
                    created.append(self.add_tile(Tile(id=str(uuid.uuid4()), x=x, y=y,
                                                      unlock_cost=unlock_cost, tile_type=tile_type)))
            log.info("seeded %dx%d map (unlock cost %d)", cols, rows, unlock_cost)
            return created

    def credit(self, user_id: str, amount: int) -> int:
        with self._lock:
            profile = self._profile(user_id)
            wallet = Wallet(profile.coins).credit(amount)
            profiles = dict(self._profiles)
            profiles[user_id] = replace(profile, wallet=wallet)
            self._persist(self._dump(profiles=profiles))
            self._profiles = profiles
            return wallet.coins

    # ---------------- tiles ----------------

    def list_tiles(self) -> List[Tile]:
        with self._lock:
            return sorted(self._tiles.values(), key=lambda t: (t.y, t.x))

    def get_tile(self, tile_id: str) -> Tile:
        with self._lock:
            tile = self._tiles.get(tile_id)
        if tile is None:
            raise TileNotFound(f"Tile {tile_id} not found")
        return tile

    def get_balance(self, user_id: str) -> int:
        with self._lock:
            return self._profile(user_id).coins

    def commit_contribution(self, req: CommitRequest) -> CommitResult:
        with self._lock:
            prior = self.get_contribution(req.request_id)
            if prior is not None:
                if not prior.same_request(req.tile_id, req.user_id, req.amount):
                    raise RequestIdReused(f"Request {req.request_id} was already used for another contribution")
                return CommitResult(tile=self.get_tile(req.tile_id), balance=self.get_balance(req.user_id), replayed=True)

            tile = self.get_tile(req.tile_id)
            profile = self._profile(req.user_id)
            if not req.matches(tile, profile.coins):
                raise StaleWrite(f"tile {req.tile_id} changed since it was read")

            now = _now()
            # building the new tile re-checks the per-slot cap
            new_tile = tile.with_slots(req.new_slot_a, req.new_slot_b,
                                       req.new_contributor_a_id, req.new_contributor_b_id, updated_at=now)
            wallet = Wallet(profile.coins).debit(req.amount)

            tiles = dict(self._tiles)
            tiles[tile.id] = new_tile
            profiles = dict(self._profiles)
            profiles[profile.user_id] = replace(profile, wallet=wallet)
            ledger = self._ledger + [Contribution(req.request_id, tile.id, req.user_id, req.slot, req.amount, now)]

            self._persist(self._dump(tiles=tiles, profiles=profiles, ledger=ledger))
            self._tiles, self._profiles, self._ledger = tiles, profiles, ledger
            return CommitResult(tile=new_tile, balance=wallet.coins)

    def contributions_for_tile(self, tile_id: str) -> List[Contribution]:
        with self._lock:
            self.get_tile(tile_id)
            return [c for c in self._ledger if c.tile_id == tile_id]

    def get_contribution(self, request_id: str) -> Optional[Contribution]:
        with self._lock:
            return next((c for c in self._ledger if c.request_id == request_id), None)

    # ---------------- profiles ----------------

    def _profile(self, user_id: str) -> Profile:
        profile = self._profiles.get(user_id)
        if profile is None:
            raise NotFound(f"Profile {user_id} not found")
        return profile

    def create_profile(self, user_id: str, display_name: str, coins: int) -> Profile:
        with self._lock:
            if user_id in self._profiles:
                return copy.deepcopy(self._profiles[user_id])
            profile = Profile(user_id=user_id, display_name=display_name, wallet=Wallet(coins))
            profiles = dict(self._profiles)
            profiles[user_id] = profile
            self._persist(self._dump(profiles=profiles))
            self._profiles = profiles
            return copy.deepcopy(profile)

    def get_profile(self, user_id: str) -> Profile:
        with self._lock:
            return copy.deepcopy(self._profile(user_id))

    def update_profile(self, user_id: str, fields: Dict[str, Any]) -> Profile:
        unknown = set(fields) - set(PROFILE_FIELDS)
        if unknown:
            raise ValidationFailed(f"Cannot update profile fields: {', '.join(sorted(unknown))}")
        with self._lock:
            profile = replace(self._profile(user_id), **fields)
            profiles = dict(self._profiles)
            profiles[user_id] = profile
            self._persist(self._dump(profiles=profiles))
            self._profiles = profiles
            return copy.deepcopy(profile)

    # ---------------- feed ----------------

    def add_feed_item(self, item: FeedItem) -> FeedItem:
        with self._lock:
            feed = self._feed + [item]
            self._persist(self._dump(feed=feed))
            self._feed = feed
            return item

    def list_feed(self, limit: int, user_id: Optional[str] = None) -> List[FeedItem]:
        with self._lock:
            items = [(i, f) for i, f in enumerate(self._feed) if user_id is None or f.user_id == user_id]
        # insertion order breaks timestamp ties
        items.sort(key=lambda p: (p[1].created_at, p[0]), reverse=True)
        return [f for _, f in items[:limit]]

    # ---------------- push subscriptions ----------------

    def upsert_subscription(self, user_id: str, endpoint: str, subscription: Dict[str, Any]) -> bool:
        with self._lock:
            subs = dict(self._subs)
            existing = next((s for s in subs.values() if s.user_id == user_id and s.endpoint == endpoint), None)
            if existing:
                subs[existing.id] = replace(existing, subscription=subscription, active=True)
            else:
                sub_id = str(uuid.uuid4())
                subs[sub_id] = PushSubscription(sub_id, user_id, endpoint, subscription, True)
            self._persist(self._dump(subs=subs))
            self._subs = subs
            return existing is None

    def active_subscriptions(self, user_id: str) -> List[PushSubscription]:
        with self._lock:
            return [s for s in self._subs.values() if s.user_id == user_id and s.active]

    def deactivate_subscription(self, subscription_id: str) -> None:
        with self._lock:
            sub = self._subs.get(subscription_id)
            if sub is None or not sub.active:
                return
            subs = dict(self._subs)
            subs[subscription_id] = replace(sub, active=False)
            self._persist(self._dump(subs=subs))
            self._subs = subs

    # ---------------- local accounts ----------------

    def create_account(self, account: Account, display_name: str, coins: int) -> Profile:
        """Store a login together with its profile, in one snapshot."""
        with self._lock:
            if account.email in self._accounts:
                raise ValidationFailed("User already registered")
            accounts = dict(self._accounts)
            accounts[account.email] = account
            profiles = dict(self._profiles)
            profile = profiles.get(account.id) or Profile(user_id=account.id, display_name=display_name,
                                                          wallet=Wallet(coins))
            profiles[account.id] = profile
            self._persist(self._dump(profiles=profiles, accounts=accounts))
            self._accounts, self._profiles = accounts, profiles
            return copy.deepcopy(profile)

    def get_account(self, email: str) -> Optional[Account]:
        with self._lock:
            return self._accounts.get(email)

    def list_accounts(self) -> List[Account]:
        with self._lock:
            return sorted(self._accounts.values(), key=lambda a: a.created_at)
