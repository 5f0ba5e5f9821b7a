"""Tests for cozytown.transactions: the contribution commit protocol."""

from __future__ import annotations

import threading

import pytest

from conftest import make_user
from cozytown.errors import (
    CapExceeded,
    CommitFailed,
    InsufficientBalance,
    InvalidAmount,
    RequestIdReused,
    StaleWrite,
    StorageError,
)
from cozytown.models.tile import Tile
from cozytown.stores.memory import MemoryStore
from cozytown.transactions import ContributionService


# ---------------------------------------------------------------------------
# Scenarios
# ---------------------------------------------------------------------------

class TestScenarios:
    def test_first_contribution(self, store, tile, service):
        alice = make_user(store, 60)
        result = service.contribute(alice, tile.id, 40)

        assert result.tile.slot_a == 40
        assert result.tile.slot_b == 0
        assert not result.unlocked
        assert result.balance == 20
        assert store.get_balance(alice.user_id) == 20
        assert result.to_front()["status"] == "partial"
        assert result.to_front()["remaining"] == 60

    def test_second_user_at_cap(self, store, tile, service):
        alice, bob = make_user(store, 60), make_user(store, 70)
        service.contribute(alice, tile.id, 40)
        result = service.contribute(bob, tile.id, 50)

        assert (result.tile.slot_a, result.tile.slot_b) == (40, 50)
        assert not result.unlocked
        assert result.balance == 20

    def test_unlock(self, store, tile, service):
        alice, bob = make_user(store, 60), make_user(store, 70)
        service.contribute(alice, tile.id, 40)
        service.contribute(bob, tile.id, 50)
        result = service.contribute(alice, tile.id, 10)

        assert result.unlocked
        assert result.to_front()["status"] == "unlocked"
        assert store.get_balance(alice.user_id) == 10

    def test_unlocked_is_terminal(self, store, tile, service):
        alice, bob = make_user(store, 100), make_user(store, 100)
        service.contribute(alice, tile.id, 50)
        service.contribute(bob, tile.id, 50)
        with pytest.raises(CapExceeded):
            service.contribute(alice, tile.id, 1)
        assert store.get_tile(tile.id).is_unlocked

    @pytest.mark.parametrize("amount", [0, -10])
    def test_invalid_amount_changes_nothing(self, store, tile, service, amount):
        alice = make_user(store, 60)
        with pytest.raises(InvalidAmount):
            service.contribute(alice, tile.id, amount)
        assert store.get_tile(tile.id) == tile
        assert store.get_balance(alice.user_id) == 60

    def test_insufficient_balance_changes_nothing(self, store, tile, service):
        alice = make_user(store, 30)
        with pytest.raises(InsufficientBalance):
            service.contribute(alice, tile.id, 31)
        assert store.get_tile(tile.id) == tile
        assert store.get_balance(alice.user_id) == 30

    def test_reread_after_commit(self, store, tile, service):
        alice = make_user(store, 60)
        result = service.contribute(alice, tile.id, 25)
        assert store.get_tile(tile.id) == result.tile
        assert [c.amount for c in store.contributions_for_tile(tile.id)] == [25]


# ---------------------------------------------------------------------------
# Races
# ---------------------------------------------------------------------------

class RacingStore(MemoryStore):
    """Lets another commit land between a request's read and its commit."""

    def __init__(self):
        super().__init__()
        self.interleave = None

    def commit_contribution(self, req):
        if self.interleave is not None:
            hook, self.interleave = self.interleave, None
            hook()
        return super().commit_contribution(req)


class TestConcurrency:
    def test_loser_fails_against_committed_state(self):
        store = RacingStore()
        t = store.add_tile(Tile(id="t", x=0, y=0, unlock_cost=100))
        service = ContributionService(store, sleep=lambda s: None)
        alice = make_user(store, 100)

        # both requests saw slot A empty; the first to commit takes 30
        store.interleave = lambda: service.contribute(alice, t.id, 30)
        with pytest.raises(CapExceeded):
            service.contribute(alice, t.id, 30)

        assert store.get_tile(t.id).slot_a == 30
        assert store.get_balance(alice.user_id) == 70

    def test_loser_succeeds_when_it_still_fits(self):
        store = RacingStore()
        t = store.add_tile(Tile(id="t", x=0, y=0, unlock_cost=100))
        service = ContributionService(store, sleep=lambda s: None)
        alice, bob = make_user(store, 100), make_user(store, 100)

        store.interleave = lambda: service.contribute(bob, t.id, 20)
        result = service.contribute(alice, t.id, 30)

        # bob bound slot A first, so alice lands in B
        assert (result.tile.slot_a, result.tile.slot_b) == (20, 30)
        assert result.tile.contributor_a_id == bob.user_id

    def test_threads_never_overshoot_cap(self, store, tile):
        service = ContributionService(store, max_stale=50, sleep=lambda s: None)
        alice = make_user(store, 1000)
        outcomes = []

        def worker():
            try:
                service.contribute(alice, tile.id, 10)
                outcomes.append("ok")
            except CapExceeded:
                outcomes.append("cap")

        threads = [threading.Thread(target=worker) for _ in range(12)]
        for th in threads:
            th.start()
        for th in threads:
            th.join()

        assert outcomes.count("ok") == 5
        assert outcomes.count("cap") == 7
        assert store.get_tile(tile.id).slot_a == 50
        assert store.get_balance(alice.user_id) == 950

    def test_threads_never_overdraw_balance(self, store):
        tiles = [store.add_tile(Tile(id=f"t{i}", x=i, y=0, unlock_cost=100)) for i in range(4)]
        service = ContributionService(store, max_stale=50, sleep=lambda s: None)
        alice = make_user(store, 50)
        outcomes = []

        def worker(tile_id):
            try:
                service.contribute(alice, tile_id, 20)
                outcomes.append("ok")
            except InsufficientBalance:
                outcomes.append("broke")

        threads = [threading.Thread(target=worker, args=(t.id,)) for t in tiles]
        for th in threads:
            th.start()
        for th in threads:
            th.join()

        assert outcomes.count("ok") == 2
        assert store.get_balance(alice.user_id) == 10
        assert sum(store.get_tile(t.id).slot_a for t in tiles) == 40


# ---------------------------------------------------------------------------
# Storage failures
# ---------------------------------------------------------------------------

class FlakyStore(MemoryStore):
    """Fails the snapshot write of the next `failures` commits."""

    def __init__(self, failures=0):
        super().__init__()
        self.failures = failures
        self.arm = False

    def _persist(self, snapshot):
        if self.arm and self.failures > 0:
            self.failures -= 1
            raise StorageError("disk full")
        super()._persist(snapshot)


class LostReplyStore(MemoryStore):
    """Applies the first commit, then reports a failure anyway."""

    def __init__(self):
        super().__init__()
        self.lose_next = True

    def commit_contribution(self, req):
        result = super().commit_contribution(req)
        if self.lose_next:
            self.lose_next = False
            raise StorageError("connection reset")
        return result


class TestStorageFailures:
    def _setup(self, store, sleeps):
        t = store.add_tile(Tile(id="t", x=0, y=0, unlock_cost=100))
        alice = make_user(store, 60)
        store.arm = True
        return t, alice, ContributionService(store, retries=2, backoff=0.1, sleep=sleeps.append)

    def test_transient_failure_retried(self, sleeps):
        store = FlakyStore(failures=1)
        t, alice, service = self._setup(store, sleeps)

        result = service.contribute(alice, t.id, 40)
        assert result.tile.slot_a == 40
        assert store.get_balance(alice.user_id) == 20
        assert sleeps == [0.1]

    def test_exhausted_retries_leave_no_partial_state(self, sleeps):
        store = FlakyStore(failures=10)
        t, alice, service = self._setup(store, sleeps)

        with pytest.raises(CommitFailed):
            service.contribute(alice, t.id, 40)

        assert store.get_tile(t.id) == t
        assert store.get_balance(alice.user_id) == 60
        assert store.contributions_for_tile(t.id) == []
        assert sleeps == [0.1, 0.2]

    def test_lost_reply_not_applied_twice(self, sleeps):
        store = LostReplyStore()
        t = store.add_tile(Tile(id="t", x=0, y=0, unlock_cost=100))
        alice = make_user(store, 60)
        service = ContributionService(store, sleep=sleeps.append)

        # 50 fills slot A; re-validating it would fail with CapExceeded
        result = service.contribute(alice, t.id, 50)

        assert result.replayed
        assert result.tile.slot_a == 50
        assert store.get_balance(alice.user_id) == 10
        assert len(store.contributions_for_tile(t.id)) == 1

    def test_same_request_id_applied_once(self, store, tile, service):
        alice = make_user(store, 60)
        service.contribute(alice, tile.id, 20, request_id="req-1")
        again = service.contribute(alice, tile.id, 20, request_id="req-1")

        assert again.replayed
        assert store.get_tile(tile.id).slot_a == 20
        assert store.get_balance(alice.user_id) == 40

    def test_request_id_reused_for_other_contribution(self, store, tile, service):
        other = store.add_tile(Tile(id="t-2", x=1, y=0, unlock_cost=100))
        alice = make_user(store, 60)
        bob = make_user(store, 60)
        service.contribute(alice, tile.id, 20, request_id="req-1")

        with pytest.raises(RequestIdReused):
            service.contribute(bob, other.id, 30, request_id="req-1")
        assert store.get_tile(other.id).slot_a == 0
        assert store.get_balance(bob.user_id) == 60

    def test_request_id_reused_with_other_amount(self, store, tile, service):
        alice = make_user(store, 60)
        service.contribute(alice, tile.id, 20, request_id="req-1")

        with pytest.raises(RequestIdReused):
            service.contribute(alice, tile.id, 25, request_id="req-1")
        assert store.get_tile(tile.id).slot_a == 20
        assert store.get_balance(alice.user_id) == 40

    def test_retry_after_failure_checks_request(self, sleeps):
        class DropOnce(MemoryStore):
            drop = False

            def commit_contribution(self, req):
                if self.drop:
                    self.drop = False
                    raise StorageError("connection reset")
                return super().commit_contribution(req)

        store = DropOnce()
        t = store.add_tile(Tile(id="t", x=0, y=0, unlock_cost=100))
        alice = make_user(store, 60)
        bob = make_user(store, 60)
        service = ContributionService(store, sleep=sleeps.append)
        service.contribute(alice, t.id, 10, request_id="req-1")

        store.drop = True
        with pytest.raises(RequestIdReused):
            service.contribute(bob, t.id, 10, request_id="req-1")
        assert store.get_tile(t.id).slot_b == 0
        assert store.get_balance(bob.user_id) == 60

    def test_endless_contention_gives_up(self):
        class AlwaysStale(MemoryStore):
            def commit_contribution(self, req):
                raise StaleWrite("busy")

        busy = AlwaysStale()
        t = busy.add_tile(Tile(id="t", x=0, y=0, unlock_cost=100))
        alice = make_user(busy, 60)
        service = ContributionService(busy, max_stale=3, sleep=lambda s: None)

        with pytest.raises(CommitFailed):
            service.contribute(alice, t.id, 10)
        assert busy.get_balance(alice.user_id) == 60


# ---------------------------------------------------------------------------
# Legacy slot policy
# ---------------------------------------------------------------------------

class TestLegacyPolicy:
    def test_first_and_second_contribution(self, store, tile, sleeps):
        service = ContributionService(store, policy="legacy", sleep=sleeps.append)
        alice = make_user(store, 60)
        bob = make_user(store, 70)

        first = service.contribute(alice, tile.id, 40)
        assert (first.tile.slot_a, first.tile.slot_b, first.balance) == (40, 0, 20)

        second = service.contribute(bob, tile.id, 50)
        assert (second.tile.slot_a, second.tile.slot_b) == (40, 50)
        assert not second.unlocked
        assert store.get_balance(bob.user_id) == 20

    def test_slots_not_bound_to_users(self, store, tile, sleeps):
        service = ContributionService(store, policy="legacy", sleep=sleeps.append)
        alice, bob, carol = make_user(store, 60), make_user(store, 70), make_user(store, 20)
        service.contribute(alice, tile.id, 40)
        service.contribute(bob, tile.id, 50)

        # a third user tops up slot A
        result = service.contribute(carol, tile.id, 10)
        assert result.unlocked
        assert (result.tile.contributor_a_id, result.tile.contributor_b_id) == (None, None)
        assert store.get_balance(carol.user_id) == 10

    def test_over_cap_rejected(self, store, tile, sleeps):
        service = ContributionService(store, policy="legacy", sleep=sleeps.append)
        alice = make_user(store, 100)
        with pytest.raises(CapExceeded):
            service.contribute(alice, tile.id, 51)
        assert store.get_tile(tile.id) == tile


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------

class TestSnapshot:
    def test_committed_totals_survive_reload(self, tmp_path):
        path = str(tmp_path / "state.json")
        store = MemoryStore(path)
        t = store.add_tile(Tile(id="t", x=2, y=1, unlock_cost=100))
        alice = make_user(store, 60)
        ContributionService(store).contribute(alice, t.id, 40)

        reloaded = MemoryStore(path)
        tile = reloaded.get_tile(t.id)
        assert (tile.slot_a, tile.contributor_a_id) == (40, alice.user_id)
        assert reloaded.get_balance(alice.user_id) == 20
        assert reloaded.get_contribution(store.contributions_for_tile(t.id)[0].request_id) is not None

    def test_suggestion(self, store, tile, service):
        alice = make_user(store, 30)
        s = service.suggestion(alice, tile.id)
        assert s["suggested"] == 30
        assert s["coins"] == 30
        assert store.get_tile(tile.id) == tile
