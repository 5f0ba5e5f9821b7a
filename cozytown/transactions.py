# cozytown/transactions.py
import logging
import time
import uuid
from typing import Any, Callable, Dict, Optional

from .contributions import CommitResult, SlotPolicy, plan_contribution, suggest_amount
from .errors import CommitFailed, RequestIdReused, StaleWrite, StorageError
from .session import Session
from .stores.base import Store

log = logging.getLogger(__name__)


class ContributionService:
    """
    Read, validate, compare-and-swap commit, retry.

    Every attempt re-reads the tile and the balance, so a contender that
    lost a race is validated again against the committed state (and gets
    CapExceeded if the slot filled up meanwhile). The request id stays the
    same across attempts; a commit whose reply was lost is not applied twice.
    """

    def __init__(
        self,
        store: Store,
        policy: SlotPolicy = "bound",
        retries: int = 3,
        backoff: float = 0.05,
        max_stale: int = 10,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.store = store
        self.policy = policy
        self.retries = retries
        self.backoff = backoff
        self.max_stale = max_stale
        self._sleep = sleep

    def suggestion(self, session: Session, tile_id: str) -> Dict[str, Any]:
        tile = self.store.get_tile(tile_id)
        balance = self.store.get_balance(session.user_id)
        amount = suggest_amount(tile, session.user_id, balance, self.policy)
        return {
            "tileId": tile.id,
            "suggested": amount,
            "max": max(0, min(tile.cap, balance)),
            "coins": balance,
            "tile": tile.to_front(),
        }

    def contribute(self, session: Session, tile_id: str, amount: int, request_id: Optional[str] = None) -> CommitResult:
        request_id = request_id or str(uuid.uuid4())
        failures = 0
        stale = 0

        while True:
            try:
                prior = self.store.get_contribution(request_id) if failures else None
                if prior is not None:
                    if not prior.same_request(tile_id, session.user_id, amount):
                        raise RequestIdReused(f"Request {request_id} was already used for another contribution")
                    # the earlier attempt did land, only its reply was lost
                    return CommitResult(
                        tile=self.store.get_tile(tile_id),
                        balance=self.store.get_balance(session.user_id),
                        replayed=True,
                    )

                tile = self.store.get_tile(tile_id)
                balance = self.store.get_balance(session.user_id)
                req = plan_contribution(tile, session.user_id, balance, amount, request_id, self.policy)
                result = self.store.commit_contribution(req)
            except StaleWrite:
                stale += 1
                if stale > self.max_stale:
                    log.error("tile %s: giving up after %d stale attempts", tile_id, stale)
                    raise CommitFailed("The tile is busy, please try again")
                log.info("tile %s changed under request %s, re-reading", tile_id, request_id)
                continue
            except StorageError as e:
                failures += 1
                if failures > self.retries:
                    log.error("commit %s failed after %d attempts: %s", request_id, failures, e)
                    raise CommitFailed("Failed to contribute to tile") from e
                delay = self.backoff * (2 ** (failures - 1))
                log.warning("commit %s failed (%s), retry %d/%d in %.2fs", request_id, e, failures, self.retries, delay)
                self._sleep(delay)
                continue

            if result.replayed:
                log.info("commit %s was already applied", request_id)
            else:
                log.info(
                    "user %s put %d coins into tile %s slot %s (%d/%d, unlocked=%s)",
                    session.user_id, amount, tile_id, req.slot,
                    result.tile.contributed, result.tile.unlock_cost, result.unlocked,
                )
            return result
