import uuid

import pytest

from cozytown.models.tile import Tile
from cozytown.session import Session
from cozytown.stores.memory import MemoryStore
from cozytown.transactions import ContributionService


def make_user(store, coins, name=None):
    user_id = str(uuid.uuid4())
    store.create_profile(user_id, name or f"user-{user_id[:4]}", coins)
    return Session(user_id=user_id, email=f"{user_id[:8]}@example.com", access_token=f"tok-{user_id}")


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def tile(store):
    return store.add_tile(Tile(id="t-1", x=0, y=0, unlock_cost=100))


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def service(store, sleeps):
    return ContributionService(store, retries=2, backoff=0.1, sleep=sleeps.append)
