# cozytown/state.py
import logging
from dataclasses import dataclass
from typing import Any, Dict

from .config import Settings
from .contributions import SLOT_POLICIES
from .feed import FeedService
from .models.board import TownMap
from .photos import MemoryPhotoStore, PhotoStore, SupabasePhotoStore
from .push import PushService
from .session import AuthProvider, LocalAuth, Session, SupabaseAuth
from .stores.base import Store
from .stores.memory import MemoryStore
from .transactions import ContributionService

log = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    store: Store
    auth: AuthProvider
    photos: PhotoStore
    contributions: ContributionService
    feed: FeedService
    push: PushService


def build_services(settings: Settings) -> Services:
    if settings.slot_policy not in SLOT_POLICIES:
        raise ValueError(f"SLOT_POLICY must be one of {SLOT_POLICIES}")

    if settings.store_backend == "supabase":
        from .stores.supabase_store import SupabaseStore

        store = SupabaseStore(settings.supabase_url, settings.supabase_key)
        auth = SupabaseAuth(settings.supabase_url, settings.supabase_key, store, settings.starting_coins)
        photos = SupabasePhotoStore(settings.supabase_url, settings.supabase_key, settings.photo_bucket,
                                    client=store.client)
    elif settings.store_backend == "memory":
        store = MemoryStore(settings.state_file)
        if settings.seed_grid:
            store.seed_grid(*settings.seed_grid)
        auth = LocalAuth(store, settings.starting_coins)
        photos = MemoryPhotoStore(settings.public_base_url)
    else:
        raise ValueError(f"Unknown STORE_BACKEND: {settings.store_backend}")

    push = PushService(store, settings.vapid_public_key, settings.vapid_private_key, settings.vapid_contact)
    log.info("store=%s slot_policy=%s", settings.store_backend, settings.slot_policy)
    return Services(
        settings=settings,
        store=store,
        auth=auth,
        photos=photos,
        contributions=ContributionService(
            store,
            policy=settings.slot_policy,
            retries=settings.commit_retries,
            backoff=settings.commit_backoff,
        ),
        feed=FeedService(store, push),
        push=push,
    )


def map_snapshot(services: Services, session: Session) -> Dict[str, Any]:
    """Everything the map view needs in one read."""
    town = TownMap(services.store.list_tiles())
    return {**town.to_dict(), "coins": services.store.get_balance(session.user_id)}
