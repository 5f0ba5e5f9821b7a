# cozytown/config.py
import os
from dataclasses import dataclass
from typing import Optional, Tuple

from dotenv import load_dotenv

load_dotenv()


def _int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


def _grid(raw: str) -> Optional[Tuple[int, int, int]]:
    # "cols x rows x cost", e.g. "6x6x100"; empty disables seeding
    raw = (raw or "").strip().lower()
    if not raw:
        return None
    cols, rows, cost = (int(p) for p in raw.split("x"))
    return cols, rows, cost


@dataclass(frozen=True)
class Settings:
    store_backend: str = "memory"
    state_file: Optional[str] = None

    supabase_url: str = ""
    supabase_key: str = ""
    photo_bucket: str = "photos"

    vapid_public_key: str = ""
    vapid_private_key: str = ""
    vapid_contact: str = "mailto:admin@cozytown.local"

    slot_policy: str = "bound"
    starting_coins: int = 100
    commit_retries: int = 3
    commit_backoff: float = 0.05

    public_base_url: str = "http://127.0.0.1:8000"
    seed_grid: Optional[Tuple[int, int, int]] = None
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            store_backend=os.getenv("STORE_BACKEND", "memory").strip().lower(),
            state_file=os.getenv("STATE_FILE") or None,
            supabase_url=os.getenv("SUPABASE_URL", ""),
            supabase_key=os.getenv("SUPABASE_SERVICE_ROLE_KEY", ""),
            photo_bucket=os.getenv("SUPABASE_PHOTO_BUCKET", "photos"),
            vapid_public_key=os.getenv("VAPID_PUBLIC_KEY", ""),
            vapid_private_key=os.getenv("VAPID_PRIVATE_KEY", ""),
            vapid_contact=os.getenv("VAPID_CONTACT", "mailto:admin@cozytown.local"),
            slot_policy=os.getenv("SLOT_POLICY", "bound").strip().lower(),
            starting_coins=_int("STARTING_COINS", 100),
            commit_retries=_int("COMMIT_RETRIES", 3),
            commit_backoff=float(os.getenv("COMMIT_BACKOFF", "0.05")),
            public_base_url=os.getenv("PUBLIC_BASE_URL", "http://127.0.0.1:8000").rstrip("/"),
            seed_grid=_grid(os.getenv("SEED_GRID", "6x6x100")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
