# cozytown/session.py
from __future__ import annotations

import logging
import secrets
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Protocol

from supabase import AuthError as SupabaseAuthError
from supabase import create_client
from werkzeug.security import check_password_hash, generate_password_hash

from .errors import AuthError, ValidationFailed
from .models.account import Account

log = logging.getLogger(__name__)

MIN_PASSWORD_LEN = 6


@dataclass(frozen=True)
class Session:
    """Who is acting. Passed explicitly into every operation."""
    user_id: str
    email: str
    access_token: str

    def to_front(self) -> Dict[str, Any]:
        return {"userId": self.user_id, "email": self.email, "accessToken": self.access_token}


class AuthProvider(Protocol):
    def sign_up(self, email: str, password: str, display_name: str = "") -> Session: ...
    def sign_in(self, email: str, password: str) -> Session: ...
    def session_for_token(self, token: str) -> Session: ...
    def sign_out(self, token: str) -> None: ...
    def list_users(self) -> List[Dict[str, Any]]: ...


def _check_credentials(email: str, password: str) -> str:
    email = (email or "").strip().lower()
    if "@" not in email or email.startswith("@") or email.endswith("@"):
        raise ValidationFailed("Please enter a valid email address")
    if len(password or "") < MIN_PASSWORD_LEN:
        raise ValidationFailed(f"Password must be at least {MIN_PASSWORD_LEN} characters")
    return email


# ---------------- local (memory backend) ----------------

class LocalAuth:
    """
    Email/password accounts kept by the memory store (and so in its snapshot).
    Bearer tokens live in process only; after a restart users sign in again.
    """

    def __init__(self, store, starting_coins: int = 100):
        self.store = store
        self.starting_coins = starting_coins
        self._lock = threading.Lock()
        self._tokens: Dict[str, Account] = {}

    def _issue(self, account: Account) -> Session:
        token = secrets.token_urlsafe(32)
        with self._lock:
            self._tokens[token] = account
        return Session(user_id=account.id, email=account.email, access_token=token)

    def sign_up(self, email: str, password: str, display_name: str = "") -> Session:
        email = _check_credentials(email, password)
        account = Account(
            id=str(uuid.uuid4()),
            email=email,
            password_hash=generate_password_hash(password),
            created_at=datetime.now(timezone.utc),
        )
        self.store.create_account(account, display_name or email.split("@")[0], self.starting_coins)
        log.info("signed up %s", account.id)
        return self._issue(account)

    def sign_in(self, email: str, password: str) -> Session:
        account = self.store.get_account((email or "").strip().lower())
        if account is None or not check_password_hash(account.password_hash, password or ""):
            raise AuthError("Invalid login credentials")
        return self._issue(account)

    def session_for_token(self, token: str) -> Session:
        with self._lock:
            account = self._tokens.get(token or "")
        if account is None:
            raise AuthError("Not signed in")
        return Session(user_id=account.id, email=account.email, access_token=token)

    def sign_out(self, token: str) -> None:
        with self._lock:
            self._tokens.pop(token, None)

    def list_users(self) -> List[Dict[str, Any]]:
        return [a.to_front() for a in self.store.list_accounts()]


# ---------------- supabase ----------------

class SupabaseAuth:
    """
    Supabase Auth. Sign-in/sign-up run on a throwaway client so the
    service-role client used for data access never picks up a user session.
    """

    def __init__(self, url: str, key: str, store, starting_coins: int = 100, client=None):
        self.url = url
        self.key = key
        self.store = store
        self.starting_coins = starting_coins
        self.client = client or create_client(url, key)

    def _session(self, res) -> Session:
        if res.user is None or res.session is None:
            raise AuthError("Please confirm your email before signing in")
        return Session(user_id=res.user.id, email=res.user.email or "", access_token=res.session.access_token)

    def sign_up(self, email: str, password: str, display_name: str = "") -> Session:
        email = _check_credentials(email, password)
        try:
            res = create_client(self.url, self.key).auth.sign_up({
                "email": email,
                "password": password,
                "options": {"data": {"display_name": display_name}},
            })
        except SupabaseAuthError as e:
            raise ValidationFailed(e.message) from e
        if res.user is not None:
            self.store.create_profile(res.user.id, display_name or email.split("@")[0], self.starting_coins)
        return self._session(res)

    def sign_in(self, email: str, password: str) -> Session:
        try:
            res = create_client(self.url, self.key).auth.sign_in_with_password(
                {"email": (email or "").strip().lower(), "password": password}
            )
        except SupabaseAuthError as e:
            raise AuthError(e.message) from e
        return self._session(res)

    def session_for_token(self, token: str) -> Session:
        if not token:
            raise AuthError("Not signed in")
        try:
            res = self.client.auth.get_user(token)
        except SupabaseAuthError as e:
            raise AuthError(e.message) from e
        if res is None or res.user is None:
            raise AuthError("Not signed in")
        return Session(user_id=res.user.id, email=res.user.email or "", access_token=token)

    def sign_out(self, token: str) -> None:
        try:
            self.client.auth.admin.sign_out(token)
        except SupabaseAuthError as e:
            log.warning("sign out failed: %s", e)

    def list_users(self) -> List[Dict[str, Any]]:
        users = self.client.auth.admin.list_users()
        return [
            {"id": u.id, "email": u.email or "No email", "createdAt": str(u.created_at)}
            for u in users
        ]
