# cozytown/push.py
from __future__ import annotations

import json
import logging
from typing import Any, Callable, Dict, Optional

import requests
from pywebpush import WebPushException, webpush

from .errors import CozyError, NotFound, ValidationFailed
from .session import Session
from .stores.base import Store

log = logging.getLogger(__name__)

GONE_STATUSES = (404, 410)


class PushUnavailable(CozyError):
    status_code = 503


class PushService:
    """
    Web Push delivery to every active subscription of a user.

    Subscriptions the push service reports as gone (404/410) are switched
    off so they are not tried again.
    """

    def __init__(
        self,
        store: Store,
        vapid_public_key: str = "",
        vapid_private_key: str = "",
        vapid_contact: str = "mailto:admin@cozytown.local",
        sender: Callable[..., Any] = webpush,
    ):
        self.store = store
        self.vapid_public_key = vapid_public_key
        self.vapid_private_key = vapid_private_key
        self.vapid_contact = vapid_contact
        self._send = sender

    def public_key(self) -> str:
        if not self.vapid_public_key:
            raise PushUnavailable("VAPID public key is not configured")
        return self.vapid_public_key

    def save_subscription(self, session: Session, subscription: Dict[str, Any]) -> bool:
        endpoint = subscription.get("endpoint")
        keys = subscription.get("keys") or {}
        if not endpoint or not keys.get("p256dh") or not keys.get("auth"):
            raise ValidationFailed("Missing required fields")
        created = self.store.upsert_subscription(session.user_id, endpoint, subscription)
        log.info("%s push subscription for %s", "saved" if created else "updated", session.user_id)
        return created

    def send_to_user(self, user_id: str, title: str, body: str, icon: Optional[str] = "/vite.svg") -> Dict[str, int]:
        if not self.vapid_private_key:
            raise PushUnavailable("Push notifications are not configured")

        subs = self.store.active_subscriptions(user_id)
        if not subs:
            raise NotFound("No active subscriptions found for user")

        payload = json.dumps({"title": title, "body": body, "icon": icon, "badge": icon})
        success = 0
        for sub in subs:
            try:
                self._send(
                    subscription_info=sub.subscription,
                    data=payload,
                    vapid_private_key=self.vapid_private_key,
                    vapid_claims={"sub": self.vapid_contact},
                )
                success += 1
            except WebPushException as e:
                status = e.response.status_code if e.response is not None else None
                log.warning("push to subscription %s failed (%s): %s", sub.id, status, e)
                if status in GONE_STATUSES:
                    self.store.deactivate_subscription(sub.id)
            except requests.RequestException as e:
                log.warning("push to subscription %s failed: %s", sub.id, e)

        return {"totalSubscriptions": len(subs), "successCount": success}
