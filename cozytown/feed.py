# cozytown/feed.py
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from .errors import CozyError, ValidationFailed
from .models.feed import FeedItem
from .push import PushService
from .session import Session
from .stores.base import Store

log = logging.getLogger(__name__)

ACTIVITY_TYPES = ("walking", "running", "swimming")
CHALLENGE_TARGETS = ("self", "someone-else")
MAX_FEED_LIMIT = 100


class FeedService:
    """Posts, activities and challenges, merged newest first."""

    def __init__(self, store: Store, push: Optional[PushService] = None):
        self.store = store
        self.push = push

    def _add(self, session: Session, kind, data, photo_url: Optional[str] = None) -> FeedItem:
        item = FeedItem(
            id=str(uuid.uuid4()),
            kind=kind,
            user_id=session.user_id,
            created_at=datetime.now(timezone.utc),
            data=data,
            photo_url=photo_url,
        )
        self.store.add_feed_item(item)
        log.info("%s %s added by %s", kind, item.id, session.user_id)
        return item

    def add_post(self, session: Session, text: str, photo_url: Optional[str] = None) -> FeedItem:
        text = (text or "").strip()
        if not text:
            raise ValidationFailed("Please enter some text for your post")
        return self._add(session, "post", {"text": text}, photo_url)

    def add_activity(
        self,
        session: Session,
        activity_type: str,
        duration_minutes: float,
        distance_km: float,
        note: str = "",
        photo_url: Optional[str] = None,
    ) -> FeedItem:
        if activity_type not in ACTIVITY_TYPES:
            raise ValidationFailed(f"Activity type must be one of: {', '.join(ACTIVITY_TYPES)}")
        if not duration_minutes or not distance_km or duration_minutes <= 0 or distance_km <= 0:
            raise ValidationFailed("Please fill in both time and distance")
        data = {
            "activityType": activity_type,
            "durationMinutes": duration_minutes,
            "distanceKm": distance_km,
            "note": (note or "").strip(),
        }
        return self._add(session, "activity", data, photo_url)

    def add_challenge(
        self,
        session: Session,
        goal: str,
        description: str = "",
        duration: str = "",
        target: str = "self",
        target_user_id: Optional[str] = None,
    ) -> FeedItem:
        goal = (goal or "").strip()
        if not goal:
            raise ValidationFailed("Please fill in at least the goal")
        if target not in CHALLENGE_TARGETS:
            raise ValidationFailed("Challenge target must be 'self' or 'someone-else'")
        if target == "someone-else":
            if not target_user_id:
                raise ValidationFailed("Pick who this challenge is for")
            self.store.get_profile(target_user_id)
        else:
            target_user_id = None

        item = self._add(session, "challenge", {
            "goal": goal,
            "description": (description or "").strip(),
            "duration": (duration or "").strip(),
            "target": target,
            "targetUserId": target_user_id,
        })

        if target_user_id and self.push is not None:
            self._notify_challenged(session, target_user_id, goal)
        return item

    def _notify_challenged(self, session: Session, target_user_id: str, goal: str) -> None:
        challenger = self.store.get_profile(session.user_id).display_name or "Someone"
        try:
            self.push.send_to_user(target_user_id, "New challenge!", f"{challenger} challenged you: {goal}")
        except CozyError as e:
            # the challenge stands even if nobody could be notified
            log.info("challenge push to %s not delivered: %s", target_user_id, e)

    def list_feed(self, limit: int = 50, user_id: Optional[str] = None) -> List[FeedItem]:
        if limit < 1 or limit > MAX_FEED_LIMIT:
            raise ValidationFailed(f"limit must be between 1 and {MAX_FEED_LIMIT}")
        return self.store.list_feed(limit, user_id)
