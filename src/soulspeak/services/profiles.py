"""Business logic for the viewer's own profile and follow statistics."""
from __future__ import annotations

import logging

from soulspeak.core.errors import UnauthenticatedError
from soulspeak.core.notices import NoticeBoard
from soulspeak.db.time import utcnow
from soulspeak.persistence.base import PersistenceError, PersistenceService, eq
from soulspeak.schemas.profile import FollowStats, ProfileOut
from soulspeak.services.engagement import FOLLOWS_TABLE
from soulspeak.services.identities import PROFILE_COLUMNS, PROFILES_TABLE

logger = logging.getLogger(__name__)


class ProfileService:
    def __init__(self, store: PersistenceService, viewer_id: str | None, notices: NoticeBoard) -> None:
        self._store = store
        self._viewer_id = viewer_id
        self._notices = notices

    async def get_profile(self, user_id: str) -> ProfileOut | None:
        try:
            rows = await self._store.select(
                PROFILES_TABLE, PROFILE_COLUMNS, [eq("id", user_id)], limit=1
            )
        except PersistenceError as exc:
            logger.warning("Profile fetch for %s failed: %s", user_id, exc)
            self._notices.error("Error", "Couldn't load the profile.")
            return None
        return ProfileOut.model_validate(rows[0]) if rows else None

    async def save_profile(
        self, *, username: str | None, avatar_url: str | None
    ) -> ProfileOut | None:
        """Update the viewer's profile, creating it on first save."""
        if self._viewer_id is None:
            self._notices.surface(UnauthenticatedError("Please sign in to edit your profile"))
            return None

        patch = {
            "username": (username or "").strip() or None,
            "avatar_url": (avatar_url or "").strip() or None,
            "updated_at": utcnow(),
        }
        try:
            existing = await self._store.count(PROFILES_TABLE, [eq("id", self._viewer_id)])
            if existing:
                await self._store.update(PROFILES_TABLE, patch, [eq("id", self._viewer_id)])
            else:
                await self._store.insert(PROFILES_TABLE, {"id": self._viewer_id, **patch})
        except PersistenceError as exc:
            logger.warning("Saving profile for %s failed: %s", self._viewer_id, exc)
            self._notices.error("Error", "Failed to update profile. Please try again.")
            return None

        self._notices.info("Profile updated!", "Your profile has been saved successfully.")
        return ProfileOut(id=self._viewer_id, username=patch["username"], avatar_url=patch["avatar_url"])

    async def follow_stats(self, user_id: str) -> FollowStats:
        """Follower and following counts; zeros plus a notice when unavailable."""
        try:
            followers = await self._store.count(FOLLOWS_TABLE, [eq("following_id", user_id)])
            following = await self._store.count(FOLLOWS_TABLE, [eq("follower_id", user_id)])
        except PersistenceError as exc:
            logger.warning("Follow stats for %s failed: %s", user_id, exc)
            self._notices.error("Error", "Couldn't load follow stats.")
            return FollowStats(user_id=user_id)
        return FollowStats(user_id=user_id, followers=followers, following=following)
