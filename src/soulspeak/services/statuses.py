"""Ephemeral statuses: listing, expiry, likes and authoring.

A status is ACTIVE while now < expires_at, EXPIRED afterwards and DELETED
once its owner removes it. Listing is a fresh read every time and its
result replaces the cache, so an expired or deleted status cannot linger.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from itertools import count

from pydantic import ValidationError

from soulspeak.core.errors import SoulSpeakError, UnauthenticatedError, ValidationFailure
from soulspeak.core.notices import NoticeBoard
from soulspeak.db.time import ensure_utc, utcnow
from soulspeak.persistence.base import Order, PersistenceError, PersistenceService, eq, gt
from soulspeak.schemas.post import MediaAttachment, MediaKind
from soulspeak.schemas.status import DisplayStatus, StatusRow, StatusState
from soulspeak.services.engagement import EngagementTracker, SubjectKind, ToggleResult
from soulspeak.services.identities import IdentityLookup, enrich_with_identities
from soulspeak.services.media import MediaFile, MediaUploader
from soulspeak.services.moods import STATUS_MOODS, color_for

logger = logging.getLogger(__name__)

STATUSES_TABLE = "status_updates"


def status_state(status: StatusRow | DisplayStatus | None, now: datetime | None = None) -> StatusState:
    """Classify a status; None stands for a row no longer in storage."""
    if status is None:
        return StatusState.DELETED
    moment = ensure_utc(now) if now is not None else utcnow()
    return StatusState.ACTIVE if status.is_active(moment) else StatusState.EXPIRED


def build_display_status(row: StatusRow, identities: IdentityLookup) -> DisplayStatus:
    return DisplayStatus(
        id=row.id,
        user_id=row.user_id,
        author=identities.author_name(row.user_id),
        author_avatar_url=identities.avatar_url(row.user_id),
        content=row.content,
        mood=row.mood,
        color=row.color,
        emoji=row.emoji,
        audio_url=row.audio_url,
        like_count=row.like_count,
        created_at=row.created_at,
        expires_at=row.expires_at,
    )


class StatusManager:
    """Owns the session's list of active statuses."""

    def __init__(
        self,
        store: PersistenceService,
        tracker: EngagementTracker,
        notices: NoticeBoard,
        uploader: MediaUploader,
        *,
        limit: int = 20,
        lifetime: timedelta = timedelta(hours=24),
        content_max_length: int = 10,
    ) -> None:
        self._store = store
        self._tracker = tracker
        self._notices = notices
        self._uploader = uploader
        self._limit = limit
        self._lifetime = lifetime
        self._content_max_length = content_max_length
        self._statuses: list[DisplayStatus] = []
        self._tokens = count(1)
        self._latest_token = 0

    def visible_statuses(self, now: datetime | None = None) -> list[DisplayStatus]:
        """Cached statuses that are still active at `now`."""
        moment = ensure_utc(now) if now is not None else utcnow()
        return [status for status in self._statuses if status.is_active(moment)]

    async def list_active_statuses(self, now: datetime | None = None) -> list[DisplayStatus]:
        """Fetch the newest active statuses (bounded), joined with their owners.

        Never raises: a failed fetch empties the list and pushes a notice.
        """
        moment = ensure_utc(now) if now is not None else utcnow()
        token = next(self._tokens)
        self._latest_token = token

        try:
            raw = await self._store.select(
                STATUSES_TABLE,
                filters=[gt("expires_at", moment)],
                order=Order("created_at", descending=True),
                limit=self._limit,
            )
        except PersistenceError as exc:
            logger.warning("Status fetch failed: %s", exc)
            if token == self._latest_token:
                self._statuses = []
                self._notices.error("Couldn't load statuses", "Please try again in a moment.")
            return self.visible_statuses(moment)

        rows: list[StatusRow] = []
        for item in raw:
            try:
                row = StatusRow.model_validate(item)
            except ValidationError as exc:
                logger.warning("Skipping malformed status row %s: %s", item.get("id"), exc)
                continue
            if row.is_active(moment):
                rows.append(row)

        identities = await enrich_with_identities(self._store, (row.user_id for row in rows))
        if token != self._latest_token:
            logger.debug("Discarding stale status load %d (latest is %d)", token, self._latest_token)
            return self.visible_statuses(moment)

        self._statuses = [build_display_status(row, identities) for row in rows]
        self._tracker.remember_counts(
            SubjectKind.STATUS, {status.id: status.like_count for status in self._statuses}
        )
        await self._tracker.ensure_like_state(
            SubjectKind.STATUS, [status.id for status in self._statuses]
        )
        return self.visible_statuses(moment)

    async def toggle_like(self, status_id: str) -> ToggleResult:
        return await self._tracker.toggle_like(status_id, SubjectKind.STATUS)

    def is_liked(self, status_id: str) -> bool:
        return self._tracker.is_liked(status_id, SubjectKind.STATUS)

    def like_count(self, status_id: str) -> int:
        return self._tracker.like_count(status_id, SubjectKind.STATUS)

    def build_row(
        self,
        *,
        content: str | None,
        mood: str,
        emoji: str | None,
        has_audio: bool,
        now: datetime,
    ) -> dict[str, object]:
        """Validate status input and return the row to insert (sans audio)."""
        viewer = self._tracker.viewer_id
        if viewer is None:
            raise UnauthenticatedError("Please sign in to share status", title="Authentication required")
        text = (content or "").strip()
        symbol = (emoji or "").strip()
        if not text and not symbol and not has_audio:
            raise ValidationFailure("Please add some content to your status", title="Empty status")
        if len(text) > self._content_max_length:
            raise ValidationFailure(
                f"Statuses are limited to {self._content_max_length} characters",
                title="Status too long",
            )
        if mood not in STATUS_MOODS:
            raise ValidationFailure(f"Unknown mood {mood!r}")

        return {
            "user_id": viewer,
            "content": text or None,
            "mood": mood,
            "color": color_for(mood, STATUS_MOODS),
            "emoji": symbol or STATUS_MOODS[mood].emoji,
            "created_at": now,
            "expires_at": now + self._lifetime,
        }

    async def create_status(
        self,
        *,
        content: str | None = None,
        mood: str = "love",
        emoji: str | None = None,
        audio: MediaFile | None = None,
        now: datetime | None = None,
    ) -> StatusRow | None:
        """Share a status that expires after the configured lifetime."""
        moment = ensure_utc(now) if now is not None else utcnow()
        attachment: MediaAttachment | None = None
        try:
            row = self.build_row(
                content=content, mood=mood, emoji=emoji, has_audio=audio is not None, now=moment
            )
            if audio is not None:
                attachment = await self._uploader.upload(
                    self._tracker.viewer_id, audio, allowed=(MediaKind.AUDIO,)
                )
                row["audio_url"] = attachment.url
        except SoulSpeakError as exc:
            self._notices.surface(exc)
            return None

        try:
            stored = await self._store.insert(STATUSES_TABLE, row)
        except PersistenceError as exc:
            logger.warning("Creating status failed: %s", exc)
            if attachment is not None:
                await self._uploader.discard(attachment)
            self._notices.error("Error", "Failed to share status. Please try again.")
            return None
        try:
            status = StatusRow.model_validate(stored)
        except ValidationError as exc:
            logger.warning("Stored status came back malformed: %s", exc)
            self._notices.error("Error", "Failed to share status. Please try again.")
            return None

        self._notices.info("Status shared!", "Your mood has been shared with everyone ✨")
        await self.list_active_statuses(moment)
        return status

    async def delete_status(self, status_id: str) -> bool:
        """Delete one of the viewer's own statuses."""
        viewer = self._tracker.viewer_id
        if viewer is None:
            self._notices.surface(UnauthenticatedError("Please sign in to manage statuses"))
            return False
        cached = next((status for status in self._statuses if status.id == status_id), None)
        if cached is not None and not cached.is_owned_by(viewer):
            self._notices.surface(ValidationFailure("You can only delete your own status"))
            return False
        try:
            await self._store.delete(STATUSES_TABLE, [eq("id", status_id), eq("user_id", viewer)])
        except PersistenceError as exc:
            logger.warning("Deleting status %s failed: %s", status_id, exc)
            self._notices.error("Error", "Failed to delete status. Please try again.")
            return False

        self._statuses = [status for status in self._statuses if status.id != status_id]
        return True

    def close(self) -> None:
        self._latest_token = next(self._tokens)
        self._statuses = []
