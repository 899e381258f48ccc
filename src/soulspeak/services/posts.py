"""Service-level helpers for creating posts."""
from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from pydantic import ValidationError

from soulspeak.core.errors import SoulSpeakError, UnauthenticatedError, ValidationFailure
from soulspeak.core.notices import NoticeBoard
from soulspeak.persistence.base import PersistenceError, PersistenceService
from soulspeak.schemas.post import MediaAttachment, PostRow
from soulspeak.services.feed import POSTS_TABLE
from soulspeak.services.moods import POST_MOODS, color_for

logger = logging.getLogger(__name__)

SavedCallback = Callable[[], Awaitable[None]]


class PostComposer:
    """Creates posts on behalf of the viewer."""

    def __init__(
        self,
        store: PersistenceService,
        viewer_id: str | None,
        notices: NoticeBoard,
    ) -> None:
        self._store = store
        self._viewer_id = viewer_id
        self._notices = notices
        self._on_saved: list[SavedCallback] = []

    def on_saved(self, callback: SavedCallback) -> None:
        """Register a coroutine to run after each successful save."""
        self._on_saved.append(callback)

    def build_row(
        self,
        content: str,
        mood: str,
        *,
        anonymous: bool = True,
        location: str | None = None,
        media: MediaAttachment | None = None,
    ) -> dict[str, object]:
        """Validate input and return the row to insert.

        Raises:
            UnauthenticatedError: No signed-in viewer.
            ValidationFailure: Empty content or an unknown mood.
        """
        if self._viewer_id is None:
            raise UnauthenticatedError("Please sign in to create a post", title="Authentication required")
        text = content.strip()
        if not text:
            raise ValidationFailure("Share something before posting", title="Empty post")
        if mood not in POST_MOODS:
            raise ValidationFailure(f"Unknown mood {mood!r}")

        return {
            "user_id": self._viewer_id,
            "content": text,
            "mood": mood,
            "color": color_for(mood),
            "is_anonymous": anonymous,
            "location": (location or "").strip() or None,
            "media_url": media.url if media else None,
            "media_type": media.kind.value if media else None,
        }

    async def create_post(
        self,
        content: str,
        mood: str,
        *,
        anonymous: bool = True,
        location: str | None = None,
        media: MediaAttachment | None = None,
    ) -> PostRow | None:
        """Persist a new post; returns None (with a notice) on any failure.

        A failed write is never kept as a local-only post.
        """
        try:
            row = self.build_row(
                content, mood, anonymous=anonymous, location=location, media=media
            )
        except SoulSpeakError as exc:
            self._notices.surface(exc)
            return None

        try:
            stored = await self._store.insert(POSTS_TABLE, row)
            post = PostRow.model_validate(stored)
        except PersistenceError as exc:
            logger.warning("Creating post failed: %s", exc)
            self._notices.error("Error", "Failed to create post. Please try again.")
            return None
        except ValidationError as exc:
            logger.error("Store returned an unreadable post row: %s", exc)
            self._notices.error("Error", "Failed to create post. Please try again.")
            return None

        self._notices.info("Post created!", "Your feelings have been shared.")
        for callback in self._on_saved:
            await callback()
        return post
