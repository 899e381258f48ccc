"""Viewer session: one signed-in (or anonymous) viewer's view of the app.

The session resolves the viewer once, seeds engagement state with bulk reads
and wires the feed, status and authoring components to one shared tracker
and notice board. Closing the session orphans every pending call so nothing
resolves into torn-down state.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from types import TracebackType
from typing import TypeVar

from soulspeak.core.errors import IdentityError
from soulspeak.core.notices import NoticeBoard
from soulspeak.core.settings import Settings, settings
from soulspeak.identity import CurrentUser, IdentityProvider, TokenIdentityProvider
from soulspeak.persistence import PersistenceService, build_store
from soulspeak.schemas.post import DisplayPost
from soulspeak.schemas.status import DisplayStatus
from soulspeak.services.engagement import EngagementTracker
from soulspeak.services.feed import FeedAssembler
from soulspeak.services.media import MediaUploader
from soulspeak.services.moods import ALL_MOODS
from soulspeak.services.notes import NotesBook
from soulspeak.services.playback import AudioFactory, PlaybackCoordinator
from soulspeak.services.posts import PostComposer
from soulspeak.services.profiles import ProfileService
from soulspeak.services.statuses import StatusManager

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SessionNotStarted(RuntimeError):
    """Raised when a component is used before `start()`."""


class ViewerSession:
    """Owns every per-viewer component for the lifetime of a session."""

    def __init__(
        self,
        store: PersistenceService | None = None,
        identity: IdentityProvider | None = None,
        *,
        config: Settings | None = None,
        audio_factory: AudioFactory | None = None,
        notices: NoticeBoard | None = None,
    ) -> None:
        self.config = config or settings
        self._owns_store = store is None
        self.store = store if store is not None else build_store(self.config)
        self.identity = identity or TokenIdentityProvider.from_settings(self.config)
        self.notices = notices or NoticeBoard()
        self.viewer: CurrentUser | None = None
        self.mood = ALL_MOODS

        self._tracker: EngagementTracker | None = None
        self._feed: FeedAssembler | None = None
        self._statuses: StatusManager | None = None
        self._posts: PostComposer | None = None
        self._notes: NotesBook | None = None
        self._profiles: ProfileService | None = None
        self.uploader = MediaUploader(
            self.store,
            bucket=self.config.media_bucket,
            max_bytes=self.config.media_max_bytes,
        )
        self.playback: PlaybackCoordinator | None = (
            PlaybackCoordinator(audio_factory, self.notices) if audio_factory else None
        )

    @staticmethod
    def _require(component: T | None) -> T:
        if component is None:
            raise SessionNotStarted("Call start() before using the session")
        return component

    @property
    def viewer_id(self) -> str | None:
        return self.viewer.id if self.viewer else None

    @property
    def tracker(self) -> EngagementTracker:
        return self._require(self._tracker)

    @property
    def feed(self) -> FeedAssembler:
        return self._require(self._feed)

    @property
    def statuses(self) -> StatusManager:
        return self._require(self._statuses)

    @property
    def posts(self) -> PostComposer:
        return self._require(self._posts)

    @property
    def notes(self) -> NotesBook:
        return self._require(self._notes)

    @property
    def profiles(self) -> ProfileService:
        return self._require(self._profiles)

    def _wire(self) -> None:
        viewer_id = self.viewer_id
        cfg = self.config
        self._tracker = EngagementTracker(
            self.store,
            viewer_id,
            self.notices,
            sync_cached_counts=cfg.sync_like_counts,
        )
        self._feed = FeedAssembler(self.store, self._tracker, self.notices, limit=cfg.feed_limit)
        self._statuses = StatusManager(
            self.store,
            self._tracker,
            self.notices,
            self.uploader,
            limit=cfg.status_list_limit,
            lifetime=timedelta(hours=cfg.status_lifetime_hours),
            content_max_length=cfg.status_content_max_length,
        )
        self._posts = PostComposer(self.store, viewer_id, self.notices)
        self._posts.on_saved(self.reload_feed)
        self._notes = NotesBook(self.store, viewer_id, self.notices)
        self._profiles = ProfileService(self.store, viewer_id, self.notices)

    async def start(self, *, load: bool = True) -> ViewerSession:
        """Resolve the viewer, seed engagement state and optionally load content."""
        self.viewer = await self.identity.current_user()
        logger.info("Starting session for %s", self.viewer_id or "anonymous viewer")
        self._wire()
        await self.tracker.seed()
        if load:
            await self.refresh()
        return self

    async def reload_feed(self) -> list[DisplayPost]:
        return await self.feed.load(self.mood)

    async def refresh(self) -> tuple[list[DisplayPost], list[DisplayStatus]]:
        """Reload the feed (with the current mood filter) and the status strip."""
        posts = await self.reload_feed()
        statuses = await self.statuses.list_active_statuses()
        return posts, statuses

    def set_mood(self, mood: str) -> list[DisplayPost]:
        """Change the mood filter; re-filters without fetching."""
        self.mood = mood
        return self.feed.visible(mood)

    async def sign_out(self) -> None:
        """Sign out and drop every piece of viewer-specific state."""
        try:
            await self.identity.sign_out()
        except IdentityError as exc:
            self.notices.surface(exc)
        finally:
            self.viewer = None
            if self._tracker is not None:
                self._tracker.reset(None)
                self._posts = PostComposer(self.store, None, self.notices)
                self._posts.on_saved(self.reload_feed)
                self._notes = NotesBook(self.store, None, self.notices)
                self._profiles = ProfileService(self.store, None, self.notices)
            logger.info("Viewer signed out")

    async def close(self) -> None:
        """Tear down: stop audio, orphan pending loads and release the store."""
        if self.playback is not None:
            self.playback.close()
        if self._feed is not None:
            self._feed.close()
        if self._statuses is not None:
            self._statuses.close()
        if self._tracker is not None:
            self._tracker.close()
        if self._owns_store:
            await self.store.close()

    async def __aenter__(self) -> ViewerSession:
        return await self.start()

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()
