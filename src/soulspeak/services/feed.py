"""Feed assembly: raw post rows joined with identities, newest first.

Anonymity is enforced here. Identities are fetched only for authors of
non-anonymous posts, and anonymous posts are built without any author field,
so neither the name nor the id (enough to deanonymize via a profile lookup)
reaches a consumer.
"""

from __future__ import annotations

import logging
from itertools import count

from pydantic import ValidationError

from soulspeak.core.notices import NoticeBoard
from soulspeak.persistence.base import Order, PersistenceError, PersistenceService
from soulspeak.schemas.post import DisplayPost, PostRow
from soulspeak.services.engagement import EngagementTracker, SubjectKind
from soulspeak.services.identities import IdentityLookup, enrich_with_identities
from soulspeak.services.moods import ALL_MOODS

logger = logging.getLogger(__name__)

POSTS_TABLE = "posts"


def build_display_post(row: PostRow, identities: IdentityLookup) -> DisplayPost:
    """Turn a stored row into its display form."""
    if row.is_anonymous:
        author = author_id = avatar = None
    else:
        author = identities.author_name(row.user_id)
        author_id = row.user_id
        avatar = identities.avatar_url(row.user_id)

    return DisplayPost(
        id=row.id,
        content=row.content,
        mood=row.mood,
        color=row.color,
        is_anonymous=row.is_anonymous,
        author=author,
        author_id=author_id,
        author_avatar_url=avatar,
        location=row.location,
        media=row.media,
        like_count=row.like_count,
        created_at=row.created_at,
    )


def filter_by_mood(posts: list[DisplayPost], mood: str) -> list[DisplayPost]:
    if mood == ALL_MOODS:
        return list(posts)
    return [post for post in posts if post.mood == mood]


class FeedAssembler:
    """Owns the session's assembled post feed."""

    def __init__(
        self,
        store: PersistenceService,
        tracker: EngagementTracker,
        notices: NoticeBoard,
        *,
        limit: int = 50,
    ) -> None:
        self._store = store
        self._tracker = tracker
        self._notices = notices
        self._limit = limit
        self._posts: list[DisplayPost] = []
        self._tokens = count(1)
        self._latest_token = 0

    @property
    def posts(self) -> list[DisplayPost]:
        return list(self._posts)

    def visible(self, mood: str = ALL_MOODS) -> list[DisplayPost]:
        """Re-filter the current assembly without fetching."""
        return filter_by_mood(self._posts, mood)

    async def _fetch_rows(self) -> list[PostRow]:
        raw = await self._store.select(
            POSTS_TABLE,
            order=Order("created_at", descending=True),
            limit=self._limit,
        )
        rows: list[PostRow] = []
        for item in raw:
            try:
                rows.append(PostRow.model_validate(item))
            except ValidationError as exc:
                logger.warning("Skipping malformed post row %s: %s", item.get("id"), exc)
        return rows

    async def load(self, mood: str = ALL_MOODS) -> list[DisplayPost]:
        """Fetch and assemble the feed, then apply the mood filter.

        Never raises: a failed fetch yields an empty feed and a notice. When
        loads overlap, only the most recently issued one may replace state.
        """
        token = next(self._tokens)
        self._latest_token = token

        try:
            rows = await self._fetch_rows()
        except PersistenceError as exc:
            logger.warning("Feed fetch failed: %s", exc)
            if token == self._latest_token:
                self._posts = []
                self._notices.error("Couldn't load the feed", "Please try again in a moment.")
            return self.visible(mood)

        identities = await enrich_with_identities(
            self._store, (row.user_id for row in rows if not row.is_anonymous)
        )
        if token != self._latest_token:
            logger.debug("Discarding stale feed load %d (latest is %d)", token, self._latest_token)
            return self.visible(mood)

        posts = [build_display_post(row, identities) for row in rows]
        self._posts = posts
        self._tracker.remember_counts(SubjectKind.POST, {post.id: post.like_count for post in posts})
        await self._tracker.ensure_like_state(SubjectKind.POST, [post.id for post in posts])
        await self._tracker.ensure_follow_state(
            {post.author_id for post in posts if post.author_id is not None}
        )
        return self.visible(mood)

    def close(self) -> None:
        """Drop the assembly and orphan any load still in flight."""
        self._latest_token = next(self._tokens)
        self._posts = []
