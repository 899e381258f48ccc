"""Per-viewer like and follow state.

The tracker is the only writer of the viewer's engagement cache. It is
seeded once per session with bulk reads and then kept in step with the
persistence service by the toggle operations, which round-trip every
mutation before touching local state.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum

from soulspeak.core.errors import UnauthenticatedError, ValidationFailure
from soulspeak.core.notices import NoticeBoard
from soulspeak.persistence.base import PersistenceError, PersistenceService, eq

logger = logging.getLogger(__name__)

FOLLOWS_TABLE = "user_follows"


class SubjectKind(str, Enum):
    """Content types that can be liked."""

    POST = "post"
    STATUS = "status"


@dataclass(frozen=True)
class LikeRelation:
    """Where likes of one subject kind live."""

    table: str
    subject_column: str
    subject_table: str
    noun: str


LIKE_RELATIONS: dict[SubjectKind, LikeRelation] = {
    SubjectKind.POST: LikeRelation("post_likes", "post_id", "posts", "posts"),
    SubjectKind.STATUS: LikeRelation("status_likes", "status_id", "status_updates", "statuses"),
}


class ToggleOutcome(str, Enum):
    APPLIED = "applied"
    SIGN_IN_REQUIRED = "sign_in_required"
    IN_FLIGHT = "in_flight"
    REJECTED = "rejected"
    FAILED = "failed"


@dataclass(frozen=True)
class ToggleResult:
    """Outcome of a like/follow toggle.

    `active` is the liked/following flag after the call; `count` is the
    cached like count (None for follows).
    """

    outcome: ToggleOutcome
    active: bool
    count: int | None = None

    @property
    def applied(self) -> bool:
        return self.outcome is ToggleOutcome.APPLIED


class EngagementTracker:
    """Tracks what the viewer has liked and whom they follow."""

    def __init__(
        self,
        store: PersistenceService,
        viewer_id: str | None,
        notices: NoticeBoard,
        *,
        sync_cached_counts: bool = True,
    ) -> None:
        self._store = store
        self._viewer_id = viewer_id
        self._notices = notices
        self._sync_cached_counts = sync_cached_counts
        self._generation = 0
        self._reset_state()

    def _reset_state(self) -> None:
        self._liked: dict[SubjectKind, set[str]] = {kind: set() for kind in SubjectKind}
        self._likes_seeded: dict[SubjectKind, bool] = {kind: False for kind in SubjectKind}
        self._like_probed: dict[SubjectKind, set[str]] = {kind: set() for kind in SubjectKind}
        self._following: set[str] = set()
        self._follows_seeded = False
        self._follow_probed: set[str] = set()
        self._counts: dict[tuple[SubjectKind, str], int] = {}
        self._in_flight: set[tuple[str, str]] = set()

    @property
    def viewer_id(self) -> str | None:
        return self._viewer_id

    @property
    def is_authenticated(self) -> bool:
        return self._viewer_id is not None

    def is_liked(self, subject_id: str, kind: SubjectKind = SubjectKind.POST) -> bool:
        return subject_id in self._liked[kind]

    def is_following(self, user_id: str) -> bool:
        return user_id in self._following

    def like_count(self, subject_id: str, kind: SubjectKind = SubjectKind.POST) -> int:
        return self._counts.get((kind, subject_id), 0)

    def can_follow(self, author_id: str | None) -> bool:
        """Whether the follow action should be offered for this author.

        Anonymous content never carries an author id, so it is never offered.
        """
        return (
            self._viewer_id is not None
            and author_id is not None
            and author_id != self._viewer_id
        )

    def remember_counts(self, kind: SubjectKind, counts: Mapping[str, int]) -> None:
        """Take cached like counts from a fresh fetch, skipping subjects mid-toggle."""
        busy = {subject for action, subject in self._in_flight if action == f"like:{kind.value}"}
        for subject_id, count in counts.items():
            if subject_id not in busy:
                self._counts[(kind, subject_id)] = max(0, int(count))

    # ------------------------------------------------------------------ seeding

    async def seed(self) -> None:
        """Bulk-load the viewer's likes and follows, one read per relation."""
        if self._viewer_id is None:
            return
        generation = self._generation
        viewer = self._viewer_id

        like_reads = [
            self._store.select(rel.table, rel.subject_column, [eq("user_id", viewer)])
            for rel in LIKE_RELATIONS.values()
        ]
        follow_read = self._store.select(FOLLOWS_TABLE, "following_id", [eq("follower_id", viewer)])
        results = await asyncio.gather(*like_reads, follow_read, return_exceptions=True)
        if generation != self._generation:
            return

        for (kind, rel), result in zip(LIKE_RELATIONS.items(), results[:-1]):
            if isinstance(result, PersistenceError):
                logger.warning("Bulk %s fetch failed; falling back to probes: %s", rel.table, result)
                continue
            if isinstance(result, BaseException):
                raise result
            self._liked[kind] = {str(row[rel.subject_column]) for row in result}
            self._likes_seeded[kind] = True

        follows = results[-1]
        if isinstance(follows, PersistenceError):
            logger.warning("Bulk follow fetch failed; falling back to probes: %s", follows)
        elif isinstance(follows, BaseException):
            raise follows
        else:
            self._following = {str(row["following_id"]) for row in follows}
            self._follows_seeded = True

    async def ensure_like_state(self, kind: SubjectKind, subject_ids: Iterable[str]) -> None:
        """Probe individual likes, only for a relation whose bulk seed failed."""
        if self._viewer_id is None or self._likes_seeded[kind]:
            return
        rel = LIKE_RELATIONS[kind]
        generation = self._generation
        for subject_id in subject_ids:
            if subject_id in self._like_probed[kind]:
                continue
            try:
                found = await self._store.count(
                    rel.table,
                    [eq(rel.subject_column, subject_id), eq("user_id", self._viewer_id)],
                )
            except PersistenceError as exc:
                logger.warning("Like probe for %s %s failed: %s", kind.value, subject_id, exc)
                continue
            if generation != self._generation:
                return
            self._like_probed[kind].add(subject_id)
            if found:
                self._liked[kind].add(subject_id)

    async def ensure_follow_state(self, user_ids: Iterable[str]) -> None:
        """Probe individual follows, only when the bulk seed failed."""
        if self._viewer_id is None or self._follows_seeded:
            return
        generation = self._generation
        for user_id in user_ids:
            if user_id in self._follow_probed or not self.can_follow(user_id):
                continue
            try:
                found = await self._store.count(
                    FOLLOWS_TABLE,
                    [eq("follower_id", self._viewer_id), eq("following_id", user_id)],
                )
            except PersistenceError as exc:
                logger.warning("Follow probe for %s failed: %s", user_id, exc)
                continue
            if generation != self._generation:
                return
            self._follow_probed.add(user_id)
            if found:
                self._following.add(user_id)

    # ------------------------------------------------------------------ toggles

    async def toggle_like(
        self, subject_id: str, kind: SubjectKind = SubjectKind.POST
    ) -> ToggleResult:
        """Like or unlike a subject.

        A second toggle on the same subject while the first is pending is
        rejected with IN_FLIGHT. Local state changes only after the store
        accepts the mutation.
        """
        rel = LIKE_RELATIONS[kind]
        if self._viewer_id is None:
            self._notices.surface(UnauthenticatedError(f"Please sign in to like {rel.noun}"))
            return ToggleResult(ToggleOutcome.SIGN_IN_REQUIRED, False, self.like_count(subject_id, kind))

        key = (f"like:{kind.value}", subject_id)
        if key in self._in_flight:
            logger.debug("Ignoring like toggle on %s %s: already in flight", kind.value, subject_id)
            return ToggleResult(
                ToggleOutcome.IN_FLIGHT,
                self.is_liked(subject_id, kind),
                self.like_count(subject_id, kind),
            )

        self._in_flight.add(key)
        generation = self._generation
        viewer = self._viewer_id
        was_liked = subject_id in self._liked[kind]
        try:
            try:
                if was_liked:
                    await self._store.delete(
                        rel.table,
                        [eq(rel.subject_column, subject_id), eq("user_id", viewer)],
                    )
                else:
                    await self._store.insert(
                        rel.table, {rel.subject_column: subject_id, "user_id": viewer}
                    )
            except PersistenceError as exc:
                logger.warning("Like toggle on %s %s failed: %s", kind.value, subject_id, exc)
                self._notices.error("Error", "Failed to update like status")
                return ToggleResult(ToggleOutcome.FAILED, was_liked, self.like_count(subject_id, kind))

            if generation != self._generation:
                return ToggleResult(ToggleOutcome.APPLIED, not was_liked)

            delta = -1 if was_liked else 1
            count = max(0, self.like_count(subject_id, kind) + delta)
            self._counts[(kind, subject_id)] = count
            if was_liked:
                self._liked[kind].discard(subject_id)
            else:
                self._liked[kind].add(subject_id)

            if self._sync_cached_counts:
                await self._sync_like_count(rel, subject_id)
            return ToggleResult(ToggleOutcome.APPLIED, not was_liked, count)
        finally:
            self._in_flight.discard(key)

    async def _sync_like_count(self, rel: LikeRelation, subject_id: str) -> None:
        """Write the authoritative like count back onto the subject row."""
        try:
            total = await self._store.count(rel.table, [eq(rel.subject_column, subject_id)])
            await self._store.update(rel.subject_table, {"like_count": total}, [eq("id", subject_id)])
        except PersistenceError as exc:
            # The like itself is persisted; the cached count reconciles on re-fetch.
            logger.warning("Could not sync like_count on %s %s: %s", rel.subject_table, subject_id, exc)

    async def toggle_follow(self, user_id: str, *, anonymous: bool = False) -> ToggleResult:
        """Follow or unfollow an author."""
        if self._viewer_id is None:
            self._notices.surface(UnauthenticatedError("Please sign in to follow souls"))
            return ToggleResult(ToggleOutcome.SIGN_IN_REQUIRED, False)

        if user_id == self._viewer_id:
            self._notices.surface(ValidationFailure("You cannot follow yourself"))
            return ToggleResult(ToggleOutcome.REJECTED, False)
        if anonymous:
            self._notices.surface(ValidationFailure("Anonymous souls cannot be followed"))
            return ToggleResult(ToggleOutcome.REJECTED, False)

        key = ("follow", user_id)
        if key in self._in_flight:
            logger.debug("Ignoring follow toggle on %s: already in flight", user_id)
            return ToggleResult(ToggleOutcome.IN_FLIGHT, self.is_following(user_id))

        self._in_flight.add(key)
        generation = self._generation
        viewer = self._viewer_id
        was_following = user_id in self._following
        try:
            if was_following:
                await self._store.delete(
                    FOLLOWS_TABLE, [eq("follower_id", viewer), eq("following_id", user_id)]
                )
            else:
                await self._store.insert(
                    FOLLOWS_TABLE, {"follower_id": viewer, "following_id": user_id}
                )
        except PersistenceError as exc:
            logger.warning("Follow toggle on %s failed: %s", user_id, exc)
            self._notices.error("Error", "Failed to update follow status")
            return ToggleResult(ToggleOutcome.FAILED, was_following)
        finally:
            self._in_flight.discard(key)

        if generation != self._generation:
            return ToggleResult(ToggleOutcome.APPLIED, not was_following)

        if was_following:
            self._following.discard(user_id)
            self._notices.info("Unfollowed", "You are no longer following this soul")
        else:
            self._following.add(user_id)
            self._notices.info("Following", "You are now following this beautiful soul ✨")
        return ToggleResult(ToggleOutcome.APPLIED, not was_following)

    # ---------------------------------------------------------------- lifecycle

    def reset(self, viewer_id: str | None) -> None:
        """Switch viewer, dropping all cached state and orphaning pending calls."""
        self._generation += 1
        self._viewer_id = viewer_id
        self._reset_state()

    def close(self) -> None:
        self.reset(None)
