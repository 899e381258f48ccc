"""Private notes with explicit sync state.

Notes are the one place where a failed write is kept locally: the note is
held as LOCAL_ONLY, reported to the viewer, and re-sent by `sync_pending()`.
Updates and deletes of persisted notes only touch local state after the
store accepts them.
"""
from __future__ import annotations

import logging

from pydantic import ValidationError

from soulspeak.core.errors import UnauthenticatedError, ValidationFailure
from soulspeak.core.notices import NoticeBoard
from soulspeak.db.session import new_id
from soulspeak.db.time import utcnow
from soulspeak.persistence.base import Condition, Order, PersistenceError, PersistenceService, eq
from soulspeak.schemas.common import SyncState
from soulspeak.schemas.note import NoteOut
from soulspeak.services.moods import NOTE_MOODS

logger = logging.getLogger(__name__)

NOTES_TABLE = "notes"


class NotesBook:
    """The viewer's notes, newest edit first."""

    def __init__(self, store: PersistenceService, viewer_id: str | None, notices: NoticeBoard) -> None:
        self._store = store
        self._viewer_id = viewer_id
        self._notices = notices
        self._notes: list[NoteOut] = []

    @property
    def notes(self) -> list[NoteOut]:
        return list(self._notes)

    @property
    def pending(self) -> list[NoteOut]:
        return [note for note in self._notes if not note.is_synced]

    def _require_viewer(self) -> str:
        if self._viewer_id is None:
            raise UnauthenticatedError("Please sign in to keep notes")
        return self._viewer_id

    @staticmethod
    def _clean(title: str, content: str, mood: str | None) -> tuple[str, str, str | None]:
        clean_title = title.strip()
        if not clean_title:
            raise ValidationFailure("Give your note a title", title="Missing title")
        if mood and mood not in NOTE_MOODS:
            raise ValidationFailure(f"Unknown mood {mood!r}")
        return clean_title, content.strip(), mood or None

    def _owned(self, note_id: str) -> list[Condition]:
        return [eq("id", note_id), eq("user_id", self._viewer_id)]

    def _sort(self) -> None:
        self._notes.sort(key=lambda note: note.updated_at, reverse=True)

    async def load(self) -> list[NoteOut]:
        """Fetch the viewer's notes, keeping unsynced local notes in place."""
        if self._viewer_id is None:
            return []
        try:
            rows = await self._store.select(
                NOTES_TABLE,
                filters=[eq("user_id", self._viewer_id)],
                order=Order("updated_at", descending=True),
            )
        except PersistenceError as exc:
            logger.warning("Notes fetch failed: %s", exc)
            self._notices.error("Couldn't load notes", "Please try again in a moment.")
            return self.notes

        fetched: list[NoteOut] = []
        for row in rows:
            try:
                fetched.append(NoteOut.model_validate(row))
            except ValidationError as exc:
                logger.warning("Skipping malformed note row %s: %s", row.get("id"), exc)
        self._notes = fetched + self.pending
        self._sort()
        return self.notes

    async def create(self, title: str, content: str = "", mood: str | None = None) -> NoteOut | None:
        try:
            viewer = self._require_viewer()
            clean_title, clean_content, clean_mood = self._clean(title, content, mood)
        except (UnauthenticatedError, ValidationFailure) as exc:
            self._notices.surface(exc)
            return None

        now = utcnow()
        row = {
            "user_id": viewer,
            "title": clean_title,
            "content": clean_content,
            "mood": clean_mood,
            "created_at": now,
            "updated_at": now,
        }
        try:
            note = NoteOut.model_validate(await self._store.insert(NOTES_TABLE, row))
        except PersistenceError as exc:
            logger.warning("Note insert failed, keeping it locally: %s", exc)
            note = NoteOut(id=new_id(), sync_state=SyncState.LOCAL_ONLY, **row)
            self._notices.error("Saved on this device only", "Your note will sync when the connection returns.")
        else:
            self._notices.info("Note created!", "Your personal note has been saved.")

        self._notes.insert(0, note)
        return note

    async def update(
        self, note_id: str, *, title: str, content: str = "", mood: str | None = None
    ) -> NoteOut | None:
        current = next((note for note in self._notes if note.id == note_id), None)
        if current is None:
            self._notices.error("Error", "That note no longer exists.")
            return None
        try:
            clean_title, clean_content, clean_mood = self._clean(title, content, mood)
        except ValidationFailure as exc:
            self._notices.surface(exc)
            return None

        patch = {
            "title": clean_title,
            "content": clean_content,
            "mood": clean_mood,
            "updated_at": utcnow(),
        }
        if current.is_synced:
            try:
                await self._store.update(NOTES_TABLE, patch, self._owned(note_id))
            except PersistenceError as exc:
                logger.warning("Note update %s failed: %s", note_id, exc)
                self._notices.error("Error", "Failed to update note. Please try again.")
                return None

        updated = current.model_copy(update=patch)
        self._notes = [updated if note.id == note_id else note for note in self._notes]
        self._sort()
        return updated

    async def delete(self, note_id: str) -> bool:
        current = next((note for note in self._notes if note.id == note_id), None)
        if current is None:
            return False
        if current.is_synced:
            try:
                await self._store.delete(NOTES_TABLE, self._owned(note_id))
            except PersistenceError as exc:
                logger.warning("Note delete %s failed: %s", note_id, exc)
                self._notices.error("Error", "Failed to delete note. Please try again.")
                return False
        self._notes = [note for note in self._notes if note.id != note_id]
        return True

    async def sync_pending(self) -> int:
        """Re-send LOCAL_ONLY notes; returns how many were persisted."""
        if self._viewer_id is None:
            return 0
        synced = 0
        for note in self.pending:
            row = {
                "user_id": self._viewer_id,
                "title": note.title,
                "content": note.content,
                "mood": note.mood,
                "created_at": note.created_at,
                "updated_at": note.updated_at,
            }
            try:
                stored = NoteOut.model_validate(await self._store.insert(NOTES_TABLE, row))
            except PersistenceError as exc:
                logger.warning("Note %s still unsynced: %s", note.id, exc)
                break
            self._notes = [stored if item.id == note.id else item for item in self._notes]
            synced += 1
        self._sort()
        return synced
