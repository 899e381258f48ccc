"""Note-related Pydantic schemas."""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from soulspeak.schemas.common import SyncState, UtcDatetime


class NoteOut(BaseModel):
    """A note as held by the notes book.

    `sync_state` is LOCAL_ONLY when the insert never reached the persistence
    service; such notes carry a locally generated id.
    """

    id: str
    title: str
    content: str = ""
    mood: str | None = None
    created_at: UtcDatetime
    updated_at: UtcDatetime
    sync_state: SyncState = SyncState.PERSISTED

    model_config = ConfigDict(extra="ignore")

    @property
    def is_synced(self) -> bool:
        return self.sync_state is SyncState.PERSISTED
