"""Status-related Pydantic schemas."""
from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from soulspeak.schemas.common import UtcDatetime


class StatusState(str, Enum):
    """Lifecycle of a status.

    ACTIVE -> EXPIRED is driven by the clock, -> DELETED by the owner.
    Nothing ever returns to ACTIVE.
    """

    ACTIVE = "active"
    EXPIRED = "expired"
    DELETED = "deleted"


class StatusRow(BaseModel):
    """A `status_updates` row as stored."""

    id: str
    user_id: str
    content: str | None = None
    mood: str
    color: str
    emoji: str | None = None
    audio_url: str | None = None
    like_count: int = Field(default=0, ge=0)
    created_at: UtcDatetime
    expires_at: UtcDatetime

    model_config = ConfigDict(extra="ignore")

    def is_active(self, now: datetime) -> bool:
        return now < self.expires_at


class DisplayStatus(BaseModel):
    """Display-ready status joined with its owner's identity."""

    id: str
    user_id: str
    author: str
    author_avatar_url: str | None = None
    content: str | None = None
    mood: str
    color: str
    emoji: str | None = None
    audio_url: str | None = None
    like_count: int = 0
    created_at: UtcDatetime
    expires_at: UtcDatetime

    model_config = ConfigDict(frozen=True)

    def is_active(self, now: datetime) -> bool:
        return now < self.expires_at

    def is_owned_by(self, viewer_id: str | None) -> bool:
        return viewer_id is not None and viewer_id == self.user_id
