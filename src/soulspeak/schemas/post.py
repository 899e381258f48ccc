# src/soulspeak/schemas/post.py
"""Post-related Pydantic schemas."""
from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from soulspeak.schemas.common import UtcDatetime


class MediaKind(str, Enum):
    """Kinds of media that may be attached to a post or status."""

    IMAGE = "image"
    AUDIO = "audio"
    VIDEO = "video"


class MediaAttachment(BaseModel):
    """Uploaded media reference."""

    url: str
    kind: MediaKind
    # Storage key within the bucket; only known right after an upload.
    path: str | None = Field(default=None, exclude=True)

    model_config = ConfigDict(frozen=True)


class PostRow(BaseModel):
    """A `posts` row as stored, including the author id of anonymous posts."""

    id: str
    user_id: str
    content: str
    mood: str
    color: str
    is_anonymous: bool = True
    location: str | None = None
    media_url: str | None = None
    media_type: MediaKind | None = None
    like_count: int = Field(default=0, ge=0)
    created_at: UtcDatetime

    model_config = ConfigDict(extra="ignore")

    @property
    def media(self) -> MediaAttachment | None:
        if self.media_url and self.media_type:
            return MediaAttachment(url=self.media_url, kind=self.media_type)
        return None


class DisplayPost(BaseModel):
    """Display-ready post.

    For anonymous posts both `author` and `author_id` are None, and both keys
    are left out of `as_payload()`.
    """

    id: str
    content: str
    mood: str
    color: str
    is_anonymous: bool
    author: str | None = None
    author_id: str | None = None
    author_avatar_url: str | None = None
    location: str | None = None
    media: MediaAttachment | None = None
    like_count: int = 0
    created_at: UtcDatetime

    model_config = ConfigDict(frozen=True)

    def as_payload(self) -> dict[str, Any]:
        payload = self.model_dump(mode="json")
        if self.is_anonymous:
            for key in ("author", "author_id", "author_avatar_url"):
                payload.pop(key, None)
        return payload
