"""Pydantic schemas for rows and display objects."""

from .common import UNKNOWN_AUTHOR, SyncState
from .note import NoteOut
from .post import DisplayPost, MediaAttachment, MediaKind, PostRow
from .profile import FollowStats, ProfileOut
from .status import DisplayStatus, StatusRow, StatusState

__all__ = [
    "UNKNOWN_AUTHOR",
    "DisplayPost",
    "DisplayStatus",
    "FollowStats",
    "MediaAttachment",
    "MediaKind",
    "NoteOut",
    "PostRow",
    "ProfileOut",
    "StatusRow",
    "StatusState",
    "SyncState",
]
