# src/soulspeak/models/__init__.py
"""SQLAlchemy models backing the local SQL persistence backend."""

from .follow import UserFollow
from .note import Note
from .post import Post, PostLike
from .profile import Profile
from .status import StatusLike, StatusUpdate

__all__ = [
    "Note",
    "Post", "PostLike",
    "Profile",
    "StatusLike", "StatusUpdate",
    "UserFollow",
]
