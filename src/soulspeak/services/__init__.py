# src/soulspeak/services/__init__.py
"""Business logic services for the SoulSpeak feed core."""

from .engagement import EngagementTracker, SubjectKind, ToggleOutcome, ToggleResult
from .feed import FeedAssembler
from .media import MediaFile, MediaUploader
from .notes import NotesBook
from .playback import PlaybackCoordinator, PlaybackError
from .posts import PostComposer
from .profiles import ProfileService
from .statuses import StatusManager

__all__ = [
    "EngagementTracker",
    "FeedAssembler",
    "MediaFile",
    "MediaUploader",
    "NotesBook",
    "PlaybackCoordinator",
    "PlaybackError",
    "PostComposer",
    "ProfileService",
    "StatusManager",
    "SubjectKind",
    "ToggleOutcome",
    "ToggleResult",
]
