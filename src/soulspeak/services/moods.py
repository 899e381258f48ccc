"""Mood catalog: colours, emoji and display helpers."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from soulspeak.db.time import ensure_utc, utcnow

ALL_MOODS = "all"
DEFAULT_COLOR = "bg-gray-100"
DEFAULT_EMOJI = "✨"


@dataclass(frozen=True)
class Mood:
    name: str
    color: str
    emoji: str


POST_MOODS: dict[str, Mood] = {
    mood.name: mood
    for mood in (
        Mood("love", "bg-pink-100", "💖"),
        Mood("joy", "bg-yellow-100", "😊"),
        Mood("melancholy", "bg-blue-100", "😔"),
        Mood("wanderlust", "bg-green-100", "✨"),
        Mood("excitement", "bg-orange-100", "⚡"),
    )
}

# Statuses share the post palette.
STATUS_MOODS: dict[str, Mood] = dict(POST_MOODS)

# Moods offered by the feed filter; "all" disables filtering.
FILTER_MOOD_EMOJI: dict[str, str] = {
    ALL_MOODS: "✨",
    "love": "❤️",
    "heartbreak": "💔",
    "wanderlust": "🌍",
    "lost": "😶",
    "hopeful": "🌈",
    "nostalgic": "🍂",
    "peaceful": "☁️",
}

NOTE_MOODS = frozenset({"peaceful", "grateful", "reflective", "hopeful", "content", "curious"})


def color_for(mood: str, catalog: dict[str, Mood] = POST_MOODS) -> str:
    """Return the display colour frozen onto new content for `mood`."""
    entry = catalog.get(mood)
    return entry.color if entry else DEFAULT_COLOR


def mood_emoji(mood: str) -> str:
    if mood in FILTER_MOOD_EMOJI and mood != ALL_MOODS:
        return FILTER_MOOD_EMOJI[mood]
    entry = POST_MOODS.get(mood)
    return entry.emoji if entry else DEFAULT_EMOJI


def format_time_ago(moment: datetime, now: datetime | None = None) -> str:
    """Coarse relative timestamp used on post cards."""
    now = ensure_utc(now) if now is not None else utcnow()
    hours = int((now - ensure_utc(moment)).total_seconds() // 3600)
    if hours < 1:
        return "Just now"
    if hours == 1:
        return "1 hour ago"
    if hours < 24:
        return f"{hours} hours ago"
    days = hours // 24
    if days == 1:
        return "1 day ago"
    return f"{days} days ago"
