"""Single-playback coordination for audio attached to statuses and posts.

At most one item is audible at a time: starting an item first pauses and
rewinds whatever was playing. Audio elements are created lazily through the
injected factory and reused across play/pause cycles.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Protocol

from soulspeak.core.notices import NoticeBoard

logger = logging.getLogger(__name__)


class PlaybackError(RuntimeError):
    """Raised by an audio element that cannot start playing."""


class AudioElement(Protocol):
    """Minimal surface of a playable audio source."""

    current_time: float

    def play(self) -> None:
        ...

    def pause(self) -> None:
        ...


# Called with the media url and a callback to invoke when playback ends.
AudioFactory = Callable[[str, Callable[[], None]], AudioElement]


class PlaybackCoordinator:
    """Keeps track of the single currently playing item."""

    def __init__(self, factory: AudioFactory, notices: NoticeBoard | None = None) -> None:
        self._factory = factory
        self._notices = notices
        self._elements: dict[str, AudioElement] = {}
        self._playing: str | None = None

    @property
    def playing(self) -> str | None:
        return self._playing

    def is_playing(self, item_id: str) -> bool:
        return self._playing == item_id

    def element(self, item_id: str) -> AudioElement | None:
        return self._elements.get(item_id)

    def _element_for(self, item_id: str, url: str) -> AudioElement:
        element = self._elements.get(item_id)
        if element is None:
            element = self._factory(url, lambda: self._ended(item_id))
            self._elements[item_id] = element
        return element

    def _ended(self, item_id: str) -> None:
        if self._playing == item_id:
            self._playing = None

    def _halt(self, item_id: str) -> None:
        element = self._elements.get(item_id)
        if element is not None:
            element.pause()
            element.current_time = 0

    def toggle(self, item_id: str, url: str) -> str | None:
        """Play `item_id`, or stop it if it is the one playing.

        Returns the id playing after the call.
        """
        if self._playing == item_id:
            self.stop()
            return None

        if self._playing is not None:
            self._halt(self._playing)
            self._playing = None

        element = self._element_for(item_id, url)
        try:
            element.play()
        except PlaybackError as exc:
            logger.warning("Could not play %s: %s", item_id, exc)
            if self._notices is not None:
                self._notices.error("Error", "Failed to play audio")
            return None

        self._playing = item_id
        return item_id

    def stop(self) -> None:
        if self._playing is None:
            return
        self._halt(self._playing)
        self._playing = None

    def close(self) -> None:
        """Stop playback and release every element."""
        self.stop()
        self._elements.clear()
