"""Transient user-facing notices.

Every failure the core handles is reported twice: once to the log for
diagnostics and once as a `Notice` on the session's `NoticeBoard`, which the
presentation layer drains and renders.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from soulspeak.core.errors import SoulSpeakError

logger = logging.getLogger(__name__)


class NoticeVariant(str, Enum):
    """Visual weight of a notice."""

    DEFAULT = "default"
    DESTRUCTIVE = "destructive"


@dataclass(frozen=True)
class Notice:
    """A single transient notice."""

    title: str
    description: str
    variant: NoticeVariant = NoticeVariant.DEFAULT

    @property
    def is_error(self) -> bool:
        return self.variant is NoticeVariant.DESTRUCTIVE


NoticeListener = Callable[[Notice], None]


class NoticeBoard:
    """Ordered buffer of notices with optional push listeners."""

    def __init__(self) -> None:
        self._pending: list[Notice] = []
        self._listeners: list[NoticeListener] = []

    def subscribe(self, listener: NoticeListener) -> None:
        self._listeners.append(listener)

    def push(self, notice: Notice) -> Notice:
        logger.debug("Notice [%s] %s: %s", notice.variant.value, notice.title, notice.description)
        self._pending.append(notice)
        for listener in self._listeners:
            listener(notice)
        return notice

    def info(self, title: str, description: str) -> Notice:
        return self.push(Notice(title, description))

    def error(self, title: str, description: str) -> Notice:
        return self.push(Notice(title, description, NoticeVariant.DESTRUCTIVE))

    def surface(self, exc: SoulSpeakError) -> Notice:
        """Push a destructive notice describing a handled failure."""
        return self.error(exc.title, exc.description)

    @property
    def latest(self) -> Notice | None:
        return self._pending[-1] if self._pending else None

    def drain(self) -> list[Notice]:
        """Return and clear every pending notice."""
        drained, self._pending = self._pending, []
        return drained

    def __len__(self) -> int:
        return len(self._pending)
