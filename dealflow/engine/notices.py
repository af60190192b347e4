"""User-facing notices raised by the controllers instead of exceptions."""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)

# Older notices fall off once a long session has shown this many
MAX_NOTICES = 50


@dataclass(frozen=True)
class Notice:
    level: str  # info, warning, error
    message: str
    error: Exception | None = None


NoticeCallback = Callable[[Notice], None]


class NoticeBoard:
    """Collects the most recent notices and forwards each to an optional callback."""

    def __init__(self, on_notice: NoticeCallback | None = None, max_notices: int = MAX_NOTICES):
        self.notices: deque[Notice] = deque(maxlen=max_notices)
        self._on_notice = on_notice

    def notify(self, level: str, message: str, error: Exception | None = None) -> Notice:
        notice = Notice(level, message, error)
        self.notices.append(notice)
        if self._on_notice is not None:
            try:
                self._on_notice(notice)
            except Exception:
                logger.exception("Notice callback failed")
        return notice

    def clear(self) -> None:
        self.notices.clear()
