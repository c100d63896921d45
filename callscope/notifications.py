"""Per-client queue of user-facing notifications (toasts)."""

from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass, field

import structlog

from callscope.messages import translate
from callscope.types import Language, NotificationLevel

logger = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class Notification:
    level: NotificationLevel
    code: str
    message: str
    created_at: float = field(default_factory=time.time)


class Notifier:
    """Collects notifications until the client drains them."""

    def __init__(self, language: Language = Language.ES, max_pending: int = 50) -> None:
        self.language = language
        self._pending: deque[Notification] = deque(maxlen=max_pending)

    def push(self, code: str, level: NotificationLevel = NotificationLevel.INFO) -> Notification:
        notification = Notification(
            level=level,
            code=code,
            message=translate(code, self.language),
        )
        self._pending.append(notification)
        logger.info("notification_queued", code=code, level=str(level))
        return notification

    def drain(self) -> list[Notification]:
        """Return and clear all pending notifications."""
        items = list(self._pending)
        self._pending.clear()
        return items

    @property
    def pending(self) -> list[Notification]:
        return list(self._pending)
