from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import Callable

logger = logging.getLogger(__name__)

LEVEL_SUCCESS = "success"
LEVEL_ERROR = "error"
LEVEL_INFO = "info"


@dataclass(frozen=True)
class Notification:
    level: str
    message: str


class Notifier:
    """User-facing message channel; keeps the most recent messages."""

    def __init__(self, history_size: int = 50):
        self._listeners: list[Callable[[Notification], None]] = []
        self.history: deque[Notification] = deque(maxlen=history_size)

    def subscribe(self, listener: Callable[[Notification], None]):
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def notify(self, level: str, message: str) -> Notification:
        notification = Notification(level=level, message=message)
        self.history.append(notification)
        for listener in list(self._listeners):
            try:
                listener(notification)
            except Exception:
                logger.exception("Notification listener failed for %r", message)
        return notification

    def success(self, message: str) -> Notification:
        return self.notify(LEVEL_SUCCESS, message)

    def error(self, message: str) -> Notification:
        return self.notify(LEVEL_ERROR, message)

    def info(self, message: str) -> Notification:
        return self.notify(LEVEL_INFO, message)

    def messages(self, level: str | None = None) -> list[str]:
        return [
            row.message for row in self.history if level is None or row.level == level
        ]
