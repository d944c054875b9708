"""
User-visible notifications.

The sync layer never surfaces connectivity or migration trouble as
exceptions; it posts a Notification here and the UI decides how to show it.
Persistent notifications stay until the user dismisses them.
"""

from __future__ import annotations

import itertools
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from services.tripsync.models import utcnow

logger = logging.getLogger(__name__)


class Level(str, Enum):
    info = "info"
    success = "success"
    warning = "warning"
    error = "error"


@dataclass(frozen=True)
class Notification:
    id: int
    level: Level
    message: str
    persistent: bool = False
    created_at: datetime = field(default_factory=utcnow)


class NotificationCenter:
    def __init__(self) -> None:
        self._items: list[Notification] = []
        self._ids = itertools.count(1)
        self._listeners: list[Callable[[Notification], None]] = []

    def notify(self, level: Level, message: str, *, persistent: bool = False) -> Notification:
        note = Notification(id=next(self._ids), level=level, message=message, persistent=persistent)
        self._items.append(note)
        logger.debug("notification %s: %s", level.value, message)
        for listener in list(self._listeners):
            try:
                listener(note)
            except Exception:
                logger.warning("notification listener failed", exc_info=True)
        return note

    def info(self, message: str) -> Notification:
        return self.notify(Level.info, message)

    def success(self, message: str) -> Notification:
        return self.notify(Level.success, message)

    def warning(self, message: str, *, persistent: bool = False) -> Notification:
        return self.notify(Level.warning, message, persistent=persistent)

    def error(self, message: str, *, persistent: bool = False) -> Notification:
        return self.notify(Level.error, message, persistent=persistent)

    def dismiss(self, notification_id: int) -> None:
        self._items = [n for n in self._items if n.id != notification_id]

    @property
    def items(self) -> list[Notification]:
        return list(self._items)

    def persistent(self, level: Level | None = None) -> list[Notification]:
        return [n for n in self._items if n.persistent and (level is None or n.level is level)]

    def subscribe(self, listener: Callable[[Notification], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe
