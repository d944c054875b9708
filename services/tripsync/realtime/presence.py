"""
Collaborator presence owned by the real-time channel.

Cursor entries are created on a collaborator's first cursor event, refreshed
on every later one, and removed when the collaborator leaves or when the
entry has not been refreshed for ``stale_after_s`` (checked by ``sweep``).
The staleness sweep is what cleans up after "user left" notifications that
never arrived.

Colours come from a fixed palette through the pure ``assign_color``; once a
collaborator has a colour it is kept for the rest of the local session, even
if their cursor is evicted and later reappears.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, replace

from services.tripsync.models import Coordinate

logger = logging.getLogger(__name__)

CURSOR_COLORS: tuple[str, ...] = (
    "#EF4444",  # red
    "#F59E0B",  # amber
    "#10B981",  # emerald
    "#3B82F6",  # blue
    "#8B5CF6",  # violet
    "#EC4899",  # pink
    "#14B8A6",  # teal
    "#F97316",  # orange
)

_STALE_AFTER_S = 5.0


def assign_color(
    existing: Mapping[str, str],
    user_id: str,
    palette: Sequence[str] = CURSOR_COLORS,
) -> str:
    """
    Colour for ``user_id`` given the assignments made so far.

    Existing assignments are returned unchanged. A new collaborator gets the
    first palette colour nobody holds yet; once the palette is exhausted the
    colours cycle in assignment order.
    """
    if user_id in existing:
        return existing[user_id]
    taken = set(existing.values())
    for color in palette:
        if color not in taken:
            return color
    return palette[len(existing) % len(palette)]


@dataclass(frozen=True)
class CollaboratorCursor:
    user_id: str
    user_name: str
    position: Coordinate
    color: str
    room: str | None
    last_update: float


@dataclass(frozen=True)
class TypingStatus:
    user_id: str
    context: str
    room: str | None
    last_update: float


PresenceListener = Callable[[str, str], None]  # (action, user_id)


class PresenceTracker:
    """
    In-memory cursor and typing map.

    Only the channel writes to it; everyone else reads ``cursors()`` and
    subscribes for change notifications with actions
    "moved", "left", "evicted" and "typing".
    """

    def __init__(
        self,
        *,
        stale_after_s: float = _STALE_AFTER_S,
        palette: Sequence[str] = CURSOR_COLORS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.stale_after_s = stale_after_s
        self._palette = tuple(palette)
        self._clock = clock
        self._cursors: dict[str, CollaboratorCursor] = {}
        self._typing: dict[str, TypingStatus] = {}
        self._colors: dict[str, str] = {}
        self._listeners: list[PresenceListener] = []

    # -- Reads ------------------------------------------------------------

    def cursors(self, room: str | None = None) -> list[CollaboratorCursor]:
        return [c for c in self._cursors.values() if room is None or c.room == room]

    def cursor(self, user_id: str) -> CollaboratorCursor | None:
        return self._cursors.get(user_id)

    def typing(self, room: str | None = None) -> list[TypingStatus]:
        return [t for t in self._typing.values() if room is None or t.room == room]

    def color_assignments(self) -> dict[str, str]:
        return dict(self._colors)

    def subscribe(self, listener: PresenceListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    # -- Writes (channel only) -------------------------------------------

    def move(self, user_id: str, user_name: str, position: Coordinate, room: str | None) -> CollaboratorCursor:
        color = self._colors.get(user_id)
        if color is None:
            color = assign_color(self._colors, user_id, self._palette)
            self._colors[user_id] = color
            logger.debug("presence colour %s assigned to %s", color, user_id)

        now = self._clock()
        existing = self._cursors.get(user_id)
        if existing is None:
            cursor = CollaboratorCursor(user_id, user_name, position, color, room, now)
        else:
            cursor = replace(existing, user_name=user_name, position=position, room=room, last_update=now)
        self._cursors[user_id] = cursor
        self._emit("moved", user_id)
        return cursor

    def set_typing(self, user_id: str, is_typing: bool, context: str, room: str | None) -> None:
        if is_typing:
            self._typing[user_id] = TypingStatus(user_id, context, room, self._clock())
        elif self._typing.pop(user_id, None) is None:
            return
        self._emit("typing", user_id)

    def leave(self, user_id: str) -> None:
        removed = self._cursors.pop(user_id, None)
        typing = self._typing.pop(user_id, None)
        if removed is not None or typing is not None:
            self._emit("left", user_id)

    def sweep(self) -> list[str]:
        """Evict every entry not refreshed within the staleness window."""
        cutoff = self._clock() - self.stale_after_s
        stale = [uid for uid, c in self._cursors.items() if c.last_update < cutoff]
        for user_id in stale:
            del self._cursors[user_id]
            self._emit("evicted", user_id)
        for user_id in [uid for uid, t in self._typing.items() if t.last_update < cutoff]:
            del self._typing[user_id]
            self._emit("typing", user_id)
        if stale:
            logger.debug("presence sweep evicted %d stale cursor(s)", len(stale))
        return stale

    def clear(self) -> None:
        """Drop cursors and typing state; colour assignments survive."""
        user_ids = list(self._cursors)
        self._cursors.clear()
        self._typing.clear()
        for user_id in user_ids:
            self._emit("left", user_id)

    def _emit(self, action: str, user_id: str) -> None:
        for listener in list(self._listeners):
            try:
                listener(action, user_id)
            except Exception:
                logger.warning("presence listener failed on %s/%s", action, user_id, exc_info=True)
