"""
Presence view: collaborator cursors as map markers.

Subscribes to the channel's presence map and mirrors it into a small set of
``CursorMarker`` records (label, colour, coordinate), calling the renderer
hooks as cursors appear, move and go away. The signed-in user's own cursor
is never shown. Rendering itself (map layers, DOM) lives in the UI.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from services.tripsync.realtime.presence import CollaboratorCursor, PresenceTracker

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CursorMarker:
    user_id: str
    label: str
    color: str
    longitude: float
    latitude: float


class CursorRenderer(Protocol):
    def add(self, marker: CursorMarker) -> None:
        ...

    def move(self, marker: CursorMarker) -> None:
        ...

    def remove(self, user_id: str) -> None:
        ...


def to_marker(cursor: CollaboratorCursor) -> CursorMarker:
    return CursorMarker(
        user_id=cursor.user_id,
        label=cursor.user_name or "Anonymous",
        color=cursor.color,
        longitude=cursor.position.longitude,
        latitude=cursor.position.latitude,
    )


class PresenceView:
    """
    Usage:
        view = PresenceView(channel.presence, own_user_id=session.user_id,
                            room=trip_room(trip.id), renderer=map_layer)
        view.markers()      # current markers, own cursor excluded
        view.close()
    """

    def __init__(
        self,
        tracker: PresenceTracker,
        *,
        own_user_id: str | None = None,
        room: str | None = None,
        renderer: CursorRenderer | None = None,
    ) -> None:
        self._tracker = tracker
        self._own_user_id = own_user_id
        self._room = room
        self._renderer = renderer
        self._markers: dict[str, CursorMarker] = {}
        self._unsubscribe: Callable[[], None] | None = tracker.subscribe(self._on_change)
        for cursor in tracker.cursors(room):
            self._show(cursor)

    def markers(self) -> list[CursorMarker]:
        return list(self._markers.values())

    def marker(self, user_id: str) -> CursorMarker | None:
        return self._markers.get(user_id)

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        for user_id in list(self._markers):
            self._hide(user_id)

    def _on_change(self, action: str, user_id: str) -> None:
        if action == "typing":
            return
        cursor = self._tracker.cursor(user_id)
        if cursor is None or (self._room is not None and cursor.room != self._room):
            self._hide(user_id)
            return
        self._show(cursor)

    def _show(self, cursor: CollaboratorCursor) -> None:
        if cursor.user_id == self._own_user_id:
            return
        marker = to_marker(cursor)
        is_new = cursor.user_id not in self._markers
        self._markers[cursor.user_id] = marker
        if self._renderer is None:
            return
        if is_new:
            self._renderer.add(marker)
        else:
            self._renderer.move(marker)

    def _hide(self, user_id: str) -> None:
        if self._markers.pop(user_id, None) is None:
            return
        if self._renderer is not None:
            self._renderer.remove(user_id)
