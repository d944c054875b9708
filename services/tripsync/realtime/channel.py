"""
Real-Time Sync Channel -- one persistent connection per authenticated session.

State machine:

    DISCONNECTED -> CONNECTING -> CONNECTED <-> RECONNECTING
          ^             |                          |
          +-------------+--------------------------+
      (disconnect(), or the reconnect budget is exhausted)

Inbound push events are parsed into the SyncEvent union, filtered by room,
applied to SharedState exactly once in the order received, then handed to
listeners registered with ``on``. Connection trouble never raises: it is
logged, surfaced as a notification, and handled by reconnecting up to
``max_reconnect_attempts`` times with a fixed delay. Running out of attempts
leaves the channel DISCONNECTED with one persistent warning.

Outbound cursor broadcasts are throttled to one per ``cursor_interval_s``
(excess dropped). Cursor and typing presence expire after ``stale_after_s``
via a sweep every ``sweep_interval_s`` while the channel is up.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import sentry_sdk

from services.tripsync.errors import ChannelDisconnected
from services.tripsync.models import Coordinate, EntityType
from services.tripsync.notifications import NotificationCenter
from services.tripsync.realtime.events import (
    SYNC_EVENT_TYPES,
    CollaboratorAdded,
    CollaboratorJoined,
    CollaboratorLeft,
    CollaboratorRemoved,
    CursorMoved,
    EntityCreated,
    EntityDeleted,
    EntityUpdated,
    EventKind,
    MalformedEvent,
    OutboundEvent,
    SyncEvent,
    TypingChanged,
    WaypointAdded,
    WaypointRemoved,
    WaypointsReordered,
    WaypointUpdated,
    parse_event,
)
from services.tripsync.realtime.presence import CURSOR_COLORS, PresenceListener, PresenceTracker
from services.tripsync.realtime.throttle import Throttle
from services.tripsync.realtime.transport import ChannelTransport
from services.tripsync.session import SessionProvider
from services.tripsync.state import SharedState

logger = logging.getLogger(__name__)

_MAX_RECONNECT_ATTEMPTS = 5
_RECONNECT_DELAY_S = 1.0
_HANDSHAKE_TIMEOUT_S = 5.0
_CURSOR_INTERVAL_S = 0.1  # 100 ms
_STALE_AFTER_S = 5.0
_SWEEP_INTERVAL_S = 1.0


class ChannelState(str, Enum):
    disconnected = "disconnected"
    connecting = "connecting"
    connected = "connected"
    reconnecting = "reconnecting"


EventCallback = Callable[[SyncEvent], None]
StatusCallback = Callable[[ChannelState], None]


@dataclass(eq=False)
class _Listener:
    kind: EventKind
    callback: EventCallback
    room: str | None = None
    active: bool = field(default=True)


class RealtimeChannel:
    """
    Usage:
        channel = RealtimeChannel(SocketIOTransport(), state, notifications, holder.get,
                                  url=settings.realtime_url)
        await channel.connect()
        await channel.join_room(trip_room(trip.id))
        unsubscribe = channel.on(EventKind.waypoint_added, on_waypoint)
        await channel.broadcast_cursor(Coordinate(lat=38.72, lng=-9.14))
        await channel.disconnect()
    """

    def __init__(
        self,
        transport: ChannelTransport,
        state: SharedState,
        notifications: NotificationCenter,
        session: SessionProvider,
        *,
        url: str,
        max_reconnect_attempts: int = _MAX_RECONNECT_ATTEMPTS,
        reconnect_delay_s: float = _RECONNECT_DELAY_S,
        handshake_timeout_s: float = _HANDSHAKE_TIMEOUT_S,
        cursor_interval_s: float = _CURSOR_INTERVAL_S,
        stale_after_s: float = _STALE_AFTER_S,
        sweep_interval_s: float = _SWEEP_INTERVAL_S,
        palette: tuple[str, ...] = CURSOR_COLORS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._transport = transport
        self._state = state
        self._notifications = notifications
        self._session = session
        self._url = url
        self._max_attempts = max_reconnect_attempts
        self._reconnect_delay_s = reconnect_delay_s
        self._handshake_timeout_s = handshake_timeout_s
        self._sweep_interval_s = sweep_interval_s
        self._sleep = sleep

        self._presence = PresenceTracker(stale_after_s=stale_after_s, palette=palette, clock=clock)
        self._cursor_throttle = Throttle(cursor_interval_s, clock=clock)

        self._status = ChannelState.disconnected
        self._intentional = False
        self._rooms: set[str] = set()
        self._listeners: dict[EventKind, list[_Listener]] = {}
        self._status_listeners: list[StatusCallback] = []

        self._handshake_task: asyncio.Future | None = None
        self._reconnect_task: asyncio.Task | None = None
        self._sweep_task: asyncio.Task | None = None

        transport.bind(self.receive, self.handle_drop, [kind.value for kind in EventKind])

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def status(self) -> ChannelState:
        return self._status

    @property
    def connected(self) -> bool:
        return self._status is ChannelState.connected

    @property
    def rooms(self) -> frozenset[str]:
        return frozenset(self._rooms)

    @property
    def presence(self) -> PresenceTracker:
        """Read-only view for consumers; only the channel writes to it."""
        return self._presence

    def subscribe_presence(self, listener: PresenceListener) -> Callable[[], None]:
        return self._presence.subscribe(listener)

    def on_status(self, callback: StatusCallback) -> Callable[[], None]:
        self._status_listeners.append(callback)

        def _unsubscribe() -> None:
            if callback in self._status_listeners:
                self._status_listeners.remove(callback)

        return _unsubscribe

    def _set_status(self, status: ChannelState) -> None:
        if status is self._status:
            return
        logger.debug("realtime channel %s -> %s", self._status.value, status.value)
        self._status = status
        for callback in list(self._status_listeners):
            try:
                callback(status)
            except Exception:
                logger.warning("channel status listener failed", exc_info=True)

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> bool:
        """
        Open the connection. Returns True once connected.

        No-op when already connected or a connect/reconnect is in flight.
        Without an access token nothing happens. A failed first handshake
        hands over to the reconnect loop and returns False.
        """
        if self._status is ChannelState.connected:
            return True
        if self._status in (ChannelState.connecting, ChannelState.reconnecting):
            logger.debug("realtime connect already in progress (%s)", self._status.value)
            return False

        token = self._session().access_token
        if not token:
            logger.warning("cannot connect realtime channel without an access token")
            return False

        self._intentional = False
        self._set_status(ChannelState.connecting)
        self._start_sweeper()

        if await self._handshake(token):
            await self._on_connected(reconnected=False)
            return True
        if self._intentional:
            return False

        self._set_status(ChannelState.reconnecting)
        self._reconnect_task = asyncio.create_task(self._reconnect_loop())
        return False

    async def disconnect(self) -> None:
        """User-initiated close: cancels pending attempts, no reconnect notices."""
        self._intentional = True
        for task in (self._handshake_task, self._reconnect_task):
            if task is not None and not task.done():
                task.cancel()
        self._reconnect_task = None

        if self._transport.connected:
            try:
                await self._transport.disconnect()
            except Exception:
                logger.warning("realtime transport disconnect failed", exc_info=True)

        self._stop_sweeper()
        self._presence.clear()
        self._rooms.clear()
        self._cursor_throttle.reset()
        self._set_status(ChannelState.disconnected)
        logger.info("realtime channel disconnected")

    async def wait_settled(self) -> ChannelState:
        """Wait for any in-flight reconnect loop to finish; returns the resulting state."""
        task = self._reconnect_task
        if task is not None and not task.done():
            await asyncio.wait({task})
        return self._status

    def handle_drop(self) -> None:
        """Transport callback for a connection lost without disconnect()."""
        if self._intentional or self._status is not ChannelState.connected:
            return
        logger.warning("realtime connection lost; reconnecting")
        self._set_status(ChannelState.reconnecting)
        self._notifications.warning("Real-time updates disconnected. Reconnecting...")
        self._reconnect_task = asyncio.ensure_future(self._reconnect_loop())

    async def _handshake(self, token: str) -> bool:
        self._handshake_task = asyncio.ensure_future(
            self._transport.connect(self._url, token, self._handshake_timeout_s)
        )
        try:
            await self._handshake_task
            return True
        except asyncio.CancelledError:
            if self._intentional:
                return False
            raise
        except Exception as exc:
            logger.warning("realtime handshake failed: %s", exc)
            return False
        finally:
            self._handshake_task = None

    async def _reconnect_loop(self) -> None:
        for attempt in range(1, self._max_attempts + 1):
            await self._sleep(self._reconnect_delay_s)
            if self._intentional:
                return
            token = self._session().access_token
            if not token:
                logger.info("session ended during reconnect; giving up")
                break
            logger.info("realtime reconnect attempt %d/%d", attempt, self._max_attempts)
            if await self._handshake(token):
                await self._on_connected(reconnected=True)
                return
            if self._intentional:
                return
        self._give_up()

    async def _on_connected(self, *, reconnected: bool) -> None:
        self._set_status(ChannelState.connected)
        logger.info("realtime channel %s", "reconnected" if reconnected else "connected")
        self._notifications.success(
            "Real-time updates reconnected" if reconnected else "Real-time updates connected"
        )
        for room in sorted(self._rooms):
            await self._emit(OutboundEvent.join_room, {"room": room})

    def _give_up(self) -> None:
        logger.warning(
            "realtime channel gave up after %d reconnect attempt(s)", self._max_attempts
        )
        sentry_sdk.capture_message("realtime channel reconnect budget exhausted", level="warning")
        self._reconnect_task = None
        self._stop_sweeper()
        self._presence.clear()
        self._set_status(ChannelState.disconnected)
        self._notifications.warning(
            "Real-time updates are unavailable. Changes from collaborators will "
            "appear after you reload.",
            persistent=True,
        )

    # ------------------------------------------------------------------
    # Rooms
    # ------------------------------------------------------------------

    async def join_room(self, room: str) -> None:
        """Scope delivery to ``room``. Joined rooms are re-joined after reconnects."""
        if room in self._rooms:
            return
        self._rooms.add(room)
        if self.connected:
            await self._emit(OutboundEvent.join_room, {"room": room})
        logger.info("realtime joined room %s", room)

    async def leave_room(self, room: str) -> None:
        if room not in self._rooms:
            return
        self._rooms.discard(room)
        for cursor in self._presence.cursors(room):
            self._presence.leave(cursor.user_id)
        if self.connected:
            await self._emit(OutboundEvent.leave_room, {"room": room})
        logger.info("realtime left room %s", room)

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def on(self, kind: EventKind, callback: EventCallback, *, room: str | None = None) -> Callable[[], None]:
        """
        Register ``callback`` for ``kind`` (optionally only for one room).

        Returns an unsubscribe function that is safe to call more than once.
        """
        listener = _Listener(kind=kind, callback=callback, room=room)
        self._listeners.setdefault(kind, []).append(listener)

        def _unsubscribe() -> None:
            if not listener.active:
                return
            listener.active = False
            remaining = [l for l in self._listeners.get(kind, []) if l is not listener]
            if remaining:
                self._listeners[kind] = remaining
            else:
                self._listeners.pop(kind, None)

        return _unsubscribe

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def receive(self, name: str, payload: Any) -> None:
        """Transport callback: parse, scope, apply, then notify listeners."""
        try:
            event = parse_event(name, payload)
        except MalformedEvent as exc:
            logger.warning("dropping malformed realtime event %s: %s", name, exc)
            return

        if event.room is not None and event.room not in self._rooms:
            logger.debug("dropping %s for unjoined room %s", name, event.room)
            return

        getattr(self, _APPLIERS[type(event)])(event)

        for listener in list(self._listeners.get(event.kind, [])):
            if not listener.active:
                continue
            if listener.room is not None and listener.room != event.room:
                continue
            try:
                listener.callback(event)
            except Exception:
                logger.warning("realtime listener for %s failed", name, exc_info=True)

    def _apply_entity_upsert(self, event: EntityCreated | EntityUpdated) -> None:
        if event.entity_type is EntityType.trip:
            self._state.upsert_trip(event.entity)
        elif event.entity_type is EntityType.place:
            self._state.upsert_place(event.entity)
        else:
            self._state.upsert_collection(event.entity)

    def _apply_entity_delete(self, event: EntityDeleted) -> None:
        if event.entity_type is EntityType.trip:
            if self._state.current_trip_id == event.entity_id:
                self._notifications.warning("The trip you were viewing was deleted.")
            self._state.remove_trip(event.entity_id)
        elif event.entity_type is EntityType.place:
            self._state.remove_place(event.entity_id)
        else:
            self._state.remove_collection(event.entity_id)

    def _apply_waypoint_added(self, event: WaypointAdded) -> None:
        self._state.add_waypoint(event.trip_id, event.waypoint)

    def _apply_waypoint_updated(self, event: WaypointUpdated) -> None:
        self._state.update_waypoint(event.trip_id, event.waypoint)

    def _apply_waypoint_removed(self, event: WaypointRemoved) -> None:
        self._state.remove_waypoint(event.trip_id, event.waypoint_id)

    def _apply_waypoints_reordered(self, event: WaypointsReordered) -> None:
        self._state.reorder_waypoints(event.trip_id, event.waypoints)

    def _apply_collaborator_added(self, event: CollaboratorAdded) -> None:
        trip = self._state.trips.get(event.trip_id)
        if trip is not None and event.user_id not in trip.collaborators:
            self._state.set_collaborators(event.trip_id, [*trip.collaborators, event.user_id])
        self._notifications.info(f"{event.user_name} was added to the trip")

    def _apply_collaborator_removed(self, event: CollaboratorRemoved) -> None:
        trip = self._state.trips.get(event.trip_id)
        if trip is not None and event.user_id in trip.collaborators:
            self._state.set_collaborators(
                event.trip_id, [uid for uid in trip.collaborators if uid != event.user_id]
            )
        self._presence.leave(event.user_id)
        self._notifications.info(f"{event.user_name} was removed from the trip")

    def _apply_collaborator_joined(self, event: CollaboratorJoined) -> None:
        if event.user_id != self._session().user_id:
            self._notifications.info(f"{event.user_name} joined")

    def _apply_collaborator_left(self, event: CollaboratorLeft) -> None:
        self._presence.leave(event.user_id)
        if event.user_id != self._session().user_id:
            self._notifications.info(f"{event.user_name} left")

    def _apply_cursor_moved(self, event: CursorMoved) -> None:
        if event.user_id == self._session().user_id:
            return
        self._presence.move(event.user_id, event.user_name, event.position, event.room)

    def _apply_typing(self, event: TypingChanged) -> None:
        if event.user_id == self._session().user_id:
            return
        self._presence.set_typing(event.user_id, event.is_typing, event.context, event.room)

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    async def broadcast_cursor(self, position: Coordinate, room: str | None = None) -> bool:
        """Send our pointer position; at most one per interval, the rest dropped."""
        if not self.connected:
            return False
        if not self._cursor_throttle.try_acquire():
            return False
        payload: dict[str, Any] = {"lat": position.latitude, "lng": position.longitude}
        if room is not None:
            payload["room"] = room
        return await self._emit(OutboundEvent.cursor_move, payload)

    async def broadcast_typing(self, is_typing: bool, context: str, room: str | None = None) -> bool:
        payload: dict[str, Any] = {"isTyping": is_typing, "context": context}
        if room is not None:
            payload["room"] = room
        return await self._emit(OutboundEvent.typing_status, payload)

    async def _emit(self, event: OutboundEvent, data: Any) -> bool:
        if not self.connected:
            logger.debug("cannot emit %s: realtime channel not connected", event.value)
            return False
        try:
            await self._transport.emit(event.value, data)
            return True
        except ChannelDisconnected as exc:
            logger.warning("realtime emit of %s failed: %s", event.value, exc)
            return False
        except Exception:
            logger.warning("realtime emit of %s failed", event.value, exc_info=True)
            return False

    # ------------------------------------------------------------------
    # Presence sweep
    # ------------------------------------------------------------------

    def _start_sweeper(self) -> None:
        if self._sweep_task is None or self._sweep_task.done():
            self._sweep_task = asyncio.create_task(self._sweep_loop())

    def _stop_sweeper(self) -> None:
        if self._sweep_task is not None and not self._sweep_task.done():
            self._sweep_task.cancel()
        self._sweep_task = None

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval_s)
            self._presence.sweep()


# Dispatch table for inbound events. Checked below so a new SyncEvent variant
# cannot ship without an applier.
_APPLIERS: dict[type, str] = {
    EntityCreated: "_apply_entity_upsert",
    EntityUpdated: "_apply_entity_upsert",
    EntityDeleted: "_apply_entity_delete",
    WaypointAdded: "_apply_waypoint_added",
    WaypointUpdated: "_apply_waypoint_updated",
    WaypointRemoved: "_apply_waypoint_removed",
    WaypointsReordered: "_apply_waypoints_reordered",
    CollaboratorAdded: "_apply_collaborator_added",
    CollaboratorRemoved: "_apply_collaborator_removed",
    CollaboratorJoined: "_apply_collaborator_joined",
    CollaboratorLeft: "_apply_collaborator_left",
    CursorMoved: "_apply_cursor_moved",
    TypingChanged: "_apply_typing",
}

_missing = set(SYNC_EVENT_TYPES) - set(_APPLIERS)
if _missing:
    raise TypeError(f"realtime events without an applier: {sorted(t.__name__ for t in _missing)}")
