"""
Real-time collaboration layer.

RealtimeChannel
    One socket per authenticated session: rooms, typed push events applied
    to SharedState, bounded reconnection, throttled cursor broadcasts.

PresenceTracker / PresenceView
    Collaborator cursors with stable colours and staleness eviction, and
    their render-ready marker projection.

Usage:
    from services.tripsync.realtime import RealtimeChannel, EventKind, trip_room
"""

from __future__ import annotations

from services.tripsync.realtime.channel import ChannelState, RealtimeChannel
from services.tripsync.realtime.events import EventKind, SyncEvent, parse_event, trip_room
from services.tripsync.realtime.presence import CURSOR_COLORS, PresenceTracker, assign_color
from services.tripsync.realtime.presence_view import CursorMarker, PresenceView
from services.tripsync.realtime.transport import ChannelTransport, SocketIOTransport

__all__ = [
    "CURSOR_COLORS",
    "ChannelState",
    "ChannelTransport",
    "CursorMarker",
    "EventKind",
    "PresenceTracker",
    "PresenceView",
    "RealtimeChannel",
    "SocketIOTransport",
    "SyncEvent",
    "assign_color",
    "parse_event",
    "trip_room",
]
