"""
Push events carried by the real-time channel, modelled as a tagged union.

Every inbound wire event is parsed into exactly one variant of ``SyncEvent``.
The channel's dispatcher keys on the variant type, and ``_APPLIERS`` in
channel.py is checked against ``SYNC_EVENT_TYPES`` at import time, so a new
event kind without a handler fails loudly instead of being ignored.

Room resolution (which collaboration scope an event belongs to):
    explicit "room" field            -> that room
    a trip id in the payload         -> "trip:{trip_id}"
    neither                          -> None (user-scoped, always delivered)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Union, get_args

from pydantic import ValidationError

from services.tripsync.models import (
    ENTITY_MODELS,
    Collection,
    Coordinate,
    EntityType,
    Place,
    Trip,
    Waypoint,
    utcnow,
)


class EventKind(str, Enum):
    """Inbound wire event names."""

    trip_created = "trip:created"
    trip_updated = "trip:updated"
    trip_deleted = "trip:deleted"
    place_created = "place:created"
    place_updated = "place:updated"
    place_deleted = "place:deleted"
    collection_created = "collection:created"
    collection_updated = "collection:updated"
    collection_deleted = "collection:deleted"
    waypoint_added = "trip:waypoint:added"
    waypoint_updated = "trip:waypoint:updated"
    waypoint_removed = "trip:waypoint:removed"
    waypoints_reordered = "trip:waypoints:reordered"
    collaborator_added = "trip:collaborator:added"
    collaborator_removed = "trip:collaborator:removed"
    collaborator_joined = "user:joined"
    collaborator_left = "user:left"
    cursor_moved = "user:cursor:moved"
    typing = "user:typing"


class OutboundEvent(str, Enum):
    join_room = "join:room"
    leave_room = "leave:room"
    cursor_move = "cursor:move"
    typing_status = "typing:status"


def trip_room(trip_id: str) -> str:
    return f"trip:{trip_id}"


class MalformedEvent(ValueError):
    """Inbound payload could not be parsed into its event variant."""


# ---------------------------------------------------------------------------
# Variants
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class EntityCreated:
    kind: EventKind
    room: str | None
    entity_type: EntityType
    entity: Trip | Place | Collection


@dataclass(frozen=True)
class EntityUpdated:
    kind: EventKind
    room: str | None
    entity_type: EntityType
    entity: Trip | Place | Collection


@dataclass(frozen=True)
class EntityDeleted:
    kind: EventKind
    room: str | None
    entity_type: EntityType
    entity_id: str


@dataclass(frozen=True)
class WaypointAdded:
    kind: EventKind
    room: str | None
    trip_id: str
    waypoint: Waypoint


@dataclass(frozen=True)
class WaypointUpdated:
    kind: EventKind
    room: str | None
    trip_id: str
    waypoint: Waypoint


@dataclass(frozen=True)
class WaypointRemoved:
    kind: EventKind
    room: str | None
    trip_id: str
    waypoint_id: str


@dataclass(frozen=True)
class WaypointsReordered:
    kind: EventKind
    room: str | None
    trip_id: str
    waypoints: tuple[Waypoint, ...]


@dataclass(frozen=True)
class CollaboratorAdded:
    kind: EventKind
    room: str | None
    trip_id: str
    user_id: str
    user_name: str


@dataclass(frozen=True)
class CollaboratorRemoved:
    kind: EventKind
    room: str | None
    trip_id: str
    user_id: str
    user_name: str


@dataclass(frozen=True)
class CollaboratorJoined:
    kind: EventKind
    room: str | None
    user_id: str
    user_name: str


@dataclass(frozen=True)
class CollaboratorLeft:
    kind: EventKind
    room: str | None
    user_id: str
    user_name: str


@dataclass(frozen=True)
class CursorMoved:
    kind: EventKind
    room: str | None
    user_id: str
    user_name: str
    position: Coordinate
    received_at: datetime


@dataclass(frozen=True)
class TypingChanged:
    kind: EventKind
    room: str | None
    user_id: str
    is_typing: bool
    context: str


SyncEvent = Union[
    EntityCreated,
    EntityUpdated,
    EntityDeleted,
    WaypointAdded,
    WaypointUpdated,
    WaypointRemoved,
    WaypointsReordered,
    CollaboratorAdded,
    CollaboratorRemoved,
    CollaboratorJoined,
    CollaboratorLeft,
    CursorMoved,
    TypingChanged,
]

SYNC_EVENT_TYPES: tuple[type, ...] = get_args(SyncEvent)


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

_ENTITY_EVENTS: dict[EventKind, tuple[type, EntityType]] = {
    EventKind.trip_created: (EntityCreated, EntityType.trip),
    EventKind.trip_updated: (EntityUpdated, EntityType.trip),
    EventKind.trip_deleted: (EntityDeleted, EntityType.trip),
    EventKind.place_created: (EntityCreated, EntityType.place),
    EventKind.place_updated: (EntityUpdated, EntityType.place),
    EventKind.place_deleted: (EntityDeleted, EntityType.place),
    EventKind.collection_created: (EntityCreated, EntityType.collection),
    EventKind.collection_updated: (EntityUpdated, EntityType.collection),
    EventKind.collection_deleted: (EntityDeleted, EntityType.collection),
}


def _field(payload: dict[str, Any], *names: str, default: Any = None) -> Any:
    """First present key among ``names`` (wire payloads mix camelCase and snake_case)."""
    for name in names:
        if payload.get(name) is not None:
            return payload[name]
    return default


def _require(payload: dict[str, Any], *names: str) -> Any:
    value = _field(payload, *names)
    if value is None:
        raise MalformedEvent(f"missing field {names[0]!r}")
    return value


def _require_object(payload: dict[str, Any], *names: str) -> dict[str, Any]:
    value = _require(payload, *names)
    if not isinstance(value, dict):
        raise MalformedEvent(f"field {names[0]!r} must be an object")
    return value


def _room(payload: dict[str, Any], trip_id: str | None = None) -> str | None:
    room = _field(payload, "room")
    if room:
        return str(room)
    trip_id = trip_id or _field(payload, "tripId", "trip_id")
    return trip_room(trip_id) if trip_id else None


def parse_event(name: str, payload: Any) -> SyncEvent:
    """
    Parse one inbound wire event.

    Raises:
        MalformedEvent: unknown event name or a payload missing required fields.
    """
    try:
        kind = EventKind(name)
    except ValueError as exc:
        raise MalformedEvent(f"unknown event {name!r}") from exc
    if not isinstance(payload, dict):
        raise MalformedEvent(f"{name} payload must be an object")

    try:
        return _parse(kind, payload)
    except ValidationError as exc:
        raise MalformedEvent(f"{name} payload invalid: {exc.error_count()} error(s)") from exc


def _parse(kind: EventKind, payload: dict[str, Any]) -> SyncEvent:
    if kind in _ENTITY_EVENTS:
        variant, entity_type = _ENTITY_EVENTS[kind]
        id_key = f"{entity_type.value}Id"
        if variant is EntityDeleted:
            entity_id = str(_require(payload, id_key, f"{entity_type.value}_id", "id"))
            trip_id = entity_id if entity_type is EntityType.trip else None
            return EntityDeleted(kind, _room(payload, trip_id), entity_type, entity_id)
        entity = ENTITY_MODELS[entity_type].model_validate(_require(payload, entity_type.value))
        trip_id = entity.id if entity_type is EntityType.trip else None
        return variant(kind, _room(payload, trip_id), entity_type, entity)

    if kind in (EventKind.waypoint_added, EventKind.waypoint_updated):
        trip_id = str(_require(payload, "tripId", "trip_id"))
        raw = _require_object(payload, "waypoint")
        waypoint = Waypoint.model_validate({"trip_id": trip_id, **raw})
        variant = WaypointAdded if kind is EventKind.waypoint_added else WaypointUpdated
        return variant(kind, _room(payload, trip_id), trip_id, waypoint)

    if kind is EventKind.waypoint_removed:
        trip_id = str(_require(payload, "tripId", "trip_id"))
        waypoint_id = str(_require(payload, "waypointId", "waypoint_id"))
        return WaypointRemoved(kind, _room(payload, trip_id), trip_id, waypoint_id)

    if kind is EventKind.waypoints_reordered:
        trip_id = str(_require(payload, "tripId", "trip_id"))
        raw = _require(payload, "waypoints")
        if not isinstance(raw, list):
            raise MalformedEvent("waypoints must be a list")
        if not all(isinstance(wp, dict) for wp in raw):
            raise MalformedEvent("waypoints must be a list of objects")
        waypoints = tuple(Waypoint.model_validate({"trip_id": trip_id, **wp}) for wp in raw)
        return WaypointsReordered(kind, _room(payload, trip_id), trip_id, waypoints)

    if kind in (EventKind.collaborator_added, EventKind.collaborator_removed):
        trip_id = str(_require(payload, "tripId", "trip_id"))
        user_id = str(_require(payload, "userId", "user_id"))
        user_name = str(_field(payload, "userName", "user_name", default="Someone"))
        variant = CollaboratorAdded if kind is EventKind.collaborator_added else CollaboratorRemoved
        return variant(kind, _room(payload, trip_id), trip_id, user_id, user_name)

    if kind in (EventKind.collaborator_joined, EventKind.collaborator_left):
        user_id = str(_require(payload, "userId", "user_id"))
        user_name = str(_field(payload, "userName", "user_name", default="Someone"))
        variant = CollaboratorJoined if kind is EventKind.collaborator_joined else CollaboratorLeft
        return variant(kind, _room(payload), user_id, user_name)

    if kind is EventKind.cursor_moved:
        user_id = str(_require(payload, "userId", "user_id"))
        user_name = str(_field(payload, "userName", "user_name", default="Anonymous"))
        position = Coordinate.model_validate(_require(payload, "position"))
        return CursorMoved(kind, _room(payload), user_id, user_name, position, utcnow())

    if kind is EventKind.typing:
        user_id = str(_require(payload, "userId", "user_id"))
        is_typing = bool(_field(payload, "isTyping", "is_typing", default=False))
        context = str(_field(payload, "context", default=""))
        return TypingChanged(kind, _room(payload), user_id, is_typing, context)

    raise MalformedEvent(f"no parser for {kind.value}")
