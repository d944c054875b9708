"""
Tests for parsing inbound wire events into the SyncEvent union.
"""

from __future__ import annotations

import pytest

from services.tripsync.models import EntityType
from services.tripsync.realtime.events import (
    SYNC_EVENT_TYPES,
    CursorMoved,
    EntityCreated,
    EntityDeleted,
    EntityUpdated,
    EventKind,
    MalformedEvent,
    TypingChanged,
    WaypointAdded,
    WaypointsReordered,
    parse_event,
    trip_room,
)
from services.tripsync.realtime import channel as channel_module


class TestRoomResolution:
    def test_explicit_room_wins(self):
        event = parse_event(
            "trip:waypoint:removed",
            {"tripId": "t1", "waypointId": "w1", "room": "custom"},
        )
        assert event.room == "custom"

    def test_trip_id_gives_trip_room(self):
        event = parse_event("trip:waypoint:removed", {"tripId": "t1", "waypointId": "w1"})
        assert event.room == trip_room("t1") == "trip:t1"

    def test_user_scoped_event_has_no_room(self):
        event = parse_event("user:joined", {"userId": "u1", "userName": "Bo"})
        assert event.room is None

    def test_trip_entity_event_scoped_to_its_trip(self):
        event = parse_event("trip:updated", {"trip": {"id": "t9", "title": "Renamed"}})
        assert isinstance(event, EntityUpdated)
        assert event.room == "trip:t9"
        assert event.entity.title == "Renamed"


class TestVariants:
    def test_entity_created(self):
        event = parse_event("place:created", {"place": {"id": "p1", "name": "Cafe"}})
        assert isinstance(event, EntityCreated)
        assert event.entity_type is EntityType.place
        assert event.kind is EventKind.place_created

    def test_entity_deleted_accepts_snake_and_camel(self):
        camel = parse_event("collection:deleted", {"collectionId": "c1"})
        snake = parse_event("collection:deleted", {"collection_id": "c1"})
        assert isinstance(camel, EntityDeleted)
        assert camel.entity_id == snake.entity_id == "c1"

    def test_waypoint_added_carries_trip_id(self):
        event = parse_event(
            "trip:waypoint:added",
            {"tripId": "t1", "waypoint": {"id": "w1", "placeId": "p1", "position": 0}},
        )
        assert isinstance(event, WaypointAdded)
        assert event.waypoint.trip_id == "t1"
        assert event.waypoint.place_id == "p1"

    def test_reorder_keeps_wire_order(self):
        event = parse_event(
            "trip:waypoints:reordered",
            {"tripId": "t1", "waypoints": [{"id": "b", "position": 0}, {"id": "a", "position": 1}]},
        )
        assert isinstance(event, WaypointsReordered)
        assert [wp.id for wp in event.waypoints] == ["b", "a"]

    def test_cursor(self):
        event = parse_event(
            "user:cursor:moved",
            {"userId": "u2", "userName": "Bo", "position": {"lat": 38.7, "lng": -9.1}, "room": "trip:t1"},
        )
        assert isinstance(event, CursorMoved)
        assert event.position.as_pair() == (-9.1, 38.7)

    def test_typing_defaults(self):
        event = parse_event("user:typing", {"userId": "u2"})
        assert isinstance(event, TypingChanged)
        assert event.is_typing is False
        assert event.context == ""


class TestMalformed:
    @pytest.mark.parametrize(
        "name,payload",
        [
            ("no:such:event", {}),
            ("trip:created", "not an object"),
            ("trip:waypoint:added", {"tripId": "t1"}),
            ("trip:created", {"trip": {"id": "t1", "title": ""}}),
            ("user:cursor:moved", {"userId": "u1", "position": {"lat": 200, "lng": 0}}),
            ("trip:waypoints:reordered", {"tripId": "t1", "waypoints": "a,b"}),
            ("trip:waypoint:added", {"tripId": "t1", "waypoint": "oops"}),
            ("trip:waypoint:updated", {"tripId": "t1", "waypoint": ["w1"]}),
            ("trip:waypoints:reordered", {"tripId": "t1", "waypoints": ["w1", "w2"]}),
            ("trip:created", {"trip": "t1"}),
            ("user:cursor:moved", {"userId": "u1", "position": [1, 2]}),
        ],
    )
    def test_rejected(self, name, payload):
        with pytest.raises(MalformedEvent):
            parse_event(name, payload)


def test_every_event_variant_has_an_applier():
    assert set(SYNC_EVENT_TYPES) <= set(channel_module._APPLIERS)


def test_every_kind_parses_to_a_variant():
    samples = {
        EventKind.trip_created: {"trip": {"id": "t", "title": "T"}},
        EventKind.trip_updated: {"trip": {"id": "t", "title": "T"}},
        EventKind.trip_deleted: {"tripId": "t"},
        EventKind.place_created: {"place": {"id": "p", "name": "P"}},
        EventKind.place_updated: {"place": {"id": "p", "name": "P"}},
        EventKind.place_deleted: {"placeId": "p"},
        EventKind.collection_created: {"collection": {"id": "c", "name": "C"}},
        EventKind.collection_updated: {"collection": {"id": "c", "name": "C"}},
        EventKind.collection_deleted: {"collectionId": "c"},
        EventKind.waypoint_added: {"tripId": "t", "waypoint": {"id": "w"}},
        EventKind.waypoint_updated: {"tripId": "t", "waypoint": {"id": "w"}},
        EventKind.waypoint_removed: {"tripId": "t", "waypointId": "w"},
        EventKind.waypoints_reordered: {"tripId": "t", "waypoints": []},
        EventKind.collaborator_added: {"tripId": "t", "userId": "u"},
        EventKind.collaborator_removed: {"tripId": "t", "userId": "u"},
        EventKind.collaborator_joined: {"userId": "u"},
        EventKind.collaborator_left: {"userId": "u"},
        EventKind.cursor_moved: {"userId": "u", "position": {"lat": 0, "lng": 0}},
        EventKind.typing: {"userId": "u", "isTyping": True},
    }
    assert set(samples) == set(EventKind)
    for kind, payload in samples.items():
        event = parse_event(kind.value, payload)
        assert event.kind is kind
        assert type(event) in SYNC_EVENT_TYPES
