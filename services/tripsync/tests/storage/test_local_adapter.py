"""
Tests for LocalStoreAdapter -- the data-access contract on the device store.
"""

from __future__ import annotations

import pytest

from services.tripsync.errors import NotFound, ValidationFailed
from services.tripsync.models import SERVER_ONLY_FIELDS, is_local_id
from services.tripsync.storage.local_store import Namespace
from services.tripsync.tests.conftest import (
    make_collection,
    make_place,
    make_trip,
    make_waypoint,
)


# ---------------------------------------------------------------------------
# Trips
# ---------------------------------------------------------------------------

class TestTrips:
    @pytest.mark.asyncio
    async def test_save_assigns_local_id_and_timestamps(self, local_adapter):
        trip = await local_adapter.save_trip(make_trip(title="Porto"))

        assert is_local_id(trip.id)
        assert trip.id.startswith("trip_")
        assert trip.created_at is not None
        assert trip.updated_at == trip.created_at

    @pytest.mark.asyncio
    async def test_caller_supplied_id_is_ignored(self, local_adapter):
        trip = await local_adapter.save_trip(make_trip(id="hijack"))
        assert trip.id != "hijack"

    @pytest.mark.asyncio
    async def test_roundtrip_is_field_for_field_identical(self, local_adapter, selector):
        place = await local_adapter.save_place(make_place())
        created = await local_adapter.save_trip(
            make_trip(waypoints=[make_waypoint(place.id), make_waypoint(None, day=2)])
        )

        # Anonymous session, so the selector reads through the local adapter
        fetched = await selector.get_trip(created.id)

        exclude = set(SERVER_ONLY_FIELDS)
        assert fetched.model_dump(exclude=exclude) == created.model_dump(exclude=exclude)

    @pytest.mark.asyncio
    async def test_missing_title_is_validation_failed(self, local_adapter):
        with pytest.raises(ValidationFailed) as exc_info:
            await local_adapter.save_trip(make_trip(title=""))
        assert "title" in exc_info.value.fields

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, local_adapter):
        assert await local_adapter.get_trip("trip_0000000000000_0000000000") is None

    @pytest.mark.asyncio
    async def test_update_keeps_identifier_and_refreshes_updated_at(self, local_adapter):
        trip = await local_adapter.save_trip(make_trip(title="Before"))

        updated = await local_adapter.update_trip(trip.id, {"id": "other", "title": "After"})

        assert updated.id == trip.id
        assert updated.title == "After"
        assert updated.created_at == trip.created_at
        assert updated.updated_at >= trip.updated_at
        assert (await local_adapter.get_trip(trip.id)).title == "After"

    @pytest.mark.asyncio
    async def test_update_ignores_waypoints(self, local_adapter):
        trip = await local_adapter.save_trip(make_trip())
        wp = await local_adapter.add_waypoint(trip.id, make_waypoint(notes="a"))

        updated = await local_adapter.update_trip(
            trip.id, {"title": "Renamed", "waypoints": [{"id": wp.id}, {"id": wp.id}]}
        )

        assert updated.title == "Renamed"
        assert [(w.id, w.trip_id, w.position) for w in updated.waypoints] == [(wp.id, trip.id, 0)]
        stored = await local_adapter.get_trip(trip.id)
        assert [w.id for w in stored.waypoints] == [wp.id]

    @pytest.mark.asyncio
    async def test_update_missing_raises_not_found(self, local_adapter):
        with pytest.raises(NotFound):
            await local_adapter.update_trip("nope", {"title": "x"})

    @pytest.mark.asyncio
    async def test_delete(self, local_adapter):
        trip = await local_adapter.save_trip(make_trip())
        await local_adapter.delete_trip(trip.id)
        assert await local_adapter.get_trips() == []
        with pytest.raises(NotFound):
            await local_adapter.delete_trip(trip.id)

    @pytest.mark.asyncio
    async def test_unreadable_record_is_skipped(self, local_adapter, store):
        await local_adapter.save_trip(make_trip(title="Good"))
        await store.put(Namespace.trips, {"id": "broken", "title": ""})

        trips = await local_adapter.get_trips()
        assert [t.title for t in trips] == ["Good"]


# ---------------------------------------------------------------------------
# Waypoints
# ---------------------------------------------------------------------------

class TestWaypoints:
    @pytest.fixture
    async def trip(self, local_adapter):
        return await local_adapter.save_trip(make_trip())

    @pytest.mark.asyncio
    async def test_add_appends_with_next_position(self, local_adapter, trip):
        first = await local_adapter.add_waypoint(trip.id, make_waypoint())
        second = await local_adapter.add_waypoint(trip.id, make_waypoint(day=2))

        assert (first.position, second.position) == (0, 1)
        assert second.trip_id == trip.id
        stored = await local_adapter.get_trip(trip.id)
        assert [wp.id for wp in stored.waypoints] == [first.id, second.id]

    @pytest.mark.asyncio
    async def test_update_keeps_position(self, local_adapter, trip):
        wp = await local_adapter.add_waypoint(trip.id, make_waypoint())
        updated = await local_adapter.update_waypoint(
            trip.id, wp.id, {"notes": "book ahead", "position": 9}
        )
        assert updated.notes == "book ahead"
        assert updated.position == 0

    @pytest.mark.asyncio
    async def test_remove_renumbers(self, local_adapter, trip):
        ids = [(await local_adapter.add_waypoint(trip.id, make_waypoint())).id for _ in range(3)]

        await local_adapter.remove_waypoint(trip.id, ids[0])

        stored = await local_adapter.get_trip(trip.id)
        assert [(wp.id, wp.position) for wp in stored.waypoints] == [(ids[1], 0), (ids[2], 1)]

    @pytest.mark.asyncio
    async def test_remove_unknown_waypoint(self, local_adapter, trip):
        with pytest.raises(NotFound):
            await local_adapter.remove_waypoint(trip.id, "missing")

    @pytest.mark.asyncio
    async def test_reorder_is_a_permutation(self, local_adapter, trip):
        ids = [(await local_adapter.add_waypoint(trip.id, make_waypoint())).id for _ in range(3)]

        reordered = await local_adapter.reorder_waypoints(trip.id, list(reversed(ids)))

        assert [wp.id for wp in reordered] == list(reversed(ids))
        assert [wp.position for wp in reordered] == [0, 1, 2]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("mutate", ["drop", "duplicate", "unknown"])
    async def test_reorder_rejects_non_permutations(self, local_adapter, trip, mutate):
        ids = [(await local_adapter.add_waypoint(trip.id, make_waypoint())).id for _ in range(3)]
        bad = {
            "drop": ids[:2],
            "duplicate": [ids[0], ids[0], ids[1]],
            "unknown": [ids[0], ids[1], "ghost"],
        }[mutate]

        with pytest.raises(ValidationFailed):
            await local_adapter.reorder_waypoints(trip.id, bad)

        stored = await local_adapter.get_trip(trip.id)
        assert [wp.id for wp in stored.waypoints] == ids

    @pytest.mark.asyncio
    async def test_waypoint_on_missing_trip(self, local_adapter):
        with pytest.raises(NotFound):
            await local_adapter.add_waypoint("nope", make_waypoint())


# ---------------------------------------------------------------------------
# Places, collections, markers
# ---------------------------------------------------------------------------

class TestPlaces:
    @pytest.mark.asyncio
    async def test_crud(self, local_adapter):
        place = await local_adapter.save_place(make_place(name="Cervejaria"))
        assert place.id.startswith("place_")
        assert place.location.latitude == pytest.approx(38.7223)

        updated = await local_adapter.update_place(place.id, {"city": "Porto"})
        assert updated.city == "Porto"

        await local_adapter.delete_place(place.id)
        assert await local_adapter.get_place(place.id) is None

    @pytest.mark.asyncio
    async def test_update_missing(self, local_adapter):
        with pytest.raises(NotFound):
            await local_adapter.update_place("nope", {"city": "x"})


class TestCollections:
    @pytest.mark.asyncio
    async def test_save_assigns_location_ids(self, local_adapter):
        collection = await local_adapter.save_collection(make_collection())

        assert collection.id.startswith("col_")
        assert len(collection.locations) == 1
        assert collection.locations[0].id.startswith("loc_")
        assert collection.locations[0].collection_id == collection.id

    @pytest.mark.asyncio
    async def test_add_location(self, local_adapter):
        collection = await local_adapter.save_collection(make_collection(locations=[]))

        saved = await local_adapter.add_location_to_collection(
            collection.id, {"name": "Tram 28", "latitude": 38.71, "longitude": -9.13}
        )

        stored = await local_adapter.get_collection(collection.id)
        assert [loc.id for loc in stored.locations] == [saved.id]
        assert saved.added_at is not None

    @pytest.mark.asyncio
    async def test_missing_collection(self, local_adapter):
        with pytest.raises(NotFound):
            await local_adapter.add_location_to_collection("nope", {"latitude": 0, "longitude": 0})
        with pytest.raises(NotFound):
            await local_adapter.delete_collection("nope")


class TestTemporaryMarkers:
    @pytest.mark.asyncio
    async def test_save_remove_clear(self, local_adapter):
        a = await local_adapter.save_temporary_marker((-9.14, 38.72))
        b = await local_adapter.save_temporary_marker((-9.15, 38.73))
        assert [m.id for m in await local_adapter.get_temporary_markers()] == [a.id, b.id]

        await local_adapter.remove_temporary_marker(a.id)
        await local_adapter.remove_temporary_marker(a.id)
        assert [m.id for m in await local_adapter.get_temporary_markers()] == [b.id]

        await local_adapter.clear_temporary_markers()
        assert await local_adapter.get_temporary_markers() == []
