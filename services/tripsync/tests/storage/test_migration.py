"""
Tests for MigrationEngine: ordering, reference remapping, partial-failure
isolation and the clear-only-on-full-success policy.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

from services.tripsync.errors import PartialMigrationFailure
from services.tripsync.notifications import Level
from services.tripsync.storage.local_store import Namespace
from services.tripsync.storage.migration import PROMPT_MESSAGE, MigrationEngine
from services.tripsync.tests.conftest import (
    make_collection,
    make_place,
    make_trip,
    make_waypoint,
    signed_in,
)


@pytest.fixture
def engine(store, remote_adapter, notifications, session_holder) -> MigrationEngine:
    session_holder.set(signed_in())
    return MigrationEngine(store, remote_adapter, notifications)


async def _snapshot_ids(store) -> dict[str, list[str]]:
    snapshot = await store.get_all_data()
    return {
        "trips": [t["id"] for t in snapshot.trips],
        "places": [p["id"] for p in snapshot.places],
        "collections": [c["id"] for c in snapshot.collections],
    }


# ---------------------------------------------------------------------------
# Full success
# ---------------------------------------------------------------------------

class TestFullSuccess:
    @pytest.mark.asyncio
    async def test_three_trips_migrate_and_local_is_cleared(
        self, engine, local_adapter, store, backend, notifications
    ):
        for n in range(3):
            await local_adapter.save_trip(make_trip(title=f"Trip {n}"))

        result = await engine.run()

        assert result.success is True
        assert result.migrated_items.trips == 3
        assert result.errors == []
        assert await store.get(Namespace.trips) == []
        assert sorted(t["title"] for t in backend.trips.values()) == ["Trip 0", "Trip 1", "Trip 2"]
        assert notifications.items[-1].level is Level.success

    @pytest.mark.asyncio
    async def test_order_is_collections_places_trips(self, engine, local_adapter, backend):
        await local_adapter.save_trip(make_trip())
        await local_adapter.save_place(make_place())
        await local_adapter.save_collection(make_collection(locations=[]))

        await engine.run()

        assert backend.paths("POST") == ["/collections", "/places", "/trips"]

    @pytest.mark.asyncio
    async def test_waypoint_place_references_are_remapped(self, engine, local_adapter, backend):
        place = await local_adapter.save_place(make_place(name="Pasteis de Belem"))
        await local_adapter.save_trip(
            make_trip(waypoints=[make_waypoint(place.id), make_waypoint("srv-place-external")])
        )

        result = await engine.run()

        remote_place_id = result.place_id_map[place.id]
        (remote_trip,) = backend.trips.values()
        assert [wp["place_id"] for wp in remote_trip["waypoints"]] == [
            remote_place_id,
            "srv-place-external",
        ]

    @pytest.mark.asyncio
    async def test_local_identifiers_are_not_sent(self, engine, local_adapter, backend):
        await local_adapter.save_trip(make_trip(waypoints=[make_waypoint()]))
        await engine.run()

        (remote_trip,) = backend.trips.values()
        assert remote_trip["id"].startswith("srv-trip-")
        assert remote_trip["waypoints"][0]["id"].startswith("srv-wp-")

    @pytest.mark.asyncio
    async def test_rerun_after_clear_is_a_noop(self, engine, local_adapter, backend):
        await local_adapter.save_trip(make_trip())
        await engine.run()
        requests_after_first = len(backend.requests)

        result = await engine.run()

        assert result.success is False
        assert result.total_migrated == 0
        assert result.errors == []
        assert len(backend.requests) == requests_after_first


# ---------------------------------------------------------------------------
# Partial and total failure
# ---------------------------------------------------------------------------

class TestFailures:
    @pytest.mark.asyncio
    async def test_partial_failure_keeps_every_local_item(
        self, engine, local_adapter, store, backend, notifications
    ):
        await local_adapter.save_collection(make_collection(name="Views"))
        await local_adapter.save_trip(make_trip(title="Good trip"))
        await local_adapter.save_trip(make_trip(title="Broken trip"))
        backend.fail_names.add("Broken trip")
        before = await _snapshot_ids(store)

        result = await engine.run()

        assert result.success is True
        assert result.migrated_items.trips == 1
        assert result.migrated_items.collections == 1
        assert len(result.errors) == 1
        assert "Broken trip" in result.errors[0]
        assert await _snapshot_ids(store) == before
        warning = notifications.items[-1]
        assert warning.level is Level.warning
        assert warning.persistent is True

    @pytest.mark.asyncio
    async def test_trip_referencing_failed_place_is_not_created(
        self, engine, local_adapter, backend
    ):
        place = await local_adapter.save_place(make_place(name="Closed"))
        await local_adapter.save_trip(make_trip(title="Depends", waypoints=[make_waypoint(place.id)]))
        await local_adapter.save_trip(make_trip(title="Independent"))
        backend.fail_names.add("Closed")

        result = await engine.run()

        assert result.migrated_items.trips == 1
        assert [t["title"] for t in backend.trips.values()] == ["Independent"]
        assert any("Depends" in e for e in result.errors)

    @pytest.mark.asyncio
    async def test_total_failure(self, engine, local_adapter, store, backend, notifications):
        await local_adapter.save_trip(make_trip(title="Only"))
        backend.fail_names.add("Only")

        result = await engine.run()

        assert result.success is False
        assert len(result.errors) == 1
        assert len(await store.get(Namespace.trips)) == 1
        assert notifications.persistent(Level.error)

    @pytest.mark.asyncio
    async def test_raise_for_errors(self, engine, local_adapter, backend):
        await local_adapter.save_trip(make_trip(title="Broken"))
        backend.fail_names.add("Broken")

        result = await engine.run()

        with pytest.raises(PartialMigrationFailure) as exc_info:
            result.raise_for_errors()
        assert exc_info.value.result is result

    @pytest.mark.asyncio
    async def test_unexpected_failure_is_reported_not_raised(self, engine, store, notifications):
        store.get_all_data = AsyncMock(side_effect=RuntimeError("disk vanished"))

        with patch("services.tripsync.storage.migration.sentry_sdk.capture_exception") as capture:
            result = await engine.run()

        assert result.success is False
        assert result.errors == ["Migration failed: disk vanished"]
        capture.assert_called_once()
        assert notifications.persistent(Level.error)


# ---------------------------------------------------------------------------
# Confirmation prompt
# ---------------------------------------------------------------------------

class TestPrompt:
    @pytest.mark.asyncio
    async def test_no_local_data_skips_prompt(self, engine):
        confirm = AsyncMock(return_value=True)
        assert await engine.prompt_and_migrate(confirm) is None
        confirm.assert_not_called()

    @pytest.mark.asyncio
    async def test_declined_prompt_migrates_nothing(self, engine, local_adapter, backend):
        await local_adapter.save_trip(make_trip())
        asked = []

        def confirm(message: str) -> bool:
            asked.append(message)
            return False

        assert await engine.prompt_and_migrate(confirm) is None
        assert asked == [PROMPT_MESSAGE]
        assert backend.requests == []

    @pytest.mark.asyncio
    async def test_async_confirm_accepted(self, engine, local_adapter):
        await local_adapter.save_trip(make_trip())
        result = await engine.prompt_and_migrate(AsyncMock(return_value=True))
        assert result.migrated_items.trips == 1
