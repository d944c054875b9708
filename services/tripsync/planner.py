"""
TripPlanner -- data operations issued by the UI.

Each operation goes through the StoreSelector (local or remote, decided at
call time) and applies the canonical entity it returns to SharedState.
Adapter errors propagate unchanged; shared state is only touched after the
adapter call succeeded.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from services.tripsync.models import Collection, Place, SavedLocation, Trip, Waypoint
from services.tripsync.state import SharedState
from services.tripsync.storage.contract import DataAccess

logger = logging.getLogger(__name__)


class TripPlanner:
    def __init__(self, store: DataAccess, state: SharedState) -> None:
        self._store = store
        self._state = state

    @property
    def state(self) -> SharedState:
        return self._state

    async def load_all(self) -> None:
        """Refresh every section of shared state from whichever store is current."""
        self._state.set_trips(await self._store.get_trips())
        self._state.set_places(await self._store.get_places())
        self._state.set_collections(await self._store.get_collections())

    # -- Trips ------------------------------------------------------------

    async def open_trip(self, trip_id: str) -> Trip | None:
        trip = await self._store.get_trip(trip_id)
        if trip is None:
            logger.info("trip %s not found; nothing to open", trip_id)
            return None
        self._state.upsert_trip(trip)
        self._state.current_trip_id = trip.id
        return trip

    async def create_trip(self, data: Mapping[str, Any]) -> Trip:
        trip = await self._store.save_trip(data)
        self._state.upsert_trip(trip)
        return trip

    async def update_trip(self, trip_id: str, updates: Mapping[str, Any]) -> Trip:
        trip = await self._store.update_trip(trip_id, updates)
        self._state.upsert_trip(trip)
        return trip

    async def delete_trip(self, trip_id: str) -> None:
        await self._store.delete_trip(trip_id)
        self._state.remove_trip(trip_id)

    # -- Waypoints --------------------------------------------------------

    async def add_waypoint(self, trip_id: str, data: Mapping[str, Any]) -> Waypoint:
        waypoint = await self._store.add_waypoint(trip_id, data)
        self._state.add_waypoint(trip_id, waypoint)
        return waypoint

    async def update_waypoint(
        self, trip_id: str, waypoint_id: str, updates: Mapping[str, Any]
    ) -> Waypoint:
        waypoint = await self._store.update_waypoint(trip_id, waypoint_id, updates)
        self._state.update_waypoint(trip_id, waypoint)
        return waypoint

    async def remove_waypoint(self, trip_id: str, waypoint_id: str) -> None:
        await self._store.remove_waypoint(trip_id, waypoint_id)
        self._state.remove_waypoint(trip_id, waypoint_id)

    async def reorder_waypoints(self, trip_id: str, waypoint_ids: Sequence[str]) -> list[Waypoint]:
        waypoints = await self._store.reorder_waypoints(trip_id, waypoint_ids)
        self._state.reorder_waypoints(trip_id, waypoints)
        return waypoints

    # -- Places -----------------------------------------------------------

    async def create_place(self, data: Mapping[str, Any]) -> Place:
        place = await self._store.save_place(data)
        self._state.upsert_place(place)
        return place

    async def update_place(self, place_id: str, updates: Mapping[str, Any]) -> Place:
        place = await self._store.update_place(place_id, updates)
        self._state.upsert_place(place)
        return place

    async def delete_place(self, place_id: str) -> None:
        await self._store.delete_place(place_id)
        self._state.remove_place(place_id)

    # -- Collections ------------------------------------------------------

    async def create_collection(self, data: Mapping[str, Any]) -> Collection:
        collection = await self._store.save_collection(data)
        self._state.upsert_collection(collection)
        return collection

    async def update_collection(self, collection_id: str, updates: Mapping[str, Any]) -> Collection:
        collection = await self._store.update_collection(collection_id, updates)
        self._state.upsert_collection(collection)
        return collection

    async def delete_collection(self, collection_id: str) -> None:
        await self._store.delete_collection(collection_id)
        self._state.remove_collection(collection_id)

    async def save_location(self, collection_id: str, location: Mapping[str, Any]) -> SavedLocation:
        saved = await self._store.add_location_to_collection(collection_id, location)
        collection = self._state.collections.get(collection_id)
        if collection is not None:
            self._state.upsert_collection(
                collection.model_copy(update={"locations": [*collection.locations, saved]})
            )
        return saved
