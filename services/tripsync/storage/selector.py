"""
Store Selector -- one data-access contract, routed per call.

Every call reads the session at call time (never at construction), so a
long-lived caller transparently moves from the local to the remote store
across a login without being re-created.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from services.tripsync.models import (
    Collection,
    Place,
    SavedLocation,
    TemporaryMarker,
    Trip,
    Waypoint,
)
from services.tripsync.session import SessionProvider, SessionState
from services.tripsync.storage.contract import DataAccess

logger = logging.getLogger(__name__)


class StoreSelector(DataAccess):
    """
    Usage:
        selector = StoreSelector(local_adapter, remote_adapter, session_holder.get)
        trips = await selector.get_trips()       # local while anonymous
        adapter = selector.current()             # inspect the routing decision
    """

    kind = "selector"

    def __init__(self, local: DataAccess, remote: DataAccess, session: SessionProvider) -> None:
        self._local = local
        self._remote = remote
        self._session = session

    @property
    def local(self) -> DataAccess:
        return self._local

    @property
    def remote(self) -> DataAccess:
        return self._remote

    def current(self, session: SessionState | None = None) -> DataAccess:
        """Pure function of session state: remote when authenticated, local otherwise."""
        state = session if session is not None else self._session()
        adapter = self._remote if state.is_authenticated else self._local
        logger.debug("store selector routing to %s adapter", adapter.kind)
        return adapter

    # -- Trips ------------------------------------------------------------

    async def get_trips(self) -> list[Trip]:
        return await self.current().get_trips()

    async def get_trip(self, trip_id: str) -> Trip | None:
        return await self.current().get_trip(trip_id)

    async def save_trip(self, trip: Mapping[str, Any]) -> Trip:
        return await self.current().save_trip(trip)

    async def update_trip(self, trip_id: str, updates: Mapping[str, Any]) -> Trip:
        return await self.current().update_trip(trip_id, updates)

    async def delete_trip(self, trip_id: str) -> None:
        await self.current().delete_trip(trip_id)

    # -- Waypoints --------------------------------------------------------

    async def add_waypoint(self, trip_id: str, waypoint: Mapping[str, Any]) -> Waypoint:
        return await self.current().add_waypoint(trip_id, waypoint)

    async def update_waypoint(
        self, trip_id: str, waypoint_id: str, updates: Mapping[str, Any]
    ) -> Waypoint:
        return await self.current().update_waypoint(trip_id, waypoint_id, updates)

    async def remove_waypoint(self, trip_id: str, waypoint_id: str) -> None:
        await self.current().remove_waypoint(trip_id, waypoint_id)

    async def reorder_waypoints(self, trip_id: str, waypoint_ids: Sequence[str]) -> list[Waypoint]:
        return await self.current().reorder_waypoints(trip_id, waypoint_ids)

    # -- Places -----------------------------------------------------------

    async def get_places(self) -> list[Place]:
        return await self.current().get_places()

    async def get_place(self, place_id: str) -> Place | None:
        return await self.current().get_place(place_id)

    async def save_place(self, place: Mapping[str, Any]) -> Place:
        return await self.current().save_place(place)

    async def update_place(self, place_id: str, updates: Mapping[str, Any]) -> Place:
        return await self.current().update_place(place_id, updates)

    async def delete_place(self, place_id: str) -> None:
        await self.current().delete_place(place_id)

    # -- Collections ------------------------------------------------------

    async def get_collections(self) -> list[Collection]:
        return await self.current().get_collections()

    async def get_collection(self, collection_id: str) -> Collection | None:
        return await self.current().get_collection(collection_id)

    async def save_collection(self, collection: Mapping[str, Any]) -> Collection:
        return await self.current().save_collection(collection)

    async def update_collection(
        self, collection_id: str, updates: Mapping[str, Any]
    ) -> Collection:
        return await self.current().update_collection(collection_id, updates)

    async def delete_collection(self, collection_id: str) -> None:
        await self.current().delete_collection(collection_id)

    async def add_location_to_collection(
        self, collection_id: str, location: Mapping[str, Any]
    ) -> SavedLocation:
        return await self.current().add_location_to_collection(collection_id, location)

    # -- Temporary markers ------------------------------------------------

    async def get_temporary_markers(self) -> list[TemporaryMarker]:
        return await self.current().get_temporary_markers()

    async def save_temporary_marker(self, coordinates: tuple[float, float]) -> TemporaryMarker:
        return await self.current().save_temporary_marker(coordinates)

    async def remove_temporary_marker(self, marker_id: str) -> None:
        await self.current().remove_temporary_marker(marker_id)

    async def clear_temporary_markers(self) -> None:
        await self.current().clear_temporary_markers()
