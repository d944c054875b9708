"""
Local Store Adapter -- the data-access contract on top of the Durable Local Store.

Owns every entity while the session is anonymous. Identifiers are generated
client-side (see models.new_local_id) and are discarded when the entity is
later migrated to the remote store.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from services.tripsync.errors import NotFound, ValidationFailed
from services.tripsync.models import (
    Collection,
    Place,
    SavedLocation,
    TemporaryMarker,
    Trip,
    Waypoint,
    new_local_id,
    utcnow,
)
from services.tripsync.storage.contract import DataAccess, check_permutation, renumber
from services.tripsync.storage.local_store import DurableLocalStore, Namespace

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

# Fields a caller may never overwrite through update_*
_IMMUTABLE_FIELDS = frozenset({"id", "created_at"})
# Waypoints change only through the waypoint operations
_TRIP_MANAGED_FIELDS = _IMMUTABLE_FIELDS | {"waypoints"}


def _build(model: type[M], data: Mapping[str, Any]) -> M:
    try:
        return model.model_validate(dict(data))
    except ValidationError as exc:
        fields = [".".join(str(p) for p in err["loc"]) for err in exc.errors()]
        raise ValidationFailed(f"invalid {model.__name__.lower()}: {fields}", fields) from exc


def _merge(
    current: BaseModel, updates: Mapping[str, Any], frozen: frozenset[str] = _IMMUTABLE_FIELDS
) -> dict[str, Any]:
    merged = current.model_dump()
    merged.update({k: v for k, v in updates.items() if k not in frozen})
    merged["updated_at"] = utcnow()
    return merged


class LocalStoreAdapter(DataAccess):
    """
    Usage:
        adapter = LocalStoreAdapter(DurableLocalStore(MemoryMedium()))
        trip = await adapter.save_trip({"title": "Lisbon long weekend"})
    """

    kind = "local"

    def __init__(self, store: DurableLocalStore) -> None:
        self._store = store

    @property
    def store(self) -> DurableLocalStore:
        return self._store

    # -- Trips ------------------------------------------------------------

    async def get_trips(self) -> list[Trip]:
        return self._parse_all(Trip, await self._store.get(Namespace.trips))

    async def get_trip(self, trip_id: str) -> Trip | None:
        record = await self._store.find(Namespace.trips, trip_id)
        return self._parse_one(Trip, record)

    async def save_trip(self, trip: Mapping[str, Any]) -> Trip:
        now = utcnow()
        trip_id = new_local_id("trip")
        data = {**trip, "id": trip_id, "created_at": now, "updated_at": now}
        waypoints = [
            {**dict(wp), "id": new_local_id("waypoint"), "trip_id": trip_id}
            for wp in trip.get("waypoints") or []
        ]
        data["waypoints"] = waypoints
        created = _build(Trip, data)
        created = created.model_copy(update={"waypoints": renumber(created.waypoints)})
        await self._store.put(Namespace.trips, created.to_record())
        logger.debug("local trip created: id=%s", created.id)
        return created

    async def update_trip(self, trip_id: str, updates: Mapping[str, Any]) -> Trip:
        current = await self._require_trip(trip_id)
        updated = _build(Trip, _merge(current, updates, _TRIP_MANAGED_FIELDS))
        await self._store.put(Namespace.trips, updated.to_record())
        return updated

    async def delete_trip(self, trip_id: str) -> None:
        await self._require_trip(trip_id)
        await self._store.remove(Namespace.trips, trip_id)

    # -- Waypoints --------------------------------------------------------

    async def add_waypoint(self, trip_id: str, waypoint: Mapping[str, Any]) -> Waypoint:
        trip = await self._require_trip(trip_id)
        created = _build(
            Waypoint,
            {
                **waypoint,
                "id": new_local_id("waypoint"),
                "trip_id": trip_id,
                "position": len(trip.waypoints),
            },
        )
        await self._save_waypoints(trip, [*trip.waypoints, created])
        return created

    async def update_waypoint(
        self, trip_id: str, waypoint_id: str, updates: Mapping[str, Any]
    ) -> Waypoint:
        trip = await self._require_trip(trip_id)
        index = trip.waypoint_index(waypoint_id)
        if index < 0:
            raise NotFound("waypoint", waypoint_id)
        current = trip.waypoints[index]
        merged = current.model_dump()
        merged.update({k: v for k, v in updates.items() if k not in ("id", "trip_id", "position")})
        updated = _build(Waypoint, merged)
        waypoints = list(trip.waypoints)
        waypoints[index] = updated
        await self._save_waypoints(trip, waypoints)
        return updated

    async def remove_waypoint(self, trip_id: str, waypoint_id: str) -> None:
        trip = await self._require_trip(trip_id)
        if trip.waypoint_index(waypoint_id) < 0:
            raise NotFound("waypoint", waypoint_id)
        await self._save_waypoints(
            trip, renumber([wp for wp in trip.waypoints if wp.id != waypoint_id])
        )

    async def reorder_waypoints(self, trip_id: str, waypoint_ids: Sequence[str]) -> list[Waypoint]:
        trip = await self._require_trip(trip_id)
        check_permutation(trip.waypoints, waypoint_ids)
        by_id = {wp.id: wp for wp in trip.waypoints}
        reordered = renumber([by_id[wid] for wid in waypoint_ids])
        await self._save_waypoints(trip, reordered)
        return reordered

    # -- Places -----------------------------------------------------------

    async def get_places(self) -> list[Place]:
        return self._parse_all(Place, await self._store.get(Namespace.places))

    async def get_place(self, place_id: str) -> Place | None:
        return self._parse_one(Place, await self._store.find(Namespace.places, place_id))

    async def save_place(self, place: Mapping[str, Any]) -> Place:
        now = utcnow()
        created = _build(
            Place, {**place, "id": new_local_id("place"), "created_at": now, "updated_at": now}
        )
        await self._store.put(Namespace.places, created.to_record())
        return created

    async def update_place(self, place_id: str, updates: Mapping[str, Any]) -> Place:
        current = await self.get_place(place_id)
        if current is None:
            raise NotFound("place", place_id)
        updated = _build(Place, _merge(current, updates))
        await self._store.put(Namespace.places, updated.to_record())
        return updated

    async def delete_place(self, place_id: str) -> None:
        if await self._store.find(Namespace.places, place_id) is None:
            raise NotFound("place", place_id)
        await self._store.remove(Namespace.places, place_id)

    # -- Collections ------------------------------------------------------

    async def get_collections(self) -> list[Collection]:
        return self._parse_all(Collection, await self._store.get(Namespace.collections))

    async def get_collection(self, collection_id: str) -> Collection | None:
        record = await self._store.find(Namespace.collections, collection_id)
        return self._parse_one(Collection, record)

    async def save_collection(self, collection: Mapping[str, Any]) -> Collection:
        now = utcnow()
        collection_id = new_local_id("col")
        locations = [
            {**dict(loc), "id": new_local_id("loc"), "collection_id": collection_id}
            for loc in collection.get("locations") or []
        ]
        created = _build(
            Collection,
            {
                **collection,
                "id": collection_id,
                "locations": locations,
                "created_at": now,
                "updated_at": now,
            },
        )
        await self._store.put(Namespace.collections, created.to_record())
        return created

    async def update_collection(
        self, collection_id: str, updates: Mapping[str, Any]
    ) -> Collection:
        current = await self._require_collection(collection_id)
        updated = _build(Collection, _merge(current, updates))
        await self._store.put(Namespace.collections, updated.to_record())
        return updated

    async def delete_collection(self, collection_id: str) -> None:
        await self._require_collection(collection_id)
        await self._store.remove(Namespace.collections, collection_id)

    async def add_location_to_collection(
        self, collection_id: str, location: Mapping[str, Any]
    ) -> SavedLocation:
        collection = await self._require_collection(collection_id)
        saved = _build(
            SavedLocation,
            {
                **location,
                "id": new_local_id("loc"),
                "collection_id": collection_id,
                "added_at": utcnow(),
            },
        )
        updated = collection.model_copy(
            update={"locations": [*collection.locations, saved], "updated_at": utcnow()}
        )
        await self._store.put(Namespace.collections, updated.to_record())
        return saved

    # -- Temporary markers ------------------------------------------------

    async def get_temporary_markers(self) -> list[TemporaryMarker]:
        return self._parse_all(TemporaryMarker, await self._store.get(Namespace.temporary_markers))

    async def save_temporary_marker(self, coordinates: tuple[float, float]) -> TemporaryMarker:
        marker = _build(TemporaryMarker, {"id": new_local_id("marker"), "coordinates": coordinates})
        await self._store.put(Namespace.temporary_markers, marker.to_record())
        return marker

    async def remove_temporary_marker(self, marker_id: str) -> None:
        await self._store.remove(Namespace.temporary_markers, marker_id)

    async def clear_temporary_markers(self) -> None:
        await self._store.replace(Namespace.temporary_markers, [])

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _require_trip(self, trip_id: str) -> Trip:
        trip = await self.get_trip(trip_id)
        if trip is None:
            raise NotFound("trip", trip_id)
        return trip

    async def _require_collection(self, collection_id: str) -> Collection:
        collection = await self.get_collection(collection_id)
        if collection is None:
            raise NotFound("collection", collection_id)
        return collection

    async def _save_waypoints(self, trip: Trip, waypoints: list[Waypoint]) -> None:
        updated = trip.model_copy(update={"waypoints": waypoints, "updated_at": utcnow()})
        await self._store.put(Namespace.trips, updated.to_record())

    @staticmethod
    def _parse_one(model: type[M], record: dict[str, Any] | None) -> M | None:
        if record is None:
            return None
        try:
            return model.model_validate(record)
        except ValidationError:
            logger.warning("skipping unreadable local %s record: id=%s", model.__name__, record.get("id"))
            return None

    @classmethod
    def _parse_all(cls, model: type[M], records: list[dict[str, Any]]) -> list[M]:
        parsed = (cls._parse_one(model, record) for record in records)
        return [item for item in parsed if item is not None]
