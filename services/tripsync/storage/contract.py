"""
Data-access contract shared by the local and remote adapters.

UI code consumes this contract identically regardless of which store backs it.
Reads never raise for "not found" (they return None / []); writes raise the
typed errors in services.tripsync.errors.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from typing import Any

from services.tripsync.errors import ValidationFailed
from services.tripsync.models import (
    Collection,
    Place,
    SavedLocation,
    TemporaryMarker,
    Trip,
    Waypoint,
)


class DataAccess(ABC):
    """CRUD for trips, places and collections, waypoint sub-operations and temporary markers."""

    #: "local" or "remote"; used in logs and by the selector
    kind: str = "abstract"

    # -- Trips ------------------------------------------------------------

    @abstractmethod
    async def get_trips(self) -> list[Trip]: ...

    @abstractmethod
    async def get_trip(self, trip_id: str) -> Trip | None: ...

    @abstractmethod
    async def save_trip(self, trip: Mapping[str, Any]) -> Trip: ...

    @abstractmethod
    async def update_trip(self, trip_id: str, updates: Mapping[str, Any]) -> Trip:
        """Trip fields only; a ``waypoints`` key is ignored (use the waypoint operations)."""

    @abstractmethod
    async def delete_trip(self, trip_id: str) -> None: ...

    # -- Waypoints (scoped to a trip) -------------------------------------

    @abstractmethod
    async def add_waypoint(self, trip_id: str, waypoint: Mapping[str, Any]) -> Waypoint: ...

    @abstractmethod
    async def update_waypoint(
        self, trip_id: str, waypoint_id: str, updates: Mapping[str, Any]
    ) -> Waypoint: ...

    @abstractmethod
    async def remove_waypoint(self, trip_id: str, waypoint_id: str) -> None: ...

    @abstractmethod
    async def reorder_waypoints(self, trip_id: str, waypoint_ids: Sequence[str]) -> list[Waypoint]: ...

    # -- Places -----------------------------------------------------------

    @abstractmethod
    async def get_places(self) -> list[Place]: ...

    @abstractmethod
    async def get_place(self, place_id: str) -> Place | None: ...

    @abstractmethod
    async def save_place(self, place: Mapping[str, Any]) -> Place: ...

    @abstractmethod
    async def update_place(self, place_id: str, updates: Mapping[str, Any]) -> Place: ...

    @abstractmethod
    async def delete_place(self, place_id: str) -> None: ...

    # -- Collections ------------------------------------------------------

    @abstractmethod
    async def get_collections(self) -> list[Collection]: ...

    @abstractmethod
    async def get_collection(self, collection_id: str) -> Collection | None: ...

    @abstractmethod
    async def save_collection(self, collection: Mapping[str, Any]) -> Collection: ...

    @abstractmethod
    async def update_collection(
        self, collection_id: str, updates: Mapping[str, Any]
    ) -> Collection: ...

    @abstractmethod
    async def delete_collection(self, collection_id: str) -> None: ...

    @abstractmethod
    async def add_location_to_collection(
        self, collection_id: str, location: Mapping[str, Any]
    ) -> SavedLocation: ...

    # -- Temporary markers ------------------------------------------------

    @abstractmethod
    async def get_temporary_markers(self) -> list[TemporaryMarker]: ...

    @abstractmethod
    async def save_temporary_marker(self, coordinates: tuple[float, float]) -> TemporaryMarker: ...

    @abstractmethod
    async def remove_temporary_marker(self, marker_id: str) -> None: ...

    @abstractmethod
    async def clear_temporary_markers(self) -> None: ...


def renumber(waypoints: Sequence[Waypoint]) -> list[Waypoint]:
    """Return copies of ``waypoints`` with ``position`` set to their list index."""
    return [wp.model_copy(update={"position": i}) for i, wp in enumerate(waypoints)]


def check_permutation(current: Sequence[Waypoint], waypoint_ids: Sequence[str]) -> None:
    """
    Reordering must keep the trip's full waypoint set: no loss, no duplicates.

    Raises:
        ValidationFailed: if ``waypoint_ids`` is not a permutation of ``current``.
    """
    existing = [wp.id for wp in current]
    if len(waypoint_ids) != len(set(waypoint_ids)):
        raise ValidationFailed("waypoint order contains duplicate ids", ["waypoint_ids"])
    if sorted(existing) != sorted(waypoint_ids):
        missing = sorted(set(existing) - set(waypoint_ids))
        unknown = sorted(set(waypoint_ids) - set(existing))
        raise ValidationFailed(
            f"waypoint order must list every waypoint exactly once "
            f"(missing={missing}, unknown={unknown})",
            ["waypoint_ids"],
        )
