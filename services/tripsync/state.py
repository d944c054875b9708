"""
Shared application state -- the single tree both write paths converge on.

Direct mutations (TripPlanner applying adapter results) and remote-originated
mutations (RealtimeChannel applying push events) call the same reducers here.
No ordering is enforced between the two sources: the last write wins, and the
remote store stays the source of truth.

Reducers are synchronous and tolerant: updating or removing something that is
not loaded is a silent no-op, matching how push events for entities outside
the current view are handled.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

from services.tripsync.models import Collection, Place, Trip, Waypoint

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StateChange:
    """What changed: ``section`` is trips/places/collections, ``action`` the reducer name."""

    section: str
    action: str
    entity_id: str


StateListener = Callable[[StateChange], None]


class SharedState:
    def __init__(self) -> None:
        # dicts keep insertion order, which is the display order
        self.trips: dict[str, Trip] = {}
        self.places: dict[str, Place] = {}
        self.collections: dict[str, Collection] = {}
        self.current_trip_id: str | None = None
        self._listeners: list[StateListener] = []

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _emit(self, section: str, action: str, entity_id: str) -> None:
        change = StateChange(section, action, entity_id)
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception:
                logger.warning("state listener failed for %s", change, exc_info=True)

    # ------------------------------------------------------------------
    # Trips
    # ------------------------------------------------------------------

    @property
    def current_trip(self) -> Trip | None:
        if self.current_trip_id is None:
            return None
        return self.trips.get(self.current_trip_id)

    def set_trips(self, trips: Sequence[Trip]) -> None:
        self.trips = {t.id: t for t in trips}
        self._emit("trips", "set", "*")

    def upsert_trip(self, trip: Trip) -> None:
        self.trips[trip.id] = trip
        self._emit("trips", "upsert", trip.id)

    def remove_trip(self, trip_id: str) -> None:
        if self.trips.pop(trip_id, None) is None:
            return
        if self.current_trip_id == trip_id:
            self.current_trip_id = None
        self._emit("trips", "remove", trip_id)

    def add_waypoint(self, trip_id: str, waypoint: Waypoint) -> None:
        trip = self.trips.get(trip_id)
        if trip is None:
            return
        if trip.waypoint_index(waypoint.id) >= 0:
            # already applied (our own write echoed back by the server)
            self.update_waypoint(trip_id, waypoint)
            return
        self.trips[trip_id] = trip.model_copy(update={"waypoints": [*trip.waypoints, waypoint]})
        self._emit("trips", "add_waypoint", trip_id)

    def update_waypoint(self, trip_id: str, waypoint: Waypoint) -> None:
        trip = self.trips.get(trip_id)
        if trip is None:
            return
        index = trip.waypoint_index(waypoint.id)
        if index < 0:
            return
        waypoints = list(trip.waypoints)
        waypoints[index] = waypoint
        self.trips[trip_id] = trip.model_copy(update={"waypoints": waypoints})
        self._emit("trips", "update_waypoint", trip_id)

    def remove_waypoint(self, trip_id: str, waypoint_id: str) -> None:
        trip = self.trips.get(trip_id)
        if trip is None or trip.waypoint_index(waypoint_id) < 0:
            return
        waypoints = [wp for wp in trip.waypoints if wp.id != waypoint_id]
        self.trips[trip_id] = trip.model_copy(update={"waypoints": waypoints})
        self._emit("trips", "remove_waypoint", trip_id)

    def reorder_waypoints(self, trip_id: str, waypoints: Sequence[Waypoint]) -> None:
        trip = self.trips.get(trip_id)
        if trip is None:
            return
        self.trips[trip_id] = trip.model_copy(update={"waypoints": list(waypoints)})
        self._emit("trips", "reorder_waypoints", trip_id)

    def set_collaborators(self, trip_id: str, collaborators: Sequence[str]) -> None:
        trip = self.trips.get(trip_id)
        if trip is None:
            return
        self.trips[trip_id] = trip.model_copy(update={"collaborators": list(collaborators)})
        self._emit("trips", "collaborators", trip_id)

    # ------------------------------------------------------------------
    # Places
    # ------------------------------------------------------------------

    def set_places(self, places: Sequence[Place]) -> None:
        self.places = {p.id: p for p in places}
        self._emit("places", "set", "*")

    def upsert_place(self, place: Place) -> None:
        self.places[place.id] = place
        self._emit("places", "upsert", place.id)

    def remove_place(self, place_id: str) -> None:
        if self.places.pop(place_id, None) is not None:
            self._emit("places", "remove", place_id)

    # ------------------------------------------------------------------
    # Collections
    # ------------------------------------------------------------------

    def set_collections(self, collections: Sequence[Collection]) -> None:
        self.collections = {c.id: c for c in collections}
        self._emit("collections", "set", "*")

    def upsert_collection(self, collection: Collection) -> None:
        self.collections[collection.id] = collection
        self._emit("collections", "upsert", collection.id)

    def remove_collection(self, collection_id: str) -> None:
        if self.collections.pop(collection_id, None) is not None:
            self._emit("collections", "remove", collection_id)

    # ------------------------------------------------------------------

    def clear(self) -> None:
        self.trips.clear()
        self.places.clear()
        self.collections.clear()
        self.current_trip_id = None
        self._emit("all", "clear", "*")

    def snapshot(self) -> dict[str, Any]:
        return {
            "trips": [t.to_record() for t in self.trips.values()],
            "places": [p.to_record() for p in self.places.values()],
            "collections": [c.to_record() for c in self.collections.values()],
            "current_trip_id": self.current_trip_id,
        }
