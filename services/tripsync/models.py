"""
Core entities shared by both stores, the shared state tree and the real-time channel.

All entities are pydantic models so both write paths (adapter results and
channel pushes) converge on one shape. Identifiers are either client-generated
(local-origin, unsynced) or server-issued (synced); ``is_local_id`` tells them apart.

Local identifier format:  {kind}_{epoch_ms}_{random}
    e.g. "trip_1760781234567_a1b2c3d4e5"
"""

from __future__ import annotations

import re
import secrets
import time
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

_LOCAL_ID_RE = re.compile(r"^(trip|waypoint|place|col|loc|marker)_\d{13}_[0-9a-f]{10}$")

# Fields the server owns; never sent on create and ignored when comparing
# a local entity with its remote copy.
SERVER_ONLY_FIELDS = frozenset({"user_id"})


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_local_id(kind: str) -> str:
    """Generate a client-side identifier for a local-origin entity."""
    return f"{kind}_{int(time.time() * 1000)}_{secrets.token_hex(5)}"


def is_local_id(entity_id: str | None) -> bool:
    return bool(entity_id) and _LOCAL_ID_RE.match(entity_id) is not None


class Privacy(str, Enum):
    public = "public"
    friends = "friends"
    private = "private"


class TripStatus(str, Enum):
    planning = "planning"
    active = "active"
    completed = "completed"


class EntityType(str, Enum):
    trip = "trip"
    place = "place"
    collection = "collection"


class _Entity(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    def to_record(self) -> dict[str, Any]:
        """JSON-safe dict used for persistence and wire payloads."""
        return self.model_dump(mode="json")


class Coordinate(_Entity):
    latitude: float = Field(ge=-90.0, le=90.0, alias="lat")
    longitude: float = Field(ge=-180.0, le=180.0, alias="lng")

    def as_pair(self) -> tuple[float, float]:
        return (self.longitude, self.latitude)


class Waypoint(_Entity):
    id: str
    trip_id: str | None = Field(default=None, alias="tripId")
    place_id: str | None = Field(default=None, alias="placeId")
    day: int | None = None
    arrival_time: str | None = Field(default=None, alias="arrivalTime")
    departure_time: str | None = Field(default=None, alias="departureTime")
    notes: str = ""
    position: int = 0


class Trip(_Entity):
    id: str
    title: str = Field(min_length=1)
    description: str = ""
    start_date: date | None = None
    end_date: date | None = None
    privacy: Privacy = Privacy.private
    status: TripStatus = TripStatus.planning
    tags: list[str] = Field(default_factory=list)
    waypoints: list[Waypoint] = Field(default_factory=list)
    collaborators: list[str] = Field(default_factory=list)
    media: list[str] = Field(default_factory=list)
    user_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def waypoint_index(self, waypoint_id: str) -> int:
        for i, wp in enumerate(self.waypoints):
            if wp.id == waypoint_id:
                return i
        return -1


class Place(_Entity):
    id: str
    name: str = Field(min_length=1)
    description: str = ""
    category: str = "poi"
    location: Coordinate | None = None
    street_address: str = ""
    city: str = ""
    state: str = ""
    country: str = ""
    postal_code: str = ""
    tags: list[str] = Field(default_factory=list)
    privacy: Privacy = Privacy.private
    user_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class SavedLocation(_Entity):
    id: str
    collection_id: str | None = None
    name: str | None = None
    latitude: float
    longitude: float
    added_at: datetime | None = None


class Collection(_Entity):
    id: str
    name: str = Field(min_length=1)
    description: str = ""
    privacy: Privacy = Privacy.private
    locations: list[SavedLocation] = Field(default_factory=list)
    user_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class TemporaryMarker(_Entity):
    """Short-lived, UI-scoped map marker. Never migrated."""

    id: str
    coordinates: tuple[float, float]  # (lng, lat)


ENTITY_MODELS: dict[EntityType, type[_Entity]] = {
    EntityType.trip: Trip,
    EntityType.place: Place,
    EntityType.collection: Collection,
}
