"""
Migration Engine -- one-shot promotion of local data into the remote store.

Triggered by the login flow right after an anonymous -> authenticated
transition. Order matters:

    1. Collections  (independent)
    2. Places       (referenced by waypoints)
    3. Trips        (waypoint place references remapped to the new remote ids)

Each item is created through the remote adapter with its local identifier
discarded; the server issues the canonical one. Items are awaited strictly
one after another, and a failing item is recorded in ``errors`` without
stopping the rest.

Outcome policy:
    success = at least one item migrated
    success and no errors  -> local store cleared, success notice
    success with errors    -> local store untouched, warning notice
    nothing migrated       -> local store untouched, error notice

Temporary markers and routes are never migrated; they are dropped with the
rest of the local store on a fully successful run.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

import sentry_sdk

from services.tripsync.errors import PartialMigrationFailure
from services.tripsync.models import is_local_id
from services.tripsync.notifications import NotificationCenter
from services.tripsync.storage.contract import DataAccess
from services.tripsync.storage.local_store import DurableLocalStore, LocalSnapshot

logger = logging.getLogger(__name__)

PROMPT_MESSAGE = (
    "You have local data saved. Would you like to sync it to your account?\n\n"
    "This will move your saved locations, collections, and trips to the cloud "
    "so you can access them from any device."
)

ConfirmCallback = Callable[[str], bool | Awaitable[bool]]


@dataclass
class MigratedItems:
    trips: int = 0
    collections: int = 0
    places: int = 0

    @property
    def total(self) -> int:
        return self.trips + self.collections + self.places


@dataclass
class MigrationResult:
    success: bool = False
    migrated_items: MigratedItems = field(default_factory=MigratedItems)
    errors: list[str] = field(default_factory=list)
    # local place id -> remote place id, for callers re-resolving references
    place_id_map: dict[str, str] = field(default_factory=dict)

    @property
    def total_migrated(self) -> int:
        return self.migrated_items.total

    @property
    def local_cleared(self) -> bool:
        return self.success and not self.errors

    def raise_for_errors(self) -> None:
        if self.errors:
            raise PartialMigrationFailure(self)


class UnmigratedPlaceReference(Exception):
    """A waypoint points at a local place that has no remote counterpart."""


def _collection_payload(record: dict[str, Any]) -> dict[str, Any]:
    return {
        "name": record.get("name"),
        "description": record.get("description") or "",
        "privacy": record.get("privacy") or "private",
        "locations": [
            {k: loc.get(k) for k in ("name", "latitude", "longitude")}
            for loc in record.get("locations") or []
        ],
    }


def _place_payload(record: dict[str, Any]) -> dict[str, Any]:
    payload = {
        key: record.get(key)
        for key in (
            "name", "description", "category", "location", "street_address",
            "city", "state", "country", "postal_code",
        )
        if record.get(key) is not None
    }
    payload["tags"] = record.get("tags") or []
    payload["privacy"] = record.get("privacy") or "private"
    return payload


def _trip_payload(record: dict[str, Any], place_id_map: dict[str, str]) -> dict[str, Any]:
    waypoints = []
    for wp in sorted(record.get("waypoints") or [], key=lambda w: w.get("position", 0)):
        place_id = wp.get("place_id")
        if is_local_id(place_id):
            if place_id not in place_id_map:
                raise UnmigratedPlaceReference(
                    f"waypoint {wp.get('id')} references place {place_id} which was not migrated"
                )
            place_id = place_id_map[place_id]
        waypoints.append({
            "place_id": place_id,
            "day": wp.get("day"),
            "arrival_time": wp.get("arrival_time"),
            "departure_time": wp.get("departure_time"),
            "notes": wp.get("notes") or "",
            "position": len(waypoints),
        })
    return {
        "title": record.get("title") or record.get("name"),
        "description": record.get("description") or "",
        "start_date": record.get("start_date"),
        "end_date": record.get("end_date"),
        "privacy": record.get("privacy") or record.get("visibility") or "private",
        "status": record.get("status") or "planning",
        "tags": record.get("tags") or [],
        "waypoints": waypoints,
        "collaborators": record.get("collaborators") or [],
        "media": record.get("media") or [],
    }


class MigrationEngine:
    """
    Usage:
        engine = MigrationEngine(local_store, remote_adapter, notifications)
        if await engine.has_local_data():
            result = await engine.run()

    Safe to re-run: once the local store has been cleared, a run is a no-op
    that reports zero counts and no errors.
    """

    def __init__(
        self,
        store: DurableLocalStore,
        remote: DataAccess,
        notifications: NotificationCenter | None = None,
    ) -> None:
        self._store = store
        self._remote = remote
        self._notifications = notifications or NotificationCenter()

    async def has_local_data(self) -> bool:
        return not (await self._store.get_all_data()).is_empty()

    async def prompt_and_migrate(self, confirm: ConfirmCallback) -> MigrationResult | None:
        """
        Ask the user before migrating. Returns None when there is nothing to
        migrate or the user declined.
        """
        if not await self.has_local_data():
            return None
        answer = confirm(PROMPT_MESSAGE)
        if inspect.isawaitable(answer):
            answer = await answer
        if not answer:
            logger.info("local data migration declined by user")
            return None
        return await self.run()

    async def run(self) -> MigrationResult:
        result = MigrationResult()
        try:
            snapshot = await self._store.get_all_data()
            if snapshot.is_empty():
                logger.info("local data migration: nothing to migrate")
                return result

            self._notifications.info("Migrating your local data to the cloud...")
            await self._migrate(snapshot, result)
        except Exception as exc:
            logger.exception("local data migration aborted")
            sentry_sdk.capture_exception(exc)
            result.errors.append(f"Migration failed: {exc}")
            result.success = result.total_migrated > 0
            self._notifications.error("An error occurred during data migration.", persistent=True)
            return result

        result.success = result.total_migrated > 0
        self._finish(result)
        if result.local_cleared:
            await self._store.clear_all()
        return result

    async def _migrate(self, snapshot: LocalSnapshot, result: MigrationResult) -> None:
        for record in snapshot.collections:
            try:
                await self._remote.save_collection(_collection_payload(record))
                result.migrated_items.collections += 1
            except Exception as exc:
                logger.warning("collection %s failed to migrate: %s", record.get("id"), exc)
                result.errors.append(f'Failed to migrate collection "{record.get("name")}": {exc}')

        for record in snapshot.places:
            try:
                created = await self._remote.save_place(_place_payload(record))
                result.migrated_items.places += 1
                if record.get("id"):
                    result.place_id_map[record["id"]] = created.id
            except Exception as exc:
                logger.warning("place %s failed to migrate: %s", record.get("id"), exc)
                result.errors.append(f'Failed to migrate place "{record.get("name")}": {exc}')

        for record in snapshot.trips:
            label = record.get("title") or record.get("name")
            try:
                await self._remote.save_trip(_trip_payload(record, result.place_id_map))
                result.migrated_items.trips += 1
            except Exception as exc:
                logger.warning("trip %s failed to migrate: %s", record.get("id"), exc)
                result.errors.append(f'Failed to migrate trip "{label}": {exc}')

    def _finish(self, result: MigrationResult) -> None:
        counts = result.migrated_items
        logger.info(
            "local data migration finished: trips=%d collections=%d places=%d errors=%d",
            counts.trips,
            counts.collections,
            counts.places,
            len(result.errors),
        )
        if result.success and not result.errors:
            self._notifications.success(
                f"Successfully migrated {result.total_migrated} items to the cloud!"
            )
        elif result.success:
            self._notifications.warning(
                f"Migrated {result.total_migrated} items with {len(result.errors)} errors. "
                "Items that did not migrate are still saved on this device.",
                persistent=True,
            )
        else:
            self._notifications.error("Failed to migrate local data to the cloud.", persistent=True)
