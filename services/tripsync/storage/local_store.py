"""
Durable Local Store -- namespaced entity persistence on the device.

Key format:  {prefix}{namespace}    e.g. "newmap_trips"
Value:       JSON array of entity records, in insertion order.

Graceful degradation: reads return [] when the medium is unavailable or the
stored document is unreadable; writes are best-effort and never raise.

A write first re-reads its namespace; if that read fails the write is dropped
rather than overwriting records it could not see.

Quota policy: when a write is rejected with QuotaExceeded, the store keeps
only the ``trip_retention`` most recently updated Trips (default 10), then
re-attempts the write once. If the retry also fails the write is dropped
and logged.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from services.tripsync.errors import QuotaExceeded
from services.tripsync.storage.medium import StorageMedium

logger = logging.getLogger(__name__)


class _MediumUnavailable(Exception):
    """The medium reported itself unavailable before a read."""

_DEFAULT_PREFIX = "newmap_"
_DEFAULT_TRIP_RETENTION = 10


class Namespace(str, Enum):
    trips = "trips"
    collections = "collections"
    places = "places"
    routes = "routes"
    preferences = "preferences"
    temporary_markers = "temp_markers"


@dataclass
class LocalSnapshot:
    """Every namespace's records at one point in time (input to migration)."""

    trips: list[dict[str, Any]]
    collections: list[dict[str, Any]]
    places: list[dict[str, Any]]
    routes: list[dict[str, Any]]
    temporary_markers: list[dict[str, Any]]

    def is_empty(self) -> bool:
        return not (self.trips or self.collections or self.places)


@dataclass
class StorageInfo:
    used_bytes: int
    available: bool


def _recency(record: dict[str, Any]) -> str:
    # ISO-8601 UTC strings sort chronologically
    return record.get("updated_at") or record.get("created_at") or ""


class DurableLocalStore:
    """
    Usage:
        store = DurableLocalStore(FileMedium("~/.tripsync", quota_bytes=5_242_880))
        await store.put(Namespace.trips, trip.to_record())
        trips = await store.get(Namespace.trips)

    One instance per process, owned by SyncContext. Writers serialize on the
    event loop, so no locking is needed.
    """

    def __init__(
        self,
        medium: StorageMedium,
        *,
        trip_retention: int = _DEFAULT_TRIP_RETENTION,
        key_prefix: str = _DEFAULT_PREFIX,
    ) -> None:
        self._medium = medium
        self._retention = trip_retention
        self._prefix = key_prefix

    @property
    def trip_retention(self) -> int:
        return self._retention

    def key(self, namespace: Namespace) -> str:
        return f"{self._prefix}{namespace.value}"

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, namespace: Namespace) -> list[dict[str, Any]]:
        """Return every record in ``namespace``; [] when unavailable. Never raises."""
        key = self.key(namespace)
        try:
            return await self._load(namespace)
        except _MediumUnavailable:
            logger.debug("local store unavailable; read of %s returns []", key)
        except Exception:
            logger.warning("local store read failed: key=%s", key, exc_info=True)
        return []

    async def find(self, namespace: Namespace, entity_id: str) -> dict[str, Any] | None:
        for item in await self.get(namespace):
            if item.get("id") == entity_id:
                return item
        return None

    async def get_all_data(self) -> LocalSnapshot:
        return LocalSnapshot(
            trips=await self.get(Namespace.trips),
            collections=await self.get(Namespace.collections),
            places=await self.get(Namespace.places),
            routes=await self.get(Namespace.routes),
            temporary_markers=await self.get(Namespace.temporary_markers),
        )

    async def storage_info(self) -> StorageInfo:
        try:
            if not await self._medium.available():
                return StorageInfo(used_bytes=0, available=False)
            return StorageInfo(used_bytes=await self._medium.usage(), available=True)
        except Exception:
            logger.warning("local store usage check failed", exc_info=True)
            return StorageInfo(used_bytes=0, available=False)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def put(self, namespace: Namespace, entity: dict[str, Any]) -> bool:
        """
        Upsert ``entity`` by its ``id``.

        Replaces in place when present (keeping list order for display),
        appends otherwise. Returns False when the write was dropped.
        """
        entity_id = entity.get("id")
        if not entity_id:
            raise ValueError("local store records need an 'id'")

        items = await self._load_for_write(namespace)
        if items is None:
            return False
        for i, item in enumerate(items):
            if item.get("id") == entity_id:
                items[i] = entity
                break
        else:
            items.append(entity)
        return await self._write(namespace, items)

    async def remove(self, namespace: Namespace, entity_id: str) -> bool:
        """Delete by id. Removing an absent id is a no-op."""
        items = await self._load_for_write(namespace)
        if items is None:
            return False
        remaining = [item for item in items if item.get("id") != entity_id]
        if len(remaining) == len(items):
            return True
        return await self._write(namespace, remaining)

    async def replace(self, namespace: Namespace, entities: list[dict[str, Any]]) -> bool:
        return await self._write(namespace, list(entities))

    async def clear(self, namespace: Namespace) -> None:
        key = self.key(namespace)
        try:
            await self._medium.delete(key)
        except Exception:
            logger.warning("local store clear failed: key=%s", key, exc_info=True)

    async def clear_all(self) -> None:
        for namespace in Namespace:
            await self.clear(namespace)
        logger.info("local store cleared")

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _load(self, namespace: Namespace) -> list[dict[str, Any]]:
        """
        Read and decode ``namespace``.

        Medium failures propagate; an unreadable document decodes to [].
        """
        key = self.key(namespace)
        if not await self._medium.available():
            raise _MediumUnavailable(key)
        raw = await self._medium.read(key)
        if not raw:
            return []
        try:
            items = json.loads(raw)
        except ValueError:
            logger.warning("local store document is not valid JSON: key=%s", key)
            return []
        if not isinstance(items, list):
            logger.warning("local store document is not a list: key=%s", key)
            return []
        return [item for item in items if isinstance(item, dict)]

    async def _load_for_write(self, namespace: Namespace) -> list[dict[str, Any]] | None:
        try:
            return await self._load(namespace)
        except Exception:
            logger.warning(
                "local store read failed; dropping write to %s", self.key(namespace), exc_info=True
            )
            return None

    async def _write(self, namespace: Namespace, items: list[dict[str, Any]]) -> bool:
        key = self.key(namespace)
        try:
            await self._medium.write(key, json.dumps(items, separators=(",", ":")))
            return True
        except QuotaExceeded:
            logger.warning("local store quota exceeded writing %s; evicting old trips", key)
        except Exception:
            logger.warning("local store write failed: key=%s", key, exc_info=True)
            return False

        if namespace is Namespace.trips:
            items = self._retain_recent(items)
        else:
            await self._evict_trips()

        try:
            await self._medium.write(key, json.dumps(items, separators=(",", ":")))
            return True
        except Exception:
            logger.error("local store write dropped after eviction: key=%s", key, exc_info=True)
            return False

    def _retain_recent(self, trips: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Keep the most recently updated trips, preserving their list order."""
        if len(trips) <= self._retention:
            return trips
        keep = sorted(trips, key=_recency, reverse=True)[: self._retention]
        keep_ids = {id(t) for t in keep}
        evicted = len(trips) - len(keep)
        logger.warning("local store evicting %d least-recently-updated trip(s)", evicted)
        return [t for t in trips if id(t) in keep_ids]

    async def _evict_trips(self) -> None:
        trips = await self._load_for_write(Namespace.trips)
        if trips is None:
            return
        retained = self._retain_recent(trips)
        if len(retained) == len(trips):
            return
        key = self.key(Namespace.trips)
        try:
            await self._medium.write(key, json.dumps(retained, separators=(",", ":")))
        except Exception:
            # Shrinking can only lower usage; a failure here means the medium is gone.
            logger.warning("local store eviction write failed: key=%s", key, exc_info=True)
