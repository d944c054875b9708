"""
Remote Store Adapter -- the data-access contract against the REST backend.

The backend is authoritative: it assigns canonical identifiers on create and
resolves conflicts (last write wins). Every request carries the bearer token
of the *current* session, read at request time through ``token_provider``.

Response envelope:
    {"success": true, "data": {...}}          single entity
    {"success": true, "data": [...], ...}     list / paginated

Error mapping:
    404                        -> NotFound (reads return None / [])
    400, 422                   -> ValidationFailed
    any other non-2xx          -> TransportFailed(status_code=...)
    timeouts / network errors  -> TransportFailed
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, ValidationError
from pydantic_core import to_jsonable_python

from services.tripsync.errors import NotFound, TransportFailed, ValidationFailed
from services.tripsync.models import (
    SERVER_ONLY_FIELDS,
    Collection,
    Place,
    SavedLocation,
    TemporaryMarker,
    Trip,
    Waypoint,
    new_local_id,
)
from services.tripsync.storage.contract import DataAccess

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

_DEFAULT_TIMEOUT_S = 10.0

# Never sent on create/update: the server owns these
_SERVER_ASSIGNED = frozenset({"id", "created_at", "updated_at"}) | SERVER_ONLY_FIELDS


def to_remote_payload(data: Mapping[str, Any]) -> dict[str, Any]:
    """Strip identifiers and server-owned fields from a create/update body."""
    body: dict[str, Any] = {}
    for key, value in data.items():
        if key in _SERVER_ASSIGNED:
            continue
        body[key] = to_jsonable_python(value)
    return body


class RemoteStoreAdapter(DataAccess):
    """
    Usage:
        adapter = RemoteStoreAdapter(
            base_url=settings.api_base_url,
            token_provider=lambda: context.session.access_token,
        )
        trip = await adapter.save_trip({"title": "Kyoto in autumn"})
        await adapter.aclose()
    """

    kind = "remote"

    def __init__(
        self,
        base_url: str,
        token_provider: Callable[[], str | None],
        *,
        timeout_s: float = _DEFAULT_TIMEOUT_S,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Args:
            base_url:       API root, e.g. "http://localhost:8080/api/v1".
            token_provider: Returns the live session's access token (or None).
            timeout_s:      Per-request timeout handed to httpx.
            transport:      Optional httpx transport (tests use httpx.MockTransport).
        """
        self._token_provider = token_provider
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout_s,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )
        # Temporary markers are UI-scoped; the backend never sees them.
        self._markers: list[TemporaryMarker] = []

    async def aclose(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        entity: str = "resource",
        entity_id: str = "",
    ) -> Any:
        headers = {}
        token = self._token_provider()
        if token:
            headers["Authorization"] = f"Bearer {token}"

        try:
            resp = await self._client.request(method, path, json=json, headers=headers)
        except httpx.TimeoutException as exc:
            logger.warning("remote %s %s timed out", method, path)
            raise TransportFailed(f"{method} {path} timed out") from exc
        except httpx.HTTPError as exc:
            logger.warning("remote %s %s failed: %s", method, path, exc)
            raise TransportFailed(f"{method} {path} failed: {exc}") from exc

        if resp.status_code == 404:
            raise NotFound(entity, entity_id or path)
        if resp.status_code in (400, 422):
            raise ValidationFailed(_error_message(resp))
        if resp.is_error:
            logger.warning(
                "remote %s %s returned %d: %s",
                method,
                path,
                resp.status_code,
                resp.text[:200],
            )
            raise TransportFailed(_error_message(resp), status_code=resp.status_code)

        if resp.status_code == 204 or not resp.content:
            return None
        try:
            body = resp.json()
        except ValueError as exc:
            raise TransportFailed(f"{method} {path} returned non-JSON body") from exc
        if isinstance(body, dict) and "data" in body:
            return body["data"]
        return body

    @staticmethod
    def _parse(model: type[M], data: Any) -> M:
        try:
            return model.model_validate(data)
        except ValidationError as exc:
            raise TransportFailed(f"backend returned malformed {model.__name__}: {exc}") from exc

    def _parse_list(self, model: type[M], data: Any) -> list[M]:
        if not isinstance(data, list):
            return []
        return [self._parse(model, item) for item in data]

    async def _get_optional(self, path: str, model: type[M]) -> M | None:
        try:
            data = await self._request("GET", path)
        except NotFound:
            return None
        return self._parse(model, data)

    async def _get_list(self, path: str, model: type[M]) -> list[M]:
        try:
            data = await self._request("GET", path)
        except NotFound:
            return []
        return self._parse_list(model, data)

    # -- Trips ------------------------------------------------------------

    async def get_trips(self) -> list[Trip]:
        return await self._get_list("/trips", Trip)

    async def get_trip(self, trip_id: str) -> Trip | None:
        return await self._get_optional(f"/trips/{trip_id}", Trip)

    async def save_trip(self, trip: Mapping[str, Any]) -> Trip:
        body = to_remote_payload(trip)
        if "waypoints" in body:
            body["waypoints"] = [to_remote_payload(_as_dict(wp)) for wp in body["waypoints"] or []]
        data = await self._request("POST", "/trips", json=body, entity="trip")
        return self._parse(Trip, data)

    async def update_trip(self, trip_id: str, updates: Mapping[str, Any]) -> Trip:
        fields = {k: v for k, v in updates.items() if k != "waypoints"}
        data = await self._request(
            "PUT", f"/trips/{trip_id}", json=to_remote_payload(fields),
            entity="trip", entity_id=trip_id,
        )
        return self._parse(Trip, data)

    async def delete_trip(self, trip_id: str) -> None:
        await self._request("DELETE", f"/trips/{trip_id}", entity="trip", entity_id=trip_id)

    # -- Waypoints --------------------------------------------------------

    async def add_waypoint(self, trip_id: str, waypoint: Mapping[str, Any]) -> Waypoint:
        body = to_remote_payload(waypoint)
        body.pop("trip_id", None)
        data = await self._request(
            "POST", f"/trips/{trip_id}/waypoints", json=body, entity="trip", entity_id=trip_id
        )
        return self._parse(Waypoint, {"trip_id": trip_id, **(data or {})})

    async def update_waypoint(
        self, trip_id: str, waypoint_id: str, updates: Mapping[str, Any]
    ) -> Waypoint:
        data = await self._request(
            "PATCH", f"/trips/{trip_id}/waypoints/{waypoint_id}",
            json=to_remote_payload(updates), entity="waypoint", entity_id=waypoint_id,
        )
        return self._parse(Waypoint, {"trip_id": trip_id, **(data or {})})

    async def remove_waypoint(self, trip_id: str, waypoint_id: str) -> None:
        await self._request(
            "DELETE", f"/trips/{trip_id}/waypoints/{waypoint_id}",
            entity="waypoint", entity_id=waypoint_id,
        )

    async def reorder_waypoints(self, trip_id: str, waypoint_ids: Sequence[str]) -> list[Waypoint]:
        await self._request(
            "PUT", f"/trips/{trip_id}/waypoints/reorder",
            json={"waypoint_ids": list(waypoint_ids)}, entity="trip", entity_id=trip_id,
        )
        # The reorder endpoint does not echo the waypoints back
        trip = await self.get_trip(trip_id)
        if trip is None:
            raise NotFound("trip", trip_id)
        return trip.waypoints

    # -- Places -----------------------------------------------------------

    async def get_places(self) -> list[Place]:
        return await self._get_list("/places/my", Place)

    async def get_place(self, place_id: str) -> Place | None:
        return await self._get_optional(f"/places/{place_id}", Place)

    async def save_place(self, place: Mapping[str, Any]) -> Place:
        data = await self._request("POST", "/places", json=to_remote_payload(place), entity="place")
        return self._parse(Place, data)

    async def update_place(self, place_id: str, updates: Mapping[str, Any]) -> Place:
        data = await self._request(
            "PUT", f"/places/{place_id}", json=to_remote_payload(updates),
            entity="place", entity_id=place_id,
        )
        return self._parse(Place, data)

    async def delete_place(self, place_id: str) -> None:
        await self._request("DELETE", f"/places/{place_id}", entity="place", entity_id=place_id)

    # -- Collections ------------------------------------------------------

    async def get_collections(self) -> list[Collection]:
        return await self._get_list("/collections", Collection)

    async def get_collection(self, collection_id: str) -> Collection | None:
        return await self._get_optional(f"/collections/{collection_id}", Collection)

    async def save_collection(self, collection: Mapping[str, Any]) -> Collection:
        body = to_remote_payload(collection)
        locations = body.pop("locations", None) or []
        data = await self._request("POST", "/collections", json=body, entity="collection")
        created = self._parse(Collection, data)
        # Saved locations are a sub-resource; the create endpoint ignores them
        for location in locations:
            saved = await self.add_location_to_collection(created.id, _as_dict(location))
            created.locations.append(saved)
        return created

    async def update_collection(
        self, collection_id: str, updates: Mapping[str, Any]
    ) -> Collection:
        data = await self._request(
            "PUT", f"/collections/{collection_id}", json=to_remote_payload(updates),
            entity="collection", entity_id=collection_id,
        )
        return self._parse(Collection, data)

    async def delete_collection(self, collection_id: str) -> None:
        await self._request(
            "DELETE", f"/collections/{collection_id}",
            entity="collection", entity_id=collection_id,
        )

    async def add_location_to_collection(
        self, collection_id: str, location: Mapping[str, Any]
    ) -> SavedLocation:
        body = {
            key: location.get(key)
            for key in ("name", "latitude", "longitude")
            if location.get(key) is not None
        }
        data = await self._request(
            "POST", f"/collections/{collection_id}/locations", json=body,
            entity="collection", entity_id=collection_id,
        )
        return self._parse(SavedLocation, {"collection_id": collection_id, **(data or {})})

    # -- Temporary markers (memory only) ---------------------------------

    async def get_temporary_markers(self) -> list[TemporaryMarker]:
        return list(self._markers)

    async def save_temporary_marker(self, coordinates: tuple[float, float]) -> TemporaryMarker:
        marker = TemporaryMarker(id=new_local_id("marker"), coordinates=coordinates)
        self._markers.append(marker)
        return marker

    async def remove_temporary_marker(self, marker_id: str) -> None:
        self._markers = [m for m in self._markers if m.id != marker_id]

    async def clear_temporary_markers(self) -> None:
        self._markers = []


def _as_dict(value: Any) -> dict[str, Any]:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    return dict(value)


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return f"API error: {resp.status_code}"
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            return str(error.get("message") or error.get("code") or resp.status_code)
        if error:
            return str(error)
        if body.get("detail"):
            return str(body["detail"])
    return f"API error: {resp.status_code}"
