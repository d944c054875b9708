"""
Shared test fixtures for the tripsync test suite.

Provides:
- in-memory local store, both adapters and the store selector
- session holder, shared state and notification centre
- a RealtimeChannel wired to FakeTransport with a FakeClock and instant retries
- factory functions for trip, place and collection payloads
"""

import asyncio
import os
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

# Keep Settings() deterministic regardless of the developer's environment
os.environ.setdefault("TRIPSYNC_ENVIRONMENT", "development")
os.environ.setdefault("TRIPSYNC_SENTRY_DSN", "")
os.environ.setdefault("TRIPSYNC_LOCAL_STORE_BACKEND", "memory")

from services.tripsync.notifications import NotificationCenter
from services.tripsync.realtime.channel import RealtimeChannel
from services.tripsync.session import SessionHolder, SessionState
from services.tripsync.state import SharedState
from services.tripsync.storage.local_adapter import LocalStoreAdapter
from services.tripsync.storage.local_store import DurableLocalStore
from services.tripsync.storage.medium import MemoryMedium
from services.tripsync.storage.remote_adapter import RemoteStoreAdapter
from services.tripsync.storage.selector import StoreSelector
from services.tripsync.tests.helpers.backend import FakeBackend
from services.tripsync.tests.helpers.fakes import FakeClock, FakeTransport

API_BASE = "http://test/api/v1"
REALTIME_URL = "http://test"
USER_ID = "user-remote-1"
TOKEN = "tok-abc123"


async def instant_sleep(_delay: float) -> None:
    await asyncio.sleep(0)


# ---------------------------------------------------------------------------
# Session, state, notifications
# ---------------------------------------------------------------------------

def signed_in(user_id: str = USER_ID, token: str = TOKEN, name: str = "Ana") -> SessionState:
    return SessionState(user_id=user_id, access_token=token, display_name=name)


@pytest.fixture
def session_holder() -> SessionHolder:
    return SessionHolder()


@pytest.fixture
def authed_holder() -> SessionHolder:
    return SessionHolder(signed_in())


@pytest.fixture
def state() -> SharedState:
    return SharedState()


@pytest.fixture
def notifications() -> NotificationCenter:
    return NotificationCenter()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------

@pytest.fixture
def medium() -> MemoryMedium:
    return MemoryMedium()


@pytest.fixture
def store(medium: MemoryMedium) -> DurableLocalStore:
    return DurableLocalStore(medium)


@pytest.fixture
def local_adapter(store: DurableLocalStore) -> LocalStoreAdapter:
    return LocalStoreAdapter(store)


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend(user_id=USER_ID)


@pytest.fixture
async def remote_adapter(backend: FakeBackend, session_holder: SessionHolder):
    adapter = RemoteStoreAdapter(
        API_BASE,
        lambda: session_holder.get().access_token,
        transport=backend.transport(),
    )
    yield adapter
    await adapter.aclose()


@pytest.fixture
def selector(local_adapter, remote_adapter, session_holder) -> StoreSelector:
    return StoreSelector(local_adapter, remote_adapter, session_holder.get)


# ---------------------------------------------------------------------------
# Real-time channel
# ---------------------------------------------------------------------------

@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
async def channel(transport, state, notifications, authed_holder, clock):
    ch = RealtimeChannel(
        transport,
        state,
        notifications,
        authed_holder.get,
        url=REALTIME_URL,
        max_reconnect_attempts=3,
        reconnect_delay_s=0.0,
        clock=clock,
        sleep=instant_sleep,
    )
    yield ch
    await ch.disconnect()


# ---------------------------------------------------------------------------
# Factory functions -- create payloads as the UI would send them
# ---------------------------------------------------------------------------

def make_trip(**overrides: Any) -> dict:
    """Factory for trip create payloads."""
    start = datetime.now(timezone.utc).date() + timedelta(days=30)
    base = {
        "title": f"Trip {uuid.uuid4().hex[:6]}",
        "description": "Long weekend",
        "start_date": start.isoformat(),
        "end_date": (start + timedelta(days=3)).isoformat(),
        "privacy": "private",
        "tags": ["weekend"],
        "waypoints": [],
    }
    base.update(overrides)
    return base


def make_place(**overrides: Any) -> dict:
    """Factory for place create payloads."""
    base = {
        "name": f"Place {uuid.uuid4().hex[:6]}",
        "category": "restaurant",
        "location": {"lat": 38.7223, "lng": -9.1393},
        "city": "Lisbon",
        "country": "Portugal",
        "tags": ["food"],
    }
    base.update(overrides)
    return base


def make_collection(**overrides: Any) -> dict:
    """Factory for collection create payloads."""
    base = {
        "name": f"Collection {uuid.uuid4().hex[:6]}",
        "description": "Spots to revisit",
        "locations": [
            {"name": "Miradouro", "latitude": 38.7139, "longitude": -9.1334},
        ],
    }
    base.update(overrides)
    return base


def make_waypoint(place_id: str | None = None, **overrides: Any) -> dict:
    base = {"place_id": place_id, "day": 1, "notes": ""}
    base.update(overrides)
    return base
