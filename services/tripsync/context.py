"""
SyncContext -- the explicit, constructible home of every client-side sync component.

Created once when the app starts and handed to whatever needs it; there is no
module-level singleton. Lifecycle:

    ctx = SyncContext()                      # anonymous: selector routes local
    await ctx.login(session, confirm=ask)    # migrate once, connect channel
    await ctx.logout()                       # disconnect, back to local
    await ctx.aclose()                       # release HTTP, socket and redis resources
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

import httpx
import redis.asyncio as aioredis

from services.tripsync.config import Settings, settings as default_settings
from services.tripsync.errors import SyncError
from services.tripsync.notifications import NotificationCenter
from services.tripsync.planner import TripPlanner
from services.tripsync.realtime.channel import RealtimeChannel
from services.tripsync.realtime.presence_view import CursorRenderer, PresenceView
from services.tripsync.realtime.transport import ChannelTransport, SocketIOTransport
from services.tripsync.session import SessionHolder, SessionState
from services.tripsync.state import SharedState
from services.tripsync.storage.local_adapter import LocalStoreAdapter
from services.tripsync.storage.local_store import DurableLocalStore
from services.tripsync.storage.medium import FileMedium, MemoryMedium, RedisMedium, StorageMedium
from services.tripsync.storage.migration import ConfirmCallback, MigrationEngine, MigrationResult
from services.tripsync.storage.remote_adapter import RemoteStoreAdapter
from services.tripsync.storage.selector import StoreSelector

logger = logging.getLogger(__name__)


def build_medium(config: Settings) -> StorageMedium:
    """Pick the local store's backing medium from configuration."""
    backend = config.local_store_backend
    if backend == "memory":
        return MemoryMedium(config.local_store_quota_bytes)
    if backend == "redis":
        client = aioredis.from_url(
            config.local_redis_url,
            decode_responses=True,
            socket_connect_timeout=5,
        )
        return RedisMedium(client)
    return FileMedium(Path(config.local_store_path).expanduser(), config.local_store_quota_bytes)


class SyncContext:
    def __init__(
        self,
        config: Settings | None = None,
        *,
        medium: StorageMedium | None = None,
        http_transport: httpx.AsyncBaseTransport | None = None,
        channel_transport: ChannelTransport | None = None,
        session: SessionState | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.config = config or default_settings
        cfg = self.config

        self.session = SessionHolder(session)
        self.notifications = NotificationCenter()
        self.state = SharedState()

        self.medium = medium or build_medium(cfg)
        self.local_store = DurableLocalStore(
            self.medium,
            trip_retention=cfg.local_trip_retention,
            key_prefix=cfg.storage_key_prefix,
        )
        self.local = LocalStoreAdapter(self.local_store)
        self.remote = RemoteStoreAdapter(
            cfg.api_base_url,
            lambda: self.session.get().access_token,
            timeout_s=cfg.http_timeout_s,
            transport=http_transport,
        )
        self.store = StoreSelector(self.local, self.remote, self.session.get)
        self.planner = TripPlanner(self.store, self.state)
        self.migration = MigrationEngine(self.local_store, self.remote, self.notifications)
        self.channel = RealtimeChannel(
            channel_transport or SocketIOTransport(),
            self.state,
            self.notifications,
            self.session.get,
            url=cfg.realtime_url,
            max_reconnect_attempts=cfg.reconnect_max_attempts,
            reconnect_delay_s=cfg.reconnect_delay_s,
            handshake_timeout_s=cfg.handshake_timeout_s,
            cursor_interval_s=cfg.cursor_broadcast_interval_s,
            stale_after_s=cfg.cursor_stale_after_s,
            sweep_interval_s=cfg.presence_sweep_interval_s,
            clock=clock,
            sleep=sleep,
        )

    def presence_view(
        self, room: str | None = None, renderer: CursorRenderer | None = None
    ) -> PresenceView:
        return PresenceView(
            self.channel.presence,
            own_user_id=self.session.get().user_id,
            room=room,
            renderer=renderer,
        )

    async def login(
        self, session: SessionState, confirm: ConfirmCallback | None = None
    ) -> MigrationResult | None:
        """
        Switch to an authenticated session.

        Local data is migrated exactly once per anonymous -> authenticated
        transition (after ``confirm`` accepts, when given). Then the channel
        connects and shared state is reloaded from the remote store.
        """
        if not session.is_authenticated:
            raise ValueError("login requires a session with an access token")

        previous = self.session.get()
        self.session.set(session)

        result: MigrationResult | None = None
        if not previous.is_authenticated:
            if confirm is not None:
                result = await self.migration.prompt_and_migrate(confirm)
            else:
                result = await self.migration.run()
        else:
            logger.info("session refreshed for %s; migration skipped", session.user_id)

        await self.channel.connect()
        await self._reload()
        return result

    async def logout(self) -> None:
        await self.channel.disconnect()
        self.session.set(SessionState.anonymous())
        self.state.clear()
        await self._reload()

    async def aclose(self) -> None:
        await self.channel.disconnect()
        await self.remote.aclose()
        if isinstance(self.medium, RedisMedium):
            await self.medium.aclose()

    async def _reload(self) -> None:
        try:
            await self.planner.load_all()
        except SyncError as exc:
            logger.warning("could not load data after session change: %s", exc)
            self.notifications.error("Could not load your trips. Please try again.")
