"""
Transport underneath the real-time channel.

The channel only needs four things from a transport: open a connection with
a token, close it, emit an event, and report inbound events and drops. The
production transport wraps python-socketio's AsyncClient with its built-in
reconnection switched off; reconnection policy belongs to the channel.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import Any, Protocol

import socketio
from socketio.exceptions import BadNamespaceError
from socketio.exceptions import ConnectionError as SocketIOConnectionError

from services.tripsync.errors import ChannelDisconnected, TransportFailed

logger = logging.getLogger(__name__)

EventHandler = Callable[[str, Any], None]
DropHandler = Callable[[], None]


class ChannelTransport(Protocol):
    @property
    def connected(self) -> bool:
        ...

    def bind(self, on_event: EventHandler, on_drop: DropHandler, event_names: Iterable[str]) -> None:
        ...

    async def connect(self, url: str, token: str, timeout_s: float) -> None:
        ...

    async def disconnect(self) -> None:
        ...

    async def emit(self, event: str, data: Any = None) -> None:
        ...


class SocketIOTransport:
    """
    Usage:
        transport = SocketIOTransport()
        transport.bind(channel.receive, channel.handle_drop, [k.value for k in EventKind])
        await transport.connect("http://localhost:8080", token, timeout_s=5.0)
    """

    def __init__(self, client: socketio.AsyncClient | None = None) -> None:
        self._sio = client or socketio.AsyncClient(
            reconnection=False, logger=False, engineio_logger=False
        )
        self._on_event: EventHandler | None = None
        self._on_drop: DropHandler | None = None
        self._closing = False

    @property
    def connected(self) -> bool:
        return bool(self._sio.connected)

    def bind(self, on_event: EventHandler, on_drop: DropHandler, event_names: Iterable[str]) -> None:
        self._on_event = on_event
        self._on_drop = on_drop
        self._sio.on("disconnect", self._handle_disconnect)
        for name in event_names:
            self._sio.on(name, self._make_handler(name))

    def _make_handler(self, name: str) -> Callable[..., None]:
        def _handler(data: Any = None) -> None:
            if self._on_event is not None:
                self._on_event(name, data)

        return _handler

    def _handle_disconnect(self, *args: Any) -> None:
        # python-socketio also fires this for client-initiated disconnects
        if self._closing:
            return
        logger.info("socket.io connection dropped: %s", args[0] if args else "unknown")
        if self._on_drop is not None:
            self._on_drop()

    async def connect(self, url: str, token: str, timeout_s: float) -> None:
        self._closing = False
        try:
            await self._sio.connect(
                url,
                auth={"token": token},
                transports=["websocket", "polling"],
                wait_timeout=timeout_s,
            )
        except SocketIOConnectionError as exc:
            raise TransportFailed(f"real-time handshake failed: {exc}") from exc

    async def disconnect(self) -> None:
        self._closing = True
        await self._sio.disconnect()

    async def emit(self, event: str, data: Any = None) -> None:
        if not self._sio.connected:
            raise ChannelDisconnected(f"cannot emit {event!r}: not connected")
        try:
            await self._sio.emit(event, data)
        except BadNamespaceError as exc:
            raise ChannelDisconnected(f"cannot emit {event!r}: {exc}") from exc
