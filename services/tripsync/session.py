"""
Session state read by the store selector and the real-time channel.

SessionState is an immutable value: login and logout replace it rather than
mutate it, so a caller holding an old value never observes a half-updated
session.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass


@dataclass(frozen=True)
class SessionState:
    user_id: str | None = None
    access_token: str | None = None
    display_name: str | None = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.access_token)

    @classmethod
    def anonymous(cls) -> SessionState:
        return cls()


SessionProvider = Callable[[], SessionState]


class SessionHolder:
    """
    Observable holder for the live SessionState.

    Components receive ``holder.get`` as their SessionProvider and read it at
    call time; ``subscribe`` is for components that react to transitions.
    """

    def __init__(self, initial: SessionState | None = None) -> None:
        self._state = initial or SessionState.anonymous()
        self._listeners: list[Callable[[SessionState, SessionState], None]] = []

    def get(self) -> SessionState:
        return self._state

    def set(self, state: SessionState) -> None:
        previous, self._state = self._state, state
        for listener in list(self._listeners):
            listener(previous, state)

    def subscribe(self, listener: Callable[[SessionState, SessionState], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe
