"""
Drop-excess throttle for outbound presence broadcasts.

Unlike the token bucket used for request pacing, nothing is queued: at most one
call per ``interval_s`` is let through and everything else inside the window
is discarded. The clock is injectable so tests can drive time explicitly.
"""

from __future__ import annotations

import time
from collections.abc import Callable


class Throttle:
    def __init__(self, interval_s: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.interval_s = interval_s
        self._clock = clock
        self._last: float | None = None
        self.dropped = 0

    def try_acquire(self) -> bool:
        """True if a call may go out now; records it as the latest send."""
        now = self._clock()
        if self._last is not None and now - self._last < self.interval_s:
            self.dropped += 1
            return False
        self._last = now
        return True

    def reset(self) -> None:
        self._last = None
