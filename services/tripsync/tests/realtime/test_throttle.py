"""
Tests for the drop-excess cursor throttle.
"""

from __future__ import annotations

from services.tripsync.realtime.throttle import Throttle
from services.tripsync.tests.helpers.fakes import FakeClock


class TestThrottle:
    def test_first_call_passes(self):
        throttle = Throttle(0.1, clock=FakeClock())
        assert throttle.try_acquire() is True

    def test_fifty_calls_inside_one_window_send_once(self):
        clock = FakeClock()
        throttle = Throttle(0.1, clock=clock)

        sent = 0
        for _ in range(50):
            sent += throttle.try_acquire()
            clock.advance(0.0019)  # 50 calls spread over ~95 ms

        assert sent == 1
        assert throttle.dropped == 49

    def test_next_window_opens_after_interval(self):
        clock = FakeClock()
        throttle = Throttle(0.1, clock=clock)
        throttle.try_acquire()

        clock.advance(0.099)
        assert throttle.try_acquire() is False
        clock.advance(0.002)
        assert throttle.try_acquire() is True

    def test_excess_is_dropped_not_queued(self):
        clock = FakeClock()
        throttle = Throttle(0.1, clock=clock)
        throttle.try_acquire()
        for _ in range(10):
            throttle.try_acquire()

        clock.advance(0.15)
        # One send for the new window, nothing replayed from the old one
        assert throttle.try_acquire() is True
        assert throttle.try_acquire() is False

    def test_reset(self):
        throttle = Throttle(0.1, clock=FakeClock())
        throttle.try_acquire()
        throttle.reset()
        assert throttle.try_acquire() is True
