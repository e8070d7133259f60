"""Tests for the polling primitive."""

import threading

import pytest

from meda_builder.builds.retry import PollCancelledError, PollTimeoutError, poll_until


class TestPollUntil:
    """Tests for poll_until."""

    def test_returns_first_value(self, clock):
        """The first non-None result is returned."""
        results = iter([None, None, "ready"])
        value = poll_until(
            lambda: next(results),
            interval=10,
            timeout=300,
            clock=clock,
            sleep=clock.sleep,
        )

        assert value == "ready"
        assert clock.sleeps == [10, 10, 10]

    def test_first_probe_after_one_interval(self, clock):
        """The probe never runs before the first interval elapsed."""
        times = []

        def probe():
            times.append(clock())
            return True

        poll_until(probe, interval=10, timeout=300, clock=clock, sleep=clock.sleep)
        assert times == [10]

    def test_times_out_after_exact_attempts(self, clock):
        """10s interval and 300s timeout give exactly 30 probes."""
        calls = []

        def probe():
            calls.append(clock())
            return None

        with pytest.raises(PollTimeoutError) as exc_info:
            poll_until(probe, interval=10, timeout=300, clock=clock, sleep=clock.sleep)

        assert len(calls) == 30
        assert exc_info.value.attempts == 30
        assert exc_info.value.code == "timeout"

    def test_cancel_event(self, clock):
        """A set cancel event stops polling."""
        event = threading.Event()
        calls = []

        def probe():
            calls.append(1)
            event.set()
            return None

        with pytest.raises(PollCancelledError):
            poll_until(
                probe,
                interval=10,
                timeout=300,
                cancel_event=event,
                clock=clock,
                sleep=clock.sleep,
            )
        assert len(calls) == 1

    def test_event_wait_without_sleep(self):
        """Without a sleep function, a pre-set event cancels immediately."""
        event = threading.Event()
        event.set()
        with pytest.raises(PollCancelledError):
            poll_until(lambda: None, interval=60, timeout=600, cancel_event=event)

    def test_false_is_a_value(self, clock):
        """Only None means not ready."""
        value = poll_until(
            lambda: 0, interval=1, timeout=5, clock=clock, sleep=clock.sleep
        )
        assert value == 0
