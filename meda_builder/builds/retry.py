"""Timed retry primitive.

poll_until() calls a probe on a fixed interval until it yields a value, the
deadline passes, or a cancel event is set. Clock and sleep are injectable so
the policy can be tested without waiting.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PollTimeoutError(Exception):
    """Raised when the probe never succeeded before the deadline."""

    def __init__(self, attempts: int, timeout: float, code: str = "timeout") -> None:
        super().__init__(f"gave up after {attempts} attempts ({timeout:g}s)")
        self.attempts = attempts
        self.timeout = timeout
        self.code = code


class PollCancelledError(Exception):
    """Raised when the cancel event is set while polling."""

    def __init__(self, code: str = "cancelled") -> None:
        super().__init__("polling cancelled")
        self.code = code


def poll_until(
    probe: Callable[[], T | None],
    *,
    interval: float,
    timeout: float,
    cancel_event: threading.Event | None = None,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] | None = None,
) -> T:
    """Poll a probe until it returns a value other than None.

    The first probe runs one interval after the call, mirroring a ticker.
    After each unsuccessful probe the deadline is checked, so with a 10s
    interval and a 300s timeout the probe runs exactly 30 times.

    Args:
        probe: Returns a value when ready, None otherwise.
        interval: Seconds between probes.
        timeout: Overall deadline in seconds.
        cancel_event: Aborts the wait promptly when set.
        clock: Monotonic time source.
        sleep: Sleep function; defaults to waiting on cancel_event.

    Returns:
        The first non-None probe result.

    Raises:
        PollTimeoutError: If the deadline passes.
        PollCancelledError: If cancel_event is set.
    """
    start = clock()
    attempts = 0

    while True:
        if _wait(interval, cancel_event, sleep):
            raise PollCancelledError()

        attempts += 1
        result = probe()
        if result is not None:
            return result

        elapsed = clock() - start
        if elapsed >= timeout:
            raise PollTimeoutError(attempts, timeout)
        logger.debug("Probe attempt %d not ready (%.0fs elapsed)", attempts, elapsed)


def _wait(
    interval: float,
    cancel_event: threading.Event | None,
    sleep: Callable[[float], None] | None,
) -> bool:
    """Wait one interval; return True if cancelled."""
    if sleep is not None:
        sleep(interval)
        return cancel_event is not None and cancel_event.is_set()
    if cancel_event is not None:
        return cancel_event.wait(interval)
    time.sleep(interval)
    return False


__all__ = ["PollCancelledError", "PollTimeoutError", "poll_until"]
