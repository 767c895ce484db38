"""Implementations of the Throttle port.

Controls how many requests may start within a trailing time window so the
client stays under QuickBase's limit of 100 requests per 10 seconds per user
token, instead of discovering the limit through 429 responses.
"""

import collections
import logging
import threading
import time
from typing import Callable, Deque, Optional

from qbclient.domain.interfaces.throttle import Throttle
from qbclient.domain.models.errors import RequestCancelledError
from qbclient.infrastructure.resilience.waiting import Sleeper, is_cancelled, wait_or_cancel

logger = logging.getLogger(__name__)

DEFAULT_REQUESTS_PER_WINDOW = 100
DEFAULT_WINDOW_SECONDS = 10.0


class SlidingWindowThrottle(Throttle):
    """Proactive sliding window throttle.

    Tracks admission timestamps and blocks new requests while the window is
    full, waking when the oldest admission slides out.
    """

    def __init__(
        self,
        requests_per_window: int = DEFAULT_REQUESTS_PER_WINDOW,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Sleeper = wait_or_cancel,
    ):
        """Initializes the throttle.

        Args:
            requests_per_window: Maximum admissions per window. Values <= 0
                fall back to DEFAULT_REQUESTS_PER_WINDOW.
            window_seconds: Width of the trailing window in seconds.
            clock: Monotonic time source.
            sleep: Interruptible sleep used while the window is full.
        """
        if requests_per_window <= 0:
            logger.warning(
                f"Invalid throttle limit {requests_per_window}; using default of {DEFAULT_REQUESTS_PER_WINDOW}."
            )
            requests_per_window = DEFAULT_REQUESTS_PER_WINDOW
        if window_seconds <= 0:
            raise ValueError("Throttle window must be positive.")

        self.max_requests = requests_per_window
        self.window = window_seconds
        self.timestamps: Deque[float] = collections.deque()
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        logger.info(f"SlidingWindowThrottle initialized: {self.max_requests} requests / {self.window:g} seconds.")

    def _prune_timestamps(self, now: float) -> float:
        """Removes timestamps that have left the window and returns the cutoff. Caller holds the lock."""
        cutoff = now - self.window
        while self.timestamps and self.timestamps[0] <= cutoff:
            self.timestamps.popleft()
        return cutoff

    def acquire(self, cancel: Optional[threading.Event] = None) -> None:
        """Waits until a request slot is available and claims it."""
        while True:
            if is_cancelled(cancel):
                raise RequestCancelledError("Throttle wait cancelled")

            with self._lock:
                now = self._clock()
                cutoff = self._prune_timestamps(now)
                if len(self.timestamps) < self.max_requests:
                    self.timestamps.append(now)
                    return
                wait_time = self.timestamps[0] - cutoff

            if wait_time > 0:
                logger.debug(f"Throttle window full. Waiting {wait_time:.2f} seconds.")
                if self._sleep(wait_time, cancel):
                    raise RequestCancelledError("Throttle wait cancelled")
            # Loop again: another waiter may have claimed the freed slot.

    def window_count(self) -> int:
        with self._lock:
            self._prune_timestamps(self._clock())
            return len(self.timestamps)

    def remaining(self) -> int:
        return max(0, self.max_requests - self.window_count())

    def reset(self) -> None:
        with self._lock:
            self.timestamps.clear()


class NoOpThrottle(Throttle):
    """Admits every request immediately.

    The default: the executor still handles 429 responses by retrying.
    """

    UNLIMITED = 1_000_000

    def acquire(self, cancel: Optional[threading.Event] = None) -> None:
        return None

    def window_count(self) -> int:
        return 0

    def remaining(self) -> int:
        return self.UNLIMITED

    def reset(self) -> None:
        pass
