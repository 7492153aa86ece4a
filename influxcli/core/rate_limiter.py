"""
Points-per-second throttling for the importer.

Sliding window over the last second: every send is recorded with its point
count, entries older than the window are dropped, and a send that would push
the window total over the limit waits until enough of the oldest entries
expire. The clock and sleep function are injectable so tests can run on
simulated time.
"""
from __future__ import annotations
from collections import deque
from typing import Callable, Deque, Tuple
import logging
import time

logger = logging.getLogger(__name__)


class SlidingWindowLimiter:
    """Blocks until ``count`` more points fit in the current window."""

    def __init__(self, limit: int, window_seconds: float = 1.0,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], None] = time.sleep):
        """
        Args:
            limit: Points allowed per window; 0 disables throttling
            window_seconds: Window length in seconds
            clock: Monotonic "now" source
            sleep: Function used to suspend the caller
        """
        if limit < 0:
            raise ValueError(f"limit must be >= 0, got {limit}")
        self.limit = limit
        self.window_seconds = window_seconds
        self.clock = clock
        self.sleep = sleep
        self._sent: Deque[Tuple[float, int]] = deque()
        self._in_window = 0
        self.total_wait = 0.0

    @property
    def enabled(self) -> bool:
        return self.limit > 0

    def _expire(self, now: float) -> None:
        while self._sent and self._sent[0][0] + self.window_seconds <= now:
            _, count = self._sent.popleft()
            self._in_window -= count

    def in_window(self) -> int:
        """Points recorded in the window ending now."""
        self._expire(self.clock())
        return self._in_window

    def acquire(self, count: int) -> float:
        """Record ``count`` points, sleeping first if needed; returns seconds waited."""
        if not self.enabled or count <= 0:
            return 0.0
        if count > self.limit:
            raise ValueError(f"batch of {count} points exceeds the limit of {self.limit}/s")
        waited = 0.0
        now = self.clock()
        self._expire(now)
        while self._in_window + count > self.limit:
            delay = self._sent[0][0] + self.window_seconds - now
            if delay > 0:
                logger.debug("throttling: %d points in window, waiting %.3fs", self._in_window, delay)
                self.sleep(delay)
                waited += delay
            now = self.clock()
            self._expire(now)
        self._sent.append((now, count))
        self._in_window += count
        self.total_wait += waited
        return waited
