"""Fixed-window admission control for outbound AI backend calls.

One limiter instance is shared by every run in the process: the quota
belongs to the upstream backend, not to a run. ``admit()`` never blocks;
callers decide how to wait (see ``AIAnalysisClient``).
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from fixwright.resilience.errors import RateLimitError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateWindow:
    """Point-in-time view of the limiter's window."""

    window_start: float
    request_count: int
    max_requests: int
    window_seconds: float

    @property
    def remaining(self) -> int:
        return max(0, self.max_requests - self.request_count)


class FixedWindowRateLimiter:
    """Counter reset whenever ``now - window_start > window_seconds``.

    The reset check and the increment run under one lock, so a burst
    landing on the window boundary is counted exactly once. A
    ``threading.Lock`` (not ``asyncio.Lock``) keeps the limiter usable
    from worker threads and from several event loops.
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self._max_requests = max_requests
        self._window_seconds = window_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._window_start = clock()
        self._count = 0

    def admit(self) -> None:
        """Count one request, or raise ``RateLimitError`` if over quota."""
        with self._lock:
            now = self._clock()
            if now - self._window_start > self._window_seconds:
                self._window_start = now
                self._count = 0
            if self._count >= self._max_requests:
                retry_after = max(
                    self._window_start + self._window_seconds - now,
                    0.0,
                )
                # Boundary instant: the window closes on the next tick
                retry_after = retry_after or 1e-3
                logger.debug(
                    "event=rate_limited count=%d max=%d retry_after=%.3f",
                    self._count,
                    self._max_requests,
                    retry_after,
                )
                raise RateLimitError(retry_after)
            self._count += 1

    def snapshot(self) -> RateWindow:
        with self._lock:
            return RateWindow(
                window_start=self._window_start,
                request_count=self._count,
                max_requests=self._max_requests,
                window_seconds=self._window_seconds,
            )
