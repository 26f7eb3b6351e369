"""Tests for the fixed-window rate limiter."""

from __future__ import annotations

import threading

import pytest

from fixwright.resilience.errors import RateLimitError
from fixwright.resilience.rate_limiter import FixedWindowRateLimiter


class FakeClock:
    def __init__(self, now: float = 100.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestAdmit:
    def test_admits_up_to_quota(self) -> None:
        limiter = FixedWindowRateLimiter(3, 10.0, clock=FakeClock())
        for _ in range(3):
            limiter.admit()
        assert limiter.snapshot().request_count == 3

    def test_n_plus_one_is_rejected_with_retry_after(self) -> None:
        clock = FakeClock()
        limiter = FixedWindowRateLimiter(3, 10.0, clock=clock)
        for _ in range(3):
            limiter.admit()
        clock.now += 4.0

        with pytest.raises(RateLimitError) as exc_info:
            limiter.admit()
        assert exc_info.value.retry_after > 0
        assert exc_info.value.retry_after == pytest.approx(6.0)

    def test_rejection_does_not_consume_quota(self) -> None:
        limiter = FixedWindowRateLimiter(1, 10.0, clock=FakeClock())
        limiter.admit()
        for _ in range(5):
            with pytest.raises(RateLimitError):
                limiter.admit()
        assert limiter.snapshot().request_count == 1

    def test_admits_again_after_window_elapses(self) -> None:
        clock = FakeClock()
        limiter = FixedWindowRateLimiter(2, 10.0, clock=clock)
        limiter.admit()
        limiter.admit()
        with pytest.raises(RateLimitError):
            limiter.admit()

        clock.now += 10.5
        limiter.admit()
        window = limiter.snapshot()
        assert window.request_count == 1
        assert window.window_start == clock.now

    def test_boundary_instant_still_reports_positive_retry(self) -> None:
        """At exactly window_start + window the window has not reset."""
        clock = FakeClock()
        limiter = FixedWindowRateLimiter(1, 10.0, clock=clock)
        limiter.admit()
        clock.now += 10.0
        with pytest.raises(RateLimitError) as exc_info:
            limiter.admit()
        assert exc_info.value.retry_after > 0


class TestConcurrency:
    def test_threads_never_exceed_quota(self) -> None:
        limiter = FixedWindowRateLimiter(50, 60.0)
        admitted: list[int] = []
        rejected: list[int] = []
        lock = threading.Lock()

        def worker() -> None:
            for _ in range(20):
                try:
                    limiter.admit()
                except RateLimitError:
                    with lock:
                        rejected.append(1)
                else:
                    with lock:
                        admitted.append(1)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(admitted) == 50
        assert len(rejected) == 8 * 20 - 50


class TestSnapshot:
    def test_remaining(self) -> None:
        limiter = FixedWindowRateLimiter(5, 10.0, clock=FakeClock())
        limiter.admit()
        limiter.admit()
        window = limiter.snapshot()
        assert window.remaining == 3
        assert window.max_requests == 5
        assert window.window_seconds == 10.0


class TestValidation:
    def test_rejects_zero_quota(self) -> None:
        with pytest.raises(ValueError):
            FixedWindowRateLimiter(0, 10.0)

    def test_rejects_non_positive_window(self) -> None:
        with pytest.raises(ValueError):
            FixedWindowRateLimiter(10, 0)
