"""Tests for error classification."""

from __future__ import annotations

import asyncio

import pytest

from fixwright.resilience.errors import (
    ErrorClass,
    RateLimitError,
    ResponseFormatError,
    RunAlreadyActiveError,
    RunNotFoundError,
    classify_error,
)


class _StatusError(Exception):
    def __init__(self, status_code: int) -> None:
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (RateLimitError(1.5), ErrorClass.TRANSIENT),
        (ResponseFormatError("bad json"), ErrorClass.MALFORMED),
        (TimeoutError(), ErrorClass.TIMEOUT),
        (asyncio.TimeoutError(), ErrorClass.TIMEOUT),
        (_StatusError(429), ErrorClass.TRANSIENT),
        (_StatusError(401), ErrorClass.CLIENT),
        (_StatusError(503), ErrorClass.SERVER),
        (RuntimeError("request timed out"), ErrorClass.TIMEOUT),
        (RuntimeError("Rate limit reached"), ErrorClass.TRANSIENT),
        (RuntimeError("upstream returned 502"), ErrorClass.SERVER),
        (ConnectionError("connection reset"), ErrorClass.TRANSIENT),
        (RuntimeError("403 forbidden"), ErrorClass.CLIENT),
        (ValueError("something odd"), ErrorClass.UNKNOWN),
    ],
)
def test_classify_error(
    error: BaseException, expected: ErrorClass
) -> None:
    assert classify_error(error) is expected


def test_rate_limit_error_carries_retry_after() -> None:
    err = RateLimitError(2.25)
    assert err.retry_after == 2.25
    assert "2.25" in str(err)


def test_run_errors_carry_ids() -> None:
    active = RunAlreadyActiveError("proj", "run1")
    assert active.project_id == "proj"
    assert active.run_id == "run1"
    assert RunNotFoundError("missing").run_id == "missing"
