"""Exception types and error classification.

Classification drives two decisions:
- which failures the AI client retries versus degrades on
- the ``error_class`` field in structured log lines
"""

from __future__ import annotations

import asyncio
from enum import Enum


class FixwrightError(Exception):
    """Base class for errors raised by fixwright."""


class RateLimitError(FixwrightError):
    """The shared backend quota is exhausted for the current window."""

    def __init__(self, retry_after: float) -> None:
        super().__init__(
            f"rate limit exceeded, retry after {retry_after:.2f}s"
        )
        self.retry_after = retry_after


class BackendError(FixwrightError):
    """The AI backend could not produce a response."""


class ResponseFormatError(FixwrightError):
    """A backend response failed structural validation."""


class RunAlreadyActiveError(FixwrightError):
    """Admission rejected: the project already has an active run."""

    def __init__(self, project_id: str, run_id: str) -> None:
        super().__init__(
            f"project {project_id} already has active run {run_id}"
        )
        self.project_id = project_id
        self.run_id = run_id


class RunNotFoundError(FixwrightError):
    def __init__(self, run_id: str) -> None:
        super().__init__(f"run {run_id} not found")
        self.run_id = run_id


class ErrorClass(Enum):
    TRANSIENT = "transient"  # 429, network errors, retryable
    SERVER = "server"  # 500, 502, 503, retryable
    TIMEOUT = "timeout"  # deadline exceeded, retryable with backoff
    MALFORMED = "malformed"  # unparseable response, degrade, no retry
    CLIENT = "client"  # 400, 401, 403, do NOT retry
    UNKNOWN = "unknown"  # unclassified, do NOT retry


def classify_error(error: BaseException) -> ErrorClass:
    """Classify an error to determine handling strategy.

    Checks our own types and structured attributes first
    (status_code), falls back to string matching for untyped
    exceptions.
    """
    if isinstance(error, RateLimitError):
        return ErrorClass.TRANSIENT
    if isinstance(error, ResponseFormatError):
        return ErrorClass.MALFORMED
    if isinstance(error, (TimeoutError, asyncio.TimeoutError)):
        return ErrorClass.TIMEOUT

    # httpx, openai, litellm
    status_code = getattr(error, "status_code", None)
    if isinstance(status_code, int):
        if status_code == 429:
            return ErrorClass.TRANSIENT
        if 400 <= status_code < 500:
            return ErrorClass.CLIENT
        if 500 <= status_code < 600:
            return ErrorClass.SERVER

    msg = str(error).lower()

    if "timeout" in msg or "timed out" in msg:
        return ErrorClass.TIMEOUT
    if "429" in msg or "rate limit" in msg or "rate_limit" in msg:
        return ErrorClass.TRANSIENT
    if any(code in msg for code in ("500", "502", "503", "504")):
        return ErrorClass.SERVER
    if "econnrefused" in msg or "connection" in msg:
        return ErrorClass.TRANSIENT
    if any(code in msg for code in ("400", "401", "403", "404")):
        return ErrorClass.CLIENT

    return ErrorClass.UNKNOWN
