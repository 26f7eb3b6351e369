"""In-flight call de-duplication.

SingleFlight collapses concurrent calls that share a key. If two runs
ask the AI client for the same fingerprint at the same time, only the
first reaches the backend; the second awaits the first's result.

Single event loop only. The fingerprint cache covers the sequential
case; this covers the window between cache miss and cache put.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass
class _InFlight(Generic[T]):
    key: str
    event: asyncio.Event = field(default_factory=asyncio.Event)
    result: T | None = None
    error: BaseException | None = None


class SingleFlight(Generic[T]):
    """Deduplicates in-flight async operations by key.

    Usage::

        flight: SingleFlight[StageFindings] = SingleFlight()
        result = await flight.do(fingerprint, call_backend)
    """

    def __init__(self) -> None:
        self._in_flight: dict[str, _InFlight[T]] = {}
        self._lock = asyncio.Lock()

    async def do(
        self,
        key: str,
        operation: Callable[[], Awaitable[T]],
    ) -> T:
        """Run operation, or await the running one with the same key.

        The lock spans lookup-and-register and the final pop, so a
        third caller can never start a duplicate between the owner
        setting its event and leaving the table.
        """
        tracker: _InFlight[T] | None = None
        while tracker is None:
            async with self._lock:
                existing = self._in_flight.get(key)
                if existing is None:
                    tracker = _InFlight(key=key)
                    self._in_flight[key] = tracker
            if existing is None:
                break

            await existing.event.wait()
            # The owner's task was cancelled; that cancellation is not
            # ours to inherit, so take over the call.
            if isinstance(existing.error, asyncio.CancelledError):
                continue
            if existing.error is not None:
                raise existing.error
            return existing.result  # type: ignore[return-value]

        if tracker is None:
            raise RuntimeError("unreachable: tracker unset")
        try:
            result = await operation()
            tracker.result = result
            return result
        except BaseException as exc:
            tracker.error = exc
            raise
        finally:
            tracker.event.set()
            async with self._lock:
                self._in_flight.pop(key, None)

    @property
    def active_keys(self) -> list[str]:
        """Return currently in-flight keys."""
        return list(self._in_flight.keys())
