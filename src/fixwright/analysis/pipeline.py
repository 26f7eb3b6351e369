"""Bounded per-item fan-out with error isolation."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Generic, TypeVar

from fixwright.constants import StageOutcome

logger = logging.getLogger(__name__)

TItem = TypeVar("TItem")
TOutput = TypeVar("TOutput")


@dataclass
class StageResult(Generic[TOutput]):
    """Outcome of one unit of work inside a stage."""

    name: str
    output: TOutput | None
    duration_ms: float
    status: StageOutcome
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == StageOutcome.COMPLETED


@dataclass
class FanOut(Generic[TItem, TOutput]):
    """Apply one async function to many items, ``max_concurrency`` at a time.

    An exception from one item becomes a FAILED result for that item
    only; siblings keep running. Items not yet started when
    ``should_stop`` turns true are left SKIPPED. Results come back in
    input order regardless of completion order. Cancellation of the
    calling task propagates to every running item.
    """

    name: str
    execute: Callable[[TItem], Awaitable[TOutput]]
    max_concurrency: int
    label: Callable[[TItem], str] = str
    should_stop: Callable[[], bool] | None = None
    on_result: Callable[[int, StageResult[TOutput]], None] | None = None

    async def run(
        self, items: Sequence[TItem]
    ) -> list[StageResult[TOutput]]:
        if not items:
            return []

        results: list[StageResult[TOutput]] = [
            StageResult(
                name=self.label(item),
                output=None,
                duration_ms=0.0,
                status=StageOutcome.SKIPPED,
            )
            for item in items
        ]
        semaphore = asyncio.Semaphore(max(self.max_concurrency, 1))

        async def _run_one(idx: int, item: TItem) -> None:
            async with semaphore:
                if self.should_stop is not None and self.should_stop():
                    return
                start = time.monotonic()
                try:
                    output = await self.execute(item)
                    result = StageResult(
                        name=self.label(item),
                        output=output,
                        duration_ms=(time.monotonic() - start) * 1000,
                        status=StageOutcome.COMPLETED,
                    )
                except Exception as exc:
                    logger.warning(
                        "event=item_failed stage=%s item=%s error=%s",
                        self.name,
                        self.label(item),
                        exc,
                    )
                    result = StageResult(
                        name=self.label(item),
                        output=None,
                        duration_ms=(time.monotonic() - start) * 1000,
                        status=StageOutcome.FAILED,
                        error=str(exc) or type(exc).__name__,
                    )
                results[idx] = result
                if self.on_result is not None:
                    self.on_result(idx, result)

        await asyncio.gather(
            *(_run_one(i, item) for i, item in enumerate(items))
        )
        return results
