"""Tests for SingleFlight in-flight de-duplication."""

from __future__ import annotations

import asyncio

import pytest

from fixwright.resilience.singleflight import SingleFlight


async def test_concurrent_calls_share_one_execution() -> None:
    flight: SingleFlight[int] = SingleFlight()
    calls = 0
    release = asyncio.Event()

    async def op() -> int:
        nonlocal calls
        calls += 1
        await release.wait()
        return 42

    tasks = [
        asyncio.create_task(flight.do("k", op)) for _ in range(5)
    ]
    await asyncio.sleep(0)
    release.set()
    results = await asyncio.gather(*tasks)

    assert results == [42] * 5
    assert calls == 1
    assert flight.active_keys == []


async def test_different_keys_run_independently() -> None:
    flight: SingleFlight[str] = SingleFlight()
    seen: list[str] = []

    async def make(key: str) -> str:
        seen.append(key)
        await asyncio.sleep(0)
        return key

    results = await asyncio.gather(
        flight.do("a", lambda: make("a")),
        flight.do("b", lambda: make("b")),
    )
    assert results == ["a", "b"]
    assert sorted(seen) == ["a", "b"]


async def test_error_propagates_to_all_waiters() -> None:
    flight: SingleFlight[int] = SingleFlight()
    release = asyncio.Event()

    async def op() -> int:
        await release.wait()
        raise RuntimeError("boom")

    tasks = [
        asyncio.create_task(flight.do("k", op)) for _ in range(3)
    ]
    await asyncio.sleep(0)
    release.set()
    results = await asyncio.gather(*tasks, return_exceptions=True)
    assert all(isinstance(r, RuntimeError) for r in results)


async def test_waiter_takes_over_when_owner_is_cancelled() -> None:
    flight: SingleFlight[int] = SingleFlight()
    calls = 0
    started = asyncio.Event()

    async def slow() -> int:
        nonlocal calls
        calls += 1
        started.set()
        await asyncio.sleep(10)
        return 1

    async def fast() -> int:
        nonlocal calls
        calls += 1
        return 2

    owner = asyncio.create_task(flight.do("k", slow))
    await started.wait()
    waiter = asyncio.create_task(flight.do("k", fast))
    await asyncio.sleep(0)

    owner.cancel()
    with pytest.raises(asyncio.CancelledError):
        await owner

    assert await waiter == 2
    assert calls == 2


async def test_sequential_calls_run_again() -> None:
    flight: SingleFlight[int] = SingleFlight()
    calls = 0

    async def op() -> int:
        nonlocal calls
        calls += 1
        return calls

    assert await flight.do("k", op) == 1
    assert await flight.do("k", op) == 2
