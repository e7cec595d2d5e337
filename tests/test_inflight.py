"""
Tests for single-flight request coalescing
"""
import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

import asyncio
import pytest

from inflight import SingleFlight


@pytest.mark.asyncio
async def test_concurrent_calls_share_one_operation():
    flight = SingleFlight()
    calls = 0
    gate = asyncio.Event()

    async def work():
        nonlocal calls
        calls += 1
        await gate.wait()
        return "result"

    tasks = [asyncio.create_task(flight.do("key", work)) for _ in range(5)]
    await asyncio.sleep(0)
    assert flight.in_flight("key")

    gate.set()
    results = await asyncio.gather(*tasks)

    assert results == ["result"] * 5
    assert calls == 1
    assert not flight.in_flight("key")
    assert len(flight) == 0


@pytest.mark.asyncio
async def test_different_keys_run_independently():
    flight = SingleFlight()
    calls = []

    async def work(key):
        calls.append(key)
        await asyncio.sleep(0.01)
        return key

    results = await asyncio.gather(
        flight.do("a", lambda: work("a")),
        flight.do("b", lambda: work("b")),
    )

    assert results == ["a", "b"]
    assert sorted(calls) == ["a", "b"]


@pytest.mark.asyncio
async def test_exception_is_shared_and_key_is_freed():
    flight = SingleFlight()
    calls = 0

    async def failing():
        nonlocal calls
        calls += 1
        await asyncio.sleep(0.01)
        raise RuntimeError("boom")

    results = await asyncio.gather(
        flight.do("k", failing),
        flight.do("k", failing),
        return_exceptions=True,
    )

    assert calls == 1
    assert all(isinstance(r, RuntimeError) for r in results)

    # A later call starts a fresh operation
    async def ok():
        return 42

    assert await flight.do("k", ok) == 42


@pytest.mark.asyncio
async def test_cancelled_waiter_does_not_cancel_shared_work():
    flight = SingleFlight()
    gate = asyncio.Event()

    async def work():
        await gate.wait()
        return "done"

    first = asyncio.create_task(flight.do("k", work))
    second = asyncio.create_task(flight.do("k", work))
    await asyncio.sleep(0)

    first.cancel()
    await asyncio.sleep(0)
    gate.set()

    assert await second == "done"
    with pytest.raises(asyncio.CancelledError):
        await first
