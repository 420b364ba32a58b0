"""Tests for the bounded executor."""

import asyncio

import pytest

from streamcrew.orchestration.bounded_executor import BoundedExecutor


def test_concurrency_must_be_positive():
    with pytest.raises(ValueError):
        BoundedExecutor("bad", 0)


@pytest.mark.asyncio
async def test_runs_at_most_concurrency_units():
    executor = BoundedExecutor("test", 2)
    release = asyncio.Event()
    active = 0
    peak = 0

    async def work():
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await release.wait()
        active -= 1

    futures = [executor.submit(work) for _ in range(5)]
    await asyncio.sleep(0)
    assert executor.running == 2
    assert executor.queued == 3

    release.set()
    results = await asyncio.gather(*futures)
    assert results == [True] * 5
    assert peak == 2


@pytest.mark.asyncio
async def test_units_start_in_fifo_order():
    executor = BoundedExecutor("fifo", 1)
    order = []

    def make(i):
        async def work():
            order.append(i)
        return work

    await asyncio.gather(*(executor.submit(make(i)) for i in range(4)))
    assert order == [0, 1, 2, 3]


@pytest.mark.asyncio
async def test_failure_is_isolated():
    executor = BoundedExecutor("failing", 1)
    ran = []

    async def boom():
        raise RuntimeError("boom")

    async def fine():
        ran.append(True)

    results = await asyncio.gather(executor.submit(boom), executor.submit(fine))
    assert results == [False, True]
    assert ran == [True]
    assert executor.running == 0


@pytest.mark.asyncio
async def test_clear_drops_queued_units():
    executor = BoundedExecutor("clear", 1)
    release = asyncio.Event()

    async def blocker():
        await release.wait()

    first = executor.submit(blocker)
    second = executor.submit(blocker)
    await asyncio.sleep(0)

    assert executor.clear() == 1
    assert await second is False

    release.set()
    assert await first is True


@pytest.mark.asyncio
async def test_pause_and_resume():
    executor = BoundedExecutor("pause", 1)
    executor.pause()
    ran = []

    async def work():
        ran.append(True)

    future = executor.submit(work)
    await asyncio.sleep(0)
    assert ran == []
    assert executor.queued == 1

    executor.resume()
    assert await future is True
    assert ran == [True]


@pytest.mark.asyncio
async def test_wait_running_waits_for_active_units():
    executor = BoundedExecutor("wait", 2)
    done = []

    async def work():
        await asyncio.sleep(0.01)
        done.append(True)

    executor.submit(work)
    executor.submit(work)
    await asyncio.sleep(0)
    await executor.wait_running()
    assert done == [True, True]
