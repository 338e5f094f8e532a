import asyncio
import logging

import pytest

from shuttle_dispatch.scheduler import AsyncioScheduler, SystemClock


def test_system_clock_is_utc():
    now = SystemClock().now()
    assert now.tzinfo is not None
    assert now.utcoffset().total_seconds() == 0


@pytest.mark.asyncio
async def test_every_fires_until_cancelled():
    scheduler = AsyncioScheduler()
    fired = []

    async def tick():
        fired.append(1)

    handle = scheduler.every(0.01, tick, name="tick")
    await asyncio.sleep(0.1)
    handle.cancel()
    count = len(fired)
    await asyncio.sleep(0.05)

    assert count >= 3
    assert len(fired) == count
    assert handle.done()


@pytest.mark.asyncio
async def test_call_later_fires_once():
    scheduler = AsyncioScheduler()
    fired = []

    async def once():
        fired.append(1)

    handle = scheduler.call_later(0.01, once, name="once")
    await asyncio.sleep(0.08)

    assert fired == [1]
    assert handle.done()


@pytest.mark.asyncio
async def test_call_later_cancelled_before_due_never_fires():
    scheduler = AsyncioScheduler()
    fired = []

    async def once():
        fired.append(1)

    handle = scheduler.call_later(0.05, once, name="once")
    handle.cancel()
    await asyncio.sleep(0.1)

    assert fired == []
    assert handle.done()


@pytest.mark.asyncio
async def test_failing_callback_keeps_timer_alive(caplog):
    caplog.set_level(logging.ERROR, logger="shuttle-scheduler")
    scheduler = AsyncioScheduler()
    calls = []

    async def boom():
        calls.append(1)
        raise RuntimeError("tick failed")

    handle = scheduler.every(0.01, boom, name="boom")
    await asyncio.sleep(0.08)
    handle.cancel()

    assert len(calls) >= 2
    assert "timer callback failed name=boom" in caplog.text


@pytest.mark.asyncio
async def test_cancel_lets_running_callback_finish():
    scheduler = AsyncioScheduler()
    entered = asyncio.Event()
    release = asyncio.Event()
    calls = []
    finished = []

    async def slow():
        calls.append(1)
        entered.set()
        await release.wait()
        finished.append(1)

    handle = scheduler.every(0.01, slow, name="slow")
    await asyncio.wait_for(entered.wait(), timeout=1)

    handle.cancel()
    assert handle.running
    assert not handle.done()

    release.set()
    await asyncio.sleep(0.05)

    assert finished == [1]
    assert calls == [1]
    assert handle.done()
