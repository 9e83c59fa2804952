"""Polling scheduler tests."""

import asyncio

import pytest

from agentdeck.scheduler import PollingScheduler


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.mark.asyncio
async def test_superseded_poll_result_is_dropped():
    gate = asyncio.Event()
    results = iter(["slow", "fast"])

    async def poll():
        value = next(results)
        if value == "slow":
            await gate.wait()
        return value

    scheduler = PollingScheduler(poll, interval=60)
    slow = asyncio.create_task(scheduler.tick())
    await asyncio.sleep(0)
    assert scheduler.in_flight

    assert await scheduler.refresh_now() == "fast"
    gate.set()
    await slow

    assert scheduler.latest == "fast"
    assert scheduler.sequence == 2


@pytest.mark.asyncio
async def test_tick_is_skipped_while_poll_in_flight():
    gate = asyncio.Event()
    calls = []

    async def poll():
        calls.append(1)
        await gate.wait()
        return len(calls)

    scheduler = PollingScheduler(poll, interval=60)
    first = asyncio.create_task(scheduler.tick())
    await asyncio.sleep(0)

    assert await scheduler.tick() is False
    assert len(calls) == 1

    gate.set()
    assert await first is True
    assert scheduler.latest == 1


@pytest.mark.asyncio
async def test_staleness_follows_last_update():
    clock = FakeClock()

    async def poll():
        return "ok"

    scheduler = PollingScheduler(poll, interval=30, stale_after=45, clock=clock)
    assert scheduler.is_stale

    await scheduler.refresh_now()
    assert not scheduler.is_stale
    assert scheduler.last_updated_at == 1000.0

    clock.now += 46
    assert scheduler.is_stale


@pytest.mark.asyncio
async def test_failed_poll_keeps_previous_result():
    outcomes = ["first", RuntimeError("relay down"), "third"]

    async def poll():
        outcome = outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    scheduler = PollingScheduler(poll, interval=30)
    await scheduler.refresh_now()
    await scheduler.refresh_now()

    assert scheduler.latest == "first"
    assert isinstance(scheduler.last_error, RuntimeError)

    await scheduler.refresh_now()
    assert scheduler.latest == "third"
    assert scheduler.last_error is None


@pytest.mark.asyncio
async def test_listeners_receive_applied_results():
    seen_sync, seen_async = [], []

    async def poll():
        return {"total_tokens": 210}

    async def async_listener(result):
        seen_async.append(result)

    scheduler = PollingScheduler(poll, interval=30)
    scheduler.add_listener(seen_sync.append)
    scheduler.add_listener(async_listener)
    await scheduler.refresh_now()

    scheduler.remove_listener(seen_sync.append)
    await scheduler.refresh_now()

    assert len(seen_sync) == 1
    assert len(seen_async) == 2


@pytest.mark.asyncio
async def test_start_and_stop_ticking_task():
    calls = []

    async def poll():
        calls.append(1)
        return len(calls)

    async with PollingScheduler(poll, interval=0.01) as scheduler:
        assert scheduler.running
        await asyncio.sleep(0.05)

    assert not scheduler.running
    assert len(calls) >= 2


def test_interval_must_be_positive():
    async def poll():
        return None

    with pytest.raises(ValueError):
        PollingScheduler(poll, interval=0)
