from __future__ import annotations

import asyncio
import logging

import pytest

from tileworld.errors import ConfigurationInvalid
from tileworld.scheduler import MonotonicClock, TickScheduler, VirtualClock


class Recorder:
    def __init__(self, clock: VirtualClock) -> None:
        self.clock = clock
        self.events: list[tuple[str, int]] = []

    def ticker(self, name: str):
        def _callback(tick: int) -> None:
            self.events.append((name, self.clock.now_ms()))

        return _callback


def test_tickers_interleave_by_due_time() -> None:
    clock = VirtualClock()
    scheduler = TickScheduler(clock)
    recorder = Recorder(clock)
    scheduler.register("deer", 750, recorder.ticker("deer"))
    scheduler.register("companion", 200, recorder.ticker("companion"))

    fired = scheduler.run_for(1500)

    assert fired == 9
    assert recorder.events == [
        ("companion", 200),
        ("companion", 400),
        ("companion", 600),
        ("deer", 750),
        ("companion", 800),
        ("companion", 1000),
        ("companion", 1200),
        ("companion", 1400),
        ("deer", 1500),
    ]
    assert clock.now_ms() == 1500


def test_equal_due_times_fire_in_registration_order() -> None:
    clock = VirtualClock()
    scheduler = TickScheduler(clock)
    recorder = Recorder(clock)
    scheduler.register("first", 100, recorder.ticker("first"))
    scheduler.register("second", 100, recorder.ticker("second"))

    scheduler.run_for(100)

    assert recorder.events == [("first", 100), ("second", 100)]


def test_run_due_catches_up_missed_periods() -> None:
    clock = VirtualClock()
    scheduler = TickScheduler(clock)
    ticks: list[int] = []
    scheduler.register("deer", 100, ticks.append)

    clock.advance(350)

    assert scheduler.run_due() == 3
    assert ticks == [1, 2, 3]
    assert scheduler.run_due() == 0


def test_failing_ticker_is_logged_and_others_keep_running(caplog: pytest.LogCaptureFixture) -> None:
    clock = VirtualClock()
    scheduler = TickScheduler(clock)
    ticks: list[int] = []

    def explode(tick: int) -> None:
        raise RuntimeError("deer update exploded")

    failing = scheduler.register("deer", 100, explode)
    scheduler.register("companion", 100, ticks.append)
    with caplog.at_level(logging.ERROR, logger="tileworld.scheduler"):
        scheduler.run_for(300)

    assert ticks == [1, 2, 3]
    assert failing.failures == 3
    assert failing.ticks == 3
    assert sum(record.getMessage() == "ticker_failed" for record in caplog.records) == 3


def test_registration_is_validated() -> None:
    scheduler = TickScheduler(VirtualClock())
    scheduler.register("deer", 750, lambda tick: None)

    with pytest.raises(ConfigurationInvalid):
        scheduler.register("deer", 750, lambda tick: None)
    with pytest.raises(ConfigurationInvalid):
        scheduler.register("companion", 0, lambda tick: None)
    assert scheduler.cancel("deer")
    assert not scheduler.cancel("deer")
    assert scheduler.tickers() == []


def test_run_for_needs_a_virtual_clock() -> None:
    with pytest.raises(TypeError):
        TickScheduler(MonotonicClock()).run_for(100)


def test_virtual_clock_never_goes_backwards() -> None:
    clock = VirtualClock(500)

    with pytest.raises(ValueError):
        clock.advance(-1)
    with pytest.raises(ValueError):
        clock.set(100)


def test_async_polling_loop_fires_and_stops() -> None:
    async def _run() -> tuple[int, bool, bool]:
        scheduler = TickScheduler(MonotonicClock())
        ticks: list[int] = []
        scheduler.register("companion", 10, ticks.append)
        await scheduler.start(poll_interval_ms=5)
        await scheduler.start(poll_interval_ms=5)
        running = scheduler.running
        await asyncio.sleep(0.1)
        await scheduler.stop()
        return len(ticks), running, scheduler.running

    count, running_before, running_after = asyncio.run(_run())
    assert count >= 1
    assert running_before is True
    assert running_after is False


def test_polling_loop_refuses_a_virtual_clock() -> None:
    async def _run() -> bool:
        scheduler = TickScheduler(VirtualClock())
        scheduler.register("companion", 10, lambda tick: None)
        with pytest.raises(ConfigurationInvalid):
            await scheduler.start(poll_interval_ms=5)
        return scheduler.running

    assert asyncio.run(_run()) is False
