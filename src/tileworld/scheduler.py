"""Serial tick scheduler driven by a monotonic or virtual clock."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Protocol

from tileworld.errors import ConfigurationInvalid


class Clock(Protocol):
    """Millisecond time source."""

    def now_ms(self) -> int:
        """Return the current time in whole milliseconds."""


class MonotonicClock:
    def now_ms(self) -> int:
        return int(time.monotonic() * 1000)


class VirtualClock:
    """Clock that only moves when told to; used by tests and ``advance``."""

    def __init__(self, start_ms: int = 0) -> None:
        self._now = start_ms

    def now_ms(self) -> int:
        return self._now

    def advance(self, ms: int) -> int:
        if ms < 0:
            raise ValueError("Cannot move a clock backwards")
        self._now += ms
        return self._now

    def set(self, now_ms: int) -> None:
        if now_ms < self._now:
            raise ValueError("Cannot move a clock backwards")
        self._now = now_ms


@dataclass(slots=True)
class Ticker:
    name: str
    interval_ms: int
    callback: Callable[[int], None]
    next_due_ms: int
    order: int
    ticks: int = 0
    failures: int = 0


class TickScheduler:
    """Fires registered tickers one at a time, in due-time then registration order."""

    def __init__(self, clock: Clock | None = None, *, logger: logging.Logger | None = None) -> None:
        self._clock = clock or MonotonicClock()
        self._tickers: dict[str, Ticker] = {}
        self._registered = 0
        self._task: asyncio.Task[None] | None = None
        self._logger = logger or logging.getLogger("tileworld.scheduler")

    @property
    def clock(self) -> Clock:
        return self._clock

    def register(self, name: str, interval_ms: int, callback: Callable[[int], None]) -> Ticker:
        if interval_ms <= 0:
            raise ConfigurationInvalid(f"Ticker interval must be positive: {name}")
        if name in self._tickers:
            raise ConfigurationInvalid(f"Ticker already registered: {name}")
        ticker = Ticker(
            name=name,
            interval_ms=interval_ms,
            callback=callback,
            next_due_ms=self._clock.now_ms() + interval_ms,
            order=self._registered,
        )
        self._registered += 1
        self._tickers[name] = ticker
        self._logger.info("ticker_registered", extra={"ticker": name, "interval_ms": interval_ms})
        return ticker

    def cancel(self, name: str) -> bool:
        return self._tickers.pop(name, None) is not None

    def tickers(self) -> list[Ticker]:
        return sorted(self._tickers.values(), key=lambda ticker: ticker.order)

    def _next_due(self, now_ms: int) -> Ticker | None:
        due = [ticker for ticker in self._tickers.values() if ticker.next_due_ms <= now_ms]
        if not due:
            return None
        return min(due, key=lambda ticker: (ticker.next_due_ms, ticker.order))

    def _fire(self, ticker: Ticker) -> None:
        ticker.ticks += 1
        ticker.next_due_ms += ticker.interval_ms
        try:
            ticker.callback(ticker.ticks)
        except Exception:  # noqa: BLE001 - a failing ticker must not stop the others.
            ticker.failures += 1
            self._logger.exception("ticker_failed", extra={"ticker": ticker.name, "tick": ticker.ticks})

    def run_due(self) -> int:
        """Fire every ticker due at the current time, catching up missed periods."""
        now = self._clock.now_ms()
        fired = 0
        while (ticker := self._next_due(now)) is not None:
            self._fire(ticker)
            fired += 1
        return fired

    def run_for(self, ms: int) -> int:
        """Advance a :class:`VirtualClock` by ``ms``, stopping at each due time in turn."""
        if not isinstance(self._clock, VirtualClock):
            raise TypeError("run_for requires a VirtualClock")
        target = self._clock.now_ms() + ms
        fired = 0
        while self._tickers:
            upcoming = min(ticker.next_due_ms for ticker in self._tickers.values())
            if upcoming > target:
                break
            self._clock.set(max(upcoming, self._clock.now_ms()))
            fired += self.run_due()
        self._clock.set(target)
        return fired

    async def start(self, poll_interval_ms: int = 50) -> None:
        """Start the polling loop once for this scheduler.

        A :class:`VirtualClock` never moves on its own; drive it with :meth:`run_for` instead.
        """
        if isinstance(self._clock, VirtualClock):
            raise ConfigurationInvalid("The polling loop needs a real-time clock; use run_for with a VirtualClock")
        if self._task and not self._task.done():
            return

        self._task = asyncio.create_task(self._poll_loop(poll_interval_ms), name="tick-scheduler")
        self._logger.info("scheduler_started", extra={"tickers": [ticker.name for ticker in self.tickers()]})

    async def stop(self) -> None:
        """Stop the polling loop; a callback already running completes first."""
        if not self._task:
            return

        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        finally:
            self._task = None

        self._logger.info("scheduler_stopped")

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _poll_loop(self, poll_interval_ms: int) -> None:
        while True:
            self.run_due()
            await asyncio.sleep(poll_interval_ms / 1000)
