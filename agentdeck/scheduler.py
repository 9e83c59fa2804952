"""Interval polling with manual refresh and staleness tracking."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Generic, List, Optional, TypeVar

from .constants import DEFAULT_POLL_INTERVAL

logger = logging.getLogger(__name__)

T = TypeVar("T")

Listener = Callable[[Any], Any]


class PollingScheduler(Generic[T]):
    """Runs ``poll`` every ``interval`` seconds on the current event loop.

    Every poll is tagged with a monotonically increasing sequence number. A
    result is applied only if no newer poll has been applied already, so a
    slow tick never overwrites a later manual refresh. Ticks are skipped
    while a poll is still in flight; :meth:`refresh_now` always runs.
    """

    def __init__(
        self,
        poll: Callable[[], Awaitable[T]],
        interval: float = DEFAULT_POLL_INTERVAL,
        stale_after: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._poll = poll
        self.interval = interval
        self.stale_after = stale_after if stale_after is not None else interval * 2
        self._clock = clock
        self._task: Optional[asyncio.Task] = None
        self._sequence = 0
        self._applied_sequence = 0
        self._in_flight = 0
        self._listeners: List[Listener] = []
        self.latest: Optional[T] = None
        self.last_updated_at: Optional[float] = None
        self.last_error: Optional[BaseException] = None

    # ------------------------------------------------------------------
    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def sequence(self) -> int:
        return self._sequence

    @property
    def in_flight(self) -> bool:
        return self._in_flight > 0

    @property
    def is_stale(self) -> bool:
        if self.last_updated_at is None:
            return True
        return self._clock() - self.last_updated_at > self.stale_after

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    # ------------------------------------------------------------------
    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run())
        logger.debug(f"Polling scheduler started with interval {self.interval}s")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.debug("Polling scheduler stopped")

    async def __aenter__(self) -> "PollingScheduler[T]":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    async def _run(self) -> None:
        while True:
            await self.tick()
            await asyncio.sleep(self.interval)

    async def tick(self) -> bool:
        """Run one scheduled poll unless one is already in flight."""
        if self.in_flight:
            logger.debug("Skipping poll tick: previous poll still in flight")
            return False
        await self._execute()
        return True

    async def refresh_now(self) -> Optional[T]:
        """Poll immediately, superseding any poll started earlier."""
        await self._execute()
        return self.latest

    async def _execute(self) -> None:
        self._sequence += 1
        sequence = self._sequence
        self._in_flight += 1
        try:
            result = await self._poll()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            if sequence > self._applied_sequence:
                self.last_error = exc
            logger.warning(f"Poll #{sequence} failed: {exc}")
            return
        finally:
            self._in_flight -= 1

        if sequence < self._applied_sequence:
            logger.debug(
                f"Dropping result of poll #{sequence}; #{self._applied_sequence} already applied"
            )
            return
        self._applied_sequence = sequence
        self.latest = result
        self.last_updated_at = self._clock()
        self.last_error = None
        await self._notify(result)

    async def _notify(self, result: T) -> None:
        for listener in list(self._listeners):
            try:
                outcome = listener(result)
                if asyncio.iscoroutine(outcome):
                    await outcome
            except Exception as exc:
                logger.error(f"Polling listener {listener!r} failed: {exc}")
