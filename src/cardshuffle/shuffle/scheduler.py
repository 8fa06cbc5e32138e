"""Repeating timers for the shuffle engine.

``AsyncioScheduler`` drives real shuffles on the running event loop;
``ManualScheduler`` keeps a virtual millisecond clock that only moves
when ``advance`` is called, for headless runs and tests.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Protocol

logger = logging.getLogger(__name__)

TickCallback = Callable[[], None]


class TimerHandle(Protocol):
    """Handle of a repeating timer."""

    @property
    def active(self) -> bool: ...

    @property
    def interval_ms(self) -> int: ...

    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Creates repeating timers."""

    def call_every(self, interval_ms: int, callback: TickCallback) -> TimerHandle: ...


class _AsyncioTimer:
    """Fixed-rate repeating timer built on ``loop.call_at``."""

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        interval_ms: int,
        callback: TickCallback,
    ) -> None:
        self._loop = loop
        self._interval_ms = interval_ms
        self._callback = callback
        self._cancelled = False
        self._deadline = loop.time()
        self._handle: asyncio.TimerHandle | None = None
        self._arm()

    @property
    def active(self) -> bool:
        return not self._cancelled

    @property
    def interval_ms(self) -> int:
        return self._interval_ms

    def _arm(self) -> None:
        self._deadline += self._interval_ms / 1000
        # Never schedule in the past after a slow callback
        self._deadline = max(self._deadline, self._loop.time())
        self._handle = self._loop.call_at(self._deadline, self._fire)

    def _fire(self) -> None:
        if self._cancelled:
            return
        self._callback()
        # The callback may have cancelled this timer (auto-stop)
        if not self._cancelled:
            self._arm()

    def cancel(self) -> None:
        self._cancelled = True
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None


class AsyncioScheduler:
    """Scheduler backed by an asyncio event loop.

    Args:
        loop: Event loop to schedule on; defaults to the running loop.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    def call_every(self, interval_ms: int, callback: TickCallback) -> TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return _AsyncioTimer(loop, interval_ms, callback)


class _ManualTimer:
    def __init__(
        self,
        scheduler: ManualScheduler,
        interval_ms: int,
        callback: TickCallback,
    ) -> None:
        self._scheduler = scheduler
        self._interval_ms = interval_ms
        self.callback = callback
        self.next_due = scheduler.now_ms + interval_ms
        self._cancelled = False

    @property
    def active(self) -> bool:
        return not self._cancelled

    @property
    def interval_ms(self) -> int:
        return self._interval_ms

    def cancel(self) -> None:
        if not self._cancelled:
            self._cancelled = True
            self._scheduler._timers.remove(self)


class ManualScheduler:
    """Deterministic scheduler over a virtual clock."""

    def __init__(self) -> None:
        self.now_ms = 0
        self.fired = 0
        self._timers: list[_ManualTimer] = []

    @property
    def active_timers(self) -> int:
        return len(self._timers)

    def call_every(self, interval_ms: int, callback: TickCallback) -> TimerHandle:
        if interval_ms <= 0:
            raise ValueError(f"interval_ms must be positive, got {interval_ms}")
        timer = _ManualTimer(self, interval_ms, callback)
        self._timers.append(timer)
        return timer

    def advance(self, ms: int) -> int:
        """Move the clock forward by ``ms``, firing due timers in order.

        Returns:
            Number of callbacks fired.
        """
        target = self.now_ms + ms
        fired = 0
        while self._timers:
            timer = min(self._timers, key=lambda t: t.next_due)
            if timer.next_due > target:
                break
            self.now_ms = timer.next_due
            timer.next_due += timer.interval_ms
            timer.callback()
            fired += 1
        self.now_ms = target
        self.fired += fired
        return fired
