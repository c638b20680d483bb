"""Clock abstraction — wall time, cancellable timers and awaitable delays.

The controller never touches ``asyncio`` timers directly so tests can
drive cooldowns and pacing with ``ManualClock``.
"""

import asyncio
import time
from typing import Callable, Optional, Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None:
        ...


class Clock(Protocol):
    """Interface the execution layer schedules against."""

    def now(self) -> float:
        """Current time in seconds since the epoch."""
        ...

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        """Run *callback* once after *delay* seconds."""
        ...

    async def sleep(self, delay: float) -> None:
        ...


class AsyncioClock:
    """Production clock backed by the running event loop."""

    def now(self) -> float:
        return time.time()

    def call_later(self, delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        return asyncio.get_running_loop().call_later(delay, callback)

    async def sleep(self, delay: float) -> None:
        await asyncio.sleep(delay)


class _ManualTimer:
    def __init__(self, due: float, callback: Callable[[], None]) -> None:
        self.due = due
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualClock:
    """Deterministic clock: time moves only when ``advance()`` is called.

    ``sleep()`` advances the clock by the requested delay and yields once
    to the event loop, so paced batches finish without real waiting.
    """

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self._now = start
        self._timers: list[_ManualTimer] = []
        self.sleeps: list[float] = []

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[[], None]) -> _ManualTimer:
        timer = _ManualTimer(self._now + delay, callback)
        self._timers.append(timer)
        return timer

    async def sleep(self, delay: float) -> None:
        self.sleeps.append(delay)
        self.advance(delay)
        await asyncio.sleep(0)

    def advance(self, seconds: float) -> None:
        """Move time forward and fire every timer that became due."""
        self._now += seconds
        due = [t for t in self._timers if t.due <= self._now and not t.cancelled]
        self._timers = [t for t in self._timers if t.due > self._now and not t.cancelled]
        for timer in sorted(due, key=lambda t: t.due):
            timer.callback()

    @property
    def pending_timers(self) -> int:
        return sum(1 for t in self._timers if not t.cancelled)

    def next_due(self) -> Optional[float]:
        live = [t.due for t in self._timers if not t.cancelled]
        return min(live) if live else None
