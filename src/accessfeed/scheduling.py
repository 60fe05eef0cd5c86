"""Delayed-task scheduling with an injectable clock.

Retry timers are modelled as explicit delayed tasks so that backoff
timing is deterministic under test:

- **AsyncioScheduler** (default): one asyncio task per timer, real time
- **ManualScheduler**: virtual time advanced explicitly by the caller

Example:
    ```python
    scheduler = ManualScheduler()
    scheduler.call_later(1.0, retry_delivery)
    await scheduler.advance(1.0)  # retry_delivery() has now run
    ```
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta

logger = logging.getLogger(__name__)

Callback = Callable[[], Awaitable[None]]


class Clock(ABC):
    """Source of the current time."""

    @abstractmethod
    def now(self) -> datetime:
        """Current time as a timezone-aware UTC datetime."""
        ...


class SystemClock(Clock):
    """Wall-clock time."""

    def now(self) -> datetime:
        return datetime.now(UTC)


class ManualClock(Clock):
    """Clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self._now = start or datetime(2024, 1, 1, tzinfo=UTC)

    def now(self) -> datetime:
        return self._now

    def advance(self, seconds: float) -> datetime:
        """Move the clock forward and return the new time."""
        if seconds < 0:
            raise ValueError("Cannot move a clock backwards")
        self._now += timedelta(seconds=seconds)
        return self._now

    def set(self, when: datetime) -> None:
        """Jump to an absolute time not earlier than the current one."""
        if when < self._now:
            raise ValueError("Cannot move a clock backwards")
        self._now = when


class Scheduler(ABC):
    """Runs callbacks after a delay.

    Callbacks are coroutine functions taking no arguments. A callback that
    raises is logged and does not affect other timers.
    """

    @property
    @abstractmethod
    def clock(self) -> Clock:
        """Clock used to compute due times."""
        ...

    @abstractmethod
    def call_later(self, delay_seconds: float, callback: Callback) -> None:
        """Schedule ``callback`` to run after ``delay_seconds``."""
        ...

    @property
    @abstractmethod
    def pending_count(self) -> int:
        """Number of timers that have not fired yet."""
        ...

    @abstractmethod
    async def aclose(self) -> None:
        """Cancel all pending timers."""
        ...


async def _run_callback(callback: Callback) -> None:
    try:
        await callback()
    except asyncio.CancelledError:
        raise
    except Exception:
        logger.exception("Scheduled callback failed")


class AsyncioScheduler(Scheduler):
    """Real-time scheduler backed by one asyncio task per timer."""

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or SystemClock()
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def clock(self) -> Clock:
        return self._clock

    def call_later(self, delay_seconds: float, callback: Callback) -> None:
        async def _fire() -> None:
            await asyncio.sleep(max(0.0, delay_seconds))
            await _run_callback(callback)

        task = asyncio.create_task(_fire())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    @property
    def pending_count(self) -> int:
        return sum(1 for t in self._tasks if not t.done())

    async def aclose(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()


class ManualScheduler(Scheduler):
    """Deterministic scheduler driven by a ManualClock.

    Nothing fires until ``advance`` or ``run_all`` is awaited. Every
    requested delay is recorded in ``delays`` for assertions.
    """

    def __init__(self, clock: ManualClock | None = None) -> None:
        self._clock = clock or ManualClock()
        self._queue: list[tuple[datetime, int, Callback]] = []
        self._seq = itertools.count()
        self.delays: list[float] = []

    @property
    def clock(self) -> ManualClock:
        return self._clock

    def call_later(self, delay_seconds: float, callback: Callback) -> None:
        self.delays.append(delay_seconds)
        due = self._clock.now() + timedelta(seconds=max(0.0, delay_seconds))
        heapq.heappush(self._queue, (due, next(self._seq), callback))

    @property
    def pending_count(self) -> int:
        return len(self._queue)

    def next_due(self) -> datetime | None:
        """Due time of the earliest pending timer."""
        return self._queue[0][0] if self._queue else None

    async def advance(self, seconds: float) -> int:
        """Advance virtual time, running every timer that falls due.

        Timers scheduled by callbacks during the advance also run if they
        fall due before the target time. Returns the number of callbacks run.
        """
        target = self._clock.now() + timedelta(seconds=seconds)
        fired = 0
        while self._queue and self._queue[0][0] <= target:
            due, _, callback = heapq.heappop(self._queue)
            self._clock.set(max(due, self._clock.now()))
            await _run_callback(callback)
            fired += 1
        self._clock.set(target)
        return fired

    async def run_all(self, max_callbacks: int = 1000) -> int:
        """Run timers in due order until none remain."""
        fired = 0
        while self._queue:
            if fired >= max_callbacks:
                raise RuntimeError(f"Scheduler still busy after {max_callbacks} callbacks")
            due, _, callback = heapq.heappop(self._queue)
            self._clock.set(max(due, self._clock.now()))
            await _run_callback(callback)
            fired += 1
        return fired

    async def aclose(self) -> None:
        self._queue.clear()
