"""Timer abstraction for the sync tasks.

The sync tasks never sleep or read the wall clock directly. They ask a
``Scheduler`` for the time and for delayed callbacks, so tests can drive
them with ``ManualScheduler`` instead of waiting.
"""

import asyncio
import heapq
import inspect
import itertools
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

Callback = Callable[[], Any]


class ScheduledCall(ABC):
    """Handle to a pending callback."""

    @abstractmethod
    def cancel(self) -> None:
        """Prevent the callback from running. Idempotent."""

    @property
    @abstractmethod
    def cancelled(self) -> bool:
        """True once ``cancel`` was called."""


class Scheduler(ABC):
    """Clock plus delayed-callback source.

    Callbacks may be plain functions or coroutine functions.
    """

    @abstractmethod
    def now(self) -> float:
        """Monotonic time in seconds."""

    @abstractmethod
    def call_later(self, delay: float, callback: Callback) -> ScheduledCall:
        """Run ``callback`` after ``delay`` seconds."""


async def _invoke(callback: Callback) -> None:
    try:
        result = callback()
        if inspect.isawaitable(result):
            await result
    except Exception:
        logger.exception("Scheduled callback failed")


class _AsyncioCall(ScheduledCall):
    def __init__(self) -> None:
        self._handle: asyncio.TimerHandle | None = None
        self._task: asyncio.Task | None = None
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True
        if self._handle is not None:
            self._handle.cancel()
        if self._task is not None and not self._task.done():
            self._task.cancel()

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class AsyncioScheduler(Scheduler):
    """Scheduler on the running asyncio event loop."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()

    def now(self) -> float:
        return time.monotonic()

    def call_later(self, delay: float, callback: Callback) -> ScheduledCall:
        loop = asyncio.get_running_loop()
        call = _AsyncioCall()

        def fire() -> None:
            if call.cancelled:
                return
            task = loop.create_task(_invoke(callback))
            call._task = task
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

        call._handle = loop.call_later(max(delay, 0.0), fire)
        return call


class _ManualCall(ScheduledCall):
    def __init__(self, when: float, callback: Callback):
        self.when = when
        self.callback = callback
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class ManualScheduler(Scheduler):
    """Virtual clock that only moves when told to.

    Example:
        >>> scheduler = ManualScheduler()
        >>> scheduler.call_later(5, callback)
        >>> await scheduler.advance(5)   # runs callback
    """

    def __init__(self, start: float = 0.0):
        self._now = start
        self._queue: list[tuple[float, int, _ManualCall]] = []
        self._counter = itertools.count()

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callback) -> ScheduledCall:
        call = _ManualCall(self._now + max(delay, 0.0), callback)
        heapq.heappush(self._queue, (call.when, next(self._counter), call))
        return call

    @property
    def pending(self) -> list[float]:
        """Due times of callbacks not yet run or cancelled, soonest first."""
        return sorted(call.when for _, _, call in self._queue if not call.cancelled)

    async def advance(self, seconds: float) -> int:
        """Move the clock forward, running every callback that falls due.

        Callbacks scheduled while advancing run too if they fall inside the
        window. Returns the number of callbacks run.
        """
        target = self._now + seconds
        ran = 0
        while self._queue and self._queue[0][0] <= target:
            when, _, call = heapq.heappop(self._queue)
            if call.cancelled:
                continue
            self._now = max(self._now, when)
            await _invoke(call.callback)
            ran += 1
        self._now = target
        return ran
