"""Interval-driven sync task with retry and backoff."""

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from ..config import SYNC_INTERVAL_SECONDS, SYNC_VISIBILITY_THRESHOLD_SECONDS
from .backoff import BackoffPolicy
from .scheduler import ScheduledCall, Scheduler

logger = logging.getLogger(__name__)


class PeriodicSync:
    """Run ``task`` on an interval and on connectivity/visibility events.

    A failed pass is retried with ``BackoffPolicy`` delays. Once the retry
    ceiling is reached ``on_failure`` is called with the last error and the
    attempt counter resets, so the next scheduled pass starts fresh.

    Two passes never overlap: ``syncing`` is checked and set before the
    first await of a pass, and a pass requested meanwhile is dropped.

    Args:
        task: Coroutine function doing one pass; raises on failure
        scheduler: Clock and timer source
        interval: Seconds between scheduled passes
        backoff: Retry policy after a failed pass
        on_failure: Called once the retry ceiling is exhausted
        visibility_threshold: Minimum seconds since the last success before
            a visibility event triggers a pass
        name: Label used in log lines
    """

    def __init__(
        self,
        task: Callable[[], Awaitable[Any]],
        scheduler: Scheduler,
        interval: float = SYNC_INTERVAL_SECONDS,
        backoff: BackoffPolicy | None = None,
        on_failure: Callable[[Exception], Any] | None = None,
        visibility_threshold: float = SYNC_VISIBILITY_THRESHOLD_SECONDS,
        name: str = "sync",
    ):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._task = task
        self._scheduler = scheduler
        self._interval = interval
        self._backoff = backoff or BackoffPolicy()
        self._on_failure = on_failure
        self._visibility_threshold = visibility_threshold
        self._name = name

        self._syncing = False
        self._attempt = 0
        self._last_synced_at: float | None = None
        self._last_error: Exception | None = None
        self._interval_call: ScheduledCall | None = None
        self._retry_call: ScheduledCall | None = None

    @property
    def syncing(self) -> bool:
        return self._syncing

    @property
    def attempt(self) -> int:
        """Retries already scheduled for the current failure streak."""
        return self._attempt

    @property
    def last_synced_at(self) -> float | None:
        return self._last_synced_at

    @property
    def last_error(self) -> Exception | None:
        return self._last_error

    @property
    def running(self) -> bool:
        return self._interval_call is not None

    @property
    def retry_pending(self) -> bool:
        return self._retry_call is not None and not self._retry_call.cancelled

    def start(self) -> None:
        """Begin interval scheduling. Idempotent."""
        if self._interval_call is None:
            self._schedule_tick()
            logger.debug("%s: started, interval %.0fs", self._name, self._interval)

    def stop(self) -> None:
        """Cancel the interval and any pending retry. No pass runs afterwards."""
        if self._interval_call is not None:
            self._interval_call.cancel()
            self._interval_call = None
        self._cancel_retry()
        logger.debug("%s: stopped", self._name)

    async def sync_now(self, reason: str = "manual") -> bool:
        """Run one pass now. Returns True on success, False on failure or skip."""
        if self._syncing:
            logger.debug("%s: pass already running, %s trigger dropped", self._name, reason)
            return False
        self._syncing = True

        try:
            await self._task()
        except Exception as e:
            self._last_error = e
            logger.warning("%s: pass failed (%s): %s", self._name, reason, e)
            self._schedule_retry(e)
            return False
        else:
            self._last_synced_at = self._scheduler.now()
            self._last_error = None
            self._attempt = 0
            self._cancel_retry()
            logger.debug("%s: pass succeeded (%s)", self._name, reason)
            return True
        finally:
            self._syncing = False

    async def on_online(self) -> bool:
        return await self.sync_now("online")

    async def on_visible(self) -> bool:
        """Sync if the last successful pass is older than the threshold."""
        if self._last_synced_at is not None:
            elapsed = self._scheduler.now() - self._last_synced_at
            if elapsed <= self._visibility_threshold:
                logger.debug("%s: synced %.0fs ago, visibility trigger ignored", self._name, elapsed)
                return False
        return await self.sync_now("visible")

    def _schedule_tick(self) -> None:
        self._interval_call = self._scheduler.call_later(self._interval, self._tick)

    async def _tick(self) -> None:
        if self._interval_call is None:
            return
        self._schedule_tick()
        await self.sync_now("interval")

    def _cancel_retry(self) -> None:
        if self._retry_call is not None:
            self._retry_call.cancel()
            self._retry_call = None

    def _schedule_retry(self, error: Exception) -> None:
        self._cancel_retry()
        if self._backoff.should_retry(self._attempt):
            delay = self._backoff.delay(self._attempt)
            self._attempt += 1
            logger.info("%s: retry %d/%d in %.1fs", self._name, self._attempt, self._backoff.max_attempts, delay)
            self._retry_call = self._scheduler.call_later(delay, self._retry)
            return

        logger.error("%s: giving up after %d retries: %s", self._name, self._attempt, error)
        self._attempt = 0
        if self._on_failure is not None:
            self._on_failure(error)

    async def _retry(self) -> None:
        self._retry_call = None
        await self.sync_now("retry")
