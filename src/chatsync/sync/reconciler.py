"""Connectivity-driven coordination of the sync tasks."""

import logging
from collections.abc import Callable
from typing import Any

from ..api.client import ChatApiClient
from ..config import SYNC_INTERVAL_SECONDS, SYNC_VISIBILITY_THRESHOLD_SECONDS
from ..session.models import ConnectionStatus
from ..session.store import SessionStore, SetError
from .backoff import BackoffPolicy
from .inbound import InboundSync
from .outbound import OutboundReport, OutboundSync
from .periodic import PeriodicSync
from .scheduler import Scheduler

logger = logging.getLogger(__name__)


class SyncReconciler:
    """Wire connectivity and visibility events to the outbound and inbound tasks.

    Both tasks share one backoff policy and one scheduler but run
    independently: a failing inbound pass never delays outbound pushes.
    A task that exhausts its retries surfaces the error through the
    session store and ``on_failure``.

    Hidden design decisions:
    - Which events trigger which task
    - How connectivity is observed (``GET /health`` probe)
    """

    def __init__(
        self,
        api: ChatApiClient,
        store: SessionStore,
        outbound: OutboundSync,
        inbound: InboundSync,
        scheduler: Scheduler,
        interval: float = SYNC_INTERVAL_SECONDS,
        backoff: BackoffPolicy | None = None,
        visibility_threshold: float = SYNC_VISIBILITY_THRESHOLD_SECONDS,
        on_failure: Callable[[str, Exception], Any] | None = None,
    ):
        self._api = api
        self._store = store
        self._outbound = outbound
        self._inbound = inbound
        self._on_failure = on_failure
        backoff = backoff or BackoffPolicy()

        self.outbound_task = PeriodicSync(
            outbound.push,
            scheduler,
            interval=interval,
            backoff=backoff,
            on_failure=lambda e: self._failed("outbound", e),
            visibility_threshold=visibility_threshold,
            name="outbound-sync",
        )
        self.inbound_task = PeriodicSync(
            inbound.run,
            scheduler,
            interval=interval,
            backoff=backoff,
            on_failure=lambda e: self._failed("inbound", e),
            visibility_threshold=visibility_threshold,
            name="inbound-sync",
        )

    @property
    def connection_status(self) -> ConnectionStatus:
        return self._store.state.connection_status

    def start(self) -> None:
        self.outbound_task.start()
        self.inbound_task.start()

    def stop(self) -> None:
        self.outbound_task.stop()
        self.inbound_task.stop()

    async def probe(self) -> bool:
        """Check connectivity and fire the matching transition.

        Returns True if the API is reachable.
        """
        was_connected = self._store.state.is_connected
        if not was_connected:
            self._store.set_connection_status(ConnectionStatus.CONNECTING)

        if await self._api.ping():
            if not was_connected:
                await self.on_online()
            return True

        self.on_offline()
        return False

    async def on_online(self) -> None:
        logger.info("Connection restored, syncing")
        self._store.set_connection_status(ConnectionStatus.CONNECTED)
        await self.outbound_task.on_online()
        await self.inbound_task.on_online()

    def on_offline(self) -> None:
        if self._store.state.connection_status != ConnectionStatus.DISCONNECTED:
            logger.info("Connection lost")
        self._store.set_connection_status(ConnectionStatus.DISCONNECTED)

    async def on_visible(self) -> None:
        await self.outbound_task.on_visible()
        await self.inbound_task.on_visible()

    async def sync_now(self) -> OutboundReport:
        """Run both passes immediately, outbound first."""
        report = await self._outbound.run()
        await self.inbound_task.sync_now("manual")
        return report

    def _failed(self, task: str, error: Exception) -> None:
        message = f"Sync failed ({task}): {error}"
        self._store.dispatch(SetError(message))
        if self._on_failure is not None:
            self._on_failure(task, error)
