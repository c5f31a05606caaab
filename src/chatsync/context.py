"""Composition root owning every stateful component of one client.

Nothing in chatsync is a module-level singleton: a ``ChatContext`` is
built at process or login start, passed to whatever needs it, and closed
(or reset with ``logout``) explicitly.
"""

import logging
from typing import Any

import httpx

from .api.client import ChatApiClient
from .chat.pipeline import MessageSendPipeline
from .chat.sessions import SessionManager
from .config import ChatSyncConfig
from .llm.base import CompletionClient
from .llm.factory import create_completion_client
from .session.store import SessionStore
from .settings.credentials import CredentialResolver, CredentialStore
from .settings.models import ChatSettings
from .storage.base import KeyValueStore
from .storage.config_log import ConfigurationLog
from .storage.correlation import CorrelationTable
from .storage.factory import create_key_value_store
from .storage.offline import OfflineCache
from .sync.backoff import BackoffPolicy
from .sync.inbound import InboundSync
from .sync.outbound import OutboundSync
from .sync.reconciler import SyncReconciler
from .sync.scheduler import AsyncioScheduler, Scheduler

logger = logging.getLogger(__name__)


class ChatContext:
    """All components of one chat client, wired together.

    Use ``from_config`` for the standard wiring. Supports the async context
    manager protocol:

        async with ChatContext.from_config(config) as ctx:
            await ctx.pipeline.send("Hello")
    """

    def __init__(
        self,
        config: ChatSyncConfig,
        kv_store: KeyValueStore,
        api: ChatApiClient,
        completion: CompletionClient,
        scheduler: Scheduler,
        default_settings: ChatSettings | None = None,
    ):
        self.config = config
        self.kv_store = kv_store
        self.api = api
        self.completion = completion
        self.scheduler = scheduler

        self.store = SessionStore()
        self.cache = OfflineCache(kv_store)
        self.correlation = CorrelationTable(kv_store)
        self.config_log = ConfigurationLog(kv_store)
        self.credential_store = CredentialStore()
        self.credentials = CredentialResolver(self.credential_store)

        self.pipeline = MessageSendPipeline(
            store=self.store,
            api=api,
            completion=completion,
            cache=self.cache,
            correlation=self.correlation,
            credentials=self.credentials,
            config_log=self.config_log,
            default_settings=default_settings,
            fallback_reply=config.fallback_reply,
        )
        self.sessions = SessionManager(self.store, api, self.cache, self.correlation, self.pipeline)

        self.outbound = OutboundSync(api, self.cache, self.correlation, self.store)
        self.inbound = InboundSync(api, self.credential_store, self.store)
        self.reconciler = SyncReconciler(
            api,
            self.store,
            self.outbound,
            self.inbound,
            scheduler,
            interval=config.sync_interval,
            backoff=BackoffPolicy(base=config.sync_retry_delay, max_attempts=config.sync_max_attempts),
        )

    @classmethod
    def from_config(
        cls,
        config: ChatSyncConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        scheduler: Scheduler | None = None,
        kv_store: KeyValueStore | None = None,
        completion: CompletionClient | None = None,
        default_settings: ChatSettings | None = None,
    ) -> "ChatContext":
        """Build a context from configuration.

        Args:
            config: Runtime configuration
            transport: httpx transport for the API client (tests)
            scheduler: Timer source; defaults to the asyncio loop
            kv_store: Pre-built store; defaults to ``config.store_backend``
            completion: Pre-built completion client; defaults to
                ``config.completion_backend``
            default_settings: Initial request settings

        Returns:
            Wired ChatContext
        """
        if kv_store is None:
            store_config: dict[str, Any] = {"namespace": config.namespace}
            if config.store_backend == "sqlite":
                store_config["path"] = config.store_path
            kv_store = create_key_value_store(config.store_backend, **store_config)

        api = ChatApiClient(
            config.api_url,
            token=config.api_token,
            timeout=config.request_timeout,
            transport=transport,
        )

        if completion is None:
            if config.completion_backend == "openai":
                completion = create_completion_client(
                    "openai", system_keys=config.system_keys, timeout=config.request_timeout
                )
            else:
                completion = create_completion_client(config.completion_backend, api=api)

        return cls(
            config=config,
            kv_store=kv_store,
            api=api,
            completion=completion,
            scheduler=scheduler or AsyncioScheduler(),
            default_settings=default_settings,
        )

    def logout(self) -> None:
        """Drop every piece of user state, local and in memory."""
        self.reconciler.stop()
        self.store.reset()
        self.cache.clear()
        self.correlation.clear()
        self.config_log.clear()
        self.credential_store.clear()
        self.api.set_token(None)
        logger.info("Chat context reset")

    async def close(self) -> None:
        """Stop sync tasks and release network and storage resources."""
        self.reconciler.stop()
        try:
            await self.completion.close()
        finally:
            await self.api.close()
            self.kv_store.close()

    async def __aenter__(self) -> "ChatContext":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
