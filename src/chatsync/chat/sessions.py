"""Session lifecycle against the remote API, with offline fallbacks."""

import logging
from typing import Any

from ..api.client import ChatApiClient
from ..config import DEFAULT_PAGE_SIZE
from ..errors import ChatSyncError
from ..session.models import Session
from ..session.store import SessionStore, SetError, SetLoading
from ..settings.models import ChatSettings
from ..storage.correlation import CorrelationTable
from ..storage.offline import OfflineCache, merge_messages
from .pipeline import MessageSendPipeline

logger = logging.getLogger(__name__)


class SessionManager:
    """Create, load, switch, rename and delete sessions.

    Remote failures never lose local state: listing falls back to the
    offline cache, switching falls back to the copy already in the store,
    and deletion removes the session locally even if the remote call fails.
    """

    def __init__(
        self,
        store: SessionStore,
        api: ChatApiClient,
        cache: OfflineCache,
        correlation: CorrelationTable,
        pipeline: MessageSendPipeline,
    ):
        self._store = store
        self._api = api
        self._cache = cache
        self._correlation = correlation
        self._pipeline = pipeline

    async def create_session(
        self,
        title: str | None = None,
        settings: ChatSettings | None = None,
        agent_id: str | None = None,
        workspace_id: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> Session:
        return await self._pipeline.create_session(
            title=title,
            settings=settings,
            agent_id=agent_id,
            workspace_id=workspace_id,
            context=context,
        )

    async def load_sessions(self, page: int = 1, size: int = DEFAULT_PAGE_SIZE) -> list[Session]:
        """Populate the store with remote sessions plus offline-only ones.

        Sessions are upserted oldest first so the newest ends up at the head.
        The current session selection is preserved.
        """
        current_id = self._store.state.current_session_id
        error: str | None = None
        self._store.dispatch(SetLoading(True))
        try:
            try:
                records = await self._api.list_conversations(page=page, size=size)
                remote = [r.to_session() for r in records]
            except ChatSyncError as e:
                logger.warning("Could not list conversations (%s), using offline cache", e.kind)
                error = e.message
                remote = []

            remote_ids = {s.id for s in remote}
            offline = [s for s in self._cache.list_conversations() if s.id not in remote_ids]
            sessions = sorted([*remote, *offline], key=lambda s: s.updated_at)

            for session in sessions:
                existing = self._store.get_session(session.id)
                if existing is not None and existing.messages:
                    session = session.model_copy(update={"messages": existing.messages})
                self._store.upsert_session(session)
        finally:
            self._store.dispatch(SetLoading(False))

        self._store.set_current_session(current_id)
        # selecting a session clears the error, so surface it last
        if error is not None:
            self._store.dispatch(SetError(error))
        return self._store.sessions

    async def switch_session(self, session_id: str) -> Session | None:
        """Make a session current, loading its messages.

        Remote and cached messages are merged by id. If the remote side is
        unreachable the cached and in-store copies are used instead.
        """
        error: str | None = None
        self._store.dispatch(SetLoading(True))
        try:
            session = self._store.get_session(session_id) or self._cache.get_conversation(session_id)
            remote_messages = []
            if not self._correlation.is_pending(session_id):
                try:
                    if session is None:
                        session = (await self._api.get_conversation(session_id)).to_session()
                    records = await self._api.list_messages(session_id)
                    remote_messages = [r.to_message() for r in records]
                except ChatSyncError as e:
                    logger.warning("Could not load session %s remotely (%s)", session_id, e.kind)
                    error = e.message

            if session is not None:
                local_messages = merge_messages(session.messages, self._cache.list_messages(session_id))
                messages = merge_messages(remote_messages, local_messages)
                self._store.upsert_session(session.model_copy(update={"messages": messages}))
        finally:
            self._store.dispatch(SetLoading(False))
            if error is not None:
                self._store.dispatch(SetError(error))

        return self._store.get_session(session_id)

    async def delete_session(self, session_id: str) -> None:
        if not self._correlation.is_pending(session_id):
            try:
                await self._api.delete_conversation(session_id)
            except ChatSyncError as e:
                logger.warning("Remote delete of %s failed (%s), removing locally", session_id, e.kind)
                self._store.dispatch(SetError(e.message))
        queued = [m.id for m in self._cache.list_messages(session_id)]
        self._cache.remove_conversation(session_id)
        self._correlation.forget(session_id, *queued)
        self._store.delete_session(session_id)

    async def rename_session(self, session_id: str, title: str) -> Session | None:
        """Rename a session remotely (if it exists there) and locally."""
        session = self._store.get_session(session_id)
        if session is None:
            return None

        title = title.strip() or session.title
        error: str | None = None
        if not self._correlation.is_pending(session_id):
            try:
                await self._api.update_conversation_title(session_id, title)
            except ChatSyncError as e:
                logger.warning("Remote rename of %s failed (%s), renaming locally", session_id, e.kind)
                error = e.message

        renamed = session.model_copy(update={"title": title})
        current_id = self._store.state.current_session_id
        self._store.upsert_session(renamed)
        self._store.set_current_session(current_id)
        if error is not None:
            self._store.dispatch(SetError(error))
        if self._cache.get_conversation(session_id) is not None:
            self._cache.save_conversation(renamed)
        return renamed
