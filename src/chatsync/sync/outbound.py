"""Outbound sync: mirror locally created items to the remote API.

Sessions and messages created while the API was unreachable carry local
ids recorded as pending in the correlation table. A pass re-submits them
through the ordinary create calls and rewrites local ids to the server ids
in both the session store and the offline cache.
"""

import logging

from pydantic import BaseModel, Field

from ..api.client import ChatApiClient
from ..api.models import ConversationCreate, MessageCreate
from ..errors import ChatSyncError
from ..session.models import MessageStatus, Session
from ..session.store import RewriteMessageId, RewriteSessionId, SessionStore
from ..storage.correlation import CorrelationTable
from ..storage.offline import OfflineCache

logger = logging.getLogger(__name__)


class OutboundReport(BaseModel):
    """What one outbound pass achieved."""

    sessions_synced: int = 0
    messages_synced: int = 0
    failures: list[str] = Field(default_factory=list, description="Human-readable failure lines")
    skipped: bool = Field(default=False, description="True when another pass was already running")

    @property
    def ok(self) -> bool:
        return not self.failures


class OutboundSyncError(ChatSyncError):
    """Raised by ``OutboundSync.push`` when a pass left items pending."""

    retryable = True
    kind = "sync"


class OutboundSync:
    """Push pending sessions and messages to the remote API.

    Only messages in ``sent`` status are pushed; errored messages stay
    local until the user resends them. Within a session, messages are
    pushed in stored order and a failure stops that session's pass so
    remote order matches local order.
    """

    def __init__(
        self,
        api: ChatApiClient,
        cache: OfflineCache,
        correlation: CorrelationTable,
        store: SessionStore,
    ):
        self._api = api
        self._cache = cache
        self._correlation = correlation
        self._store = store
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def has_pending(self) -> bool:
        for session in self._cache.list_conversations():
            if self._correlation.is_pending(session.id):
                return True
            if any(self._is_pushable(m.id, m.status) for m in self._cache.list_messages(session.id)):
                return True
        return False

    def _is_pushable(self, message_id: str, status: MessageStatus) -> bool:
        return status == MessageStatus.SENT and self._correlation.is_pending(message_id)

    async def run(self) -> OutboundReport:
        """Run one pass. Never raises."""
        if self._running:
            logger.debug("Outbound sync already running, skipping")
            return OutboundReport(skipped=True)

        self._running = True
        report = OutboundReport()
        try:
            for session in self._cache.list_conversations():
                session_id = await self._push_session(session, report)
                if session_id is not None:
                    await self._push_messages(session_id, report)
        finally:
            self._running = False

        if report.sessions_synced or report.messages_synced or report.failures:
            logger.info(
                "Outbound sync: %d session(s), %d message(s), %d failure(s)",
                report.sessions_synced, report.messages_synced, len(report.failures),
            )
        return report

    async def push(self) -> OutboundReport:
        """Run one pass and raise if anything is still pending afterwards."""
        report = await self.run()
        if report.failures:
            raise OutboundSyncError(f"Outbound sync left {len(report.failures)} item(s) pending")
        return report

    async def _push_session(self, session: Session, report: OutboundReport) -> str | None:
        """Ensure the session exists remotely; return its remote id or None."""
        if not self._correlation.is_pending(session.id):
            return self._correlation.resolve(session.id)

        try:
            record = await self._api.create_conversation(ConversationCreate(
                title=session.title,
                agent_id=session.metadata.get("agent_id"),
                workspace_id=session.metadata.get("workspace_id"),
                context=session.metadata.get("context") or {},
                settings=session.metadata.get("settings") or {},
            ))
        except ChatSyncError as e:
            report.failures.append(f"session {session.id}: {e.kind}")
            logger.warning("Could not create conversation for %s: %s", session.id, e)
            return None

        self._correlation.bind(session.id, record.id)
        self._cache.rekey_conversation(session.id, record.id)
        self._store.dispatch(RewriteSessionId(session.id, record.id))
        report.sessions_synced += 1
        return record.id

    async def _push_messages(self, session_id: str, report: OutboundReport) -> None:
        for message in self._cache.list_messages(session_id):
            if not self._is_pushable(message.id, message.status):
                continue
            try:
                record = await self._api.create_message(session_id, MessageCreate(
                    content=message.content,
                    role=message.role,
                    attachments=message.attachments or None,
                    metadata={"client_message_id": message.id},
                ))
            except ChatSyncError as e:
                report.failures.append(f"message {message.id}: {e.kind}")
                logger.warning("Could not persist message %s: %s", message.id, e)
                return

            self._correlation.bind(message.id, record.id)
            self._cache.rekey_message(session_id, message.id, record.id)
            self._store.dispatch(RewriteMessageId(session_id, message.id, record.id))
            self._correlation.forget(message.id)
            report.messages_synced += 1
