"""Message send pipeline.

Turns "send this text" into a consistent sequence of session store
transitions, remote calls and offline-cache writes:

1. Resolve or create the target session (locally if the API is down)
2. Append the user message optimistically, status ``sending``
3. Resolve settings and credentials
4. Call the completion backend
5. On success persist both messages and mark the user message ``sent``
6. On failure mark the user message ``error`` and raise ``SendError``

Whatever happens, the session store is left in an inspectable state.
"""

import logging
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict

from ..api.client import ChatApiClient
from ..api.models import ConversationCreate, MessageCreate
from ..config import DEFAULT_SESSION_TITLE, FALLBACK_REPLY_TEXT, SESSION_TITLE_MAX_LENGTH
from ..errors import ChatSyncError, NotFoundError, SendError, ValidationError
from ..llm.base import CompletionClient
from ..llm.models import ChatMessage, CompletionResult
from ..session.models import Message, MessageStatus, Role, Session, UsageMetadata
from ..session.store import RewriteMessageId, SessionStore, SetError, SetLoading, SetTyping
from ..settings.credentials import CredentialResolver, CredentialSet
from ..settings.models import ChatSettings
from ..settings.resolver import resolve
from ..storage.config_log import ConfigurationLog
from ..storage.correlation import CorrelationTable, generate_local_id
from ..storage.offline import OfflineCache

logger = logging.getLogger(__name__)


def title_from_text(text: str) -> str:
    """Session title synthesized from the first message."""
    title = " ".join(text.split())[:SESSION_TITLE_MAX_LENGTH].strip()
    return title or DEFAULT_SESSION_TITLE


class SendResult(BaseModel):
    """Outcome of a successful send."""

    model_config = ConfigDict(frozen=True)

    session_id: str
    user_message: Message
    assistant_message: Message
    persisted: bool = False


class MessageSendPipeline:
    """Orchestrates one send against the session store and the remote API.

    Hidden design decisions:
    - Where a session comes from when none is active
    - Which messages make up the completion context
    - What happens when persistence fails after a successful completion
      (messages are kept and queued for outbound sync)
    """

    def __init__(
        self,
        store: SessionStore,
        api: ChatApiClient,
        completion: CompletionClient,
        cache: OfflineCache,
        correlation: CorrelationTable,
        credentials: CredentialResolver,
        config_log: ConfigurationLog | None = None,
        default_settings: ChatSettings | None = None,
        fallback_reply: bool = False,
    ):
        self._store = store
        self._api = api
        self._completion = completion
        self._cache = cache
        self._correlation = correlation
        self._credentials = credentials
        self._config_log = config_log
        self._default_settings = default_settings or ChatSettings()
        self._fallback_reply = fallback_reply

    @property
    def default_settings(self) -> ChatSettings:
        return self._default_settings

    def configure(self, settings: ChatSettings | Mapping[str, Any]) -> ChatSettings:
        """Update the default settings used when a send passes none."""
        overrides = settings if isinstance(settings, ChatSettings) else ChatSettings.model_validate(settings)
        self._default_settings = self._default_settings.merged_with(overrides)
        return self._default_settings

    async def send(
        self,
        text: str,
        session_id: str | None = None,
        attachments: list[dict[str, Any]] | None = None,
        settings: ChatSettings | Mapping[str, Any] | None = None,
        explicit_keys: Mapping[str, str] | None = None,
    ) -> SendResult:
        """Send ``text`` and return both resulting messages.

        Args:
            text: User message content
            session_id: Target session; defaults to the current session,
                or a new one titled after ``text``
            attachments: Attachment descriptors stored with the message
            settings: Per-call settings, layered over the defaults
            explicit_keys: Per-call provider keys

        Returns:
            SendResult with the ``sent`` user message and the assistant reply

        Raises:
            ValidationError: ``text`` is empty
            NotFoundError: ``session_id`` is not a known session
            SendError: The completion call failed; the user message is left
                in ``error`` status in the session store
        """
        if not text or not text.strip():
            raise ValidationError("Cannot send an empty message")

        resolved = resolve(self._merge_settings(settings))

        session = await self._resolve_session(session_id, text, resolved)

        user_message = Message(
            id=generate_local_id("message"),
            role=Role.USER,
            content=text,
            status=MessageStatus.SENDING,
            attachments=list(attachments or []),
        )
        self._store.append_message(session.id, user_message)
        self._store.dispatch(SetError(None))
        self._store.dispatch(SetLoading(True))
        self._store.dispatch(SetTyping(True))

        try:
            credentials = self._resolve_credentials(resolved, explicit_keys)
            context = self._build_context(session.id)
            try:
                result = await self._completion.complete(context, resolved, credentials)
            except ChatSyncError as e:
                raise self._handle_failure(session.id, user_message, resolved, e) from e
            except Exception as e:
                logger.exception("Completion backend raised an unexpected error")
                cause = ChatSyncError(f"Unexpected completion failure: {e!r}")
                raise self._handle_failure(session.id, user_message, resolved, cause) from e

            return await self._handle_success(session.id, user_message, resolved, result)
        finally:
            self._store.dispatch(SetTyping(False))
            self._store.dispatch(SetLoading(False))

    async def resend(
        self,
        session_id: str,
        message_id: str,
        settings: ChatSettings | Mapping[str, Any] | None = None,
        explicit_keys: Mapping[str, str] | None = None,
    ) -> SendResult:
        """Send the content of an earlier user message again.

        The original message is left untouched; the retry gets a new id.
        """
        session = self._store.get_session(session_id)
        original = session.find_message(message_id) if session else None
        if original is None:
            raise NotFoundError(f"Message {message_id} not found in session {session_id}")
        if original.role != Role.USER:
            raise ValidationError("Only user messages can be resent")

        return await self.send(
            original.content,
            session_id=session_id,
            attachments=original.attachments,
            settings=settings,
            explicit_keys=explicit_keys,
        )

    def _merge_settings(self, overrides: ChatSettings | Mapping[str, Any] | None) -> ChatSettings | dict:
        if overrides is None:
            return self._default_settings
        if isinstance(overrides, ChatSettings):
            return self._default_settings.merged_with(overrides)
        # Mappings go through resolve() unvalidated so bad fields are dropped, not raised
        return {**self._default_settings.model_dump(exclude_none=True), **overrides}

    async def _resolve_session(self, session_id: str | None, text: str, settings: ChatSettings) -> Session:
        if session_id is not None:
            session = self._store.get_session(session_id)
            if session is None:
                raise NotFoundError(f"Session {session_id} not found")
            return session

        current = self._store.current_session
        if current is not None:
            return current
        return await self.create_session(title_from_text(text), settings=settings)

    async def create_session(
        self,
        title: str | None = None,
        settings: ChatSettings | None = None,
        agent_id: str | None = None,
        workspace_id: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> Session:
        """Create a session remotely, or locally when the API is unreachable.

        The new session becomes current.
        """
        title = title or DEFAULT_SESSION_TITLE
        settings_payload = settings.model_dump(exclude_none=True) if settings else {}
        try:
            record = await self._api.create_conversation(ConversationCreate(
                title=title,
                agent_id=agent_id,
                workspace_id=workspace_id,
                context=context or {},
                settings=settings_payload,
            ))
            session = record.to_session()
        except ChatSyncError as e:
            local_id = self._correlation.new_local_id("session")
            logger.warning("Could not create conversation remotely (%s), using local session %s", e.kind, local_id)
            metadata: dict[str, Any] = {"settings": settings_payload, "context": context or {}}
            if agent_id:
                metadata["agent_id"] = agent_id
            if workspace_id:
                metadata["workspace_id"] = workspace_id
            session = Session(id=local_id, title=title, metadata=metadata)
            self._cache.save_conversation(session)

        self._store.upsert_session(session)
        return session

    def _resolve_credentials(
        self, settings: ChatSettings, explicit_keys: Mapping[str, str] | None
    ) -> CredentialSet:
        required = [settings.provider] if settings.provider else []
        credentials = self._credentials.resolve_credentials(explicit_keys, required=required)
        validation = self._credentials.validate(settings, credentials)
        if not validation.valid:
            logger.warning(
                "Missing credentials for %s; sending anyway on system credentials",
                ", ".join(validation.missing),
            )
        return credentials

    def _build_context(self, session_id: str) -> list[ChatMessage]:
        """Messages sent as completion context: everything not errored."""
        return [
            ChatMessage(role=m.role.value, content=m.content)
            for m in self._store.list_messages(session_id)
            if m.status != MessageStatus.ERROR and not m.metadata.get("fallback")
        ]

    def _find(self, session_id: str, message_id: str) -> Message | None:
        session = self._store.get_session(session_id)
        return session.find_message(message_id) if session else None

    async def _handle_success(
        self,
        session_id: str,
        user_message: Message,
        settings: ChatSettings,
        result: CompletionResult,
    ) -> SendResult:
        # outbound sync may have rebound a local session during the completion
        session_id = self._correlation.resolve(session_id)
        assistant_message = Message(
            id=generate_local_id("message"),
            role=Role.ASSISTANT,
            content=result.content,
            status=MessageStatus.SENT,
            usage=UsageMetadata(
                model=result.model,
                provider=result.provider,
                prompt_tokens=(result.usage or {}).get("prompt_tokens"),
                completion_tokens=(result.usage or {}).get("completion_tokens"),
                total_tokens=result.total_tokens,
                processing_time_ms=result.processing_time_ms,
                temperature=settings.temperature,
                max_tokens=settings.max_tokens,
                top_p=settings.top_p,
                frequency_penalty=settings.frequency_penalty,
                presence_penalty=settings.presence_penalty,
                personality=settings.personality,
                tool=settings.tool,
            ),
            metadata={"finish_reason": result.finish_reason} if result.finish_reason else {},
        )

        # sent means the exchange completed; a failed persist below queues
        # both messages for outbound sync instead of undoing this
        self._store.patch_message(session_id, user_message.id, status=MessageStatus.SENT)
        self._store.append_message(session_id, assistant_message)
        if self._config_log is not None:
            self._config_log.record(settings, success=True, session_id=session_id)

        persisted, remote_ids = await self._persist(session_id, [user_message.id, assistant_message.id])
        session = self._store.get_session(session_id)
        messages = {m.id: m for m in session.messages} if session else {}
        return SendResult(
            session_id=session_id,
            user_message=messages.get(remote_ids.get(user_message.id, user_message.id), user_message),
            assistant_message=messages.get(
                remote_ids.get(assistant_message.id, assistant_message.id), assistant_message
            ),
            persisted=persisted,
        )

    async def _persist(self, session_id: str, message_ids: list[str]) -> tuple[bool, dict[str, str]]:
        """Mirror messages remotely, in order; queue them locally otherwise.

        Returns:
            Whether every message reached the remote store, and the server
            id assigned to each local id that did
        """
        remote_ids: dict[str, str] = {}
        queued = self._correlation.is_pending(session_id)
        for local_id in message_ids:
            message = self._find(session_id, local_id)
            if message is None:
                continue
            if not queued:
                try:
                    record = await self._api.create_message(session_id, MessageCreate(
                        content=message.content,
                        role=message.role,
                        attachments=message.attachments or None,
                        metadata={"client_message_id": local_id},
                    ))
                except ChatSyncError as e:
                    logger.warning("Persisting message %s failed (%s), queued for sync", local_id, e.kind)
                    queued = True
                else:
                    remote_ids[local_id] = record.id
                    self._store.dispatch(RewriteMessageId(session_id, local_id, record.id))
                    continue
            self._queue(session_id, message)

        return not queued, remote_ids

    def _queue(self, session_id: str, message: Message) -> None:
        if self._cache.get_conversation(session_id) is None:
            session = self._store.get_session(session_id)
            if session is not None:
                self._cache.save_conversation(session)
        self._correlation.register(message.id)
        self._cache.save_message(session_id, message)

    def _handle_failure(
        self,
        session_id: str,
        user_message: Message,
        settings: ChatSettings,
        error: ChatSyncError,
    ) -> SendError:
        """Leave the failed send inspectable and return the error to raise."""
        session_id = self._correlation.resolve(session_id)
        logger.error("Completion failed for session %s: %s", session_id, error)
        self._store.patch_message(session_id, user_message.id, status=MessageStatus.ERROR)
        self._store.dispatch(SetError(error.message))
        self._cache.save_message(session_id, self._find(session_id, user_message.id) or user_message)

        if self._config_log is not None:
            self._config_log.record(settings, success=False, error=error.kind, session_id=session_id)

        if self._fallback_reply:
            self._store.append_message(session_id, Message(
                id=generate_local_id("message"),
                role=Role.ASSISTANT,
                content=FALLBACK_REPLY_TEXT,
                status=MessageStatus.ERROR,
                metadata={"fallback": True, "error_kind": error.kind},
            ))

        return SendError(
            f"Failed to send message: {error.message}",
            user_message=self._find(session_id, user_message.id) or user_message,
            cause=error,
        )
