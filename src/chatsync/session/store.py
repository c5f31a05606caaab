"""Session store: a closed set of transitions over one ``ChatState``.

Every transition is a pure, total function ``reduce(state, intent)``.
Unknown session or message ids are ignored rather than raised, so an
optimistic update racing a slower network confirmation can never fail.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from .models import (
    ANNOTATION_FIELDS,
    ChatState,
    ConnectionStatus,
    Message,
    MessageStatus,
    Session,
    utcnow,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UpsertSession:
    session: Session


@dataclass(frozen=True)
class DeleteSession:
    session_id: str


@dataclass(frozen=True)
class SetCurrentSession:
    session_id: str | None


@dataclass(frozen=True)
class AppendMessage:
    session_id: str
    message: Message


@dataclass(frozen=True)
class PatchMessage:
    session_id: str
    message_id: str
    changes: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RewriteSessionId:
    """Replace a local session id with its server-assigned id."""

    old_id: str
    new_id: str


@dataclass(frozen=True)
class RewriteMessageId:
    """Replace a local message id with its server-assigned id."""

    session_id: str
    old_id: str
    new_id: str


@dataclass(frozen=True)
class SetLoading:
    value: bool


@dataclass(frozen=True)
class SetTyping:
    value: bool


@dataclass(frozen=True)
class SetError:
    error: str | None


@dataclass(frozen=True)
class SetConnectionStatus:
    status: ConnectionStatus


@dataclass(frozen=True)
class ClearSessions:
    """Drop every session (logout)."""


Intent = (
    UpsertSession
    | DeleteSession
    | SetCurrentSession
    | AppendMessage
    | PatchMessage
    | RewriteSessionId
    | RewriteMessageId
    | SetLoading
    | SetTyping
    | SetError
    | SetConnectionStatus
    | ClearSessions
)


def _replace_session(state: ChatState, session_id: str, session: Session) -> list[Session]:
    return [session if s.id == session_id else s for s in state.sessions]


def _upsert(state: ChatState, intent: UpsertSession) -> ChatState:
    session = intent.session
    if state.get_session(session.id) is None:
        sessions = [session, *state.sessions]
    else:
        sessions = _replace_session(state, session.id, session)
    return state.model_copy(update={"sessions": sessions, "current_session_id": session.id, "error": None})


def _delete(state: ChatState, intent: DeleteSession) -> ChatState:
    sessions = [s for s in state.sessions if s.id != intent.session_id]
    current = state.current_session_id
    if current == intent.session_id:
        current = sessions[0].id if sessions else None
    return state.model_copy(update={"sessions": sessions, "current_session_id": current})


def _set_current(state: ChatState, intent: SetCurrentSession) -> ChatState:
    if intent.session_id is not None and state.get_session(intent.session_id) is None:
        return state
    return state.model_copy(update={"current_session_id": intent.session_id, "error": None})


def _append(state: ChatState, intent: AppendMessage) -> ChatState:
    session = state.get_session(intent.session_id)
    if session is None:
        logger.debug("Append to unknown session %s ignored", intent.session_id)
        return state
    if session.find_message(intent.message.id) is not None:
        logger.debug("Message %s already in session %s", intent.message.id, intent.session_id)
        return state
    updated = session.model_copy(update={
        "messages": [*session.messages, intent.message],
        "updated_at": utcnow(),
    })
    return state.model_copy(update={"sessions": _replace_session(state, session.id, updated)})


def _patch(state: ChatState, intent: PatchMessage) -> ChatState:
    session = state.get_session(intent.session_id)
    if session is None:
        return state
    target = session.find_message(intent.message_id)
    if target is None:
        return state

    changes = {k: v for k, v in intent.changes.items() if k in Message.model_fields and k != "id"}
    if target.status == MessageStatus.SENT:
        changes = {k: v for k, v in changes.items() if k in ANNOTATION_FIELDS}
    if not changes:
        return state

    try:
        patched = Message.model_validate({**target.model_dump(), **changes})
    except PydanticValidationError:
        logger.warning("Rejected invalid patch for message %s: %s", target.id, sorted(changes))
        return state

    messages = [patched if m.id == target.id else m for m in session.messages]
    updated = session.model_copy(update={"messages": messages, "updated_at": utcnow()})
    return state.model_copy(update={"sessions": _replace_session(state, session.id, updated)})


def _rewrite_session_id(state: ChatState, intent: RewriteSessionId) -> ChatState:
    old = state.get_session(intent.old_id)
    if old is None or intent.old_id == intent.new_id:
        return state

    existing = state.get_session(intent.new_id)
    if existing is None:
        renamed = old.model_copy(update={"id": intent.new_id})
        sessions = _replace_session(state, old.id, renamed)
    else:
        # remote copy already loaded: fold the local messages into it
        known = {m.id for m in existing.messages}
        merged = existing.model_copy(update={
            "messages": [*existing.messages, *(m for m in old.messages if m.id not in known)],
        })
        sessions = [merged if s.id == existing.id else s for s in state.sessions if s.id != old.id]

    current = state.current_session_id
    if current == intent.old_id:
        current = intent.new_id
    return state.model_copy(update={"sessions": sessions, "current_session_id": current})


def _rewrite_message_id(state: ChatState, intent: RewriteMessageId) -> ChatState:
    session = state.get_session(intent.session_id)
    if session is None or session.find_message(intent.old_id) is None:
        return state
    if intent.old_id == intent.new_id:
        return state

    if session.find_message(intent.new_id) is not None:
        messages = [m for m in session.messages if m.id != intent.old_id]
    else:
        messages = [
            m.model_copy(update={"id": intent.new_id}) if m.id == intent.old_id else m
            for m in session.messages
        ]
    updated = session.model_copy(update={"messages": messages})
    return state.model_copy(update={"sessions": _replace_session(state, session.id, updated)})


def reduce(state: ChatState, intent: Intent) -> ChatState:
    """Apply one intent and return the next state.

    Never raises; an intent that cannot apply returns ``state`` unchanged.
    """
    if isinstance(intent, UpsertSession):
        return _upsert(state, intent)
    if isinstance(intent, DeleteSession):
        return _delete(state, intent)
    if isinstance(intent, SetCurrentSession):
        return _set_current(state, intent)
    if isinstance(intent, AppendMessage):
        return _append(state, intent)
    if isinstance(intent, PatchMessage):
        return _patch(state, intent)
    if isinstance(intent, RewriteSessionId):
        return _rewrite_session_id(state, intent)
    if isinstance(intent, RewriteMessageId):
        return _rewrite_message_id(state, intent)
    if isinstance(intent, SetLoading):
        return state.model_copy(update={"is_loading": intent.value})
    if isinstance(intent, SetTyping):
        return state.model_copy(update={"is_typing": intent.value})
    if isinstance(intent, SetError):
        return state.model_copy(update={"error": intent.error})
    if isinstance(intent, SetConnectionStatus):
        return state.model_copy(update={"connection_status": intent.status})
    if isinstance(intent, ClearSessions):
        return state.model_copy(update={"sessions": [], "current_session_id": None, "error": None})

    logger.warning("Ignoring unknown intent %r", intent)
    return state


class SessionStore:
    """Owner of the authoritative ``ChatState``.

    All mutation goes through ``dispatch``; the convenience methods below
    only build intents. Transitions are synchronous, so two of them can
    never interleave.
    """

    def __init__(self, state: ChatState | None = None):
        self._state = state or ChatState()

    @property
    def state(self) -> ChatState:
        return self._state

    @property
    def sessions(self) -> list[Session]:
        return list(self._state.sessions)

    @property
    def current_session(self) -> Session | None:
        return self._state.current_session

    def get_session(self, session_id: str) -> Session | None:
        return self._state.get_session(session_id)

    def list_messages(self, session_id: str) -> list[Message]:
        """Messages of a session in arrival order (empty if unknown)."""
        session = self._state.get_session(session_id)
        return list(session.messages) if session else []

    def dispatch(self, intent: Intent) -> ChatState:
        self._state = reduce(self._state, intent)
        return self._state

    def reset(self) -> None:
        """Return to the initial state."""
        self._state = ChatState()

    def upsert_session(self, session: Session) -> ChatState:
        return self.dispatch(UpsertSession(session))

    def delete_session(self, session_id: str) -> ChatState:
        return self.dispatch(DeleteSession(session_id))

    def set_current_session(self, session_id: str | None) -> ChatState:
        return self.dispatch(SetCurrentSession(session_id))

    def append_message(self, session_id: str, message: Message) -> ChatState:
        return self.dispatch(AppendMessage(session_id, message))

    def patch_message(self, session_id: str, message_id: str, **changes: Any) -> ChatState:
        return self.dispatch(PatchMessage(session_id, message_id, changes))

    def set_loading(self, value: bool) -> ChatState:
        return self.dispatch(SetLoading(value))

    def set_connection_status(self, status: ConnectionStatus) -> ChatState:
        return self.dispatch(SetConnectionStatus(status))
