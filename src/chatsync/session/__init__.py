"""Client-side session state.

Holds every session and its messages behind a closed set of transitions.
"""

from .models import (
    ChatState,
    ConnectionStatus,
    Message,
    MessageStatus,
    Role,
    Session,
    UsageMetadata,
)
from .store import (
    AppendMessage,
    ClearSessions,
    DeleteSession,
    PatchMessage,
    RewriteMessageId,
    RewriteSessionId,
    SessionStore,
    SetConnectionStatus,
    SetCurrentSession,
    SetError,
    SetLoading,
    SetTyping,
    UpsertSession,
    reduce,
)

__all__ = [
    "AppendMessage",
    "ChatState",
    "ClearSessions",
    "ConnectionStatus",
    "DeleteSession",
    "Message",
    "MessageStatus",
    "PatchMessage",
    "RewriteMessageId",
    "RewriteSessionId",
    "Role",
    "Session",
    "SessionStore",
    "SetConnectionStatus",
    "SetCurrentSession",
    "SetError",
    "SetLoading",
    "SetTyping",
    "UpsertSession",
    "UsageMetadata",
    "reduce",
]
