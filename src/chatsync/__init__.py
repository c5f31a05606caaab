"""
chatsync: client-side chat session coordination.

Keeps a local, always-consistent view of chat sessions while sending
messages through a remote completion API, caching everything offline and
reconciling with the remote store when connectivity returns.
"""

__version__ = "0.1.0"

from .config import ChatSyncConfig
from .context import ChatContext
from .errors import (
    AuthenticationError,
    ChatSyncError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    SendError,
    ServerFaultError,
    ValidationError,
)
from .session import ChatState, Message, MessageStatus, Role, Session
from .settings import ChatSettings, resolve

__all__ = [
    "AuthenticationError",
    "ChatContext",
    "ChatSettings",
    "ChatState",
    "ChatSyncConfig",
    "ChatSyncError",
    "Message",
    "MessageStatus",
    "NetworkError",
    "NotFoundError",
    "RateLimitError",
    "Role",
    "SendError",
    "ServerFaultError",
    "Session",
    "ValidationError",
    "resolve",
]
