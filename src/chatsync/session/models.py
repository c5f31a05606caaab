"""Data models for sessions, messages and the client chat state.

These models are the in-memory view consumed by UI layers; wire formats
of the remote API live in ``chatsync.api.models``.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_serializer, field_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # naive timestamps from the API are UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Role(str, Enum):
    """Author of a message."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class MessageStatus(str, Enum):
    """Delivery status of a message."""

    SENDING = "sending"
    SENT = "sent"
    ERROR = "error"


class ConnectionStatus(str, Enum):
    """Connectivity to the remote API as last observed."""

    CONNECTED = "connected"
    CONNECTING = "connecting"
    DISCONNECTED = "disconnected"
    ERROR = "error"


# Fields a message still accepts once it is sent
ANNOTATION_FIELDS = frozenset({"rating", "feedback"})


class UsageMetadata(BaseModel):
    """Telemetry attached to an assistant message."""

    model: str | None = Field(default=None, description="Remote model that produced the reply")
    provider: str | None = None
    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    total_tokens: int | None = None
    processing_time_ms: float | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    top_p: float | None = None
    frequency_penalty: float | None = None
    presence_penalty: float | None = None
    personality: str | None = None
    tool: str | None = None


class Message(BaseModel):
    """One turn in a session."""

    id: str = Field(description="Unique within its session")
    role: Role
    content: str
    timestamp: datetime = Field(default_factory=utcnow)
    status: MessageStatus = MessageStatus.SENDING
    attachments: list[dict[str, Any]] = Field(default_factory=list)
    usage: UsageMetadata | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    rating: int | None = Field(default=None, ge=1, le=5)
    feedback: str | None = None

    @field_validator("timestamp")
    @classmethod
    def validate_timestamp(cls, v: datetime) -> datetime:
        return _as_utc(v)

    @field_serializer("timestamp")
    def serialize_datetime(self, value: datetime) -> str:
        return value.isoformat()


class Session(BaseModel):
    """A conversation thread and its configuration metadata.

    ``metadata`` carries the selected agent, workspace, and the engine
    context/settings the conversation was created with.
    """

    id: str
    title: str | None = None
    user_id: str | None = None
    messages: list[Message] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    metadata: dict[str, Any] = Field(default_factory=dict)
    is_active: bool = True

    @field_validator("created_at", "updated_at")
    @classmethod
    def validate_timestamps(cls, v: datetime) -> datetime:
        return _as_utc(v)

    @field_serializer("created_at", "updated_at")
    def serialize_datetime(self, value: datetime) -> str:
        return value.isoformat()

    def find_message(self, message_id: str) -> Message | None:
        for message in self.messages:
            if message.id == message_id:
                return message
        return None


class ChatState(BaseModel):
    """The single authoritative client view of all sessions."""

    sessions: list[Session] = Field(default_factory=list)
    current_session_id: str | None = None
    is_loading: bool = False
    is_typing: bool = False
    error: str | None = None
    connection_status: ConnectionStatus = ConnectionStatus.DISCONNECTED

    @property
    def current_session(self) -> Session | None:
        if self.current_session_id is None:
            return None
        return self.get_session(self.current_session_id)

    @property
    def is_connected(self) -> bool:
        return self.connection_status == ConnectionStatus.CONNECTED

    def get_session(self, session_id: str) -> Session | None:
        for session in self.sessions:
            if session.id == session_id:
                return session
        return None
