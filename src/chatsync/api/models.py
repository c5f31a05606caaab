"""Wire formats of the remote chat API.

Records are parsed leniently (unknown fields ignored) and converted into
the client-side ``Session``/``Message`` models at the edge.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ..session.models import Message, MessageStatus, Role, Session, UsageMetadata, utcnow


class ConversationRecord(BaseModel):
    """A conversation as returned by ``/conversations``."""

    model_config = ConfigDict(extra="ignore")

    id: str
    user_id: str | None = None
    agent_id: str | None = None
    workspace_id: str | None = None
    title: str | None = None
    status: str = "active"
    message_count: int = 0
    total_tokens_used: int = 0
    last_message_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    context: dict[str, Any] | None = None
    settings: dict[str, Any] | None = None

    def to_session(self) -> Session:
        created = self.created_at or utcnow()
        metadata: dict[str, Any] = {
            "agent_id": self.agent_id,
            "workspace_id": self.workspace_id,
            "message_count": self.message_count,
            "total_tokens_used": self.total_tokens_used,
        }
        if self.context is not None:
            metadata["context"] = self.context
        if self.settings is not None:
            metadata["settings"] = self.settings
        return Session(
            id=self.id,
            title=self.title,
            user_id=self.user_id,
            created_at=created,
            updated_at=self.updated_at or self.last_message_at or created,
            metadata={k: v for k, v in metadata.items() if v is not None},
            is_active=self.status == "active",
        )


class MessageRecord(BaseModel):
    """A stored message as returned by ``/conversations/{id}/messages``."""

    model_config = ConfigDict(extra="ignore")

    id: str
    conversation_id: str | None = None
    role: Role = Role.USER
    content: str = ""
    attachments: list[dict[str, Any]] = Field(default_factory=list)
    model_used: str | None = None
    tokens_used: int = 0
    processing_time_ms: float = 0
    created_at: datetime | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    def to_message(self) -> Message:
        """Convert to a client message; anything stored remotely is ``sent``."""
        usage = None
        if self.role == Role.ASSISTANT and (self.model_used or self.tokens_used):
            usage = UsageMetadata(
                model=self.model_used,
                total_tokens=self.tokens_used,
                processing_time_ms=self.processing_time_ms,
            )
        return Message(
            id=self.id,
            role=self.role,
            content=self.content,
            timestamp=self.created_at or utcnow(),
            status=MessageStatus.SENT,
            attachments=self.attachments,
            usage=usage,
            metadata=self.metadata,
        )


class ConversationCreate(BaseModel):
    """Body of ``POST /conversations``."""

    title: str | None = None
    agent_id: str | None = None
    workspace_id: str | None = None
    context: dict[str, Any] = Field(default_factory=dict)
    settings: dict[str, Any] = Field(default_factory=dict)


class MessageCreate(BaseModel):
    """Body of ``POST /conversations/{id}/messages``.

    ``metadata.client_message_id`` carries the locally generated id so a
    retried persist can be recognized by the remote side.
    """

    content: str
    role: Role = Role.USER
    attachments: list[dict[str, Any]] | None = None
    metadata: dict[str, Any] | None = None


class CompletionRequest(BaseModel):
    """Body of ``POST /llm/chat``."""

    messages: list[dict[str, str]]
    model: str | None = None
    provider: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    top_p: float | None = None
    frequency_penalty: float | None = None
    presence_penalty: float | None = None
    tool: str | None = None
    personality: str | None = None
    api_key: str | None = Field(default=None, description="User credential for the provider, if any")


class CompletionResponse(BaseModel):
    """Response of ``POST /llm/chat``."""

    model_config = ConfigDict(extra="ignore")

    content: str
    model: str | None = None
    provider: str | None = None
    usage: dict[str, Any] | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    finish_reason: str | None = None
