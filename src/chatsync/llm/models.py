from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ChatMessage(BaseModel):
    """Represents one turn of the context sent to the completion endpoint."""

    model_config = ConfigDict(frozen=True)

    role: str = Field(description="Role of the message sender: 'user', 'assistant', or 'system'")
    content: str = Field(description="Content of the message")


class CompletionResult(BaseModel):
    """Response from a completion backend."""

    model_config = ConfigDict(frozen=True)

    content: str = Field(description="Generated text content")
    model: str = Field(description="Remote model that generated the response")
    provider: str = Field(description="Provider that served the request")
    usage: dict[str, int] | None = Field(
        default=None,
        description="Token usage information"
    )
    processing_time_ms: float | None = Field(
        default=None,
        description="Latency reported by the backend, or measured locally"
    )
    finish_reason: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def total_tokens(self) -> int:
        """Total tokens used (0 when the backend reported no usage)."""
        if not self.usage:
            return 0
        return int(self.usage.get("total_tokens", 0))
