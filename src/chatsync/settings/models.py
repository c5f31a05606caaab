"""Data models for per-request chat configuration."""

from pydantic import BaseModel, ConfigDict, Field


class ChatSettings(BaseModel):
    """Request configuration for one completion call.

    Every field is optional on input; ``resolve()`` returns an instance in
    which all of them are populated.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    model: str | None = Field(default=None, description="Client-facing model identifier")
    remote_model: str | None = Field(default=None, description="Model identifier sent to the endpoint")
    provider: str | None = Field(default=None, description="Provider serving the model")
    tool: str | None = Field(default=None, description="Tool selection")
    personality: str | None = Field(default=None, description="Named personality")
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    max_tokens: int | None = Field(default=None, ge=1)
    top_p: float | None = Field(default=None, ge=0.0, le=1.0)
    frequency_penalty: float | None = Field(default=None, ge=-2.0, le=2.0)
    presence_penalty: float | None = Field(default=None, ge=-2.0, le=2.0)

    @property
    def is_complete(self) -> bool:
        """True when no field is left unset."""
        return all(value is not None for value in self.model_dump().values())

    def merged_with(self, overrides: "ChatSettings | None") -> "ChatSettings":
        """Return a copy where every field set on ``overrides`` wins."""
        if overrides is None:
            return self
        return self.model_copy(update=overrides.model_dump(exclude_none=True))

    def to_request_payload(self) -> dict:
        """Body fields for ``POST /llm/chat``."""
        return {
            "model": self.remote_model,
            "provider": self.provider,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "top_p": self.top_p,
            "frequency_penalty": self.frequency_penalty,
            "presence_penalty": self.presence_penalty,
            "tool": self.tool,
            "personality": self.personality,
        }
