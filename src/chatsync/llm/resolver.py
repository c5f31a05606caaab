"""Client-facing model names to remote completion-endpoint names.

The table is static; lookups are dictionary hits. Unknown identifiers are
returned unchanged so an unrecognized alias never blocks a send.
"""

from typing import NamedTuple

DEFAULT_PROVIDER = "openai"


class ModelMapping(NamedTuple):
    """One row of the model table."""

    client: str
    remote: str
    provider: str


MODEL_MAPPINGS: tuple[ModelMapping, ...] = (
    # OpenAI ChatGPT
    ModelMapping("chatgpt-4o", "gpt-4o", "openai"),
    ModelMapping("chatgpt-4o-mini", "gpt-4o-mini", "openai"),
    ModelMapping("chatgpt-4o-latest", "gpt-4o", "openai"),
    ModelMapping("chatgpt-4.1", "gpt-4", "openai"),
    ModelMapping("chatgpt-4.1-mini", "gpt-4", "openai"),
    ModelMapping("chatgpt-4.1-nano", "gpt-4", "openai"),
    # OpenAI o-series
    ModelMapping("o1", "o1", "openai"),
    ModelMapping("o1-mini", "o1-mini", "openai"),
    ModelMapping("o3", "o3", "openai"),
    ModelMapping("o3-mini", "o3-mini", "openai"),
    ModelMapping("o3-mini-high", "o3-mini", "openai"),
    ModelMapping("o4-mini", "o1-mini", "openai"),
    ModelMapping("o4-mini-high", "o1-mini", "openai"),
    # Anthropic
    ModelMapping("claude-3.5-haiku", "claude-3-5-haiku-20241022", "anthropic"),
    ModelMapping("claude-3.7-sonnet", "claude-3-5-sonnet-20241022", "anthropic"),
    ModelMapping("claude-3.7-sonnet-thinking", "claude-3-5-sonnet-20241022", "anthropic"),
    ModelMapping("claude-3-opus", "claude-3-opus-20240229", "anthropic"),
    # Google
    ModelMapping("gemini-1.5-flash", "gemini-1.5-flash", "google"),
    ModelMapping("gemini-2.0-flash", "gemini-2.0-flash-exp", "google"),
    ModelMapping("gemini-2.0-flash-lite", "gemini-2.0-flash-thinking-exp", "google"),
    ModelMapping("gemini-2.0-flash-thinking", "gemini-2.0-flash-thinking-exp", "google"),
    ModelMapping("gemini-2.5-flash", "gemini-2.0-flash-exp", "google"),
    ModelMapping("gemini-2.5-pro", "gemini-pro", "google"),
    # DeepSeek
    ModelMapping("deepseek-r1", "deepseek-r1", "deepseek"),
    ModelMapping("deepseek-r1-small", "deepseek-r1-small", "deepseek"),
    ModelMapping("deepseek-v3.1", "deepseek-v3.1", "deepseek"),
    # Qwen
    ModelMapping("qwen-2.5-32b", "qwen-2.5-32b", "qwen"),
    ModelMapping("qwen-2.5-coder-32b", "qwen-2.5-coder-32b", "qwen"),
    ModelMapping("qwen-qwq-32b", "qwen-qwq-32b", "qwen"),
    # xAI
    ModelMapping("grok-2", "grok-2", "xai"),
    ModelMapping("grok-3", "grok-3", "xai"),
    ModelMapping("grok-3-fast", "grok-3-fast", "xai"),
    ModelMapping("grok-3-mini", "grok-3-mini", "xai"),
    ModelMapping("grok-3-mini-fast", "grok-3-mini-fast", "xai"),
    # Meta
    ModelMapping("llama-4-maverick", "llama-4-maverick", "meta"),
)

_CLIENT_TO_REMOTE = {m.client: m.remote for m in MODEL_MAPPINGS}
_CLIENT_TO_PROVIDER = {m.client: m.provider for m in MODEL_MAPPINGS}
_REMOTE_TO_CLIENT: dict[str, str] = {}
for _mapping in MODEL_MAPPINGS:
    # first alias registered for a remote name is canonical
    _REMOTE_TO_CLIENT.setdefault(_mapping.remote, _mapping.client)


def to_remote_model(client_model: str) -> str:
    """Map a client-facing model name to the remote endpoint's name."""
    return _CLIENT_TO_REMOTE.get(client_model, client_model)


def to_client_model(remote_model: str) -> str:
    """Map a remote model name back to its canonical client-facing alias."""
    return _REMOTE_TO_CLIENT.get(remote_model, remote_model)


def provider_of(client_model: str) -> str:
    """Provider serving a client-facing model (``openai`` when unknown)."""
    return _CLIENT_TO_PROVIDER.get(client_model, DEFAULT_PROVIDER)


def is_client_model(name: str) -> bool:
    return name in _CLIENT_TO_REMOTE


def is_remote_model(name: str) -> bool:
    return name in _REMOTE_TO_CLIENT


def models_for_provider(provider: str) -> list[ModelMapping]:
    return [m for m in MODEL_MAPPINGS if m.provider == provider]


def all_mappings() -> list[ModelMapping]:
    return list(MODEL_MAPPINGS)
