import time
from typing import TYPE_CHECKING, Any

import openai
from openai import AsyncOpenAI

from ...errors import AuthenticationError, NetworkError, ServerFaultError, ValidationError, error_for_status
from ..base import CompletionClient
from ..models import ChatMessage, CompletionResult

if TYPE_CHECKING:
    from ...settings.credentials import CredentialSet
    from ...settings.models import ChatSettings

# Providers reachable through an OpenAI-compatible Chat Completions API
PROVIDER_BASE_URLS: dict[str, str | None] = {
    "openai": None,
    "deepseek": "https://api.deepseek.com",
    "xai": "https://api.x.ai/v1",
    "qwen": "https://dashscope-intl.aliyuncs.com/compatible-mode/v1",
    "meta": "https://api.groq.com/openai/v1",
}


def _translate(error: openai.OpenAIError) -> Exception:
    if isinstance(error, openai.APIConnectionError):
        return NetworkError(str(error))
    if isinstance(error, openai.APIStatusError):
        retry_after = None
        header = error.response.headers.get("retry-after") if error.response is not None else None
        if header:
            try:
                retry_after = float(header)
            except ValueError:
                retry_after = None
        return error_for_status(error.status_code, error.body, retry_after)
    return NetworkError(str(error))


class OpenAICompletionClient(CompletionClient):
    """Direct completion against OpenAI-compatible providers.

    Hidden design decisions:
    - Base URL per provider
    - AsyncOpenAI client reuse per (provider, key)
    - Key selection: user credential first, then the configured system key
    - Mapping of SDK exceptions onto the chatsync error taxonomy
    """

    def __init__(
        self,
        system_keys: dict[str, str] | None = None,
        base_urls: dict[str, str | None] | None = None,
        timeout: float = 60.0,
        **client_kwargs: Any
    ):
        """Initialize the direct completion client.

        Args:
            system_keys: Provider name to key, used when the caller has no
                key of their own for that provider
            base_urls: Overrides for ``PROVIDER_BASE_URLS``
            timeout: Request timeout in seconds
            **client_kwargs: Additional kwargs for AsyncOpenAI clients
        """
        self._system_keys = dict(system_keys or {})
        self._base_urls = {**PROVIDER_BASE_URLS, **(base_urls or {})}
        self._timeout = timeout
        self._client_kwargs = client_kwargs
        self._clients: dict[tuple[str, str], AsyncOpenAI] = {}

    @property
    def supported_providers(self) -> list[str]:
        return sorted(self._base_urls)

    def _client_for(self, provider: str, api_key: str) -> AsyncOpenAI:
        cache_key = (provider, api_key)
        if cache_key not in self._clients:
            self._clients[cache_key] = AsyncOpenAI(
                api_key=api_key,
                base_url=self._base_urls[provider],
                timeout=self._timeout,
                **self._client_kwargs
            )
        return self._clients[cache_key]

    def _key_for(self, provider: str, credentials: "CredentialSet | None") -> str:
        key = credentials.get(provider) if credentials is not None else None
        key = key or self._system_keys.get(provider)
        if not key:
            raise AuthenticationError(f"No API key available for provider '{provider}'")
        return key

    async def complete(
        self,
        messages: list[ChatMessage],
        settings: "ChatSettings",
        credentials: "CredentialSet | None" = None,
    ) -> CompletionResult:
        provider = settings.provider or "openai"
        if provider not in self._base_urls:
            raise ValidationError(
                f"Provider '{provider}' is not reachable through the direct backend. "
                f"Supported providers: {', '.join(self.supported_providers)}"
            )

        client = self._client_for(provider, self._key_for(provider, credentials))

        request_params: dict[str, Any] = {
            "model": settings.remote_model,
            "messages": [{"role": m.role, "content": m.content} for m in messages],
            "temperature": settings.temperature,
            "top_p": settings.top_p,
            "frequency_penalty": settings.frequency_penalty,
            "presence_penalty": settings.presence_penalty,
        }
        if settings.max_tokens is not None:
            request_params["max_tokens"] = settings.max_tokens

        started = time.perf_counter()
        try:
            completion = await client.chat.completions.create(**request_params)
        except openai.OpenAIError as e:
            raise _translate(e) from e
        elapsed_ms = (time.perf_counter() - started) * 1000

        usage = None
        if completion.usage:
            usage = {
                "prompt_tokens": completion.usage.prompt_tokens,
                "completion_tokens": completion.usage.completion_tokens,
                "total_tokens": completion.usage.total_tokens
            }

        if not completion.choices:
            raise ServerFaultError(f"Provider '{provider}' returned no completion choices")
        choice = completion.choices[0]
        return CompletionResult(
            content=choice.message.content or "",
            model=completion.model,
            provider=provider,
            usage=usage,
            processing_time_ms=elapsed_ms,
            finish_reason=choice.finish_reason,
        )

    async def close(self) -> None:
        """Close every cached OpenAI client."""
        clients, self._clients = list(self._clients.values()), {}
        for client in clients:
            await client.close()
