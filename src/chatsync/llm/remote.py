import time
from typing import TYPE_CHECKING, Any

from ..api.models import CompletionRequest
from .base import CompletionClient
from .models import ChatMessage, CompletionResult

if TYPE_CHECKING:
    from ..api.client import ChatApiClient
    from ..settings.credentials import CredentialSet
    from ..settings.models import ChatSettings


class RemoteCompletionClient(CompletionClient):
    """Completion through the remote API's ``POST /llm/chat`` endpoint.

    Hidden design decisions:
    - Request body layout of the remote endpoint
    - Where the provider credential travels (only a user-supplied key is
      forwarded; otherwise the remote side uses its system key)
    - Latency fallback when the endpoint reports none
    """

    def __init__(self, api: "ChatApiClient", owns_api: bool = False):
        """Initialize the remote completion client.

        Args:
            api: Shared API client
            owns_api: Close ``api`` when this client is closed
        """
        self._api = api
        self._owns_api = owns_api

    async def complete(
        self,
        messages: list[ChatMessage],
        settings: "ChatSettings",
        credentials: "CredentialSet | None" = None,
    ) -> CompletionResult:
        api_key = None
        if credentials is not None and settings.provider:
            api_key = credentials.get(settings.provider)

        request = CompletionRequest(
            messages=[{"role": m.role, "content": m.content} for m in messages],
            api_key=api_key,
            **settings.to_request_payload(),
        )

        started = time.perf_counter()
        response = await self._api.chat(request)
        elapsed_ms = (time.perf_counter() - started) * 1000

        metadata: dict[str, Any] = dict(response.metadata)
        processing_time = metadata.get("processing_time_ms")
        if not isinstance(processing_time, (int, float)):
            processing_time = elapsed_ms

        usage = None
        if response.usage:
            usage = {k: int(v) for k, v in response.usage.items() if isinstance(v, (int, float))}

        return CompletionResult(
            content=response.content,
            model=response.model or settings.remote_model or "",
            provider=response.provider or settings.provider or "",
            usage=usage,
            processing_time_ms=float(processing_time),
            finish_reason=response.finish_reason,
            metadata=metadata,
        )

    async def close(self) -> None:
        if self._owns_api:
            await self._api.close()
