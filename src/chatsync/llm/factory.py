from typing import Any

from .base import CompletionClient


def create_completion_client(backend: str = "remote", **config: Any) -> CompletionClient:
    """Create a completion client.

    This factory function hides the instantiation logic for different backends.

    Args:
        backend: Backend type ('remote' or 'openai')
        **config: Backend-specific configuration
            For remote:
                - api: ChatApiClient (required)
                - owns_api: bool (default: False)
            For openai:
                - system_keys: dict[str, str] | None
                - base_urls: dict[str, str | None] | None
                - timeout: float (default: 60.0)

    Returns:
        Initialized completion client

    Raises:
        ValueError: If backend type is not supported
        TypeError: If required configuration is missing

    Examples:
        >>> client = create_completion_client("remote", api=api_client)

        >>> client = create_completion_client(
        ...     "openai",
        ...     system_keys={"openai": "sk-..."}
        ... )
    """
    backend_lower = backend.lower()

    if backend_lower == "remote":
        if "api" not in config:
            raise TypeError("Remote completion backend requires 'api' in config")
        from .remote import RemoteCompletionClient
        return RemoteCompletionClient(**config)

    if backend_lower == "openai":
        from .providers import OpenAICompletionClient
        return OpenAICompletionClient(**config)

    raise ValueError(
        f"Unsupported completion backend: {backend}. "
        f"Supported backends: 'remote', 'openai'"
    )
