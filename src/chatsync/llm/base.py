from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

from .models import ChatMessage, CompletionResult

if TYPE_CHECKING:
    from ..settings.credentials import CredentialSet
    from ..settings.models import ChatSettings


class CompletionClient(ABC):
    """Abstract base class for completion backends.

    This module hides the design decision of where a completion is
    computed. Implementations must handle backend-specific details like:
    - Request/response format conversion
    - Which credential is presented to the provider
    - Translating transport errors into the chatsync error taxonomy

    Supports async context manager protocol for proper resource cleanup:
        async with client:
            result = await client.complete(messages, settings, credentials)
    """

    @abstractmethod
    async def complete(
        self,
        messages: list[ChatMessage],
        settings: "ChatSettings",
        credentials: "CredentialSet | None" = None,
    ) -> CompletionResult:
        """Generate an assistant reply.

        Args:
            messages: Conversation context, oldest first, ending with the
                user message being answered
            settings: Fully resolved request settings
            credentials: Resolved provider credentials (may be empty, in
                which case the backend relies on system credentials)

        Returns:
            CompletionResult with generated content and usage metadata

        Raises:
            ChatSyncError: Any failure, already classified
        """

    @abstractmethod
    async def close(self) -> None:
        """Close any open connections or resources."""

    async def __aenter__(self) -> "CompletionClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Close on exit.

        Note: Suppresses "Event loop is closed" errors during cleanup.
        This is a known harmless race condition in httpx/anyio cleanup:
        https://github.com/encode/httpx/issues/914
        """
        try:
            await self.close()
        except RuntimeError as e:
            if "Event loop is closed" not in str(e):
                raise
