"""Client for the remote chat API."""

from .client import ChatApiClient
from .models import (
    CompletionRequest,
    CompletionResponse,
    ConversationCreate,
    ConversationRecord,
    MessageCreate,
    MessageRecord,
)

__all__ = [
    "ChatApiClient",
    "CompletionRequest",
    "CompletionResponse",
    "ConversationCreate",
    "ConversationRecord",
    "MessageCreate",
    "MessageRecord",
]
