from .base import CompletionClient
from .factory import create_completion_client
from .models import ChatMessage, CompletionResult
from .resolver import (
    DEFAULT_PROVIDER,
    MODEL_MAPPINGS,
    ModelMapping,
    all_mappings,
    is_client_model,
    is_remote_model,
    models_for_provider,
    provider_of,
    to_client_model,
    to_remote_model,
)

__all__ = [
    "CompletionClient",
    "create_completion_client",
    "ChatMessage",
    "CompletionResult",
    "DEFAULT_PROVIDER",
    "MODEL_MAPPINGS",
    "ModelMapping",
    "all_mappings",
    "is_client_model",
    "is_remote_model",
    "models_for_provider",
    "provider_of",
    "to_client_model",
    "to_remote_model",
]
