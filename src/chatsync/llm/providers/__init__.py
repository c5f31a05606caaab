from .openai import PROVIDER_BASE_URLS, OpenAICompletionClient

__all__ = ["OpenAICompletionClient", "PROVIDER_BASE_URLS"]
