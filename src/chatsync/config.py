"""Runtime configuration.

Centralizes defaults and reads overrides from the environment
(optionally from a ``.env`` file).
"""

import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field

# Conversation titles synthesized from the first message
SESSION_TITLE_MAX_LENGTH = 50
DEFAULT_SESSION_TITLE = "Nova Conversa"

# Assistant placeholder shown when a send fails and fallback replies are on
FALLBACK_REPLY_TEXT = "Desculpe, ocorreu um erro ao processar sua mensagem. Por favor, tente novamente."

# Configuration log ring buffer
CONFIG_LOG_MAX_ENTRIES = 100

# Sync defaults
SYNC_INTERVAL_SECONDS = 5 * 60
SYNC_MAX_ATTEMPTS = 3
SYNC_RETRY_DELAY_SECONDS = 2.0
SYNC_VISIBILITY_THRESHOLD_SECONDS = 60.0

# Remote paging
DEFAULT_PAGE_SIZE = 50

# Direct completion backend: system keys per provider
SYSTEM_KEY_ENV_VARS = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "google": "GOOGLE_API_KEY",
    "deepseek": "DEEPSEEK_API_KEY",
    "xai": "XAI_API_KEY",
    "qwen": "QWEN_API_KEY",
    "meta": "GROQ_API_KEY",
}


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class ChatSyncConfig(BaseModel):
    """Settings for one client runtime."""

    api_url: str = Field(default="http://localhost:8000/api/v1", description="Remote API base URL")
    api_token: str | None = Field(default=None, description="Bearer token for the remote API")
    request_timeout: float = Field(default=60.0, gt=0, description="HTTP timeout in seconds")

    store_backend: str = Field(default="sqlite", description="Offline store backend: memory or sqlite")
    store_path: str = Field(default="./chatsync.db", description="SQLite file for the sqlite backend")
    namespace: str = Field(default="chatsync", description="Key prefix in the offline store")

    completion_backend: str = Field(default="remote", description="remote or openai")
    fallback_reply: bool = Field(
        default=False,
        description="Append an apologetic assistant placeholder when a send fails"
    )

    sync_interval: float = Field(default=SYNC_INTERVAL_SECONDS, gt=0)
    sync_max_attempts: int = Field(default=SYNC_MAX_ATTEMPTS, ge=0)
    sync_retry_delay: float = Field(default=SYNC_RETRY_DELAY_SECONDS, gt=0)

    system_keys: dict[str, str] = Field(
        default_factory=dict,
        description="Provider keys used by the direct completion backend"
    )
    log_level: str = Field(default="WARNING")

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "ChatSyncConfig":
        """Build a configuration from ``CHATSYNC_*`` environment variables.

        Args:
            dotenv: Load a ``.env`` file from the working directory first

        Returns:
            Populated configuration (unset variables keep their defaults)
        """
        if dotenv:
            load_dotenv()

        system_keys = {
            provider: os.environ[var]
            for provider, var in SYSTEM_KEY_ENV_VARS.items()
            if os.getenv(var)
        }

        return cls(
            api_url=os.getenv("CHATSYNC_API_URL", "http://localhost:8000/api/v1"),
            api_token=os.getenv("CHATSYNC_API_TOKEN") or None,
            request_timeout=float(os.getenv("CHATSYNC_REQUEST_TIMEOUT", "60")),
            store_backend=os.getenv("CHATSYNC_STORE", "sqlite"),
            store_path=os.getenv("CHATSYNC_STORE_PATH", "./chatsync.db"),
            namespace=os.getenv("CHATSYNC_NAMESPACE", "chatsync"),
            completion_backend=os.getenv("CHATSYNC_COMPLETION_BACKEND", "remote"),
            fallback_reply=_env_bool("CHATSYNC_FALLBACK_REPLY", False),
            sync_interval=float(os.getenv("CHATSYNC_SYNC_INTERVAL", str(SYNC_INTERVAL_SECONDS))),
            sync_max_attempts=int(os.getenv("CHATSYNC_SYNC_MAX_ATTEMPTS", str(SYNC_MAX_ATTEMPTS))),
            sync_retry_delay=float(os.getenv("CHATSYNC_SYNC_RETRY_DELAY", str(SYNC_RETRY_DELAY_SECONDS))),
            system_keys=system_keys,
            log_level=os.getenv("CHATSYNC_LOG_LEVEL", "WARNING").upper(),
        )
