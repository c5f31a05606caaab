"""Factory for creating key-value store backends."""

from typing import Any

from .base import KeyValueStore


def create_key_value_store(backend: str = "memory", **config: Any) -> KeyValueStore:
    """Create a key-value store backend.

    Args:
        backend: Backend type ("memory" or "sqlite")
        **config: Backend-specific configuration
            For memory:
                - namespace: str (default: 'chatsync')
            For sqlite:
                - path: str | Path (default: './chatsync.db')
                - namespace: str (default: 'chatsync')

    Returns:
        KeyValueStore instance

    Raises:
        ValueError: If backend type is not supported

    Example:
        >>> store = create_key_value_store("sqlite", path="~/.chatsync/offline.db")
    """
    if backend == "memory":
        from .memory import MemoryKeyValueStore
        return MemoryKeyValueStore(**config)

    if backend == "sqlite":
        from .sqlite import SQLiteKeyValueStore
        return SQLiteKeyValueStore(**config)

    raise ValueError(
        f"Unsupported store backend: {backend}. "
        f"Supported backends: memory, sqlite"
    )
