"""Abstract base class for persisted key-value stores.

The abstraction hides:
- Storage format (SQLite file, process memory)
- Key namespacing
- Connection management

Values are JSON text. Access is synchronous: reads and writes are local
and never suspend the caller.
"""

from abc import ABC, abstractmethod


class KeyValueStore(ABC):
    """Namespaced string-to-string store.

    Every key is stored as ``"{namespace}:{key}"`` so several clients (or
    users) can share one backing file without colliding.
    """

    def __init__(self, namespace: str = "chatsync"):
        self._namespace = namespace

    @property
    def namespace(self) -> str:
        return self._namespace

    def _qualify(self, key: str) -> str:
        return f"{self._namespace}:{key}"

    def _unqualify(self, stored_key: str) -> str:
        return stored_key[len(self._namespace) + 1:]

    @abstractmethod
    def get(self, key: str) -> str | None:
        """Return the stored value, or None if absent."""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store a value, replacing any previous one."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove a key. Returns True if it existed."""

    @abstractmethod
    def keys(self, prefix: str = "") -> list[str]:
        """List keys (without namespace) starting with ``prefix``."""

    def clear(self) -> None:
        """Remove every key in this namespace."""
        for key in self.keys():
            self.delete(key)

    def close(self) -> None:
        """Release resources held by the backend."""

    @property
    @abstractmethod
    def backend_type(self) -> str:
        """Get the backend type identifier."""
