"""In-memory key-value store.

Data is lost when the process exits. Suitable for tests and for clients
that do not need to survive a restart.
"""

from .base import KeyValueStore


class MemoryKeyValueStore(KeyValueStore):
    """Dict-backed store."""

    def __init__(self, namespace: str = "chatsync", data: dict[str, str] | None = None):
        super().__init__(namespace)
        self._data: dict[str, str] = dict(data or {})

    def get(self, key: str) -> str | None:
        return self._data.get(self._qualify(key))

    def set(self, key: str, value: str) -> None:
        self._data[self._qualify(key)] = value

    def delete(self, key: str) -> bool:
        return self._data.pop(self._qualify(key), None) is not None

    def keys(self, prefix: str = "") -> list[str]:
        qualified = self._qualify(prefix)
        return sorted(self._unqualify(k) for k in self._data if k.startswith(qualified))

    @property
    def backend_type(self) -> str:
        return "memory"
