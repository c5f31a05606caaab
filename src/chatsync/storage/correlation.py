"""Local id to server id correlation.

Items created while the remote store is unreachable get a locally
generated id. Whether an id is still pending is answered by this table,
not by inspecting the id text; the prefix only makes ids readable in logs.
"""

import json
import logging
from uuid import uuid4

from .base import KeyValueStore

logger = logging.getLogger(__name__)

CORRELATION_KEY = "offline_id_map"

LOCAL_PREFIXES = {
    "session": "offline",
    "message": "local",
}


def generate_local_id(kind: str = "message") -> str:
    """A fresh local id, not registered anywhere."""
    prefix = LOCAL_PREFIXES.get(kind, kind)
    return f"{prefix}_{uuid4().hex}"


class CorrelationTable:
    """Persisted map from local ids to server-assigned ids.

    A local id maps to ``None`` until the sync reconciler binds it. Only
    items that are actually waiting for the remote side are registered.
    Message entries are dropped once the server id has been written back
    into the store and the cache; session entries are kept so references
    taken before the rewrite still resolve.
    """

    def __init__(self, store: KeyValueStore):
        self._store = store
        self._entries: dict[str, str | None] = self._load()

    def _load(self) -> dict[str, str | None]:
        raw = self._store.get(CORRELATION_KEY)
        if not raw:
            return {}
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            logger.warning("Corrupt correlation table in store, starting empty")
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): (str(v) if v is not None else None) for k, v in data.items()}

    def _save(self) -> None:
        self._store.set(CORRELATION_KEY, json.dumps(self._entries))

    def new_local_id(self, kind: str = "message") -> str:
        """Generate and register a pending local id for a session or message."""
        local_id = generate_local_id(kind)
        self._entries[local_id] = None
        self._save()
        return local_id

    def register(self, local_id: str) -> None:
        """Track an externally generated id as pending."""
        if local_id not in self._entries:
            self._entries[local_id] = None
            self._save()

    def is_local(self, item_id: str) -> bool:
        """True if the id was generated locally (bound or not)."""
        return item_id in self._entries

    def is_pending(self, item_id: str) -> bool:
        """True if the id is local and has no server id yet."""
        return item_id in self._entries and self._entries[item_id] is None

    def bind(self, local_id: str, remote_id: str) -> None:
        """Record the server id assigned to a local id."""
        self._entries[local_id] = remote_id
        self._save()
        logger.debug("Bound %s -> %s", local_id, remote_id)

    def resolve(self, item_id: str) -> str:
        """Server id for ``item_id`` if bound, else ``item_id`` itself."""
        return self._entries.get(item_id) or item_id

    def forget(self, *local_ids: str) -> None:
        removed = [i for i in local_ids if i in self._entries]
        for local_id in removed:
            del self._entries[local_id]
        if removed:
            self._save()

    def __len__(self) -> int:
        return len(self._entries)

    def pending(self) -> list[str]:
        return [k for k, v in self._entries.items() if v is None]

    def clear(self) -> None:
        self._entries = {}
        self._store.delete(CORRELATION_KEY)
