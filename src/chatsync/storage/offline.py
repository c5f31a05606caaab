"""Offline cache of sessions and messages.

Sessions are stored as one JSON array under ``offline_conversations``
(without their messages); each session's messages live under
``offline_messages_{session_id}``. Writes are immediate, so a process
restart sees everything written before it.
"""

import json
import logging
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from ..session.models import Message, Session
from .base import KeyValueStore

logger = logging.getLogger(__name__)

CONVERSATIONS_KEY = "offline_conversations"
MESSAGES_KEY_PREFIX = "offline_messages_"


def messages_key(session_id: str) -> str:
    return f"{MESSAGES_KEY_PREFIX}{session_id}"


def merge_messages(remote: list[Message], local: list[Message]) -> list[Message]:
    """Union of two message lists.

    Deduplicates by id (the remote copy wins), then orders by timestamp.
    The sort is stable, so equal timestamps keep remote-then-local order.
    """
    merged: dict[str, Message] = {}
    for message in remote:
        merged.setdefault(message.id, message)
    for message in local:
        merged.setdefault(message.id, message)
    return sorted(merged.values(), key=lambda m: m.timestamp)


class OfflineCache:
    """Durable session and message cache on top of a ``KeyValueStore``.

    Every read degrades to an empty list when the stored payload is
    missing or unreadable; a corrupt entry is logged and skipped, never
    raised to the caller.
    """

    def __init__(self, store: KeyValueStore):
        self._store = store

    @property
    def store(self) -> KeyValueStore:
        return self._store

    def _read_list(self, key: str) -> list[dict[str, Any]]:
        raw = self._store.get(key)
        if raw is None:
            return []
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            logger.warning("Corrupt offline payload under %s, treating as empty", key)
            return []
        if not isinstance(data, list):
            logger.warning("Unexpected offline payload type under %s: %s", key, type(data).__name__)
            return []
        return [item for item in data if isinstance(item, dict)]

    def _write_list(self, key: str, items: list[dict[str, Any]]) -> None:
        self._store.set(key, json.dumps(items))

    # Conversations

    def list_conversations(self) -> list[Session]:
        """Cached sessions, without messages, most recently saved first."""
        sessions = []
        for item in self._read_list(CONVERSATIONS_KEY):
            try:
                sessions.append(Session.model_validate(item))
            except PydanticValidationError:
                logger.warning("Skipping unreadable cached session %s", item.get("id"))
        return sessions

    def get_conversation(self, session_id: str) -> Session | None:
        for session in self.list_conversations():
            if session.id == session_id:
                return session
        return None

    def save_conversation(self, session: Session) -> None:
        """Insert or replace a session record. Messages are not stored here."""
        record = session.model_dump(mode="json", exclude={"messages"})
        items = [i for i in self._read_list(CONVERSATIONS_KEY) if i.get("id") != session.id]
        self._write_list(CONVERSATIONS_KEY, [record, *items])

    def remove_conversation(self, session_id: str) -> bool:
        """Drop a session and its messages. Returns True if it was cached."""
        items = self._read_list(CONVERSATIONS_KEY)
        remaining = [i for i in items if i.get("id") != session_id]
        if len(remaining) != len(items):
            self._write_list(CONVERSATIONS_KEY, remaining)
        had_messages = self._store.delete(messages_key(session_id))
        return len(remaining) != len(items) or had_messages

    def rekey_conversation(self, old_id: str, new_id: str) -> None:
        """Move a cached session (and its messages) to a new id."""
        if old_id == new_id:
            return
        items = self._read_list(CONVERSATIONS_KEY)
        rewritten = []
        for item in items:
            if item.get("id") == old_id:
                item = {**item, "id": new_id}
            if item.get("id") == new_id and any(r.get("id") == new_id for r in rewritten):
                continue
            rewritten.append(item)
        self._write_list(CONVERSATIONS_KEY, rewritten)

        old_messages = self.list_messages(old_id)
        if old_messages:
            merged = merge_messages(self.list_messages(new_id), old_messages)
            self._write_messages(new_id, merged)
        self._store.delete(messages_key(old_id))

    # Messages

    def list_messages(self, session_id: str) -> list[Message]:
        """Cached messages of one session in stored order."""
        messages = []
        for item in self._read_list(messages_key(session_id)):
            try:
                messages.append(Message.model_validate(item))
            except PydanticValidationError:
                logger.warning("Skipping unreadable cached message %s", item.get("id"))
        return messages

    def _write_messages(self, session_id: str, messages: list[Message]) -> None:
        self._write_list(messages_key(session_id), [m.model_dump(mode="json") for m in messages])

    def save_message(self, session_id: str, message: Message) -> None:
        """Append a message, or replace the cached copy with the same id."""
        messages = self.list_messages(session_id)
        for index, existing in enumerate(messages):
            if existing.id == message.id:
                messages[index] = message
                break
        else:
            messages.append(message)
        self._write_messages(session_id, messages)

    def save_messages(self, session_id: str, messages: list[Message]) -> None:
        for message in messages:
            self.save_message(session_id, message)

    def remove_message(self, session_id: str, message_id: str) -> bool:
        messages = self.list_messages(session_id)
        remaining = [m for m in messages if m.id != message_id]
        if len(remaining) == len(messages):
            return False
        if remaining:
            self._write_messages(session_id, remaining)
        else:
            self._store.delete(messages_key(session_id))
        return True

    def rekey_message(self, session_id: str, old_id: str, new_id: str) -> None:
        """Rename a cached message; drops the old copy if ``new_id`` exists."""
        if old_id == new_id:
            return
        messages = self.list_messages(session_id)
        if any(m.id == new_id for m in messages):
            messages = [m for m in messages if m.id != old_id]
        else:
            messages = [m.model_copy(update={"id": new_id}) if m.id == old_id else m for m in messages]
        self._write_messages(session_id, messages)

    def session_ids_with_messages(self) -> list[str]:
        return [key[len(MESSAGES_KEY_PREFIX):] for key in self._store.keys(MESSAGES_KEY_PREFIX)]

    def clear(self) -> None:
        """Remove all cached sessions and messages."""
        for key in self._store.keys(MESSAGES_KEY_PREFIX):
            self._store.delete(key)
        self._store.delete(CONVERSATIONS_KEY)
