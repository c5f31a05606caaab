"""Local persistence: key-value backends and the caches built on them."""

from .base import KeyValueStore
from .config_log import ConfigurationLog, ConfigurationLogEntry, UsageSummary
from .correlation import CorrelationTable, generate_local_id
from .factory import create_key_value_store
from .memory import MemoryKeyValueStore
from .offline import OfflineCache, merge_messages
from .sqlite import SQLiteKeyValueStore

__all__ = [
    "ConfigurationLog",
    "ConfigurationLogEntry",
    "CorrelationTable",
    "KeyValueStore",
    "MemoryKeyValueStore",
    "OfflineCache",
    "SQLiteKeyValueStore",
    "UsageSummary",
    "create_key_value_store",
    "generate_local_id",
    "merge_messages",
]
