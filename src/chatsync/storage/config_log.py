"""Ring buffer of the settings used for recent sends.

Each send records the resolved settings and whether it succeeded. The
buffer keeps the most recent entries only and feeds simple usage
analytics.
"""

import json
import logging
from collections import Counter
from datetime import datetime

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError

from ..config import CONFIG_LOG_MAX_ENTRIES
from ..session.models import utcnow
from ..settings.models import ChatSettings
from .base import KeyValueStore

logger = logging.getLogger(__name__)

CONFIG_LOG_KEY = "chatConfigurationLogs"


class ConfigurationLogEntry(BaseModel):
    """One recorded send."""

    timestamp: datetime = Field(default_factory=utcnow)
    settings: ChatSettings
    success: bool
    error: str | None = Field(default=None, description="Error kind when the send failed")
    session_id: str | None = None


class UsageSummary(BaseModel):
    """Aggregates over the entries currently in the buffer."""

    total_sends: int = 0
    successful_sends: int = 0
    success_rate: float = Field(default=0.0, description="Fraction in [0, 1]")
    most_used_models: dict[str, int] = Field(default_factory=dict)
    most_used_tools: dict[str, int] = Field(default_factory=dict)
    most_used_personalities: dict[str, int] = Field(default_factory=dict)
    temperature_distribution: dict[str, int] = Field(default_factory=dict)
    errors_by_type: dict[str, int] = Field(default_factory=dict)


def _temperature_bucket(value: float | None) -> str:
    if value is None:
        return "unset"
    if value < 0.3:
        return "low"
    if value < 0.8:
        return "medium"
    return "high"


class ConfigurationLog:
    """Persisted, bounded log of ``ConfigurationLogEntry`` records."""

    def __init__(self, store: KeyValueStore, max_entries: int = CONFIG_LOG_MAX_ENTRIES):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._store = store
        self._max_entries = max_entries

    @property
    def max_entries(self) -> int:
        return self._max_entries

    def entries(self) -> list[ConfigurationLogEntry]:
        """Recorded entries, oldest first."""
        raw = self._store.get(CONFIG_LOG_KEY)
        if not raw:
            return []
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            logger.warning("Corrupt configuration log, treating as empty")
            return []
        if not isinstance(data, list):
            return []

        entries = []
        for item in data:
            try:
                entries.append(ConfigurationLogEntry.model_validate(item))
            except PydanticValidationError:
                logger.debug("Skipping unreadable configuration log entry")
        return entries

    def record(
        self,
        settings: ChatSettings,
        success: bool,
        error: str | None = None,
        session_id: str | None = None,
    ) -> ConfigurationLogEntry:
        entry = ConfigurationLogEntry(settings=settings, success=success, error=error, session_id=session_id)
        entries = [*self.entries(), entry][-self._max_entries:]
        self._store.set(CONFIG_LOG_KEY, json.dumps([e.model_dump(mode="json") for e in entries]))
        return entry

    def clear(self) -> None:
        self._store.delete(CONFIG_LOG_KEY)

    def summary(self) -> UsageSummary:
        entries = self.entries()
        if not entries:
            return UsageSummary()

        successes = sum(1 for e in entries if e.success)
        models = Counter(e.settings.model for e in entries if e.settings.model)
        tools = Counter(e.settings.tool for e in entries if e.settings.tool)
        personalities = Counter(e.settings.personality for e in entries if e.settings.personality)
        temperatures = Counter(_temperature_bucket(e.settings.temperature) for e in entries)
        errors = Counter(e.error or "unknown" for e in entries if not e.success)

        return UsageSummary(
            total_sends=len(entries),
            successful_sends=successes,
            success_rate=successes / len(entries),
            most_used_models=dict(models.most_common()),
            most_used_tools=dict(tools.most_common()),
            most_used_personalities=dict(personalities.most_common()),
            temperature_distribution=dict(temperatures),
            errors_by_type=dict(errors.most_common()),
        )
