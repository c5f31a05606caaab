"""Fill partial chat settings with session defaults.

``resolve`` is pure and total: any partial input, including ``None``,
yields fully populated settings.
"""

from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from ..llm.resolver import provider_of, to_remote_model
from .models import ChatSettings

DEFAULT_MODEL = "chatgpt-4o"
DEFAULT_TOOL = "tools"
DEFAULT_PERSONALITY = "natural"
DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 2048
DEFAULT_TOP_P = 1.0
DEFAULT_FREQUENCY_PENALTY = 0.0
DEFAULT_PRESENCE_PENALTY = 0.0

PERSONALITY_TEMPERATURES: dict[str, float] = {
    "sistematica": 0.1,
    "objetiva": 0.3,
    "natural": 0.7,
    "criativa": 0.9,
    "imaginativa": 1.0,
}


def get_temperature_from_personality(personality: str | None) -> float:
    """Sampling temperature for a named personality (0.7 if unknown)."""
    if not personality:
        return DEFAULT_TEMPERATURE
    return PERSONALITY_TEMPERATURES.get(personality.lower(), DEFAULT_TEMPERATURE)


def _coerce(partial: ChatSettings | Mapping[str, Any] | None) -> ChatSettings:
    if partial is None:
        return ChatSettings()
    if isinstance(partial, ChatSettings):
        return partial
    try:
        return ChatSettings.model_validate(dict(partial))
    except PydanticValidationError:
        # keep only the fields that validate on their own
        kept: dict[str, Any] = {}
        for key, value in partial.items():
            try:
                ChatSettings.model_validate({key: value})
            except PydanticValidationError:
                continue
            kept[key] = value
        return ChatSettings.model_validate(kept)


def resolve(partial: ChatSettings | Mapping[str, Any] | None = None) -> ChatSettings:
    """Resolve partial settings into a complete ``ChatSettings``.

    Order of resolution:
    1. model defaults to ``DEFAULT_MODEL``
    2. remote model and provider derive from the model table (an explicit
       provider is kept)
    3. an explicit temperature is used verbatim, otherwise it comes from
       the personality table
    4. remaining sampling parameters take fixed defaults

    Args:
        partial: Caller settings; a mapping with invalid values keeps only
            the valid fields

    Returns:
        Settings with every field populated
    """
    settings = _coerce(partial)

    model = settings.model or DEFAULT_MODEL
    personality = settings.personality or DEFAULT_PERSONALITY
    temperature = (
        settings.temperature
        if settings.temperature is not None
        else get_temperature_from_personality(personality)
    )

    return ChatSettings(
        model=model,
        remote_model=settings.remote_model or to_remote_model(model),
        provider=settings.provider or provider_of(model),
        tool=settings.tool or DEFAULT_TOOL,
        personality=personality,
        temperature=temperature,
        max_tokens=settings.max_tokens if settings.max_tokens is not None else DEFAULT_MAX_TOKENS,
        top_p=settings.top_p if settings.top_p is not None else DEFAULT_TOP_P,
        frequency_penalty=(
            settings.frequency_penalty
            if settings.frequency_penalty is not None
            else DEFAULT_FREQUENCY_PENALTY
        ),
        presence_penalty=(
            settings.presence_penalty
            if settings.presence_penalty is not None
            else DEFAULT_PRESENCE_PENALTY
        ),
    )
