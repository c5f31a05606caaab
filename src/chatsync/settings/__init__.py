"""Request settings and credential resolution."""

from .credentials import (
    CredentialFallbackPolicy,
    CredentialResolver,
    CredentialSet,
    CredentialSource,
    CredentialStore,
    CredentialValidation,
    validate,
)
from .models import ChatSettings
from .resolver import PERSONALITY_TEMPERATURES, get_temperature_from_personality, resolve

__all__ = [
    "ChatSettings",
    "CredentialFallbackPolicy",
    "CredentialResolver",
    "CredentialSet",
    "CredentialSource",
    "CredentialStore",
    "CredentialValidation",
    "PERSONALITY_TEMPERATURES",
    "get_temperature_from_personality",
    "resolve",
    "validate",
]
