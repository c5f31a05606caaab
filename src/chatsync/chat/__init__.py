"""Sending messages and managing sessions."""

from .pipeline import MessageSendPipeline, SendResult, title_from_text
from .sessions import SessionManager

__all__ = ["MessageSendPipeline", "SendResult", "SessionManager", "title_from_text"]
