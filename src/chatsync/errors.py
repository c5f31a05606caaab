"""Error taxonomy shared by every layer of chatsync.

Library exceptions (httpx, openai) are translated into these types at the
client boundary so callers only ever handle ``ChatSyncError`` subclasses.
"""

from typing import Any


class ChatSyncError(Exception):
    """Base class for all chatsync errors."""

    retryable: bool = False
    kind: str = "unknown"

    def __init__(self, message: str, *, status_code: int | None = None, detail: Any = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.detail = detail


class NetworkError(ChatSyncError):
    """Transport failure: DNS, refused connection, timeout."""

    retryable = True
    kind = "network"


class AuthenticationError(ChatSyncError):
    """Missing or rejected bearer token or provider credential."""

    kind = "authentication"


class ValidationError(ChatSyncError):
    """Malformed request or settings rejected by the remote side."""

    kind = "validation"


class RateLimitError(ChatSyncError):
    """Remote throttling (HTTP 429)."""

    retryable = True
    kind = "rate_limit"

    def __init__(self, message: str, *, retry_after: float | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class ServerFaultError(ChatSyncError):
    """Remote 5xx response."""

    retryable = True
    kind = "server"


class NotFoundError(ChatSyncError):
    """Remote resource does not exist."""

    kind = "not_found"


class SendError(ChatSyncError):
    """A message send failed after the local state was made consistent.

    ``user_message`` is the message left in ``error`` status so the caller
    can offer a resend; ``__cause__`` holds the underlying failure.
    """

    def __init__(self, message: str, *, user_message: Any = None, cause: ChatSyncError | None = None):
        super().__init__(message)
        self.user_message = user_message
        self.cause = cause
        if cause is not None:
            self.kind = cause.kind
            self.retryable = cause.retryable


def error_for_status(status_code: int, detail: Any = None, retry_after: float | None = None) -> ChatSyncError:
    """Map an HTTP status code onto the error taxonomy.

    Args:
        status_code: HTTP status of the failed response
        detail: Parsed error body, if any
        retry_after: Seconds from a ``Retry-After`` header (429 only)

    Returns:
        The matching ``ChatSyncError`` instance (not raised)
    """
    message = f"HTTP {status_code}"
    if isinstance(detail, dict) and detail.get("detail"):
        message = f"{message}: {detail['detail']}"
    elif isinstance(detail, str) and detail:
        message = f"{message}: {detail}"

    if status_code in (401, 403):
        return AuthenticationError(message, status_code=status_code, detail=detail)
    if status_code == 404:
        return NotFoundError(message, status_code=status_code, detail=detail)
    if status_code == 429:
        return RateLimitError(message, retry_after=retry_after, status_code=status_code, detail=detail)
    if status_code in (400, 409, 422):
        return ValidationError(message, status_code=status_code, detail=detail)
    if status_code >= 500:
        return ServerFaultError(message, status_code=status_code, detail=detail)
    return ChatSyncError(message, status_code=status_code, detail=detail)
