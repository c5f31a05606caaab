"""Async client for the remote chat API.

Every method either returns parsed wire models or raises a
``ChatSyncError`` subclass; httpx exceptions never escape this module.
"""

import logging
from typing import Any

import httpx
from pydantic import BaseModel, ValidationError as PydanticValidationError

from ..config import DEFAULT_PAGE_SIZE
from ..errors import ChatSyncError, NetworkError, NotFoundError, error_for_status
from .models import (
    CompletionRequest,
    CompletionResponse,
    ConversationCreate,
    ConversationRecord,
    MessageCreate,
    MessageRecord,
)

logger = logging.getLogger(__name__)


def _items(payload: Any) -> list[Any]:
    """Rows of a list response: a bare array or a page ``{"items": [...]}``."""
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        items = payload.get("items")
        if isinstance(items, list):
            return items
    return []


def _retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("retry-after")
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


class ChatApiClient:
    """Bearer-authenticated JSON client over ``httpx.AsyncClient``.

    Args:
        base_url: API root, e.g. ``https://host/api/v1``
        token: Bearer token; can be replaced later with ``set_token``
        timeout: Per-request timeout in seconds
        transport: Optional httpx transport (tests pass ``httpx.MockTransport``)
    """

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=timeout,
            transport=transport,
            follow_redirects=True,
            headers={"Content-Type": "application/json"},
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def has_token(self) -> bool:
        return bool(self._token)

    def set_token(self, token: str | None) -> None:
        self._token = token

    def _headers(self) -> dict[str, str]:
        if self._token:
            return {"Authorization": f"Bearer {self._token}"}
        return {}

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        try:
            response = await self._client.request(
                method, path, params=params, json=json, headers=self._headers()
            )
        except httpx.TimeoutException as e:
            raise NetworkError(f"Timed out calling {method} {path}") from e
        except httpx.TransportError as e:
            raise NetworkError(f"Cannot reach {self._base_url}: {e}") from e

        if response.is_error:
            try:
                detail = response.json()
            except ValueError:
                detail = response.text or None
            logger.debug("%s %s failed with %s", method, path, response.status_code)
            raise error_for_status(response.status_code, detail, _retry_after(response))

        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise ChatSyncError(
                f"Invalid JSON from {method} {path}", status_code=response.status_code
            ) from e

    def _parse(self, model: type[BaseModel], payload: Any) -> Any:
        try:
            return model.model_validate(payload)
        except PydanticValidationError as e:
            raise ChatSyncError(f"Unexpected {model.__name__} payload", detail=payload) from e

    async def _list(self, path: str, model: type[BaseModel], params: dict[str, Any]) -> list[Any]:
        try:
            payload = await self._request("GET", path, params=params)
        except NotFoundError:
            # Indistinguishable from an empty page for callers; logged apart for monitoring
            logger.warning("List endpoint %s returned 404, treating as empty", path)
            return []

        records = []
        for row in _items(payload):
            try:
                records.append(model.model_validate(row))
            except PydanticValidationError:
                logger.warning("Skipping malformed %s from %s", model.__name__, path)
        return records

    # Conversations

    async def create_conversation(self, data: ConversationCreate) -> ConversationRecord:
        payload = await self._request("POST", "/conversations", json=data.model_dump(exclude_none=True))
        return self._parse(ConversationRecord, payload)

    async def list_conversations(
        self, page: int = 1, size: int = DEFAULT_PAGE_SIZE
    ) -> list[ConversationRecord]:
        return await self._list("/conversations", ConversationRecord, {"page": page, "size": size})

    async def get_conversation(self, conversation_id: str) -> ConversationRecord:
        payload = await self._request("GET", f"/conversations/{conversation_id}")
        return self._parse(ConversationRecord, payload)

    async def delete_conversation(self, conversation_id: str) -> None:
        await self._request("DELETE", f"/conversations/{conversation_id}")

    async def update_conversation_title(self, conversation_id: str, title: str) -> ConversationRecord | None:
        payload = await self._request(
            "PUT", f"/conversations/{conversation_id}/title", params={"title": title}
        )
        if isinstance(payload, dict) and "id" in payload:
            return self._parse(ConversationRecord, payload)
        return None

    # Messages

    async def list_messages(
        self, conversation_id: str, page: int = 1, size: int = DEFAULT_PAGE_SIZE
    ) -> list[MessageRecord]:
        return await self._list(
            f"/conversations/{conversation_id}/messages", MessageRecord, {"page": page, "size": size}
        )

    async def create_message(self, conversation_id: str, data: MessageCreate) -> MessageRecord:
        payload = await self._request(
            "POST",
            f"/conversations/{conversation_id}/messages",
            json=data.model_dump(mode="json", exclude_none=True),
        )
        return self._parse(MessageRecord, payload)

    # Completion

    async def chat(self, request: CompletionRequest) -> CompletionResponse:
        payload = await self._request("POST", "/llm/chat", json=request.model_dump(exclude_none=True))
        return self._parse(CompletionResponse, payload)

    # User credentials

    async def get_api_keys(self) -> dict[str, str]:
        """User-scoped provider keys.

        Accepts ``{"provider": "key"}``, ``{"api_keys": {...}}`` or a list of
        ``{"provider": ..., "value": ...}`` rows.
        """
        try:
            payload = await self._request("GET", "/user-variables/api-keys")
        except NotFoundError:
            logger.warning("API key endpoint returned 404, treating as no user keys")
            return {}

        if isinstance(payload, dict) and isinstance(payload.get("api_keys"), dict):
            payload = payload["api_keys"]
        if isinstance(payload, dict):
            return {str(k): str(v) for k, v in payload.items() if isinstance(v, str) and v}

        keys = {}
        for row in _items(payload):
            if isinstance(row, dict) and row.get("provider") and row.get("value"):
                keys[str(row["provider"])] = str(row["value"])
        return keys

    async def set_api_key(self, provider: str, value: str) -> None:
        await self._request("POST", f"/user-variables/api-keys/{provider}", json={"value": value})

    # Connectivity

    async def ping(self) -> bool:
        """True if the API answered ``GET /health`` successfully."""
        try:
            await self._request("GET", "/health")
        except ChatSyncError as e:
            logger.debug("Health probe failed: %s", e)
            return False
        return True

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "ChatApiClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
