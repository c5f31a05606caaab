"""Pytest configuration and shared fixtures."""
import itertools
import json
import re
from datetime import datetime, timezone

import httpx
import pytest

from chatsync.api import ChatApiClient
from chatsync.config import ChatSyncConfig
from chatsync.context import ChatContext
from chatsync.storage import MemoryKeyValueStore
from chatsync.sync import ManualScheduler

API_URL = "http://chat.test/api/v1"


class FakeChatServer:
    """In-memory stand-in for the remote chat API, served via httpx.MockTransport.

    Set ``offline`` to make every request fail at the transport level, or
    put a status code in ``failures`` under a route name to make that route
    answer with it.
    """

    def __init__(self):
        self.conversations: dict[str, dict] = {}
        self.messages: dict[str, list[dict]] = {}
        self.api_keys: dict[str, str] = {}
        self.requests: list[httpx.Request] = []
        self.chat_payloads: list[dict] = []
        self.failures: dict[str, int] = {}
        self.offline = False
        self.reply = "Hi! How can I help?"
        self._ids = itertools.count(1)

    def _next_id(self, prefix: str) -> str:
        return f"{prefix}-{next(self._ids)}"

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).isoformat()

    def requests_to(self, method: str, path_suffix: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path.endswith(path_suffix)]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.offline:
            raise httpx.ConnectError("connection refused", request=request)

        path = request.url.path.removeprefix("/api/v1")
        method = request.method
        body = json.loads(request.content) if request.content else {}

        for pattern, route_method, name in self.ROUTES:
            match = re.fullmatch(pattern, path)
            if match and method == route_method:
                if name in self.failures:
                    return httpx.Response(self.failures[name], json={"detail": f"{name} failed"})
                return getattr(self, f"_{name}")(request, body, *match.groups())

        return httpx.Response(404, json={"detail": "Not Found"})

    ROUTES = [
        (r"/health", "GET", "health"),
        (r"/conversations", "POST", "create_conversation"),
        (r"/conversations", "GET", "list_conversations"),
        (r"/conversations/([^/]+)", "GET", "get_conversation"),
        (r"/conversations/([^/]+)", "DELETE", "delete_conversation"),
        (r"/conversations/([^/]+)/title", "PUT", "update_title"),
        (r"/conversations/([^/]+)/messages", "GET", "list_messages"),
        (r"/conversations/([^/]+)/messages", "POST", "create_message"),
        (r"/llm/chat", "POST", "chat"),
        (r"/user-variables/api-keys", "GET", "get_api_keys"),
        (r"/user-variables/api-keys/([^/]+)", "POST", "set_api_key"),
    ]

    def _health(self, request, body):
        return httpx.Response(200, json={"status": "ok"})

    def _create_conversation(self, request, body):
        conversation = {
            "id": self._next_id("conv"),
            "user_id": "user-1",
            "title": body.get("title"),
            "agent_id": body.get("agent_id"),
            "status": "active",
            "message_count": 0,
            "total_tokens_used": 0,
            "created_at": self._now(),
            "updated_at": self._now(),
            "settings": body.get("settings") or {},
        }
        self.conversations[conversation["id"]] = conversation
        self.messages[conversation["id"]] = []
        return httpx.Response(201, json=conversation)

    def _list_conversations(self, request, body):
        items = list(self.conversations.values())
        return httpx.Response(200, json={"items": items, "total": len(items), "page": 1, "size": 50})

    def _get_conversation(self, request, body, conversation_id):
        if conversation_id not in self.conversations:
            return httpx.Response(404, json={"detail": "Conversation not found"})
        return httpx.Response(200, json=self.conversations[conversation_id])

    def _delete_conversation(self, request, body, conversation_id):
        self.conversations.pop(conversation_id, None)
        self.messages.pop(conversation_id, None)
        return httpx.Response(204)

    def _update_title(self, request, body, conversation_id):
        if conversation_id not in self.conversations:
            return httpx.Response(404, json={"detail": "Conversation not found"})
        self.conversations[conversation_id]["title"] = request.url.params["title"]
        return httpx.Response(200, json=self.conversations[conversation_id])

    def _list_messages(self, request, body, conversation_id):
        if conversation_id not in self.messages:
            return httpx.Response(404, json={"detail": "Conversation not found"})
        return httpx.Response(200, json=self.messages[conversation_id])

    def _create_message(self, request, body, conversation_id):
        if conversation_id not in self.messages:
            return httpx.Response(404, json={"detail": "Conversation not found"})
        message = {
            "id": self._next_id("msg"),
            "conversation_id": conversation_id,
            "role": body.get("role", "user"),
            "content": body["content"],
            "attachments": body.get("attachments") or [],
            "tokens_used": 0,
            "processing_time_ms": 0,
            "created_at": self._now(),
            "metadata": body.get("metadata") or {},
        }
        self.messages[conversation_id].append(message)
        return httpx.Response(201, json=message)

    def _chat(self, request, body):
        self.chat_payloads.append(body)
        return httpx.Response(200, json={
            "content": self.reply,
            "model": body.get("model"),
            "provider": body.get("provider"),
            "usage": {"prompt_tokens": 10, "completion_tokens": 32, "total_tokens": 42},
            "metadata": {"processing_time_ms": 125.0},
            "finish_reason": "stop",
        })

    def _get_api_keys(self, request, body):
        return httpx.Response(200, json=dict(self.api_keys))

    def _set_api_key(self, request, body, provider):
        self.api_keys[provider] = body["value"]
        return httpx.Response(200, json={"provider": provider})


@pytest.fixture
def server():
    """Return a fresh fake chat API."""
    return FakeChatServer()


@pytest.fixture
def transport(server):
    """Return an httpx transport routed to the fake server."""
    return httpx.MockTransport(server.handler)


@pytest.fixture
def api(transport):
    """Return an API client talking to the fake server."""
    return ChatApiClient(API_URL, token="test-token", transport=transport)


@pytest.fixture
def kv_store():
    """Return an empty in-memory key-value store."""
    return MemoryKeyValueStore()


@pytest.fixture
def scheduler():
    """Return a virtual-clock scheduler starting at t=0."""
    return ManualScheduler()


@pytest.fixture
def config():
    """Return a configuration pointing at the fake server."""
    return ChatSyncConfig(api_url=API_URL, api_token="test-token", store_backend="memory")


@pytest.fixture
def context(config, transport, scheduler, kv_store):
    """Return a fully wired ChatContext against the fake server."""
    return ChatContext.from_config(config, transport=transport, scheduler=scheduler, kv_store=kv_store)
