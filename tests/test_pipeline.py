"""Tests for the message send pipeline against a fake chat API."""
import logging

import pytest

from chatsync.chat import title_from_text
from chatsync.config import DEFAULT_SESSION_TITLE, FALLBACK_REPLY_TEXT
from chatsync.context import ChatContext
from chatsync.errors import NetworkError, NotFoundError, SendError, ServerFaultError, ValidationError
from chatsync.llm import CompletionClient, CompletionResult
from chatsync.session import MessageStatus, Role


def chat_messages(server, index: int = -1) -> list[dict]:
    return server.chat_payloads[index]["messages"]


class ScriptedCompletion(CompletionClient):
    """Completion backend that runs an optional hook, then replies or raises."""

    def __init__(self, error: Exception | None = None):
        self.error = error
        self.before = None

    async def complete(self, messages, settings, credentials=None):
        if self.before is not None:
            await self.before()
        if self.error is not None:
            raise self.error
        return CompletionResult(content="Scripted reply", model="gpt-4o", provider="openai")

    async def close(self):
        pass


def scripted_context(config, transport, scheduler, kv_store, completion: ScriptedCompletion) -> ChatContext:
    return ChatContext.from_config(
        config, transport=transport, scheduler=scheduler, kv_store=kv_store, completion=completion
    )


class TestTitleFromText:
    """Tests for session titles synthesized from the first message."""

    def test_short_text(self):
        assert title_from_text("Hello") == "Hello"

    def test_whitespace_is_collapsed(self):
        assert title_from_text("  What   is\nasyncio?  ") == "What is asyncio?"

    def test_long_text_is_truncated(self):
        assert title_from_text("x" * 80) == "x" * 50

    def test_blank_text(self):
        assert title_from_text("   ") == DEFAULT_SESSION_TITLE


class TestSendSuccess:
    """Tests for the happy path."""

    @pytest.mark.asyncio
    async def test_hello(self, context, server):
        """Test a first send: new session, two persisted messages."""
        result = await context.pipeline.send("Hello")

        session = context.store.get_session(result.session_id)
        assert session.title == "Hello"
        assert context.store.state.current_session_id == result.session_id
        assert result.session_id in server.conversations

        messages = session.messages
        assert [m.role for m in messages] == [Role.USER, Role.ASSISTANT]
        assert all(m.status == MessageStatus.SENT for m in messages)
        assert messages[1].content == server.reply

        assert result.persisted
        assert [m.id for m in messages] == [m["id"] for m in server.messages[result.session_id]]
        assert result.user_message.id == messages[0].id
        assert result.assistant_message.id == messages[1].id

        usage = result.assistant_message.usage
        assert usage.total_tokens == 42
        assert usage.prompt_tokens == 10
        assert usage.processing_time_ms == 125.0
        assert usage.model == "gpt-4o"
        assert usage.temperature == 0.7

        assert chat_messages(server) == [{"role": "user", "content": "Hello"}]
        assert server.chat_payloads[0]["model"] == "gpt-4o"
        assert server.chat_payloads[0]["provider"] == "openai"

        state = context.store.state
        assert not state.is_loading
        assert not state.is_typing
        assert state.error is None

    @pytest.mark.asyncio
    async def test_persisted_messages_carry_client_id(self, context, server):
        """Test that the local id travels with the persisted message."""
        result = await context.pipeline.send("Hello")

        client_ids = [m["metadata"]["client_message_id"] for m in server.messages[result.session_id]]
        assert all(cid.startswith("local_") for cid in client_ids)
        assert not any(context.correlation.is_local(cid) for cid in client_ids)

    @pytest.mark.asyncio
    async def test_online_sends_leave_correlation_table_empty(self, context):
        """Test that messages persisted right away are never tracked as pending."""
        for i in range(5):
            await context.pipeline.send(f"Message {i}")

        assert len(context.correlation) == 0
        assert context.correlation.pending() == []

    @pytest.mark.asyncio
    async def test_follow_up_uses_current_session(self, context, server):
        """Test that a second send continues the session with full context."""
        first = await context.pipeline.send("Hello")
        second = await context.pipeline.send("And then?")

        assert second.session_id == first.session_id
        assert len(server.conversations) == 1
        assert [m["role"] for m in chat_messages(server)] == ["user", "assistant", "user"]

    @pytest.mark.asyncio
    async def test_settings_layering(self, context, server):
        """Test defaults from configure() and per-call overrides."""
        context.pipeline.configure({"model": "grok-3"})
        await context.pipeline.send("Hi", settings={"personality": "criativa"})

        payload = server.chat_payloads[-1]
        assert payload["model"] == "grok-3"
        assert payload["provider"] == "xai"
        assert payload["temperature"] == 0.9

    @pytest.mark.asyncio
    async def test_invalid_override_is_dropped(self, context, server):
        """Test that an invalid per-call field falls back to its default."""
        await context.pipeline.send("Hi", settings={"temperature": 7, "max_tokens": 99})

        payload = server.chat_payloads[-1]
        assert payload["temperature"] == 0.7
        assert payload["max_tokens"] == 99

    @pytest.mark.asyncio
    async def test_explicit_key_is_forwarded(self, context, server):
        """Test that a per-call key reaches the completion endpoint."""
        await context.pipeline.send("Hi", explicit_keys={"openai": "sk-user"})
        assert server.chat_payloads[-1]["api_key"] == "sk-user"

    @pytest.mark.asyncio
    async def test_stored_key_for_other_provider_is_not_forwarded(self, context, server, caplog):
        """Test the partial-credential case: warn, then rely on system keys."""
        context.credential_store.replace({"openai": "sk-user"})

        with caplog.at_level(logging.WARNING, logger="chatsync.chat.pipeline"):
            await context.pipeline.send("Hi", settings={"model": "claude-3.7-sonnet"})

        payload = server.chat_payloads[-1]
        assert payload["provider"] == "anthropic"
        assert "api_key" not in payload
        assert "Missing credentials for anthropic" in caplog.text

    @pytest.mark.asyncio
    async def test_attachments_are_kept(self, context, server):
        """Test that attachments are stored and persisted."""
        attachment = {"name": "notes.txt", "type": "text/plain"}
        result = await context.pipeline.send("See attached", attachments=[attachment])

        assert result.user_message.attachments == [attachment]
        assert server.messages[result.session_id][0]["attachments"] == [attachment]

    @pytest.mark.asyncio
    async def test_success_is_logged(self, context):
        """Test that the configuration log records the send."""
        await context.pipeline.send("Hi", settings={"model": "o3"})

        entries = context.config_log.entries()
        assert len(entries) == 1
        assert entries[0].success
        assert entries[0].settings.model == "o3"


class TestSendFailure:
    """Tests for completion failures."""

    @pytest.mark.asyncio
    async def test_failed_completion(self, context, server):
        """Test that a failure leaves one errored user message and raises."""
        server.failures["chat"] = 500

        with pytest.raises(SendError) as exc_info:
            await context.pipeline.send("Hello")

        error = exc_info.value
        assert isinstance(error.cause, ServerFaultError)
        assert isinstance(error.__cause__, ServerFaultError)
        assert error.kind == "server"
        assert error.retryable

        session = context.store.current_session
        assert len(session.messages) == 1
        assert session.messages[0].role == Role.USER
        assert session.messages[0].status == MessageStatus.ERROR
        assert error.user_message.id == session.messages[0].id

        state = context.store.state
        assert "chat failed" in state.error
        assert not state.is_loading
        assert not state.is_typing

    @pytest.mark.asyncio
    async def test_failed_message_is_cached_not_persisted(self, context, server):
        """Test that the errored message survives locally only."""
        server.failures["chat"] = 500

        with pytest.raises(SendError) as exc_info:
            await context.pipeline.send("Hello")

        session_id = context.store.state.current_session_id
        cached = context.cache.list_messages(session_id)
        assert [m.id for m in cached] == [exc_info.value.user_message.id]
        assert cached[0].status == MessageStatus.ERROR
        assert server.messages[session_id] == []

    @pytest.mark.asyncio
    async def test_failure_is_logged(self, context, server):
        """Test that the configuration log records the error kind."""
        server.failures["chat"] = 429

        with pytest.raises(SendError):
            await context.pipeline.send("Hello")

        assert context.config_log.summary().errors_by_type == {"rate_limit": 1}

    @pytest.mark.asyncio
    async def test_unexpected_backend_exception(self, config, transport, scheduler, kv_store, server):
        """Test that an exception outside the taxonomy still fails the send cleanly."""
        completion = ScriptedCompletion(error=IndexError("list index out of range"))
        context = scripted_context(config, transport, scheduler, kv_store, completion)

        with pytest.raises(SendError) as exc_info:
            await context.pipeline.send("Hello")

        error = exc_info.value
        assert isinstance(error.__cause__, IndexError)
        assert error.kind == "unknown"
        assert not error.retryable

        session = context.store.current_session
        assert [m.status for m in session.messages] == [MessageStatus.ERROR]
        assert error.user_message.status == MessageStatus.ERROR
        assert context.cache.list_messages(session.id)[0].status == MessageStatus.ERROR
        assert context.config_log.summary().errors_by_type == {"unknown": 1}

        state = context.store.state
        assert state.error is not None
        assert not state.is_loading
        assert not state.is_typing

    @pytest.mark.asyncio
    async def test_fallback_reply(self, config, transport, scheduler, kv_store, server):
        """Test the optional apologetic placeholder."""
        context = ChatContext.from_config(
            config.model_copy(update={"fallback_reply": True}),
            transport=transport,
            scheduler=scheduler,
            kv_store=kv_store,
        )
        server.failures["chat"] = 503

        with pytest.raises(SendError):
            await context.pipeline.send("Hello")

        messages = context.store.current_session.messages
        assert [m.role for m in messages] == [Role.USER, Role.ASSISTANT]
        assert messages[1].content == FALLBACK_REPLY_TEXT
        assert messages[1].status == MessageStatus.ERROR
        assert messages[1].metadata["fallback"]

        del server.failures["chat"]
        await context.pipeline.send("Hello again")
        assert chat_messages(server) == [{"role": "user", "content": "Hello again"}]

    @pytest.mark.asyncio
    async def test_empty_text(self, context, server):
        """Test that blank messages are rejected before anything happens."""
        with pytest.raises(ValidationError):
            await context.pipeline.send("   ")

        assert context.store.sessions == []
        assert server.requests == []

    @pytest.mark.asyncio
    async def test_unknown_session(self, context):
        """Test that sending to an unknown session is an error."""
        with pytest.raises(NotFoundError):
            await context.pipeline.send("Hi", session_id="ghost")

        assert context.store.sessions == []


class TestResend:
    """Tests for resending a failed message."""

    @pytest.mark.asyncio
    async def test_resend_after_failure(self, context, server):
        """Test that a resend gets a new id and leaves the original untouched."""
        server.failures["chat"] = 500
        with pytest.raises(SendError) as exc_info:
            await context.pipeline.send("Hello")
        failed = exc_info.value.user_message
        session_id = context.store.state.current_session_id

        del server.failures["chat"]
        result = await context.pipeline.resend(session_id, failed.id)

        assert result.user_message.id != failed.id
        assert result.user_message.content == "Hello"

        messages = context.store.list_messages(session_id)
        assert [m.status for m in messages] == [MessageStatus.ERROR, MessageStatus.SENT, MessageStatus.SENT]
        assert messages[0].id == failed.id
        assert chat_messages(server) == [{"role": "user", "content": "Hello"}]

    @pytest.mark.asyncio
    async def test_resend_unknown_message(self, context):
        """Test that resending a missing message is an error."""
        result = await context.pipeline.send("Hello")

        with pytest.raises(NotFoundError):
            await context.pipeline.resend(result.session_id, "ghost")

    @pytest.mark.asyncio
    async def test_resend_assistant_message(self, context):
        """Test that only user messages can be resent."""
        result = await context.pipeline.send("Hello")

        with pytest.raises(ValidationError):
            await context.pipeline.resend(result.session_id, result.assistant_message.id)


class TestOfflineSends:
    """Tests for sends while the remote store is unreachable."""

    @pytest.mark.asyncio
    async def test_local_session_when_create_fails(self, context, server):
        """Test that a session is created locally and messages are queued."""
        server.failures["create_conversation"] = 503

        result = await context.pipeline.send("Draft")

        assert result.session_id.startswith("offline_")
        assert context.correlation.is_pending(result.session_id)
        assert not result.persisted
        assert server.requests_to("POST", "/messages") == []

        cached = context.cache.get_conversation(result.session_id)
        assert cached.title == "Draft"
        queued = context.cache.list_messages(result.session_id)
        assert [m.id for m in queued] == [result.user_message.id, result.assistant_message.id]
        assert all(m.status == MessageStatus.SENT for m in queued)
        assert context.outbound.has_pending()

    @pytest.mark.asyncio
    async def test_persist_failure_queues_messages(self, context, server):
        """Test that a failed persist keeps both messages and queues them."""
        server.failures["create_message"] = 500

        result = await context.pipeline.send("Hello")

        assert not result.persisted
        assert result.user_message.status == MessageStatus.SENT
        assert context.correlation.is_pending(result.user_message.id)
        assert len(context.cache.list_messages(result.session_id)) == 2
        assert context.cache.get_conversation(result.session_id) is not None

    @pytest.mark.asyncio
    async def test_fully_offline(self, context, server):
        """Test that with no network the send fails but nothing is lost."""
        server.offline = True

        with pytest.raises(SendError) as exc_info:
            await context.pipeline.send("Hello")

        assert isinstance(exc_info.value.cause, NetworkError)
        session_id = context.store.state.current_session_id
        assert context.correlation.is_pending(session_id)
        assert context.cache.list_messages(session_id)[0].status == MessageStatus.ERROR
        assert not context.correlation.is_local(exc_info.value.user_message.id)
        assert context.correlation.pending() == [session_id]

    @pytest.mark.asyncio
    async def test_session_synced_during_completion(self, config, transport, scheduler, kv_store, server):
        """Test a reply arriving after outbound sync moved the session to its server id."""
        completion = ScriptedCompletion()
        context = scripted_context(config, transport, scheduler, kv_store, completion)
        server.failures["create_conversation"] = 503

        async def reconnect():
            del server.failures["create_conversation"]
            report = await context.outbound.run()
            assert report.sessions_synced == 1

        completion.before = reconnect

        result = await context.pipeline.send("Draft")

        remote_id = next(iter(server.conversations))
        assert result.session_id == remote_id
        assert result.persisted
        assert context.store.state.current_session_id == remote_id

        messages = context.store.list_messages(remote_id)
        assert [(m.role, m.status) for m in messages] == [
            (Role.USER, MessageStatus.SENT),
            (Role.ASSISTANT, MessageStatus.SENT),
        ]
        assert [m.id for m in messages] == [result.user_message.id, result.assistant_message.id]
        assert [m["content"] for m in server.messages[remote_id]] == ["Draft", "Scripted reply"]

    @pytest.mark.asyncio
    async def test_session_synced_before_failure(self, config, transport, scheduler, kv_store, server):
        """Test that a failure after the session was synced marks the message under its new id."""
        completion = ScriptedCompletion(error=NetworkError("connection reset"))
        context = scripted_context(config, transport, scheduler, kv_store, completion)
        server.failures["create_conversation"] = 503

        async def reconnect():
            del server.failures["create_conversation"]
            await context.outbound.run()

        completion.before = reconnect

        with pytest.raises(SendError):
            await context.pipeline.send("Draft")

        remote_id = next(iter(server.conversations))
        assert [m.status for m in context.store.list_messages(remote_id)] == [MessageStatus.ERROR]
        assert context.cache.list_messages(remote_id)[0].status == MessageStatus.ERROR
