"""Tests for session lifecycle management."""
import pytest

from chatsync.api import ConversationCreate, MessageCreate
from chatsync.session import Message, MessageStatus, Role


class TestCreateAndLoad:
    """Tests for creating and listing sessions."""

    @pytest.mark.asyncio
    async def test_create_session_remotely(self, context, server):
        """Test that a created session is remote and current."""
        session = await context.sessions.create_session("Planning", agent_id="agent-1")

        assert session.id in server.conversations
        assert session.metadata["agent_id"] == "agent-1"
        assert context.store.current_session.id == session.id
        assert not context.correlation.is_local(session.id)

    @pytest.mark.asyncio
    async def test_create_session_offline(self, context, server):
        """Test that an unreachable API yields a pending local session."""
        server.offline = True
        session = await context.sessions.create_session("Planning", workspace_id="ws-1")

        assert context.correlation.is_pending(session.id)
        assert context.cache.get_conversation(session.id).metadata["workspace_id"] == "ws-1"

    @pytest.mark.asyncio
    async def test_load_sessions_merges_remote_and_offline(self, context, server, api):
        """Test that offline-only sessions are listed next to remote ones."""
        await api.create_conversation(ConversationCreate(title="remote"))
        server.failures["create_conversation"] = 503
        offline = await context.sessions.create_session("offline")
        context.store.reset()

        sessions = await context.sessions.load_sessions()

        assert {s.title for s in sessions} == {"remote", "offline"}
        assert sessions[0].id == offline.id
        assert context.store.state.current_session_id is None

    @pytest.mark.asyncio
    async def test_load_sessions_keeps_current_and_messages(self, context):
        """Test that reloading preserves the selection and loaded messages."""
        result = await context.pipeline.send("Hello")
        await context.sessions.create_session("Other")
        context.store.set_current_session(result.session_id)

        await context.sessions.load_sessions()

        assert context.store.state.current_session_id == result.session_id
        assert len(context.store.list_messages(result.session_id)) == 2

    @pytest.mark.asyncio
    async def test_load_sessions_offline_uses_cache(self, context, server):
        """Test that a failed listing falls back to cached sessions."""
        server.offline = True
        offline = await context.sessions.create_session("cached")
        context.store.reset()

        sessions = await context.sessions.load_sessions()

        assert [s.id for s in sessions] == [offline.id]
        assert context.store.state.error is not None
        assert not context.store.state.is_loading


class TestSwitchSession:
    """Tests for switching sessions."""

    @pytest.mark.asyncio
    async def test_switch_loads_remote_messages(self, context, api):
        """Test that switching to a remote-only session pulls its messages."""
        conversation = await api.create_conversation(ConversationCreate(title="elsewhere"))
        await api.create_message(conversation.id, MessageCreate(content="from another device"))

        session = await context.sessions.switch_session(conversation.id)

        assert session.title == "elsewhere"
        assert [m.content for m in session.messages] == ["from another device"]
        assert context.store.state.current_session_id == conversation.id

    @pytest.mark.asyncio
    async def test_switch_merges_cached_messages(self, context, server):
        """Test that queued local messages show up next to remote ones."""
        result = await context.pipeline.send("Hello")
        failed = Message(id="local_x", role=Role.USER, content="unsent", status=MessageStatus.ERROR)
        context.cache.save_message(result.session_id, failed)
        context.store.reset()

        session = await context.sessions.switch_session(result.session_id)

        assert [m.content for m in session.messages] == ["Hello", server.reply, "unsent"]

    @pytest.mark.asyncio
    async def test_switch_offline_uses_store(self, context, server):
        """Test that a remote failure keeps the copy already in the store."""
        result = await context.pipeline.send("Hello")
        await context.sessions.create_session("Other")
        server.offline = True

        session = await context.sessions.switch_session(result.session_id)

        assert len(session.messages) == 2
        assert context.store.state.current_session_id == result.session_id
        assert context.store.state.error is not None

    @pytest.mark.asyncio
    async def test_switch_unknown(self, context):
        """Test that an unknown session yields None."""
        assert await context.sessions.switch_session("ghost") is None

    @pytest.mark.asyncio
    async def test_switch_pending_session_skips_remote(self, context, server):
        """Test that a local-only session is never fetched remotely."""
        server.offline = True
        session = await context.sessions.create_session("local")
        server.offline = False
        before = len(server.requests)

        await context.sessions.switch_session(session.id)

        assert len(server.requests) == before


class TestRenameAndDelete:
    """Tests for renaming and deleting sessions."""

    @pytest.mark.asyncio
    async def test_rename(self, context, server):
        """Test renaming remotely and locally without changing selection."""
        first = await context.sessions.create_session("first")
        await context.sessions.create_session("second")

        renamed = await context.sessions.rename_session(first.id, "renamed")

        assert renamed.title == "renamed"
        assert server.conversations[first.id]["title"] == "renamed"
        assert context.store.get_session(first.id).title == "renamed"
        assert context.store.current_session.title == "second"

    @pytest.mark.asyncio
    async def test_rename_pending_session_updates_cache(self, context, server):
        """Test that a local session is renamed in the cache only."""
        server.offline = True
        session = await context.sessions.create_session("draft")

        await context.sessions.rename_session(session.id, "  final  ")

        assert context.cache.get_conversation(session.id).title == "final"

    @pytest.mark.asyncio
    async def test_rename_unknown(self, context):
        assert await context.sessions.rename_session("ghost", "x") is None

    @pytest.mark.asyncio
    async def test_delete(self, context, server):
        """Test deleting remotely and locally."""
        session = await context.sessions.create_session("doomed")

        await context.sessions.delete_session(session.id)

        assert session.id not in server.conversations
        assert context.store.get_session(session.id) is None

    @pytest.mark.asyncio
    async def test_delete_survives_remote_failure(self, context, server):
        """Test that a failed remote delete still removes the session locally."""
        session = await context.sessions.create_session("doomed")
        server.failures["delete_conversation"] = 500

        await context.sessions.delete_session(session.id)

        assert context.store.get_session(session.id) is None
        assert context.store.state.error is not None

    @pytest.mark.asyncio
    async def test_delete_pending_session(self, context, server):
        """Test that deleting a local session clears its cache and correlation."""
        server.offline = True
        session = await context.sessions.create_session("draft")

        await context.sessions.delete_session(session.id)

        assert context.cache.get_conversation(session.id) is None
        assert not context.correlation.is_local(session.id)
        assert not context.outbound.has_pending()

    @pytest.mark.asyncio
    async def test_delete_forgets_queued_messages(self, context, server):
        """Test that deleting a session drops its queued message entries."""
        server.failures["create_message"] = 500
        result = await context.pipeline.send("Hello")
        assert len(context.correlation) == 2

        await context.sessions.delete_session(result.session_id)

        assert len(context.correlation) == 0
