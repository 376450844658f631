"""Tests for the session registry and the session emitter."""
import asyncio

import pytest

from backend.relay.emitter import SessionEmitter
from backend.relay.session_registry import SessionRegistry
from backend.shared.errors import ConflictError, NotFoundError, ValidationError
from backend.shared.models import AgentType, SessionStatus


@pytest.fixture
def registry():
    return SessionRegistry(release_grace_seconds=0)


# =============================================================================
# Lifecycle Tests
# =============================================================================


class TestSessionLifecycle:
    """Tests for starting and ending sessions."""

    def test_start_session_is_active(self, registry):
        session = registry.start_session("p1")
        assert session.status == SessionStatus.ACTIVE
        assert session.progress == 0
        assert registry.is_accepting(session.id)

    def test_second_active_session_conflicts(self, registry):
        first = registry.start_session("p1")
        with pytest.raises(ConflictError) as exc_info:
            registry.start_session("p1")
        assert exc_info.value.details == {"sessionId": first.id}

    @pytest.mark.asyncio
    async def test_new_session_allowed_after_end(self, registry):
        first = registry.start_session("p1")
        await registry.end_session(first.id, SessionStatus.FAILED)
        second = registry.start_session("p1")
        assert second.id != first.id
        assert registry.latest_session_for_project("p1").id == second.id

    @pytest.mark.asyncio
    async def test_end_completed_sets_full_progress(self, registry):
        session = registry.start_session("p1")
        ended = await registry.end_session(session.id, SessionStatus.COMPLETED, memory={"k": 1})
        assert ended.progress == 100
        assert ended.completed_at is not None
        assert ended.memory == {"k": 1}
        assert not registry.is_accepting(session.id)

    @pytest.mark.asyncio
    async def test_end_rejects_non_terminal_status(self, registry):
        session = registry.start_session("p1")
        with pytest.raises(ValidationError):
            await registry.end_session(session.id, SessionStatus.PAUSED)

    @pytest.mark.asyncio
    async def test_end_unknown_session(self, registry):
        with pytest.raises(NotFoundError):
            await registry.end_session("missing", SessionStatus.FAILED)

    @pytest.mark.asyncio
    async def test_ending_twice_keeps_first_status(self, registry):
        session = registry.start_session("p1")
        await registry.end_session(session.id, SessionStatus.COMPLETED)
        again = await registry.end_session(session.id, SessionStatus.FAILED)
        assert again.status == SessionStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_room_released_after_grace_period(self, make_connection):
        registry = SessionRegistry(release_grace_seconds=0.05)
        conn = make_connection()
        session = registry.start_session("p1")
        registry.join_session(conn, session.id)

        await registry.end_session(session.id, SessionStatus.COMPLETED)
        assert registry.relay.subscriber_count(session.id) == 1

        await asyncio.sleep(0.1)
        assert registry.relay.subscriber_count(session.id) == 0

    def test_forget_project_drops_sessions(self, registry):
        session = registry.start_session("p1")
        registry.forget_project("p1")
        assert registry.get_session(session.id) is None


# =============================================================================
# Publishing Tests
# =============================================================================


class TestPublishing:
    """Tests for publishing through the registry."""

    @pytest.mark.asyncio
    async def test_join_unknown_session_receives_nothing(self, registry, make_connection):
        conn = make_connection()
        assert registry.join_session(conn, "does-not-exist") is False

        session = registry.start_session("p1")
        await SessionEmitter(registry, session.id, "p1").progress(10, "Working")

        assert conn.received == []

    @pytest.mark.asyncio
    async def test_publish_after_end_is_ignored(self, registry, make_connection):
        conn = make_connection()
        session = registry.start_session("p1")
        registry.join_session(conn, session.id)
        await registry.end_session(session.id, SessionStatus.FAILED)

        emitter = SessionEmitter(registry, session.id, "p1")
        await emitter.progress(50, "Too late")

        assert conn.received == []
        assert registry.get_session(session.id).progress == 0

    @pytest.mark.asyncio
    async def test_progress_never_moves_backwards(self, registry, make_connection):
        conn = make_connection()
        session = registry.start_session("p1")
        registry.join_session(conn, session.id)
        emitter = SessionEmitter(registry, session.id, "p1")

        await emitter.progress(40, "Researching")
        await emitter.progress(25, "Late update")

        progresses = [m["payload"]["progress"] for m in conn.received]
        assert progresses == [40, 40]
        assert registry.get_session(session.id).current_step == "Late update"

    @pytest.mark.asyncio
    async def test_messages_are_stamped_with_session_id(self, registry, make_connection):
        conn = make_connection()
        session = registry.start_session("p1")
        registry.join_session(conn, session.id)

        await SessionEmitter(registry, session.id, "p1").status_change("DRAFT", "RESEARCHING")

        message = conn.received[0]
        assert message["type"] == "STATUS_CHANGE"
        assert message["sessionId"] == session.id
        assert message["payload"] == {"oldStatus": "DRAFT", "newStatus": "RESEARCHING"}
        assert "timestamp" in message

    @pytest.mark.asyncio
    async def test_agent_logs_and_tool_usage_recorded(self, registry):
        session = registry.start_session("p1")
        emitter = SessionEmitter(registry, session.id, "p1")

        await emitter.agent_log(AgentType.SEARCH, "Execute Tool: WebSearch", duration=12)
        await emitter.tool_usage("WebSearch", input={"query": "x"}, duration=12, success=False, error="boom")

        stored = registry.get_session(session.id)
        assert [log.action for log in stored.agent_logs] == ["Execute Tool: WebSearch"]
        assert stored.tool_usage[0].session_id == session.id
        assert stored.tool_usage[0].error == "boom"

    @pytest.mark.asyncio
    async def test_complete_sends_final_progress_then_completion(self, registry, make_connection):
        conn = make_connection()
        session = registry.start_session("p1")
        registry.join_session(conn, session.id)

        await SessionEmitter(registry, session.id, "p1").complete(metadata={"wordCount": 10}, pdf_path="/x.pdf")

        assert conn.types() == ["PROGRESS_UPDATE", "COMPLETION"]
        assert conn.received[0]["payload"]["progress"] == 100
        completion = conn.received[1]["payload"]
        assert completion["projectId"] == "p1"
        assert completion["pdfPath"] == "/x.pdf"

    @pytest.mark.asyncio
    async def test_disconnect_removes_connection(self, registry, make_connection):
        conn = make_connection()
        session = registry.start_session("p1")
        registry.join_session(conn, session.id)
        registry.disconnect(conn)

        assert conn.closed is True
        assert registry.relay.subscriber_count(session.id) == 0
