"""Integration tests for live progress and editor suggestions over the websocket."""
import pytest

from tests.fakes import FakeOrchestrator

USER_HEADERS = {"X-User-Id": "user-1"}


@pytest.fixture
def orchestrator():
    """Runs hold until a client has joined, so every event is observable."""
    return FakeOrchestrator(wait_for_subscriber=True)


def collect_until_completion(websocket, limit=50):
    messages = []
    for _ in range(limit):
        frame = websocket.receive_json()
        assert frame["event"] == "message"
        messages.append(frame["data"])
        if frame["data"]["type"] in ("COMPLETION", "ERROR"):
            break
    return messages


# =============================================================================
# Session Streaming Tests
# =============================================================================


class TestSessionStreaming:
    """Tests for relaying generation events to subscribed clients."""

    def test_progress_then_completion(self, client, create_project):
        project = create_project()

        with client.websocket_connect("/ws") as websocket:
            session_id = client.post(f"/api/projects/{project['id']}/generate",
                                     headers=USER_HEADERS).json()["data"]["sessionId"]

            websocket.send_json({"event": "join-session", "sessionId": session_id})
            assert websocket.receive_json() == {
                "event": "session-joined",
                "data": {"sessionId": session_id, "subscribed": True},
            }

            messages = collect_until_completion(websocket)

        progress = [m["payload"]["progress"] for m in messages if m["type"] == "PROGRESS_UPDATE"]
        assert progress == [10, 55, 100]
        assert messages[-1]["type"] == "COMPLETION"
        assert messages[-1]["payload"]["projectId"] == project["id"]
        assert all(m["sessionId"] == session_id for m in messages)

        statuses = [m["payload"]["newStatus"] for m in messages if m["type"] == "STATUS_CHANGE"]
        assert statuses == ["WRITING", "COMPLETED"]

    @pytest.mark.parametrize("orchestrator", [
        FakeOrchestrator(wait_for_subscriber=True, fail_with=RuntimeError("agents offline"))
    ])
    def test_failure_is_streamed(self, client, create_project):
        project = create_project()

        with client.websocket_connect("/ws") as websocket:
            session_id = client.post(f"/api/projects/{project['id']}/generate",
                                     headers=USER_HEADERS).json()["data"]["sessionId"]
            websocket.send_json({"event": "join-session", "sessionId": session_id})
            websocket.receive_json()

            messages = collect_until_completion(websocket)

        assert messages[-1]["type"] == "ERROR"
        assert messages[-1]["payload"]["message"] == "agents offline"
        assert "COMPLETION" not in [m["type"] for m in messages]

    def test_join_unknown_session(self, client):
        with client.websocket_connect("/ws") as websocket:
            websocket.send_json({"event": "join-session", "sessionId": "no-such-session"})
            assert websocket.receive_json() == {
                "event": "session-joined",
                "data": {"sessionId": "no-such-session", "subscribed": False},
            }

    def test_bad_frames(self, client):
        with client.websocket_connect("/ws") as websocket:
            websocket.send_text("not json")
            assert websocket.receive_json() == {"event": "error", "data": {"message": "Invalid JSON frame"}}

            websocket.send_json({"event": "ping"})
            assert websocket.receive_json() == {"event": "error", "data": {"message": "Unknown event: ping"}}

            websocket.send_json(["join-session"])
            assert websocket.receive_json()["data"]["message"] == "Frames must be JSON objects"

            websocket.send_json({"event": "content-change", "reportId": "r", "sectionId": ["x"], "content": "hi"})
            assert websocket.receive_json() == {"event": "error", "data": {"message": "sectionId must be a string"}}

            websocket.send_json({"event": "join-session", "sessionId": {"id": 1}})
            assert websocket.receive_json()["data"]["message"] == "sessionId must be a string"

            websocket.send_json({"event": "join-session", "sessionId": "no-such-session"})
            assert websocket.receive_json()["event"] == "session-joined"


# =============================================================================
# Live Editor Tests
# =============================================================================


class TestLiveSuggestions:
    """Tests for debounced suggestions while a section is edited."""

    @pytest.fixture
    def section(self, client, create_project):
        project = create_project()
        response = client.post(f"/api/sections/{project['id']}",
                               json={"title": "Background", "content": "Initial text"},
                               headers=USER_HEADERS)
        return response.json()["data"]

    def test_suggestions_for_selected_section(self, client, section, suggestion_service):
        report_id = section["reportId"]

        with client.websocket_connect("/ws") as websocket:
            websocket.send_json({"event": "select-section", "reportId": report_id, "sectionId": section["id"]})
            websocket.send_json({"event": "content-change", "reportId": report_id,
                                 "content": "Coral reefs are declining"})
            websocket.send_json({"event": "content-change", "reportId": report_id,
                                 "content": "Coral reefs are declining because of warming seas"})

            frame = websocket.receive_json()

        assert frame["event"] == "suggestions"
        assert frame["data"]["reportId"] == report_id
        assert frame["data"]["sectionId"] == section["id"]
        assert [s["type"] for s in frame["data"]["suggestions"]] == ["similar_section", "citation_opportunity"]
        assert suggestion_service.requests[-1]["content"] == "Coral reefs are declining because of warming seas"
        assert suggestion_service.requests[-1]["sectionId"] == section["id"]

    def test_short_content_yields_empty_suggestions(self, client, section, suggestion_service):
        with client.websocket_connect("/ws") as websocket:
            websocket.send_json({"event": "content-change", "reportId": section["reportId"],
                                 "sectionId": section["id"], "content": "Too short"})
            frame = websocket.receive_json()

        assert frame["data"]["suggestions"] == []
        assert suggestion_service.requests == []

    def test_content_change_does_not_save(self, client, section):
        with client.websocket_connect("/ws") as websocket:
            websocket.send_json({"event": "content-change", "reportId": section["reportId"],
                                 "sectionId": section["id"], "content": "Typed but never saved by the client"})
            websocket.receive_json()

        stored = client.get(f"/api/sections/{section['reportId']}/{section['id']}", headers=USER_HEADERS)
        assert stored.json()["data"]["content"] == "Initial text"

    def test_content_change_without_selection(self, client, section):
        with client.websocket_connect("/ws") as websocket:
            websocket.send_json({"event": "content-change", "reportId": section["reportId"], "content": "x"})
            assert websocket.receive_json() == {
                "event": "error",
                "data": {"message": "No section selected for content-change"},
            }

    def test_select_unknown_section(self, client, section):
        with client.websocket_connect("/ws") as websocket:
            websocket.send_json({"event": "select-section", "reportId": section["reportId"], "sectionId": "nope"})
            assert websocket.receive_json()["data"] == {"message": "Section not found"}
