"""
WebSocket endpoint: session event streaming and live editor suggestions.

Client frames are JSON objects ``{"event": <name>, ...}``:

- ``join-session`` / ``leave-session`` with ``sessionId``
- ``select-section`` with ``reportId`` and ``sectionId``
- ``content-change`` with ``reportId``, ``sectionId`` (defaults to the
  selected section) and ``content``

Session events arrive as ``{"event": "message", "data": <message>}`` and
debounced suggestions as ``{"event": "suggestions", "data": {...}}``.
"""
import asyncio
import json
import logging
from typing import Any, Dict, Optional, Tuple

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from backend.editor.section_store import SectionStore
from backend.editor.selection import EditorSelections
from backend.editor.suggestion_debouncer import SuggestionDebouncer, SuggestionResult
from backend.relay.event_relay import ConnectionHandle
from backend.relay.session_registry import SessionRegistry
from backend.shared.config import AppConfig
from backend.shared.errors import AppError, ValidationError
from backend.shared.models import new_id
from backend.shared.suggestion_client import SuggestionClient

logger = logging.getLogger(__name__)

router = APIRouter()


class WebSocketConnection(ConnectionHandle):
    """Relay handle for one accepted websocket."""

    def __init__(self, websocket: WebSocket):
        super().__init__(new_id())
        self.websocket = websocket
        self._send_lock = asyncio.Lock()

    async def send(self, message: Dict[str, Any]) -> None:
        await self.send_event("message", message)

    async def send_event(self, event: str, data: Any) -> None:
        async with self._send_lock:
            await self.websocket.send_json({"event": event, "data": data})


class LiveEditor:
    """Per-connection editor state: selected section and one debouncer per section."""

    def __init__(
        self,
        connection: WebSocketConnection,
        sections: SectionStore,
        suggestions: SuggestionClient,
        selections: EditorSelections,
        config: AppConfig
    ):
        self.connection = connection
        self.sections = sections
        self.suggestions = suggestions
        self.selections = selections
        self.config = config
        self._debouncers: Dict[Tuple[str, str], SuggestionDebouncer] = {}

    def select(self, report_id: str, section_id: str) -> None:
        """
        Raises:
            NotFoundError: the section does not belong to the report
        """
        self.sections.get_section(report_id, section_id)
        self.selections.select(self.connection.connection_id, report_id, section_id)

    def content_changed(self, report_id: str, section_id: Optional[str], content: str) -> None:
        section_id = section_id or self.selections.selected(self.connection.connection_id, report_id)
        if not section_id:
            raise ValidationError("No section selected for content-change")
        self._debouncer_for(report_id, section_id).notify_change(content)

    def _debouncer_for(self, report_id: str, section_id: str) -> SuggestionDebouncer:
        key = (report_id, section_id)
        debouncer = self._debouncers.get(key)
        if debouncer is None:
            async def fetch(content: str):
                return await self.suggestions.suggest(content, project_id=report_id, section_id=section_id)

            async def deliver(result: SuggestionResult) -> None:
                data: Dict[str, Any] = {
                    "reportId": report_id,
                    "sectionId": section_id,
                    "suggestions": [s.to_wire() for s in result.suggestions],
                }
                if result.error:
                    data["error"] = result.error
                if not self.connection.closed:
                    await self.connection.send_event("suggestions", data)

            debouncer = SuggestionDebouncer(
                fetch,
                deliver,
                delay=self.config.suggestion_delay_seconds,
                min_length=self.config.suggestion_min_length
            )
            self._debouncers[key] = debouncer
        return debouncer

    def close(self) -> None:
        for debouncer in self._debouncers.values():
            debouncer.cancel()
        self._debouncers.clear()
        self.selections.clear(self.connection.connection_id)


def _text_field(frame: Dict[str, Any], name: str) -> str:
    value = frame.get(name)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError(f"{name} must be a string")
    return value


async def handle_frame(
    frame: Dict[str, Any],
    connection: WebSocketConnection,
    registry: SessionRegistry,
    editor: LiveEditor
) -> None:
    """Dispatch one client frame."""
    event = frame.get("event")

    if event == "join-session":
        session_id = _text_field(frame, "sessionId")
        subscribed = registry.join_session(connection, session_id) if session_id else False
        await connection.send_event("session-joined", {"sessionId": session_id, "subscribed": subscribed})

    elif event == "leave-session":
        registry.leave_session(connection, _text_field(frame, "sessionId"))

    elif event == "select-section":
        editor.select(_text_field(frame, "reportId"), _text_field(frame, "sectionId"))

    elif event == "content-change":
        content = frame.get("content")
        if not isinstance(content, str):
            raise ValidationError("content-change requires string content")
        editor.content_changed(_text_field(frame, "reportId"), _text_field(frame, "sectionId") or None, content)

    else:
        raise ValidationError(f"Unknown event: {event}")


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """WebSocket endpoint for session events and live editing."""
    await websocket.accept()

    state = websocket.app.state
    registry: SessionRegistry = state.registry
    connection = WebSocketConnection(websocket)
    editor = LiveEditor(connection, state.sections, state.suggestions, state.selections, state.config)
    logger.info(f"WebSocket connected: {connection.connection_id}")

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                frame = json.loads(raw)
                if not isinstance(frame, dict):
                    raise ValidationError("Frames must be JSON objects")
                await handle_frame(frame, connection, registry, editor)
            except json.JSONDecodeError:
                await connection.send_event("error", {"message": "Invalid JSON frame"})
            except AppError as e:
                await connection.send_event("error", {"message": e.message})

    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected: {connection.connection_id}")
    finally:
        editor.close()
        registry.disconnect(connection)
