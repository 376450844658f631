"""
Session Registry - lifecycle of generation sessions and their event rooms.

A single registry instance is created per application (see backend.api.main)
and injected wherever sessions are started, joined or published to.
"""
import asyncio
import logging
from datetime import datetime
from typing import Dict, List, Optional

from backend.relay.event_relay import ConnectionHandle, EventRelay
from backend.shared.errors import ConflictError, NotFoundError, ValidationError
from backend.shared.models import (
    AgentLogMessage,
    ProgressUpdateMessage,
    ResearchSession,
    SessionStatus,
    ToolUsageMessage,
    WebSocketMessage,
)

logger = logging.getLogger(__name__)


class SessionRegistry:
    """
    Maps session ids to generation runs and routes their events.

    Sessions stay queryable after they end; only their relay rooms are
    released, after a grace period that lets late reconnects attach.
    """

    def __init__(self, relay: Optional[EventRelay] = None, release_grace_seconds: float = 30.0):
        self.relay = relay or EventRelay()
        self.release_grace_seconds = release_grace_seconds
        self._sessions: Dict[str, ResearchSession] = {}
        self._pending_releases: Dict[str, asyncio.TimerHandle] = {}

    # ========================================================================
    # LOOKUPS
    # ========================================================================

    def get_session(self, session_id: str) -> Optional[ResearchSession]:
        return self._sessions.get(session_id)

    def require_session(self, session_id: str) -> ResearchSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise NotFoundError("Research session not found")
        return session

    def sessions_for_project(self, project_id: str) -> List[ResearchSession]:
        """All sessions of a project, newest first."""
        sessions = [s for s in self._sessions.values() if s.project_id == project_id]
        return sorted(sessions, key=lambda s: s.created_at, reverse=True)

    def latest_session_for_project(self, project_id: str) -> Optional[ResearchSession]:
        sessions = self.sessions_for_project(project_id)
        return sessions[0] if sessions else None

    def active_session_for_project(self, project_id: str) -> Optional[ResearchSession]:
        for session in self._sessions.values():
            if session.project_id == project_id and session.status == SessionStatus.ACTIVE:
                return session
        return None

    def is_accepting(self, session_id: str) -> bool:
        session = self._sessions.get(session_id)
        return session is not None and session.status == SessionStatus.ACTIVE

    # ========================================================================
    # LIFECYCLE
    # ========================================================================

    def start_session(self, project_id: str) -> ResearchSession:
        """
        Allocate a new ACTIVE session for a project.

        Raises:
            ConflictError: the project already has an ACTIVE session
        """
        active = self.active_session_for_project(project_id)
        if active is not None:
            raise ConflictError(
                "Research generation is already running for this project",
                details={"sessionId": active.id}
            )

        session = ResearchSession(project_id=project_id)
        self._sessions[session.id] = session
        logger.info(f"Started research session {session.id} for project {project_id}")
        return session

    async def end_session(
        self,
        session_id: str,
        final_status: SessionStatus,
        memory: Optional[dict] = None,
        current_step: Optional[str] = None,
    ) -> ResearchSession:
        """
        Finalize a session as COMPLETED or FAILED.

        Later publishes for the session are ignored. The relay room is released
        after the configured grace period.
        """
        if final_status not in (SessionStatus.COMPLETED, SessionStatus.FAILED):
            raise ValidationError(f"Sessions can only end as COMPLETED or FAILED, not {final_status.value}")

        session = self.require_session(session_id)
        if session.status != SessionStatus.ACTIVE:
            logger.warning(f"Session {session_id} already ended with status {session.status.value}")
            return session

        now = datetime.now()
        session.status = final_status
        session.completed_at = now
        session.updated_at = now
        if memory is not None:
            session.memory = memory
        if final_status == SessionStatus.COMPLETED:
            session.progress = 100.0
            session.current_step = current_step or "Research completed"
        else:
            session.current_step = current_step or "Research failed"

        logger.info(f"Session {session_id} ended with status {final_status.value}")
        self._schedule_release(session_id)
        return session

    def _schedule_release(self, session_id: str) -> None:
        if self.release_grace_seconds <= 0:
            self.relay.release(session_id)
            return
        loop = asyncio.get_running_loop()
        self._pending_releases[session_id] = loop.call_later(
            self.release_grace_seconds, self._release, session_id
        )

    def _release(self, session_id: str) -> None:
        self._pending_releases.pop(session_id, None)
        self.relay.release(session_id)

    def forget_project(self, project_id: str) -> None:
        """Drop every session record of a deleted project."""
        for session in self.sessions_for_project(project_id):
            handle = self._pending_releases.pop(session.id, None)
            if handle:
                handle.cancel()
            self.relay.release(session.id)
            del self._sessions[session.id]

    def close(self) -> None:
        """Cancel pending room releases (application shutdown)."""
        for handle in self._pending_releases.values():
            handle.cancel()
        self._pending_releases.clear()

    # ========================================================================
    # SUBSCRIPTIONS
    # ========================================================================

    def join_session(self, connection: ConnectionHandle, session_id: str) -> bool:
        """
        Subscribe a connection to a session's future events.

        Joining an unknown session is not an error; nothing is ever delivered.

        Returns:
            True if the connection is now subscribed
        """
        if session_id not in self._sessions:
            logger.info(f"Connection {connection.connection_id} asked to join unknown session {session_id}")
            return False
        self.relay.subscribe(connection, session_id)
        return True

    def leave_session(self, connection: ConnectionHandle, session_id: str) -> None:
        self.relay.unsubscribe(connection, session_id)

    def disconnect(self, connection: ConnectionHandle) -> None:
        """Forget a connection that went away."""
        connection.closed = True
        left = self.relay.drop_connection(connection)
        if left:
            logger.info(f"Connection {connection.connection_id} disconnected from {len(left)} session(s)")

    # ========================================================================
    # PUBLISHING
    # ========================================================================

    def _apply(self, session: ResearchSession, message: WebSocketMessage) -> WebSocketMessage:
        """Record the message on the session and stamp its routing id."""
        update = {"session_id": session.id}
        session.updated_at = datetime.now()

        if isinstance(message, ProgressUpdateMessage):
            payload = message.payload
            progress = payload.progress
            if progress < session.progress:
                logger.debug(
                    f"Clamping progress {progress} to {session.progress} for session {session.id}"
                )
                progress = session.progress
            session.progress = progress
            session.current_step = payload.current_step
            update["payload"] = payload.model_copy(update={"progress": progress, "session_id": session.id})
        elif isinstance(message, AgentLogMessage):
            session.agent_logs.append(message.payload)
        elif isinstance(message, ToolUsageMessage):
            usage = message.payload.model_copy(update={"session_id": session.id})
            session.tool_usage.append(usage)
            update["payload"] = usage

        return message.model_copy(update=update)

    async def publish(self, session_id: str, message: WebSocketMessage) -> int:
        """
        Record and relay a message for an ACTIVE session.

        Returns:
            Number of connections the message reached (0 if ignored)
        """
        session = self._sessions.get(session_id)
        if session is None:
            logger.warning(f"Ignoring {message.type} for unknown session {session_id}")
            return 0
        if session.status != SessionStatus.ACTIVE:
            logger.warning(
                f"Ignoring {message.type} for session {session_id} with status {session.status.value}"
            )
            return 0

        stamped = self._apply(session, message)
        return await self.relay.publish(session_id, stamped.to_wire())
