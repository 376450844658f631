"""
Session Emitter - typed publishing helpers bound to one session.
"""
import logging
from typing import Any, Dict, Optional

from backend.relay.session_registry import SessionRegistry
from backend.shared.models import (
    AgentLog,
    AgentLogMessage,
    AgentType,
    CompletionMessage,
    CompletionPayload,
    ErrorMessage,
    ErrorPayload,
    ProgressUpdate,
    ProgressUpdateMessage,
    StatusChangeMessage,
    StatusChangePayload,
    ToolUsage,
    ToolUsageMessage,
)

logger = logging.getLogger(__name__)


class SessionEmitter:
    """Publishes workflow events for a single session through the registry."""

    def __init__(self, registry: SessionRegistry, session_id: str, project_id: Optional[str] = None):
        self.registry = registry
        self.session_id = session_id
        self.project_id = project_id

    async def progress(
        self,
        progress: float,
        current_step: str,
        message: str = "",
        eta: Optional[int] = None
    ) -> None:
        update = ProgressUpdate(
            session_id=self.session_id,
            progress=max(0.0, min(100.0, progress)),
            current_step=current_step,
            message=message or current_step,
            eta=eta
        )
        await self.registry.publish(self.session_id, ProgressUpdateMessage(payload=update))

    async def agent_log(
        self,
        agent_type: AgentType,
        action: str,
        input: Any = None,
        output: Any = None,
        success: bool = True,
        duration: int = 0,
        error: Optional[str] = None
    ) -> AgentLog:
        log = AgentLog(
            agent_type=agent_type,
            action=action,
            input=input,
            output=output,
            success=success,
            duration=duration,
            error=error
        )
        await self.registry.publish(self.session_id, AgentLogMessage(payload=log))
        return log

    async def tool_usage(
        self,
        tool_name: str,
        input: Any = None,
        output: Any = None,
        duration: int = 0,
        success: bool = True,
        error: Optional[str] = None
    ) -> ToolUsage:
        usage = ToolUsage(
            session_id=self.session_id,
            tool_name=tool_name,
            input=input,
            output=output,
            duration=duration,
            success=success,
            error=error
        )
        await self.registry.publish(self.session_id, ToolUsageMessage(payload=usage))
        return usage

    async def error(self, message: str) -> None:
        payload = ErrorPayload(message=message, project_id=self.project_id, session_id=self.session_id)
        await self.registry.publish(self.session_id, ErrorMessage(payload=payload))

    async def status_change(self, old_status: str, new_status: str) -> None:
        payload = StatusChangePayload(old_status=old_status, new_status=new_status)
        await self.registry.publish(self.session_id, StatusChangeMessage(payload=payload))

    async def complete(
        self,
        metadata: Optional[Dict[str, Any]] = None,
        pdf_path: Optional[str] = None
    ) -> None:
        """Send the final 100% progress update, then the COMPLETION message."""
        await self.progress(100, "Research completed successfully!")
        payload = CompletionPayload(
            project_id=self.project_id or "",
            session_id=self.session_id,
            metadata=metadata or {},
            pdf_path=pdf_path
        )
        await self.registry.publish(self.session_id, CompletionMessage(payload=payload))
        logger.info(f"Session {self.session_id} completion published")
