"""
Generation Service - runs research generation for projects.

Starting a generation allocates a session, moves the project to RESEARCHING
and hands the work to the orchestrator in a background task. The task owns
the rest of the lifecycle: results, sections, optional PDF, final events and
the session's terminal status.
"""
import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from backend.editor.section_store import SectionStore
from backend.generation.content_parser import parse_content_into_sections
from backend.generation.orchestrator import WorkflowOrchestrator, resolve_preferences
from backend.relay.emitter import SessionEmitter
from backend.relay.session_registry import SessionRegistry
from backend.rendering.compiler import DocumentCompiler
from backend.shared.citation_formatter import build_citation
from backend.shared.errors import AppError, ConflictError
from backend.shared.models import (
    Citation,
    CitationType,
    GenerationOptions,
    GenerationResult,
    Project,
    ProjectFile,
    ProjectStatus,
    ResearchSession,
    SessionStatus,
)
from backend.storage.project_store import ProjectStore

logger = logging.getLogger(__name__)


def _parse_date(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


def citations_from_sources(sources: List[Any]) -> List[Citation]:
    """Build citations for the search results a run collected, skipping untitled ones."""
    citations = []
    seen = set()
    for source in sources:
        if not isinstance(source, dict) or not source.get("title"):
            continue
        key = (source.get("url") or source.get("doi") or source["title"]).lower()
        if key in seen:
            continue
        seen.add(key)

        raw_type = str(source.get("type") or "WEBSITE").upper()
        citation_type = CitationType.__members__.get(raw_type, CitationType.WEBSITE)
        authors = source.get("authors") or []
        if isinstance(authors, str):
            authors = [authors]

        citations.append(build_citation(
            citation_type,
            source["title"],
            authors=authors,
            url=source.get("url"),
            published_date=_parse_date(source.get("publishedDate")),
            publisher=source.get("publisher") or source.get("source"),
            doi=source.get("doi"),
        ))
    return citations


class GenerationService:
    """
    Coordinates generation runs across the registry, stores and orchestrator.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        projects: ProjectStore,
        sections: SectionStore,
        compiler: DocumentCompiler,
        orchestrator: WorkflowOrchestrator,
        estimated_duration_ms: int = 300000
    ):
        self.registry = registry
        self.projects = projects
        self.sections = sections
        self.compiler = compiler
        self.orchestrator = orchestrator
        self.estimated_duration_ms = estimated_duration_ms
        self._tasks: Dict[str, asyncio.Task] = {}

    async def start_generation(
        self,
        project_id: str,
        user_id: str,
        options: Optional[GenerationOptions] = None
    ) -> ResearchSession:
        """
        Begin a generation run and return its session immediately.

        Raises:
            NotFoundError: the project does not exist for this user
            ConflictError: a run is already active for the project
        """
        project = self.projects.get_project(project_id, user_id)
        options = options or GenerationOptions()

        session = self.registry.start_session(project.id)
        try:
            old_status = await self.projects.transition(project.id, ProjectStatus.RESEARCHING, restart=True)
        except ConflictError:
            await self.registry.end_session(session.id, SessionStatus.FAILED, current_step="Could not start research")
            raise

        emitter = SessionEmitter(self.registry, session.id, project.id)
        await emitter.status_change(old_status.value, ProjectStatus.RESEARCHING.value)

        task = asyncio.create_task(self._run(project, session.id, options))
        self._tasks[session.id] = task
        task.add_done_callback(lambda _: self._tasks.pop(session.id, None))

        logger.info(f"Research generation started for project {project.id} (session {session.id})")
        return session

    async def wait_for(self, session_id: str) -> None:
        """Wait until a session's background run has finished."""
        task = self._tasks.get(session_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    # ========================================================================
    # BACKGROUND RUN
    # ========================================================================

    async def _run(self, project: Project, session_id: str, options: GenerationOptions) -> None:
        emitter = SessionEmitter(self.registry, session_id, project.id)
        try:
            result = await self.orchestrator.run(project, options, emitter)
            await self._finish(project, session_id, options, result, emitter)

        except asyncio.CancelledError:
            logger.warning(f"Research generation cancelled for project {project.id}")
            await self._fail(project.id, session_id, emitter, "Research generation was cancelled")
            raise

        except Exception as e:
            logger.error(f"Research generation failed for project {project.id}: {e}", exc_info=True)
            message = e.message if isinstance(e, AppError) else (str(e) or "Research generation failed")
            await self._fail(project.id, session_id, emitter, message)

    async def _finish(
        self,
        project: Project,
        session_id: str,
        options: GenerationOptions,
        result: GenerationResult,
        emitter: SessionEmitter
    ) -> None:
        old_status = await self.projects.transition(project.id, ProjectStatus.WRITING)
        await emitter.status_change(old_status.value, ProjectStatus.WRITING.value)

        citations = citations_from_sources(result.metadata.get("sources", []))
        metadata = {
            **result.metadata,
            "citations": [c.to_wire() for c in citations],
            "generatedAt": datetime.now().isoformat(),
            "sessionId": session_id,
        }
        await self.projects.save_results(project.id, outline=result.outline, content=result.content,
                                         metadata=metadata)

        drafts = parse_content_into_sections(result.content, result.outline)
        logger.info(f"Parsed {len(drafts)} sections from content for project {project.id}")
        if drafts:
            await self.sections.replace_sections(project.id, drafts)

        pdf_file = await self._render_pdf(project, options, emitter) if drafts else None

        old_status = await self.projects.transition(project.id, ProjectStatus.COMPLETED)
        await emitter.status_change(old_status.value, ProjectStatus.COMPLETED.value)

        await emitter.complete(
            metadata={
                "wordCount": result.metadata.get("wordCount"),
                "sourceCount": result.metadata.get("sourceCount"),
                "quality": result.metadata.get("quality"),
            },
            pdf_path=pdf_file.file_path if pdf_file else None
        )
        await self.registry.end_session(session_id, SessionStatus.COMPLETED, memory=result.memory,
                                        current_step="Research completed")
        logger.info(f"Research generation completed for project {project.id}")

    async def _render_pdf(
        self,
        project: Project,
        options: GenerationOptions,
        emitter: SessionEmitter
    ) -> Optional[ProjectFile]:
        """Render the PDF when the run asked for it; a render failure does not fail the run."""
        if not resolve_preferences(project, options).get("includeImages"):
            return None

        await emitter.progress(90, "Generating PDF document",
                               "Creating structured LaTeX document with academic formatting")
        try:
            return await self.compiler.compile_pdf(project.id)
        except AppError as e:
            logger.error(f"PDF generation failed for project {project.id}: {e.message}")
            return None

    async def _fail(self, project_id: str, session_id: str, emitter: SessionEmitter, message: str) -> None:
        try:
            await self.projects.transition(project_id, ProjectStatus.FAILED)
        except AppError as e:
            logger.warning(f"Could not mark project {project_id} as failed: {e.message}")

        await emitter.error(message)
        if self.registry.get_session(session_id) is not None:
            await self.registry.end_session(session_id, SessionStatus.FAILED, current_step="Research failed")

    async def cancel_project(self, project_id: str) -> bool:
        """Cancel the active run of a project, if any. Returns True if one was cancelled."""
        session = self.registry.active_session_for_project(project_id)
        task = self._tasks.get(session.id) if session else None
        if task is None:
            return False
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        return True

    async def stop(self) -> None:
        """Cancel running generations (application shutdown)."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info(f"Cancelled {len(tasks)} running generation(s)")
