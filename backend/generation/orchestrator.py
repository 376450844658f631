"""
Workflow Orchestrator - drives the multi-step research workflow for a session.

The agents themselves run in an external service. The orchestrator sequences
research -> outline -> writing, reporting every step through a SessionEmitter
so subscribed clients see progress, agent logs and tool usage as it happens.
"""
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from backend.generation.agent_client import AgentServiceClient
from backend.relay.emitter import SessionEmitter
from backend.shared.errors import AppError, UpstreamError
from backend.shared.models import (
    AgentType,
    GenerationOptions,
    GenerationResult,
    Project,
    ResearchOutline,
)

logger = logging.getLogger(__name__)


class WorkflowOrchestrator(ABC):
    """Runs a generation workflow for one session and returns its result."""

    @abstractmethod
    async def run(
        self,
        project: Project,
        options: GenerationOptions,
        emitter: SessionEmitter
    ) -> GenerationResult:
        """
        Execute the workflow. Any exception marks the session FAILED.
        """

    async def close(self) -> None:
        pass


def resolve_preferences(project: Project, options: GenerationOptions) -> Dict[str, Any]:
    """
    Merge stored project preferences with per-request options.

    Runs default to brief papers with few sources unless more are asked for.
    """
    stored = project.metadata.get("preferences", {}) or {}
    max_sources = options.max_sources or stored.get("maxSources")

    preferences: Dict[str, Any] = {
        "detailLevel": stored.get("detailLevel") or ("COMPREHENSIVE" if max_sources else "BRIEF"),
        "maxSources": max_sources or 3,
        "targetLength": 2000,
    }
    citation_style = options.citation_style or stored.get("citationStyle")
    if citation_style:
        preferences["citationStyle"] = citation_style
    include_images = options.include_images if options.include_images is not None else stored.get("includeImages")
    if include_images is not None:
        preferences["includeImages"] = include_images
    return preferences


def quality_score(outline: ResearchOutline, content: str, sources: List[Any]) -> float:
    score = 0.5

    if len(outline.sections) >= 5:
        score += 0.1
    if len(outline.keywords) >= 5:
        score += 0.1

    word_count = len(content.split())
    if word_count >= 2000:
        score += 0.1
    if word_count >= 5000:
        score += 0.1

    if len(sources) >= 10:
        score += 0.1
    if len(sources) >= 20:
        score += 0.1

    return round(min(1.0, score), 2)


class StagedResearchOrchestrator(WorkflowOrchestrator):
    """
    Research workflow backed by the external agent service.

    Progress milestones: 5 context, 20 outline, 20-65 per-section research,
    85 content written.
    """

    RESEARCH_START = 20
    RESEARCH_RANGE = 45

    def __init__(self, client: AgentServiceClient, max_research_sections: Optional[int] = None):
        self.client = client
        self.max_research_sections = max_research_sections

    async def close(self) -> None:
        await self.client.close()

    async def _execute_tool(
        self,
        emitter: SessionEmitter,
        agent_type: AgentType,
        tool_name: str,
        payload: Dict[str, Any],
        required: bool = True
    ) -> Any:
        """Call a tool, logging it as an agent step and a tool usage record."""
        started = time.monotonic()
        try:
            data = await self.client.call_tool(tool_name, payload)
        except AppError as e:
            duration = int((time.monotonic() - started) * 1000)
            await emitter.agent_log(agent_type, f"Execute Tool: {tool_name}", input=payload,
                                    success=False, duration=duration, error=e.message)
            await emitter.tool_usage(tool_name, input=payload, duration=duration, success=False, error=e.message)
            if required:
                raise
            logger.warning(f"Optional tool {tool_name} failed for session {emitter.session_id}: {e.message}")
            return None

        duration = int((time.monotonic() - started) * 1000)
        await emitter.agent_log(agent_type, f"Execute Tool: {tool_name}", input=payload, output=data,
                                duration=duration)
        await emitter.tool_usage(tool_name, input=payload, output=data, duration=duration)
        return data

    def _eta(self, started: float, progress: float) -> Optional[int]:
        if progress <= 0:
            return None
        elapsed_ms = (time.monotonic() - started) * 1000
        return int(max(0.0, elapsed_ms / progress * 100 - elapsed_ms))

    async def run(
        self,
        project: Project,
        options: GenerationOptions,
        emitter: SessionEmitter
    ) -> GenerationResult:
        started = time.monotonic()
        preferences = resolve_preferences(project, options)
        memory: Dict[str, Any] = {
            "context": {"topic": project.topic, "title": project.title},
            "preferences": preferences,
        }
        logger.info(f"Starting research for topic: {project.topic}")

        await emitter.progress(5, "Initializing research context", eta=self._eta(started, 5))

        # ====================================================================
        # OUTLINE
        # ====================================================================
        outline_data = await self._execute_tool(emitter, AgentType.RESEARCH, "OutlineGenerator", {
            "topic": project.topic,
            "detailLevel": preferences["detailLevel"],
            "targetLength": preferences["targetLength"],
        })
        try:
            outline = ResearchOutline.model_validate(outline_data)
        except PydanticValidationError as e:
            logger.error(f"Malformed outline from agent service: {e}")
            raise UpstreamError("Failed to generate outline: malformed outline returned")
        memory["outline"] = outline.model_dump(mode="json", by_alias=True)
        await emitter.progress(20, "Generated research outline", eta=self._eta(started, 20))

        # ====================================================================
        # RESEARCH
        # ====================================================================
        sections = outline.sections
        if self.max_research_sections is not None:
            sections = sections[:self.max_research_sections]

        research_data: List[Dict[str, Any]] = []
        for index, section in enumerate(sections):
            progress = round(self.RESEARCH_START + self.RESEARCH_RANGE * (index + 1) / len(sections))
            await emitter.progress(progress, f"Researching: {section.title}", eta=self._eta(started, progress))

            results = await self._execute_tool(emitter, AgentType.SEARCH, "WebSearch", {
                "query": f"{outline.title} {section.title}",
                "maxResults": preferences["maxSources"],
            }, required=False)
            if not results:
                continue

            analysis = await self._execute_tool(emitter, AgentType.ANALYSIS, "ContentAnalyzer", {
                "content": results,
                "section": section.title,
            }, required=False)
            if analysis is not None:
                research_data.append({"section": section.title, "searchResults": results, "analysis": analysis})

        memory["researchData"] = research_data
        await emitter.progress(65, "Completed research phase", eta=self._eta(started, 65))

        # ====================================================================
        # WRITING
        # ====================================================================
        content = await self._execute_tool(emitter, AgentType.WRITING, "Writing", {
            "outline": outline.model_dump(mode="json", by_alias=True),
            "researchData": research_data,
            "preferences": preferences,
        })
        if not isinstance(content, str) or not content.strip():
            raise UpstreamError("Failed to generate content: writing agent returned no text")
        await emitter.progress(85, "Generated paper content", eta=self._eta(started, 85))

        sources: List[Any] = []
        for entry in research_data:
            found = entry["searchResults"]
            sources.extend(found if isinstance(found, list) else [found])

        processing_ms = int((time.monotonic() - started) * 1000)
        metadata = {
            "wordCount": len(content.split()),
            "sourceCount": len(sources),
            "processingTime": processing_ms,
            "quality": quality_score(outline, content, sources),
            "sources": sources,
        }
        await emitter.agent_log(
            AgentType.RESEARCH, "Complete Research",
            input={"topic": project.topic, "preferences": preferences},
            output={k: v for k, v in metadata.items() if k != "sources"},
            duration=processing_ms
        )
        logger.info(f"Research finished for project {project.id}: {metadata['wordCount']} words, "
                    f"{metadata['sourceCount']} sources")

        return GenerationResult(outline=outline, content=content, metadata=metadata, memory=memory)
