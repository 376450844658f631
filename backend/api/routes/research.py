"""
Research session API routes.
"""
from datetime import datetime, timedelta
from fastapi import APIRouter, Depends, Query
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse
import logging
import math

from backend.api.dependencies import current_user_id, get_projects, get_registry
from backend.relay.session_registry import SessionRegistry
from backend.shared.errors import NotFoundError, ValidationError
from backend.shared.models import Project, ProjectStatus, ResearchSession, ResearchSource, ToolUsage
from backend.storage.project_store import ProjectStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/research", tags=["research"])

TIME_RANGE_DAYS = {"1d": 1, "7d": 7, "30d": 30, "90d": 90}
RECENT_ACTIVITY_LIMIT = 10


def _owned_session(session_id: str, user_id: str, registry: SessionRegistry,
                   projects: ProjectStore) -> ResearchSession:
    """A session of one of the user's projects; anything else is reported as missing."""
    session = registry.require_session(session_id)
    try:
        projects.get_project(session.project_id, user_id)
    except NotFoundError:
        raise NotFoundError("Research session not found")
    return session


def tool_statistics(usages: List[ToolUsage]) -> List[Dict[str, Any]]:
    """Per-tool call counts and average duration, in first-use order."""
    stats: Dict[str, Dict[str, Any]] = {}
    for usage in usages:
        entry = stats.setdefault(usage.tool_name, {
            "name": usage.tool_name,
            "usageCount": 0,
            "successCount": 0,
            "failureCount": 0,
            "totalDuration": 0,
            "averageDuration": 0.0,
        })
        entry["usageCount"] += 1
        if usage.success:
            entry["successCount"] += 1
        else:
            entry["failureCount"] += 1
        entry["totalDuration"] += usage.duration
        entry["averageDuration"] = entry["totalDuration"] / entry["usageCount"]
    return list(stats.values())


def collect_sources(projects: List[Project]) -> List[ResearchSource]:
    """Titled search results stored with each project's latest run, best first."""
    sources: List[ResearchSource] = []
    for project in projects:
        seen = set()
        for raw in project.metadata.get("sources") or []:
            if not isinstance(raw, dict) or not raw.get("title"):
                continue
            url = str(raw["url"]) if raw.get("url") else None
            key = (url or str(raw["title"])).lower()
            if key in seen:
                continue
            seen.add(key)

            try:
                relevance = float(raw.get("relevance") or raw.get("score") or 0)
            except (TypeError, ValueError):
                relevance = 0.0
            sources.append(ResearchSource(
                title=str(raw["title"]),
                url=url,
                domain=(urlparse(url).hostname if url else None)
                or (str(raw["domain"]) if raw.get("domain") else None),
                content=str(raw.get("content") or raw.get("snippet") or ""),
                relevance=relevance,
                project_id=project.id,
                session_id=project.metadata.get("sessionId"),
            ))
    sources.sort(key=lambda s: s.relevance, reverse=True)
    return sources


@router.get("/sessions/{session_id}")
async def get_session(
    session_id: str,
    user_id: str = Depends(current_user_id),
    registry: SessionRegistry = Depends(get_registry),
    projects: ProjectStore = Depends(get_projects)
):
    """Session details with its project summary and tool usage."""
    session = _owned_session(session_id, user_id, registry, projects)
    project = projects.get_project(session.project_id)

    data = session.to_wire()
    data["project"] = {
        "id": project.id,
        "title": project.title,
        "topic": project.topic,
        "status": project.status.value,
    }
    return {"success": True, "data": data}


@router.get("/sessions/{session_id}/logs")
async def get_session_logs(
    session_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    user_id: str = Depends(current_user_id),
    registry: SessionRegistry = Depends(get_registry),
    projects: ProjectStore = Depends(get_projects)
):
    session = _owned_session(session_id, user_id, registry, projects)
    logs = session.agent_logs
    offset = (page - 1) * limit

    return {
        "success": True,
        "data": {
            "logs": [log.to_wire() for log in logs[offset:offset + limit]],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": len(logs),
                "totalPages": math.ceil(len(logs) / limit),
            }
        }
    }


@router.get("/sessions/{session_id}/tools")
async def get_session_tools(
    session_id: str,
    user_id: str = Depends(current_user_id),
    registry: SessionRegistry = Depends(get_registry),
    projects: ProjectStore = Depends(get_projects)
):
    """Tool usage of a session, newest first, with per-tool statistics."""
    session = _owned_session(session_id, user_id, registry, projects)
    usages = sorted(session.tool_usage, key=lambda u: u.created_at, reverse=True)
    return {
        "success": True,
        "data": {
            "tools": [u.to_wire() for u in usages],
            "statistics": tool_statistics(session.tool_usage),
        }
    }


@router.get("/sources")
async def search_sources(
    q: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user_id: str = Depends(current_user_id),
    projects: ProjectStore = Depends(get_projects)
):
    """Search the sources collected for the user's projects by title, content or domain."""
    sources = collect_sources(projects.list_projects(user_id))
    if q:
        needle = q.lower()
        sources = [
            s for s in sources
            if needle in s.title.lower() or needle in s.content.lower() or needle in (s.domain or "").lower()
        ]
    offset = (page - 1) * limit

    return {
        "success": True,
        "data": {
            "sources": [s.to_wire() for s in sources[offset:offset + limit]],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": len(sources),
                "totalPages": math.ceil(len(sources) / limit),
            }
        }
    }


@router.get("/analytics")
async def get_analytics(
    time_range: str = Query("7d", alias="timeRange"),
    user_id: str = Depends(current_user_id),
    registry: SessionRegistry = Depends(get_registry),
    projects: ProjectStore = Depends(get_projects)
):
    """Project counts, recent sessions and tool statistics over a time range."""
    days = TIME_RANGE_DAYS.get(time_range)
    if days is None:
        raise ValidationError(f"Unsupported time range: {time_range}",
                              details={"supported": list(TIME_RANGE_DAYS)})
    now = datetime.now()
    start = now - timedelta(days=days)

    owned = projects.list_projects(user_id)
    titles = {p.id: p.title for p in owned}
    created = [p for p in owned if p.created_at >= start]
    completed = [p for p in owned if p.status == ProjectStatus.COMPLETED and p.updated_at >= start]
    success_rate = min(100, round(len(completed) / len(created) * 100)) if created else 0
    processing_times = [
        p.metadata["processingTime"] for p in completed
        if isinstance(p.metadata.get("processingTime"), (int, float))
    ]

    sessions = [s for p in owned for s in registry.sessions_for_project(p.id)]
    recent = sorted((s for s in sessions if s.created_at >= start), key=lambda s: s.created_at, reverse=True)
    usages = [u for s in sessions for u in s.tool_usage if u.created_at >= start]

    return {
        "success": True,
        "data": {
            "overview": {
                "totalProjects": len(created),
                "completedProjects": len(completed),
                "successRate": success_rate,
                "averageProcessingTime": round(sum(processing_times) / len(processing_times))
                if processing_times else 0,
            },
            "recentActivity": [
                {
                    "id": s.id,
                    "projectTitle": titles[s.project_id],
                    "status": s.status.value,
                    "progress": s.progress,
                    "createdAt": s.created_at.isoformat(),
                }
                for s in recent[:RECENT_ACTIVITY_LIMIT]
            ],
            "toolUsage": tool_statistics(usages),
            "timeRange": {"start": start.isoformat(), "end": now.isoformat(), "range": time_range},
        }
    }
