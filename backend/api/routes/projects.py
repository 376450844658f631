"""
Project API routes.
"""
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response
from typing import Any, Dict, Optional
import logging

from backend.api.dependencies import (
    current_user_id,
    get_artifacts,
    get_compiler,
    get_config,
    get_generation,
    get_projects,
    get_registry,
    get_sections,
)
from backend.editor.section_store import SectionStore
from backend.generation.generation_service import GenerationService
from backend.relay.session_registry import SessionRegistry
from backend.rendering.compiler import DocumentCompiler
from backend.shared.config import AppConfig
from backend.shared.errors import AppError, NotFoundError
from backend.shared.models import CompileRequest, CreateProjectRequest, GenerateRequest, Project, ResearchSession
from backend.storage.artifact_storage import ArtifactStorage
from backend.storage.project_store import ProjectStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/projects", tags=["projects"])


def _session_summary(session: Optional[ResearchSession]) -> Optional[Dict[str, Any]]:
    if session is None:
        return None
    return {
        "id": session.id,
        "status": session.status.value,
        "progress": session.progress,
        "currentStep": session.current_step,
        "createdAt": session.created_at.isoformat(),
        "completedAt": session.completed_at.isoformat() if session.completed_at else None,
    }


def _project_summary(project: Project, registry: SessionRegistry, artifacts: ArtifactStorage) -> Dict[str, Any]:
    data = project.to_wire()
    data.pop("content", None)
    latest_pdf = artifacts.latest_file(project.id, "PDF")
    data["latestSession"] = _session_summary(registry.latest_session_for_project(project.id))
    data["latestFile"] = latest_pdf.to_wire() if latest_pdf else None
    return data


@router.get("")
async def list_projects(
    user_id: str = Depends(current_user_id),
    projects: ProjectStore = Depends(get_projects),
    registry: SessionRegistry = Depends(get_registry),
    artifacts: ArtifactStorage = Depends(get_artifacts)
):
    """List the user's projects with their latest session."""
    items = [_project_summary(p, registry, artifacts) for p in projects.list_projects(user_id)]
    return {"success": True, "data": items, "total": len(items)}


@router.post("", status_code=201)
async def create_project(
    request: CreateProjectRequest,
    user_id: str = Depends(current_user_id),
    projects: ProjectStore = Depends(get_projects)
):
    """Create a project in DRAFT status."""
    project = await projects.create_project(user_id, request.title, request.topic, request.preferences)
    return {"success": True, "data": project.to_wire(), "message": "Project created successfully"}


@router.get("/{project_id}")
async def get_project(
    project_id: str,
    user_id: str = Depends(current_user_id),
    projects: ProjectStore = Depends(get_projects),
    registry: SessionRegistry = Depends(get_registry),
    sections: SectionStore = Depends(get_sections),
    artifacts: ArtifactStorage = Depends(get_artifacts)
):
    """Project details with sessions, sections and rendered files."""
    project = projects.get_project(project_id, user_id)
    data = project.to_wire()
    data["sessions"] = [_session_summary(s) for s in registry.sessions_for_project(project_id)]
    data["sections"] = [s.to_wire() for s in sections.list_sections(project_id)]
    data["files"] = [f.to_wire() for f in artifacts.list_files(project_id)]
    return {"success": True, "data": data}


@router.post("/{project_id}/generate")
async def generate_project(
    project_id: str,
    request: Optional[GenerateRequest] = None,
    user_id: str = Depends(current_user_id),
    config: AppConfig = Depends(get_config),
    generation: GenerationService = Depends(get_generation)
):
    """Start research generation; progress streams over the session's websocket room."""
    try:
        options = request.options if request else None
        session = await generation.start_generation(project_id, user_id, options)
        return {
            "success": True,
            "data": {
                "sessionId": session.id,
                "message": "Research generation started",
                "estimatedDuration": generation.estimated_duration_ms,
                "websocketUrl": config.websocket_url,
            }
        }

    except (AppError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Failed to start research generation for {project_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to start research generation")


@router.get("/{project_id}/status")
async def get_project_status(
    project_id: str,
    user_id: str = Depends(current_user_id),
    projects: ProjectStore = Depends(get_projects),
    registry: SessionRegistry = Depends(get_registry)
):
    """Project status and the progress of its latest session."""
    project = projects.get_project(project_id, user_id)
    latest = registry.latest_session_for_project(project_id)
    return {
        "success": True,
        "data": {
            "projectStatus": project.status.value,
            "sessionStatus": latest.status.value if latest else None,
            "progress": latest.progress if latest else 0,
            "currentStep": latest.current_step if latest else "Not started",
            "updatedAt": project.updated_at.isoformat(),
            "sessionId": latest.id if latest else None,
        }
    }


@router.get("/{project_id}/download")
async def download_pdf(
    project_id: str,
    view: bool = Query(False),
    user_id: str = Depends(current_user_id),
    projects: ProjectStore = Depends(get_projects),
    artifacts: ArtifactStorage = Depends(get_artifacts)
):
    """Serve the latest rendered PDF, inline when ``view`` is set."""
    projects.get_project(project_id, user_id)
    record = artifacts.latest_file(project_id, "PDF")
    if record is None:
        raise NotFoundError("PDF file not generated yet")

    data = await artifacts.read_artifact(record)
    disposition = "inline" if view else f'attachment; filename="{record.file_name}"'
    return Response(content=data, media_type="application/pdf", headers={"Content-Disposition": disposition})


@router.post("/{project_id}/compile")
async def compile_project(
    project_id: str,
    request: Optional[CompileRequest] = None,
    user_id: str = Depends(current_user_id),
    projects: ProjectStore = Depends(get_projects),
    compiler: DocumentCompiler = Depends(get_compiler)
):
    """Re-render the project from its current sections without re-running research."""
    projects.get_project(project_id, user_id)
    output_format = request.format if request else "pdf"
    try:
        if output_format == "latex":
            document, record = await compiler.compile_latex(project_id)
            return {
                "success": True,
                "data": {
                    "format": "latex",
                    "content": document.source,
                    "warnings": document.warnings,
                    "metadata": document.metadata,
                    "file": record.to_wire(),
                }
            }

        record = await compiler.compile_pdf(project_id)
        return {
            "success": True,
            "data": {
                "format": "pdf",
                "file": record.to_wire(),
                "downloadUrl": f"/api/projects/{project_id}/download",
            },
            "message": "PDF compiled successfully"
        }

    except (AppError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Failed to compile project {project_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to compile document")


@router.delete("/{project_id}")
async def delete_project(
    project_id: str,
    user_id: str = Depends(current_user_id),
    projects: ProjectStore = Depends(get_projects),
    registry: SessionRegistry = Depends(get_registry),
    sections: SectionStore = Depends(get_sections),
    artifacts: ArtifactStorage = Depends(get_artifacts),
    generation: GenerationService = Depends(get_generation)
):
    """Delete a project with its sessions, sections and rendered files."""
    projects.get_project(project_id, user_id)
    try:
        if await generation.cancel_project(project_id):
            logger.info(f"Cancelled running generation of deleted project {project_id}")
        registry.forget_project(project_id)
        await sections.delete_report(project_id)
        await artifacts.delete_project(project_id)
        await projects.delete_project(project_id, user_id)
        return {"success": True, "message": "Project deleted successfully"}

    except (AppError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Failed to delete project {project_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to delete project")
