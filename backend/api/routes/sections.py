"""
Section editor API routes.

``report_id`` is the id of the project the sections belong to.
"""
from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from fastapi.responses import RedirectResponse, Response
from typing import Optional
import logging

from backend.api.dependencies import (
    current_user_id,
    get_compiler,
    get_config,
    get_projects,
    get_sections,
    get_suggestions,
)
from backend.editor.chart_builder import build_chart
from backend.editor.section_store import SectionStore
from backend.editor.table_import import build_table, import_table
from backend.rendering.compiler import DocumentCompiler
from backend.rendering.latex_formatter import sanitize_filename
from backend.shared.config import AppConfig
from backend.shared.errors import AppError, ValidationError
from backend.shared.models import (
    CreateSectionRequest,
    GenerateChartRequest,
    GenerateStructureRequest,
    GenerateTableRequest,
    ReorderSectionsRequest,
    SectionType,
    UpdateSectionRequest,
)
from backend.shared.report_types import build_structure, get_report_type_config
from backend.shared.suggestion_client import SuggestionClient
from backend.storage.project_store import ProjectStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sections", tags=["sections"])


@router.get("/{report_id}")
async def list_sections(
    report_id: str,
    user_id: str = Depends(current_user_id),
    projects: ProjectStore = Depends(get_projects),
    sections: SectionStore = Depends(get_sections)
):
    projects.get_project(report_id, user_id)
    return {"success": True, "data": [s.to_wire() for s in sections.list_sections(report_id)]}


@router.post("/{report_id}", status_code=201)
async def create_section(
    report_id: str,
    request: CreateSectionRequest,
    user_id: str = Depends(current_user_id),
    projects: ProjectStore = Depends(get_projects),
    sections: SectionStore = Depends(get_sections)
):
    """Insert a section; later sections shift down to keep positions dense."""
    projects.get_project(report_id, user_id)
    section = await sections.create_section(
        report_id,
        title=request.title,
        content=request.content,
        section_type=request.type,
        order=request.order,
        metadata=request.metadata
    )
    return {"success": True, "data": section.to_wire()}


@router.post("/{report_id}/reorder")
async def reorder_sections(
    report_id: str,
    request: ReorderSectionsRequest,
    user_id: str = Depends(current_user_id),
    projects: ProjectStore = Depends(get_projects),
    sections: SectionStore = Depends(get_sections)
):
    """
    Apply a complete new ordering.

    The orders must be exactly 1..N and the ids exactly the report's current
    sections, otherwise nothing changes.
    """
    projects.get_project(report_id, user_id)

    entries = sorted(request.section_orders, key=lambda entry: entry.order)
    orders = [entry.order for entry in entries]
    if orders != list(range(1, len(entries) + 1)):
        raise ValidationError(
            "Section orders must be a permutation of 1..N",
            details={"orders": orders}
        )

    reordered = await sections.reorder_sections(report_id, [entry.id for entry in entries])
    return {"success": True, "data": [s.to_wire() for s in reordered]}


@router.get("/{report_id}/suggestions/{section_id}")
async def get_suggestions_for_section(
    report_id: str,
    section_id: str,
    user_id: str = Depends(current_user_id),
    projects: ProjectStore = Depends(get_projects),
    sections: SectionStore = Depends(get_sections),
    suggestions: SuggestionClient = Depends(get_suggestions)
):
    """Suggestions for the section's current content (empty when the service is off)."""
    projects.get_project(report_id, user_id)
    section = sections.get_section(report_id, section_id)
    try:
        found = await suggestions.suggest(section.content, project_id=report_id, section_id=section_id)
        return {"success": True, "data": [s.to_wire() for s in found]}

    except (AppError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Failed to get content suggestions for section {section_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to get content suggestions")


@router.get("/{report_id}/download/{output_format}")
async def download_sections(
    report_id: str,
    output_format: str,
    user_id: str = Depends(current_user_id),
    projects: ProjectStore = Depends(get_projects),
    compiler: DocumentCompiler = Depends(get_compiler)
):
    """Export the current sections: LaTeX source directly, PDF via the project download."""
    projects.get_project(report_id, user_id)

    if output_format == "pdf":
        return RedirectResponse(url=f"/api/projects/{report_id}/download", status_code=302)

    if output_format == "latex":
        project, document = compiler.build_latex(report_id)
        filename = f"{sanitize_filename(project.title)}.tex"
        return Response(
            content=document.source,
            media_type="application/x-latex",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'}
        )

    raise ValidationError("Invalid format. Use pdf or latex", details={"format": output_format})


@router.post("/{report_id}/generate-structure")
async def generate_structure(
    report_id: str,
    request: Optional[GenerateStructureRequest] = None,
    user_id: str = Depends(current_user_id),
    projects: ProjectStore = Depends(get_projects),
    sections: SectionStore = Depends(get_sections)
):
    """Replace the report's sections with a report type's placeholder skeleton."""
    projects.get_project(report_id, user_id)
    request = request or GenerateStructureRequest()

    config = get_report_type_config(request.report_type)
    drafts = build_structure(
        request.report_type,
        academic_level=request.academic_level,
        field_of_study=request.field_of_study,
        word_limit=request.word_limit,
        custom_sections=request.custom_sections
    )
    created = await sections.replace_sections(report_id, drafts)
    logger.info(f"Generated {request.report_type} structure for report {report_id} ({len(created)} sections)")

    return {
        "success": True,
        "data": {
            "structure": config.template.to_wire(),
            "sections": [s.to_wire() for s in created],
            "guidelines": {s.id: s.guidelines for s in config.template.sections if s.guidelines},
        }
    }


@router.post("/{report_id}/import-table", status_code=201)
async def import_table_section(
    report_id: str,
    file: UploadFile = File(...),
    title: Optional[str] = Form(None),
    order: Optional[int] = Form(None),
    user_id: str = Depends(current_user_id),
    config: AppConfig = Depends(get_config),
    projects: ProjectStore = Depends(get_projects),
    sections: SectionStore = Depends(get_sections)
):
    """Turn an uploaded CSV or Excel sheet into a TABLE section."""
    projects.get_project(report_id, user_id)
    data = await file.read(config.max_upload_bytes + 1)
    draft = import_table(file.filename or "", data, title=title, max_bytes=config.max_upload_bytes)

    section = await sections.create_section(
        report_id,
        title=draft.title,
        content=draft.content,
        section_type=draft.type,
        order=order,
        metadata=draft.metadata
    )
    return {"success": True, "data": section.to_wire()}


@router.post("/{report_id}/generate-table")
async def generate_table(
    report_id: str,
    request: GenerateTableRequest,
    user_id: str = Depends(current_user_id),
    projects: ProjectStore = Depends(get_projects),
    sections: SectionStore = Depends(get_sections)
):
    """Render structured table data as LaTeX, optionally storing it as a TABLE section."""
    projects.get_project(report_id, user_id)
    content = build_table(request.data, request.options)

    data = {"content": content, "format": "latex"}
    if request.add_section:
        section = await sections.create_section(
            report_id,
            title=request.title or request.data.caption or "Table",
            content=content,
            section_type=SectionType.TABLE,
            order=request.order,
            metadata={"columns": request.data.headers, "rowCount": len(request.data.rows),
                      "style": request.options.style}
        )
        data["section"] = section.to_wire()
    return {"success": True, "data": data}


@router.post("/{report_id}/generate-chart")
async def generate_chart(
    report_id: str,
    request: GenerateChartRequest,
    user_id: str = Depends(current_user_id),
    projects: ProjectStore = Depends(get_projects),
    sections: SectionStore = Depends(get_sections)
):
    """Render chart data as a pgfplots figure, optionally storing it as a CHART section."""
    projects.get_project(report_id, user_id)
    content = build_chart(request.data, request.options)

    data = {"content": content, "format": "latex"}
    if request.add_section:
        section = await sections.create_section(
            report_id,
            title=request.title or request.options.title or "Chart",
            content=content,
            section_type=SectionType.CHART,
            order=request.order,
            metadata={"chartType": request.options.type, "labels": request.data.labels,
                      "datasets": [d.label for d in request.data.datasets]}
        )
        data["section"] = section.to_wire()
    return {"success": True, "data": data}


@router.get("/{report_id}/{section_id}")
async def get_section(
    report_id: str,
    section_id: str,
    user_id: str = Depends(current_user_id),
    projects: ProjectStore = Depends(get_projects),
    sections: SectionStore = Depends(get_sections)
):
    projects.get_project(report_id, user_id)
    return {"success": True, "data": sections.get_section(report_id, section_id).to_wire()}


@router.put("/{report_id}/{section_id}")
async def update_section(
    report_id: str,
    section_id: str,
    request: UpdateSectionRequest,
    user_id: str = Depends(current_user_id),
    projects: ProjectStore = Depends(get_projects),
    sections: SectionStore = Depends(get_sections)
):
    """Partial update; omitted fields are left as they are."""
    projects.get_project(report_id, user_id)
    section = await sections.update_section(
        report_id,
        section_id,
        title=request.title,
        content=request.content,
        section_type=request.type,
        metadata=request.metadata
    )
    return {"success": True, "data": section.to_wire()}


@router.delete("/{report_id}/{section_id}")
async def delete_section(
    report_id: str,
    section_id: str,
    user_id: str = Depends(current_user_id),
    projects: ProjectStore = Depends(get_projects),
    sections: SectionStore = Depends(get_sections)
):
    projects.get_project(report_id, user_id)
    await sections.delete_section(report_id, section_id)
    return {"success": True, "message": "Section deleted successfully"}
