"""
Document Compiler - renders a project's current sections to LaTeX or PDF.

Recompiling never re-runs research; it reads whatever the editor holds now.
"""
import logging
from datetime import datetime
from typing import List, Tuple

from pydantic import ValidationError as PydanticValidationError

from backend.editor.section_store import SectionStore
from backend.rendering.latex_formatter import LatexDocument, build_document, sanitize_filename
from backend.rendering.pdf_renderer import PdfRenderer
from backend.shared.errors import ValidationError
from backend.shared.models import Citation, Project, ProjectFile
from backend.storage.artifact_storage import ArtifactStorage
from backend.storage.project_store import ProjectStore

logger = logging.getLogger(__name__)


def project_citations(project: Project) -> List[Citation]:
    citations = []
    for raw in project.metadata.get("citations", []) or []:
        try:
            citations.append(Citation.model_validate(raw))
        except PydanticValidationError as e:
            logger.warning(f"Skipping unreadable citation on project {project.id}: {e}")
    return citations


class DocumentCompiler:
    """Builds LaTeX from sections and stores rendered artifacts."""

    def __init__(
        self,
        projects: ProjectStore,
        sections: SectionStore,
        artifacts: ArtifactStorage,
        renderer: PdfRenderer
    ):
        self.projects = projects
        self.sections = sections
        self.artifacts = artifacts
        self.renderer = renderer

    def build_latex(self, project_id: str) -> Tuple[Project, LatexDocument]:
        """
        Raises:
            NotFoundError: unknown project
            ValidationError: the project has no sections
        """
        project = self.projects.get_project(project_id)
        sections = self.sections.list_sections(project_id)
        if not sections:
            raise ValidationError("No sections found for compilation")

        preferences = project.metadata.get("preferences", {}) or {}
        document = build_document(
            title=project.title,
            sections=sections,
            citations=project_citations(project),
            citation_style=preferences.get("citationStyle") or "APA",
        )
        return project, document

    async def compile_latex(self, project_id: str) -> Tuple[LatexDocument, ProjectFile]:
        project, document = self.build_latex(project_id)
        record = await self.artifacts.save_artifact(
            project_id,
            f"{sanitize_filename(project.title)}.tex",
            document.source.encode("utf-8"),
            file_type="LATEX",
            metadata={"generatedAt": datetime.now().isoformat(), "warnings": document.warnings,
                      **document.metadata}
        )
        return document, record

    async def compile_pdf(self, project_id: str) -> ProjectFile:
        """
        Raises:
            UpstreamError: the LaTeX engine is missing or failed
        """
        project, document = self.build_latex(project_id)
        name = sanitize_filename(project.title)

        logger.info(f"Compiling PDF for project {project_id} ({document.metadata['totalSections']} sections)")
        result = await self.renderer.render(document.source, name=name)

        return await self.artifacts.save_artifact(
            project_id,
            f"{name}.pdf",
            result.pdf,
            file_type="PDF",
            metadata={
                "generatedAt": datetime.now().isoformat(),
                "wordCount": document.metadata["wordCount"],
                "engine": result.engine,
                "attempts": result.attempts,
                "warnings": document.warnings,
            }
        )
