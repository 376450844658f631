"""
Project Store - research projects and their status lifecycle.
"""
import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from backend.shared.errors import ConflictError, NotFoundError
from backend.shared.models import Project, ProjectStatus, ResearchOutline, UserPreferences

logger = logging.getLogger(__name__)


# Transitions reachable during a generation run
ALLOWED_TRANSITIONS = {
    ProjectStatus.DRAFT: {ProjectStatus.RESEARCHING},
    ProjectStatus.RESEARCHING: {ProjectStatus.WRITING, ProjectStatus.COMPLETED, ProjectStatus.FAILED},
    ProjectStatus.WRITING: {ProjectStatus.COMPLETED, ProjectStatus.FAILED},
    ProjectStatus.COMPLETED: set(),
    ProjectStatus.FAILED: set(),
}

# Only an explicit new generation request may leave a finished state
RESTARTABLE = {ProjectStatus.COMPLETED, ProjectStatus.FAILED}


class ProjectStore:
    """
    In-memory project records, owned by user id.

    Lookups by another user's id behave exactly like lookups of a missing
    project.
    """

    def __init__(self):
        self._lock = asyncio.Lock()
        self._projects: Dict[str, Project] = {}

    def _require(self, project_id: str, user_id: Optional[str] = None) -> Project:
        project = self._projects.get(project_id)
        if project is None or (user_id is not None and project.user_id != user_id):
            raise NotFoundError("Project not found")
        return project

    # ========================================================================
    # READS
    # ========================================================================

    def get_project(self, project_id: str, user_id: Optional[str] = None) -> Project:
        return self._require(project_id, user_id).model_copy(deep=True)

    def list_projects(self, user_id: str) -> List[Project]:
        """The user's projects, most recently updated first."""
        owned = [p for p in self._projects.values() if p.user_id == user_id]
        owned.sort(key=lambda p: p.updated_at, reverse=True)
        return [p.model_copy(deep=True) for p in owned]

    def count_projects(self) -> int:
        return len(self._projects)

    # ========================================================================
    # WRITES
    # ========================================================================

    async def create_project(
        self,
        user_id: str,
        title: str,
        topic: str,
        preferences: Optional[UserPreferences] = None
    ) -> Project:
        async with self._lock:
            metadata: Dict[str, Any] = {}
            if preferences is not None:
                metadata["preferences"] = preferences.model_dump(by_alias=True, exclude_none=True)

            project = Project(title=title, topic=topic, user_id=user_id, metadata=metadata)
            self._projects[project.id] = project
            logger.info(f"Created project {project.id} for user {user_id}: '{title}'")
            return project.model_copy(deep=True)

    async def transition(
        self,
        project_id: str,
        new_status: ProjectStatus,
        restart: bool = False
    ) -> ProjectStatus:
        """
        Move a project to a new status.

        Args:
            restart: set only when a new generation request starts the run

        Returns:
            The previous status

        Raises:
            ConflictError: the transition is not allowed from the current status
        """
        async with self._lock:
            project = self._require(project_id)
            old_status = project.status

            allowed = ALLOWED_TRANSITIONS[old_status]
            if restart and old_status in RESTARTABLE and new_status == ProjectStatus.RESEARCHING:
                allowed = {ProjectStatus.RESEARCHING}

            if new_status not in allowed:
                raise ConflictError(
                    f"Cannot change project status from {old_status.value} to {new_status.value}",
                    details={"status": old_status.value}
                )

            project.status = new_status
            project.updated_at = datetime.now()
            logger.info(f"Project {project_id} status: {old_status.value} -> {new_status.value}")
            return old_status

    async def save_results(
        self,
        project_id: str,
        outline: Optional[ResearchOutline] = None,
        content: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> Project:
        """Store generation output; metadata keys are merged into the existing metadata."""
        async with self._lock:
            project = self._require(project_id)
            if outline is not None:
                project.outline = outline
            if content is not None:
                project.content = content
            if metadata:
                project.metadata = {**project.metadata, **metadata}
            project.updated_at = datetime.now()
            return project.model_copy(deep=True)

    async def delete_project(self, project_id: str, user_id: Optional[str] = None) -> None:
        async with self._lock:
            self._require(project_id, user_id)
            del self._projects[project_id]
            logger.info(f"Deleted project {project_id}")
