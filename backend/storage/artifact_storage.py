"""
Artifact Storage - rendered PDF and LaTeX files per project.

Files live under ``<storage_dir>/<project_id>/output`` next to a JSON manifest
describing them.
"""
import asyncio
import json
import logging
import shutil
from pathlib import Path
from typing import Dict, List, Optional

import aiofiles

from backend.shared.errors import NotFoundError
from backend.shared.models import ProjectFile

logger = logging.getLogger(__name__)

MANIFEST_NAME = "files.json"


class ArtifactStorage:
    """Writes, lists and removes project artifacts on disk."""

    def __init__(self, base_dir: str):
        self._lock = asyncio.Lock()
        self._base_dir = Path(base_dir)
        self._files: Dict[str, List[ProjectFile]] = {}

    async def initialize(self) -> None:
        """Create the storage root and load existing manifests."""
        self._base_dir.mkdir(parents=True, exist_ok=True)
        for manifest in self._base_dir.glob(f"*/{MANIFEST_NAME}"):
            project_id = manifest.parent.name
            try:
                async with aiofiles.open(manifest, 'r', encoding='utf-8') as f:
                    data = json.loads(await f.read())
                self._files[project_id] = [ProjectFile.model_validate(item) for item in data]
            except Exception as e:
                logger.error(f"Failed to load artifact manifest for {project_id}: {e}")
        logger.info(f"Artifact storage initialized at {self._base_dir}")

    def _project_dir(self, project_id: str) -> Path:
        return self._base_dir / project_id

    def _output_dir(self, project_id: str) -> Path:
        return self._project_dir(project_id) / "output"

    async def _save_manifest(self, project_id: str) -> None:
        manifest_path = self._project_dir(project_id) / MANIFEST_NAME
        records = [f.model_dump(mode="json", by_alias=True) for f in self._files.get(project_id, [])]
        async with aiofiles.open(manifest_path, 'w', encoding='utf-8') as f:
            await f.write(json.dumps(records, indent=2))

    async def save_artifact(
        self,
        project_id: str,
        file_name: str,
        data: bytes,
        file_type: str = "PDF",
        metadata: Optional[dict] = None
    ) -> ProjectFile:
        """Write an artifact, replacing an earlier file of the same name."""
        async with self._lock:
            output_dir = self._output_dir(project_id)
            output_dir.mkdir(parents=True, exist_ok=True)

            path = output_dir / file_name
            async with aiofiles.open(path, 'wb') as f:
                await f.write(data)

            record = ProjectFile(
                project_id=project_id,
                file_name=file_name,
                file_path=str(path),
                file_type=file_type,
                file_size=len(data),
                metadata=metadata or {}
            )
            files = [f for f in self._files.get(project_id, []) if f.file_name != file_name]
            files.append(record)
            self._files[project_id] = files
            await self._save_manifest(project_id)

            logger.info(f"Saved {file_type} artifact {path} ({len(data)} bytes)")
            return record

    def list_files(self, project_id: str) -> List[ProjectFile]:
        """Artifacts of a project, newest first."""
        return sorted(self._files.get(project_id, []), key=lambda f: f.created_at, reverse=True)

    def latest_file(self, project_id: str, file_type: str = "PDF") -> Optional[ProjectFile]:
        for record in self.list_files(project_id):
            if record.file_type == file_type:
                return record
        return None

    async def read_artifact(self, record: ProjectFile) -> bytes:
        """
        Raises:
            NotFoundError: the file was recorded but is gone from disk
        """
        path = Path(record.file_path)
        if not path.exists():
            logger.warning(f"Artifact missing on disk: {path}")
            raise NotFoundError(f"{record.file_type} file not found on disk")
        async with aiofiles.open(path, 'rb') as f:
            return await f.read()

    async def delete_project(self, project_id: str) -> bool:
        """Remove every artifact of a project. Returns True if anything was deleted."""
        async with self._lock:
            self._files.pop(project_id, None)
            project_dir = self._project_dir(project_id)
            if not project_dir.exists():
                return False
            shutil.rmtree(project_dir)
            logger.info(f"Deleted artifacts of project {project_id}")
            return True
