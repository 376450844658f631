"""
Request-scoped accessors for the services created in the app lifespan.
"""
from fastapi import HTTPException, Request

from backend.editor.section_store import SectionStore
from backend.generation.generation_service import GenerationService
from backend.relay.session_registry import SessionRegistry
from backend.rendering.compiler import DocumentCompiler
from backend.shared.config import AppConfig
from backend.shared.suggestion_client import SuggestionClient
from backend.storage.artifact_storage import ArtifactStorage
from backend.storage.project_store import ProjectStore


def get_config(request: Request) -> AppConfig:
    return request.app.state.config


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.registry


def get_projects(request: Request) -> ProjectStore:
    return request.app.state.projects


def get_sections(request: Request) -> SectionStore:
    return request.app.state.sections


def get_artifacts(request: Request) -> ArtifactStorage:
    return request.app.state.artifacts


def get_compiler(request: Request) -> DocumentCompiler:
    return request.app.state.compiler


def get_generation(request: Request) -> GenerationService:
    return request.app.state.generation


def get_suggestions(request: Request) -> SuggestionClient:
    return request.app.state.suggestions


def current_user_id(request: Request) -> str:
    """
    Id of the authenticated user, as forwarded by the upstream auth layer.

    When an auth secret is configured the upstream layer must also present it,
    so the identity header cannot be set by clients that bypass it.

    Raises:
        HTTPException: 401 when the identity header or the shared secret is missing
    """
    config: AppConfig = request.app.state.config
    if config.auth_secret and request.headers.get(config.auth_secret_header) != config.auth_secret:
        raise HTTPException(status_code=401, detail="Invalid upstream credentials")

    user_id = request.headers.get(config.user_id_header, "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="Authentication required")
    return user_id
