"""
FastAPI main application.
"""
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from contextlib import asynccontextmanager
from typing import Optional
import logging

from backend.api.middleware import setup_middleware
from backend.api.routes import projects, sections, research, report_types, websocket
from backend.editor.section_store import SectionStore
from backend.editor.selection import EditorSelections
from backend.generation.agent_client import AgentServiceClient
from backend.generation.generation_service import GenerationService
from backend.generation.orchestrator import StagedResearchOrchestrator, WorkflowOrchestrator
from backend.relay.session_registry import SessionRegistry
from backend.rendering.compiler import DocumentCompiler
from backend.rendering.pdf_renderer import PdfRenderer
from backend.shared.config import AppConfig, app_config
from backend.shared.errors import AppError
from backend.shared.suggestion_client import SuggestionClient
from backend.storage.artifact_storage import ArtifactStorage
from backend.storage.project_store import ProjectStore

APP_NAME = "Research Paper Studio"
APP_VERSION = "1.0.0"

# Setup logging with millisecond precision for log correlation
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s.%(msecs)03d - %(name)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger(__name__)

# Suppress noisy HTTP client logs (keep only WARNING/ERROR level)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("urllib3").setLevel(logging.WARNING)


def create_app(
    config: AppConfig = app_config,
    orchestrator: Optional[WorkflowOrchestrator] = None,
    renderer: Optional[PdfRenderer] = None,
    suggestion_client: Optional[SuggestionClient] = None
) -> FastAPI:
    """
    Build the application with its own registry and stores.

    The orchestrator, renderer and suggestion client can be supplied to run
    the API against stand-ins for the external services.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifespan events for the FastAPI app."""
        # Startup
        logger.info(f"Starting {APP_NAME}...")

        registry = SessionRegistry(release_grace_seconds=config.session_release_grace_seconds)
        project_store = ProjectStore()
        section_store = SectionStore()
        artifacts = ArtifactStorage(config.storage_dir)
        await artifacts.initialize()

        compiler = DocumentCompiler(
            project_store,
            section_store,
            artifacts,
            renderer or PdfRenderer(engine=config.latex_engine, timeout=config.latex_timeout_seconds)
        )

        workflow = orchestrator
        if workflow is None:
            if not config.orchestrator_url:
                logger.warning("Research agent service not configured. Generation runs will fail until "
                               "ORCHESTRATOR_URL is set.")
            workflow = StagedResearchOrchestrator(
                AgentServiceClient(config.orchestrator_url, timeout=config.orchestrator_timeout_seconds)
            )

        app.state.config = config
        app.state.registry = registry
        app.state.projects = project_store
        app.state.sections = section_store
        app.state.artifacts = artifacts
        app.state.compiler = compiler
        app.state.generation = GenerationService(
            registry, project_store, section_store, compiler, workflow,
            estimated_duration_ms=config.estimated_generation_ms
        )
        app.state.suggestions = suggestion_client or SuggestionClient(
            config.suggestion_service_url, timeout=config.suggestion_timeout_seconds
        )
        app.state.selections = EditorSelections()

        logger.info(f"{APP_NAME} ready")

        yield

        # Shutdown
        logger.info(f"Shutting down {APP_NAME}...")
        await app.state.generation.stop()
        registry.close()
        await workflow.close()
        await app.state.suggestions.close()
        logger.info("Shutdown complete")

    app = FastAPI(
        title=APP_NAME,
        description="AI research paper generation with live progress and a section editor",
        version=APP_VERSION,
        lifespan=lifespan
    )

    if config.debug_mode:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.debug("Debug logging enabled")

    # Setup middleware
    setup_middleware(app, config)

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_dict()))

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": str(exc.detail)},
            headers=getattr(exc, "headers", None)
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": "Invalid request", "details": jsonable_encoder(exc.errors())}
        )

    # Include routers
    app.include_router(projects.router)
    app.include_router(sections.router)
    app.include_router(research.router)
    app.include_router(report_types.router)
    app.include_router(websocket.router)

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "name": APP_NAME,
            "version": APP_VERSION,
            "status": "running",
            "websocketUrl": config.websocket_url
        }

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "healthy"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000, access_log=False)
