"""
Configuration for the Research Paper Studio backend.
Defines relay, editor, upload and rendering settings loaded from the environment.
"""
from typing import List, Optional
from pydantic_settings import BaseSettings


class AppConfig(BaseSettings):
    """Application-wide configuration."""

    # Streaming channel
    websocket_url: str = "ws://localhost:8000/ws"
    # Seconds a finished session keeps its room so late reconnects still attach
    session_release_grace_seconds: float = 30.0

    # Authentication (token validation happens upstream; the secret is shared with it)
    auth_secret: str = ""
    auth_secret_header: str = "X-Auth-Secret"
    user_id_header: str = "X-User-Id"

    # Uploads
    max_upload_bytes: int = 10 * 1024 * 1024  # 10MB spreadsheet import limit

    # Suggestion debouncing
    suggestion_delay_seconds: float = 1.0
    suggestion_min_length: int = 50
    suggestion_service_url: Optional[str] = None
    suggestion_timeout_seconds: float = 15.0

    # Workflow orchestrator (external agent service)
    orchestrator_url: Optional[str] = None
    orchestrator_timeout_seconds: float = 300.0
    estimated_generation_ms: int = 300000  # 5 minutes

    # Rendering
    storage_dir: str = "backend/data/projects"
    latex_engine: str = "pdflatex"
    latex_timeout_seconds: float = 120.0

    # HTTP
    cors_origins: List[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]

    # Debug
    debug_mode: bool = False

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


# Global configuration instance
app_config = AppConfig()
