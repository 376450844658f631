"""
Error taxonomy shared by the HTTP layer, the relay and the editor.

Every error carries the HTTP status it maps to, so the request boundary can
translate it into the uniform ``{"success": false, "error": ...}`` envelope.
"""
from typing import Any, Dict, Optional


class AppError(Exception):
    """Base class for all expected application errors."""

    status_code: int = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the error envelope."""
        body: Dict[str, Any] = {"success": False, "error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(AppError):
    """Bad input shape or ids."""
    status_code = 400


class NotFoundError(AppError):
    """Unknown project, session, section or report type."""
    status_code = 404


class ConflictError(AppError):
    """Duplicate active session or an illegal state transition."""
    status_code = 409


class UpstreamError(AppError):
    """Failure from the orchestrator, suggestion service or renderer."""
    status_code = 500
