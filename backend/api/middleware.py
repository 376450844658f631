"""
HTTP middleware: CORS and request logging.

Request logging runs through explicit before/after hooks.
"""
import logging
import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from backend.shared.config import AppConfig

logger = logging.getLogger(__name__)


def before_request(request: Request) -> float:
    """Log an incoming request and return its start time."""
    logger.info(f"--> {request.method} {request.url.path}")
    return time.perf_counter()


def after_request(request: Request, status_code: int, started: float) -> None:
    elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
    if status_code >= 500:
        logger.error(f"<-- {request.method} {request.url.path} {status_code} ({elapsed_ms}ms)")
    else:
        logger.info(f"<-- {request.method} {request.url.path} {status_code} ({elapsed_ms}ms)")


def setup_middleware(app: FastAPI, config: AppConfig) -> None:
    """Attach CORS and request logging to the app."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        started = before_request(request)
        try:
            response = await call_next(request)
        except Exception:
            logger.exception(f"<-- {request.method} {request.url.path} failed")
            raise
        after_request(request, response.status_code, started)
        return response
