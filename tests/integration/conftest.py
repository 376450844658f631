"""Fixtures for integration tests.

Provides an application wired to fake external services and a test client.
"""
import json
from typing import Any, Dict, List

import httpx
import pytest
from fastapi.testclient import TestClient

from backend.api.main import create_app
from backend.shared.config import AppConfig
from backend.shared.suggestion_client import SuggestionClient
from tests.fakes import FakeOrchestrator, FakeRenderer

# =============================================================================
# Suggestion Service Fixtures
# =============================================================================


class MockSuggestionService:
    """Answers suggestion requests through an httpx mock transport."""

    def __init__(self):
        self.requests: List[Dict[str, Any]] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.requests.append(body)
        return httpx.Response(200, json={"suggestions": [
            {"type": "citation_opportunity", "content": {"text": body["content"][:20]},
             "relevance": 0.4, "reason": "Claim without source"},
            {"type": "similar_section", "content": {"sectionId": "other"}, "relevance": 0.9,
             "reason": "Overlaps with Background"},
        ]})

    def client(self) -> SuggestionClient:
        client = SuggestionClient(base_url="http://suggestions.test")
        client.client = httpx.AsyncClient(transport=httpx.MockTransport(self.handler))
        return client


@pytest.fixture
def suggestion_service():
    return MockSuggestionService()


# =============================================================================
# Application Fixtures
# =============================================================================


@pytest.fixture
def app_config(tmp_path):
    return AppConfig(
        storage_dir=str(tmp_path / "projects"),
        session_release_grace_seconds=0,
        suggestion_delay_seconds=0.2,
        suggestion_min_length=10,
    )


@pytest.fixture
def orchestrator():
    return FakeOrchestrator(wait_for_subscriber=False)


@pytest.fixture
def renderer():
    return FakeRenderer()


@pytest.fixture
def client(app_config, orchestrator, renderer, suggestion_service):
    """Test client with the application lifespan running."""
    app = create_app(
        app_config,
        orchestrator=orchestrator,
        renderer=renderer,
        suggestion_client=suggestion_service.client()
    )
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def create_project(client):
    """Factory creating a project for the default user."""
    def _create(title: str = "Sample Paper", topic: str = "Sample topic", **extra) -> Dict[str, Any]:
        response = client.post("/api/projects", json={"title": title, "topic": topic, **extra},
                               headers={"X-User-Id": "user-1"})
        assert response.status_code == 201
        return response.json()["data"]
    return _create
