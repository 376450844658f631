"""Test configuration and shared fixtures."""
from typing import Any, Dict, List

import pytest

from backend.relay.event_relay import ConnectionHandle
from tests.fakes import SAMPLE_CONTENT


# Configure pytest-asyncio
pytest_plugins = ['pytest_asyncio']


class RecordingConnection(ConnectionHandle):
    """Connection handle that records every message it is sent."""

    def __init__(self, connection_id: str, fail: bool = False):
        super().__init__(connection_id)
        self.fail = fail
        self.received: List[Dict[str, Any]] = []

    async def send(self, message: Dict[str, Any]) -> None:
        if self.fail:
            raise ConnectionResetError("peer went away")
        self.received.append(message)

    def types(self) -> List[str]:
        return [m["type"] for m in self.received]


@pytest.fixture
def make_connection():
    """Factory for recording connections."""
    def _create(connection_id: str = "conn-1", fail: bool = False) -> RecordingConnection:
        return RecordingConnection(connection_id, fail=fail)
    return _create


@pytest.fixture(scope="session")
def anyio_backend():
    """Use asyncio as the async backend."""
    return "asyncio"


@pytest.fixture
def sample_content():
    return SAMPLE_CONTENT
