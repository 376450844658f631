"""Tests for debounced content suggestions."""
import asyncio

import pytest

from backend.editor.suggestion_debouncer import SuggestionDebouncer
from backend.shared.models import ContentSuggestion
from backend.shared.suggestion_client import SuggestionClient

LONG_TEXT = "Transformer models have reshaped natural language processing research. "


class FakeSuggestionService:
    """Records requests and answers after a configurable delay per call."""

    def __init__(self, delays=None, fail=False):
        self.requests = []
        self.delays = list(delays or [])
        self.fail = fail

    async def fetch(self, content: str):
        self.requests.append(content)
        delay = self.delays.pop(0) if self.delays else 0
        await asyncio.sleep(delay)
        if self.fail:
            raise RuntimeError("service down")
        return [ContentSuggestion(type="citation_opportunity", relevance=0.9, reason=content[-8:])]


@pytest.fixture
def results():
    return []


def make_debouncer(service, results, delay=0.2, min_length=50):
    async def on_result(result):
        results.append(result)
    return SuggestionDebouncer(service.fetch, on_result, delay=delay, min_length=min_length)


# =============================================================================
# Debounce Tests
# =============================================================================


class TestDebounce:
    """Tests for request coalescing."""

    @pytest.mark.asyncio
    async def test_rapid_changes_issue_one_request(self, results):
        service = FakeSuggestionService()
        debouncer = make_debouncer(service, results)

        for i in range(3):
            debouncer.notify_change(LONG_TEXT + str(i))
            await asyncio.sleep(0.02)
        assert debouncer.pending

        await asyncio.sleep(0.35)

        assert service.requests == [LONG_TEXT + "2"]
        assert debouncer.requests_issued == 1
        assert len(results) == 1
        assert results[0].content == LONG_TEXT + "2"

    @pytest.mark.asyncio
    async def test_changes_after_quiet_period_issue_again(self, results):
        service = FakeSuggestionService()
        debouncer = make_debouncer(service, results, delay=0.05)

        debouncer.notify_change(LONG_TEXT + "a")
        await asyncio.sleep(0.15)
        debouncer.notify_change(LONG_TEXT + "b")
        await asyncio.sleep(0.15)

        assert service.requests == [LONG_TEXT + "a", LONG_TEXT + "b"]

    @pytest.mark.asyncio
    async def test_short_content_is_not_sent(self, results):
        service = FakeSuggestionService()
        debouncer = make_debouncer(service, results, delay=0.05)

        debouncer.notify_change("too short")
        await asyncio.sleep(0.15)

        assert service.requests == []
        assert len(results) == 1
        assert results[0].suggestions == []

    @pytest.mark.asyncio
    async def test_delivery_failure_is_logged(self, caplog):
        service = FakeSuggestionService()
        delivered = []

        async def on_result(result):
            delivered.append(result)
            if len(delivered) == 1:
                raise RuntimeError("socket closed")

        debouncer = SuggestionDebouncer(service.fetch, on_result, delay=0.05)
        with caplog.at_level("WARNING", logger="backend.editor.suggestion_debouncer"):
            debouncer.notify_change(LONG_TEXT)
            await asyncio.sleep(0.15)
            debouncer.notify_change(LONG_TEXT + "again")
            await asyncio.sleep(0.15)

        assert len(delivered) == 2
        assert "socket closed" in caplog.text

    @pytest.mark.asyncio
    async def test_stale_result_never_overwrites_newer(self, results):
        # First request answers slowly, second quickly
        service = FakeSuggestionService(delays=[0.3, 0.0])
        debouncer = make_debouncer(service, results, delay=0.05)

        debouncer.notify_change(LONG_TEXT + "old")
        await asyncio.sleep(0.1)
        debouncer.notify_change(LONG_TEXT + "new")
        await asyncio.sleep(0.45)

        assert [r.content for r in results] == [LONG_TEXT + "new"]
        assert debouncer.latest_result.content == LONG_TEXT + "new"
        assert debouncer.results_discarded == 1

    @pytest.mark.asyncio
    async def test_fetch_failure_is_reported_as_error(self, results):
        service = FakeSuggestionService(fail=True)
        debouncer = make_debouncer(service, results, delay=0.05)

        debouncer.notify_change(LONG_TEXT)
        await asyncio.sleep(0.15)

        assert results[0].error == "service down"
        assert results[0].suggestions == []

    @pytest.mark.asyncio
    async def test_cancel_stops_pending_request(self, results):
        service = FakeSuggestionService()
        debouncer = make_debouncer(service, results, delay=0.05)

        debouncer.notify_change(LONG_TEXT)
        debouncer.cancel()
        await asyncio.sleep(0.1)

        assert service.requests == []
        assert results == []


# =============================================================================
# Suggestion Client Tests
# =============================================================================


class TestSuggestionClient:
    """Tests for the suggestion client without a configured service."""

    @pytest.mark.asyncio
    async def test_disabled_client_returns_no_suggestions(self):
        client = SuggestionClient(base_url=None)
        assert client.enabled is False
        assert await client.suggest(LONG_TEXT) == []
        await client.close()
