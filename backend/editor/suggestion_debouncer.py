"""
Suggestion Debouncer - one suggestion request per quiet period.

Content-change events restart a timer; only when no change arrives for
``delay`` seconds is a request issued, and only for content long enough to be
worth suggesting against. Results of superseded requests are dropped so a slow
older response never overwrites a newer one.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, Set

from backend.shared.models import ContentSuggestion

logger = logging.getLogger(__name__)


@dataclass
class SuggestionResult:
    """Outcome of one issued suggestion request."""
    request_id: int
    content: str
    suggestions: List[ContentSuggestion] = field(default_factory=list)
    error: Optional[str] = None


FetchSuggestions = Callable[[str], Awaitable[List[ContentSuggestion]]]
DeliverResult = Callable[[SuggestionResult], Awaitable[None]]


class SuggestionDebouncer:
    """
    Debounces content changes into suggestion requests (last request wins).

    Must be used from within a running event loop.
    """

    def __init__(
        self,
        fetch: FetchSuggestions,
        on_result: DeliverResult,
        delay: float = 1.0,
        min_length: int = 50
    ):
        self.fetch = fetch
        self.on_result = on_result
        self.delay = delay
        self.min_length = min_length

        self.requests_issued = 0
        self.results_discarded = 0
        self.latest_result: Optional[SuggestionResult] = None

        self._latest_request_id = 0
        self._timer: Optional[asyncio.Task] = None
        self._in_flight: Set[asyncio.Task] = set()

    @property
    def pending(self) -> bool:
        """True while a quiet-period timer is running."""
        return self._timer is not None and not self._timer.done()

    def notify_change(self, content: str) -> None:
        """Record a content change and restart the quiet period."""
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = asyncio.create_task(self._wait_then_request(content))

    async def _wait_then_request(self, content: str) -> None:
        await asyncio.sleep(self.delay)
        self._timer = None

        # Every quiet period supersedes whatever is still in flight
        self._latest_request_id += 1
        request_id = self._latest_request_id

        if len(content.strip()) < self.min_length:
            await self._deliver(SuggestionResult(request_id=request_id, content=content))
            return

        self.requests_issued += 1
        logger.debug(f"Issuing suggestion request #{request_id} ({len(content)} chars)")
        task = asyncio.create_task(self._run_request(request_id, content))
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)

    async def _run_request(self, request_id: int, content: str) -> None:
        try:
            suggestions = await self.fetch(content)
            result = SuggestionResult(request_id=request_id, content=content, suggestions=suggestions)
        except Exception as e:
            logger.warning(f"Suggestion request #{request_id} failed: {e}")
            result = SuggestionResult(request_id=request_id, content=content, error=str(e))

        if request_id != self._latest_request_id:
            self.results_discarded += 1
            logger.debug(f"Discarding superseded suggestion result #{request_id}")
            return
        await self._deliver(result)

    async def _deliver(self, result: SuggestionResult) -> None:
        self.latest_result = result
        try:
            await self.on_result(result)
        except Exception as e:
            logger.warning(f"Delivering suggestion result #{result.request_id} failed: {e}")

    def cancel(self) -> None:
        """Stop the pending timer and abandon in-flight requests."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        for task in list(self._in_flight):
            task.cancel()
        self._in_flight.clear()
