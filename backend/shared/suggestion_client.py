"""
Suggestion service client for live editor suggestions.

Async HTTP client for the external content suggestion service. When no
service URL is configured the client answers every request with an empty
list, which is what editors see when suggestions are switched off.
"""
import httpx
import logging
from typing import List, Optional

from pydantic import ValidationError as PydanticValidationError

from backend.shared.errors import UpstreamError
from backend.shared.models import ContentSuggestion

logger = logging.getLogger(__name__)


class SuggestionClient:
    """
    Client for the content suggestion service.

    Unlike most callers of external services in this backend, failures are
    raised as UpstreamError so the debouncer can surface them to the editor.
    """

    SUGGEST_PATH = "/suggestions"

    def __init__(self, base_url: Optional[str] = None, timeout: float = 15.0):
        """
        Initialize suggestion client.

        Args:
            base_url: Root URL of the suggestion service, None to disable
            timeout: Per-request timeout in seconds
        """
        self.base_url = base_url.rstrip("/") if base_url else None
        self.timeout = timeout
        self.client = httpx.AsyncClient(timeout=timeout) if self.base_url else None
        if self.base_url:
            logger.info(f"Suggestion client initialized for {self.base_url}")
        else:
            logger.info("Suggestion service not configured - suggestions disabled")

    @property
    def enabled(self) -> bool:
        return self.client is not None

    async def suggest(
        self,
        content: str,
        project_id: Optional[str] = None,
        section_id: Optional[str] = None,
        limit: int = 5
    ) -> List[ContentSuggestion]:
        """
        Ask the service for suggestions relevant to a piece of section content.

        Returns:
            Suggestions ranked by relevance, highest first

        Raises:
            UpstreamError: the service timed out, failed or answered garbage
        """
        if self.client is None:
            return []

        body = {
            "content": content,
            "projectId": project_id,
            "sectionId": section_id,
            "limit": limit,
        }

        try:
            logger.debug(f"Requesting suggestions for {len(content)} chars of content")
            response = await self.client.post(f"{self.base_url}{self.SUGGEST_PATH}", json=body)
        except httpx.TimeoutException:
            logger.warning(f"Suggestion request timeout after {self.timeout}s")
            raise UpstreamError("Suggestion service timed out")
        except httpx.HTTPError as e:
            logger.error(f"Suggestion service unreachable: {e}")
            raise UpstreamError("Suggestion service unavailable")

        if response.status_code != 200:
            logger.warning(f"Suggestion request failed: status {response.status_code}")
            raise UpstreamError(
                "Suggestion service request failed",
                details={"status": response.status_code}
            )

        try:
            data = response.json()
            items = data.get("suggestions", []) if isinstance(data, dict) else data
            suggestions = [ContentSuggestion.model_validate(item) for item in items]
        except (ValueError, TypeError, AttributeError, PydanticValidationError) as e:
            logger.error(f"Malformed suggestion response: {e}")
            raise UpstreamError("Suggestion service returned a malformed response")

        suggestions.sort(key=lambda s: s.relevance, reverse=True)
        return suggestions[:limit]

    async def close(self):
        """Close HTTP client."""
        if self.client is not None:
            await self.client.aclose()
            logger.info("Suggestion client closed")
