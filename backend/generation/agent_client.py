"""
Agent service client - async HTTP access to the external research agents.

Each research tool (outline generation, web search, content analysis, writing)
is exposed by the agent service as ``POST {base_url}/tools/{tool_name}``
returning ``{"success": bool, "data": ..., "error": str?}``.
"""
import asyncio
import logging
from typing import Any, Dict, Optional

import httpx

from backend.shared.errors import UpstreamError

logger = logging.getLogger(__name__)


class AgentServiceClient:
    """Calls research tools on the agent service, retrying dropped connections."""

    MAX_RETRIES = 3
    RETRY_DELAY = 2.0  # seconds

    def __init__(self, base_url: Optional[str] = None, timeout: float = 300.0):
        self.base_url = base_url.rstrip("/") if base_url else None
        self.client = httpx.AsyncClient(
            timeout=timeout,
            limits=httpx.Limits(
                max_keepalive_connections=10,
                max_connections=20,
                keepalive_expiry=30.0
            )
        )

    @property
    def configured(self) -> bool:
        return self.base_url is not None

    async def call_tool(self, tool_name: str, payload: Dict[str, Any]) -> Any:
        """
        Run one tool on the agent service.

        Returns:
            The tool's ``data`` field

        Raises:
            UpstreamError: not configured, unreachable, or the tool reported failure
        """
        if not self.base_url:
            raise UpstreamError("Research agent service is not configured")

        url = f"{self.base_url}/tools/{tool_name}"
        for attempt in range(self.MAX_RETRIES):
            try:
                response = await self.client.post(url, json=payload)
                response.raise_for_status()
                body = response.json()
                break

            except httpx.HTTPStatusError as e:
                detail = e.response.text[:500]
                logger.error(f"Agent tool {tool_name} returned {e.response.status_code}: {detail}")
                raise UpstreamError(
                    f"Agent tool {tool_name} failed with status {e.response.status_code}",
                    details={"tool": tool_name}
                )

            except (httpx.NetworkError, httpx.RemoteProtocolError) as e:
                error_type = type(e).__name__
                error_detail = repr(e) if not str(e) else str(e)
                logger.warning(
                    f"Agent service connection error for {tool_name} "
                    f"(attempt {attempt + 1}/{self.MAX_RETRIES}): [{error_type}] {error_detail}"
                )
                if attempt < self.MAX_RETRIES - 1:
                    await asyncio.sleep(self.RETRY_DELAY * (attempt + 1))
                    continue
                raise UpstreamError(
                    f"Agent service connection failed after {self.MAX_RETRIES} attempts",
                    details={"tool": tool_name}
                )

            except httpx.TimeoutException:
                logger.warning(f"Agent tool {tool_name} timed out")
                raise UpstreamError(f"Agent tool {tool_name} timed out", details={"tool": tool_name})

            except httpx.HTTPError as e:
                logger.error(f"Agent tool {tool_name} request failed: [{type(e).__name__}] {e}")
                raise UpstreamError(f"Agent tool {tool_name} request failed", details={"tool": tool_name})

            except ValueError as e:
                logger.error(f"Agent tool {tool_name} returned invalid JSON: {e}")
                raise UpstreamError(f"Agent tool {tool_name} returned an invalid response")

        if not isinstance(body, dict) or not body.get("success", False):
            error = body.get("error") if isinstance(body, dict) else None
            raise UpstreamError(error or f"Agent tool {tool_name} failed", details={"tool": tool_name})
        return body.get("data")

    async def close(self):
        """Close HTTP client."""
        await self.client.aclose()
        logger.info("Agent service client closed")
