"""
Client for the browser-automation provider.

The provider runs a remote browser session against a target URL with a
natural-language goal and answers with a server-sent event stream. The
response is handed back unread so the run engine can decode it
incrementally under its own deadline.
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager

import httpx

from autopilot.core.logging import get_logger
from autopilot.engine.config import EngineConfig
from autopilot.schemas.run import ProviderTask

logger = get_logger(__name__)

RUN_SSE_PATH = "/v1/automation/run-sse"


class AutomationProvider(ABC):
    """Abstract base class for automation providers."""

    provider_name: str = "unknown"

    @abstractmethod
    def open_stream(self, task: ProviderTask) -> AbstractAsyncContextManager[httpx.Response]:
        """
        Start an automation and expose its event stream.

        Yields:
            The streaming response, status line and headers read, body unread
        """


class BrowserAutomationClient(AutomationProvider):
    """
    HTTP client for the hosted browser-automation API.

    One POST per run. The response body is a line-oriented `data: {...}`
    event stream consumed by autopilot.engine.stream.
    """

    provider_name = "browser_automation"

    def __init__(
        self,
        base_url: str,
        api_key: str,
        browser_profile: str = "stealth",
        proxy_enabled: bool = True,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.browser_profile = browser_profile
        self.proxy_enabled = proxy_enabled
        self._client = client

    @classmethod
    def from_engine_config(
        cls,
        config: EngineConfig,
        client: httpx.AsyncClient | None = None,
    ) -> "BrowserAutomationClient":
        return cls(
            base_url=config.provider_base_url,
            api_key=config.provider_api_key,
            browser_profile=config.browser_profile,
            proxy_enabled=config.proxy_enabled,
            client=client,
        )

    def build_payload(self, task: ProviderTask) -> dict:
        return {
            "url": task.url,
            "goal": task.goal,
            "browser_profile": self.browser_profile,
            "proxy_config": {
                "enabled": self.proxy_enabled,
                "country_code": task.country_code,
            },
        }

    @asynccontextmanager
    async def open_stream(self, task: ProviderTask) -> AsyncIterator[httpx.Response]:
        headers = {
            "X-API-Key": self.api_key,
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
        }

        # The run deadline bounds the whole call; no client-side read timeout
        client = self._client or httpx.AsyncClient(timeout=httpx.Timeout(None, connect=15.0))
        try:
            async with client.stream(
                "POST",
                f"{self.base_url}{RUN_SSE_PATH}",
                json=self.build_payload(task),
                headers=headers,
            ) as response:
                logger.bind(
                    provider=self.provider_name,
                    status=response.status_code,
                    target=task.url[:200],
                ).debug("automation_stream_opened")
                yield response
        finally:
            if self._client is None:
                await client.aclose()
