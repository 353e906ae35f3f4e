"""
Web search context for agent runs (Brave Search API).

Context is a nice-to-have: a missing key, an HTTP error or an odd response
shape all degrade to an empty string.
"""

import httpx

from autopilot.config import get_settings
from autopilot.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_RESULT_COUNT = 5


class ContextSearch:
    """Fetch a few web results and flatten them into a prompt-ready block."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        settings = get_settings()
        self.api_key = api_key if api_key is not None else settings.search_api_key
        self.base_url = (base_url or settings.search_base_url).rstrip("/")
        self._client = client
        self.timeout = timeout

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def search(self, query: str, count: int = DEFAULT_RESULT_COUNT) -> str:
        """
        Search the web and return results as "title: description" lines.

        Args:
            query: Free-text query
            count: Maximum number of results

        Returns:
            Newline-joined results, or "" when unavailable
        """
        if not self.enabled or not query.strip():
            return ""

        client = self._client or httpx.AsyncClient(timeout=self.timeout)
        try:
            response = await client.get(
                f"{self.base_url}/web/search",
                params={"q": query, "count": count},
                headers={
                    "Accept": "application/json",
                    "X-Subscription-Token": self.api_key,
                },
            )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.bind(query=query[:100], error=str(e)).warning("context_search_error")
            return ""
        finally:
            if self._client is None:
                await client.aclose()

        web = data.get("web") if isinstance(data, dict) else None
        results = web.get("results") if isinstance(web, dict) else None
        if not isinstance(results, list):
            results = []

        lines = []
        for result in results[:count]:
            if not isinstance(result, dict):
                continue
            title = (result.get("title") or "").strip()
            description = (result.get("description") or "").strip()
            if title or description:
                lines.append(f"{title}: {description}" if description else title)

        logger.bind(query=query[:100], results=len(lines)).debug("context_search_complete")
        return "\n".join(lines)
