"""
SearXNG Search Provider - Queries a SearXNG instance through its JSON API.
No API key required. Returns snippets only; page content is filled in by the
search engine's scraper when enabled.
"""
import asyncio
from typing import List, Optional
from loguru import logger
import requests

from deepsearch.core.web_search.providers.base_provider import (
    BaseSearchProvider,
    SearchDocument,
    SearchProviderError,
)


class SearXNGProvider(BaseSearchProvider):
    """Search provider using a configured SearXNG instance."""

    def __init__(self, instance_url: str, max_results: int = 5, timeout: float = 10.0):
        super().__init__(name="SearXNG", max_results=max_results)
        self.instance_url = instance_url.rstrip("/")
        self.timeout = timeout

    async def search(self, query: str, limit: Optional[int] = None) -> List[SearchDocument]:
        """Execute search via SearXNG."""
        loop = asyncio.get_running_loop()
        results = await loop.run_in_executor(None, self._sync_search, query, limit or self.max_results)
        logger.info(f"[SearXNG] {len(results)} results for: {query}")
        return results

    def _sync_search(self, query: str, limit: int) -> List[SearchDocument]:
        """Synchronous query against the instance."""
        params = {
            "q": query,
            "format": "json",
            "categories": "general",
            "language": "en",
            "pageno": 1
        }

        headers = {
            "User-Agent": "deepsearch/0.1 (research engine)",
            "Accept": "application/json"
        }

        try:
            resp = requests.get(
                f"{self.instance_url}/search",
                params=params,
                headers=headers,
                timeout=self.timeout
            )
            resp.raise_for_status()
            data = resp.json()
        except requests.Timeout as e:
            raise SearchProviderError(self.name, f"Timeout searching '{query}'") from e
        except (requests.RequestException, ValueError) as e:
            raise SearchProviderError(self.name, str(e)) from e

        results = []
        for item in data.get("results", [])[:limit]:
            results.append(SearchDocument(
                url=item.get("url", ""),
                title=item.get("title") or None,
                snippet=self._clean_snippet(item.get("content", "")),
                source_provider=self.name,
                date=item.get("publishedDate", None)
            ))

        return results
