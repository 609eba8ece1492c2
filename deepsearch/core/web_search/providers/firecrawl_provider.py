"""
Firecrawl Search Provider - search + scrape in one call, returns page markdown.
Works against the hosted API (key required) or a self-hosted instance (key optional).
"""
from typing import Any, Dict, List, Optional

import httpx
from loguru import logger

from deepsearch.core.web_search.providers.base_provider import (
    BaseSearchProvider,
    SearchDocument,
    SearchProviderError,
)

FIRECRAWL_API_BASE_URL = "https://api.firecrawl.dev"
FIRECRAWL_SEARCH_ENDPOINT = "/v1/search"


class FirecrawlProvider(BaseSearchProvider):
    """Search provider backed by the Firecrawl /v1/search endpoint."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        max_results: int = 5,
        timeout: float = 15.0,
        formats: Optional[List[str]] = None,
    ):
        super().__init__(name="Firecrawl", max_results=max_results)
        self.api_key = api_key
        self.base_url = (base_url or FIRECRAWL_API_BASE_URL).rstrip("/")
        self.timeout = timeout
        self.formats = formats or ["markdown"]

    async def search(self, query: str, limit: Optional[int] = None) -> List[SearchDocument]:
        """Execute search via Firecrawl, scraping each hit to markdown."""
        payload = {
            "query": query,
            "limit": limit or self.max_results,
            # Firecrawl expects milliseconds
            "timeout": int(self.timeout * 1000),
            "scrapeOptions": {"formats": self.formats},
        }
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        try:
            # Scraping happens server side, leave headroom over the search timeout
            async with httpx.AsyncClient(timeout=httpx.Timeout(self.timeout + 5.0)) as client:
                response = await client.post(
                    f"{self.base_url}{FIRECRAWL_SEARCH_ENDPOINT}",
                    json=payload,
                    headers=headers,
                )
        except httpx.TimeoutException as e:
            raise SearchProviderError(self.name, f"Timeout searching '{query}'") from e
        except httpx.RequestError as e:
            raise SearchProviderError(self.name, f"Request failed: {e}") from e

        if response.status_code == 401:
            raise SearchProviderError(self.name, "Invalid API key")
        if response.status_code == 429:
            raise SearchProviderError(self.name, "Rate limit exceeded")
        if response.status_code >= 400:
            raise SearchProviderError(self.name, f"HTTP {response.status_code}: {response.text[:200]}")

        try:
            data = response.json()
        except ValueError as e:
            raise SearchProviderError(self.name, "Response was not JSON") from e

        if data.get("success") is False:
            raise SearchProviderError(self.name, str(data.get("error", "search failed")))

        documents = [self._to_document(item) for item in data.get("data", []) or []]
        logger.info(f"[Firecrawl] {len(documents)} results for: {query}")
        return documents

    def _to_document(self, item: Dict[str, Any]) -> SearchDocument:
        metadata = item.get("metadata") or {}
        return SearchDocument(
            url=item.get("url") or metadata.get("sourceURL") or "",
            title=item.get("title") or metadata.get("title"),
            markdown=item.get("markdown"),
            snippet=self._clean_snippet(item.get("description", "")),
            source_provider=self.name,
            date=metadata.get("publishedTime"),
        )
