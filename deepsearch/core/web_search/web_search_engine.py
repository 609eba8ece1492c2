"""
Web Search Engine - provider fallback, timeout, URL dedup and content fill.
"""
import asyncio
import re
import time
from typing import List, Optional
from loguru import logger

from deepsearch.core.web_search.providers.base_provider import (
    BaseSearchProvider,
    SearchDocument,
    SearchProviderError,
    SearchResponse,
)
from deepsearch.core.web_search.providers.firecrawl_provider import FirecrawlProvider
from deepsearch.core.web_search.providers.searxng_provider import SearXNGProvider
from deepsearch.core.web_search.web_scraper import DeepWebScraper
from deepsearch.models.config import SearchConfig


class WebSearchEngine:
    """
    Search collaborator used by the research orchestrator.

    Providers are tried in order; the first one that returns documents wins.
    Results are deduplicated by normalized URL. Documents that arrive without
    page content (snippet-only providers) are optionally scraped.
    A provider error is only surfaced when every provider failed.
    """

    def __init__(
        self,
        providers: List[BaseSearchProvider],
        scraper: Optional[DeepWebScraper] = None,
        default_timeout: float = 15.0,
    ):
        if not providers:
            raise ValueError("WebSearchEngine needs at least one provider")
        self.providers = providers
        self.scraper = scraper
        self.default_timeout = default_timeout
        logger.info(
            f"[WebSearch] Initialized with providers: {', '.join(p.name for p in providers)}"
        )

    @classmethod
    def from_config(cls, config: SearchConfig) -> "WebSearchEngine":
        providers: List[BaseSearchProvider] = []
        if config.firecrawl_api_key or config.firecrawl_base_url:
            providers.append(FirecrawlProvider(
                api_key=config.firecrawl_api_key,
                base_url=config.firecrawl_base_url,
                timeout=config.search_timeout,
            ))
        if config.searxng_url:
            providers.append(SearXNGProvider(config.searxng_url, timeout=config.search_timeout))
        scraper = DeepWebScraper(timeout=config.search_timeout) if config.scrape_missing_content else None
        return cls(providers, scraper=scraper, default_timeout=config.search_timeout)

    async def search(
        self,
        query: str,
        limit: int = 5,
        timeout: Optional[float] = None,
    ) -> SearchResponse:
        """
        Run `query` against the providers.

        Raises asyncio.TimeoutError after `timeout` seconds and
        SearchProviderError when every provider failed.
        """
        start_time = time.time()
        response = await asyncio.wait_for(
            self._search(query, limit),
            timeout=timeout or self.default_timeout,
        )
        elapsed = (time.time() - start_time) * 1000
        logger.debug(
            f"[WebSearch] '{query[:60]}' -> {len(response.documents)} documents "
            f"via {response.provider or 'none'} in {elapsed:.0f}ms"
        )
        return response

    async def _search(self, query: str, limit: int) -> SearchResponse:
        errors = []
        for provider in self.providers:
            try:
                documents = await provider.search(query, limit=limit)
            except SearchProviderError as e:
                logger.warning(f"[WebSearch] Provider {provider.name} failed: {e}")
                errors.append(e)
                continue

            documents = self._dedupe(documents)
            if not documents:
                continue

            if self.scraper is not None:
                documents = await self._fill_missing_content(documents)
            return SearchResponse(query=query, documents=documents, provider=provider.name)

        if errors and len(errors) == len(self.providers):
            raise errors[-1]
        return SearchResponse(query=query)

    def _dedupe(self, documents: List[SearchDocument]) -> List[SearchDocument]:
        seen = set()
        unique = []
        for doc in documents:
            key = self._normalize_url(doc.url) if doc.url else None
            if key is not None and key in seen:
                continue
            if key is not None:
                seen.add(key)
            unique.append(doc)
        return unique

    async def _fill_missing_content(self, documents: List[SearchDocument]) -> List[SearchDocument]:
        missing = [d for d in documents if not d.markdown and d.url]
        if not missing:
            return documents

        pages = await self.scraper.scrape_urls([d.url for d in missing])
        by_url = {p.url: p for p in pages if p.success}
        for doc in missing:
            page = by_url.get(doc.url)
            if page is not None:
                doc.markdown = page.content
                doc.title = doc.title or page.title or None
            elif doc.snippet:
                doc.markdown = doc.snippet
        return documents

    def _normalize_url(self, url: str) -> str:
        """Normalize a URL for deduplication."""
        url = url.strip().rstrip("/")
        url = re.sub(r'^https?://(www\.)?', '', url)
        # Remove query parameters and fragments
        url = url.split("?")[0].split("#")[0]
        return url.lower()
