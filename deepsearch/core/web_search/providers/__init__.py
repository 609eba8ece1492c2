"""
Search providers for the Web Search module.
"""
from deepsearch.core.web_search.providers.base_provider import (
    BaseSearchProvider,
    SearchDocument,
    SearchProviderError,
    SearchResponse,
)
from deepsearch.core.web_search.providers.firecrawl_provider import FirecrawlProvider
from deepsearch.core.web_search.providers.searxng_provider import SearXNGProvider

__all__ = [
    "BaseSearchProvider",
    "SearchDocument",
    "SearchProviderError",
    "SearchResponse",
    "FirecrawlProvider",
    "SearXNGProvider",
]
