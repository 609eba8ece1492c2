"""
Web Search Module
Provides provider-fallback web search feeding the deep research engine.
"""
from deepsearch.core.web_search.web_search_engine import WebSearchEngine

__all__ = ["WebSearchEngine"]
